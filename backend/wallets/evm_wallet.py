"""
EVM account wallet (Base, Polygon, ...).

Only identity and network detection live here; the room program client is
Solana-specific.
"""
import logging
import re
from typing import Optional

import httpx

from chain_config import EVM_CHAIN_NAMES, EVM_EXPECTED_CHAIN_ID, EVM_RPC_URL
from .base import ChainFamily, WalletAdapter, register_adapter

logger = logging.getLogger(__name__)

_EVM_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_valid_evm_address(address: str) -> bool:
    return bool(address) and bool(_EVM_ADDRESS_RE.match(address))


@register_adapter(ChainFamily.EVM)
class EvmAccountWallet(WalletAdapter):
    """Network is the chain id reported by ``eth_chainId``."""

    def __init__(
        self,
        account: str,
        rpc_url: str = EVM_RPC_URL,
        expected_network: int = EVM_EXPECTED_CHAIN_ID,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(expected_network)
        self.account = account
        self.rpc_url = rpc_url
        self._owns_client = http_client is None
        self.http = http_client

    @property
    def network_name(self) -> str:
        return EVM_CHAIN_NAMES.get(self.current_network, f"chain {self.current_network}")

    async def _connect(self):
        if not is_valid_evm_address(self.account):
            raise ValueError(f"Invalid EVM address: {self.account}")

        resp = await self._http_client().post(
            self.rpc_url,
            json={"jsonrpc": "2.0", "id": 1, "method": "eth_chainId", "params": []},
        )
        resp.raise_for_status()
        payload = resp.json()
        if "error" in payload:
            raise ValueError(f"eth_chainId failed: {payload['error']}")
        chain_id = int(payload["result"], 16)
        return self.account.lower(), chain_id

    async def _disconnect(self):
        if self._owns_client and self.http is not None:
            await self.http.aclose()
            self.http = None

    def _http_client(self) -> httpx.AsyncClient:
        if self.http is None:
            self.http = httpx.AsyncClient(timeout=10)
        return self.http

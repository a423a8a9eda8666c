"""
Stellar account wallet.

Network identity is the passphrase reported by the Horizon root endpoint.
"""
import base64
import logging
from typing import Optional

import httpx

from chain_config import STELLAR_HORIZON_URL, STELLAR_NETWORK_PASSPHRASE
from .base import ChainFamily, WalletAdapter, register_adapter

logger = logging.getLogger(__name__)

# Version byte for an ed25519 public key ("G..." account id)
ACCOUNT_ID_VERSION_BYTE = 6 << 3


def _crc16_xmodem(data: bytes) -> int:
    crc = 0
    for byte in data:
        crc ^= byte << 8
        for _ in range(8):
            crc = ((crc << 1) ^ 0x1021) if crc & 0x8000 else (crc << 1)
            crc &= 0xFFFF
    return crc


def is_valid_stellar_account_id(account_id: str) -> bool:
    """Check a G-address: base32, version byte and CRC16 checksum."""
    if not account_id or len(account_id) != 56 or not account_id.startswith("G"):
        return False
    try:
        raw = base64.b32decode(account_id)
    except (ValueError, TypeError):
        return False
    if len(raw) != 35 or raw[0] != ACCOUNT_ID_VERSION_BYTE:
        return False
    payload, checksum = raw[:-2], raw[-2:]
    return _crc16_xmodem(payload) == int.from_bytes(checksum, "little")


@register_adapter(ChainFamily.STELLAR)
class StellarAccountWallet(WalletAdapter):

    def __init__(
        self,
        account_id: str,
        horizon_url: str = STELLAR_HORIZON_URL,
        expected_network: str = STELLAR_NETWORK_PASSPHRASE,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(expected_network)
        self.account_id = account_id
        self.horizon_url = horizon_url.rstrip("/")
        self._owns_client = http_client is None
        self.http = http_client

    async def _connect(self):
        if not is_valid_stellar_account_id(self.account_id):
            raise ValueError(f"Invalid Stellar account id: {self.account_id}")

        resp = await self._http_client().get(f"{self.horizon_url}/")
        resp.raise_for_status()
        passphrase = resp.json().get("network_passphrase")
        if not passphrase:
            raise ValueError("Horizon did not report a network passphrase")
        return self.account_id, passphrase

    async def _disconnect(self):
        if self._owns_client and self.http is not None:
            await self.http.aclose()
            self.http = None

    def _http_client(self) -> httpx.AsyncClient:
        if self.http is None:
            self.http = httpx.AsyncClient(timeout=10)
        return self.http

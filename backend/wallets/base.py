"""
Wallet adapter contract shared by every chain family.

Business logic only talks to WalletAdapter and ensure_wallet_ready(); which
variant backs it is decided once, when the wallet is created.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Type

from room_program.errors import NotConnected, WrongChainFamily, WrongNetwork

logger = logging.getLogger(__name__)


class ChainFamily(Enum):
    EVM = "evm"
    SOLANA = "solana"
    STELLAR = "stellar"


@dataclass
class ConnectResult:
    ok: bool
    address: Optional[str] = None
    network: Any = None
    error: Optional[str] = None


class WalletAdapter(ABC):
    """connect / disconnect / address / network check, per chain family."""

    family: ChainFamily

    def __init__(self, expected_network):
        self.expected_network = expected_network
        self.current_network = None
        self._address: Optional[str] = None

    @property
    def address(self) -> Optional[str]:
        return self._address

    @property
    def is_connected(self) -> bool:
        return self._address is not None

    def is_on_correct_network(self) -> bool:
        return self.is_connected and self.current_network == self.expected_network

    async def connect(self) -> ConnectResult:
        """Connect and detect the current network. Never raises for user-facing failures."""
        try:
            address, network = await self._connect()
        except Exception as e:
            logger.warning(f"[WALLET] {self.family.value} connect failed: {e}")
            self._address = None
            self.current_network = None
            return ConnectResult(ok=False, error=str(e))

        self._address = address
        self.current_network = network
        if network != self.expected_network:
            logger.warning(
                f"[WALLET] {self.family.value} wallet on {network}, expected {self.expected_network}"
            )
        else:
            logger.info(f"[WALLET] 🔗 {self.family.value} wallet connected on {network}")
        return ConnectResult(ok=True, address=address, network=network)

    async def disconnect(self):
        self._address = None
        self.current_network = None
        await self._disconnect()
        logger.info(f"[WALLET] {self.family.value} wallet disconnected")

    @abstractmethod
    async def _connect(self):
        """Return (address, current_network)."""

    async def _disconnect(self):
        pass


def ensure_wallet_ready(wallet: Optional[WalletAdapter], required_family: ChainFamily) -> WalletAdapter:
    """Check a wallet can act for a room on ``required_family``.

    Raises, in order of remediation:
        NotConnected: no wallet or not connected
        WrongChainFamily: connected, but to another family (reconnect)
        WrongNetwork: right family, wrong chain id / cluster (switch network)
    """
    if wallet is None or not wallet.is_connected:
        raise NotConnected()
    if wallet.family is not required_family:
        raise WrongChainFamily(required_family, wallet.family)
    if not wallet.is_on_correct_network():
        raise WrongNetwork(wallet.expected_network, wallet.current_network)
    return wallet


_ADAPTERS: Dict[ChainFamily, Type[WalletAdapter]] = {}


def register_adapter(family: ChainFamily):
    def decorator(cls: Type[WalletAdapter]) -> Type[WalletAdapter]:
        cls.family = family
        _ADAPTERS[family] = cls
        return cls
    return decorator


def create_wallet(family: ChainFamily, **kwargs) -> WalletAdapter:
    """Instantiate the adapter for a chain family."""
    try:
        adapter_cls = _ADAPTERS[family]
    except KeyError:
        raise ValueError(f"No wallet adapter registered for {family}") from None
    return adapter_cls(**kwargs)

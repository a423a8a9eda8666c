"""
Solana keypair wallet.
"""
import logging
from typing import Optional, Union

import base58
from cryptography.fernet import Fernet
from solana.rpc.async_api import AsyncClient
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from chain_config import SOLANA_GENESIS_HASHES, SOLANA_NETWORK, get_rpc_url
from room_program.errors import NotConnected
from .base import ChainFamily, WalletAdapter, register_adapter

logger = logging.getLogger(__name__)


def keypair_from_base58(secret: str) -> Keypair:
    """Create keypair from base58 secret key."""
    secret_bytes = base58.b58decode(secret)
    return Keypair.from_bytes(secret_bytes)


def decrypt_secret(encrypted_secret: str, encryption_key: str) -> str:
    """Decrypt a Fernet-encrypted base58 secret key."""
    f = Fernet(encryption_key.encode())
    return f.decrypt(encrypted_secret.encode()).decode("utf-8")


def encrypt_secret(secret: str, encryption_key: str) -> str:
    f = Fernet(encryption_key.encode())
    return f.encrypt(secret.encode()).decode("utf-8")


@register_adapter(ChainFamily.SOLANA)
class SolanaKeypairWallet(WalletAdapter):
    """Signs with a local keypair; the cluster is detected from the node's genesis hash."""

    def __init__(
        self,
        keypair: Union[Keypair, str],
        rpc=None,
        rpc_url: Optional[str] = None,
        expected_network: str = SOLANA_NETWORK,
    ):
        super().__init__(expected_network)
        self._keypair = keypair_from_base58(keypair) if isinstance(keypair, str) else keypair
        self._rpc_url = rpc_url or get_rpc_url(expected_network)
        # An owned client is opened on connect and closed on disconnect
        self._owns_rpc = rpc is None
        self.rpc = rpc

    @classmethod
    def from_encrypted_secret(cls, encrypted_secret: str, encryption_key: str, **kwargs) -> "SolanaKeypairWallet":
        return cls(keypair_from_base58(decrypt_secret(encrypted_secret, encryption_key)), **kwargs)

    @property
    def pubkey(self) -> Pubkey:
        if not self.is_connected:
            raise NotConnected()
        return self._keypair.pubkey()

    async def _connect(self):
        if self.rpc is None:
            self.rpc = AsyncClient(self._rpc_url)
        resp = await self.rpc.get_genesis_hash()
        genesis = str(resp.value)
        network = SOLANA_GENESIS_HASHES.get(genesis, f"unknown:{genesis[:8]}")
        return str(self._keypair.pubkey()), network

    async def _disconnect(self):
        if self._owns_rpc and self.rpc is not None:
            await self.rpc.close()
            self.rpc = None

    async def sign_transaction(self, tx: Transaction) -> Transaction:
        """Sign an unsigned transaction built for this wallet as fee payer."""
        if not self.is_connected:
            raise NotConnected()
        message = tx.message
        return Transaction([self._keypair], message, message.recent_blockhash)

"""Chain-family wallet adapters."""
from .base import (
    ChainFamily,
    ConnectResult,
    WalletAdapter,
    create_wallet,
    ensure_wallet_ready,
)
from .evm_wallet import EvmAccountWallet, is_valid_evm_address
from .solana_wallet import SolanaKeypairWallet, keypair_from_base58
from .stellar_wallet import StellarAccountWallet, is_valid_stellar_account_id

__all__ = [
    "ChainFamily",
    "ConnectResult",
    "WalletAdapter",
    "create_wallet",
    "ensure_wallet_ready",
    "EvmAccountWallet",
    "SolanaKeypairWallet",
    "StellarAccountWallet",
    "is_valid_evm_address",
    "is_valid_stellar_account_id",
    "keypair_from_base58",
]

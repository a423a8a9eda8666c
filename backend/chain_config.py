"""
Chain configuration for the fundraising room program.

All on-chain constants and environment-driven settings live here.
Values are read once at import; override them through the environment or .env.
"""
import os
from typing import Dict, Optional

from dotenv import load_dotenv
from solders.pubkey import Pubkey

load_dotenv()

# ===== NETWORK =====

SOLANA_NETWORK = os.getenv("SOLANA_NETWORK", "devnet")

PUBLIC_RPC_URLS = {
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
}

# Genesis hash identifies the cluster a node belongs to
SOLANA_GENESIS_HASHES = {
    "EtWTRABZaYq6iMfeYKouRu166VU2xqa1wcaWoxPkrZBG": "devnet",
    "4uhcVJyU9pJkvQyS88uRDiswHXSCkY3zQawwpjk2NsNY": "testnet",
    "5eykt4UsFv8P8NJdTREpY1vzqKqZKvdpKuc147dw2N9d": "mainnet-beta",
}


def get_rpc_url(network: Optional[str] = None) -> str:
    """Primary RPC URL, falling back to the public endpoint for the cluster."""
    network = network or SOLANA_NETWORK
    return os.getenv("RPC_URL") or PUBLIC_RPC_URLS.get(network, PUBLIC_RPC_URLS["devnet"])


def explorer_cluster(network: Optional[str] = None) -> str:
    """Cluster name as used by block explorers ("mainnet" has no query param)."""
    network = network or SOLANA_NETWORK
    return "mainnet" if network == "mainnet-beta" else network


# ===== PROGRAM =====

PROGRAM_ID = Pubkey.from_string(
    os.getenv("PROGRAM_ID", "DurTiNFFQK62B5nMimfhuvztJXsFyu8skMz6rNtp2Wmq")
)

SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
RENT_SYSVAR_ID = Pubkey.from_string("SysvarRent111111111111111111111111111111111")

# ===== PDA SEEDS =====

SEED_GLOBAL_CONFIG = b"global-config"
SEED_ROOM = b"room"
SEED_ROOM_VAULT = b"room-vault"
SEED_PRIZE_VAULT = b"prize-vault"
SEED_PLAYER_ENTRY = b"player"

# Registry seed changed twice; accounts under old seeds are orphaned, not moved
TOKEN_REGISTRY_VERSION = os.getenv("TOKEN_REGISTRY_VERSION", "v4")
REGISTRY_SEEDS: Dict[str, bytes] = {
    "v4": b"token-registry-v4",
    "v2": b"token-registry-v2",
    "v1": b"token-registry",
}

if TOKEN_REGISTRY_VERSION not in REGISTRY_SEEDS:
    raise ValueError(
        f"Unknown TOKEN_REGISTRY_VERSION {TOKEN_REGISTRY_VERSION!r}. "
        f"Expected one of: {', '.join(REGISTRY_SEEDS)}"
    )

# ===== PROGRAM LIMITS =====

MAX_ROOM_ID_BYTES = 32
MAX_CHARITY_MEMO_BYTES = 28
MAX_WINNERS = 3
TOKEN_REGISTRY_CAPACITY = 50
BPS_DENOMINATOR = 10_000
RECOVERY_PLATFORM_PCT = 10
DEFAULT_MAX_PLAYERS = 100

# Fee bounds set by initialize; platform + host + prize + charity = 10000
DEFAULT_PLATFORM_FEE_BPS = 2000   # 20%
MAX_HOST_FEE_BPS = 500            # 5%
MAX_PRIZE_POOL_BPS = 3500         # 35%
MIN_CHARITY_BPS = 4000            # 40%

# ===== TRANSACTIONS =====

TX_MAX_ATTEMPTS = int(os.getenv("TX_MAX_ATTEMPTS", "3"))
TX_RETRY_BASE_DELAY = float(os.getenv("TX_RETRY_BASE_DELAY", "0.5"))
TX_RETRY_MAX_DELAY = float(os.getenv("TX_RETRY_MAX_DELAY", "30"))
CONFIRM_TIMEOUT = float(os.getenv("CONFIRM_TIMEOUT", "60"))
CONFIRM_POLL_INTERVAL = float(os.getenv("CONFIRM_POLL_INTERVAL", "0.5"))
SIMULATION_TIMEOUT = float(os.getenv("SIMULATION_TIMEOUT", "15"))
OPERATION_ATTEMPTS = int(os.getenv("OPERATION_ATTEMPTS", "2"))

# ===== TOKENS =====

TOKEN_MINTS: Dict[str, Dict[str, str]] = {
    "devnet": {
        "USDC": "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU",
        "PYUSD": "CXk2AMBfi3TwaEL2468s6zP8xq9NxTXjp9gjMgzeUynM",
        "USDT": "EJwZgeZrdC8TXTQbQBoL6bfuAnFUUy1PVCMB4DYPzVaS",
    },
    "mainnet-beta": {
        "USDC": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
        "USDT": "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB",
        "PYUSD": "2b1kV6DkPAnxd5ixfnxCpjxmKwqjjaYmCZfHsFu24GXo",
    },
}


def get_token_mint(symbol: str, network: Optional[str] = None) -> Pubkey:
    """Look up a known mint by symbol for the given network."""
    network = network or SOLANA_NETWORK
    mints = TOKEN_MINTS.get(network, {})
    if symbol.upper() not in mints:
        raise KeyError(f"No {symbol} mint configured for {network}")
    return Pubkey.from_string(mints[symbol.upper()])


# ===== OTHER CHAIN FAMILIES =====

EVM_RPC_URL = os.getenv("EVM_RPC_URL", "https://sepolia.base.org")
EVM_EXPECTED_CHAIN_ID = int(os.getenv("EVM_EXPECTED_CHAIN_ID", "84532"))  # Base Sepolia

EVM_CHAIN_NAMES = {
    1: "Ethereum",
    8453: "Base",
    84532: "Base Sepolia",
    137: "Polygon",
    80002: "Polygon Amoy",
}

STELLAR_TESTNET_PASSPHRASE = "Test SDF Network ; September 2015"
STELLAR_PUBLIC_PASSPHRASE = "Public Global Stellar Network ; September 2015"

STELLAR_HORIZON_URL = os.getenv("STELLAR_HORIZON_URL", "https://horizon-testnet.stellar.org")
STELLAR_NETWORK_PASSPHRASE = os.getenv("STELLAR_NETWORK_PASSPHRASE", STELLAR_TESTNET_PASSPHRASE)

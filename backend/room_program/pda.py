"""
Program-derived address helpers for the room program.

One function per account type. Every caller derives through these so that a
seed change only ever happens in one place.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, Optional

from solders.pubkey import Pubkey

from chain_config import (
    MAX_ROOM_ID_BYTES,
    MAX_WINNERS,
    PROGRAM_ID,
    REGISTRY_SEEDS,
    SEED_GLOBAL_CONFIG,
    SEED_PLAYER_ENTRY,
    SEED_PRIZE_VAULT,
    SEED_ROOM,
    SEED_ROOM_VAULT,
    TOKEN_REGISTRY_VERSION,
)


class AccountKind(Enum):
    """Program-owned account types."""
    GLOBAL_CONFIG = "global_config"
    TOKEN_REGISTRY = "token_registry"
    ROOM = "room"
    ROOM_VAULT = "room_vault"
    PRIZE_VAULT = "prize_vault"
    PLAYER_ENTRY = "player_entry"


@dataclass(frozen=True)
class DerivedAddress:
    address: Pubkey
    bump: int

    def __iter__(self) -> Iterator:
        # allows `address, bump = derive(...)`
        return iter((self.address, self.bump))


def room_id_seed(room_id: str) -> bytes:
    """Encode a room id as seed bytes, enforcing the 1..32 byte limit."""
    raw = room_id.encode("utf-8")
    if not raw:
        raise ValueError("Room id must not be empty")
    if len(raw) > MAX_ROOM_ID_BYTES:
        raise ValueError(f"Room id is {len(raw)} bytes, max is {MAX_ROOM_ID_BYTES}")
    return raw


def _find(seeds, program_id: Optional[Pubkey]) -> DerivedAddress:
    address, bump = Pubkey.find_program_address(seeds, program_id or PROGRAM_ID)
    return DerivedAddress(address, bump)


def derive_global_config_pda(program_id: Optional[Pubkey] = None) -> DerivedAddress:
    return _find([SEED_GLOBAL_CONFIG], program_id)


def derive_token_registry_pda(
    version: str = TOKEN_REGISTRY_VERSION,
    program_id: Optional[Pubkey] = None,
) -> DerivedAddress:
    """Derive the token registry for an explicit seed version."""
    if version not in REGISTRY_SEEDS:
        raise ValueError(f"Unknown token registry version: {version}")
    return _find([REGISTRY_SEEDS[version]], program_id)


def registry_candidates(program_id: Optional[Pubkey] = None) -> Dict[str, DerivedAddress]:
    """All registry addresses this program has ever used, keyed by version."""
    return {version: derive_token_registry_pda(version, program_id) for version in REGISTRY_SEEDS}


def derive_room_pda(host: Pubkey, room_id: str, program_id: Optional[Pubkey] = None) -> DerivedAddress:
    return _find([SEED_ROOM, bytes(host), room_id_seed(room_id)], program_id)


def derive_room_vault_pda(room: Pubkey, program_id: Optional[Pubkey] = None) -> DerivedAddress:
    return _find([SEED_ROOM_VAULT, bytes(room)], program_id)


def derive_prize_vault_pda(room: Pubkey, index: int, program_id: Optional[Pubkey] = None) -> DerivedAddress:
    if not 0 <= index < MAX_WINNERS:
        raise ValueError(f"Prize index must be 0..{MAX_WINNERS - 1}, got {index}")
    return _find([SEED_PRIZE_VAULT, bytes(room), bytes([index])], program_id)


def derive_player_entry_pda(room: Pubkey, player: Pubkey, program_id: Optional[Pubkey] = None) -> DerivedAddress:
    return _find([SEED_PLAYER_ENTRY, bytes(room), bytes(player)], program_id)


_DERIVERS = {
    AccountKind.GLOBAL_CONFIG: derive_global_config_pda,
    AccountKind.TOKEN_REGISTRY: derive_token_registry_pda,
    AccountKind.ROOM: derive_room_pda,
    AccountKind.ROOM_VAULT: derive_room_vault_pda,
    AccountKind.PRIZE_VAULT: derive_prize_vault_pda,
    AccountKind.PLAYER_ENTRY: derive_player_entry_pda,
}


def derive(kind: AccountKind, *seeds, program_id: Optional[Pubkey] = None) -> DerivedAddress:
    """Derive any program account by kind.

    Examples:
        derive(AccountKind.ROOM, host, "quiz-night")
        derive(AccountKind.PLAYER_ENTRY, room, player)
        derive(AccountKind.TOKEN_REGISTRY, "v2")
    """
    return _DERIVERS[kind](*seeds, program_id=program_id)

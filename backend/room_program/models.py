"""
Data models for the room program.

On-chain account snapshots are decoded into these dataclasses by
room_program.layouts. Request/result types are what the UI layer passes in
and gets back.
"""
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import List, Optional, Tuple

from solders.pubkey import Pubkey
from solders.signature import Signature

from chain_config import DEFAULT_MAX_PLAYERS, TOKEN_REGISTRY_CAPACITY
from .errors import InvalidParameters
from .fund_split import SplitPreview, validate_fee_bounds


class PrizeMode(Enum):
    """How winners are paid."""
    POOL_SPLIT = 0    # prize is a share of collected fees
    ASSET_BASED = 1   # host pre-deposits prize assets


class RoomStatus(Enum):
    """Lifecycle status stored on the Room account."""
    AWAITING_FUNDING = 0
    PARTIALLY_FUNDED = 1
    READY = 2
    ACTIVE = 3
    ENDED = 4

    @property
    def accepts_players(self) -> bool:
        return self in (RoomStatus.READY, RoomStatus.ACTIVE)


# ===== ON-CHAIN ACCOUNTS =====

@dataclass
class GlobalConfig:
    """Platform-wide configuration.

    ``slot`` is the context slot the snapshot was read at and serves as the
    record's version: admin operations act on the snapshot they were handed.
    """
    admin: Pubkey
    platform_wallet: Pubkey
    charity_wallet: Pubkey
    platform_fee_bps: int
    max_host_fee_bps: int
    max_prize_pool_bps: int
    min_charity_bps: int
    emergency_pause: bool
    bump: int
    address: Optional[Pubkey] = None
    slot: Optional[int] = None


@dataclass
class GlobalConfigPatch:
    """Subset of GlobalConfig fields to change; None means leave unchanged."""
    platform_wallet: Optional[Pubkey] = None
    charity_wallet: Optional[Pubkey] = None
    platform_fee_bps: Optional[int] = None
    max_host_fee_bps: Optional[int] = None
    max_prize_pool_bps: Optional[int] = None
    min_charity_bps: Optional[int] = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def changes(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    def apply(self, config: GlobalConfig) -> GlobalConfig:
        """Merge onto a snapshot and validate the fee bounds of the result."""
        if self.is_empty():
            raise InvalidParameters("Config patch has no fields to update")
        updated = replace(config, **self.changes())
        validate_fee_bounds(
            updated.platform_fee_bps,
            updated.max_host_fee_bps,
            updated.max_prize_pool_bps,
            updated.min_charity_bps,
        )
        return updated


@dataclass
class TokenRegistry:
    admin: Pubkey
    approved_tokens: List[Pubkey]
    bump: int
    address: Optional[Pubkey] = None
    version: Optional[str] = None

    def is_approved(self, mint: Pubkey) -> bool:
        return mint in self.approved_tokens

    @property
    def is_full(self) -> bool:
        return len(self.approved_tokens) >= TOKEN_REGISTRY_CAPACITY


@dataclass
class PrizeAsset:
    mint: Pubkey
    amount: int
    deposited: bool


@dataclass
class Room:
    room_id: str
    host: Pubkey
    charity_wallet: Pubkey
    fee_token_mint: Pubkey
    entry_fee: int
    host_fee_bps: int
    prize_pool_bps: int
    charity_bps: int
    prize_mode: PrizeMode
    prize_distribution: List[int]
    status: RoomStatus
    player_count: int
    max_players: int
    total_collected: int
    total_entry_fees: int
    total_extras_fees: int
    ended: bool
    creation_slot: int
    expiration_slot: int
    charity_memo: str
    winners: List[Optional[Pubkey]]
    prize_assets: List[Optional[PrizeAsset]]
    bump: int
    address: Optional[Pubkey] = None

    @property
    def is_full(self) -> bool:
        return self.player_count >= self.max_players

    @property
    def winners_declared(self) -> bool:
        return any(w is not None for w in self.winners)


@dataclass
class PlayerEntry:
    player: Pubkey
    room: Pubkey
    entry_paid: int
    extras_paid: int
    total_paid: int
    join_slot: int
    bump: int
    address: Optional[Pubkey] = None


# ===== REQUESTS =====

@dataclass
class CreateRoomParams:
    room_id: str
    fee_mint: Pubkey
    entry_fee: int
    max_players: int = DEFAULT_MAX_PLAYERS
    host_fee_bps: int = 0
    prize_pool_bps: int = 0
    # percentages of the prize pool for 1st/2nd/3rd place
    prize_distribution: Tuple[int, ...] = (100,)
    charity_wallet: Optional[Pubkey] = None
    charity_memo: str = ""
    expiration_slots: Optional[int] = None


@dataclass
class JoinRoomParams:
    room_id: str
    extras_amount: int = 0
    # Pass room_address or host whenever known; without either the client
    # falls back to scanning every room account
    room_address: Optional[Pubkey] = None
    host: Optional[Pubkey] = None


# ===== RESULTS =====

@dataclass
class JoinResult:
    signature: Optional[Signature]
    player_entry_address: Pubkey
    already_paid: bool = False


@dataclass
class CreateRoomResult:
    signature: Optional[Signature]
    room_address: Pubkey
    vault_address: Pubkey
    already_done: bool = False


@dataclass
class EndRoomResult:
    signature: Optional[Signature]
    room_address: Pubkey
    split: SplitPreview
    winners: List[Pubkey] = field(default_factory=list)
    already_done: bool = False


@dataclass
class DeclareWinnersResult:
    signature: Optional[Signature]
    room_address: Pubkey
    winners: List[Pubkey] = field(default_factory=list)
    already_done: bool = False


@dataclass
class CloseJoiningResult:
    signature: Optional[Signature]
    room_address: Pubkey
    already_done: bool = False


@dataclass
class CleanupRoomResult:
    signature: Optional[Signature]
    room_address: Pubkey
    # lamports returned from the closed room and vault accounts
    rent_reclaimed: int
    already_done: bool = False


@dataclass
class RecoverRoomResult:
    signature: Optional[Signature]
    room_address: Pubkey
    players_refunded: int
    refund_total: int
    platform_fee: int
    already_done: bool = False


@dataclass
class AdminResult:
    """Outcome of an admin transaction; signature is None when nothing was sent."""
    signature: Optional[Signature]
    address: Pubkey
    already_done: bool = False


@dataclass
class RegistryVersionReport:
    canonical_version: str
    canonical_address: Pubkey
    canonical_exists: bool
    # versions with an initialized account on-chain
    found_versions: List[str] = field(default_factory=list)

    @property
    def legacy_versions(self) -> List[str]:
        return [v for v in self.found_versions if v != self.canonical_version]

    @property
    def mismatch(self) -> bool:
        """True when a legacy registry exists but the canonical one does not."""
        return not self.canonical_exists and bool(self.legacy_versions)

"""
Borsh layouts for room program accounts and instructions.

Anchor prefixes account data with sha256("account:<Name>")[:8] and
instruction data with sha256("global:<snake_name>")[:8].
"""
import hashlib
from typing import List, Optional

from borsh_construct import Bool, CStruct, Option, String, U16, U32, U64, U8, Vec
from solders.pubkey import Pubkey

from .models import (
    GlobalConfig,
    PlayerEntry,
    PrizeAsset,
    PrizeMode,
    Room,
    RoomStatus,
    TokenRegistry,
)

DISCRIMINATOR_SIZE = 8

PubkeyLayout = U8[32]


def sighash(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


def account_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode()).digest()[:8]


# ===== ACCOUNT LAYOUTS =====

GlobalConfigLayout = CStruct(
    "admin" / PubkeyLayout,
    "platform_wallet" / PubkeyLayout,
    "charity_wallet" / PubkeyLayout,
    "platform_fee_bps" / U16,
    "max_host_fee_bps" / U16,
    "max_prize_pool_bps" / U16,
    "min_charity_bps" / U16,
    "emergency_pause" / Bool,
    "bump" / U8,
)

TokenRegistryLayout = CStruct(
    "admin" / PubkeyLayout,
    "approved_tokens" / Vec(PubkeyLayout),
    "bump" / U8,
)

PrizeAssetLayout = CStruct(
    "mint" / PubkeyLayout,
    "amount" / U64,
    "deposited" / Bool,
)

# prize_mode and status are fieldless enums, which Borsh stores as a u8 tag
RoomLayout = CStruct(
    "room_id" / String,
    "host" / PubkeyLayout,
    "charity_wallet" / PubkeyLayout,
    "fee_token_mint" / PubkeyLayout,
    "entry_fee" / U64,
    "host_fee_bps" / U16,
    "prize_pool_bps" / U16,
    "charity_bps" / U16,
    "prize_mode" / U8,
    "prize_distribution" / Vec(U16),
    "status" / U8,
    "player_count" / U32,
    "max_players" / U32,
    "total_collected" / U64,
    "total_entry_fees" / U64,
    "total_extras_fees" / U64,
    "ended" / Bool,
    "creation_slot" / U64,
    "expiration_slot" / U64,
    "charity_memo" / String,
    "winners" / Option(PubkeyLayout)[3],
    "prize_assets" / Option(PrizeAssetLayout)[3],
    "bump" / U8,
)

PlayerEntryLayout = CStruct(
    "player" / PubkeyLayout,
    "room" / PubkeyLayout,
    "entry_paid" / U64,
    "extras_paid" / U64,
    "total_paid" / U64,
    "join_slot" / U64,
    "bump" / U8,
)

GLOBAL_CONFIG_DISCRIMINATOR = account_discriminator("GlobalConfig")
TOKEN_REGISTRY_DISCRIMINATOR = account_discriminator("TokenRegistry")
ROOM_DISCRIMINATOR = account_discriminator("Room")
PLAYER_ENTRY_DISCRIMINATOR = account_discriminator("PlayerEntry")

# PlayerEntry.room sits after the discriminator and the player key
PLAYER_ENTRY_ROOM_OFFSET = DISCRIMINATOR_SIZE + 32
# Room.room_id is the first field: u32 length prefix then the bytes
ROOM_ID_OFFSET = DISCRIMINATOR_SIZE


# ===== INSTRUCTION LAYOUTS =====

InitializeArgs = CStruct(
    "platform_wallet" / PubkeyLayout,
    "charity_wallet" / PubkeyLayout,
)

UpdateGlobalConfigArgs = CStruct(
    "platform_wallet" / Option(PubkeyLayout),
    "charity_wallet" / Option(PubkeyLayout),
    "platform_fee_bps" / Option(U16),
    "max_host_fee_bps" / Option(U16),
    "max_prize_pool_bps" / Option(U16),
    "min_charity_bps" / Option(U16),
)

SetEmergencyPauseArgs = CStruct("paused" / Bool)

TokenMintArgs = CStruct("token_mint" / PubkeyLayout)

InitPoolRoomArgs = CStruct(
    "room_id" / String,
    "charity_wallet" / PubkeyLayout,
    "entry_fee" / U64,
    "max_players" / U32,
    "host_fee_bps" / U16,
    "prize_pool_bps" / U16,
    "first_place_pct" / U16,
    "second_place_pct" / Option(U16),
    "third_place_pct" / Option(U16),
    "charity_memo" / String,
    "expiration_slots" / Option(U64),
)

JoinRoomArgs = CStruct(
    "room_id" / String,
    "extras_amount" / U64,
)

EndRoomArgs = CStruct(
    "room_id" / String,
    "winners" / Vec(PubkeyLayout),
)

DeclareWinnersArgs = CStruct(
    "room_id" / String,
    "winners" / Vec(PubkeyLayout),
)

RoomIdArgs = CStruct("room_id" / String)


def encode_pubkey(pubkey: Optional[Pubkey]):
    if pubkey is None:
        return None
    return list(bytes(pubkey))


def _to_pubkey(raw) -> Pubkey:
    return Pubkey.from_bytes(bytes(raw))


def _body(data: bytes, discriminator: bytes, name: str) -> bytes:
    data = bytes(data)
    if len(data) < DISCRIMINATOR_SIZE or data[:DISCRIMINATOR_SIZE] != discriminator:
        raise ValueError(f"Account data is not a {name} account")
    return data[DISCRIMINATOR_SIZE:]


# ===== DECODERS =====

def decode_global_config(data: bytes, address: Optional[Pubkey] = None, slot: Optional[int] = None) -> GlobalConfig:
    parsed = GlobalConfigLayout.parse(_body(data, GLOBAL_CONFIG_DISCRIMINATOR, "GlobalConfig"))
    return GlobalConfig(
        admin=_to_pubkey(parsed.admin),
        platform_wallet=_to_pubkey(parsed.platform_wallet),
        charity_wallet=_to_pubkey(parsed.charity_wallet),
        platform_fee_bps=parsed.platform_fee_bps,
        max_host_fee_bps=parsed.max_host_fee_bps,
        max_prize_pool_bps=parsed.max_prize_pool_bps,
        min_charity_bps=parsed.min_charity_bps,
        emergency_pause=parsed.emergency_pause,
        bump=parsed.bump,
        address=address,
        slot=slot,
    )


def decode_token_registry(data: bytes, address: Optional[Pubkey] = None, version: Optional[str] = None) -> TokenRegistry:
    parsed = TokenRegistryLayout.parse(_body(data, TOKEN_REGISTRY_DISCRIMINATOR, "TokenRegistry"))
    return TokenRegistry(
        admin=_to_pubkey(parsed.admin),
        approved_tokens=[_to_pubkey(mint) for mint in parsed.approved_tokens],
        bump=parsed.bump,
        address=address,
        version=version,
    )


def decode_room(data: bytes, address: Optional[Pubkey] = None) -> Room:
    parsed = RoomLayout.parse(_body(data, ROOM_DISCRIMINATOR, "Room"))
    return Room(
        room_id=parsed.room_id,
        host=_to_pubkey(parsed.host),
        charity_wallet=_to_pubkey(parsed.charity_wallet),
        fee_token_mint=_to_pubkey(parsed.fee_token_mint),
        entry_fee=parsed.entry_fee,
        host_fee_bps=parsed.host_fee_bps,
        prize_pool_bps=parsed.prize_pool_bps,
        charity_bps=parsed.charity_bps,
        prize_mode=PrizeMode(parsed.prize_mode),
        prize_distribution=list(parsed.prize_distribution),
        status=RoomStatus(parsed.status),
        player_count=parsed.player_count,
        max_players=parsed.max_players,
        total_collected=parsed.total_collected,
        total_entry_fees=parsed.total_entry_fees,
        total_extras_fees=parsed.total_extras_fees,
        ended=parsed.ended,
        creation_slot=parsed.creation_slot,
        expiration_slot=parsed.expiration_slot,
        charity_memo=parsed.charity_memo,
        winners=[_to_pubkey(w) if w is not None else None for w in parsed.winners],
        prize_assets=[
            PrizeAsset(_to_pubkey(a.mint), a.amount, a.deposited) if a is not None else None
            for a in parsed.prize_assets
        ],
        bump=parsed.bump,
        address=address,
    )


def decode_player_entry(data: bytes, address: Optional[Pubkey] = None) -> PlayerEntry:
    parsed = PlayerEntryLayout.parse(_body(data, PLAYER_ENTRY_DISCRIMINATOR, "PlayerEntry"))
    return PlayerEntry(
        player=_to_pubkey(parsed.player),
        room=_to_pubkey(parsed.room),
        entry_paid=parsed.entry_paid,
        extras_paid=parsed.extras_paid,
        total_paid=parsed.total_paid,
        join_slot=parsed.join_slot,
        bump=parsed.bump,
        address=address,
    )


# ===== ENCODERS =====
# Used to build instruction data and, in tests, to fabricate account data.

def encode_global_config(config: GlobalConfig) -> bytes:
    return GLOBAL_CONFIG_DISCRIMINATOR + GlobalConfigLayout.build({
        "admin": encode_pubkey(config.admin),
        "platform_wallet": encode_pubkey(config.platform_wallet),
        "charity_wallet": encode_pubkey(config.charity_wallet),
        "platform_fee_bps": config.platform_fee_bps,
        "max_host_fee_bps": config.max_host_fee_bps,
        "max_prize_pool_bps": config.max_prize_pool_bps,
        "min_charity_bps": config.min_charity_bps,
        "emergency_pause": config.emergency_pause,
        "bump": config.bump,
    })


def encode_token_registry(registry: TokenRegistry) -> bytes:
    return TOKEN_REGISTRY_DISCRIMINATOR + TokenRegistryLayout.build({
        "admin": encode_pubkey(registry.admin),
        "approved_tokens": [encode_pubkey(mint) for mint in registry.approved_tokens],
        "bump": registry.bump,
    })


def encode_room(room: Room) -> bytes:
    return ROOM_DISCRIMINATOR + RoomLayout.build({
        "room_id": room.room_id,
        "host": encode_pubkey(room.host),
        "charity_wallet": encode_pubkey(room.charity_wallet),
        "fee_token_mint": encode_pubkey(room.fee_token_mint),
        "entry_fee": room.entry_fee,
        "host_fee_bps": room.host_fee_bps,
        "prize_pool_bps": room.prize_pool_bps,
        "charity_bps": room.charity_bps,
        "prize_mode": room.prize_mode.value,
        "prize_distribution": list(room.prize_distribution),
        "status": room.status.value,
        "player_count": room.player_count,
        "max_players": room.max_players,
        "total_collected": room.total_collected,
        "total_entry_fees": room.total_entry_fees,
        "total_extras_fees": room.total_extras_fees,
        "ended": room.ended,
        "creation_slot": room.creation_slot,
        "expiration_slot": room.expiration_slot,
        "charity_memo": room.charity_memo,
        "winners": [encode_pubkey(w) for w in room.winners],
        "prize_assets": [
            {"mint": encode_pubkey(a.mint), "amount": a.amount, "deposited": a.deposited} if a else None
            for a in room.prize_assets
        ],
        "bump": room.bump,
    })


def encode_player_entry(entry: PlayerEntry) -> bytes:
    return PLAYER_ENTRY_DISCRIMINATOR + PlayerEntryLayout.build({
        "player": encode_pubkey(entry.player),
        "room": encode_pubkey(entry.room),
        "entry_paid": entry.entry_paid,
        "extras_paid": entry.extras_paid,
        "total_paid": entry.total_paid,
        "join_slot": entry.join_slot,
        "bump": entry.bump,
    })


def encode_instruction(name: str, layout: Optional[CStruct] = None, args: Optional[dict] = None) -> bytes:
    """Anchor instruction data: 8-byte sighash followed by Borsh args."""
    data = sighash(name)
    if layout is not None:
        data += layout.build(args or {})
    return data


def encode_room_id_filter(room_id: str) -> bytes:
    """Bytes at ROOM_ID_OFFSET for a Room holding ``room_id`` (length-prefixed)."""
    raw = room_id.encode("utf-8")
    return len(raw).to_bytes(4, "little") + raw


def prize_percentages(distribution: List[int]) -> dict:
    """Map a 1..3 element prize distribution to init_pool_room args."""
    return {
        "first_place_pct": distribution[0],
        "second_place_pct": distribution[1] if len(distribution) > 1 else None,
        "third_place_pct": distribution[2] if len(distribution) > 2 else None,
    }

import hashlib

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from chain_config import PROGRAM_ID, REGISTRY_SEEDS
from room_program.errors import (
    AlreadyJoined,
    ErrorCategory,
    GameAlreadyStarted,
    InsufficientBalance,
    NotAdmin,
    NotHost,
    RoomFull,
    SimulationFailed,
    SubmissionAmbiguous,
    WinnersAlreadyDeclared,
    decode_program_error,
    extract_error_code,
    program_error_name,
)
from room_program.layouts import (
    PLAYER_ENTRY_ROOM_OFFSET,
    ROOM_ID_OFFSET,
    decode_player_entry,
    decode_room,
    encode_player_entry,
    encode_room,
    encode_room_id_filter,
    sighash,
)
from room_program.models import PlayerEntry, PrizeAsset, PrizeMode, Room, RoomStatus
from room_program.pda import (
    AccountKind,
    derive,
    derive_player_entry_pda,
    derive_room_pda,
    derive_token_registry_pda,
    registry_candidates,
    room_id_seed,
)


# ===== PDA =====

def test_room_pda_matches_find_program_address():
    host = Keypair().pubkey()
    expected, bump = Pubkey.find_program_address([b"room", bytes(host), b"quiz-night"], PROGRAM_ID)

    derived = derive_room_pda(host, "quiz-night")

    assert derived.address == expected
    assert derived.bump == bump
    assert derive(AccountKind.ROOM, host, "quiz-night") == derived


def test_derivation_is_deterministic_and_unpackable():
    room, player = Keypair().pubkey(), Keypair().pubkey()

    address, bump = derive_player_entry_pda(room, player)

    assert derive_player_entry_pda(room, player).address == address
    assert derive_player_entry_pda(player, room).address != address


def test_registry_versions_derive_distinct_addresses():
    candidates = registry_candidates()

    assert set(candidates) == set(REGISTRY_SEEDS)
    assert len({c.address for c in candidates.values()}) == len(REGISTRY_SEEDS)
    assert candidates["v4"] == derive_token_registry_pda("v4")


def test_unknown_registry_version():
    with pytest.raises(ValueError):
        derive_token_registry_pda("v3")


@pytest.mark.parametrize("room_id", ["", "r" * 33, "é" * 17])
def test_room_id_seed_limits(room_id):
    with pytest.raises(ValueError):
        room_id_seed(room_id)


def test_room_id_seed_counts_bytes():
    assert room_id_seed("é" * 16) == ("é" * 16).encode("utf-8")


# ===== LAYOUTS =====

def _room(**overrides):
    fields = dict(
        room_id="quiz-night",
        host=Keypair().pubkey(),
        charity_wallet=Keypair().pubkey(),
        fee_token_mint=Keypair().pubkey(),
        entry_fee=1_000_000,
        host_fee_bps=500,
        prize_pool_bps=2500,
        charity_bps=5000,
        prize_mode=PrizeMode.POOL_SPLIT,
        prize_distribution=[60, 30, 10],
        status=RoomStatus.ACTIVE,
        player_count=3,
        max_players=50,
        total_collected=3_250_000,
        total_entry_fees=3_000_000,
        total_extras_fees=250_000,
        ended=False,
        creation_slot=100,
        expiration_slot=0,
        charity_memo="school roof",
        winners=[None, None, None],
        prize_assets=[None, None, None],
        bump=250,
    )
    fields.update(overrides)
    return Room(**fields)


def test_room_decodes_enums_and_options():
    winner = Keypair().pubkey()
    asset = PrizeAsset(mint=Keypair().pubkey(), amount=5, deposited=True)
    room = _room(winners=[winner, None, None], prize_assets=[asset, None, None], status=RoomStatus.ENDED)

    decoded = decode_room(encode_room(room))

    assert decoded.status is RoomStatus.ENDED
    assert decoded.prize_mode is PrizeMode.POOL_SPLIT
    assert decoded.winners == [winner, None, None]
    assert decoded.winners_declared
    assert decoded.prize_assets[0] == asset
    assert decoded.total_extras_fees == 250_000


def test_room_id_filter_matches_account_bytes():
    data = encode_room(_room(room_id="abc"))
    expected = encode_room_id_filter("abc")

    assert data[ROOM_ID_OFFSET:ROOM_ID_OFFSET + len(expected)] == expected


def test_player_entry_room_offset():
    room = Keypair().pubkey()
    entry = PlayerEntry(Keypair().pubkey(), room, 1, 0, 1, 10, 255)

    data = encode_player_entry(entry)

    assert data[PLAYER_ENTRY_ROOM_OFFSET:PLAYER_ENTRY_ROOM_OFFSET + 32] == bytes(room)
    assert decode_player_entry(data).room == room


def test_decoder_rejects_other_account_type():
    entry = PlayerEntry(Keypair().pubkey(), Keypair().pubkey(), 1, 0, 1, 10, 255)

    with pytest.raises(ValueError):
        decode_room(encode_player_entry(entry))


def test_sighash_is_anchor_global_namespace():
    assert sighash("join_room") == hashlib.sha256(b"global:join_room").digest()[:8]


# ===== ERROR DECODING =====

def test_error_names_cover_program_range():
    assert program_error_name(6000) == "Unauthorized"
    assert program_error_name(6025) == "MaxPlayersReached"
    assert program_error_name(6037) == "InvalidVaultAuthority"
    assert program_error_name(6038) is None


def test_extract_code_from_hex_custom_error():
    assert extract_error_code("custom program error: 0x1791", []) == 6033


def test_decode_from_anchor_logs():
    error = decode_program_error(None, ["Program log: Error Code: MaxPlayersReached. Error Number: 6025."])

    assert isinstance(error, RoomFull)
    assert error.code == 6025
    assert error.category is ErrorCategory.CANNOT_PROCEED


def test_decode_already_in_use_depends_on_operation():
    logs = ["Allocate: account Address { address: abc } already in use"]

    assert isinstance(decode_program_error("Custom(0)", logs, operation="join_room"), AlreadyJoined)
    assert isinstance(decode_program_error("Custom(0)", logs, operation="end_room"), SimulationFailed)


def test_decode_unauthorized_outside_end_room_is_not_admin():
    assert isinstance(decode_program_error("Custom(6000)", [], operation="update_global_config"), NotAdmin)


@pytest.mark.parametrize("operation", ["end_room", "declare_winners", "close_joining", "cleanup_room"])
def test_decode_unauthorized_on_host_operations_is_not_host(operation):
    assert isinstance(decode_program_error("Custom(6000)", [], operation=operation), NotHost)


def test_decode_winners_already_declared():
    error = decode_program_error(None, ["Program log: Error Code: WinnersAlreadyDeclared. Error Number: 6029."])

    assert isinstance(error, WinnersAlreadyDeclared)
    assert isinstance(error, GameAlreadyStarted)


def test_decode_token_program_insufficient_funds():
    error = decode_program_error(
        "InstructionError(1, Custom(1))",
        ["Program log: Error: insufficient funds"],
        operation="join_room",
    )
    assert isinstance(error, InsufficientBalance)
    assert error.category is ErrorCategory.FIX_REQUIRED


def test_unknown_error_keeps_logs():
    error = decode_program_error("something odd", ["line 1", "line 2"])

    assert isinstance(error, SimulationFailed)
    assert error.logs == ["line 1", "line 2"]
    assert error.to_dict()["error"] == "SimulationFailed"


def test_ambiguous_submission_is_retryable():
    assert SubmissionAmbiguous().retryable is True
    assert SubmissionAmbiguous().category is ErrorCategory.TRY_AGAIN

import asyncio

import pytest
from solders.keypair import Keypair

from chain_config import TOKEN_PROGRAM_ID
from room_program.errors import (
    AlreadyApproved,
    InvalidParameters,
    NoFundsToRecover,
    NoPlayersFound,
    NotAdmin,
    RegistryFull,
    RegistryVersionMismatch,
    RoomAlreadyEnded,
    TokenNotApproved,
)
from room_program.layouts import RoomIdArgs, TokenMintArgs, UpdateGlobalConfigArgs, encode_global_config, sighash
from room_program.models import GlobalConfigPatch, TokenRegistry
from room_program.pda import derive_global_config_pda, derive_token_registry_pda
from security.audit import AuditEventType, audit_logger

from conftest import rpc_error


@pytest.fixture
def admin(rpc, ledger, admin_wallet, make_client):
    ledger.put_config(admin_wallet.pubkey)
    return make_client(admin_wallet, admin=True)


def last_instruction_data(rpc) -> bytes:
    return bytes(rpc.sent[-1].message.instructions[-1].data)


# ===== GLOBAL CONFIG =====

def test_patch_exceeding_bounds_is_rejected_before_submission(rpc, admin):
    patch = GlobalConfigPatch(platform_fee_bps=2000, max_host_fee_bps=2000, max_prize_pool_bps=4000)

    with pytest.raises(InvalidParameters):
        asyncio.run(admin.update_global_config(patch))

    assert rpc.simulations == []
    assert rpc.sent == []


def test_patch_over_10000_bps_is_rejected(rpc, admin):
    with pytest.raises(InvalidParameters):
        asyncio.run(admin.update_global_config(GlobalConfigPatch(min_charity_bps=10_001)))
    assert rpc.simulations == []


def test_empty_patch_is_rejected(rpc, admin):
    with pytest.raises(InvalidParameters):
        asyncio.run(admin.update_global_config(GlobalConfigPatch()))


def test_patch_sends_only_changed_fields(rpc, ledger, admin_wallet, admin):
    patch = GlobalConfigPatch(platform_fee_bps=1500)

    def apply_patch(tx):
        ledger.put_config(admin_wallet.pubkey, platform_fee_bps=1500)

    rpc.send_hooks.append(apply_patch)
    result = asyncio.run(admin.update_global_config(patch))

    data = last_instruction_data(rpc)
    assert data[:8] == sighash("update_global_config")
    args = UpdateGlobalConfigArgs.parse(data[8:])
    assert args.platform_fee_bps == 1500
    assert args.platform_wallet is None
    assert args.min_charity_bps is None
    assert result.address == derive_global_config_pda().address
    assert audit_logger.get_recent_events(event_type=AuditEventType.CONFIG_UPDATED)


def test_patch_is_validated_against_the_given_snapshot(rpc, admin):
    snapshot = asyncio.run(admin.fetch_global_config())
    assert snapshot.slot == rpc.slot

    # the snapshot already allocates 6000 bps; 600 more host bps breaks the 4000 charity floor
    with pytest.raises(InvalidParameters):
        asyncio.run(admin.update_global_config(GlobalConfigPatch(max_host_fee_bps=600), config=snapshot))


def test_non_admin_is_refused_and_audited(rpc, ledger, admin_wallet, player_wallet, make_client):
    ledger.put_config(admin_wallet.pubkey)
    intruder = make_client(player_wallet, admin=True)

    with pytest.raises(NotAdmin):
        asyncio.run(intruder.set_emergency_pause(True))

    assert rpc.simulations == []
    events = audit_logger.get_recent_events(event_type=AuditEventType.UNAUTHORIZED_ATTEMPT)
    assert events[0]["actor"] == str(player_wallet.pubkey)


def test_initialize_global_config_is_idempotent(rpc, admin, ledger):
    result = asyncio.run(admin.initialize_global_config(ledger.platform_wallet, ledger.charity_wallet))

    assert result.already_done is True
    assert result.signature is None
    assert rpc.sent == []


def test_initialize_global_config_sends_initialize(rpc, ledger, admin_wallet, make_client):
    admin = make_client(admin_wallet, admin=True)

    result = asyncio.run(admin.initialize_global_config(ledger.platform_wallet, ledger.charity_wallet))

    assert result.already_done is False
    assert last_instruction_data(rpc)[:8] == sighash("initialize")


def test_emergency_pause_toggle(rpc, ledger, admin_wallet, admin):
    def paused(tx):
        ledger.put_config(admin_wallet.pubkey, emergency_pause=True)

    rpc.send_hooks.append(paused)
    asyncio.run(admin.set_emergency_pause(True))
    assert asyncio.run(admin.fetch_global_config()).emergency_pause is True

    # already paused: nothing to send
    result = asyncio.run(admin.set_emergency_pause(True))
    assert result.already_done is True
    assert len(rpc.sent) == 1


# ===== TOKEN REGISTRY =====

def test_registry_version_report(rpc, ledger, admin_wallet, admin):
    ledger.put_registry(admin_wallet.pubkey, version="v2")

    report = asyncio.run(admin.check_registry_version())

    assert report.canonical_version == "v4"
    assert report.canonical_exists is False
    assert report.found_versions == ["v2"]
    assert report.mismatch is True
    assert audit_logger.get_recent_events(event_type=AuditEventType.REGISTRY_VERSION_MISMATCH)


def test_initialize_registry_refuses_when_only_legacy_exists(rpc, ledger, admin_wallet, admin):
    ledger.put_registry(admin_wallet.pubkey, version="v2")

    with pytest.raises(RegistryVersionMismatch):
        asyncio.run(admin.initialize_token_registry())
    assert rpc.sent == []


def test_initialize_registry_is_idempotent(rpc, ledger, admin_wallet, admin):
    ledger.put_registry(admin_wallet.pubkey)

    result = asyncio.run(admin.initialize_token_registry())

    assert result.already_done is True
    assert result.address == derive_token_registry_pda("v4").address


def test_add_token_already_approved(rpc, ledger, admin_wallet, admin):
    ledger.put_registry(admin_wallet.pubkey)

    with pytest.raises(AlreadyApproved):
        asyncio.run(admin.add_approved_token(ledger.mint))


def test_add_token_to_full_registry(rpc, ledger, admin_wallet, admin):
    ledger.put_registry(admin_wallet.pubkey, mints=[Keypair().pubkey() for _ in range(50)])

    with pytest.raises(RegistryFull):
        asyncio.run(admin.add_approved_token(Keypair().pubkey()))
    assert rpc.sent == []


def test_remove_approved_token(rpc, ledger, admin_wallet, admin):
    kept = Keypair().pubkey()
    ledger.put_registry(admin_wallet.pubkey, mints=[ledger.mint, kept])
    rpc.send_hooks.append(lambda tx: ledger.put_registry(admin_wallet.pubkey, mints=[kept]))

    result = asyncio.run(admin.remove_approved_token(ledger.mint))

    assert result.address == derive_token_registry_pda("v4").address
    assert not result.already_done
    data = last_instruction_data(rpc)
    assert data[:8] == sighash("remove_approved_token")
    assert bytes(TokenMintArgs.parse(data[8:]).token_mint) == bytes(ledger.mint)
    registry = asyncio.run(admin.fetch_token_registry())
    assert registry.approved_tokens == [kept]
    events = audit_logger.get_recent_events(event_type=AuditEventType.TOKEN_REMOVED)
    assert events and events[0]["severity"] == "warning"


def test_remove_token_that_is_not_approved(rpc, ledger, admin_wallet, admin):
    ledger.put_registry(admin_wallet.pubkey)

    with pytest.raises(TokenNotApproved):
        asyncio.run(admin.remove_approved_token(Keypair().pubkey()))
    assert rpc.simulations == []
    assert rpc.sent == []


def test_remove_token_already_processed(rpc, ledger, admin_wallet, admin):
    ledger.put_registry(admin_wallet.pubkey)

    def landed_then_duplicate(tx):
        ledger.put_registry(admin_wallet.pubkey, mints=[])
        raise rpc_error("Transaction simulation failed: This transaction has already been processed")

    rpc.send_hooks.append(landed_then_duplicate)

    result = asyncio.run(admin.remove_approved_token(ledger.mint))

    assert result.already_done
    assert len(rpc.sent) == 1


def test_migrate_copies_legacy_tokens(rpc, ledger, admin_wallet, admin):
    legacy_mints = [Keypair().pubkey(), Keypair().pubkey()]
    ledger.put_registry(admin_wallet.pubkey, mints=legacy_mints, version="v2")
    canonical = []

    def create_canonical(tx):
        ledger.put_registry(admin_wallet.pubkey, mints=[])

    def approve(mint):
        def hook(tx):
            canonical.append(mint)
            ledger.put_registry(admin_wallet.pubkey, mints=list(canonical))
        return hook

    rpc.send_hooks.extend([create_canonical, approve(legacy_mints[0]), approve(legacy_mints[1])])

    results = asyncio.run(admin.migrate_token_registry())

    assert len(results) == 3
    registry = asyncio.run(admin.fetch_token_registry())
    assert registry.approved_tokens == legacy_mints
    assert [bytes(tx.message.instructions[-1].data)[:8] for tx in rpc.sent] == [
        sighash("initialize_token_registry"),
        sighash("add_approved_token"),
        sighash("add_approved_token"),
    ]


# ===== RECOVERY =====

def test_recover_room_without_funds(rpc, ledger, host_wallet, admin):
    room = ledger.put_room(host_wallet.pubkey, total_collected=0)

    with pytest.raises(NoFundsToRecover):
        asyncio.run(admin.recover_room(room.room_id, host_wallet.pubkey))

    assert rpc.simulations == []
    assert rpc.sent == []


@pytest.mark.parametrize("room_id", ["", "x" * 33])
def test_recover_room_rejects_invalid_room_id(rpc, ledger, host_wallet, admin, room_id):
    with pytest.raises(InvalidParameters):
        asyncio.run(admin.recover_room(room_id, host_wallet.pubkey))

    assert rpc.simulations == []


def test_recover_ended_room(rpc, ledger, host_wallet, admin):
    room = ledger.put_room(host_wallet.pubkey, total_collected=5_000_000, ended=True)

    with pytest.raises(RoomAlreadyEnded):
        asyncio.run(admin.recover_room(room.room_id, host_wallet.pubkey))


def test_recover_room_without_entries(rpc, ledger, host_wallet, admin):
    room = ledger.put_room(host_wallet.pubkey, total_collected=5_000_000)

    with pytest.raises(NoPlayersFound):
        asyncio.run(admin.recover_room(room.room_id, host_wallet.pubkey))


def test_recover_room_refunds_players(rpc, ledger, host_wallet, admin_wallet, admin):
    room = ledger.put_room(host_wallet.pubkey, total_collected=3_000_000, player_count=3)
    players = [Keypair().pubkey() for _ in range(3)]
    for player in players:
        ledger.put_player_entry(room, player)
        ledger.put_token_account(player, 0)
    ledger.put_token_account(ledger.platform_wallet, 0)
    # an entry in another room must not be picked up
    other = ledger.put_room(Keypair().pubkey(), room_id="elsewhere", total_collected=1_000_000)
    ledger.put_player_entry(other, Keypair().pubkey())

    result = asyncio.run(admin.recover_room(room.room_id, host_wallet.pubkey))

    assert result.players_refunded == 3
    assert result.refund_total == 2_700_000
    assert result.platform_fee == 300_000

    tx = rpc.sent[0]
    # every token account already exists, so recover_room is the only instruction
    assert len(tx.message.instructions) == 1
    instruction = tx.message.instructions[0]
    data = bytes(instruction.data)
    assert data[:8] == sighash("recover_room")
    assert RoomIdArgs.parse(data[8:]).room_id == room.room_id
    # 6 fixed accounts then (player, token account) pairs
    assert len(instruction.accounts) == 6 + 2 * 3
    keys = tx.message.account_keys
    assert keys[instruction.accounts[5]] == TOKEN_PROGRAM_ID
    assert {keys[i] for i in instruction.accounts[6::2]} == set(players)
    assert audit_logger.get_recent_events(event_type=AuditEventType.ROOM_RECOVERED)


def test_recover_room_creates_missing_token_accounts(rpc, ledger, host_wallet, admin):
    room = ledger.put_room(host_wallet.pubkey, total_collected=1_000_000, player_count=1)
    ledger.put_player_entry(room, Keypair().pubkey())

    asyncio.run(admin.recover_room(room.room_id, host_wallet.pubkey))

    # platform ATA + player ATA creates ahead of recover_room
    assert len(rpc.sent[0].message.instructions) == 3

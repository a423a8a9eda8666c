"""
Instruction builders for the room program.

Account order follows the program's Accounts structs; remaining accounts are
appended after the fixed ones.
"""
from typing import List, Optional, Sequence, Tuple

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from chain_config import PROGRAM_ID, RENT_SYSVAR_ID, SYSTEM_PROGRAM_ID, TOKEN_PROGRAM_ID
from . import layouts
from .models import CreateRoomParams, GlobalConfigPatch


def _ro(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=False, is_writable=False)


def _w(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=False, is_writable=True)


def _signer(pubkey: Pubkey, writable: bool = True) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=True, is_writable=writable)


def _ix(name: str, accounts: List[AccountMeta], layout=None, args=None, program_id: Optional[Pubkey] = None) -> Instruction:
    return Instruction(
        program_id=program_id or PROGRAM_ID,
        data=layouts.encode_instruction(name, layout, args),
        accounts=accounts,
    )


# ===== ADMIN =====

def initialize_ix(global_config: Pubkey, admin: Pubkey, platform_wallet: Pubkey, charity_wallet: Pubkey,
                  program_id: Optional[Pubkey] = None) -> Instruction:
    return _ix(
        "initialize",
        [_w(global_config), _signer(admin), _ro(SYSTEM_PROGRAM_ID)],
        layouts.InitializeArgs,
        {
            "platform_wallet": layouts.encode_pubkey(platform_wallet),
            "charity_wallet": layouts.encode_pubkey(charity_wallet),
        },
        program_id,
    )


def update_global_config_ix(global_config: Pubkey, admin: Pubkey, patch: GlobalConfigPatch,
                            program_id: Optional[Pubkey] = None) -> Instruction:
    return _ix(
        "update_global_config",
        [_w(global_config), _signer(admin, writable=False)],
        layouts.UpdateGlobalConfigArgs,
        {
            "platform_wallet": layouts.encode_pubkey(patch.platform_wallet),
            "charity_wallet": layouts.encode_pubkey(patch.charity_wallet),
            "platform_fee_bps": patch.platform_fee_bps,
            "max_host_fee_bps": patch.max_host_fee_bps,
            "max_prize_pool_bps": patch.max_prize_pool_bps,
            "min_charity_bps": patch.min_charity_bps,
        },
        program_id,
    )


def set_emergency_pause_ix(global_config: Pubkey, admin: Pubkey, paused: bool,
                           program_id: Optional[Pubkey] = None) -> Instruction:
    return _ix(
        "set_emergency_pause",
        [_w(global_config), _signer(admin, writable=False)],
        layouts.SetEmergencyPauseArgs,
        {"paused": paused},
        program_id,
    )


def initialize_token_registry_ix(token_registry: Pubkey, admin: Pubkey,
                                 program_id: Optional[Pubkey] = None) -> Instruction:
    return _ix(
        "initialize_token_registry",
        [_w(token_registry), _signer(admin), _ro(SYSTEM_PROGRAM_ID)],
        program_id=program_id,
    )


def add_approved_token_ix(token_registry: Pubkey, admin: Pubkey, mint: Pubkey,
                          program_id: Optional[Pubkey] = None) -> Instruction:
    return _ix(
        "add_approved_token",
        [_w(token_registry), _signer(admin)],
        layouts.TokenMintArgs,
        {"token_mint": layouts.encode_pubkey(mint)},
        program_id,
    )


def remove_approved_token_ix(token_registry: Pubkey, admin: Pubkey, mint: Pubkey,
                             program_id: Optional[Pubkey] = None) -> Instruction:
    return _ix(
        "remove_approved_token",
        [_w(token_registry), _signer(admin)],
        layouts.TokenMintArgs,
        {"token_mint": layouts.encode_pubkey(mint)},
        program_id,
    )


# ===== ROOMS =====

def init_pool_room_ix(
    room: Pubkey,
    room_vault: Pubkey,
    token_registry: Pubkey,
    global_config: Pubkey,
    host: Pubkey,
    charity_wallet: Pubkey,
    params: CreateRoomParams,
    program_id: Optional[Pubkey] = None,
) -> Instruction:
    args = {
        "room_id": params.room_id,
        "charity_wallet": layouts.encode_pubkey(charity_wallet),
        "entry_fee": params.entry_fee,
        "max_players": params.max_players,
        "host_fee_bps": params.host_fee_bps,
        "prize_pool_bps": params.prize_pool_bps,
        "charity_memo": params.charity_memo,
        "expiration_slots": params.expiration_slots,
    }
    args.update(layouts.prize_percentages(list(params.prize_distribution)))
    return _ix(
        "init_pool_room",
        [
            _w(room),
            _w(room_vault),
            _ro(params.fee_mint),
            _ro(token_registry),
            _ro(global_config),
            _signer(host),
            _ro(SYSTEM_PROGRAM_ID),
            _ro(TOKEN_PROGRAM_ID),
            _ro(RENT_SYSVAR_ID),
        ],
        layouts.InitPoolRoomArgs,
        args,
        program_id,
    )


def join_room_ix(
    room: Pubkey,
    player_entry: Pubkey,
    room_vault: Pubkey,
    player_token_account: Pubkey,
    global_config: Pubkey,
    player: Pubkey,
    room_id: str,
    extras_amount: int,
    program_id: Optional[Pubkey] = None,
) -> Instruction:
    return _ix(
        "join_room",
        [
            _w(room),
            _w(player_entry),
            _w(room_vault),
            _w(player_token_account),
            _ro(global_config),
            _signer(player),
            _ro(TOKEN_PROGRAM_ID),
            _ro(SYSTEM_PROGRAM_ID),
        ],
        layouts.JoinRoomArgs,
        {"room_id": room_id, "extras_amount": extras_amount},
        program_id,
    )


def end_room_ix(
    room: Pubkey,
    room_vault: Pubkey,
    global_config: Pubkey,
    platform_token_account: Pubkey,
    charity_token_account: Pubkey,
    host_token_account: Pubkey,
    host: Pubkey,
    room_id: str,
    winners: Sequence[Pubkey],
    winner_token_accounts: Sequence[Pubkey],
    program_id: Optional[Pubkey] = None,
) -> Instruction:
    accounts = [
        _w(room),
        _w(room_vault),
        _ro(global_config),
        _w(platform_token_account),
        _w(charity_token_account),
        _w(host_token_account),
        _signer(host),
        _ro(TOKEN_PROGRAM_ID),
    ]
    accounts.extend(_w(ata) for ata in winner_token_accounts)
    return _ix(
        "end_room",
        accounts,
        layouts.EndRoomArgs,
        {"room_id": room_id, "winners": [layouts.encode_pubkey(w) for w in winners]},
        program_id,
    )


def close_joining_ix(room: Pubkey, host: Pubkey, room_id: str, program_id: Optional[Pubkey] = None) -> Instruction:
    return _ix("close_joining", [_w(room), _signer(host)], layouts.RoomIdArgs, {"room_id": room_id}, program_id)


def declare_winners_ix(
    room: Pubkey,
    host: Pubkey,
    room_id: str,
    winners: Sequence[Pubkey],
    player_entries: Sequence[Pubkey],
    program_id: Optional[Pubkey] = None,
) -> Instruction:
    """Winners' PlayerEntry accounts go in as read-only remaining accounts, in winner order."""
    accounts = [_w(room), _signer(host)]
    accounts.extend(_ro(entry) for entry in player_entries)
    return _ix(
        "declare_winners",
        accounts,
        layouts.DeclareWinnersArgs,
        {"room_id": room_id, "winners": [layouts.encode_pubkey(w) for w in winners]},
        program_id,
    )


def cleanup_room_ix(
    room: Pubkey,
    room_vault: Pubkey,
    global_config: Pubkey,
    caller: Pubkey,
    room_id: str,
    program_id: Optional[Pubkey] = None,
) -> Instruction:
    accounts = [
        _w(room),
        _w(room_vault),
        _ro(global_config),
        _signer(caller),
        _ro(TOKEN_PROGRAM_ID),
    ]
    return _ix("cleanup_room", accounts, layouts.RoomIdArgs, {"room_id": room_id}, program_id)


def recover_room_ix(
    room: Pubkey,
    room_vault: Pubkey,
    global_config: Pubkey,
    platform_token_account: Pubkey,
    admin: Pubkey,
    room_id: str,
    player_accounts: Sequence[Tuple[Pubkey, Pubkey]],
    program_id: Optional[Pubkey] = None,
) -> Instruction:
    """``player_accounts`` is a list of (player, player token account) pairs."""
    accounts = [
        _w(room),
        _w(room_vault),
        _ro(global_config),
        _w(platform_token_account),
        _signer(admin),
        _ro(TOKEN_PROGRAM_ID),
    ]
    for player, token_account in player_accounts:
        accounts.append(_ro(player))
        accounts.append(_w(token_account))
    return _ix("recover_room", accounts, layouts.RoomIdArgs, {"room_id": room_id}, program_id)

"""
Room program client: create, join, close, declare, end and clean up rooms.

Every mutating call runs the same sequence: local precondition checks, build,
simulate, sign, send. Ambiguous submissions are resolved by re-reading ledger
state, never by blindly resending.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

import base58
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.types import MemcmpOpts
from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.signature import Signature

from chain_config import MAX_WINNERS, OPERATION_ATTEMPTS, PROGRAM_ID, TOKEN_REGISTRY_VERSION
from security.audit import AuditEventType, AuditSeverity, audit_logger
from utils.formatting import truncate_address
from utils.validation import is_valid_charity_memo, is_valid_room_id, is_valid_token_amount
from . import instructions as ix
from .errors import (
    RPC_ERRORS,
    AlreadyJoined,
    GameAlreadyStarted,
    InvalidParameters,
    NotHost,
    NotInitialized,
    ProgramPaused,
    RoomAlreadyEnded,
    RoomAlreadyExists,
    RoomChainError,
    RoomFull,
    RoomNotEnded,
    RoomNotFound,
    RoomNotReady,
    RpcUnavailable,
    SubmissionAmbiguous,
    TokenNotApproved,
    VaultNotEmpty,
    WinnersAlreadyDeclared,
    decode_program_error,
)
from .fund_split import SplitPreview, split, validate_room_fees
from .layouts import (
    PLAYER_ENTRY_DISCRIMINATOR,
    PLAYER_ENTRY_ROOM_OFFSET,
    ROOM_DISCRIMINATOR,
    ROOM_ID_OFFSET,
    decode_global_config,
    decode_player_entry,
    decode_room,
    decode_token_registry,
    encode_room_id_filter,
)
from .models import (
    CleanupRoomResult,
    CloseJoiningResult,
    CreateRoomParams,
    CreateRoomResult,
    DeclareWinnersResult,
    EndRoomResult,
    GlobalConfig,
    JoinResult,
    JoinRoomParams,
    PlayerEntry,
    Room,
    RoomStatus,
    TokenRegistry,
)
from .pda import (
    derive_global_config_pda,
    derive_player_entry_pda,
    derive_room_pda,
    derive_room_vault_pda,
    derive_token_registry_pda,
)
from .submitter import TransactionSubmitter
from .token_accounts import parse_token_account, prepend_create_instructions, resolve_or_prepare_token_account
from .transactions import build_transaction, fetch_freshness_anchor

logger = logging.getLogger(__name__)

Recheck = Callable[[], Awaitable[bool]]


class OperationState(Enum):
    IDLE = "idle"
    SIMULATING = "simulating"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    DONE = "done"
    FAILED = "failed"


@dataclass
class OperationTracker:
    """Per-call state machine: idle -> simulating -> submitting -> confirming -> done | failed."""
    operation: str
    state: OperationState = OperationState.IDLE
    history: List[OperationState] = field(default_factory=lambda: [OperationState.IDLE])
    on_change: Optional[Callable[[str, OperationState], None]] = None

    def transition(self, state: OperationState):
        if state is self.state:
            return
        self.state = state
        self.history.append(state)
        logger.debug(f"[{self.operation.upper()}] -> {state.value}")
        if self.on_change is not None:
            self.on_change(self.operation, state)


@dataclass
class ExecutionReceipt:
    signature: Optional[Signature]
    already_done: bool = False
    compute_units: Optional[int] = None


def _pubkey(value) -> Pubkey:
    return value if isinstance(value, Pubkey) else Pubkey.from_string(value)


class RoomProgramClient:
    """Player and host operations against the room program."""

    def __init__(
        self,
        rpc,
        wallet,
        program_id: Optional[Pubkey] = None,
        submitter: Optional[TransactionSubmitter] = None,
        commitment: Commitment = Confirmed,
        operation_attempts: int = OPERATION_ATTEMPTS,
        registry_version: str = TOKEN_REGISTRY_VERSION,
        on_state_change: Optional[Callable[[str, OperationState], None]] = None,
    ):
        self.rpc = rpc
        self.wallet = wallet
        self.program_id = program_id or PROGRAM_ID
        self.commitment = commitment
        self.submitter = submitter or TransactionSubmitter(rpc, commitment=commitment)
        self.operation_attempts = operation_attempts
        self.registry_version = registry_version
        self.on_state_change = on_state_change
        self.last_operation: Optional[OperationTracker] = None

        self.global_config_address = derive_global_config_pda(self.program_id).address
        self.token_registry_address = derive_token_registry_pda(registry_version, self.program_id).address

    # ===== READS =====

    async def _get_account(self, address: Pubkey):
        try:
            resp = await self.rpc.get_account_info(address, commitment=self.commitment)
        except RPC_ERRORS as e:
            logger.error(f"[READ] Failed to read {address}: {e}")
            raise RpcUnavailable(f"Could not read account {address}: {e}") from e
        return resp

    async def _account_exists(self, address: Pubkey) -> bool:
        resp = await self._get_account(address)
        return resp.value is not None

    async def fetch_global_config(self) -> GlobalConfig:
        resp = await self._get_account(self.global_config_address)
        if resp.value is None:
            raise NotInitialized(f"GlobalConfig {self.global_config_address} is not initialized")
        slot = getattr(getattr(resp, "context", None), "slot", None)
        return decode_global_config(resp.value.data, self.global_config_address, slot)

    async def fetch_token_registry(self, version: Optional[str] = None) -> Optional[TokenRegistry]:
        version = version or self.registry_version
        address = derive_token_registry_pda(version, self.program_id).address
        resp = await self._get_account(address)
        if resp.value is None:
            return None
        return decode_token_registry(resp.value.data, address, version)

    async def fetch_room(self, room_address: Pubkey) -> Room:
        resp = await self._get_account(room_address)
        if resp.value is None:
            raise RoomNotFound(f"Room {room_address} does not exist")
        return decode_room(resp.value.data, room_address)

    async def fetch_player_entry(self, room_address: Pubkey, player: Pubkey) -> Optional[PlayerEntry]:
        address = derive_player_entry_pda(room_address, player, self.program_id).address
        resp = await self._get_account(address)
        if resp.value is None:
            return None
        return decode_player_entry(resp.value.data, address)

    async def _scan(self, filters) -> list:
        try:
            resp = await self.rpc.get_program_accounts(
                self.program_id,
                commitment=self.commitment,
                encoding="base64",
                filters=filters,
            )
        except RPC_ERRORS as e:
            logger.error(f"[SCAN] Program account scan failed: {e}")
            raise RpcUnavailable(f"Program account scan failed: {e}") from e
        return list(resp.value or [])

    async def list_player_entries(self, room_address: Pubkey) -> List[PlayerEntry]:
        """All PlayerEntry accounts for a room (one program-account scan)."""
        keyed = await self._scan([
            MemcmpOpts(offset=0, bytes=base58.b58encode(PLAYER_ENTRY_DISCRIMINATOR).decode()),
            MemcmpOpts(offset=PLAYER_ENTRY_ROOM_OFFSET, bytes=str(room_address)),
        ])
        return [decode_player_entry(item.account.data, item.pubkey) for item in keyed]

    async def find_room_by_id(self, room_id: str) -> Room:
        """Locate a room by id alone by scanning every Room account.

        Cost grows with the number of rooms on the program. Pass the room
        address or host instead wherever they are known.
        """
        logger.warning(f"[SCAN] ⚠️ Looking up room '{room_id}' by full scan (no address or host given)")
        keyed = await self._scan([
            MemcmpOpts(offset=0, bytes=base58.b58encode(ROOM_DISCRIMINATOR).decode()),
            MemcmpOpts(offset=ROOM_ID_OFFSET, bytes=base58.b58encode(encode_room_id_filter(room_id)).decode()),
        ])
        rooms = [decode_room(item.account.data, item.pubkey) for item in keyed]
        rooms = [room for room in rooms if room.room_id == room_id]

        if not rooms:
            raise RoomNotFound(f"No room with id '{room_id}'")
        if len(rooms) > 1:
            raise InvalidParameters(
                f"{len(rooms)} hosts have a room named '{room_id}', pass the host or room address"
            )
        return rooms[0]

    async def resolve_room(
        self,
        room_id: str,
        room_address: Optional[Pubkey] = None,
        host: Optional[Pubkey] = None,
    ) -> Room:
        self._check_room_id(room_id)
        if room_address is not None:
            room = await self.fetch_room(_pubkey(room_address))
            if room.room_id != room_id:
                raise InvalidParameters(f"Room {room_address} has id '{room.room_id}', not '{room_id}'")
            return room
        if host is not None:
            address = derive_room_pda(_pubkey(host), room_id, self.program_id).address
            return await self.fetch_room(address)
        return await self.find_room_by_id(room_id)

    async def preview_split(self, room: Room, config: Optional[GlobalConfig] = None) -> SplitPreview:
        """What end_room would pay out right now."""
        config = config or await self.fetch_global_config()
        return split(
            room.total_collected,
            room.host_fee_bps,
            room.prize_pool_bps,
            config.platform_fee_bps,
            extras=room.total_extras_fees,
        )

    # ===== EXECUTION =====

    def _require_wallet(self) -> Pubkey:
        from wallets.base import ChainFamily, ensure_wallet_ready

        ensure_wallet_ready(self.wallet, ChainFamily.SOLANA)
        return self.wallet.pubkey

    @staticmethod
    def _check_room_id(room_id: str):
        valid, error = is_valid_room_id(room_id)
        if not valid:
            raise InvalidParameters(error)

    def _ensure_not_paused(self, config: GlobalConfig):
        if config.emergency_pause:
            raise ProgramPaused()

    async def _execute(
        self,
        operation: str,
        instructions: Sequence[Instruction],
        recheck: Optional[Recheck] = None,
    ) -> ExecutionReceipt:
        """Simulate, sign and submit; resolve ambiguous outcomes via ``recheck``.

        Only SubmissionAmbiguous / already-processed outcomes are retried, and
        only after ``recheck`` shows the effect has not landed. Each retry
        starts from a fresh blockhash and a fresh simulation.
        """
        tracker = OperationTracker(operation, on_change=self.on_state_change)
        self.last_operation = tracker
        payer = self.wallet.pubkey
        attempts = self.operation_attempts if recheck is not None else 1
        signature = None

        try:
            for attempt in range(1, attempts + 1):
                tracker.transition(OperationState.SIMULATING)
                anchor = await fetch_freshness_anchor(self.rpc, self.commitment)
                built = build_transaction(instructions, payer, anchor)
                simulation = await self.submitter.simulate(built)

                if not simulation.success:
                    if attempt > 1 and await recheck():
                        logger.info(f"[{operation.upper()}] Earlier attempt landed, nothing to resend")
                        tracker.transition(OperationState.DONE)
                        return ExecutionReceipt(signature, already_done=True)

                    error = decode_program_error(simulation.error, simulation.logs, operation)
                    audit_logger.log(
                        event_type=AuditEventType.SIMULATION_FAILED,
                        severity=AuditSeverity.WARNING,
                        actor=str(payer),
                        details=f"{operation}: {type(error).__name__} {error.message}",
                    )
                    raise error

                signed = await self.wallet.sign_transaction(built.transaction)
                tracker.transition(OperationState.SUBMITTING)
                outcome = await self.submitter.send_with_retry(
                    signed,
                    operation=operation,
                    on_sent=lambda _sig: tracker.transition(OperationState.CONFIRMING),
                )
                signature = outcome.signature

                if outcome.ok:
                    tracker.transition(OperationState.DONE)
                    return ExecutionReceipt(signature, compute_units=simulation.compute_units)

                if not outcome.needs_recheck:
                    raise outcome.error
                if recheck is None:
                    raise outcome.error or SubmissionAmbiguous(f"{signature} was already processed")

                if await recheck():
                    logger.info(f"[{operation.upper()}] ✅ {signature} confirmed by state recheck")
                    audit_logger.log(
                        event_type=AuditEventType.DUPLICATE_SUBMISSION,
                        severity=AuditSeverity.INFO,
                        actor=str(payer),
                        details=f"{operation}: resolved by recheck, signature={signature}",
                    )
                    tracker.transition(OperationState.DONE)
                    return ExecutionReceipt(signature, already_done=True)

                logger.warning(
                    f"[{operation.upper()}] Effect of {signature} not visible yet "
                    f"(attempt {attempt}/{attempts}), resubmitting"
                )

            raise SubmissionAmbiguous(
                f"{operation} could not be confirmed after {attempts} attempts",
                signature=signature,
            )
        except RoomChainError:
            tracker.transition(OperationState.FAILED)
            raise

    # ===== HOST OPERATIONS =====

    async def create_room(self, params: CreateRoomParams) -> CreateRoomResult:
        """Create a pool-split room hosted by the connected wallet."""
        host = self._require_wallet()

        self._check_room_id(params.room_id)
        valid, error = is_valid_token_amount(params.entry_fee, allow_zero=False)
        if not valid:
            raise InvalidParameters(f"Entry fee: {error}")
        valid, error = is_valid_charity_memo(params.charity_memo)
        if not valid:
            raise InvalidParameters(error)
        if params.max_players <= 0:
            raise InvalidParameters("Max players must be at least 1")
        distribution = list(params.prize_distribution)
        if not 1 <= len(distribution) <= MAX_WINNERS or sum(distribution) != 100 or min(distribution) <= 0:
            raise InvalidParameters(f"Prize distribution must be 1-{MAX_WINNERS} positive shares summing to 100")

        config = await self.fetch_global_config()
        self._ensure_not_paused(config)
        validate_room_fees(params.host_fee_bps, params.prize_pool_bps, config)

        registry = await self.fetch_token_registry()
        if registry is None:
            raise NotInitialized(f"Token registry ({self.registry_version}) is not initialized")
        if not registry.is_approved(params.fee_mint):
            raise TokenNotApproved(f"Mint {params.fee_mint} is not approved for entry fees")

        room_address = derive_room_pda(host, params.room_id, self.program_id).address
        vault_address = derive_room_vault_pda(room_address, self.program_id).address
        if await self._account_exists(room_address):
            raise RoomAlreadyExists(f"Room '{params.room_id}' already exists at {room_address}")

        instruction = ix.init_pool_room_ix(
            room=room_address,
            room_vault=vault_address,
            token_registry=registry.address,
            global_config=self.global_config_address,
            host=host,
            charity_wallet=params.charity_wallet or config.charity_wallet,
            params=params,
            program_id=self.program_id,
        )

        logger.info(f"[CREATE] Creating room '{params.room_id}' for host {truncate_address(str(host))}")
        receipt = await self._execute(
            "create_room",
            [instruction],
            recheck=lambda: self._account_exists(room_address),
        )

        audit_logger.log(
            event_type=AuditEventType.ROOM_CREATED,
            actor=str(host),
            details=f"room={room_address} id={params.room_id} fee={params.entry_fee} mint={params.fee_mint}",
        )
        return CreateRoomResult(
            signature=receipt.signature,
            room_address=room_address,
            vault_address=vault_address,
            already_done=receipt.already_done,
        )

    def _check_winners(self, winners: Sequence[Pubkey], host: Pubkey) -> List[Pubkey]:
        winners = [_pubkey(w) for w in winners]
        if not 1 <= len(winners) <= MAX_WINNERS:
            raise InvalidParameters(f"Expected 1-{MAX_WINNERS} winners, got {len(winners)}")
        if len(set(winners)) != len(winners):
            raise InvalidParameters("Winners must be distinct")
        if host in winners:
            raise InvalidParameters("Host cannot be a winner")
        return winners

    async def _resolve_hosted_room(self, room_id: str, room_address: Optional[Pubkey]) -> Tuple[Pubkey, Room]:
        """Resolve a room the connected wallet hosts and that has not ended."""
        host = self._require_wallet()
        room = await self.resolve_room(room_id, room_address, host=host)

        if room.host != host:
            raise NotHost(f"Room '{room_id}' is hosted by {room.host}")
        if room.ended:
            raise RoomAlreadyEnded(f"Room '{room_id}' has already ended")
        return host, room

    async def close_joining(self, room_id: str, room_address: Optional[Pubkey] = None) -> CloseJoiningResult:
        """Stop accepting players. Host only."""
        host, room = await self._resolve_hosted_room(room_id, room_address)
        before = (await self._get_account(room.address)).value.data

        instruction = ix.close_joining_ix(room.address, host, room_id, self.program_id)

        async def room_changed() -> bool:
            resp = await self._get_account(room.address)
            return resp.value is not None and bytes(resp.value.data) != bytes(before)

        logger.info(f"[CLOSE] Closing joins for room '{room_id}' ({room.player_count} players)")
        receipt = await self._execute("close_joining", [instruction], recheck=room_changed)

        audit_logger.log(
            event_type=AuditEventType.JOINING_CLOSED,
            actor=str(host),
            details=f"room={room.address} players={room.player_count}",
        )
        return CloseJoiningResult(
            signature=receipt.signature,
            room_address=room.address,
            already_done=receipt.already_done,
        )

    async def declare_winners(
        self,
        room_id: str,
        winners: Sequence[Pubkey],
        room_address: Optional[Pubkey] = None,
    ) -> DeclareWinnersResult:
        """Record winners on the room ahead of end_room. Host only.

        Every winner must hold a PlayerEntry for the room. At most
        MAX_WINNERS, since the room stores three winner slots.
        """
        host, room = await self._resolve_hosted_room(room_id, room_address)
        if room.winners_declared:
            raise WinnersAlreadyDeclared(f"Room '{room_id}' already has winners declared")

        winners = self._check_winners(winners, host)
        entries = [derive_player_entry_pda(room.address, w, self.program_id).address for w in winners]
        for winner, entry in zip(winners, entries):
            if not await self._account_exists(entry):
                raise InvalidParameters(f"{truncate_address(str(winner))} has not joined '{room_id}'")

        instruction = ix.declare_winners_ix(
            room=room.address,
            host=host,
            room_id=room_id,
            winners=winners,
            player_entries=entries,
            program_id=self.program_id,
        )

        async def winners_recorded() -> bool:
            return (await self.fetch_room(room.address)).winners_declared

        logger.info(f"[WINNERS] Declaring {len(winners)} winner(s) for room '{room_id}'")
        receipt = await self._execute("declare_winners", [instruction], recheck=winners_recorded)

        audit_logger.log(
            event_type=AuditEventType.WINNERS_DECLARED,
            actor=str(host),
            details=f"room={room.address} winners={','.join(str(w) for w in winners)}",
        )
        return DeclareWinnersResult(
            signature=receipt.signature,
            room_address=room.address,
            winners=winners,
            already_done=receipt.already_done,
        )

    async def end_room(
        self,
        room_id: str,
        winners: Optional[Sequence[Pubkey]] = None,
        room_address: Optional[Pubkey] = None,
    ) -> EndRoomResult:
        """Distribute the vault to charity, host, platform and winners. Host only.

        Winners already recorded by declare_winners are used as they stand;
        ``winners`` may then be omitted, and if given must match them. At
        most MAX_WINNERS (3) winners: the room holds three winner slots and
        the prize distribution three places.
        """
        host, room = await self._resolve_hosted_room(room_id, room_address)

        if room.winners_declared:
            declared = [w for w in room.winners if w is not None]
            if winners is not None and [_pubkey(w) for w in winners] != declared:
                raise InvalidParameters(f"Room '{room_id}' already declared winners {declared}")
            winners = declared
        elif winners is None:
            raise InvalidParameters(f"Room '{room_id}' has no declared winners, pass them to end_room")
        winners = self._check_winners(winners, host)

        config = await self.fetch_global_config()
        self._ensure_not_paused(config)
        preview = await self.preview_split(room, config)

        mint = room.fee_token_mint
        platform_plan = await resolve_or_prepare_token_account(
            self.rpc, config.platform_wallet, mint, payer=host, commitment=self.commitment
        )
        charity_plan = await resolve_or_prepare_token_account(
            self.rpc, room.charity_wallet, mint, payer=host, commitment=self.commitment
        )
        host_plan = await resolve_or_prepare_token_account(
            self.rpc, host, mint, payer=host, commitment=self.commitment
        )
        winner_plans = [
            await resolve_or_prepare_token_account(self.rpc, w, mint, payer=host, commitment=self.commitment)
            for w in winners
        ]

        room_vault = derive_room_vault_pda(room.address, self.program_id).address
        instruction = ix.end_room_ix(
            room=room.address,
            room_vault=room_vault,
            global_config=self.global_config_address,
            platform_token_account=platform_plan.address,
            charity_token_account=charity_plan.address,
            host_token_account=host_plan.address,
            host=host,
            room_id=room_id,
            winners=winners,
            winner_token_accounts=[plan.address for plan in winner_plans],
            program_id=self.program_id,
        )
        instructions = prepend_create_instructions(
            [platform_plan, charity_plan, host_plan, *winner_plans],
            [instruction],
        )

        async def room_ended() -> bool:
            return (await self.fetch_room(room.address)).ended

        logger.info(
            f"[END] Ending room '{room_id}': charity={preview.charity} host={preview.host} "
            f"prize={preview.prize} platform={preview.platform}"
        )
        receipt = await self._execute("end_room", instructions, recheck=room_ended)

        audit_logger.log(
            event_type=AuditEventType.ROOM_ENDED,
            actor=str(host),
            details=f"room={room.address} winners={len(winners)} total={room.total_collected}",
        )
        return EndRoomResult(
            signature=receipt.signature,
            room_address=room.address,
            split=preview,
            winners=winners,
            already_done=receipt.already_done,
        )

    async def cleanup_room(
        self,
        room_id: str,
        host: Pubkey,
        room_address: Optional[Pubkey] = None,
    ) -> CleanupRoomResult:
        """Close an ended room and its empty vault, returning the rent to the caller.

        The caller must be the room host or the platform admin.
        """
        caller = self._require_wallet()
        room = await self.resolve_room(room_id, room_address, host=_pubkey(host))

        config = await self.fetch_global_config()
        if caller not in (room.host, config.admin):
            logger.warning(f"[CLEANUP] 🚨 {truncate_address(str(caller))} attempted cleanup of '{room_id}'")
            audit_logger.log(
                event_type=AuditEventType.UNAUTHORIZED_ATTEMPT,
                severity=AuditSeverity.WARNING,
                actor=str(caller),
                details=f"cleanup_room {room.address} (host is {room.host})",
            )
            raise NotHost(f"Only the host or the platform admin can clean up '{room_id}'")
        if not room.ended:
            raise RoomNotEnded(f"Room '{room_id}' must be ended before cleanup")

        room_vault = derive_room_vault_pda(room.address, self.program_id).address
        vault = (await self._get_account(room_vault)).value
        if vault is not None:
            balance = parse_token_account(vault.data).amount
            if balance > 0:
                raise VaultNotEmpty(f"Vault of '{room_id}' still holds {balance} base units")
        room_account = (await self._get_account(room.address)).value
        rent = (room_account.lamports if room_account is not None else 0) + (vault.lamports if vault is not None else 0)

        instruction = ix.cleanup_room_ix(
            room=room.address,
            room_vault=room_vault,
            global_config=self.global_config_address,
            caller=caller,
            room_id=room_id,
            program_id=self.program_id,
        )

        async def room_closed() -> bool:
            return not await self._account_exists(room.address)

        logger.info(f"[CLEANUP] Closing room '{room_id}', reclaiming {rent} lamports")
        receipt = await self._execute("cleanup_room", [instruction], recheck=room_closed)

        audit_logger.log(
            event_type=AuditEventType.ROOM_CLEANED_UP,
            actor=str(caller),
            details=f"room={room.address} rent={rent}",
        )
        return CleanupRoomResult(
            signature=receipt.signature,
            room_address=room.address,
            rent_reclaimed=rent,
            already_done=receipt.already_done,
        )

    # ===== PLAYER OPERATIONS =====

    async def join_room(self, params: JoinRoomParams) -> JoinResult:
        """Pay the entry fee (plus extras) and record a PlayerEntry.

        Raises:
            NotConnected / WrongChainFamily / WrongNetwork: wallet not usable
            AlreadyJoined: the PlayerEntry for this wallet already exists
            RoomAlreadyEnded / GameAlreadyStarted / RoomNotReady / RoomFull
            InsufficientBalance: detected locally, nothing is submitted
            SimulationFailed: the program rejected the join in simulation
            SubmissionAmbiguous: outcome unknown after all attempts
        """
        player = self._require_wallet()

        self._check_room_id(params.room_id)
        valid, error = is_valid_token_amount(params.extras_amount)
        if not valid:
            raise InvalidParameters(f"Extras: {error}")

        config = await self.fetch_global_config()
        self._ensure_not_paused(config)

        room = await self.resolve_room(params.room_id, params.room_address, params.host)
        entry_address = derive_player_entry_pda(room.address, player, self.program_id).address

        if await self._account_exists(entry_address):
            raise AlreadyJoined(f"{truncate_address(str(player))} already joined '{params.room_id}'")
        if room.ended:
            raise RoomAlreadyEnded(f"Room '{params.room_id}' has ended")
        if room.winners_declared or room.status is RoomStatus.ENDED:
            raise GameAlreadyStarted(f"Room '{params.room_id}' is no longer accepting players")
        if not room.status.accepts_players:
            raise RoomNotReady(f"Room '{params.room_id}' is {room.status.name.lower()}")
        if room.is_full:
            raise RoomFull(f"Room '{params.room_id}' is full ({room.player_count}/{room.max_players})")

        required = room.entry_fee + params.extras_amount
        plan = await resolve_or_prepare_token_account(
            self.rpc, player, room.fee_token_mint, commitment=self.commitment
        )
        plan.ensure_balance(required)

        room_vault = derive_room_vault_pda(room.address, self.program_id).address
        instruction = ix.join_room_ix(
            room=room.address,
            player_entry=entry_address,
            room_vault=room_vault,
            player_token_account=plan.address,
            global_config=self.global_config_address,
            player=player,
            room_id=params.room_id,
            extras_amount=params.extras_amount,
            program_id=self.program_id,
        )
        instructions = prepend_create_instructions([plan], [instruction])

        logger.info(
            f"[JOIN] {truncate_address(str(player))} joining '{params.room_id}' "
            f"(fee={room.entry_fee}, extras={params.extras_amount})"
        )
        receipt = await self._execute(
            "join_room",
            instructions,
            recheck=lambda: self._account_exists(entry_address),
        )

        audit_logger.log(
            event_type=AuditEventType.PLAYER_JOINED,
            actor=str(player),
            details=f"room={room.address} paid={required} already_paid={receipt.already_done}",
        )
        return JoinResult(
            signature=receipt.signature,
            player_entry_address=entry_address,
            already_paid=receipt.already_done,
        )

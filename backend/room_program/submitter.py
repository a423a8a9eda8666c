"""
Transaction simulation and submission.

simulate() is the gate before any signature is requested. send_with_retry()
never raises for submission outcomes; it returns a tagged SubmitOutcome so
every caller has to deal with the ambiguous "already processed" case.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from solana.rpc.commitment import Commitment, Confirmed, Finalized, Processed
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.signature import Signature
from solders.transaction import Transaction

from chain_config import (
    CONFIRM_POLL_INTERVAL,
    CONFIRM_TIMEOUT,
    SIMULATION_TIMEOUT,
    TX_MAX_ATTEMPTS,
    TX_RETRY_BASE_DELAY,
    TX_RETRY_MAX_DELAY,
)
from .errors import (
    TRANSPORT_ERRORS,
    RoomChainError,
    RpcUnavailable,
    SubmissionAmbiguous,
    TransactionRejected,
    decode_program_error,
)
from .transactions import BuiltTransaction

logger = logging.getLogger(__name__)

_COMMITMENT_LEVELS = {Processed: 0, Confirmed: 1, Finalized: 2}

_ALREADY_PROCESSED_MARKERS = ("already been processed", "alreadyprocessed")
_BLOCKHASH_EXPIRED_MARKERS = ("blockhash not found", "blockhashnotfound", "block height exceeded")


class SubmitStatus(Enum):
    OK = "ok"
    ALREADY_DONE = "already_done"   # node saw this transaction before
    FAILED = "failed"


@dataclass
class SubmitOutcome:
    status: SubmitStatus
    signature: Signature
    error: Optional[RoomChainError] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.status is SubmitStatus.OK

    @property
    def needs_recheck(self) -> bool:
        """Ambiguous outcomes: the transaction may have landed."""
        return self.status is SubmitStatus.ALREADY_DONE or isinstance(self.error, SubmissionAmbiguous)


@dataclass
class SimulationResult:
    success: bool
    compute_units: Optional[int] = None
    logs: List[str] = field(default_factory=list)
    error: Any = None


def rpc_error_details(exc: RPCException) -> Tuple[str, List[str], Any]:
    """Pull (message, logs, ledger error) out of an RPCException payload."""
    payload = exc.args[0] if exc.args else exc
    if isinstance(payload, dict):
        data = payload.get("data") or {}
        logs = data.get("logs") if isinstance(data, dict) else None
        err = data.get("err") if isinstance(data, dict) else None
        return str(payload.get("message", payload)), list(logs or []), err

    message = getattr(payload, "message", None) or str(payload)
    data = getattr(payload, "data", None)
    logs = getattr(data, "logs", None) if data is not None else None
    err = getattr(data, "err", None) if data is not None else None
    return str(message), list(logs or []), err


def _matches(message: str, markers) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in markers)


def _status_level(status) -> int:
    if status.confirmation_status is None:
        # Pre-1.5 nodes omit the status; no confirmation count means rooted
        return _COMMITMENT_LEVELS[Finalized] if getattr(status, "confirmations", None) is None else 0
    name = str(status.confirmation_status).split(".")[-1].lower()
    return _COMMITMENT_LEVELS.get(name, -1)


class TransactionSubmitter:
    """Simulates, sends and confirms transactions against one RPC client."""

    def __init__(
        self,
        rpc,
        max_attempts: int = TX_MAX_ATTEMPTS,
        commitment: Commitment = Confirmed,
        retry_base_delay: float = TX_RETRY_BASE_DELAY,
        retry_max_delay: float = TX_RETRY_MAX_DELAY,
        confirm_timeout: float = CONFIRM_TIMEOUT,
        poll_interval: float = CONFIRM_POLL_INTERVAL,
        simulation_timeout: float = SIMULATION_TIMEOUT,
    ):
        self.rpc = rpc
        self.max_attempts = max_attempts
        self.commitment = commitment
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval
        self.simulation_timeout = simulation_timeout

    def _backoff(self, attempt: int) -> float:
        return min(self.retry_max_delay, self.retry_base_delay * (2 ** attempt))

    async def simulate(self, built: BuiltTransaction) -> SimulationResult:
        """Dry-run an unsigned transaction against current ledger state.

        Raises:
            RpcUnavailable: the node could not be reached in time
        """
        try:
            resp = await asyncio.wait_for(
                self.rpc.simulate_transaction(
                    built.transaction,
                    sig_verify=False,
                    commitment=self.commitment,
                ),
                timeout=self.simulation_timeout,
            )
        except RPCException as e:
            message, logs, err = rpc_error_details(e)
            logger.warning(f"[SIMULATE] Node rejected simulation: {message}")
            return SimulationResult(success=False, logs=logs, error=err or message)
        except TRANSPORT_ERRORS as e:
            logger.error(f"[SIMULATE] Simulation request failed: {e}")
            raise RpcUnavailable(f"Simulation request failed: {e}") from e

        value = resp.value
        logs = list(value.logs or [])
        units = value.units_consumed

        if value.err is not None:
            logger.warning(f"[SIMULATE] ❌ Failed: {value.err}")
            for line in logs[-10:]:
                logger.debug(f"[SIMULATE]   {line}")
            return SimulationResult(success=False, compute_units=units, logs=logs, error=value.err)

        logger.info(f"[SIMULATE] ✅ OK ({units} compute units)")
        return SimulationResult(success=True, compute_units=units, logs=logs)

    async def send_with_retry(
        self,
        signed_tx: Transaction,
        max_attempts: Optional[int] = None,
        commitment: Optional[Commitment] = None,
        operation: Optional[str] = None,
        on_sent: Optional[Callable[[Signature], None]] = None,
    ) -> SubmitOutcome:
        """Send a signed transaction and wait for confirmation.

        The same signed bytes are re-sent on dropped or unconfirmed attempts,
        so a retry can never produce a second, different transaction.
        """
        max_attempts = max_attempts or self.max_attempts
        commitment = commitment or self.commitment
        signature = signed_tx.signatures[0]
        raw = bytes(signed_tx)
        accepted = False
        last_error: Optional[Exception] = None

        for attempt in range(max_attempts):
            try:
                resp = await self.rpc.send_raw_transaction(
                    raw,
                    opts=TxOpts(skip_preflight=True, preflight_commitment=commitment),
                )
                signature = resp.value
                accepted = True
                logger.info(f"[SUBMIT] Sent {signature} (attempt {attempt + 1}/{max_attempts})")
                if on_sent is not None:
                    on_sent(signature)

            except RPCException as e:
                message, logs, err = rpc_error_details(e)

                if _matches(message, _ALREADY_PROCESSED_MARKERS):
                    logger.warning(f"[SUBMIT] ⚠️ {signature} already processed, state must be rechecked")
                    return SubmitOutcome(SubmitStatus.ALREADY_DONE, signature, attempts=attempt + 1)

                if _matches(message, _BLOCKHASH_EXPIRED_MARKERS):
                    logger.warning(f"[SUBMIT] Blockhash expired for {signature}")
                    return SubmitOutcome(
                        SubmitStatus.FAILED,
                        signature,
                        SubmissionAmbiguous(f"Blockhash expired before {signature} confirmed"),
                        attempts=attempt + 1,
                    )

                logger.error(f"[SUBMIT] ❌ Rejected by node: {message}")
                error = decode_program_error(err or message, logs, operation, fallback=TransactionRejected)
                return SubmitOutcome(SubmitStatus.FAILED, signature, error, attempts=attempt + 1)

            except TRANSPORT_ERRORS as e:
                last_error = e
                delay = self._backoff(attempt)
                logger.warning(
                    f"[SUBMIT] Attempt {attempt + 1}/{max_attempts} failed to send: {e}. "
                    f"Retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
                continue

            confirmed, ledger_error = await self._wait_for_confirmation(signature, commitment)
            if confirmed:
                logger.info(f"[SUBMIT] ✅ {signature} reached {commitment}")
                return SubmitOutcome(SubmitStatus.OK, signature, attempts=attempt + 1)

            if ledger_error is not None:
                logger.error(f"[SUBMIT] ❌ {signature} failed on-chain: {ledger_error}")
                error = decode_program_error(ledger_error, [], operation, fallback=TransactionRejected)
                return SubmitOutcome(SubmitStatus.FAILED, signature, error, attempts=attempt + 1)

            logger.warning(f"[SUBMIT] {signature} not confirmed after {self.confirm_timeout}s, resending")
            await asyncio.sleep(self._backoff(attempt))

        if accepted:
            logger.error(f"[SUBMIT] 🚨 {signature} unconfirmed after {max_attempts} attempts")
            error = SubmissionAmbiguous(f"{signature} was sent but never confirmed")
        else:
            logger.error(f"[SUBMIT] 🚨 Could not send {signature}: {last_error}")
            error = RpcUnavailable(f"Could not send transaction: {last_error}")
        return SubmitOutcome(SubmitStatus.FAILED, signature, error, attempts=max_attempts)

    async def _wait_for_confirmation(self, signature: Signature, commitment: Commitment):
        """Poll the signature status until it reaches ``commitment`` or times out.

        Returns:
            Tuple of (confirmed, ledger_error)
        """
        required = _COMMITMENT_LEVELS.get(commitment, _COMMITMENT_LEVELS[Confirmed])
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.confirm_timeout

        while True:
            try:
                resp = await self.rpc.get_signature_statuses([signature])
                status = resp.value[0] if resp.value else None
            except TRANSPORT_ERRORS as e:
                logger.debug(f"[CONFIRM] Status poll failed for {signature}: {e}")
                status = None

            if status is not None:
                if status.err is not None:
                    return False, status.err
                if _status_level(status) >= required:
                    return True, None

            if loop.time() >= deadline:
                return False, None
            await asyncio.sleep(self.poll_interval)

"""
Structured errors for the room program layer.

Every failure surfaced to callers is a RoomChainError subclass, never a raw
transport exception. Each class carries a category so the UI can tell
"fix something" apart from "cannot proceed" and "try again".
"""
import asyncio
import re
from enum import Enum
from typing import Any, Dict, List, Optional, Type

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.core import RPCException

# Failures of the connection itself; a different endpoint may succeed
TRANSPORT_ERRORS = (SolanaRpcException, httpx.HTTPError, OSError, asyncio.TimeoutError)
# Anything a read can raise, including an error response from the node
RPC_ERRORS = TRANSPORT_ERRORS + (RPCException,)


class ErrorCategory(Enum):
    """What the caller should do about an error."""
    FIX_REQUIRED = "fix_required"      # user can remediate (balance, network, params)
    CANNOT_PROCEED = "cannot_proceed"  # terminal for this room/operation
    TRY_AGAIN = "try_again"            # transient or ambiguous


class RoomChainError(Exception):
    """Base class for room program errors."""

    category = ErrorCategory.CANNOT_PROCEED
    retryable = False
    default_message = "Room program operation failed"

    def __init__(
        self,
        message: Optional[str] = None,
        logs: Optional[List[str]] = None,
        code: Optional[int] = None,
        **details: Any,
    ):
        self.message = message or self.default_message
        self.logs = list(logs or [])
        self.code = code
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "category": self.category.value,
            "message": self.message,
            "code": self.code,
            "retryable": self.retryable,
            "details": {k: str(v) for k, v in self.details.items()},
        }


# ===== FIX REQUIRED =====

class NotConnected(RoomChainError):
    category = ErrorCategory.FIX_REQUIRED
    default_message = "Wallet is not connected"


class WrongChainFamily(RoomChainError):
    category = ErrorCategory.FIX_REQUIRED
    default_message = "Connected wallet belongs to a different chain family"

    def __init__(self, expected, actual, message: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        super().__init__(
            message or f"Room requires a {expected.value} wallet, connected wallet is {actual.value}",
            expected=expected.value,
            actual=actual.value,
        )


class WrongNetwork(RoomChainError):
    category = ErrorCategory.FIX_REQUIRED
    default_message = "Wallet is connected to the wrong network"

    def __init__(self, expected, actual, message: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        super().__init__(
            message or f"Expected network {expected}, wallet is on {actual}",
            expected=expected,
            actual=actual,
        )


class InsufficientBalance(RoomChainError):
    category = ErrorCategory.FIX_REQUIRED
    default_message = "Insufficient token balance"

    def __init__(
        self,
        required: int,
        available: int,
        message: Optional[str] = None,
        logs: Optional[List[str]] = None,
        **details,
    ):
        self.required = required
        self.available = available
        super().__init__(
            message or f"Need {required} base units, have {available}",
            logs=logs,
            required=required,
            available=available,
            **details,
        )


class InvalidParameters(RoomChainError):
    category = ErrorCategory.FIX_REQUIRED
    default_message = "Invalid parameters"


# ===== CANNOT PROCEED =====

class RoomNotFound(RoomChainError):
    default_message = "Room not found"


class RoomFull(RoomChainError):
    default_message = "Room has reached its maximum number of players"


class AlreadyJoined(RoomChainError):
    default_message = "Player has already joined this room"


class GameAlreadyStarted(RoomChainError):
    default_message = "Game has already started"


class WinnersAlreadyDeclared(GameAlreadyStarted):
    default_message = "Winners have already been declared for this room"


class RoomAlreadyEnded(RoomChainError):
    default_message = "Room has already ended"


class RoomNotEnded(RoomChainError):
    default_message = "Room must be ended first"


class VaultNotEmpty(RoomChainError):
    default_message = "Room vault still holds tokens"


class RoomAlreadyExists(RoomChainError):
    default_message = "A room with this id already exists for this host"


class RoomNotReady(RoomChainError):
    default_message = "Room is not accepting players"


class NoFundsToRecover(RoomChainError):
    default_message = "Room has no collected funds to recover"


class NoPlayersFound(RoomChainError):
    default_message = "No player entries found for room"


class NotAdmin(RoomChainError):
    default_message = "Caller is not the platform admin"


class NotHost(RoomChainError):
    default_message = "Caller is not the room host"


class RegistryFull(RoomChainError):
    default_message = "Token registry is full"


class AlreadyApproved(RoomChainError):
    default_message = "Token is already approved"


class TokenNotApproved(RoomChainError):
    default_message = "Token is not in the approved registry"


class ProgramPaused(RoomChainError):
    default_message = "Program is under emergency pause"


class NotInitialized(RoomChainError):
    default_message = "Program account has not been initialized"


class RegistryVersionMismatch(RoomChainError):
    default_message = "Token registry version mismatch"


class InvalidTokenAccount(RoomChainError):
    default_message = "Token account does not match the expected owner or mint"


class SimulationFailed(RoomChainError):
    default_message = "Transaction simulation failed"


class TransactionRejected(RoomChainError):
    default_message = "Transaction was rejected on-chain"


# ===== TRY AGAIN =====

class SubmissionAmbiguous(RoomChainError):
    """Transaction may or may not have landed; recheck state before retrying."""
    category = ErrorCategory.TRY_AGAIN
    retryable = True
    default_message = "Submission outcome unknown, on-chain state must be rechecked"


class RpcUnavailable(RoomChainError):
    category = ErrorCategory.TRY_AGAIN
    default_message = "RPC endpoint unavailable"


# ===== PROGRAM ERROR DECODING =====

PROGRAM_ERROR_BASE = 6000

# Anchor error names in declaration order (code = 6000 + index)
PROGRAM_ERROR_NAMES = [
    "Unauthorized",
    "RoomAlreadyExists",
    "RoomNotFound",
    "RoomNotReady",
    "InvalidRoomStatus",
    "RoomAlreadyEnded",
    "RoomExpired",
    "PlayerAlreadyJoined",
    "HostCannotBeWinner",
    "InvalidWinners",
    "TokenNotApproved",
    "TokenAlreadyApproved",
    "TokenRegistryFull",
    "InvalidEntryFee",
    "HostFeeTooHigh",
    "PrizePoolTooHigh",
    "CharityBelowMinimum",
    "TotalAllocationTooHigh",
    "InvalidPrizeDistribution",
    "InsufficientBalance",
    "EmergencyPause",
    "ArithmeticOverflow",
    "ArithmeticUnderflow",
    "InvalidRoomId",
    "InvalidMemo",
    "MaxPlayersReached",
    "InvalidMaxPlayers",
    "InvalidTokenMint",
    "InvalidTokenOwner",
    "WinnersAlreadyDeclared",
    "InvalidPrizeAmount",
    "PrizeAlreadyDeposited",
    "PrizeNotDeposited",
    "PrizesNotFullyFunded",
    "RoomNotAbandoned",
    "InvalidPlayerEntry",
    "InvalidVaultAccount",
    "InvalidVaultAuthority",
]

_PROGRAM_ERROR_CLASSES: Dict[str, Type[RoomChainError]] = {
    "RoomAlreadyExists": RoomAlreadyExists,
    "RoomNotFound": RoomNotFound,
    "RoomNotReady": RoomNotReady,
    "InvalidRoomStatus": RoomNotReady,
    "RoomAlreadyEnded": RoomAlreadyEnded,
    "RoomExpired": GameAlreadyStarted,
    "PlayerAlreadyJoined": AlreadyJoined,
    "WinnersAlreadyDeclared": WinnersAlreadyDeclared,
    "HostCannotBeWinner": InvalidParameters,
    "InvalidWinners": InvalidParameters,
    "TokenNotApproved": TokenNotApproved,
    "TokenAlreadyApproved": AlreadyApproved,
    "TokenRegistryFull": RegistryFull,
    "InvalidEntryFee": InvalidParameters,
    "HostFeeTooHigh": InvalidParameters,
    "PrizePoolTooHigh": InvalidParameters,
    "CharityBelowMinimum": InvalidParameters,
    "TotalAllocationTooHigh": InvalidParameters,
    "InvalidPrizeDistribution": InvalidParameters,
    "InvalidRoomId": InvalidParameters,
    "InvalidMemo": InvalidParameters,
    "InvalidMaxPlayers": InvalidParameters,
    "EmergencyPause": ProgramPaused,
    "MaxPlayersReached": RoomFull,
    "InvalidTokenMint": InvalidTokenAccount,
    "InvalidTokenOwner": InvalidTokenAccount,
}

# "already in use" from the system program means the PDA was already created;
# what that implies depends on which instruction tried to create it
_ALREADY_IN_USE_BY_OPERATION: Dict[str, Type[RoomChainError]] = {
    "join_room": AlreadyJoined,
    "create_room": RoomAlreadyExists,
}

# Operations whose signer is the room host; Unauthorized there means "not the host"
_HOST_OPERATIONS = ("end_room", "declare_winners", "close_joining", "cleanup_room")

_ERROR_NUMBER_RE = re.compile(r"Error Number: (\d+)")
_CUSTOM_ERROR_RE = re.compile(r"custom program error: 0x([0-9a-fA-F]+)")
_INSTRUCTION_CUSTOM_RE = re.compile(r"Custom\((\d+)\)")
_ALREADY_IN_USE_RE = re.compile(r"already in use", re.IGNORECASE)
_TOKEN_INSUFFICIENT_RE = re.compile(r"Error: insufficient funds", re.IGNORECASE)


def program_error_name(code: int) -> Optional[str]:
    index = code - PROGRAM_ERROR_BASE
    if 0 <= index < len(PROGRAM_ERROR_NAMES):
        return PROGRAM_ERROR_NAMES[index]
    return None


def extract_error_code(error: Any, logs: List[str]) -> Optional[int]:
    """Find the program error code in an error object or simulation logs."""
    for line in logs:
        match = _ERROR_NUMBER_RE.search(line)
        if match:
            return int(match.group(1))

    haystack = [str(error)] if error is not None else []
    haystack.extend(logs)
    for text in haystack:
        match = _CUSTOM_ERROR_RE.search(text)
        if match:
            return int(match.group(1), 16)
        match = _INSTRUCTION_CUSTOM_RE.search(text)
        if match:
            return int(match.group(1))
    return None


def decode_program_error(
    error: Any,
    logs: Optional[List[str]] = None,
    operation: Optional[str] = None,
    fallback: Type[RoomChainError] = SimulationFailed,
) -> RoomChainError:
    """Map a ledger error (simulation or confirmed) onto the error taxonomy.

    Unknown codes become ``fallback`` with the raw logs attached.
    """
    logs = list(logs or [])
    joined = "\n".join(logs)

    if operation in _ALREADY_IN_USE_BY_OPERATION and _ALREADY_IN_USE_RE.search(joined):
        cls = _ALREADY_IN_USE_BY_OPERATION[operation]
        return cls(logs=logs, error=error)

    code = extract_error_code(error, logs)
    if code is not None:
        name = program_error_name(code)
        if name == "Unauthorized":
            cls = NotHost if operation in _HOST_OPERATIONS else NotAdmin
            return cls(f"Program rejected caller ({name})", logs=logs, code=code)
        if name == "InsufficientBalance":
            return InsufficientBalance(0, 0, f"Program error {code}: {name}", logs=logs, code=code)
        if name in _PROGRAM_ERROR_CLASSES:
            cls = _PROGRAM_ERROR_CLASSES[name]
            return cls(f"Program error {code}: {name}", logs=logs, code=code)
        if name is not None:
            return fallback(f"Program error {code}: {name}", logs=logs, code=code)
        # Low codes come from the SPL token program (0x1 = insufficient funds)
        if code == 1 and _TOKEN_INSUFFICIENT_RE.search(joined):
            return InsufficientBalance(0, 0, "Token program reported insufficient funds", logs=logs)

    message = f"{fallback.default_message}: {error}" if error is not None else fallback.default_message
    return fallback(message, logs=logs, code=code)

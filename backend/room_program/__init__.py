"""Client library for the fundraising room program."""
from .admin import RoomProgramAdmin
from .client import ExecutionReceipt, OperationState, OperationTracker, RoomProgramClient
from .errors import (
    ErrorCategory,
    RoomChainError,
    decode_program_error,
)
from .fund_split import SplitPreview, recovery_split, split, validate_fee_bounds
from .models import (
    AdminResult,
    CreateRoomParams,
    CleanupRoomResult,
    CloseJoiningResult,
    CreateRoomResult,
    DeclareWinnersResult,
    EndRoomResult,
    GlobalConfig,
    GlobalConfigPatch,
    JoinResult,
    JoinRoomParams,
    PlayerEntry,
    PrizeMode,
    RecoverRoomResult,
    RegistryVersionReport,
    Room,
    RoomStatus,
    TokenRegistry,
)
from .pda import AccountKind, DerivedAddress, derive
from .submitter import SubmitOutcome, SubmitStatus, TransactionSubmitter

__all__ = [
    "RoomProgramAdmin",
    "RoomProgramClient",
    "ExecutionReceipt",
    "OperationState",
    "OperationTracker",
    "ErrorCategory",
    "RoomChainError",
    "decode_program_error",
    "SplitPreview",
    "recovery_split",
    "split",
    "validate_fee_bounds",
    "AdminResult",
    "CreateRoomParams",
    "CleanupRoomResult",
    "CloseJoiningResult",
    "CreateRoomResult",
    "DeclareWinnersResult",
    "EndRoomResult",
    "GlobalConfig",
    "GlobalConfigPatch",
    "JoinResult",
    "JoinRoomParams",
    "PlayerEntry",
    "PrizeMode",
    "RecoverRoomResult",
    "RegistryVersionReport",
    "Room",
    "RoomStatus",
    "TokenRegistry",
    "AccountKind",
    "DerivedAddress",
    "derive",
    "SubmitOutcome",
    "SubmitStatus",
    "TransactionSubmitter",
]

"""taskledger core: constants, configuration and exceptions."""
from taskledger.core.config import LedgerConfig, find_config_file
from taskledger.core.constants import (
    InsertPosition,
    RelationType,
    SessionEventType,
    TaskStatus,
    TaskType,
)
from taskledger.core.exceptions import (
    AmbiguousMatch,
    BlockedDependentsExist,
    ConcurrencyConflict,
    ConfigurationError,
    CycleDetected,
    LedgerError,
    MalformedRecord,
    NotFound,
    ValidationError,
)

__all__ = [
    "LedgerConfig",
    "find_config_file",
    "InsertPosition",
    "RelationType",
    "SessionEventType",
    "TaskStatus",
    "TaskType",
    "AmbiguousMatch",
    "BlockedDependentsExist",
    "ConcurrencyConflict",
    "ConfigurationError",
    "CycleDetected",
    "LedgerError",
    "MalformedRecord",
    "NotFound",
    "ValidationError",
]

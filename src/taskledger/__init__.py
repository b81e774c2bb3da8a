"""taskledger - Dependency-aware task tracking for AI agents.

Tasks live in two append-friendly JSON Lines logs (active and archive) that
any number of processes can share. Queries annotate tasks with their
computed blocking state; lifecycle operations run as locked atomic
read-validate-write transitions.
"""

__version__ = "0.1.0"

from taskledger.core import (
    AmbiguousMatch,
    BlockedDependentsExist,
    ConcurrencyConflict,
    ConfigurationError,
    CycleDetected,
    LedgerConfig,
    LedgerError,
    MalformedRecord,
    NotFound,
    RelationType,
    TaskStatus,
    TaskType,
    ValidationError,
)
from taskledger.tasks import (
    BlockingInfo,
    MutationResult,
    QueryResult,
    Relation,
    Task,
    TaskFilter,
    TaskLedger,
)

__all__ = [
    "__version__",
    # Core enums
    "TaskStatus",
    "TaskType",
    "RelationType",
    # Config
    "LedgerConfig",
    # Models
    "Task",
    "Relation",
    "BlockingInfo",
    # Ledger
    "TaskLedger",
    "TaskFilter",
    "QueryResult",
    "MutationResult",
    # Exceptions
    "LedgerError",
    "ConfigurationError",
    "MalformedRecord",
    "NotFound",
    "AmbiguousMatch",
    "ValidationError",
    "CycleDetected",
    "ConcurrencyConflict",
    "BlockedDependentsExist",
]

"""
Ledger constants and enumerations.

This module defines all constants, enums, and configuration defaults
for the taskledger store.
"""

from enum import Enum
from typing import Final


# =============================================================================
# Task Status Enumeration
# =============================================================================

class TaskStatus(str, Enum):
    """Status of a task record."""

    OPEN = "open"
    IN_PROGRESS = "in-progress"
    BLOCKED = "blocked"
    CLOSED = "closed"
    DELETED = "deleted"

    @classmethod
    def blocking_states(cls) -> tuple["TaskStatus", ...]:
        """Return states that make a task count as an active blocker."""
        return (cls.OPEN, cls.IN_PROGRESS, cls.BLOCKED)

    @classmethod
    def complete_states(cls) -> tuple["TaskStatus", ...]:
        """Return states that indicate the task no longer blocks anything."""
        return (cls.CLOSED, cls.DELETED)

    def is_incomplete(self) -> bool:
        """Check if this status is blocking-capable."""
        return self in self.blocking_states()

    def is_complete(self) -> bool:
        """Check if this status is terminal."""
        return self in self.complete_states()


class TaskType(str, Enum):
    """Kind of work a task represents."""

    TASK = "task"
    BUG = "bug"
    FEATURE = "feature"
    STORY = "story"
    CHORE = "chore"


class RelationType(str, Enum):
    """Type of edge from one task to another."""

    BLOCKED_BY = "blocked-by"
    RELATED = "related"
    DISCOVERED_DURING = "discovered-during"


class SessionEventType(str, Enum):
    """Kind of agent session event recorded on a task."""

    USER_PROMPT = "user-prompt"
    COMPACTION = "compaction"
    SESSION_START = "session-start"


class InsertPosition(str, Enum):
    """Where a record lands in the destination log."""

    START = "start"
    END = "end"


# =============================================================================
# Record Fields
# =============================================================================

REQUIRED_TASK_FIELDS: Final[tuple[str, ...]] = (
    "id",
    "status",
    "title",
    "description",
    "design",
    "category",
    "type",
    "meta",
    "relations",
)
REQUIRED_RELATION_FIELDS: Final[tuple[str, ...]] = ("id", "relates-to", "as-type")

# Status filter value that disables status filtering
STATUS_ANY: Final[str] = "any"


# =============================================================================
# Configuration Defaults
# =============================================================================

CONFIG_FILE_NAME: Final[str] = ".taskledger.json"
TASKS_DIR_ENV_VAR: Final[str] = "TASKLEDGER_DIR"

DEFAULT_TASKS_DIR: Final[str] = ".taskledger"
DEFAULT_ACTIVE_FILE: Final[str] = "tasks.jsonl"
DEFAULT_ARCHIVE_FILE: Final[str] = "complete.jsonl"
LOCK_FILE_NAME: Final[str] = ".lock"

DEFAULT_LOCK_TIMEOUT_MS: Final[int] = 30_000

DEFAULT_QUERY_LIMIT: Final[int] = 5
SHARED_CONTEXT_LIMIT_BYTES: Final[int] = 50 * 1024
SHARED_CONTEXT_PREFIX_TEMPLATE: Final[str] = "Task {task_id}: "
COMPLETION_COMMENT_SEPARATOR: Final[str] = "\n\nCompleted: "

# code-reviewed timestamps are ISO-8601 in UTC with a Z suffix
UTC_TIMESTAMP_FORMAT: Final[str] = "%Y-%m-%dT%H:%M:%SZ"

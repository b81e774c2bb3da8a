"""
Query engine over task snapshots.

Applies an AND-combination of optional predicates to a task list in log
order, attaches blocking annotations from the dependency graph, and
applies limit/unique constraints. The engine never re-sorts: log order
is priority order.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from taskledger.core.constants import (
    DEFAULT_QUERY_LIMIT,
    STATUS_ANY,
    TaskStatus,
    TaskType,
)
from taskledger.core.exceptions import AmbiguousMatch, NotFound, ValidationError
from taskledger.tasks.graph import BlockingInfo
from taskledger.tasks.models import Task

logger = logging.getLogger(__name__)


# =============================================================================
# Query Types
# =============================================================================

@dataclass
class TaskFilter:
    """
    Filters for selecting tasks. All set filters must match.

    Attributes:
        status: Exact status, ``"any"``, or None for incomplete tasks only
        category: Exact category
        type: Exact task type
        parent_id: Exact parent id
        task_id: Exact id; when set, all other predicates are skipped
        title_pattern: Regular expression searched in the title, or a plain
            substring if it does not compile
        blocked: Match the computed blocked state
        limit: Maximum results; None uses the engine default
        unique: Fail with AmbiguousMatch if more than one task matches
    """

    status: Optional[str] = None
    category: Optional[str] = None
    type: Optional[str] = None
    parent_id: Optional[int] = None
    task_id: Optional[int] = None
    title_pattern: Optional[str] = None
    blocked: Optional[bool] = None
    limit: Optional[int] = None
    unique: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.status, TaskStatus):
            self.status = self.status.value
        if isinstance(self.type, TaskType):
            self.type = self.type.value

    def validate(self) -> list[str]:
        """Return a list of parameter errors (empty if valid)."""
        errors = []
        if self.status is not None and self.status != STATUS_ANY:
            allowed = [s.value for s in TaskStatus]
            if self.status not in allowed:
                errors.append(
                    f"status has invalid value {self.status!r} "
                    f"(expected one of: {', '.join(allowed + [STATUS_ANY])})"
                )
        if self.type is not None and self.type not in [t.value for t in TaskType]:
            errors.append(
                f"type has invalid value {self.type!r} "
                f"(expected one of: {', '.join(t.value for t in TaskType)})"
            )
        if self.limit is not None and self.limit <= 0:
            errors.append("limit must be a positive integer (> 0)")
        if self.unique and self.limit is not None and self.limit > 1:
            errors.append("limit must be 1 when unique is true (or omit limit)")
        return errors

    @property
    def includes_archive(self) -> bool:
        """Explicit status (or "any") searches the archive too."""
        return self.status is not None or self.task_id is not None


@dataclass
class QueryMetadata:
    """Counts returned alongside query results."""

    total_matches: int = 0
    returned_count: int = 0
    limited: bool = False
    open_child_count: Optional[int] = None
    completed_child_count: Optional[int] = None
    skipped_lines: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "total-matches": self.total_matches,
            "returned-count": self.returned_count,
            "limited": self.limited,
        }
        if self.open_child_count is not None:
            data["open-child-count"] = self.open_child_count
            data["completed-child-count"] = self.completed_child_count
        if self.skipped_lines:
            data["skipped-lines"] = self.skipped_lines
        return data


@dataclass
class QueryResult:
    """Selected tasks in log order with their annotations."""

    tasks: list[Task] = field(default_factory=list)
    annotations: dict[int, BlockingInfo] = field(default_factory=dict)
    metadata: QueryMetadata = field(default_factory=QueryMetadata)

    @property
    def first(self) -> Optional[Task]:
        return self.tasks[0] if self.tasks else None

    def annotation(self, task_id: int) -> BlockingInfo:
        return self.annotations.get(task_id, BlockingInfo(task_id=task_id))

    def to_dict(self) -> dict[str, Any]:
        """Convert to a mapping with each task merged with its annotation."""
        return {
            "tasks": [
                {**task.to_dict(), **self.annotation(task.id).to_dict()}
                for task in self.tasks
            ],
            "metadata": self.metadata.to_dict(),
        }


# =============================================================================
# Matching Helpers
# =============================================================================

def title_matcher(pattern: Optional[str]) -> Callable[[str], bool]:
    """Build a title predicate: regex search, or substring if the regex is invalid."""
    if pattern is None:
        return lambda title: True
    try:
        compiled = re.compile(pattern)
    except re.error:
        logger.debug("Title pattern %r is not a valid regex, using substring match", pattern)
        return lambda title: pattern in title
    return lambda title: compiled.search(title) is not None


def status_matcher(status: Optional[str]) -> Callable[[Task], bool]:
    if status is None:
        return lambda task: task.is_incomplete()
    if status == STATUS_ANY:
        return lambda task: True
    return lambda task: task.status.value == status


# =============================================================================
# Query Engine
# =============================================================================

class QueryEngine:
    """
    Stateless selector over task lists.

    Args:
        default_limit: Limit applied when a filter does not set one
    """

    def __init__(self, default_limit: int = DEFAULT_QUERY_LIMIT) -> None:
        self._default_limit = default_limit

    def select(
        self,
        tasks: Sequence[Task],
        annotations: dict[int, BlockingInfo],
        filters: Optional[TaskFilter] = None,
        all_tasks: Optional[Sequence[Task]] = None,
    ) -> QueryResult:
        """
        Select tasks matching ``filters``.

        Args:
            tasks: Candidate tasks in priority (log) order
            annotations: Blocking annotations keyed by task id
            filters: Predicates, limit and unique flag
            all_tasks: Tasks of both logs, used for child counts; defaults
                to ``tasks``

        Raises:
            ValidationError: On invalid filter parameters
            AmbiguousMatch: If ``unique`` is set and more than one task matches
            NotFound: If ``unique`` and ``task_id`` are set and nothing matches
        """
        filters = filters or TaskFilter()
        errors = filters.validate()
        if errors:
            raise ValidationError("Invalid query parameters", errors=errors)

        matches = self._match(tasks, annotations, filters)
        total = len(matches)

        if filters.unique:
            if total > 1:
                raise AmbiguousMatch(
                    f"{total} tasks matched but a unique match was required",
                    matching_ids=[t.id for t in matches],
                )
            if total == 0 and filters.task_id is not None:
                raise NotFound(
                    f"No task found with id {filters.task_id}",
                    task_id=filters.task_id,
                )

        limit = 1 if filters.unique else (filters.limit or self._default_limit)
        selected = matches[:limit]

        metadata = QueryMetadata(
            total_matches=total,
            returned_count=len(selected),
            limited=total > len(selected),
        )
        if filters.parent_id is not None:
            children = [
                t for t in (all_tasks if all_tasks is not None else tasks)
                if t.parent_id == filters.parent_id
            ]
            metadata.open_child_count = sum(1 for t in children if t.is_incomplete())
            metadata.completed_child_count = sum(
                1 for t in children if t.status == TaskStatus.CLOSED
            )

        return QueryResult(
            tasks=selected,
            annotations={t.id: annotations.get(t.id, BlockingInfo(task_id=t.id)) for t in selected},
            metadata=metadata,
        )

    def _match(
        self,
        tasks: Sequence[Task],
        annotations: dict[int, BlockingInfo],
        filters: TaskFilter,
    ) -> list[Task]:
        if filters.task_id is not None:
            return [t for t in tasks if t.id == filters.task_id][:1]

        status_ok = status_matcher(filters.status)
        title_ok = title_matcher(filters.title_pattern)

        def blocked_ok(task: Task) -> bool:
            if filters.blocked is None:
                return True
            info = annotations.get(task.id)
            return (info.is_blocked if info else False) == filters.blocked

        return [
            task for task in tasks
            if status_ok(task)
            and (filters.category is None or task.category == filters.category)
            and (filters.type is None or task.type.value == filters.type)
            and (filters.parent_id is None or task.parent_id == filters.parent_id)
            and title_ok(task.title)
            and blocked_ok(task)
        ]

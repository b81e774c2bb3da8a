"""
Lifecycle operations over the task ledger.

``TaskLedger`` is the public entry point: it reads fresh snapshots for
queries and runs add/update/complete/delete/reopen as locked
read-validate-write transitions over the line store. Nothing is cached
between calls, so any number of processes can share one tasks directory.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

from taskledger.core.config import LedgerConfig
from taskledger.core.constants import (
    COMPLETION_COMMENT_SEPARATOR,
    SHARED_CONTEXT_PREFIX_TEMPLATE,
    InsertPosition,
    RelationType,
    UTC_TIMESTAMP_FORMAT,
    TaskStatus,
    TaskType,
)
from taskledger.core.exceptions import (
    AmbiguousMatch,
    BlockedDependentsExist,
    CycleDetected,
    NotFound,
    ValidationError,
)
from taskledger.tasks.graph import BlockingInfo, DependencyGraph
from taskledger.tasks.line_store import LineStore, Snapshot
from taskledger.tasks.models import Relation, Task, session_event_errors
from taskledger.tasks.query import QueryEngine, QueryResult, TaskFilter, title_matcher

logger = logging.getLogger(__name__)


UPDATABLE_FIELDS = frozenset({
    "title",
    "description",
    "design",
    "category",
    "type",
    "status",
    "meta",
    "relations",
    "parent_id",
    "shared_context",
    "session_events",
    "code_reviewed",
    "pr_num",
})


# =============================================================================
# Helpers
# =============================================================================

def next_id(tasks: Iterable[Task], reserved_ids: Iterable[int] = ()) -> int:
    """
    Next task id: one more than the largest id in ``tasks``.

    ``reserved_ids`` are ids held by lines that no longer decode; they
    still count so a repaired line never collides with a newer task.
    """
    ids = [task.id for task in tasks] + list(reserved_ids)
    return max(ids, default=0) + 1


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).strftime(UTC_TIMESTAMP_FORMAT)


def normalize_title(title: str) -> str:
    """Collapse whitespace and case-fold a title for comparison."""
    return " ".join(title.split()).casefold()


def build_relations(raw_relations: Iterable[Any]) -> list[Relation]:
    """
    Build Relation records from Relation objects or mappings.

    Mappings may use ``relates-to``/``as-type`` or ``relates_to``/``as_type``
    keys. A missing ``id`` is numbered after the highest id seen so far.
    """
    relations: list[Relation] = []
    errors: list[str] = []
    pending_ids: list[int] = []

    for index, raw in enumerate(raw_relations):
        if isinstance(raw, Relation):
            relations.append(raw)
            continue
        if not isinstance(raw, dict):
            errors.append(f"relations[{index}] must be a mapping")
            continue

        relates_to = raw.get("relates-to", raw.get("relates_to"))
        as_type = raw.get("as-type", raw.get("as_type", RelationType.BLOCKED_BY.value))
        if isinstance(relates_to, bool) or not isinstance(relates_to, int):
            errors.append(f"relations[{index}].relates-to must be an integer")
            continue
        try:
            as_type = RelationType(as_type)
        except ValueError:
            allowed = ", ".join(r.value for r in RelationType)
            errors.append(
                f"relations[{index}].as-type has invalid value {as_type!r} "
                f"(expected one of: {allowed})"
            )
            continue

        relation_id = raw.get("id")
        if relation_id is None:
            pending_ids.append(len(relations))
            relation_id = 0
        relations.append(Relation(id=relation_id, relates_to=relates_to, as_type=as_type))

    if errors:
        raise ValidationError("Invalid relations", errors=errors)

    highest = max((r.id for r in relations if isinstance(r.id, int)), default=0)
    for position in pending_ids:
        highest += 1
        relations[position].id = highest
    return relations


def _coerce_enum(enum_cls: Any, value: Any, name: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"Invalid {name}",
            errors=[f"{name} has invalid value {value!r} (expected one of: {allowed})"],
        ) from None


# =============================================================================
# Results
# =============================================================================

@dataclass
class MutationResult:
    """
    Outcome of a lifecycle operation.

    ``modified_files`` names the log files (relative to the tasks
    directory) that the operation rewrote, for a caller that commits them
    to version control.
    """

    operation: str
    task: Task
    message: str
    modified_files: list[str] = field(default_factory=list)
    archived_children: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "operation": self.operation,
            "message": self.message,
            "task": self.task.to_dict(),
            "modified-files": list(self.modified_files),
        }
        if self.archived_children:
            data["archived-children"] = list(self.archived_children)
        return data


# =============================================================================
# Task Ledger
# =============================================================================

class TaskLedger:
    """
    Task store with dependency-aware queries and atomic lifecycle operations.

    Args:
        config: Ledger configuration; defaults to ``LedgerConfig.load()``
        store: Pre-built line store (mainly for tests)
    """

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        store: Optional[LineStore] = None,
    ) -> None:
        self._config = config or LedgerConfig.load()
        self._store = store or LineStore(
            self._config.active_path,
            self._config.archive_path,
            lock_timeout=self._config.lock_timeout,
        )
        self._engine = QueryEngine(default_limit=self._config.default_limit)

    @classmethod
    def at(cls, tasks_dir: Path, **overrides: Any) -> "TaskLedger":
        """Open a ledger rooted at an explicit tasks directory."""
        config = LedgerConfig(tasks_dir=str(Path(tasks_dir).resolve()), **overrides)
        return cls(config)

    @property
    def config(self) -> LedgerConfig:
        return self._config

    @property
    def store(self) -> LineStore:
        return self._store

    @property
    def _active_name(self) -> str:
        return self._store.active_path.name

    @property
    def _archive_name(self) -> str:
        return self._store.archive_path.name

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def snapshot(self) -> Snapshot:
        """Read both logs without taking the lock."""
        return self._store.snapshot()

    def blocking(self, snapshot: Optional[Snapshot] = None) -> dict[int, BlockingInfo]:
        """Blocking annotations for every active task."""
        snapshot = snapshot or self.snapshot()
        return DependencyGraph(snapshot.active).compute()

    def select(self, filters: Optional[TaskFilter] = None, **kwargs: Any) -> QueryResult:
        """
        Query tasks.

        Accepts a TaskFilter or its fields as keyword arguments. Without an
        explicit status only the active log is searched.
        """
        if filters is None:
            filters = TaskFilter(**kwargs)
        elif kwargs:
            raise TypeError("pass either a TaskFilter or keyword filters, not both")

        snapshot = self.snapshot()
        annotations = self.blocking(snapshot)
        candidates = snapshot.all_tasks if filters.includes_archive else snapshot.active

        result = self._engine.select(
            candidates,
            annotations,
            filters,
            all_tasks=snapshot.all_tasks,
        )
        result.metadata.skipped_lines = len(snapshot.errors)
        return result

    def get(self, task_id: int) -> Optional[Task]:
        """Find a task by id in either log."""
        snapshot = self.snapshot()
        return snapshot.find_active(task_id) or snapshot.find_archived(task_id)

    def find_by_title(self, title: str) -> list[Task]:
        """All tasks in either log whose normalized title equals ``title``."""
        wanted = normalize_title(title)
        return [t for t in self.snapshot().all_tasks if normalize_title(t.title) == wanted]

    def next_task(
        self,
        category: Optional[str] = None,
        parent_id: Optional[int] = None,
        title_pattern: Optional[str] = None,
    ) -> Optional[Task]:
        """First incomplete, unblocked task in priority order."""
        result = self.select(
            TaskFilter(
                category=category,
                parent_id=parent_id,
                title_pattern=title_pattern,
                blocked=False,
                limit=1,
            )
        )
        return result.first

    # -------------------------------------------------------------------------
    # Add
    # -------------------------------------------------------------------------

    def add(
        self,
        title: str,
        *,
        description: str = "",
        design: str = "",
        category: str = "",
        type: str | TaskType = TaskType.TASK,
        status: str | TaskStatus = TaskStatus.OPEN,
        meta: Optional[dict[str, Any]] = None,
        relations: Optional[Iterable[Any]] = None,
        parent_id: Optional[int] = None,
        shared_context: Optional[list[str]] = None,
        prepend: bool = False,
    ) -> MutationResult:
        """
        Create a task with the next free id.

        Relations are stored as given; blocked-by targets need not exist yet.

        Raises:
            ValidationError: On invalid fields or a missing parent
        """
        task_type = _coerce_enum(TaskType, type, "type")
        task_status = _coerce_enum(TaskStatus, status, "status")
        built_relations = build_relations(relations or [])

        with self._store.lock():
            self._store.recover()
            snapshot = self._store.snapshot()

            if parent_id is not None and not self._exists(snapshot, parent_id):
                raise ValidationError(
                    "Parent task not found",
                    errors=[f"parent-id {parent_id} does not exist"],
                )

            task = Task(
                id=next_id(snapshot.all_tasks, snapshot.reserved_ids),
                title=title,
                status=task_status,
                description=description,
                design=design,
                category=category,
                type=task_type,
                meta=self._coerce_meta(meta),
                relations=built_relations,
                parent_id=parent_id,
                shared_context=list(shared_context) if shared_context is not None else None,
            )
            errors = task.validate()
            if errors:
                raise ValidationError("Invalid task", errors=errors)
            self._check_size_limits(task)

            if prepend:
                self._store.prepend(self._store.active_path, task)
            else:
                self._store.append(self._store.active_path, task)

        logger.info("Added task %s: %s", task.id, task.title)
        return MutationResult(
            operation="add",
            task=task,
            message=f"Task {task.id} created",
            modified_files=[self._active_name],
        )

    # -------------------------------------------------------------------------
    # Update
    # -------------------------------------------------------------------------

    def update(
        self,
        task_id: int,
        /,
        *,
        acting_task_id: Optional[int] = None,
        **changes: Any,
    ) -> MutationResult:
        """
        Change selected fields of an active task.

        Only the given fields change. ``meta`` and ``relations`` replace the
        stored values; ``shared_context`` entries (a string or list of
        strings) are prepended newest-first, each prefixed with
        ``"Task <acting_task_id>: "`` when an acting task is given.
        ``session_events`` (a mapping or list of mappings) are appended, and
        an event without a ``timestamp`` gets the current UTC time.
        ``code_reviewed`` must be an ISO-8601 UTC timestamp. Passing
        ``None`` for ``parent_id``, ``code_reviewed`` or ``pr_num`` clears it.

        Raises:
            NotFound: If the task is not in the active log
            ValidationError: On unknown or invalid fields, or an oversized
                shared context or session event list
            CycleDetected: If new relations would put the task on a
                blocked-by cycle
        """
        if "id" in changes:
            raise ValidationError("Task id is immutable", errors=["id cannot be updated"])
        unknown = sorted(set(changes) - UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(
                "Unknown task fields",
                errors=[f"unknown field: {name}" for name in unknown],
            )

        with self._store.lock():
            self._store.recover()
            snapshot = self._store.snapshot()
            current = snapshot.find_active(task_id)
            if current is None:
                if snapshot.find_archived(task_id) is not None:
                    raise NotFound(
                        f"Task {task_id} is archived; reopen it before updating",
                        task_id=task_id,
                    )
                raise NotFound(f"Task {task_id} not found", task_id=task_id)

            updated = self._apply_changes(current, changes, acting_task_id)

            errors = updated.validate()
            if errors:
                raise ValidationError("Invalid task after update", errors=errors)
            if "parent_id" in changes and updated.parent_id is not None:
                if not self._exists(snapshot, updated.parent_id):
                    raise ValidationError(
                        "Parent task not found",
                        errors=[f"parent-id {updated.parent_id} does not exist"],
                    )
            self._check_size_limits(updated)

            if "relations" in changes:
                graph = DependencyGraph(
                    [updated if t.id == task_id else t for t in snapshot.active]
                )
                cycle = graph.cycle_through(task_id)
                if cycle:
                    raise CycleDetected(
                        "Circular dependency detected: "
                        + " -> ".join(str(i) for i in cycle + [cycle[0]]),
                        cycle=cycle,
                    )

            self._store.replace(self._store.active_path, updated)

        logger.info("Updated task %s fields %s", task_id, sorted(changes))
        return MutationResult(
            operation="update",
            task=updated,
            message=f"Task {task_id} updated",
            modified_files=[self._active_name],
        )

    def _apply_changes(
        self,
        task: Task,
        changes: dict[str, Any],
        acting_task_id: Optional[int],
    ) -> Task:
        updated = task.copy()
        for name, value in changes.items():
            if name == "type":
                updated.type = _coerce_enum(TaskType, value, "type")
            elif name == "status":
                updated.status = _coerce_enum(TaskStatus, value, "status")
            elif name == "meta":
                updated.meta = self._coerce_meta(value)
            elif name == "relations":
                updated.relations = build_relations(value or [])
            elif name == "shared_context":
                entries = self._prefixed_entries(value, acting_task_id)
                if entries:
                    updated.shared_context = entries + (updated.shared_context or [])
            elif name == "session_events":
                events = self._timestamped_events(value)
                if events:
                    updated.session_events = (updated.session_events or []) + events
            else:
                setattr(updated, name, value)
        return updated

    @staticmethod
    def _timestamped_events(value: Any) -> list[dict[str, str]]:
        if value is None:
            return []
        raw_events = [value] if isinstance(value, dict) else list(value)
        if not all(isinstance(event, dict) for event in raw_events):
            raise ValidationError(
                "Invalid session event(s)",
                errors=["session-events entries must be mappings"],
            )

        events = []
        errors = []
        for index, raw in enumerate(raw_events):
            event = {str(k).replace("_", "-"): v for k, v in raw.items()}
            event.setdefault("timestamp", utc_timestamp())
            errors.extend(session_event_errors(event, f"session-events[{index}]"))
            events.append(event)
        if errors:
            raise ValidationError("Invalid session event(s)", errors=errors)
        return events

    @staticmethod
    def _prefixed_entries(value: Any, acting_task_id: Optional[int]) -> list[str]:
        if value is None:
            return []
        entries = [value] if isinstance(value, str) else list(value)
        if not all(isinstance(entry, str) for entry in entries):
            raise ValidationError(
                "Invalid shared context",
                errors=["shared-context entries must be strings"],
            )
        entries = [entry for entry in entries if entry.strip()]
        if acting_task_id is None:
            return entries
        prefix = SHARED_CONTEXT_PREFIX_TEMPLATE.format(task_id=acting_task_id)
        return [prefix + entry for entry in entries]

    # -------------------------------------------------------------------------
    # Complete
    # -------------------------------------------------------------------------

    def complete(
        self,
        task_id: Optional[int] = None,
        *,
        title: Optional[str] = None,
        category: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> MutationResult:
        """
        Close an active task and move it to the end of the archive.

        The task is found by id, or by category and title prefix. A supplied
        title must match the task's title (case-insensitive, whitespace
        normalized, prefix allowed). Completing a story requires all its
        active children to be complete; closed children still in the active
        log are archived with it.

        Raises:
            NotFound: If no active task matches
            AmbiguousMatch: If a title lookup matches several tasks
            ValidationError: On a title/category mismatch, an already closed
                task, or a story with incomplete children
        """
        if task_id is None and not title:
            raise ValidationError(
                "Task id or title required",
                errors=["provide task_id or title"],
            )

        with self._store.lock():
            self._store.recover()
            snapshot = self._store.snapshot()
            task = self._locate_for_completion(snapshot, task_id, title, category)

            if task.is_complete():
                raise ValidationError(
                    f"Task {task.id} is already {task.status.value}",
                    errors=[f"status is {task.status.value}"],
                )

            children = [t for t in snapshot.active if t.parent_id == task.id]
            if task.type == TaskType.STORY:
                unfinished = [t for t in children if t.is_incomplete()]
                if unfinished:
                    raise ValidationError(
                        f"Cannot complete story: {len(unfinished)} child task(s) not closed",
                        errors=[f"child {t.id} is {t.status.value}" for t in unfinished],
                    )
                archived_children = [t for t in children if t.is_complete()]
            else:
                archived_children = []

            closed = task.copy(status=TaskStatus.CLOSED)
            if comment and comment.strip():
                closed.description = task.description + COMPLETION_COMMENT_SEPARATOR + comment

            self._store.move(
                [closed, *archived_children],
                self._store.active_path,
                self._store.archive_path,
                at=InsertPosition.END,
            )

        logger.info("Completed task %s", closed.id)
        message = f"Task {closed.id} completed and archived"
        if archived_children:
            message += f" with {len(archived_children)} child task(s)"
        return MutationResult(
            operation="complete",
            task=closed,
            message=message,
            modified_files=[self._active_name, self._archive_name],
            archived_children=[t.id for t in archived_children],
        )

    def _locate_for_completion(
        self,
        snapshot: Snapshot,
        task_id: Optional[int],
        title: Optional[str],
        category: Optional[str],
    ) -> Task:
        if task_id is not None:
            task = snapshot.find_active(task_id)
            if task is None:
                archived = snapshot.find_archived(task_id)
                if archived is not None:
                    raise ValidationError(
                        f"Task {task_id} is already {archived.status.value}",
                        errors=["task is archived"],
                    )
                raise NotFound(f"Task {task_id} not found", task_id=task_id, title=title)
            if title is not None and not normalize_title(task.title).startswith(normalize_title(title)):
                raise ValidationError(
                    "Task title does not match",
                    errors=[f"expected title {title!r}, task {task_id} is titled {task.title!r}"],
                )
            if category is not None and task.category != category:
                raise ValidationError(
                    "Task category does not match",
                    errors=[f"expected category {category!r}, got {task.category!r}"],
                )
            return task

        wanted = normalize_title(title or "")
        candidates = [
            t for t in snapshot.active
            if t.is_incomplete()
            and (category is None or t.category == category)
            and normalize_title(t.title).startswith(wanted)
        ]
        exact = [t for t in candidates if normalize_title(t.title) == wanted]
        if len(exact) == 1:
            return exact[0]
        if not candidates:
            raise NotFound(f"No active task titled {title!r}", title=title)
        if len(candidates) > 1:
            raise AmbiguousMatch(
                f"Title {title!r} matches {len(candidates)} tasks",
                matching_ids=[t.id for t in candidates],
            )
        return candidates[0]

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    def delete(
        self,
        task_id: Optional[int] = None,
        *,
        title_pattern: Optional[str] = None,
        force: bool = False,
    ) -> MutationResult:
        """
        Soft-delete a task: set status ``deleted`` and keep it in the archive.

        Refuses when incomplete tasks are blocked by it or are its children,
        unless ``force`` is set.

        Raises:
            NotFound: If nothing matches
            AmbiguousMatch: If the title pattern matches several tasks
            ValidationError: If the task is already deleted
            BlockedDependentsExist: If dependents exist and ``force`` is False
        """
        if task_id is None and not title_pattern:
            raise ValidationError(
                "Task id or title pattern required",
                errors=["provide task_id or title_pattern"],
            )

        with self._store.lock():
            self._store.recover()
            snapshot = self._store.snapshot()
            task, archived = self._locate_for_delete(snapshot, task_id, title_pattern)

            if task.status == TaskStatus.DELETED:
                raise ValidationError(
                    f"Task {task.id} is already deleted",
                    errors=["status is deleted"],
                )

            dependents = DependencyGraph(snapshot.active).dependents_of(task.id)
            children = [
                t.id for t in snapshot.active
                if t.parent_id == task.id and t.is_incomplete()
            ]
            if (dependents or children) and not force:
                raise BlockedDependentsExist(
                    f"Task {task.id} has incomplete dependents; pass force to delete anyway",
                    task_id=task.id,
                    dependents=dependents,
                    children=children,
                )

            deleted = task.copy(status=TaskStatus.DELETED)
            if archived:
                self._store.replace(self._store.archive_path, deleted)
                modified = [self._archive_name]
            else:
                self._store.move(
                    deleted,
                    self._store.active_path,
                    self._store.archive_path,
                    at=InsertPosition.END,
                )
                modified = [self._active_name, self._archive_name]

        if dependents or children:
            logger.warning(
                "Force-deleted task %s with dependents %s and children %s",
                task.id, dependents, children,
            )
        logger.info("Deleted task %s", task.id)
        return MutationResult(
            operation="delete",
            task=deleted,
            message=f"Task {task.id} deleted",
            modified_files=modified,
        )

    @staticmethod
    def _locate_for_delete(
        snapshot: Snapshot,
        task_id: Optional[int],
        title_pattern: Optional[str],
    ) -> tuple[Task, bool]:
        located: list[tuple[Task, bool]] = [
            (t, False) for t in snapshot.active
        ] + [(t, True) for t in snapshot.archive]

        if task_id is not None:
            located = [(t, archived) for t, archived in located if t.id == task_id]
        if title_pattern:
            matches = title_matcher(title_pattern)
            located = [(t, archived) for t, archived in located if matches(t.title)]
            if task_id is None:
                live = [(t, a) for t, a in located if t.status != TaskStatus.DELETED]
                located = live or located

        if not located:
            raise NotFound(
                f"No task found for id={task_id} title-pattern={title_pattern!r}",
                task_id=task_id,
                title=title_pattern,
            )
        if len(located) > 1:
            raise AmbiguousMatch(
                f"Title pattern {title_pattern!r} matches {len(located)} tasks",
                matching_ids=[t.id for t, _ in located],
            )
        return located[0]

    # -------------------------------------------------------------------------
    # Reopen
    # -------------------------------------------------------------------------

    def reopen(
        self,
        task_id: Optional[int] = None,
        *,
        title: Optional[str] = None,
    ) -> MutationResult:
        """
        Reopen a closed task with status ``open``.

        A closed task still in the active log is flipped in place; an
        archived one is moved to the end of the active log. All other
        fields are preserved.

        Raises:
            NotFound: If no task matches
            AmbiguousMatch: If the title matches several closed tasks
            ValidationError: If the task is not closed
        """
        if task_id is None and not title:
            raise ValidationError(
                "Task id or title required",
                errors=["provide task_id or title"],
            )

        with self._store.lock():
            self._store.recover()
            snapshot = self._store.snapshot()
            task, archived = self._locate_for_reopen(snapshot, task_id, title)

            reopened = task.copy(status=TaskStatus.OPEN)
            if archived:
                self._store.move(
                    reopened,
                    self._store.archive_path,
                    self._store.active_path,
                    at=InsertPosition.END,
                )
                modified = [self._active_name, self._archive_name]
            else:
                self._store.replace(self._store.active_path, reopened)
                modified = [self._active_name]

        logger.info("Reopened task %s", reopened.id)
        return MutationResult(
            operation="reopen",
            task=reopened,
            message=f"Task {reopened.id} reopened",
            modified_files=modified,
        )

    @staticmethod
    def _locate_for_reopen(
        snapshot: Snapshot,
        task_id: Optional[int],
        title: Optional[str],
    ) -> tuple[Task, bool]:
        located: list[tuple[Task, bool]] = [
            (t, False) for t in snapshot.active
        ] + [(t, True) for t in snapshot.archive]

        if task_id is not None:
            located = [(t, a) for t, a in located if t.id == task_id]
        if title:
            wanted = normalize_title(title)
            located = [(t, a) for t, a in located if normalize_title(t.title) == wanted]

        if task_id is None:
            closed = [(t, a) for t, a in located if t.status == TaskStatus.CLOSED]
            located = closed or located

        if not located:
            raise NotFound(
                f"No task found for id={task_id} title={title!r}",
                task_id=task_id,
                title=title,
            )
        if len(located) > 1:
            raise AmbiguousMatch(
                f"Title {title!r} matches {len(located)} tasks",
                matching_ids=[t.id for t, _ in located],
            )

        task, archived = located[0]
        if task.status != TaskStatus.CLOSED:
            raise ValidationError(
                f"Task {task.id} is not closed",
                errors=[f"status is {task.status.value}"],
            )
        return task, archived

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    @staticmethod
    def _exists(snapshot: Snapshot, task_id: int) -> bool:
        return any(t.id == task_id for t in snapshot.all_tasks)

    @staticmethod
    def _coerce_meta(meta: Optional[dict[Any, Any]]) -> dict[str, str]:
        if meta is None:
            return {}
        if not isinstance(meta, dict):
            raise ValidationError("Invalid meta", errors=["meta must be a mapping"])
        return {str(k): str(v) for k, v in meta.items()}

    def _check_size_limits(self, task: Task) -> None:
        """Shared context and session events share the same size cap."""
        limit = self._config.shared_context_limit_bytes
        for name, value, advice in (
            ("shared-context", task.shared_context, "summarize or remove old entries"),
            ("session-events", task.session_events, "archive old events"),
        ):
            if value is None:
                continue
            size = len(json.dumps(value, ensure_ascii=False).encode("utf-8"))
            if size > limit:
                label = name.replace("-", " ").capitalize()
                raise ValidationError(
                    f"{label} size limit exceeded; {advice}",
                    errors=[f"{name} is {size} bytes, limit is {limit}"],
                )

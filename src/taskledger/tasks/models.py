"""
Task data models.

This module defines the closed record types stored in the ledger:
Task and Relation. Both are plain dataclasses; enum-typed fields accept
their string values and are normalized in ``__post_init__``.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Optional

from taskledger.core.constants import (
    RelationType,
    SessionEventType,
    TaskStatus,
    TaskType,
)


# =============================================================================
# Relation Model
# =============================================================================

@dataclass
class Relation:
    """A typed edge from the owning task to another task."""

    id: int
    relates_to: int
    as_type: RelationType = RelationType.RELATED

    def __post_init__(self) -> None:
        if isinstance(self.as_type, str) and not isinstance(self.as_type, RelationType):
            self.as_type = RelationType(self.as_type)

    @property
    def is_blocking(self) -> bool:
        return self.as_type == RelationType.BLOCKED_BY

    def to_dict(self) -> dict[str, Any]:
        """Convert relation to its on-disk mapping."""
        return {
            "id": self.id,
            "relates-to": self.relates_to,
            "as-type": self.as_type.value,
        }


# =============================================================================
# Main Task Model
# =============================================================================

@dataclass
class Task:
    """
    A unit of trackable work.

    ``id`` is assigned by the ledger on add and never changes afterwards.
    ``shared_context`` is kept newest-first and is ``None`` when the task
    has never received an entry.
    ``session_events`` is kept oldest-first; each event is a string mapping
    with at least ``event-type`` and ``timestamp``.
    """

    id: int
    title: str
    status: TaskStatus = TaskStatus.OPEN
    description: str = ""
    design: str = ""
    category: str = ""
    type: TaskType = TaskType.TASK
    meta: dict[str, str] = field(default_factory=dict)
    relations: list[Relation] = field(default_factory=list)
    parent_id: Optional[int] = None
    shared_context: Optional[list[str]] = None
    session_events: Optional[list[dict[str, str]]] = None
    code_reviewed: Optional[str] = None
    pr_num: Optional[int] = None

    def __post_init__(self) -> None:
        """Normalize enum values and nested relations."""
        if isinstance(self.status, str) and not isinstance(self.status, TaskStatus):
            self.status = TaskStatus(self.status)
        if isinstance(self.type, str) and not isinstance(self.type, TaskType):
            self.type = TaskType(self.type)

        normalized = []
        for relation in self.relations:
            if isinstance(relation, dict):
                normalized.append(
                    Relation(
                        id=relation["id"],
                        relates_to=relation.get("relates-to", relation.get("relates_to")),
                        as_type=relation.get("as-type", relation.get("as_type")),
                    )
                )
            else:
                normalized.append(relation)
        self.relations = normalized

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def is_incomplete(self) -> bool:
        """Check if this task can block others."""
        return self.status.is_incomplete()

    def is_complete(self) -> bool:
        return self.status.is_complete()

    # -------------------------------------------------------------------------
    # Relations
    # -------------------------------------------------------------------------

    def blocked_by_ids(self) -> list[int]:
        """Targets of this task's blocked-by relations, in relation order."""
        return [r.relates_to for r in self.relations if r.is_blocking]

    # -------------------------------------------------------------------------
    # Copy / Serialization
    # -------------------------------------------------------------------------

    def copy(self, **changes: Any) -> "Task":
        """Return an independent copy with the given fields replaced."""
        base = replace(
            self,
            meta=dict(self.meta),
            relations=[replace(r) for r in self.relations],
            shared_context=(
                list(self.shared_context) if self.shared_context is not None else None
            ),
            session_events=(
                [dict(event) for event in self.session_events]
                if self.session_events is not None
                else None
            ),
        )
        return replace(base, **changes) if changes else base

    def to_dict(self) -> dict[str, Any]:
        """Convert task to its on-disk mapping."""
        data: dict[str, Any] = {
            "id": self.id,
            "status": self.status.value,
            "title": self.title,
            "description": self.description,
            "design": self.design,
            "category": self.category,
            "type": self.type.value,
            "meta": dict(self.meta),
            "relations": [r.to_dict() for r in self.relations],
        }
        if self.parent_id is not None:
            data["parent-id"] = self.parent_id
        if self.shared_context is not None:
            data["shared-context"] = list(self.shared_context)
        if self.session_events is not None:
            data["session-events"] = [dict(event) for event in self.session_events]
        if self.code_reviewed is not None:
            data["code-reviewed"] = self.code_reviewed
        if self.pr_num is not None:
            data["pr-num"] = self.pr_num
        return data

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate(self) -> list[str]:
        """
        Validate task data.

        Returns a list of validation errors (empty if valid).
        """
        errors = []

        if not _is_int(self.id) or self.id < 1:
            errors.append(f"id must be a positive integer, got {self.id!r}")
        if self.parent_id is not None and not _is_int(self.parent_id):
            errors.append(f"parent-id must be an integer, got {self.parent_id!r}")
        if self.parent_id is not None and self.parent_id == self.id:
            errors.append("parent-id cannot reference the task itself")

        for name in ("title", "description", "design", "category"):
            if not isinstance(getattr(self, name), str):
                errors.append(f"{name} must be a string")
        if isinstance(self.title, str) and not self.title.strip():
            errors.append("title is required")

        if not isinstance(self.meta, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in self.meta.items()
        ):
            errors.append("meta must map strings to strings")

        seen_relation_ids: set[int] = set()
        for index, relation in enumerate(self.relations):
            if not _is_int(relation.id) or not _is_int(relation.relates_to):
                errors.append(f"relations[{index}] id and relates-to must be integers")
                continue
            if relation.id in seen_relation_ids:
                errors.append(f"relations[{index}] duplicate relation id {relation.id}")
            seen_relation_ids.add(relation.id)

        if self.shared_context is not None and not (
            isinstance(self.shared_context, list)
            and all(isinstance(entry, str) for entry in self.shared_context)
        ):
            errors.append("shared-context must be a list of strings")

        if self.session_events is not None:
            if not isinstance(self.session_events, list):
                errors.append("session-events must be a list")
            else:
                for index, event in enumerate(self.session_events):
                    errors.extend(session_event_errors(event, f"session-events[{index}]"))
        if self.code_reviewed is not None and not is_utc_timestamp(self.code_reviewed):
            errors.append(
                f"code-reviewed must be an ISO-8601 UTC timestamp such as "
                f"2025-01-15T10:30:00Z, got {self.code_reviewed!r}"
            )
        if self.pr_num is not None and (not _is_int(self.pr_num) or self.pr_num < 1):
            errors.append(f"pr-num must be a positive integer, got {self.pr_num!r}")

        return errors


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_utc_timestamp(value: Any) -> bool:
    """Check for an ISO-8601 date-time in UTC written with a ``Z`` suffix."""
    if not isinstance(value, str) or "T" not in value or not value.endswith("Z"):
        return False
    try:
        datetime.fromisoformat(value[:-1] + "+00:00")
    except ValueError:
        return False
    return True


def session_event_errors(event: Any, label: str) -> list[str]:
    """Validate one stored session event; returns error strings."""
    if not isinstance(event, dict):
        return [f"{label} must be a mapping"]

    errors = []
    if not all(isinstance(k, str) and isinstance(v, str) for k, v in event.items()):
        errors.append(f"{label} must map strings to strings")
    allowed = [t.value for t in SessionEventType]
    if event.get("event-type") not in allowed:
        errors.append(
            f"{label}.event-type has invalid value {event.get('event-type')!r} "
            f"(expected one of: {', '.join(allowed)})"
        )
    if "timestamp" not in event:
        errors.append(f"{label}.timestamp is required")
    return errors

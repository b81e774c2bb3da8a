"""
Record codec for the line-oriented task logs.

Each task is stored as one JSON object on a single line. ``json.dumps``
escapes control characters inside strings, so an encoded record never
contains a raw newline and "one line" always means "one record".
"""

import json
from typing import Any, Optional

from taskledger.core.constants import (
    REQUIRED_RELATION_FIELDS,
    REQUIRED_TASK_FIELDS,
    RelationType,
    TaskStatus,
    TaskType,
)
from taskledger.core.exceptions import MalformedRecord
from taskledger.tasks.models import Relation, Task, is_utc_timestamp, session_event_errors


def encode(task: Task) -> str:
    """Serialize a task to a single line (without trailing newline)."""
    return json.dumps(task.to_dict(), ensure_ascii=False, separators=(",", ":"))


def decode(line: str) -> Task:
    """
    Parse one line into a Task.

    Raises:
        MalformedRecord: On bytes that are not UTF-8, invalid JSON,
            missing required fields, wrong field types or enum values
            outside their domain.
    """
    try:
        line.encode("utf-8")
    except UnicodeEncodeError as e:
        raise MalformedRecord(
            f"Invalid UTF-8 at column {e.start + 1}", field="record", value=None
        ) from None
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise MalformedRecord(f"Invalid JSON: {e.msg}") from e
    return task_from_dict(data)


def peek_id(line: str) -> Optional[int]:
    """Integer id of a line that failed to decode, if it still carries one."""
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    value = data.get("id")
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def task_from_dict(data: Any) -> Task:
    """Build a Task from its on-disk mapping, validating every field."""
    if not isinstance(data, dict):
        raise MalformedRecord(
            "Record must be a JSON object", field="record", value=type(data).__name__
        )

    missing = [name for name in REQUIRED_TASK_FIELDS if name not in data]
    if missing:
        raise MalformedRecord(
            f"Missing required field(s): {', '.join(missing)}",
            field=missing[0],
            value=None,
        )

    task_id = _require_int(data, "id")
    status = _require_enum(data, "status", TaskStatus)
    task_type = _require_enum(data, "type", TaskType)
    strings = {name: _require_str(data, name) for name in ("title", "description", "design", "category")}

    meta = data["meta"]
    if not isinstance(meta, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in meta.items()
    ):
        raise MalformedRecord("meta must map strings to strings", field="meta", value=meta)

    raw_relations = data["relations"]
    if not isinstance(raw_relations, list):
        raise MalformedRecord("relations must be a list", field="relations", value=raw_relations)
    relations = [_relation_from_dict(raw, index) for index, raw in enumerate(raw_relations)]

    parent_id = data.get("parent-id")
    if parent_id is not None:
        parent_id = _require_int(data, "parent-id")

    shared_context = data.get("shared-context")
    if shared_context is not None and not (
        isinstance(shared_context, list) and all(isinstance(e, str) for e in shared_context)
    ):
        raise MalformedRecord(
            "shared-context must be a list of strings",
            field="shared-context",
            value=shared_context,
        )

    session_events = data.get("session-events")
    if session_events is not None:
        if not isinstance(session_events, list):
            raise MalformedRecord(
                "session-events must be a list", field="session-events", value=session_events
            )
        for index, event in enumerate(session_events):
            errors = session_event_errors(event, f"session-events[{index}]")
            if errors:
                raise MalformedRecord(errors[0], field=f"session-events[{index}]", value=event)

    code_reviewed = data.get("code-reviewed")
    if code_reviewed is not None and not is_utc_timestamp(code_reviewed):
        raise MalformedRecord(
            "code-reviewed must be an ISO-8601 UTC timestamp",
            field="code-reviewed",
            value=code_reviewed,
        )

    pr_num = data.get("pr-num")
    if pr_num is not None:
        pr_num = _require_int(data, "pr-num")

    return Task(
        id=task_id,
        status=status,
        type=task_type,
        meta=dict(meta),
        relations=relations,
        parent_id=parent_id,
        shared_context=list(shared_context) if shared_context is not None else None,
        session_events=(
            [dict(event) for event in session_events] if session_events is not None else None
        ),
        code_reviewed=code_reviewed,
        pr_num=pr_num,
        **strings,
    )


def _relation_from_dict(raw: Any, index: int) -> Relation:
    prefix = f"relations[{index}]"
    if not isinstance(raw, dict):
        raise MalformedRecord(f"{prefix} must be an object", field=prefix, value=raw)
    missing = [name for name in REQUIRED_RELATION_FIELDS if name not in raw]
    if missing:
        raise MalformedRecord(
            f"{prefix} missing required field(s): {', '.join(missing)}",
            field=f"{prefix}.{missing[0]}",
            value=None,
        )
    return Relation(
        id=_require_int(raw, "id", prefix),
        relates_to=_require_int(raw, "relates-to", prefix),
        as_type=_require_enum(raw, "as-type", RelationType, prefix),
    )


def _field_name(name: str, prefix: str | None) -> str:
    return f"{prefix}.{name}" if prefix else name


def _require_int(data: dict[str, Any], name: str, prefix: str | None = None) -> int:
    value = data[name]
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedRecord(
            f"{_field_name(name, prefix)} must be an integer",
            field=_field_name(name, prefix),
            value=value,
        )
    return value


def _require_str(data: dict[str, Any], name: str) -> str:
    value = data[name]
    if not isinstance(value, str):
        raise MalformedRecord(f"{name} must be a string", field=name, value=value)
    return value


def _require_enum(data: dict[str, Any], name: str, enum_cls: Any, prefix: str | None = None) -> Any:
    value = data[name]
    try:
        return enum_cls(value)
    except (ValueError, TypeError):
        allowed = ", ".join(member.value for member in enum_cls)
        field_name = _field_name(name, prefix)
        raise MalformedRecord(
            f"{field_name} has invalid value {value!r} (expected one of: {allowed})",
            field=field_name,
            value=value,
        ) from None

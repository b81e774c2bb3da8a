"""
Task tools - Model-controlled actions over the task ledger.

Each ``execute_*`` function runs one ledger operation and returns JSON
text. Ledger errors are turned into an error envelope instead of being
raised, so the model always receives a readable response:

    {"error": "...", "metadata": {"attempted_operation": "...", ...}}

Ledger calls run in the default executor because a mutation can wait up
to the lock timeout.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, TypeVar

from taskledger.core.exceptions import (
    AmbiguousMatch,
    BlockedDependentsExist,
    CycleDetected,
    LedgerError,
    NotFound,
    ValidationError,
)
from taskledger.tasks.lifecycle import MutationResult, TaskLedger
from taskledger.tasks.query import TaskFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Names that are update_task arguments rather than task fields
RESERVED_UPDATE_KEYS = frozenset({"task_id", "acting_task_id"})


# =============================================================================
# Envelopes
# =============================================================================

def _dump(data: dict[str, Any]) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)


def error_envelope(error: LedgerError, operation: str, **params: Any) -> str:
    """Render a ledger error as a JSON error envelope."""
    metadata: dict[str, Any] = {
        "attempted_operation": operation,
        "error_type": type(error).__name__,
    }
    metadata.update({k: v for k, v in params.items() if v is not None})

    if isinstance(error, ValidationError) and error.errors:
        metadata["errors"] = list(error.errors)
    elif isinstance(error, AmbiguousMatch):
        metadata["matching_ids"] = list(error.matching_ids)
    elif isinstance(error, CycleDetected):
        metadata["cycle"] = list(error.cycle)
    elif isinstance(error, BlockedDependentsExist):
        metadata["dependents"] = list(error.dependents)
        metadata["children"] = list(error.children)
    elif isinstance(error, NotFound) and error.task_id is not None:
        metadata["task_id"] = error.task_id

    return _dump({"error": error.message, "metadata": metadata})


def _mutation_envelope(result: MutationResult) -> str:
    return _dump(result.to_dict())


async def _in_executor(call: Callable[[], T]) -> T:
    return await asyncio.get_running_loop().run_in_executor(None, call)


# =============================================================================
# Tools
# =============================================================================

async def execute_select(
    ledger: TaskLedger,
    status: str | None = None,
    category: str | None = None,
    type: str | None = None,
    parent_id: int | None = None,
    task_id: int | None = None,
    title_pattern: str | None = None,
    blocked: bool | None = None,
    limit: int | None = None,
    unique: bool = False,
) -> str:
    """
    Select tasks matching all given filters.

    Returns:
        JSON with ``tasks`` (each merged with its blocking annotation) and
        ``metadata`` counts, or an error envelope
    """
    params = {
        "status": status,
        "category": category,
        "type": type,
        "parent_id": parent_id,
        "task_id": task_id,
        "title_pattern": title_pattern,
        "blocked": blocked,
        "limit": limit,
    }
    try:
        result = await _in_executor(
            lambda: ledger.select(TaskFilter(unique=unique, **params))
        )
    except LedgerError as e:
        logger.info("select_tasks failed: %s", e)
        return error_envelope(e, "select-tasks", **params)
    return _dump(result.to_dict())


async def execute_add(
    ledger: TaskLedger,
    title: str,
    description: str = "",
    design: str = "",
    category: str = "",
    type: str = "task",
    status: str = "open",
    meta: dict[str, Any] | None = None,
    relations: list[dict[str, Any]] | None = None,
    parent_id: int | None = None,
    prepend: bool = False,
) -> str:
    """Create a task and return it with the files written."""
    try:
        result = await _in_executor(
            lambda: ledger.add(
                title,
                description=description,
                design=design,
                category=category,
                type=type,
                status=status,
                meta=meta,
                relations=relations,
                parent_id=parent_id,
                prepend=prepend,
            )
        )
    except LedgerError as e:
        logger.info("add_task failed: %s", e)
        return error_envelope(e, "add-task", title=title, category=category or None)
    return _mutation_envelope(result)


async def execute_update(
    ledger: TaskLedger,
    task_id: int,
    changes: dict[str, Any],
    acting_task_id: int | None = None,
) -> str:
    """
    Update fields of an active task.

    ``changes`` accepts on-disk (hyphenated) or Python field names, e.g.
    ``parent-id`` or ``parent_id``.
    """
    fields = {name.replace("-", "_"): value for name, value in changes.items()}
    try:
        reserved = sorted(RESERVED_UPDATE_KEYS & set(fields))
        if reserved:
            raise ValidationError(
                "Unknown task fields",
                errors=[
                    f"{name.replace('_', '-')} is an update_task argument, not a task field"
                    for name in reserved
                ],
            )
        result = await _in_executor(
            lambda: ledger.update(task_id, acting_task_id=acting_task_id, **fields)
        )
    except LedgerError as e:
        logger.info("update_task failed: %s", e)
        return error_envelope(e, "update-task", task_id=task_id)
    return _mutation_envelope(result)


async def execute_complete(
    ledger: TaskLedger,
    task_id: int | None = None,
    title: str | None = None,
    category: str | None = None,
    completion_comment: str | None = None,
) -> str:
    """Close a task and move it to the archive."""
    try:
        result = await _in_executor(
            lambda: ledger.complete(
                task_id,
                title=title,
                category=category,
                comment=completion_comment,
            )
        )
    except LedgerError as e:
        logger.info("complete_task failed: %s", e)
        return error_envelope(e, "complete-task", task_id=task_id, title=title)
    return _mutation_envelope(result)


async def execute_delete(
    ledger: TaskLedger,
    task_id: int | None = None,
    title_pattern: str | None = None,
    force: bool = False,
) -> str:
    """Soft-delete a task."""
    try:
        result = await _in_executor(
            lambda: ledger.delete(task_id, title_pattern=title_pattern, force=force)
        )
    except LedgerError as e:
        logger.info("delete_task failed: %s", e)
        return error_envelope(e, "delete-task", task_id=task_id, title_pattern=title_pattern)
    return _mutation_envelope(result)


async def execute_reopen(
    ledger: TaskLedger,
    task_id: int | None = None,
    title: str | None = None,
) -> str:
    """Reopen a closed task."""
    try:
        result = await _in_executor(lambda: ledger.reopen(task_id, title=title))
    except LedgerError as e:
        logger.info("reopen_task failed: %s", e)
        return error_envelope(e, "reopen-task", task_id=task_id, title=title)
    return _mutation_envelope(result)

"""
MCP Tools - Model-controlled actions over the task ledger.

- select_tasks: Query tasks with blocking annotations
- add_task: Create a task
- update_task: Change fields of an active task
- complete_task: Close and archive a task
- delete_task: Soft-delete a task
- reopen_task: Reopen a closed task
"""

from taskledger.mcp.tools.tasks import (
    error_envelope,
    execute_add,
    execute_complete,
    execute_delete,
    execute_reopen,
    execute_select,
    execute_update,
)

__all__ = [
    "error_envelope",
    "execute_add",
    "execute_complete",
    "execute_delete",
    "execute_reopen",
    "execute_select",
    "execute_update",
]

"""
taskledger MCP Server - Model Context Protocol binding for the task ledger.

Exposes task queries and lifecycle operations as MCP tools so an agent can
plan and track its own work across sessions.

Usage:
    taskledger mcp serve              # Start with stdio transport (default)
    taskledger mcp serve --transport sse --port 3000
"""

from __future__ import annotations

import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from taskledger.core.config import LedgerConfig
from taskledger.mcp.tools.tasks import (
    execute_add,
    execute_complete,
    execute_delete,
    execute_reopen,
    execute_select,
    execute_update,
)
from taskledger.tasks.lifecycle import TaskLedger

logger = logging.getLogger(__name__)

TASKLEDGER_SERVER_NAME = "taskledger"
TASKLEDGER_SERVER_DESCRIPTION = (
    "Task ledger - dependency-aware task tracking. Use select_tasks to find "
    "unblocked work, and complete_task when a task is done."
)


def create_server(config: LedgerConfig | None = None) -> FastMCP:
    """
    Create and configure the taskledger MCP server.

    Args:
        config: Ledger configuration; loaded from the working directory
            when omitted

    Returns:
        Configured FastMCP server instance with all tools registered
    """
    ledger = TaskLedger(config or LedgerConfig.load())
    mcp = FastMCP(
        name=TASKLEDGER_SERVER_NAME,
        instructions=TASKLEDGER_SERVER_DESCRIPTION,
    )

    _register_tools(mcp, ledger)

    logger.info(
        "taskledger MCP server created with %s tools for %s",
        len(_get_tool_names()),
        ledger.config.resolved_tasks_dir,
    )

    return mcp


def _register_tools(mcp: FastMCP, ledger: TaskLedger) -> None:
    """Register all MCP tools."""

    @mcp.tool()
    async def select_tasks(
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
        Find tasks. All given filters must match; results keep priority order.

        Without status only incomplete active tasks are returned. Pass a
        status (or "any") to include archived tasks.

        Args:
            status: open, in-progress, blocked, closed, deleted, or any
            category: Exact category name
            type: task, bug, feature, story, or chore
            parent_id: Only children of this story
            task_id: Exact task id (other filters are ignored)
            title_pattern: Regex (or substring) searched in titles
            blocked: True for blocked tasks, False for workable ones
            limit: Maximum results (default 5)
            unique: Require at most one match

        Returns:
            JSON with tasks (including is-blocked, blocking-task-ids and
            in-cycle) and metadata counts

        Examples:
            select_tasks(blocked=False, limit=1)
            select_tasks(parent_id=12)
        """
        return await execute_select(
            ledger,
            status=status,
            category=category,
            type=type,
            parent_id=parent_id,
            task_id=task_id,
            title_pattern=title_pattern,
            blocked=blocked,
            limit=limit,
            unique=unique,
        )

    @mcp.tool()
    async def add_task(
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
        """
        Create a new task.

        Args:
            title: Short task title
            description: What needs to be done
            design: Implementation notes
            category: Category used to route the task
            type: task, bug, feature, story, or chore
            status: Initial status (default open)
            meta: String key/value metadata
            relations: List of {"relates-to": id, "as-type": "blocked-by"}
            parent_id: Story this task belongs to
            prepend: Put the task first in priority order

        Returns:
            JSON with the created task and modified-files
        """
        return await execute_add(
            ledger,
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

    @mcp.tool()
    async def update_task(
        task_id: int,
        changes: dict[str, Any],
        acting_task_id: int | None = None,
    ) -> str:
        """
        Update fields of an active task. Only the given fields change.

        Args:
            task_id: Task to update
            changes: Field values, e.g. {"status": "in-progress"} or
                {"shared-context": "API uses v2 tokens"}. Also accepts
                "session-events" (appended; event-type is user-prompt,
                compaction or session-start; timestamp defaults to now),
                "code-reviewed" (UTC timestamp such as 2025-01-15T10:30:00Z)
                and "pr-num"
            acting_task_id: Task you are working on; prefixes shared-context
                entries with "Task <id>: "

        Returns:
            JSON with the updated task and modified-files
        """
        return await execute_update(ledger, task_id, changes, acting_task_id)

    @mcp.tool()
    async def complete_task(
        task_id: int | None = None,
        title: str | None = None,
        category: str | None = None,
        completion_comment: str | None = None,
    ) -> str:
        """
        Mark a task closed and move it to the archive.

        Args:
            task_id: Task to complete
            title: Title (or title prefix) to locate or verify the task
            category: Category to locate or verify the task
            completion_comment: Appended to the description

        Returns:
            JSON with the closed task and modified-files
        """
        return await execute_complete(
            ledger,
            task_id=task_id,
            title=title,
            category=category,
            completion_comment=completion_comment,
        )

    @mcp.tool()
    async def delete_task(
        task_id: int | None = None,
        title_pattern: str | None = None,
        force: bool = False,
    ) -> str:
        """
        Soft-delete a task (status deleted, kept in the archive).

        Refused while incomplete tasks are blocked by it or are its
        children, unless force is true.
        """
        return await execute_delete(
            ledger,
            task_id=task_id,
            title_pattern=title_pattern,
            force=force,
        )

    @mcp.tool()
    async def reopen_task(
        task_id: int | None = None,
        title: str | None = None,
    ) -> str:
        """Reopen a closed task, moving it back to the active log if archived."""
        return await execute_reopen(ledger, task_id=task_id, title=title)


def _get_tool_names() -> list[str]:
    """Get list of registered tool names."""
    return [
        "select_tasks",
        "add_task",
        "update_task",
        "complete_task",
        "delete_task",
        "reopen_task",
    ]


def run_server(
    transport: str = "stdio",
    port: int = 3000,
    config: LedgerConfig | None = None,
) -> None:
    """
    Run the taskledger MCP server.

    Args:
        transport: Transport type - 'stdio' or 'sse'
        port: Port for SSE transport (default 3000)
        config: Ledger configuration
    """
    if transport not in ("stdio", "sse"):
        raise ValueError(f"Unknown transport: {transport}. Use 'stdio' or 'sse'.")

    mcp = create_server(config)

    logger.info("Starting taskledger MCP server with %s transport", transport)

    if transport == "stdio":
        mcp.run(transport="stdio")
    else:
        mcp.settings.port = port
        mcp.run(transport="sse")

"""Main CLI entrypoint for taskledger."""

import json
import logging
import sys
from pathlib import Path
from typing import Annotated, Any, NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from taskledger.cli.mcp_commands import mcp_app
from taskledger.core.config import LedgerConfig
from taskledger.core.constants import CONFIG_FILE_NAME, RelationType
from taskledger.core.exceptions import (
    AmbiguousMatch,
    BlockedDependentsExist,
    LedgerError,
    ValidationError,
)
from taskledger.tasks.graph import BlockingInfo
from taskledger.tasks.lifecycle import MutationResult, TaskLedger
from taskledger.tasks.models import Task
from taskledger.tasks.query import TaskFilter

console = Console()
err_console = Console(stderr=True)

# Create main app
app = typer.Typer(
    name="taskledger",
    help="Dependency-aware task tracking for AI agents",
    no_args_is_help=True,
)

app.add_typer(mcp_app, name="mcp")


@app.callback()
def main_callback(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable debug logging")
    ] = False,
) -> None:
    """Dependency-aware task tracking for AI agents."""
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _open_ledger() -> TaskLedger:
    try:
        return TaskLedger(LedgerConfig.load())
    except LedgerError as e:
        _fail(e)


def _fail(error: LedgerError) -> NoReturn:
    err_console.print(f"[red]Error: {escape(error.message)}[/red]")
    if isinstance(error, ValidationError):
        for message in error.errors:
            err_console.print(f"  - {message}", markup=False)
    elif isinstance(error, AmbiguousMatch):
        err_console.print(f"  Matching tasks: {', '.join(map(str, error.matching_ids))}")
    elif isinstance(error, BlockedDependentsExist):
        if error.dependents:
            err_console.print(f"  Blocked dependents: {', '.join(map(str, error.dependents))}")
        if error.children:
            err_console.print(f"  Open children: {', '.join(map(str, error.children))}")
    raise typer.Exit(1)


def _parse_meta(pairs: Optional[list[str]]) -> Optional[dict[str, str]]:
    if not pairs:
        return None
    meta = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            err_console.print(f"[red]Error: Invalid --meta value '{pair}' (use key=value)[/red]")
            raise typer.Exit(1)
        meta[key] = value
    return meta


def _blocked_by(ids: Optional[list[int]]) -> Optional[list[dict[str, Any]]]:
    if not ids:
        return None
    return [
        {"relates-to": task_id, "as-type": RelationType.BLOCKED_BY.value}
        for task_id in ids
    ]


def _print_json(data: Any) -> None:
    console.print(
        json.dumps(data, indent=2, ensure_ascii=False),
        markup=False,
        highlight=False,
        soft_wrap=True,
    )


def _print_mutation(result: MutationResult, json_output: bool) -> None:
    if json_output:
        _print_json(result.to_dict())
        return
    console.print(f"[green]{result.message}[/green]")
    console.print(f"Modified: {', '.join(result.modified_files)}")


def _print_task(task: Task, info: BlockingInfo) -> None:
    console.print(f"[bold]#{task.id} {escape(task.title)}[/bold]")
    console.print(f"Status:    {task.status.value}")
    console.print(f"Type:      {task.type.value}")
    if task.category:
        console.print(f"Category:  {task.category}")
    if task.parent_id is not None:
        console.print(f"Parent:    {task.parent_id}")
    if task.pr_num is not None:
        console.print(f"PR:        #{task.pr_num}")
    if task.code_reviewed is not None:
        console.print(f"Reviewed:  {task.code_reviewed}")
    if info.is_blocked:
        label = "in cycle" if info.in_cycle else "blocked"
        blockers = ", ".join(map(str, info.blocking_task_ids))
        console.print(f"Blocked:   [yellow]{label} by {blockers}[/yellow]")
    if task.description:
        console.print()
        console.print(task.description, markup=False)
    if task.design:
        console.print()
        console.print("[bold]Design[/bold]")
        console.print(task.design, markup=False)
    if task.meta:
        console.print()
        for key, value in task.meta.items():
            console.print(f"{key}: {value}", markup=False)
    if task.shared_context:
        console.print()
        console.print("[bold]Shared context[/bold]")
        for entry in task.shared_context:
            console.print(f"- {entry}", markup=False)
    if task.session_events:
        console.print()
        console.print("[bold]Session events[/bold]")
        for event in task.session_events:
            console.print(
                f"- {event.get('timestamp', '')} {event.get('event-type', '')}",
                markup=False,
            )


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command("init")
def init_command(
    tasks_dir: Annotated[
        Optional[str], typer.Option("--tasks-dir", help="Directory holding the task logs")
    ] = None,
    force: Annotated[
        bool, typer.Option("--force", help="Overwrite existing config")
    ] = False,
) -> None:
    """Initialize taskledger in the current directory."""
    config_path = Path.cwd() / CONFIG_FILE_NAME
    if config_path.exists() and not force:
        console.print(f"[yellow]taskledger already initialized at {config_path}[/yellow]")
        console.print("Use --force to reinitialize")
        return

    config = LedgerConfig(base_dir=str(Path.cwd()))
    if tasks_dir:
        config = LedgerConfig(tasks_dir=tasks_dir, base_dir=str(Path.cwd()))

    config.resolved_tasks_dir.mkdir(parents=True, exist_ok=True)
    for path in (config.active_path, config.archive_path):
        path.touch(exist_ok=True)
    config.save()

    console.print(f"[green]Initialized taskledger in {config.resolved_tasks_dir}[/green]")


@app.command("list")
def list_command(
    status: Annotated[
        Optional[str], typer.Option("--status", "-s", help="Status filter, or 'any'")
    ] = None,
    category: Annotated[Optional[str], typer.Option("--category", "-c")] = None,
    task_type: Annotated[Optional[str], typer.Option("--type", "-t")] = None,
    parent_id: Annotated[Optional[int], typer.Option("--parent", "-p")] = None,
    title_pattern: Annotated[
        Optional[str], typer.Option("--title", help="Regex searched in titles")
    ] = None,
    blocked: Annotated[
        Optional[bool],
        typer.Option("--blocked/--unblocked", help="Filter by computed blocked state"),
    ] = None,
    limit: Annotated[Optional[int], typer.Option("--limit", "-n")] = None,
    json_output: Annotated[
        bool, typer.Option("--json", help="Output as JSON")
    ] = False,
) -> None:
    """List tasks in priority order."""
    ledger = _open_ledger()
    try:
        result = ledger.select(
            TaskFilter(
                status=status,
                category=category,
                type=task_type,
                parent_id=parent_id,
                title_pattern=title_pattern,
                blocked=blocked,
                limit=limit,
            )
        )
    except LedgerError as e:
        _fail(e)

    if json_output:
        _print_json(result.to_dict())
        return

    if not result.tasks:
        console.print("[yellow]No matching tasks[/yellow]")
        return

    table = Table(title="Tasks")
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Status")
    table.add_column("Type")
    table.add_column("Category")
    table.add_column("Title")
    table.add_column("Blocked by")

    for task in result.tasks:
        info = result.annotation(task.id)
        blockers = ", ".join(map(str, info.blocking_task_ids))
        if info.in_cycle:
            blockers = f"[red]{blockers} (cycle)[/red]"
        table.add_row(
            str(task.id),
            task.status.value,
            task.type.value,
            escape(task.category),
            escape(task.title),
            blockers,
        )

    console.print(table)
    meta = result.metadata
    if meta.limited:
        console.print(f"Showing {meta.returned_count} of {meta.total_matches} matches")
    if meta.open_child_count is not None:
        console.print(
            f"Children: {meta.open_child_count} open, {meta.completed_child_count} completed"
        )
    if meta.skipped_lines:
        err_console.print(f"[yellow]Skipped {meta.skipped_lines} malformed line(s)[/yellow]")


@app.command("show")
def show_command(
    task_id: Annotated[int, typer.Argument(help="Task id")],
    json_output: Annotated[
        bool, typer.Option("--json", help="Output as JSON")
    ] = False,
) -> None:
    """Show a single task from either log."""
    ledger = _open_ledger()
    try:
        result = ledger.select(TaskFilter(task_id=task_id, unique=True))
    except LedgerError as e:
        _fail(e)

    task = result.first
    if json_output:
        _print_json(result.to_dict()["tasks"][0])
        return
    _print_task(task, result.annotation(task.id))


@app.command("next")
def next_command(
    category: Annotated[Optional[str], typer.Option("--category", "-c")] = None,
    parent_id: Annotated[Optional[int], typer.Option("--parent", "-p")] = None,
    json_output: Annotated[
        bool, typer.Option("--json", help="Output as JSON")
    ] = False,
) -> None:
    """Show the first unblocked incomplete task."""
    ledger = _open_ledger()
    try:
        task = ledger.next_task(category=category, parent_id=parent_id)
    except LedgerError as e:
        _fail(e)

    if task is None:
        if json_output:
            _print_json({"task": None})
        else:
            console.print("[yellow]No unblocked tasks[/yellow]")
        return
    if json_output:
        _print_json({"task": task.to_dict()})
        return
    _print_task(task, BlockingInfo(task_id=task.id))


@app.command("add")
def add_command(
    title: Annotated[str, typer.Argument(help="Task title")],
    description: Annotated[str, typer.Option("--description", "-d")] = "",
    design: Annotated[str, typer.Option("--design")] = "",
    category: Annotated[str, typer.Option("--category", "-c")] = "",
    task_type: Annotated[str, typer.Option("--type", "-t")] = "task",
    status: Annotated[str, typer.Option("--status", "-s")] = "open",
    parent_id: Annotated[Optional[int], typer.Option("--parent", "-p")] = None,
    blocked_by: Annotated[
        Optional[list[int]], typer.Option("--blocked-by", "-b", help="Blocking task id")
    ] = None,
    meta: Annotated[
        Optional[list[str]], typer.Option("--meta", "-m", help="key=value metadata")
    ] = None,
    prepend: Annotated[
        bool, typer.Option("--prepend", help="Insert at the front of the queue")
    ] = False,
    json_output: Annotated[
        bool, typer.Option("--json", help="Output as JSON")
    ] = False,
) -> None:
    """Add a new task."""
    ledger = _open_ledger()
    try:
        result = ledger.add(
            title,
            description=description,
            design=design,
            category=category,
            type=task_type,
            status=status,
            parent_id=parent_id,
            relations=_blocked_by(blocked_by),
            meta=_parse_meta(meta),
            prepend=prepend,
        )
    except LedgerError as e:
        _fail(e)
    _print_mutation(result, json_output)


@app.command("update")
def update_command(
    task_id: Annotated[int, typer.Argument(help="Task id")],
    title: Annotated[Optional[str], typer.Option("--title")] = None,
    description: Annotated[Optional[str], typer.Option("--description", "-d")] = None,
    design: Annotated[Optional[str], typer.Option("--design")] = None,
    category: Annotated[Optional[str], typer.Option("--category", "-c")] = None,
    task_type: Annotated[Optional[str], typer.Option("--type", "-t")] = None,
    status: Annotated[Optional[str], typer.Option("--status", "-s")] = None,
    parent_id: Annotated[Optional[int], typer.Option("--parent", "-p")] = None,
    clear_parent: Annotated[
        bool, typer.Option("--clear-parent", help="Remove the parent link")
    ] = False,
    blocked_by: Annotated[
        Optional[list[int]],
        typer.Option("--blocked-by", "-b", help="Replace relations with these blockers"),
    ] = None,
    meta: Annotated[
        Optional[list[str]], typer.Option("--meta", "-m", help="Replace meta (key=value)")
    ] = None,
    context: Annotated[
        Optional[list[str]], typer.Option("--context", help="Shared context entry")
    ] = None,
    acting_task_id: Annotated[
        Optional[int], typer.Option("--acting-task", help="Task adding the context")
    ] = None,
    pr_num: Annotated[
        Optional[int], typer.Option("--pr", help="Pull request number")
    ] = None,
    code_reviewed: Annotated[
        Optional[str],
        typer.Option("--code-reviewed", help="Review time, e.g. 2025-01-15T10:30:00Z"),
    ] = None,
    json_output: Annotated[
        bool, typer.Option("--json", help="Output as JSON")
    ] = False,
) -> None:
    """Update fields of an active task."""
    changes: dict[str, Any] = {
        name: value
        for name, value in (
            ("title", title),
            ("description", description),
            ("design", design),
            ("category", category),
            ("type", task_type),
            ("status", status),
            ("parent_id", parent_id),
            ("relations", _blocked_by(blocked_by)),
            ("meta", _parse_meta(meta)),
            ("shared_context", context or None),
            ("pr_num", pr_num),
            ("code_reviewed", code_reviewed),
        )
        if value is not None
    }
    if clear_parent:
        changes["parent_id"] = None
    if not changes:
        err_console.print("[red]Error: Nothing to update[/red]")
        raise typer.Exit(1)

    ledger = _open_ledger()
    try:
        result = ledger.update(task_id, acting_task_id=acting_task_id, **changes)
    except LedgerError as e:
        _fail(e)
    _print_mutation(result, json_output)


@app.command("complete")
def complete_command(
    task_id: Annotated[Optional[int], typer.Argument(help="Task id")] = None,
    title: Annotated[
        Optional[str], typer.Option("--title", help="Title or title prefix")
    ] = None,
    category: Annotated[Optional[str], typer.Option("--category", "-c")] = None,
    comment: Annotated[
        Optional[str], typer.Option("--comment", help="Completion comment")
    ] = None,
    json_output: Annotated[
        bool, typer.Option("--json", help="Output as JSON")
    ] = False,
) -> None:
    """Complete a task and move it to the archive."""
    ledger = _open_ledger()
    try:
        result = ledger.complete(task_id, title=title, category=category, comment=comment)
    except LedgerError as e:
        _fail(e)
    _print_mutation(result, json_output)


@app.command("delete")
def delete_command(
    task_id: Annotated[Optional[int], typer.Argument(help="Task id")] = None,
    title_pattern: Annotated[
        Optional[str], typer.Option("--title", help="Regex matched against titles")
    ] = None,
    force: Annotated[
        bool, typer.Option("--force", help="Delete even if other tasks depend on it")
    ] = False,
    json_output: Annotated[
        bool, typer.Option("--json", help="Output as JSON")
    ] = False,
) -> None:
    """Soft-delete a task."""
    ledger = _open_ledger()
    try:
        result = ledger.delete(task_id, title_pattern=title_pattern, force=force)
    except LedgerError as e:
        _fail(e)
    _print_mutation(result, json_output)


@app.command("reopen")
def reopen_command(
    task_id: Annotated[Optional[int], typer.Argument(help="Task id")] = None,
    title: Annotated[Optional[str], typer.Option("--title", help="Exact title")] = None,
    json_output: Annotated[
        bool, typer.Option("--json", help="Output as JSON")
    ] = False,
) -> None:
    """Reopen a closed task."""
    ledger = _open_ledger()
    try:
        result = ledger.reopen(task_id, title=title)
    except LedgerError as e:
        _fail(e)
    _print_mutation(result, json_output)


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()

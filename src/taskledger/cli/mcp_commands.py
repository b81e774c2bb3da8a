"""
taskledger MCP CLI Commands - Start the MCP server.
"""

from __future__ import annotations

import logging
import sys
from typing import Annotated

import typer
from rich.console import Console

from taskledger.core.exceptions import LedgerError

logger = logging.getLogger(__name__)
err_console = Console(stderr=True)

mcp_app = typer.Typer(
    name="mcp",
    help="MCP (Model Context Protocol) server for agent integration.",
    no_args_is_help=True,
)


@mcp_app.command("serve")
def serve(
    transport: Annotated[
        str,
        typer.Option(
            "--transport", "-t",
            help="Transport type: 'stdio' (default) or 'sse'",
        ),
    ] = "stdio",
    port: Annotated[
        int,
        typer.Option(
            "--port", "-p",
            help="Port for SSE transport (default 3000)",
        ),
    ] = 3000,
    log_level: Annotated[
        str,
        typer.Option(
            "--log-level", "-l",
            help="Logging level: DEBUG, INFO, WARNING, ERROR",
        ),
    ] = "INFO",
) -> None:
    """
    Start the taskledger MCP server.

    This command is typically launched by an agent host via its MCP
    configuration. Logs go to stderr so stdio transport stays clean.

    Examples:
        taskledger mcp serve                    # Start with stdio (default)
        taskledger mcp serve --transport sse    # Start with HTTP/SSE
        taskledger mcp serve -t sse -p 8080     # SSE on custom port
    """
    valid_transports = ["stdio", "sse"]
    if transport not in valid_transports:
        err_console.print(f"[red]Error: Invalid transport '{transport}'[/red]")
        err_console.print(f"Valid transports: {', '.join(valid_transports)}")
        raise typer.Exit(1)

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
    log_level_upper = log_level.upper()
    if log_level_upper not in valid_log_levels:
        err_console.print(f"[red]Error: Invalid log level '{log_level}'[/red]")
        err_console.print(f"Valid levels: {', '.join(valid_log_levels)}")
        raise typer.Exit(1)

    logging.basicConfig(
        level=getattr(logging, log_level_upper),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )

    try:
        from taskledger.mcp.server import run_server
        run_server(transport=transport, port=port)
    except KeyboardInterrupt:
        logger.info("MCP server stopped by user")
    except LedgerError as e:
        logger.error("MCP server failed to start: %s", e)
        err_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

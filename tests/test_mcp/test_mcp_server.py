"""
Unit tests for the taskledger MCP server.

Tests cover:
- Server creation
- Tool registration
"""

from __future__ import annotations

import pytest

from taskledger.core.config import LedgerConfig
from taskledger.mcp.server import TASKLEDGER_SERVER_NAME, _get_tool_names, create_server, run_server


class TestMCPServer:
    """Tests for MCP server creation and configuration."""

    def test_server_creation(self, config: LedgerConfig) -> None:
        """Server should be created successfully."""
        server = create_server(config)
        assert server is not None

    def test_server_has_correct_metadata(self, config: LedgerConfig) -> None:
        """Server should have correct name."""
        server = create_server(config)
        assert server.name == TASKLEDGER_SERVER_NAME

    def test_tool_names_list(self) -> None:
        """Tool names helper should return all tools."""
        tool_names = _get_tool_names()

        assert "select_tasks" in tool_names
        assert "add_task" in tool_names
        assert "update_task" in tool_names
        assert "complete_task" in tool_names
        assert "delete_task" in tool_names
        assert "reopen_task" in tool_names
        assert len(tool_names) == 6

    @pytest.mark.asyncio
    async def test_registered_tools_match_names(self, config: LedgerConfig) -> None:
        """Every advertised tool is registered on the server."""
        server = create_server(config)
        tools = await server.list_tools()
        assert sorted(tool.name for tool in tools) == sorted(_get_tool_names())

    def test_unknown_transport_rejected(self, config: LedgerConfig) -> None:
        with pytest.raises(ValueError):
            run_server(transport="carrier-pigeon", config=config)

"""
taskledger MCP Server - Model Context Protocol integration for task tracking.
"""

from taskledger.mcp.server import create_server, run_server

__all__ = ["create_server", "run_server"]

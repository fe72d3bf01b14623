"""Visitor Insights MCP Server.

A Model Context Protocol server that reconstructs visitors and sessions from
Google Analytics 4 dimensional reports.
"""

__version__ = "1.0.0"

from visitor_insights_mcp.server import create_mcp_server  # noqa: E402

__all__ = ["create_mcp_server"]

"""MCP client and tool adapter."""

from .adapter import (
    MCPRegistry,
    create_mcp_tool,
    create_mcp_tools,
)
from .client import ConnectionState, MCPClient

__all__ = [
    "ConnectionState",
    "MCPClient",
    "MCPRegistry",
    "create_mcp_tool",
    "create_mcp_tools",
]

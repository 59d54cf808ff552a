"""
Expose MCP server tools as engine tools.

Each server process is wrapped in one MCPClient; every tool discovered on it
becomes a Tool whose handler forwards to that client. Clients are tracked in
an MCPRegistry that the caller closes explicitly.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from mcp import McpError, types

from micro_ai.chat.models import Tool
from micro_ai.errors import McpConnectionError
from micro_ai.mcp_client.client import (
    DEFAULT_PROTOCOL_VERSION,
    DEFAULT_REQUEST_TIMEOUT,
    MCPClient,
)
from micro_ai.tool_schema_manager import create_tool

logger = logging.getLogger(__name__)


class MCPRegistry:
    """Owns the MCP clients backing a session's tools."""

    def __init__(self) -> None:
        self.clients: list[MCPClient] = []

    def add(self, client: MCPClient) -> None:
        if client not in self.clients:
            self.clients.append(client)

    def __len__(self) -> int:
        return len(self.clients)

    async def disconnect_all(self) -> None:
        """Disconnect every client; a failing client does not stop the others."""
        clients, self.clients = self.clients, []
        results = await asyncio.gather(
            *(client.disconnect() for client in clients), return_exceptions=True
        )
        for client, result in zip(clients, results, strict=True):
            if isinstance(result, Exception):
                logger.warning("Error closing MCP client %s: %s", client.name, result)

    async def __aenter__(self) -> MCPRegistry:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect_all()


def _wrap_tool(client: MCPClient, mcp_tool: types.Tool) -> Tool:
    tool_name = mcp_tool.name

    async def handler(args: Any) -> str:
        try:
            return await client.call_tool(tool_name, args)
        except McpError as e:
            raise McpError(
                types.ErrorData(
                    code=e.error.code,
                    message=f"MCP tool error: {e.error.message}",
                    data=e.error.data,
                )
            ) from e

    return create_tool(
        tool_name,
        mcp_tool.description or f"MCP tool: {tool_name}",
        dict(mcp_tool.inputSchema or {}),
        handler,
    )


async def create_mcp_tools(
    config: dict[str, Any],
    tool_names: Iterable[str] | None = None,
    *,
    registry: MCPRegistry,
    name: str | None = None,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    protocol_version: str = DEFAULT_PROTOCOL_VERSION,
) -> list[Tool]:
    """
    Connect to an MCP server and wrap its tools.

    Args:
        config: Server launch settings (command, args, env, cwd)
        tool_names: Only wrap these tools; all tools when omitted
        registry: Registry that takes ownership of the client
        name: Client name used in logs; defaults to the command

    Raises:
        McpConnectionError: connecting or listing failed; the process is stopped
    """
    client = MCPClient(
        name or str(config.get("command", "mcp")),
        config,
        request_timeout=request_timeout,
        protocol_version=protocol_version,
    )

    try:
        await client.connect()
        mcp_tools = await client.list_tools()
    except McpError as e:
        await client.disconnect()
        raise McpConnectionError(f"Failed to create MCP tools: {e}") from e

    wanted = set(tool_names) if tool_names is not None else None
    selected = [t for t in mcp_tools if wanted is None or t.name in wanted]

    if not selected:
        logger.warning("MCP[%s]: no tools found matching criteria", client.name)
        await client.disconnect()
        return []

    registry.add(client)
    tools = [_wrap_tool(client, t) for t in selected]
    logger.info("Registered %d tools from MCP server '%s'", len(tools), client.name)
    return tools


async def create_mcp_tool(
    config: dict[str, Any],
    tool_name: str,
    *,
    registry: MCPRegistry,
    **kwargs: Any,
) -> Tool:
    """Connect to an MCP server and wrap a single named tool."""
    tools = await create_mcp_tools(config, [tool_name], registry=registry, **kwargs)
    if not tools:
        raise LookupError(f'MCP tool "{tool_name}" not found')
    return tools[0]

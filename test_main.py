"""
Tests for MCP server loading in the CLI entry point.
"""

import json
import logging
from unittest.mock import AsyncMock

import pytest

from micro_ai import main
from micro_ai.config import Configuration
from micro_ai.errors import McpConnectionError
from micro_ai.mcp_client import MCPRegistry


@pytest.fixture
def configuration(tmp_path, monkeypatch):
    monkeypatch.delenv("MICRO_AI_CONFIG", raising=False)
    servers = tmp_path / "servers.json"
    servers.write_text(
        json.dumps(
            {
                "mcpServers": {
                    "broken": {"enabled": True, "command": "broken-server"},
                    "off": {"enabled": False, "command": "off-server"},
                }
            }
        )
    )
    override = tmp_path / "override.yaml"
    override.write_text(f"mcp:\n  servers_file: {servers}\n")
    return Configuration(str(override))


async def test_unavailable_server_is_skipped(configuration, monkeypatch, caplog):
    create = AsyncMock(side_effect=McpConnectionError("spawn failed"))
    monkeypatch.setattr(main, "create_mcp_tools", create)

    with caplog.at_level(logging.WARNING):
        tools = await main._load_mcp_tools(configuration, MCPRegistry())

    assert tools == []
    create.assert_awaited_once()
    assert create.await_args.kwargs["name"] == "broken"
    assert "Server 'broken' unavailable: spawn failed" in caplog.text
    assert "failed to connect" not in caplog.text

"""
MCP client over a child process speaking newline-delimited JSON-RPC.

One reader task owns stdout and correlates replies to pending requests by id,
so many calls can be in flight on a single process. Every request carries its
own deadline; a timeout rejects only that request. Payloads are validated with
the MCP SDK's types, and failures surface as McpError like SDK sessions do.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
import os
import shutil
import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from mcp import McpError, types

from micro_ai.chat.logging_utils import should_log_feature
from micro_ai.errors import McpConnectionError, McpRequestTimeout

logger = logging.getLogger(__name__)

DEFAULT_PROTOCOL_VERSION = "2024-11-05"
DEFAULT_REQUEST_TIMEOUT = 30.0
CLIENT_VERSION = "0.1.0"

# Largest single JSON line accepted from a server
STREAM_LIMIT = 16 * 1024 * 1024
TERMINATE_GRACE = 5.0


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    EXITED = "exited"


@dataclass
class PendingRequest:
    id: int
    method: str
    future: asyncio.Future[Any]
    created_at: float = field(default_factory=time.monotonic)


class MCPClient:
    """
    Minimal MCP client for stdio servers.

    Config keys (servers_config.json entry): command, args, env, cwd.
    """

    def __init__(
        self,
        name: str,
        config: dict[str, Any],
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        protocol_version: str = DEFAULT_PROTOCOL_VERSION,
    ) -> None:
        self.name: str = name
        self.config: dict[str, Any] = config
        self.request_timeout = request_timeout
        self.protocol_version = protocol_version

        self.server_info: types.Implementation | None = None
        self.server_capabilities: types.ServerCapabilities | None = None

        self._state = ConnectionState.DISCONNECTED
        self._process: asyncio.subprocess.Process | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._pending: dict[int, PendingRequest] = {}
        self._ids = itertools.count(1)
        self._connect_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.READY

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _resolve_command(self) -> str | None:
        """
        Resolve the configured command to an executable path.

        Absolute paths must exist; relative commands go through PATH. "python"
        resolves to the running interpreter so servers share its environment.
        """
        command = self.config.get("command")
        if not command:
            return None

        if command in ("python", "python3"):
            return sys.executable

        if os.path.isabs(command):
            return command if os.path.exists(command) else None

        resolved = shutil.which(command)

        # Windows-specific npx compatibility workaround
        if not resolved and command == "npx" and sys.platform == "win32":
            node_path = shutil.which("node")
            if node_path:
                logger.warning("Using node instead of npx on Windows")
                return node_path

        return resolved

    async def connect(self) -> None:
        """
        Spawn the server process and complete the initialize handshake.

        Idempotent while READY. Raises McpConnectionError when the process cannot
        be started or the handshake fails; the process is torn down first.
        """
        async with self._connect_lock:
            if self._state is ConnectionState.READY:
                return

            command = self._resolve_command()
            if not command:
                raise McpConnectionError(
                    f"Command '{self.config.get('command')}' not found in PATH"
                )

            if self._process is not None:
                # Leftovers of a server that exited on its own
                await self._shutdown_process()

            self._state = ConnectionState.CONNECTING
            env = (
                {**os.environ, **self.config.get("env", {})}
                if self.config.get("env")
                else None
            )

            logger.info("→ MCP[%s]: starting server process", self.name)
            try:
                self._process = await asyncio.create_subprocess_exec(
                    command,
                    *self.config.get("args", []),
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    env=env,
                    cwd=self.config.get("cwd"),
                    limit=STREAM_LIMIT,
                )
            except OSError as e:
                self._state = ConnectionState.DISCONNECTED
                raise McpConnectionError(
                    f"Failed to start MCP server '{self.name}': {e}"
                ) from e

            self._reader_task = asyncio.create_task(
                self._read_loop(self._process), name=f"mcp-reader-{self.name}"
            )

            try:
                result = await self._request(
                    "initialize",
                    {
                        "protocolVersion": self.protocol_version,
                        "capabilities": {},
                        "clientInfo": {"name": self.name, "version": CLIENT_VERSION},
                    },
                )
                init = types.InitializeResult.model_validate(result)
                await self._send({"jsonrpc": "2.0", "method": "notifications/initialized"})
            except (McpError, ValueError) as e:
                await self._shutdown_process()
                self._state = ConnectionState.DISCONNECTED
                raise McpConnectionError(
                    f"MCP server '{self.name}' failed to initialize: {e}"
                ) from e

            self.server_info = init.serverInfo
            self.server_capabilities = init.capabilities
            self._state = ConnectionState.READY
            logger.info(
                "← MCP[%s]: connected to %s %s",
                self.name,
                init.serverInfo.name,
                init.serverInfo.version,
            )

    async def disconnect(self) -> None:
        """Terminate the server and reject every request still waiting."""
        if self._process is None and not self._pending:
            self._state = ConnectionState.DISCONNECTED
            return

        logger.info("→ MCP[%s]: disconnecting", self.name)
        self._state = ConnectionState.DISCONNECTED
        self._reject_all(McpConnectionError(f"MCP client '{self.name}' disconnected"))
        await self._shutdown_process()
        logger.info("← MCP[%s]: disconnected", self.name)

    async def list_tools(self) -> list[types.Tool]:
        """Discover the server's tools, connecting first when needed."""
        await self._ensure_connected()
        tools: list[types.Tool] = []
        cursor: str | None = None
        while True:
            params = {"cursor": cursor} if cursor else {}
            page = types.ListToolsResult.model_validate(
                await self._request("tools/list", params)
            )
            tools.extend(page.tools)
            cursor = page.nextCursor
            if not cursor:
                break
        logger.info("← MCP[%s]: listed %d tools", self.name, len(tools))
        return tools

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> str:
        """
        Call a tool and return its text content joined with newlines.

        Raises:
            McpError: the server answered with an error or an isError result
            McpRequestTimeout: no reply within the deadline
        """
        await self._ensure_connected()
        logger.info("→ MCP[%s]: calling tool '%s'", self.name, name)
        result = await self._request(
            "tools/call",
            {"name": name, "arguments": arguments or {}},
            timeout=timeout,
        )
        parsed = types.CallToolResult.model_validate(result)
        text = "\n".join(
            item.text for item in parsed.content if isinstance(item, types.TextContent)
        )

        if parsed.isError:
            logger.error("← MCP[%s]: tool '%s' reported an error", self.name, name)
            raise McpError(
                types.ErrorData(
                    code=types.INTERNAL_ERROR,
                    message=text or f"Tool '{name}' failed",
                )
            )

        logger.info("← MCP[%s]: tool '%s' returned %d chars", self.name, name, len(text))
        return text

    async def _ensure_connected(self) -> None:
        if self._state is not ConnectionState.READY:
            await self.connect()

    async def _request(
        self, method: str, params: dict[str, Any], timeout: float | None = None
    ) -> Any:
        """Send a request and wait for its correlated reply."""
        request_id = next(self._ids)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = PendingRequest(
            id=request_id, method=method, future=future
        )
        deadline = timeout if timeout is not None else self.request_timeout

        try:
            await self._send(
                {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}
            )
            return await asyncio.wait_for(future, deadline)
        except TimeoutError as e:
            logger.warning(
                "MCP[%s]: request %d (%s) timed out after %ss",
                self.name,
                request_id,
                method,
                deadline,
            )
            raise McpRequestTimeout(method, deadline) from e
        finally:
            self._pending.pop(request_id, None)

    async def _send(self, message: dict[str, Any]) -> None:
        process = self._process
        if process is None or process.stdin is None or process.stdin.is_closing():
            raise McpConnectionError(f"MCP server '{self.name}' is not running")

        line = json.dumps(message, separators=(",", ":")) + "\n"
        if should_log_feature("mcp", "protocol_messages"):
            logger.debug("→ MCP[%s]: %s", self.name, line.rstrip())

        async with self._write_lock:
            try:
                process.stdin.write(line.encode("utf-8"))
                await process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                raise McpConnectionError(
                    f"MCP server '{self.name}' closed its input: {e}"
                ) from e

    async def _read_loop(self, process: asyncio.subprocess.Process) -> None:
        """Read stdout line by line until EOF, dispatching each message."""
        assert process.stdout is not None
        while True:
            try:
                line = await process.stdout.readline()
            except ValueError as e:
                # Line longer than STREAM_LIMIT; the stream is unusable after this
                logger.error("MCP[%s]: oversized message: %s", self.name, e)
                break
            if not line:
                break

            text = line.decode("utf-8", errors="replace").strip()
            if not text:
                continue
            if should_log_feature("mcp", "protocol_messages"):
                logger.debug("← MCP[%s]: %s", self.name, text)

            try:
                message = json.loads(text)
            except json.JSONDecodeError:
                logger.warning("MCP[%s]: skipping unparseable line: %.200s", self.name, text)
                continue

            if isinstance(message, dict):
                await self._dispatch(message)

        if process is self._process and self._state is not ConnectionState.DISCONNECTED:
            logger.warning("MCP[%s]: server process exited", self.name)
            self._state = ConnectionState.EXITED
            self._reject_all(McpConnectionError(f"MCP server '{self.name}' exited"))

    async def _dispatch(self, message: dict[str, Any]) -> None:
        if "method" in message:
            await self._handle_server_message(message)
            return

        request_id = message.get("id")
        pending = self._pending.get(request_id) if isinstance(request_id, int) else None
        if pending is None:
            logger.debug("MCP[%s]: reply for unknown request id %r", self.name, request_id)
            return
        if pending.future.done():
            return

        if "error" in message:
            error = message["error"] or {}
            try:
                data = types.ErrorData.model_validate(error)
            except ValueError:
                data = types.ErrorData(code=types.INTERNAL_ERROR, message=str(error))
            pending.future.set_exception(McpError(data))
        else:
            pending.future.set_result(message.get("result"))

    async def _handle_server_message(self, message: dict[str, Any]) -> None:
        """Answer server-initiated requests; notifications are only logged."""
        method = message.get("method")
        if "id" not in message:
            logger.debug("MCP[%s]: notification %s", self.name, method)
            return

        if method == "ping":
            reply: dict[str, Any] = {"jsonrpc": "2.0", "id": message["id"], "result": {}}
        else:
            reply = {
                "jsonrpc": "2.0",
                "id": message["id"],
                "error": {
                    "code": types.METHOD_NOT_FOUND,
                    "message": f"Method not supported by client: {method}",
                },
            }
        with contextlib.suppress(McpConnectionError):
            await self._send(reply)

    def _reject_all(self, error: Exception) -> None:
        pending, self._pending = self._pending, {}
        for request in pending.values():
            if not request.future.done():
                request.future.set_exception(error)
        if pending:
            logger.info(
                "MCP[%s]: rejected %d pending request(s)", self.name, len(pending)
            )

    async def _shutdown_process(self) -> None:
        process, self._process = self._process, None
        reader, self._reader_task = self._reader_task, None

        if process is not None:
            if process.stdin is not None and not process.stdin.is_closing():
                process.stdin.close()
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.terminate()
                try:
                    await asyncio.wait_for(process.wait(), TERMINATE_GRACE)
                except TimeoutError:
                    logger.warning("MCP[%s]: server did not exit, killing", self.name)
                    with contextlib.suppress(ProcessLookupError):
                        process.kill()
                    await process.wait()

        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

    async def __aenter__(self) -> MCPClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()

"""
Error taxonomy for the chat engine.

Transport failures (timeouts, API errors) are terminal for an invocation and
propagate to the caller. Tool failures are recovered locally and reported to
the model as tool messages. MCP failures reuse the SDK's McpError/ErrorData
shape so they look the same as errors raised by a real MCP session.
"""

from __future__ import annotations

from typing import Any, Literal

from mcp import McpError, types
from pydantic import BaseModel

ErrorType = Literal["timeout", "api_error"]


class ErrorPayload(BaseModel):
    """Classified error handed to the on_error observer and to callers."""

    type: ErrorType
    message: str
    status: int | None = None
    code: str | None = None
    details: Any = None


class ChatError(Exception):
    """Base class for errors that terminate an invocation."""

    error_type: ErrorType = "api_error"

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        code: str | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.details = details

    @property
    def payload(self) -> ErrorPayload:
        return ErrorPayload(
            type=self.error_type,
            message=self.message,
            status=self.status,
            code=self.code,
            details=self.details,
        )


class LLMTimeoutError(ChatError):
    """The HTTP exchange exceeded its deadline."""

    error_type: ErrorType = "timeout"

    def __init__(self, message: str = "Request timeout", **kwargs: Any) -> None:
        kwargs.setdefault("code", "ECONNABORTED")
        super().__init__(message, **kwargs)


class ApiError(ChatError):
    """Non-2xx response or any transport failure other than a timeout."""


class MaxToolIterationsExceeded(ChatError):
    """The model kept requesting tools past the configured round limit."""

    def __init__(self, max_iterations: int) -> None:
        super().__init__(
            f"Reached maximum tool call iterations ({max_iterations})",
            code="MAX_TOOL_ITERATIONS",
        )
        self.max_iterations = max_iterations


# ------------------------------------------------------------------------------
# Tool failures: always converted into tool messages, never raised to callers
# ------------------------------------------------------------------------------


class ToolError(Exception):
    """Base class for failures reported back to the model."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(message)
        self.tool_name = tool_name
        self.message = message


class ToolNotFound(ToolError):
    def __init__(self, tool_name: str) -> None:
        super().__init__(tool_name, f'Tool "{tool_name}" not found')


class ToolArgumentParseError(ToolError):
    def __init__(self, tool_name: str, reason: str) -> None:
        super().__init__(
            tool_name, f'Invalid arguments for tool "{tool_name}": {reason}'
        )


class ToolExecutionError(ToolError):
    def __init__(self, tool_name: str, reason: str) -> None:
        super().__init__(tool_name, f'Error executing tool "{tool_name}": {reason}')


# ------------------------------------------------------------------------------
# MCP failures
# ------------------------------------------------------------------------------


class McpRequestTimeout(McpError):
    """A single MCP request got no reply within its deadline."""

    def __init__(self, method: str, timeout: float) -> None:
        super().__init__(
            types.ErrorData(
                code=types.INTERNAL_ERROR,
                message=f"Request timeout: {method} ({timeout:g}s)",
                data={"method": method, "timeout": timeout},
            )
        )
        self.method = method
        self.timeout = timeout


class McpConnectionError(McpError):
    """The MCP server process could not be reached or went away."""

    def __init__(self, message: str) -> None:
        super().__init__(types.ErrorData(code=types.INTERNAL_ERROR, message=message))

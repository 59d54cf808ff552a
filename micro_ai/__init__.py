"""Client-side orchestration for OpenAI-compatible chat completion APIs."""

# micro_ai.chat must load first: tool_schema_manager and mcp_client import it
from micro_ai.chat import (
    ChatHooks,
    ChatOptions,
    ChatOrchestrator,
    ChatResponse,
    StreamEvent,
    ToolCallRecord,
)
from micro_ai.agent import Agent, Orchestrator
from micro_ai.config import Configuration
from micro_ai.errors import (
    ApiError,
    ChatError,
    ErrorPayload,
    LLMTimeoutError,
    MaxToolIterationsExceeded,
    McpConnectionError,
    McpRequestTimeout,
)
from micro_ai.mcp_client import MCPRegistry, create_mcp_tool, create_mcp_tools
from micro_ai.tool_schema_manager import ToolSchemaManager, create_tool

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "ApiError",
    "ChatError",
    "ChatHooks",
    "ChatOptions",
    "ChatOrchestrator",
    "ChatResponse",
    "Configuration",
    "ErrorPayload",
    "LLMTimeoutError",
    "MCPRegistry",
    "MaxToolIterationsExceeded",
    "McpConnectionError",
    "McpRequestTimeout",
    "Orchestrator",
    "StreamEvent",
    "ToolCallRecord",
    "ToolSchemaManager",
    "create_mcp_tool",
    "create_mcp_tools",
    "create_tool",
]

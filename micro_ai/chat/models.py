"""
Chat Data Models

Data structures for the chat engine: LLM API message types, tool call
shapes, streaming deltas and events, responses, and observer hooks.
All strongly typed with Pydantic for validation and type safety.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from micro_ai.clients.model_capabilities import CapabilityRecord, ReasoningLevel
from micro_ai.clients.request_builder import RequestOptions
from micro_ai.errors import ErrorPayload

MessageRole = Literal["system", "user", "assistant", "tool"]


# ==============================================================================
# CORE CHAT MESSAGES (LLM API Types)
# ==============================================================================


class TextPart(BaseModel):
    """Plain text content part."""

    type: Literal["text"] = "text"
    text: str


class ImageURL(BaseModel):
    url: str


class ImagePart(BaseModel):
    """Image reference content part (URL or data URL)."""

    type: Literal["image_url"] = "image_url"
    image_url: ImageURL


ContentPart = TextPart | ImagePart
MessageContent = str | list[ContentPart] | None


class SystemMessage(BaseModel):
    """System message for setting context."""

    role: Literal["system"] = "system"
    content: str


class UserMessage(BaseModel):
    """User message, plain text or a list of content parts."""

    role: Literal["user"] = "user"
    content: str | list[ContentPart]


class FunctionCall(BaseModel):
    """Function call within a tool call."""

    name: str
    arguments: str = Field(default="{}")  # JSON string, parsed at execution time


class ToolCall(BaseModel):
    """Tool call from LLM."""

    id: str
    type: Literal["function"] = "function"
    function: FunctionCall


class AssistantMessage(BaseModel):
    """Assistant message with optional tool calls."""

    role: Literal["assistant"] = "assistant"
    content: str | None = None
    tool_calls: list[ToolCall] | None = None

    # Vendor reasoning fields are kept so the log can be replayed verbatim
    reasoning: str | None = None
    reasoning_content: str | None = None

    @field_validator("tool_calls")
    @classmethod
    def validate_tool_calls(cls, v: list[ToolCall] | None) -> list[ToolCall] | None:
        """Convert empty tool_calls list to None to avoid API errors."""
        if v is not None and len(v) == 0:
            return None
        return v

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AssistantMessage:
        """Create AssistantMessage from a raw API message dict."""
        tool_calls = None
        if data.get("tool_calls"):
            tool_calls = [
                ToolCall(
                    id=tc.get("id") or "",
                    type=tc.get("type") or "function",
                    function=FunctionCall(
                        name=tc["function"]["name"],
                        arguments=tc["function"].get("arguments") or "{}",
                    ),
                )
                for tc in data["tool_calls"]
            ]

        content = data.get("content")
        if isinstance(content, list):
            # Some providers return content as a list of typed parts
            content = "".join(
                part.get("text") or ""
                for part in content
                if isinstance(part, dict) and part.get("type") == "text"
            )

        return cls(
            content=content,
            tool_calls=tool_calls,
            reasoning=data.get("reasoning"),
            reasoning_content=data.get("reasoning_content"),
        )


class ToolMessage(BaseModel):
    """Tool response message."""

    role: Literal["tool"] = "tool"
    content: str
    tool_call_id: str
    name: str | None = None


# Union of all message types for conversation
ChatCompletionMessage = SystemMessage | UserMessage | AssistantMessage | ToolMessage


def message_from_dict(data: dict[str, Any]) -> ChatCompletionMessage:
    """Build a typed message from an OpenAI-format dict."""
    role = data.get("role")
    if role == "system":
        return SystemMessage.model_validate(data)
    if role == "user":
        return UserMessage.model_validate(data)
    if role == "assistant":
        return AssistantMessage.from_dict(data)
    if role == "tool":
        return ToolMessage.model_validate(data)
    raise ValueError(f"Unknown message role: {role!r}")


# ==============================================================================
# TOOL DEFINITIONS AND SCHEMAS
# ==============================================================================


class ToolFunctionParameters(BaseModel):
    """Function parameters schema for tools."""

    # MCP input schemas may carry extra JSON-schema keywords; pass them through
    model_config = ConfigDict(extra="allow")

    type: Literal["object"] = "object"
    properties: dict[str, Any] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    # Left unset for raw schemas; model-derived schemas are closed
    additionalProperties: bool | dict[str, Any] | None = None


class ToolFunctionDefinition(BaseModel):
    """Tool function definition."""

    name: str
    description: str
    parameters: ToolFunctionParameters


class ToolDefinition(BaseModel):
    """Complete tool definition for OpenAI API."""

    type: Literal["function"] = "function"
    function: ToolFunctionDefinition


ToolHandler = Callable[[Any], Any]


class Tool(BaseModel):
    """A tool the model may call: its schema plus the handler that runs it."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    definition: ToolDefinition
    handler: ToolHandler
    # Pydantic model used to validate arguments before the handler runs
    args_model: type[BaseModel] | None = None

    @property
    def name(self) -> str:
        return self.definition.function.name

    @property
    def description(self) -> str:
        return self.definition.function.description


class ToolCallRecord(BaseModel):
    """Payload for the on_tool_call observer, emitted once per tool call."""

    tool_name: str
    arguments: Any
    result: Any = None
    error: str | None = None


# ==============================================================================
# STREAMING MODELS
# ==============================================================================


class FunctionCallDelta(BaseModel):
    """Partial function call data in streaming response."""

    name: str | None = None
    arguments: str | None = None


class ToolCallDelta(BaseModel):
    """Partial tool call data in streaming response."""

    index: int | None = None
    id: str | None = None
    type: Literal["function"] | None = None
    function: FunctionCallDelta | None = None


class TokenUsage(BaseModel):
    """Token usage information."""

    model_config = ConfigDict(extra="allow")

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class Timing(BaseModel):
    latency_ms: int = 0
    latency_seconds: float = 0.0

    @classmethod
    def since(cls, start: float, end: float) -> Timing:
        """Build timing from two time.monotonic() readings."""
        latency_ms = int((end - start) * 1000)
        return cls(latency_ms=latency_ms, latency_seconds=latency_ms / 1000)


class ResponseMetadata(BaseModel):
    """Metadata attached to responses and terminal stream events."""

    id: str
    prompt: str = ""
    provider_name: str = ""
    model: str
    tokens_used: TokenUsage | None = None
    timing: Timing = Field(default_factory=Timing)
    timestamp: str
    is_reasoning_enabled: bool | None = None
    is_reasoning_model: bool | None = None
    reasoning_effort: ReasoningLevel | None = None
    has_thoughts: bool | None = None


class Completion(BaseModel):
    role: str = "assistant"
    content: str = ""
    reasoning: str = ""
    original: str = ""


class ChatResponse(BaseModel):
    """Final result of one invocation."""

    metadata: ResponseMetadata
    completion: Completion
    full_response: dict[str, Any] | None = None


class StreamEvent(BaseModel):
    """
    One event of a streamed invocation.

    Partial events carry the deltas of a single frame; the terminal event
    (done=True) carries the trimmed totals plus metadata and completion.
    """

    delta: str = ""
    reasoning: str = ""
    full_content: str = ""
    done: bool = False
    metadata: ResponseMetadata | None = None
    completion: Completion | None = None


# ==============================================================================
# OBSERVERS
# ==============================================================================

Hook = Callable[..., Awaitable[None] | None]


class ChatHooks(BaseModel):
    """
    Observer callbacks the engine calls out to. Sync or async callables.

    - on_message(messages) after every append
    - on_tool_call(record) after every tool execution
    - on_request(payload) before every send
    - on_response_data(raw) after every non-streaming receive
    - on_error(error_payload) on terminal failures
    - on_complete(response, messages) once per top-level invocation
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    on_message: Hook | None = None
    on_tool_call: Hook | None = None
    on_request: Hook | None = None
    on_response_data: Hook | None = None
    on_error: Hook | None = None
    on_complete: Hook | None = None


# ==============================================================================
# SESSION SETTINGS
# ==============================================================================


class SessionSettings(BaseModel):
    """Everything an invoker needs besides the log, the transport and the tools."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    request_options: RequestOptions
    capability: CapabilityRecord = Field(default_factory=CapabilityRecord)
    hooks: ChatHooks = Field(default_factory=ChatHooks)
    max_tool_iterations: int = Field(default=10, gt=0)
    timeout: float | None = None
    # Builds the per-invocation metadata skeleton (id, prompt, provider, model)
    metadata_factory: Callable[[], ResponseMetadata]


__all__ = [
    "AssistantMessage",
    "ChatCompletionMessage",
    "ChatHooks",
    "ChatResponse",
    "Completion",
    "ContentPart",
    "ErrorPayload",
    "FunctionCall",
    "FunctionCallDelta",
    "Hook",
    "ImagePart",
    "ImageURL",
    "MessageContent",
    "MessageRole",
    "ReasoningLevel",
    "ResponseMetadata",
    "SessionSettings",
    "StreamEvent",
    "SystemMessage",
    "TextPart",
    "Timing",
    "TokenUsage",
    "Tool",
    "ToolCall",
    "ToolCallDelta",
    "ToolCallRecord",
    "ToolDefinition",
    "ToolFunctionDefinition",
    "ToolFunctionParameters",
    "ToolHandler",
    "ToolMessage",
    "UserMessage",
    "message_from_dict",
]

"""
Chat Orchestrator

Session facade for the chat engine. It owns the conversation, the tool
registry and the transport, and delegates each invocation to the streaming or
non-streaming handler.

Keeps the main class simple, just coordinating between modules.
"""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from micro_ai.chat.conversation import ConversationHistory
from micro_ai.chat.models import (
    AssistantMessage,
    ChatCompletionMessage,
    ChatHooks,
    ChatResponse,
    ImagePart,
    ImageURL,
    ResponseMetadata,
    SessionSettings,
    StreamEvent,
    TextPart,
    Tool,
    UserMessage,
)
from micro_ai.chat.simple_chat_handler import SimpleChatHandler
from micro_ai.chat.streaming_handler import StreamingHandler
from micro_ai.chat.tool_executor import ToolExecutor
from micro_ai.clients.llm_client import LLMClient
from micro_ai.clients.model_capabilities import (
    ReasoningLevel,
    detect_capabilities,
    split_model_identifier,
)
from micro_ai.clients.request_builder import RequestOptions
from micro_ai.config import Configuration
from micro_ai.errors import ApiError
from micro_ai.tool_schema_manager import ToolSchemaManager

logger = logging.getLogger(__name__)

_DATA_URL_MIME = re.compile(r"^data:([^;]+);base64,")


def is_data_url(value: str) -> bool:
    """True for base64 data URLs such as data:image/png;base64,...."""
    return value.startswith("data:") and ";base64," in value


def detect_mime_type(value: str) -> str:
    """MIME type of a base64 data URL, or "" when it is not one."""
    if not is_data_url(value):
        return ""
    match = _DATA_URL_MIME.match(value)
    return match.group(1) if match else ""


class ChatOptions(BaseModel):
    """Session options."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    # "provider:model" selects a configured provider; bare names use the active one
    model: str = ""
    system_prompt: str = ""
    messages: list[ChatCompletionMessage | dict[str, Any]] = Field(default_factory=list)
    temperature: float | None = 0
    max_tokens: int | None = None
    tools: list[Tool] = Field(default_factory=list)
    tool_choice: str | dict[str, Any] | None = None
    # None turns reasoning on exactly when the model supports it
    reasoning: bool | None = None
    reasoning_effort: ReasoningLevel = "medium"
    timeout: float | None = None
    stream: bool = False
    max_tool_iterations: int = Field(default=10, gt=0)
    extra_params: dict[str, Any] = Field(default_factory=dict)
    hooks: ChatHooks = Field(default_factory=ChatHooks)

    @classmethod
    def from_config(cls, configuration: Configuration, **overrides: Any) -> ChatOptions:
        """Options seeded from the chat section of the configuration."""
        chat_conf = configuration.get_chat_config()
        values: dict[str, Any] = {
            key: chat_conf[key]
            for key in (
                "temperature",
                "max_tokens",
                "reasoning",
                "reasoning_effort",
                "tool_choice",
                "timeout",
            )
            if key in chat_conf
        }
        values["max_tool_iterations"] = configuration.get_max_tool_iterations()
        values.update(overrides)
        return cls(**values)


class ChatOrchestrator:
    """
    Conversation orchestrator - coordinates between specialized handlers
    1. Takes your message
    2. Sends the log and the tool schemas to the model
    3. Runs whatever tools the model asks for
    4. Sends you back the response
    """

    def __init__(
        self,
        options: ChatOptions,
        llm_client: LLMClient | None = None,
        configuration: Configuration | None = None,
    ):
        self.options = options
        self.identifier = options.model
        self.prompt = ""

        provider, model_name = split_model_identifier(options.model)
        self._owns_llm_client = llm_client is None
        if llm_client is None:
            configuration = configuration or Configuration()
            llm_conf = configuration.get_llm_config(provider or None)
            provider = llm_conf["name"]
            model_name = model_name or llm_conf.get("model", "")
            llm_client = LLMClient(
                base_url=llm_conf["base_url"],
                api_key=configuration.get_api_key(provider),
                headers=llm_conf.get("headers"),
                timeout=options.timeout
                if options.timeout is not None
                else configuration.get_chat_config().get("timeout", 60.0),
            )
        if not model_name:
            raise ValueError("A model name is required")

        self.llm_client = llm_client
        self.provider_name = provider
        self.model_name = model_name
        self.capability = detect_capabilities(model_name)
        self.reasoning = (
            options.reasoning
            if options.reasoning is not None
            else self.capability.is_reasoning_model
        )

        # Core components
        self.tool_mgr = ToolSchemaManager(options.tools)
        self.conversation = ConversationHistory(
            options.messages, on_message=options.hooks.on_message
        )
        self.conversation.set_system_prompt(options.system_prompt)

        self.settings = SessionSettings(
            request_options=RequestOptions(
                model=model_name,
                temperature=options.temperature,
                max_tokens=options.max_tokens,
                tool_choice=options.tool_choice,
                reasoning=self.reasoning,
                reasoning_effort=options.reasoning_effort,
                extra_params=options.extra_params,
            ),
            capability=self.capability,
            hooks=options.hooks,
            max_tool_iterations=options.max_tool_iterations,
            timeout=options.timeout,
            metadata_factory=self._base_metadata,
        )
        self.tool_executor = ToolExecutor(
            self.tool_mgr, on_tool_call=options.hooks.on_tool_call
        )
        self.simple_chat_handler = SimpleChatHandler(
            self.llm_client, self.tool_executor, self.conversation, self.settings
        )
        self.streaming_handler = StreamingHandler(
            self.llm_client, self.tool_executor, self.conversation, self.settings
        )

        logger.info(
            "Chat session ready: provider=%s model=%s reasoning=%s dialect=%s tools=%d",
            self.provider_name or "-",
            self.model_name,
            self.reasoning,
            self.capability.dialect.value,
            len(self.tool_mgr),
        )

    def _base_metadata(self) -> ResponseMetadata:
        return ResponseMetadata(
            id=self.identifier or self.model_name,
            prompt=self.prompt,
            provider_name=self.provider_name,
            model=self.model_name,
            timestamp=datetime.now(UTC).isoformat(),
        )

    def get_metadata(self) -> ResponseMetadata:
        """Session metadata; reasoning fields only for reasoning models."""
        metadata = self._base_metadata()
        if self.capability.is_reasoning_model:
            metadata = metadata.model_copy(
                update={
                    "is_reasoning_enabled": self.reasoning,
                    "is_reasoning_model": True,
                    "reasoning_effort": self.options.reasoning_effort,
                }
            )
        return metadata

    # ------------------------------------------------------------------
    # Invocations
    # ------------------------------------------------------------------

    async def chat(self, prompt: str, image: str | None = None) -> ChatResponse:
        """
        Append a user message and answer it.

        With the stream option on, the answer is streamed internally and the
        response is built from the terminal event.
        """
        await self.add_user_message(prompt, image)
        if self.options.stream:
            return await self._collect_stream()
        return await self.invoke()

    async def invoke(self) -> ChatResponse:
        """Answer the current log without adding a user message."""
        logger.info("→ Orchestrator: non-streaming invocation")
        response = await self.simple_chat_handler.invoke()
        logger.info("← Orchestrator: invocation completed")
        return response

    async def stream(
        self, prompt: str, image: str | None = None
    ) -> AsyncGenerator[StreamEvent]:
        """Append a user message and stream the answer."""
        await self.add_user_message(prompt, image)
        logger.info("→ Orchestrator: streaming invocation")
        async for event in self.streaming_handler.stream():
            yield event
        logger.info("← Orchestrator: streaming invocation completed")

    async def _collect_stream(self) -> ChatResponse:
        final: StreamEvent | None = None
        async for event in self.streaming_handler.stream():
            if event.done:
                final = event
        if final is None or final.metadata is None or final.completion is None:
            raise ApiError("Stream ended without a final event", code="PARSE_ERROR")
        return ChatResponse(metadata=final.metadata, completion=final.completion)

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    async def add_user_message(self, prompt: str, image: str | None = None) -> None:
        """Append a user turn; a base64 data URL image makes it multi-part."""
        self.prompt = prompt
        if image and is_data_url(image):
            message = UserMessage(
                content=[
                    TextPart(text=prompt),
                    ImagePart(image_url=ImageURL(url=image)),
                ]
            )
        else:
            if image:
                logger.warning("Ignoring image that is not a base64 data URL")
            message = UserMessage(content=prompt)
        await self.conversation.add_message(message)

    async def add_assistant_message(self, content: str) -> ChatOrchestrator:
        await self.conversation.add_message(AssistantMessage(content=content))
        return self

    def get_messages(self) -> list[dict[str, Any]]:
        return self.conversation.get_messages()

    def set_messages(self, messages: list[ChatCompletionMessage | dict[str, Any]]) -> None:
        self.conversation.set_messages(messages)

    def flush_all_messages(self) -> None:
        self.conversation.flush()

    def limit_messages(self, limit: int = 5) -> list[dict[str, Any]]:
        return self.conversation.limit(limit)

    def get_system_prompt(self) -> str:
        return self.conversation.get_system_prompt() or self.options.system_prompt

    def set_system_prompt(self, prompt: str) -> None:
        self.options.system_prompt = prompt or self.options.system_prompt
        self.conversation.set_system_prompt(prompt)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Close the transport when this session created it."""
        if self._owns_llm_client:
            await self.llm_client.close()
            logger.info("LLM client closed successfully")

    async def __aenter__(self) -> ChatOrchestrator:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

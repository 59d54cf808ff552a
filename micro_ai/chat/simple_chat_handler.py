"""
Simple Chat Handler

Non-streaming request/response cycle:
- Build payload, post, append the assistant reply
- Execute requested tools and loop, bounded by max_tool_iterations
- Extract reasoning and build the final ChatResponse

Code duplication with streaming is acceptable since they have different
complexity levels.
"""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from micro_ai.chat.logging_utils import log_llm_reply
from micro_ai.chat.models import (
    AssistantMessage,
    ChatResponse,
    Completion,
    SessionSettings,
    Timing,
    TokenUsage,
)
from micro_ai.chat.observers import notify
from micro_ai.chat.reasoning import extract_reasoning
from micro_ai.clients.request_builder import build_payload
from micro_ai.errors import ApiError, ChatError, MaxToolIterationsExceeded

if TYPE_CHECKING:
    from micro_ai.chat.conversation import ConversationHistory
    from micro_ai.chat.tool_executor import ToolExecutor
    from micro_ai.clients.llm_client import LLMClient

logger = logging.getLogger(__name__)


def _first_message(response_data: dict[str, Any]) -> dict[str, Any]:
    choices = response_data.get("choices") or []
    message = choices[0].get("message") if choices else None
    if not isinstance(message, dict):
        raise ApiError(
            "Unexpected response format: no message in choices",
            code="PARSE_ERROR",
            details=response_data,
        )
    return message


def _parse_message(raw_message: dict[str, Any]) -> AssistantMessage:
    try:
        return AssistantMessage.from_dict(raw_message)
    except (ValidationError, KeyError, TypeError, AttributeError) as e:
        raise ApiError(
            f"Unexpected response format: {e!s}",
            code="PARSE_ERROR",
            details=raw_message,
        ) from e


def _parse_usage(usage: Any) -> TokenUsage | None:
    if not usage:
        return None
    try:
        return TokenUsage.model_validate(usage)
    except ValidationError:
        logger.debug("Ignoring malformed usage block: %r", usage)
        return None


class SimpleChatHandler:
    """Handles non-streaming chat operations."""

    def __init__(
        self,
        llm_client: LLMClient,
        tool_executor: ToolExecutor,
        conversation: ConversationHistory,
        settings: SessionSettings,
    ):
        self.llm_client = llm_client
        self.tool_executor = tool_executor
        self.conversation = conversation
        self.settings = settings

    async def invoke(self) -> ChatResponse:
        """
        Run the request/tool loop on the current log until the model answers.

        Raises:
            LLMTimeoutError, ApiError: transport or parse failure, after on_error
            MaxToolIterationsExceeded: the model kept calling tools
        """
        hooks = self.settings.hooks
        start_time = time.monotonic()

        try:
            return await self._run(start_time)
        except ChatError as e:
            logger.error("Non-streaming invocation failed: %s", e.message)
            await notify(hooks.on_error, e.payload)
            raise

    async def _run(self, start_time: float) -> ChatResponse:
        settings = self.settings
        hooks = settings.hooks
        tools = self.tool_executor.tool_mgr.get_openai_tools()

        hops = 0
        while True:
            payload = build_payload(
                self.conversation.get_api_format(),
                tools,
                settings.capability,
                settings.request_options,
                stream=False,
            )
            await notify(hooks.on_request, payload)

            logger.info("→ LLM: requesting non-streaming response (hop %d)", hops)
            response_data = await self.llm_client.post_completion(
                payload, timeout=settings.timeout
            )
            await notify(hooks.on_response_data, response_data)

            raw_message = _first_message(response_data)
            assistant_msg = _parse_message(raw_message)

            # An unanswered tool call would poison the log for the next turn
            if assistant_msg.tool_calls and hops >= settings.max_tool_iterations:
                logger.warning(
                    "Maximum tool iterations (%d) reached, stopping",
                    settings.max_tool_iterations,
                )
                raise MaxToolIterationsExceeded(settings.max_tool_iterations)

            await self.conversation.add_message(assistant_msg)
            log_llm_reply(
                assistant_msg.model_dump(exclude_none=True),
                f"non-streaming hop {hops}",
                response_data.get("model", settings.request_options.model),
            )

            if not assistant_msg.tool_calls:
                logger.info("← LLM: response generation completed")
                return await self._complete(
                    raw_message, assistant_msg, response_data, start_time
                )

            logger.info("Starting tool execution iteration %d", hops + 1)
            tool_messages = await self.tool_executor.execute_tool_calls(
                assistant_msg.tool_calls
            )
            await self.conversation.add_messages(tool_messages)
            hops += 1

    async def _complete(
        self,
        raw_message: dict[str, Any],
        assistant_msg: AssistantMessage,
        response_data: dict[str, Any],
        start_time: float,
    ) -> ChatResponse:
        settings = self.settings
        extracted = extract_reasoning(assistant_msg.model_dump(exclude_none=True))
        reasoning = extracted.reasoning.strip()

        metadata = settings.metadata_factory().model_copy(
            update={
                "tokens_used": _parse_usage(response_data.get("usage")),
                "timing": Timing.since(start_time, time.monotonic()),
                "timestamp": datetime.now(UTC).isoformat(),
                "is_reasoning_enabled": settings.request_options.reasoning,
                "is_reasoning_model": settings.capability.is_reasoning_model
                or bool(reasoning),
                "reasoning_effort": settings.request_options.reasoning_effort,
                "has_thoughts": bool(reasoning),
            }
        )

        response = ChatResponse(
            metadata=metadata,
            completion=Completion(
                role=raw_message.get("role") or "assistant",
                content=extracted.content.strip(),
                reasoning=reasoning,
                original=assistant_msg.content or "",
            ),
            full_response=response_data,
        )

        await notify(
            settings.hooks.on_complete, response, self.conversation.get_messages()
        )
        return response

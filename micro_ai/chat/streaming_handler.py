"""
Streaming Response Handler

Handles the fragile streaming path:
- Byte stream decoding into SSE records
- Content and reasoning deltas forwarded as they arrive
- Tool-call delta accumulation per index
- Tool call iterations, bounded by max_tool_iterations

Each round ends with a terminal event. It is swallowed when the round asked
for tools, so callers only ever see one terminal event per invocation.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from micro_ai.chat.logging_utils import log_llm_reply
from micro_ai.chat.models import (
    AssistantMessage,
    ChatResponse,
    Completion,
    SessionSettings,
    StreamEvent,
    Timing,
)
from micro_ai.chat.observers import notify
from micro_ai.chat.stream_decoder import SSELineDecoder, StreamAccumulator
from micro_ai.clients.request_builder import build_payload
from micro_ai.errors import ChatError, MaxToolIterationsExceeded

if TYPE_CHECKING:
    from micro_ai.chat.conversation import ConversationHistory
    from micro_ai.chat.tool_executor import ToolExecutor
    from micro_ai.clients.llm_client import LLMClient

logger = logging.getLogger(__name__)


class StreamingHandler:
    """Handles streaming responses and tool call iterations."""

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

    async def stream(self) -> AsyncGenerator[StreamEvent]:
        """
        Stream the answer to the current log, running tools between rounds.

        Yields partial events immediately and exactly one terminal event.

        Raises:
            LLMTimeoutError, ApiError: transport failure, after on_error
            MaxToolIterationsExceeded: the model kept calling tools
        """
        start_time = time.monotonic()
        try:
            async for event in self._run(start_time):
                yield event
        except ChatError as e:
            logger.error("Streaming invocation failed: %s", e.message)
            await notify(self.settings.hooks.on_error, e.payload)
            raise

    async def _run(self, start_time: float) -> AsyncGenerator[StreamEvent]:
        settings = self.settings
        hops = 0

        while True:
            accumulator = StreamAccumulator()
            async for event in self._stream_round(accumulator, hops):
                yield event

            assistant_msg = accumulator.finish()

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
                f"streaming hop {hops}",
                settings.request_options.model,
            )

            if not assistant_msg.tool_calls:
                yield await self._final_event(accumulator, assistant_msg, start_time)
                logger.info("← LLM: streaming response completed")
                return

            logger.info("Starting tool call iteration %d", hops + 1)
            tool_messages = await self.tool_executor.execute_tool_calls(
                assistant_msg.tool_calls
            )
            await self.conversation.add_messages(tool_messages)
            hops += 1

    async def _stream_round(
        self, accumulator: StreamAccumulator, hop_number: int
    ) -> AsyncGenerator[StreamEvent]:
        """Send one streaming request and forward its partial events."""
        settings = self.settings
        payload = build_payload(
            self.conversation.get_api_format(),
            self.tool_executor.tool_mgr.get_openai_tools(),
            settings.capability,
            settings.request_options,
            stream=True,
        )
        await notify(settings.hooks.on_request, payload)

        logger.info("→ LLM: starting streaming request (hop %d)", hop_number)
        decoder = SSELineDecoder()
        async with self.llm_client.stream_completion(
            payload, timeout=settings.timeout
        ) as chunks:
            async for chunk in chunks:
                for record in decoder.feed(chunk):
                    event = accumulator.process(record)
                    if event is not None:
                        yield event

        for record in decoder.flush():
            event = accumulator.process(record)
            if event is not None:
                yield event

        logger.info(
            "← LLM: streaming completed (hop %d), finish_reason=%s",
            hop_number,
            accumulator.finish_reason,
        )

    async def _final_event(
        self,
        accumulator: StreamAccumulator,
        assistant_msg: AssistantMessage,
        start_time: float,
    ) -> StreamEvent:
        settings = self.settings
        full_content = accumulator.full_content
        reasoning = accumulator.reasoning.strip()

        metadata = settings.metadata_factory().model_copy(
            update={
                "tokens_used": accumulator.usage,
                "timing": Timing.since(start_time, time.monotonic()),
                "timestamp": datetime.now(UTC).isoformat(),
                "is_reasoning_enabled": settings.request_options.reasoning,
                "is_reasoning_model": settings.capability.is_reasoning_model,
                "reasoning_effort": settings.request_options.reasoning_effort,
                "has_thoughts": bool(reasoning),
            }
        )
        completion = Completion(
            role=accumulator.role or assistant_msg.role,
            content=full_content.strip(),
            reasoning=reasoning,
            original=full_content,
        )

        await notify(
            settings.hooks.on_complete,
            ChatResponse(metadata=metadata, completion=completion),
            self.conversation.get_messages(),
        )

        return StreamEvent(
            delta="",
            reasoning=reasoning,
            full_content=full_content.strip(),
            done=True,
            metadata=metadata,
            completion=completion,
        )

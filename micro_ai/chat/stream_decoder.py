"""
Server-Sent-Events decoding for streamed chat completions.

SSELineDecoder turns raw body chunks into JSON records; StreamAccumulator
folds those records into partial events and, at the end of the stream, one
synthetic assistant message. Tool-call fragments are merged per index because
providers split ids, names and argument strings across many frames.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any

from pydantic import ValidationError

from micro_ai.chat.models import (
    AssistantMessage,
    FunctionCall,
    StreamEvent,
    TokenUsage,
    ToolCall,
    ToolCallDelta,
)

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
DATA_PREFIX = "data:"


class SSELineDecoder:
    """
    Incremental `data: <json>` line decoder.

    Bytes are decoded with an incremental UTF-8 decoder, so a multi-byte
    character split across two chunks is reassembled rather than mangled.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.done = False

    def feed(self, chunk: bytes) -> list[dict[str, Any]]:
        """Decode one chunk and return every complete record it finished."""
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return self._parse_lines(lines)

    def flush(self) -> list[dict[str, Any]]:
        """Drain whatever is left once the body has ended."""
        self._buffer += self._decoder.decode(b"", final=True)
        lines, self._buffer = self._buffer.split("\n"), ""
        return self._parse_lines(lines)

    def _parse_lines(self, lines: list[str]) -> list[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        for line in lines:
            record = self._parse_line(line)
            if record is not None:
                records.append(record)
        return records

    def _parse_line(self, line: str) -> dict[str, Any] | None:
        line = line.strip()
        # Blank separators, comments and non-data fields (event:, id:)
        if not line or not line.startswith(DATA_PREFIX):
            return None

        data = line[len(DATA_PREFIX) :].strip()
        if data == DONE_SENTINEL:
            self.done = True
            return None

        try:
            record = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed stream frame: %.200s", data)
            return None

        return record if isinstance(record, dict) else None


class StreamAccumulator:
    """Accumulates stream records for one round of a streamed invocation."""

    def __init__(self) -> None:
        self.role: str | None = None
        self.content_parts: list[str] = []
        self.reasoning_parts: list[str] = []
        self.tool_calls: dict[int, dict[str, Any]] = {}
        self.usage: TokenUsage | None = None
        self.finish_reason: str | None = None

    @property
    def full_content(self) -> str:
        return "".join(self.content_parts)

    @property
    def reasoning(self) -> str:
        return "".join(self.reasoning_parts)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def process(self, record: dict[str, Any]) -> StreamEvent | None:
        """
        Fold one record in. Returns a partial event when the record carried
        content or reasoning text, None otherwise.

        A record whose shape does not match the chunk schema is logged and
        skipped, like an undecodable frame.
        """
        try:
            return self._fold(record)
        except (ValidationError, TypeError, AttributeError, KeyError) as e:
            logger.debug("Skipping malformed stream record (%s): %.200r", e, record)
            return None

    def _fold(self, record: dict[str, Any]) -> StreamEvent | None:
        usage = None
        if record.get("usage"):
            usage = TokenUsage.model_validate(record["usage"])

        choices = record.get("choices") or []
        if not isinstance(choices, list):
            raise TypeError(f"choices must be a list, got {type(choices).__name__}")
        choice = (choices[0] if choices else None) or {}
        delta: dict[str, Any] = choice.get("delta") or {}
        if not isinstance(delta, dict):
            raise TypeError(f"delta must be an object, got {type(delta).__name__}")

        tool_call_deltas = [
            ToolCallDelta.model_validate(tc) for tc in delta.get("tool_calls") or []
        ]
        content = delta.get("content") or ""
        reasoning = delta.get("reasoning") or delta.get("reasoning_content") or ""
        if not isinstance(content, str) or not isinstance(reasoning, str):
            raise TypeError("content and reasoning deltas must be strings")

        # Validated in full before any state changes
        if usage is not None:
            self.usage = usage
        if choice.get("finish_reason"):
            self.finish_reason = choice["finish_reason"]
        if delta.get("role") and self.role is None:
            self.role = delta["role"]
        for tool_call_delta in tool_call_deltas:
            self._merge_tool_call(tool_call_delta)

        if not content and not reasoning:
            return None

        if content:
            self.content_parts.append(content)
        if reasoning:
            self.reasoning_parts.append(reasoning)

        return StreamEvent(
            delta=content,
            reasoning=reasoning,
            full_content=self.full_content,
            done=False,
        )

    def _merge_tool_call(self, delta: ToolCallDelta) -> None:
        if delta.index is not None:
            index = delta.index
        elif delta.id and all(c["id"] != delta.id for c in self.tool_calls.values()):
            index = len(self.tool_calls)
        else:
            # Providers that omit the index stream one call at a time
            index = max(self.tool_calls, default=0)

        entry = self.tool_calls.setdefault(
            index, {"id": "", "type": "function", "name": "", "arguments": ""}
        )
        if delta.id:
            entry["id"] = delta.id
        if delta.type:
            entry["type"] = delta.type
        if delta.function is not None:
            if delta.function.name:
                entry["name"] = delta.function.name
            if delta.function.arguments:
                entry["arguments"] += delta.function.arguments

    def finish(self) -> AssistantMessage:
        """Build the assistant message for this round."""
        tool_calls = [
            ToolCall(
                id=entry["id"],
                type="function",
                function=FunctionCall(
                    name=entry["name"], arguments=entry["arguments"] or "{}"
                ),
            )
            for _, entry in sorted(self.tool_calls.items())
            if entry["name"]
        ]
        dropped = len(self.tool_calls) - len(tool_calls)
        if dropped:
            logger.warning("Dropping %d streamed tool call(s) without a name", dropped)

        content: str | None = self.full_content
        if tool_calls and not content:
            content = None

        return AssistantMessage(
            content=content,
            tool_calls=tool_calls or None,
            reasoning=self.reasoning or None,
        )

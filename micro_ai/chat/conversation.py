"""
Conversation Store

Ordered message log for one session. The system message lives outside the
list of turns, so it can only ever appear once and always first.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from micro_ai.chat.models import (
    AssistantMessage,
    ChatCompletionMessage,
    Hook,
    SystemMessage,
    message_from_dict,
)
from micro_ai.chat.observers import notify

logger = logging.getLogger(__name__)

# Vendor reasoning fields are kept in the log but never sent back to the API
_API_EXCLUDE = {"reasoning", "reasoning_content"}


def _dump(message: ChatCompletionMessage, for_api: bool = False) -> dict[str, Any]:
    if isinstance(message, AssistantMessage):
        data = message.model_dump(
            exclude_none=True, exclude=_API_EXCLUDE if for_api else None
        )
        # Assistant turns always carry a content key, null when only tools were called
        data.setdefault("content", None)
        return data
    return message.model_dump(exclude_none=True)


class ConversationHistory:
    """Complete conversation history with an optional on_message observer."""

    def __init__(
        self,
        messages: Iterable[ChatCompletionMessage | dict[str, Any]] | None = None,
        on_message: Hook | None = None,
    ) -> None:
        self.system_prompt: SystemMessage | None = None
        self.messages: list[ChatCompletionMessage] = []
        self.on_message = on_message
        if messages:
            self.set_messages(messages)

    def __len__(self) -> int:
        return len(self.messages) + (1 if self.system_prompt else 0)

    async def add_message(self, message: ChatCompletionMessage) -> None:
        """Append a message and notify the observer."""
        if isinstance(message, SystemMessage):
            raise ValueError("System messages are set with set_system_prompt")
        self.messages.append(message)
        await notify(self.on_message, self.get_messages())

    async def add_messages(self, messages: Iterable[ChatCompletionMessage]) -> None:
        """Append several messages in order, notifying after each one."""
        for message in messages:
            await self.add_message(message)

    def set_system_prompt(self, prompt: str) -> None:
        """Insert the system message when the log has none yet."""
        if not prompt:
            return
        if self.system_prompt is None:
            self.system_prompt = SystemMessage(content=prompt)
        else:
            logger.debug("System message already present, keeping it")

    def get_system_prompt(self) -> str:
        return self.system_prompt.content if self.system_prompt else ""

    def set_messages(
        self, messages: Iterable[ChatCompletionMessage | dict[str, Any]]
    ) -> None:
        """
        Replace the whole log.

        Raises:
            ValueError: if a system message appears anywhere but first, or more
                than once.
        """
        typed = [
            message_from_dict(m) if isinstance(m, dict) else m for m in messages
        ]
        system: SystemMessage | None = None
        rest: list[ChatCompletionMessage] = []
        for i, message in enumerate(typed):
            if isinstance(message, SystemMessage):
                if i != 0:
                    raise ValueError("System message must be the first message")
                system = message
            else:
                rest.append(message)

        self.system_prompt = system
        self.messages = rest

    def flush(self) -> None:
        """Drop every message, including the system message."""
        self.system_prompt = None
        self.messages = []

    def limit(self, n: int = 5) -> list[dict[str, Any]]:
        """
        Keep the system message plus the last n other messages.

        Leading tool messages whose assistant turn was cut off are dropped too,
        since providers reject a tool result without its tool call.
        """
        if n < 0:
            raise ValueError("limit must be non-negative")
        kept = self.messages[-n:] if n else []
        while kept and kept[0].role == "tool":
            kept = kept[1:]
        self.messages = list(kept)
        return self.get_messages()

    def get_messages(self) -> list[dict[str, Any]]:
        """Full log as dicts, vendor reasoning fields included."""
        result: list[dict[str, Any]] = []
        if self.system_prompt:
            result.append(_dump(self.system_prompt))
        result.extend(_dump(m) for m in self.messages)
        return result

    def get_api_format(self) -> list[dict[str, Any]]:
        """Log as sent to /chat/completions."""
        result: list[dict[str, Any]] = []
        if self.system_prompt:
            result.append(_dump(self.system_prompt, for_api=True))
        result.extend(_dump(m, for_api=True) for m in self.messages)
        return result

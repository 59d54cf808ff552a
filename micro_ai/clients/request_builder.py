"""
Chat completion payload builder.

Assembles the provider request body from the conversation, the tool schemas
and the model's capability record. Reasoning configuration dispatches on the
closed ReasoningDialect set; caller overrides in extra_params are merged last.
"""

from __future__ import annotations

import copy
from typing import Any

from pydantic import BaseModel, Field

from micro_ai.clients.model_capabilities import (
    CapabilityRecord,
    ReasoningDialect,
    ReasoningLevel,
)

THINKING_BUDGETS: dict[str, int] = {
    "minimal": 2048,
    "low": 4096,
    "medium": 8192,
    "high": 16384,
}


class RequestOptions(BaseModel):
    """Per-session request parameters."""

    model: str
    temperature: float | None = None
    max_tokens: int | None = None
    tool_choice: str | dict[str, Any] | None = None
    reasoning: bool = False
    reasoning_effort: ReasoningLevel = "medium"
    # Merged last; a None value removes the key from the payload
    extra_params: dict[str, Any] = Field(default_factory=dict)


def _apply_reasoning(
    payload: dict[str, Any], dialect: ReasoningDialect, options: RequestOptions
) -> None:
    """Add the single reasoning block for the model's dialect."""
    if dialect is ReasoningDialect.OPENAI:
        payload["reasoning_effort"] = options.reasoning_effort
        if options.max_tokens:
            payload["max_completion_tokens"] = options.max_tokens
            payload.pop("max_tokens", None)
    elif dialect is ReasoningDialect.THINKING_BUDGET:
        payload["extra_body"] = {
            "google": {
                "thinking_config": {
                    "thinking_budget": THINKING_BUDGETS[options.reasoning_effort],
                    "include_thoughts": True,
                }
            }
        }
    elif dialect is ReasoningDialect.ENABLED_FLAG:
        payload["thinking"] = {"type": "enabled"}
    elif dialect is ReasoningDialect.NONE:
        pass
    else:  # pragma: no cover - exhaustive over ReasoningDialect
        raise ValueError(f"Unhandled reasoning dialect: {dialect}")


def build_payload(
    messages: list[dict[str, Any]],
    tools: list[dict[str, Any]] | None,
    capability: CapabilityRecord,
    options: RequestOptions,
    stream: bool = False,
) -> dict[str, Any]:
    """
    Build the /chat/completions request body.

    The messages and tool schemas are deep-copied so the payload never aliases
    caller state; building twice from the same inputs yields equal payloads.
    """
    payload: dict[str, Any] = {
        "model": options.model,
        "messages": copy.deepcopy(messages),
        "stream": stream,
    }

    if options.temperature:
        payload["temperature"] = options.temperature

    if options.max_tokens:
        payload["max_tokens"] = options.max_tokens

    if tools:
        payload["tools"] = copy.deepcopy(tools)
        if options.tool_choice:
            payload["tool_choice"] = copy.deepcopy(options.tool_choice)

    if options.reasoning and capability.is_reasoning_model:
        _apply_reasoning(payload, capability.dialect, options)

    for key, value in options.extra_params.items():
        if value is None:
            payload.pop(key, None)
        else:
            payload[key] = copy.deepcopy(value)

    return payload

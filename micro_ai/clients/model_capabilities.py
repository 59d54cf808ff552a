"""
Model capability detection.

Maps a model identifier to the reasoning capabilities the request builder
needs: whether the model reasons, and which vendor dialect configures it.
Pure string matching, no I/O; unknown models get no reasoning support.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict

ReasoningLevel = Literal["minimal", "low", "medium", "high"]


class ReasoningDialect(str, Enum):
    """Vendor-specific wire format for reasoning configuration."""

    NONE = "none"
    OPENAI = "openai"  # reasoning_effort
    THINKING_BUDGET = "thinking_budget"  # extra_body.google.thinking_config
    ENABLED_FLAG = "enabled_flag"  # thinking.type = enabled


class CapabilityRecord(BaseModel):
    """Reasoning capabilities of one model, fixed for a session."""

    model_config = ConfigDict(frozen=True)

    is_reasoning_model: bool = False
    dialect: ReasoningDialect = ReasoningDialect.NONE


# Checked in order; the first family that matches decides the dialect
_FAMILY_MARKERS: tuple[tuple[tuple[str, ...], ReasoningDialect], ...] = (
    (("gpt-5", "o1", "o3", "o4"), ReasoningDialect.OPENAI),
    (("gemini-2.5",), ReasoningDialect.THINKING_BUDGET),
    (("glm-4.",), ReasoningDialect.ENABLED_FLAG),
    (
        ("qwq", "deepseek-reasoner", "deepseek-r1", "qwen3", "-m2"),
        ReasoningDialect.NONE,
    ),
)


def split_model_identifier(model_id: str) -> tuple[str, str]:
    """
    Split a "provider:model" identifier.

    Returns (provider, model); provider is empty when no prefix is given.
    """
    provider, sep, model = model_id.partition(":")
    if not sep:
        return "", model_id
    return provider, model


def detect_capabilities(model_id: str) -> CapabilityRecord:
    """Detect reasoning support for a model identifier (case-insensitive)."""
    _, model = split_model_identifier(model_id or "")
    name = model.lower()

    for markers, dialect in _FAMILY_MARKERS:
        if any(marker in name for marker in markers):
            return CapabilityRecord(is_reasoning_model=True, dialect=dialect)

    return CapabilityRecord()

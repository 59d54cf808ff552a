"""Clients package: LLM transport, capability detection and payload building."""

from __future__ import annotations

from .llm_client import LLMClient
from .model_capabilities import (
    CapabilityRecord,
    ReasoningDialect,
    ReasoningLevel,
    detect_capabilities,
    split_model_identifier,
)
from .request_builder import RequestOptions, build_payload

__all__ = [
    "CapabilityRecord",
    "LLMClient",
    "ReasoningDialect",
    "ReasoningLevel",
    "RequestOptions",
    "build_payload",
    "detect_capabilities",
    "split_model_identifier",
]

"""
Tests for model capability detection.
"""

import pytest

from micro_ai.clients.model_capabilities import (
    ReasoningDialect,
    detect_capabilities,
    split_model_identifier,
)


@pytest.mark.parametrize(
    ("model_id", "dialect"),
    [
        ("openai:o3-mini", ReasoningDialect.OPENAI),
        ("gpt-5-nano", ReasoningDialect.OPENAI),
        ("o1-preview", ReasoningDialect.OPENAI),
        ("o4-mini", ReasoningDialect.OPENAI),
        ("gemini-2.5-flash", ReasoningDialect.THINKING_BUDGET),
        ("gemini:Gemini-2.5-Pro", ReasoningDialect.THINKING_BUDGET),
        ("glm-4.5", ReasoningDialect.ENABLED_FLAG),
        ("QwQ-32B", ReasoningDialect.NONE),
        ("deepseek-reasoner", ReasoningDialect.NONE),
        ("deepseek-r1-distill", ReasoningDialect.NONE),
        ("qwen3-235b", ReasoningDialect.NONE),
        ("minimax-m2", ReasoningDialect.NONE),
    ],
)
def test_reasoning_models_detected(model_id, dialect):
    """Known reasoning families map to their dialect."""
    capability = detect_capabilities(model_id)
    assert capability.is_reasoning_model is True
    assert capability.dialect is dialect


@pytest.mark.parametrize("model_id", ["llama-3.1-8b", "gpt-4o-mini", "", "claude-3"])
def test_unknown_models_have_no_reasoning(model_id):
    """Anything unmatched is a plain model."""
    capability = detect_capabilities(model_id)
    assert capability.is_reasoning_model is False
    assert capability.dialect is ReasoningDialect.NONE


def test_provider_prefix_is_ignored_for_matching():
    """Only the model part of provider:model is matched."""
    # "o1" in the provider name must not make the model a reasoning model
    assert detect_capabilities("proxy-o1:llama-3.1-8b").is_reasoning_model is False


def test_split_model_identifier():
    assert split_model_identifier("openai:gpt-4o") == ("openai", "gpt-4o")
    assert split_model_identifier("gpt-4o") == ("", "gpt-4o")
    assert split_model_identifier("groq:") == ("groq", "")


def test_capability_record_is_immutable():
    capability = detect_capabilities("o3-mini")
    with pytest.raises(Exception):
        capability.is_reasoning_model = False

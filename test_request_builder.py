"""
Tests for chat completion payload building.
"""

import copy

from micro_ai.clients.model_capabilities import detect_capabilities
from micro_ai.clients.request_builder import RequestOptions, build_payload

MESSAGES = [
    {"role": "system", "content": "You are terse."},
    {"role": "user", "content": "hi"},
]
TOOLS = [
    {
        "type": "function",
        "function": {
            "name": "add",
            "description": "Add two numbers",
            "parameters": {"type": "object", "properties": {}, "required": []},
        },
    }
]


def test_minimal_payload():
    """Only model, messages and stream are always present."""
    payload = build_payload(
        MESSAGES, None, detect_capabilities("gpt-4o"), RequestOptions(model="gpt-4o")
    )
    assert payload == {"model": "gpt-4o", "messages": MESSAGES, "stream": False}


def test_zero_temperature_is_omitted():
    options = RequestOptions(model="gpt-4o", temperature=0, max_tokens=100)
    payload = build_payload(MESSAGES, [], detect_capabilities("gpt-4o"), options)
    assert "temperature" not in payload
    assert payload["max_tokens"] == 100


def test_tools_and_tool_choice():
    options = RequestOptions(model="gpt-4o", tool_choice="auto", temperature=0.7)
    payload = build_payload(MESSAGES, TOOLS, detect_capabilities("gpt-4o"), options, stream=True)
    assert payload["tools"] == TOOLS
    assert payload["tool_choice"] == "auto"
    assert payload["temperature"] == 0.7
    assert payload["stream"] is True


def test_tool_choice_without_tools_is_omitted():
    options = RequestOptions(model="gpt-4o", tool_choice="auto")
    payload = build_payload(MESSAGES, [], detect_capabilities("gpt-4o"), options)
    assert "tools" not in payload
    assert "tool_choice" not in payload


def test_openai_reasoning_moves_token_limit():
    """The openai dialect sends reasoning_effort and max_completion_tokens."""
    options = RequestOptions(
        model="o3-mini", reasoning=True, reasoning_effort="high", max_tokens=500
    )
    payload = build_payload(MESSAGES, None, detect_capabilities("o3-mini"), options)
    assert payload["reasoning_effort"] == "high"
    assert payload["max_completion_tokens"] == 500
    assert "max_tokens" not in payload


def test_thinking_budget_dialect():
    options = RequestOptions(model="gemini-2.5-flash", reasoning=True, reasoning_effort="low")
    payload = build_payload(MESSAGES, None, detect_capabilities("gemini-2.5-flash"), options)
    assert payload["extra_body"] == {
        "google": {"thinking_config": {"thinking_budget": 4096, "include_thoughts": True}}
    }
    assert "reasoning_effort" not in payload


def test_enabled_flag_dialect():
    options = RequestOptions(model="glm-4.6", reasoning=True)
    payload = build_payload(MESSAGES, None, detect_capabilities("glm-4.6"), options)
    assert payload["thinking"] == {"type": "enabled"}


def test_none_dialect_adds_nothing():
    options = RequestOptions(model="deepseek-reasoner", reasoning=True)
    payload = build_payload(MESSAGES, None, detect_capabilities("deepseek-reasoner"), options)
    assert set(payload) == {"model", "messages", "stream"}


def test_reasoning_disabled_adds_nothing():
    options = RequestOptions(model="o3-mini", reasoning=False, max_tokens=10)
    payload = build_payload(MESSAGES, None, detect_capabilities("o3-mini"), options)
    assert "reasoning_effort" not in payload
    assert payload["max_tokens"] == 10


def test_extra_params_merge_last_and_none_removes():
    options = RequestOptions(
        model="o3-mini",
        reasoning=True,
        extra_params={"reasoning_effort": None, "seed": 7, "stream": True},
    )
    payload = build_payload(MESSAGES, None, detect_capabilities("o3-mini"), options)
    assert "reasoning_effort" not in payload
    assert payload["seed"] == 7
    assert payload["stream"] is True


def test_payload_does_not_alias_inputs():
    """Building never mutates or aliases the caller's messages."""
    messages = copy.deepcopy(MESSAGES)
    options = RequestOptions(model="gpt-4o")
    first = build_payload(messages, TOOLS, detect_capabilities("gpt-4o"), options)
    second = build_payload(messages, TOOLS, detect_capabilities("gpt-4o"), options)

    assert first == second
    first["messages"][1]["content"] = "changed"
    assert messages == MESSAGES

"""
Tests for SSE decoding and stream accumulation.
"""

import json

from micro_ai.chat.stream_decoder import SSELineDecoder, StreamAccumulator


def frame(payload) -> bytes:
    return f"data: {json.dumps(payload)}\n\n".encode()


def content_record(text: str, **delta) -> dict:
    return {"choices": [{"delta": {"content": text, **delta}}]}


def test_records_split_across_chunks():
    decoder = SSELineDecoder()
    raw = frame(content_record("hello"))

    assert decoder.feed(raw[:10]) == []
    records = decoder.feed(raw[10:])
    assert records == [content_record("hello")]


def test_multibyte_character_split_across_chunks():
    decoder = SSELineDecoder()
    raw = 'data: {"choices": [{"delta": {"content": "héllo ✓"}}]}\n'.encode()
    split_at = raw.index("✓".encode()) + 1

    records = decoder.feed(raw[:split_at]) + decoder.feed(raw[split_at:])
    assert records[0]["choices"][0]["delta"]["content"] == "héllo ✓"


def test_done_sentinel_comments_and_malformed_frames():
    decoder = SSELineDecoder()
    body = (
        b": keep-alive\n\n"
        b"event: message\n"
        b"data: {not json}\n\n"
        + frame(content_record("ok"))
        + b"data: [DONE]\n\n"
    )

    records = decoder.feed(body)
    assert records == [content_record("ok")]
    assert decoder.done


def test_flush_returns_trailing_record_without_newline():
    decoder = SSELineDecoder()
    assert decoder.feed(b'data: {"id": "x"}') == []
    assert decoder.flush() == [{"id": "x"}]


def test_accumulator_partial_events():
    acc = StreamAccumulator()
    first = acc.process(content_record("Hel", role="assistant"))
    second = acc.process(content_record("lo"))

    assert first.delta == "Hel" and not first.done
    assert second.full_content == "Hello"
    assert acc.role == "assistant"


def test_first_role_wins():
    acc = StreamAccumulator()
    acc.process(content_record("a", role="assistant"))
    acc.process(content_record("b", role="tool"))
    assert acc.role == "assistant"


def test_records_without_text_produce_no_event():
    acc = StreamAccumulator()
    assert acc.process({"choices": []}) is None
    assert acc.process({"choices": [{"delta": {}, "finish_reason": "stop"}]}) is None
    assert acc.finish_reason == "stop"


def test_reasoning_deltas():
    acc = StreamAccumulator()
    event = acc.process({"choices": [{"delta": {"reasoning": "thinking..."}}]})
    acc.process({"choices": [{"delta": {"reasoning_content": " more"}}]})

    assert event.reasoning == "thinking..."
    assert event.delta == ""
    assert acc.reasoning == "thinking... more"
    assert acc.finish().reasoning == "thinking... more"


def test_usage_is_captured():
    acc = StreamAccumulator()
    acc.process(
        {"choices": [], "usage": {"prompt_tokens": 3, "completion_tokens": 5, "total_tokens": 8}}
    )
    assert acc.usage.total_tokens == 8


def test_tool_call_fragments_merge_by_index():
    acc = StreamAccumulator()
    fragments = [
        {"index": 0, "id": "call_a", "type": "function", "function": {"name": "add"}},
        {"index": 1, "id": "call_b", "function": {"name": "now", "arguments": ""}},
        {"index": 0, "function": {"arguments": '{"a": 1,'}},
        {"index": 0, "function": {"arguments": ' "b": 2}'}},
    ]
    for fragment in fragments:
        acc.process({"choices": [{"delta": {"tool_calls": [fragment]}}]})

    message = acc.finish()
    assert acc.has_tool_calls
    assert message.content is None
    assert [c.id for c in message.tool_calls] == ["call_a", "call_b"]
    assert json.loads(message.tool_calls[0].function.arguments) == {"a": 1, "b": 2}
    assert message.tool_calls[1].function.arguments == "{}"


def test_tool_call_fragments_without_index():
    acc = StreamAccumulator()
    fragments = [
        {"id": "call_a", "function": {"name": "first", "arguments": "{"}},
        {"function": {"arguments": "}"}},
        {"id": "call_b", "function": {"name": "second", "arguments": "{}"}},
    ]
    for fragment in fragments:
        acc.process({"choices": [{"delta": {"tool_calls": [fragment]}}]})

    calls = acc.finish().tool_calls
    assert [c.function.name for c in calls] == ["first", "second"]
    assert calls[0].function.arguments == "{}"


def test_nameless_tool_calls_are_dropped():
    acc = StreamAccumulator()
    acc.process(
        {"choices": [{"delta": {"tool_calls": [{"index": 0, "id": "x"}]}}]}
    )
    message = acc.finish()
    assert message.tool_calls is None
    assert message.content == ""


def test_malformed_records_are_skipped():
    acc = StreamAccumulator()
    acc.process(content_record("Hel", role="assistant"))

    bad_tool_call = {
        "choices": [
            {"delta": {"tool_calls": [{"index": 0, "function": {"arguments": {"a": 1}}}]}}
        ]
    }
    assert acc.process(bad_tool_call) is None
    assert acc.process({"choices": [{"delta": "oops"}]}) is None
    assert acc.process({"choices": {"delta": {"content": "x"}}}) is None
    assert acc.process({"choices": ["not a choice"]}) is None
    assert acc.process({"usage": {"total_tokens": "many"}}) is None

    event = acc.process(content_record("lo"))
    assert event.full_content == "Hello"
    assert acc.usage is None
    assert not acc.has_tool_calls

"""
Tests for tool execution and failure reporting.
"""

import asyncio

from pydantic import BaseModel

from micro_ai.chat.models import FunctionCall, ToolCall
from micro_ai.chat.tool_executor import ToolExecutor, serialize_result
from micro_ai.errors import ToolArgumentParseError, ToolExecutionError, ToolNotFound
from micro_ai.tool_schema_manager import ToolSchemaManager, create_tool


class AddArgs(BaseModel):
    a: int
    b: int


def make_executor(records=None):
    async def slow_add(args):
        await asyncio.sleep(0.05)
        return args.a + args.b

    def fail(args):
        raise RuntimeError("boom")

    manager = ToolSchemaManager(
        [
            create_tool("add", "Add", AddArgs, slow_add),
            create_tool("now", "Instant", {}, lambda args: {"ok": True}),
            create_tool("fail", "Always fails", {}, fail),
        ]
    )
    on_tool_call = records.append if records is not None else None
    return ToolExecutor(manager, on_tool_call=on_tool_call)


async def test_successful_call():
    records = []
    outcome = await make_executor(records).execute("add", '{"a": 2, "b": 3}')

    assert outcome.ok
    assert outcome.content == "5"
    assert len(records) == 1
    assert records[0].tool_name == "add"
    assert records[0].arguments == {"a": 2, "b": 3}
    assert records[0].result == 5
    assert records[0].error is None


async def test_unknown_tool():
    records = []
    outcome = await make_executor(records).execute("missing", "{}")

    assert isinstance(outcome.error, ToolNotFound)
    assert outcome.content == 'Tool "missing" not found'
    assert records[0].error == 'Tool "missing" not found'


async def test_malformed_arguments():
    records = []
    outcome = await make_executor(records).execute("now", "{not json")

    assert isinstance(outcome.error, ToolArgumentParseError)
    assert outcome.content.startswith('Invalid arguments for tool "now"')
    assert len(records) == 1


async def test_arguments_failing_validation():
    outcome = await make_executor().execute("add", '{"a": "x"}')
    assert isinstance(outcome.error, ToolArgumentParseError)


async def test_empty_arguments_mean_empty_object():
    outcome = await make_executor().execute("now", "")
    assert outcome.content == '{"ok": true}'


async def test_handler_exception():
    records = []
    outcome = await make_executor(records).execute("fail", "{}")

    assert isinstance(outcome.error, ToolExecutionError)
    assert outcome.content == 'Error executing tool "fail": boom'
    assert records[0].result is None


async def test_results_keep_call_order():
    """The slow call finishes last but its message stays first."""
    calls = [
        ToolCall(id="1", function=FunctionCall(name="add", arguments='{"a":1,"b":1}')),
        ToolCall(id="2", function=FunctionCall(name="now", arguments="{}")),
        ToolCall(id="3", function=FunctionCall(name="missing", arguments="{}")),
    ]
    messages = await make_executor().execute_tool_calls(calls)

    assert [m.tool_call_id for m in messages] == ["1", "2", "3"]
    assert [m.name for m in messages] == ["add", "now", "missing"]
    assert messages[0].content == "2"
    assert messages[2].content == 'Tool "missing" not found'


async def test_calls_run_concurrently():
    calls = [
        ToolCall(id=str(i), function=FunctionCall(name="add", arguments='{"a":1,"b":2}'))
        for i in range(5)
    ]
    loop = asyncio.get_running_loop()
    start = loop.time()
    await make_executor().execute_tool_calls(calls)
    # Five 50ms calls in sequence would take at least 250ms
    assert loop.time() - start < 0.2


def test_serialize_result():
    assert serialize_result("plain") == "plain"
    assert serialize_result({"a": [1, 2]}) == '{"a": [1, 2]}'
    assert serialize_result(AddArgs(a=1, b=2)) == '{"a": 1, "b": 2}'

"""
Tool Execution Handler

Runs model-requested tool calls against the session's tool registry:
- Tool lookup by name
- Lazy JSON argument parsing and optional model validation
- Concurrent execution of all calls of one assistant turn
- Conversion of every failure into a tool message for the model

Tool failures never escape this module. Only cancellation propagates.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, NamedTuple

from pydantic import ValidationError
from pydantic_core import to_jsonable_python

from micro_ai.chat.logging_utils import (
    log_tool_args_error,
    log_tool_arguments,
    log_tool_execution_error,
    log_tool_execution_start,
    log_tool_execution_success,
    log_tool_results,
)
from micro_ai.chat.models import Hook, ToolCall, ToolCallRecord, ToolMessage
from micro_ai.chat.observers import notify
from micro_ai.errors import (
    ToolArgumentParseError,
    ToolError,
    ToolExecutionError,
    ToolNotFound,
)
from micro_ai.tool_schema_manager import ToolSchemaManager

logger = logging.getLogger(__name__)


class ToolOutcome(NamedTuple):
    """Result of one tool call; content is what the model will see."""

    tool_name: str
    content: str
    result: Any = None
    error: ToolError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def serialize_result(result: Any) -> str:
    """Strings pass through; everything else is encoded as JSON."""
    if isinstance(result, str):
        return result
    return json.dumps(result, default=to_jsonable_python)


class ToolExecutor:
    """Executes tool calls and reports each one to the on_tool_call observer."""

    def __init__(
        self,
        tool_mgr: ToolSchemaManager,
        on_tool_call: Hook | None = None,
    ) -> None:
        self.tool_mgr = tool_mgr
        self.on_tool_call = on_tool_call

    async def execute(
        self,
        tool_name: str,
        raw_arguments: str | None,
        call_index: int = 0,
        total_calls: int = 1,
    ) -> ToolOutcome:
        """Execute one tool call; failures come back as an outcome, not raised."""
        log_tool_execution_start(tool_name, call_index, total_calls)
        arguments: Any = raw_arguments

        try:
            tool = self.tool_mgr.get_tool(tool_name)
            if tool is None:
                raise ToolNotFound(tool_name)

            try:
                arguments = json.loads(raw_arguments) if raw_arguments else {}
            except json.JSONDecodeError as e:
                log_tool_args_error(tool_name, e)
                raise ToolArgumentParseError(tool_name, str(e)) from e

            try:
                parsed = self.tool_mgr.parse_arguments(tool, arguments)
            except ValidationError as e:
                log_tool_args_error(tool_name, e)
                raise ToolArgumentParseError(tool_name, str(e)) from e

            log_tool_arguments(
                tool_name, arguments, f"call {call_index + 1}/{total_calls}"
            )

            try:
                result = await self.tool_mgr.call_tool(tool, parsed)
            except Exception as e:
                raise ToolExecutionError(tool_name, str(e)) from e

        except ToolError as e:
            log_tool_execution_error(tool_name, e.message)
            await notify(
                self.on_tool_call,
                ToolCallRecord(
                    tool_name=tool_name,
                    arguments=arguments,
                    result=None,
                    error=e.message,
                ),
            )
            return ToolOutcome(tool_name=tool_name, content=e.message, error=e)

        content = serialize_result(result)
        log_tool_execution_success(tool_name, len(content))
        log_tool_results(tool_name, content, f"call {call_index + 1}/{total_calls}")
        await notify(
            self.on_tool_call,
            ToolCallRecord(tool_name=tool_name, arguments=arguments, result=result),
        )
        return ToolOutcome(tool_name=tool_name, content=content, result=result)

    async def execute_tool_calls(self, calls: list[ToolCall]) -> list[ToolMessage]:
        """
        Execute all calls of one assistant turn concurrently.

        Returns one tool message per call, in call order regardless of which
        call finished first.
        """
        logger.info("→ Tools: executing %d tool calls", len(calls))

        outcomes = await asyncio.gather(
            *(
                self.execute(call.function.name, call.function.arguments, i, len(calls))
                for i, call in enumerate(calls)
            )
        )

        logger.info("← Tools: completed all tool executions")
        return [
            ToolMessage(
                tool_call_id=call.id,
                name=call.function.name,
                content=outcome.content,
            )
            for call, outcome in zip(calls, outcomes, strict=True)
        ]

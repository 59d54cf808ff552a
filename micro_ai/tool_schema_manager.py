"""Lean Tool Schema Manager

This module provides a lightweight per-session tool registry that:
- Builds tools from a pydantic model class or a raw JSON schema
- Emits OpenAI-compatible tool definitions on demand (minimal wrapper)
- Resolves tools by name and runs their handlers, sync or async

MCP-backed tools are plain Tool instances too (see mcp_client.adapter), so the
registry never needs to know where a handler runs.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel

from micro_ai.chat.models import (
    Tool,
    ToolDefinition,
    ToolFunctionDefinition,
    ToolFunctionParameters,
    ToolHandler,
)

logger = logging.getLogger(__name__)


def _schema_from_model(model: type[BaseModel]) -> ToolFunctionParameters:
    schema = model.model_json_schema()
    extra: dict[str, Any] = {}
    if "$defs" in schema:
        extra["$defs"] = schema["$defs"]
    return ToolFunctionParameters(
        properties=schema.get("properties", {}),
        required=schema.get("required", []),
        additionalProperties=False,
        **extra,
    )


def create_tool(
    name: str,
    description: str,
    parameters: type[BaseModel] | dict[str, Any],
    handler: ToolHandler,
) -> Tool:
    """
    Create a tool from a schema and a handler.

    Args:
        name: Tool name, unique within a session
        description: Description shown to the model
        parameters: Pydantic model class (arguments are validated into it before
            the handler runs) or a raw JSON-schema object
        handler: Callable receiving the parsed arguments; may be async
    """
    if not name:
        raise ValueError("Tool name is required")

    args_model: type[BaseModel] | None = None
    if isinstance(parameters, type) and issubclass(parameters, BaseModel):
        args_model = parameters
        params = _schema_from_model(parameters)
    else:
        params = ToolFunctionParameters.model_validate(parameters or {})

    return Tool(
        definition=ToolDefinition(
            function=ToolFunctionDefinition(
                name=name, description=description, parameters=params
            )
        ),
        handler=handler,
        args_model=args_model,
    )


class ToolSchemaManager:
    """
    Registry of the tools available to one session.

    Key characteristics:
    - Lean: definitions are emitted as-is, never mutated
    - Minimal OpenAI wrapper: {"type": "function", "function": {name, description,
      parameters}}
    - Strict: duplicate tool names are rejected at registration time
    """

    def __init__(self, tools: Iterable[Tool] | None = None) -> None:
        self._tool_registry: dict[str, Tool] = {}
        for tool in tools or ():
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tool_registry:
            raise ValueError(f"Duplicate tool name: '{tool.name}'")
        self._tool_registry[tool.name] = tool
        logger.debug("Registered tool '%s'", tool.name)

    def __len__(self) -> int:
        return len(self._tool_registry)

    def __contains__(self, name: object) -> bool:
        return name in self._tool_registry

    def get_tool(self, name: str) -> Tool | None:
        return self._tool_registry.get(name)

    def list_tool_names(self) -> list[str]:
        return list(self._tool_registry)

    def get_openai_tools(self) -> list[dict[str, Any]]:
        """Tool schemas in /chat/completions format, in registration order."""
        return [
            tool.definition.model_dump(exclude_none=True)
            for tool in self._tool_registry.values()
        ]

    def parse_arguments(self, tool: Tool, args: Any) -> Any:
        """
        Validate decoded arguments against the tool's model, when it has one.

        Raises:
            pydantic.ValidationError: if the arguments do not fit the model
        """
        if tool.args_model is None:
            return args
        return tool.args_model.model_validate(args)

    async def call_tool(self, tool: Tool, args: Any) -> Any:
        """Run the tool handler, awaiting it when it returns a coroutine."""
        result = tool.handler(args)
        if inspect.isawaitable(result):
            result = await result
        return result

"""
FastMCP Demo Server

A small stdio MCP server with math and text tools, used by the sample
servers_config.json and handy for trying the tool-call loop by hand.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, TypeVar, cast

from mcp.server.fastmcp import FastMCP

# Tool groups - easily toggle tools on/off
TOOL_CONFIG = {
    "math_tools": True,
    "text_tools": True,
}

# Per-tool toggles (default True). Disable any individual tool by name.
TOOL_TOGGLES = {
    "add": True,
    "multiply": True,
    "divide": True,
    "word_count": True,
    "current_time": True,
}

F = TypeVar("F", bound=Callable[..., Any])

# Create server
mcp = FastMCP("Demo")


def _identity_decorator(func: F) -> F:
    return func


# Conditional decorator that becomes a no-op when a tool is disabled.
def tool_if(toggle_key: str) -> Callable[[F], F]:
    if TOOL_TOGGLES.get(toggle_key, True):
        return cast(Callable[[F], F], mcp.tool())
    return _identity_decorator


if TOOL_CONFIG["math_tools"]:

    @tool_if("add")
    def add(a: float, b: float) -> float:
        """Add two numbers"""
        return a + b

    @tool_if("multiply")
    def multiply(a: float, b: float) -> float:
        """Multiply two numbers"""
        return a * b

    @tool_if("divide")
    def divide(a: float, b: float) -> float:
        """Divide first number by second"""
        if b == 0:
            raise ValueError("Cannot divide by zero")
        return a / b


if TOOL_CONFIG["text_tools"]:

    @tool_if("word_count")
    def word_count(text: str) -> int:
        """Count the words in a piece of text"""
        return len(text.split())

    @tool_if("current_time")
    def current_time() -> str:
        """Current UTC time in ISO 8601 format"""
        return datetime.now(UTC).isoformat()


if __name__ == "__main__":
    # stdout carries the protocol; logs go to stderr
    logging.basicConfig(level=logging.INFO)

    enabled_features = [k for k, v in TOOL_CONFIG.items() if v]
    logging.info("Demo Server starting with features: %s", ", ".join(enabled_features))
    mcp.run()

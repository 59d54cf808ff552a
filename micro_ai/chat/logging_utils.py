"""
Chat Logging Utilities

Shared logging helpers with per-module feature flags so the invokers, the
tool executor and the MCP client log in one consistent arrow style.
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TRUNCATE = 500


def should_log_feature(module: str, feature: str) -> bool:
    """
    Check if a specific logging feature should be enabled.

    Feature flags are stored on the logging module by main.configure_logging.
    """
    module_features = getattr(logging, "_module_features", {}).get(module, {})
    return bool(module_features.get(feature, False))


def _truncate(text: str, limit: int) -> str:
    if limit > 0 and len(text) > limit:
        return text[:limit] + "..."
    return text


def log_llm_reply(
    message: dict[str, Any],
    context: str,
    model: str = "",
    truncate_length: int = DEFAULT_TRUNCATE,
) -> None:
    """
    Log an assistant reply when the chat.llm_replies feature is on.

    Args:
        message: Assistant message dict (content, tool_calls, reasoning)
        context: Descriptive context for the log entry
        model: Model that produced the reply
        truncate_length: Maximum length for content and reasoning
    """
    if not should_log_feature("chat", "llm_replies"):
        return

    content = message.get("content") or ""
    reasoning = message.get("reasoning") or message.get("reasoning_content") or ""
    tool_calls = message.get("tool_calls") or []

    log_parts = [f"LLM Reply ({context}):"]

    if reasoning:
        log_parts.append(f"Thinking: {_truncate(reasoning, truncate_length)}")

    if content:
        log_parts.append(f"Content: {_truncate(content, truncate_length)}")

    if tool_calls:
        log_parts.append(f"Tool calls: {len(tool_calls)}")
        for i, call in enumerate(tool_calls):
            name = call.get("function", {}).get("name", "unknown")
            log_parts.append(f"  [{i}] {name}")

    log_parts.append(f"Model: {model or 'unknown'}")

    logger.info(" | ".join(log_parts))


def log_tool_execution_start(
    tool_name: str, call_index: int = 0, total_calls: int = 1
) -> None:
    """Log the start of a tool call, with batch position when there are several."""
    if total_calls > 1:
        logger.info(
            "→ Tool[%s]: executing tool call %d/%d",
            tool_name,
            call_index + 1,
            total_calls,
        )
    else:
        logger.info("→ Tool[%s]: executing tool", tool_name)


def log_tool_execution_success(tool_name: str, content_length: int) -> None:
    logger.info("← Tool[%s]: success, content length: %d", tool_name, content_length)


def log_tool_execution_error(tool_name: str, error_msg: str) -> None:
    logger.error("← Tool[%s]: failed with error: %s", tool_name, error_msg)


def log_tool_args_error(tool_name: str, error: Exception) -> None:
    """Log malformed tool arguments."""
    logger.error("Malformed JSON arguments for %s: %s", tool_name, error)


def log_tool_arguments(
    tool_name: str,
    arguments: Any,
    context: str,
    truncate_length: int = DEFAULT_TRUNCATE,
) -> None:
    """Log the parsed arguments of a tool call when chat.tool_arguments is on."""
    if not should_log_feature("chat", "tool_arguments"):
        return

    args_str = _truncate(str(arguments), truncate_length)
    logger.info("→ Tool[%s]: arguments (%s): %s", tool_name, context, args_str)


def log_tool_results(
    tool_name: str, results: Any, context: str, truncate_length: int = 200
) -> None:
    """Log tool results when chat.tool_results is on."""
    if not should_log_feature("chat", "tool_results"):
        return

    results_str = _truncate(str(results), truncate_length)
    logger.info("← Tool[%s]: results (%s): %s", tool_name, context, results_str)

"""
Main application entry point - interactive streaming chat in the terminal.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Any

from mcp import McpError

from micro_ai.chat import ChatOptions, ChatOrchestrator
from micro_ai.chat.models import Tool
from micro_ai.config import Configuration
from micro_ai.errors import ChatError
from micro_ai.mcp_client import MCPRegistry, create_mcp_tools

EXIT_COMMANDS = {"exit", "quit"}


def configure_logging(logging_config: dict[str, Any]) -> None:
    """
    Logging configuration with hierarchical loggers and feature control.

    Sets the global level and format, a level per module logger hierarchy, and
    stores each module's feature flags for should_log_feature.
    """
    # Level mapping for efficient lookup
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }

    global_level = logging_config.get("level", "WARNING")
    root = logging.getLogger()
    root.setLevel(level_map.get(global_level, logging.WARNING))

    if "format" in logging_config:
        for handler in root.handlers:
            if isinstance(handler, logging.StreamHandler):
                handler.setFormatter(logging.Formatter(logging_config["format"]))

    # Module-to-logger mapping; children inherit from these parents
    module_logger_map = {
        "chat": {"loggers": ["micro_ai.chat"], "default_level": "INFO"},
        "clients": {"loggers": ["micro_ai.clients"], "default_level": "WARNING"},
        "mcp": {"loggers": ["micro_ai.mcp_client"], "default_level": "WARNING"},
    }

    module_features: dict[str, dict[str, bool]] = {}
    for module_name, module_config in logging_config.get("modules", {}).items():
        if not isinstance(module_config, dict):
            continue

        loggers = module_logger_map.get(module_name, {}).get("loggers", [])
        if not module_config.get("enabled", True):
            for logger_name in loggers:
                logging.getLogger(logger_name).setLevel(logging.CRITICAL + 1)
            module_features[module_name] = {}
            continue

        module_level = module_config.get(
            "level",
            module_logger_map.get(module_name, {}).get("default_level", global_level),
        )
        for logger_name in loggers:
            logging.getLogger(logger_name).setLevel(
                level_map.get(module_level, logging.WARNING)
            )

        # Stored for runtime checking instead of repeated config lookups
        module_features[module_name] = dict(module_config.get("enable_features") or {})

    logging._module_features = module_features  # type: ignore[attr-defined]


async def _load_mcp_tools(config: Configuration, registry: MCPRegistry) -> list[Tool]:
    """Connect every enabled server in the servers file; failures are skipped."""
    mcp_conf = config.get_mcp_config()
    servers_file = mcp_conf["servers_file"]
    if not os.path.isabs(servers_file) and not os.path.exists(servers_file):
        servers_file = os.path.join(os.path.dirname(__file__), servers_file)
    if not os.path.exists(servers_file):
        logging.info("No MCP servers file at %s", servers_file)
        return []

    tools: list[Tool] = []
    for name, server_config in config.load_servers_config(servers_file).items():
        # Only create clients for enabled servers
        if not server_config.get("enabled", False):
            logging.info("Skipping disabled server: %s", name)
            continue
        try:
            tools.extend(
                await create_mcp_tools(
                    server_config,
                    registry=registry,
                    name=name,
                    request_timeout=mcp_conf["request_timeout"],
                    protocol_version=mcp_conf["protocol_version"],
                )
            )
        except McpError as e:
            logging.warning("Server '%s' unavailable: %s", name, e.error.message)
        except Exception as e:
            logging.warning("Server '%s' failed to connect: %s", name, e)

    return tools


async def _read_line(prompt: str) -> str | None:
    try:
        return await asyncio.to_thread(input, prompt)
    except EOFError:
        return None


async def main() -> None:
    """Interactive chat loop with MCP tools from the configured servers."""
    config = Configuration()
    configure_logging(config.get_logging_config())

    async with MCPRegistry() as registry:
        tools = await _load_mcp_tools(config, registry)
        options = ChatOptions.from_config(
            config,
            model=os.getenv("MICRO_AI_MODEL", ""),
            system_prompt=os.getenv(
                "MICRO_AI_SYSTEM_PROMPT", "You are a helpful assistant."
            ),
            tools=tools,
            stream=True,
        )

        async with ChatOrchestrator(options, configuration=config) as chat:
            print(
                f"Interactive Chat with {chat.model_name} "
                f"({len(tools)} tools, type 'exit' to quit)\n"
            )
            while True:
                line = await _read_line("You: ")
                if line is None or line.strip().lower() in EXIT_COMMANDS:
                    print("Goodbye!")
                    return
                if not line.strip():
                    continue

                print("\nAssistant: ", end="", flush=True)
                try:
                    async for event in chat.stream(line.strip()):
                        if not event.done:
                            print(event.delta, end="", flush=True)
                    print("\n")
                except ChatError as e:
                    print(f"\nError: {e.message}\n", file=sys.stderr)


# Configure logging for the application
logging.basicConfig(
    level=logging.WARNING, format="%(asctime)s - %(levelname)s - %(message)s"
)


def cli_main() -> None:
    """Synchronous CLI entrypoint that runs the async main."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.info("Keyboard interrupt received, shutting down...")


if __name__ == "__main__":
    cli_main()

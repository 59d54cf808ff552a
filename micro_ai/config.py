"""Configuration management for the chat engine."""

from __future__ import annotations

import json
import os
from typing import Any, cast

import yaml
from dotenv import load_dotenv

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "config.yaml")


class Configuration:
    """YAML configuration with environment-provided secrets."""

    def __init__(self, config_path: str | None = None) -> None:
        """
        Load .env, the packaged defaults, and an optional user override file.

        Args:
            config_path: YAML file deep-merged over the packaged config.yaml.
                Falls back to the MICRO_AI_CONFIG environment variable.
        """
        self.load_env()  # Load .env for API keys
        self._default_config = self._load_yaml_config(DEFAULT_CONFIG_PATH)

        override_path = config_path or os.getenv("MICRO_AI_CONFIG")
        self._current_config: dict[str, Any] = self._default_config
        if override_path:
            self._current_config = self._deep_merge(
                self._default_config, self._load_yaml_config(override_path)
            )

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    @staticmethod
    def _load_yaml_config(path: str) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(path) as file:
            config = yaml.safe_load(file) or {}
            if not isinstance(config, dict):
                raise ValueError(f"Configuration file {path} must contain a dictionary")
            return cast(dict[str, Any], config)

    def _deep_merge(
        self, base: dict[str, Any], override: dict[str, Any]
    ) -> dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._deep_merge(
                    cast(dict[str, Any], result[key]), cast(dict[str, Any], value)
                )
            else:
                result[key] = value

        return result

    def get_config_dict(self) -> dict[str, Any]:
        """Get the full configuration dictionary."""
        return self._current_config

    @staticmethod
    def load_servers_config(file_path: str) -> dict[str, Any]:
        """Load MCP server configuration from JSON file.

        Args:
            file_path: Path to the JSON configuration file.

        Returns:
            The `mcpServers` mapping of server name to launch settings.

        Raises:
            FileNotFoundError: If configuration file doesn't exist.
            JSONDecodeError: If configuration file is invalid JSON.
        """
        with open(file_path) as f:
            data = json.load(f)
        servers = data.get("mcpServers", {})
        if not isinstance(servers, dict):
            raise ValueError("'mcpServers' must be a mapping of server names")
        return servers

    @property
    def active_provider(self) -> str:
        return self._current_config.get("llm", {}).get("active", "openai")

    def get_llm_config(self, provider: str | None = None) -> dict[str, Any]:
        """Get an LLM provider configuration block.

        Args:
            provider: Provider name; the active provider when omitted.

        Returns:
            Provider configuration (base_url, api_key_env, headers, model).
        """
        name = provider or self.active_provider
        providers = self._current_config.get("llm", {}).get("providers", {})

        if name not in providers:
            raise ValueError(f"Provider '{name}' not found in providers config")

        provider_config = dict(providers[name])
        if not provider_config.get("base_url"):
            raise ValueError(f"Provider '{name}' has no base_url")
        provider_config.setdefault("headers", {})
        provider_config["name"] = name
        return provider_config

    def get_api_key(self, provider: str | None = None) -> str:
        """Read the API key for a provider from the environment.

        Raises:
            ValueError: If the API key is not found in environment variables.
        """
        name = provider or self.active_provider
        env_key = self.get_llm_config(name).get("api_key_env")
        if not env_key:
            raise ValueError(f"Provider '{name}' has no api_key_env configured")

        api_key = os.getenv(env_key)
        if not api_key:
            raise ValueError(
                f"API key '{env_key}' not found in environment variables "
                f"for provider '{name}'"
            )

        return api_key

    @property
    def llm_api_key(self) -> str:
        """API key for the active LLM provider."""
        return self.get_api_key()

    def get_chat_config(self) -> dict[str, Any]:
        """Get chat defaults (temperature, max_tokens, reasoning, timeout, ...)."""
        return self._current_config.get("chat", {})

    def get_max_tool_iterations(self) -> int:
        """Get the maximum number of tool rounds per invocation (default: 10)."""
        max_iterations = self.get_chat_config().get("max_tool_iterations", 10)

        # bool is an int subclass; reject it explicitly
        if (
            not isinstance(max_iterations, int)
            or isinstance(max_iterations, bool)
            or max_iterations < 1
        ):
            raise ValueError("max_tool_iterations must be a positive integer")

        return max_iterations

    def get_mcp_config(self) -> dict[str, Any]:
        """Get MCP client configuration with validated defaults."""
        mcp_config = self._current_config.get("mcp", {})

        request_timeout = mcp_config.get("request_timeout", 30.0)
        protocol_version = mcp_config.get("protocol_version", "2024-11-05")
        servers_file = mcp_config.get("servers_file", "servers_config.json")

        if not isinstance(request_timeout, int | float) or request_timeout <= 0:
            raise ValueError("request_timeout must be positive")

        return {
            "request_timeout": float(request_timeout),
            "protocol_version": protocol_version,
            "servers_file": servers_file,
        }

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML."""
        return self._current_config.get("logging", {})

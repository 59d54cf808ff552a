"""
Tests for YAML configuration loading and validation.
"""

import json

import pytest

from micro_ai.config import Configuration


@pytest.fixture(autouse=True)
def no_override_env(monkeypatch):
    monkeypatch.delenv("MICRO_AI_CONFIG", raising=False)


def write_override(tmp_path, text: str) -> str:
    path = tmp_path / "override.yaml"
    path.write_text(text)
    return str(path)


def test_packaged_defaults():
    config = Configuration()

    assert config.active_provider == "openai"
    assert config.get_chat_config()["reasoning_effort"] == "medium"
    assert config.get_max_tool_iterations() == 10
    assert config.get_mcp_config() == {
        "request_timeout": 30.0,
        "protocol_version": "2024-11-05",
        "servers_file": "servers_config.json",
    }


def test_override_is_deep_merged(tmp_path):
    path = write_override(
        tmp_path,
        "llm:\n  active: groq\nchat:\n  max_tool_iterations: 3\n",
    )
    config = Configuration(path)

    assert config.active_provider == "groq"
    assert config.get_max_tool_iterations() == 3
    # Untouched keys survive the merge
    assert config.get_chat_config()["reasoning_effort"] == "medium"
    assert "openrouter" in config.get_config_dict()["llm"]["providers"]


def test_override_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("MICRO_AI_CONFIG", write_override(tmp_path, "chat:\n  timeout: 5\n"))
    assert Configuration().get_chat_config()["timeout"] == 5


@pytest.mark.parametrize("value", ["0", "-1", "true", "'ten'"])
def test_invalid_max_tool_iterations(tmp_path, value):
    config = Configuration(
        write_override(tmp_path, f"chat:\n  max_tool_iterations: {value}\n")
    )
    with pytest.raises(ValueError):
        config.get_max_tool_iterations()


def test_invalid_request_timeout(tmp_path):
    config = Configuration(write_override(tmp_path, "mcp:\n  request_timeout: 0\n"))
    with pytest.raises(ValueError):
        config.get_mcp_config()


def test_llm_config_includes_name_and_headers():
    config = Configuration()

    openrouter = config.get_llm_config("openrouter")
    assert openrouter["name"] == "openrouter"
    assert openrouter["headers"]["X-Title"] == "micro-ai"
    assert config.get_llm_config()["headers"] == {}


def test_unknown_provider():
    with pytest.raises(ValueError):
        Configuration().get_llm_config("nope")


def test_api_key_from_environment(monkeypatch):
    monkeypatch.setenv("DEEPSEEK_API_KEY", "ds-key")
    assert Configuration().get_api_key("deepseek") == "ds-key"


def test_missing_api_key(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    with pytest.raises(ValueError, match="GEMINI_API_KEY"):
        Configuration().get_api_key("gemini")


def test_load_servers_config(tmp_path):
    path = tmp_path / "servers.json"
    path.write_text(
        json.dumps({"mcpServers": {"demo": {"command": "python", "enabled": True}}})
    )
    servers = Configuration.load_servers_config(str(path))
    assert servers == {"demo": {"command": "python", "enabled": True}}

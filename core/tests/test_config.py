"""Tests for configuration loading and environment overrides."""

import json

import pytest

from agentstream.config import (
    DEFAULT_COMPLETER_TOOLS,
    DEFAULT_MODEL,
    RuntimeConfig,
    ServerConfig,
    get_config,
)


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Point configuration loading at a temp file and clear env overrides."""
    path = tmp_path / "configuration.json"
    monkeypatch.setenv("AGENTSTREAM_CONFIG", str(path))
    for var in (
        "AGENTSTREAM_MODEL",
        "AGENTSTREAM_COMPLETER_TOOLS",
        "AGENTSTREAM_HOST",
        "AGENTSTREAM_PORT",
    ):
        monkeypatch.delenv(var, raising=False)
    return path


class TestGetConfig:
    def test_missing_file_is_empty(self, config_file):
        assert get_config() == {}

    def test_invalid_json_is_empty(self, config_file):
        config_file.write_text("{not json")
        assert get_config() == {}

    def test_non_object_is_empty(self, config_file):
        config_file.write_text("[1, 2]")
        assert get_config() == {}


class TestRuntimeConfig:
    def test_defaults(self, config_file):
        config = RuntimeConfig()
        assert config.model == DEFAULT_MODEL
        assert config.completer_tools == DEFAULT_COMPLETER_TOOLS
        assert config.max_turns == 25
        assert config.api_key is None

    def test_values_from_file(self, config_file, monkeypatch):
        monkeypatch.setenv("MY_KEY", "sk-test")
        config_file.write_text(
            json.dumps(
                {
                    "llm": {
                        "provider": "openai",
                        "model": "gpt-4o-mini",
                        "api_key_env_var": "MY_KEY",
                        "max_tokens": 1024,
                    },
                    "agent": {"completer_tools": ["ask_user_question", "handoff"], "max_turns": 8},
                }
            )
        )

        config = RuntimeConfig()
        assert config.model == "openai/gpt-4o-mini"
        assert config.api_key == "sk-test"
        assert config.max_tokens == 1024
        assert config.completer_tools == ("ask_user_question", "handoff")
        assert config.max_turns == 8

    def test_env_overrides_file(self, config_file, monkeypatch):
        config_file.write_text(json.dumps({"llm": {"provider": "openai", "model": "gpt-4o"}}))
        monkeypatch.setenv("AGENTSTREAM_MODEL", "gemini/gemini-2.5-flash")
        monkeypatch.setenv("AGENTSTREAM_COMPLETER_TOOLS", "ask_user_question, finish ,")

        config = RuntimeConfig()
        assert config.model == "gemini/gemini-2.5-flash"
        assert config.completer_tools == ("ask_user_question", "finish")

    def test_empty_completer_env_disables_completers(self, config_file, monkeypatch):
        monkeypatch.setenv("AGENTSTREAM_COMPLETER_TOOLS", "")
        assert RuntimeConfig().completer_tools == ()


class TestServerConfig:
    def test_defaults(self, config_file):
        config = ServerConfig()
        assert config.host == "127.0.0.1"
        assert config.port == 8080

    def test_env_overrides(self, config_file, monkeypatch):
        config_file.write_text(json.dumps({"server": {"host": "0.0.0.0", "port": 9000}}))
        assert ServerConfig().port == 9000

        monkeypatch.setenv("AGENTSTREAM_PORT", "9100")
        monkeypatch.setenv("AGENTSTREAM_HOST", "localhost")
        config = ServerConfig()
        assert config.port == 9100
        assert config.host == "localhost"

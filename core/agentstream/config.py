"""Shared agentstream configuration utilities.

Centralises reading of ~/.agentstream/configuration.json so the server, the
CLI and tests share one implementation. Environment variables override the
file; CLI flags override both.

Example configuration.json::

    {
        "llm": {"provider": "anthropic", "model": "claude-sonnet-4-20250514",
                "api_key_env_var": "ANTHROPIC_API_KEY", "max_tokens": 4096},
        "agent": {"completer_tools": ["ask_user_question"], "max_turns": 25,
                  "system_prompt": "You are a helpful service assistant."},
        "server": {"host": "0.0.0.0", "port": 8080}
    }
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_MODEL = "anthropic/claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 4096
DEFAULT_MAX_TURNS = 25
DEFAULT_COMPLETER_TOOLS = ("ask_user_question",)
DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. When the answer is one of a known set of choices, "
    "use the ask_user_question tool instead of asking an open-ended question."
)

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

CONFIG_FILE = Path.home() / ".agentstream" / "configuration.json"


def get_config(path: Path | None = None) -> dict[str, Any]:
    """Load configuration from *path* (default ~/.agentstream/configuration.json)."""
    config_file = path or Path(os.environ.get("AGENTSTREAM_CONFIG", CONFIG_FILE))
    if not config_file.exists():
        return {}
    try:
        with open(config_file, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_preferred_model() -> str:
    """Return the configured model string (e.g. 'anthropic/claude-sonnet-4-20250514')."""
    env_model = os.environ.get("AGENTSTREAM_MODEL")
    if env_model:
        return env_model
    llm = get_config().get("llm", {})
    if llm.get("provider") and llm.get("model"):
        return f"{llm['provider']}/{llm['model']}"
    return DEFAULT_MODEL


def get_max_tokens() -> int:
    return get_config().get("llm", {}).get("max_tokens", DEFAULT_MAX_TOKENS)


def get_api_key() -> str | None:
    """Return the API key from the environment variable named in configuration."""
    llm = get_config().get("llm", {})
    api_key_env_var = llm.get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    return None


def get_completer_tools() -> tuple[str, ...]:
    """Return the names of tools whose execution ends a run."""
    env_value = os.environ.get("AGENTSTREAM_COMPLETER_TOOLS")
    if env_value is not None:
        return tuple(name.strip() for name in env_value.split(",") if name.strip())
    names = get_config().get("agent", {}).get("completer_tools")
    if isinstance(names, list):
        return tuple(str(n) for n in names)
    return DEFAULT_COMPLETER_TOOLS


def get_system_prompt() -> str:
    return get_config().get("agent", {}).get("system_prompt", DEFAULT_SYSTEM_PROMPT)


def get_max_turns() -> int:
    return get_config().get("agent", {}).get("max_turns", DEFAULT_MAX_TURNS)


# ---------------------------------------------------------------------------
# RuntimeConfig / ServerConfig
# ---------------------------------------------------------------------------


@dataclass
class RuntimeConfig:
    """Agent session configuration loaded from ~/.agentstream/configuration.json."""

    model: str = field(default_factory=get_preferred_model)
    temperature: float = 0.7
    max_tokens: int = field(default_factory=get_max_tokens)
    api_key: str | None = field(default_factory=get_api_key)
    api_base: str | None = None
    completer_tools: tuple[str, ...] = field(default_factory=get_completer_tools)
    system_prompt: str = field(default_factory=get_system_prompt)
    max_turns: int = field(default_factory=get_max_turns)


def _get_host() -> str:
    return os.environ.get("AGENTSTREAM_HOST") or get_config().get("server", {}).get(
        "host", "127.0.0.1"
    )


def _get_port() -> int:
    env_port = os.environ.get("AGENTSTREAM_PORT")
    if env_port:
        return int(env_port)
    return int(get_config().get("server", {}).get("port", 8080))


@dataclass
class ServerConfig:
    """Configuration for the HTTP server."""

    host: str = field(default_factory=_get_host)
    port: int = field(default_factory=_get_port)
    max_conversations: int = 1000

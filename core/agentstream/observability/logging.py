"""
Logging setup with per-run correlation fields.

Every request handler calls ``set_trace_context(run_id=..., conversation_id=...)``
once. The values live in a ContextVar, so the run task spawned by the handler
inherits them and each ``logger.info(...)`` inside the run is tagged without
passing ids around. Concurrent runs never see each other's ids.

Two renderings are available:

    json   one object per line, for log shipping
    human  coloured level plus a short ``[run:abcd1234 | conv:ef567890]`` prefix
"""

import json
import logging
import os
import re
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

_ANSI = re.compile(r"\x1b\[[0-9;]*m")

# Optional attributes passed via ``extra=`` that are copied into JSON entries
_EXTRA_FIELDS = ("event", "latency_ms", "model", "tool_name")

_THIRD_PARTY_LOGGERS = ("LiteLLM", "httpcore", "httpx", "aiohttp.access")


def strip_ansi_codes(text: str) -> str:
    return _ANSI.sub("", text)


class StructuredFormatter(logging.Formatter):
    """Render each record as a single JSON object.

    Keys: timestamp, level, logger, message, then the active trace context,
    then any of ``event``/``latency_ms``/``model``/``tool_name`` set through
    ``extra``, then ``exception`` when a traceback is attached.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
            **get_trace_context(),
        }
        entry.update(
            (name, getattr(record, name))
            for name in _EXTRA_FIELDS
            if getattr(record, name, None) is not None
        )
        if record.exc_info:
            entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Coloured single-line output for local development."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    @staticmethod
    def _prefix() -> str:
        context = get_trace_context()
        tags = [
            f"{label}:{context[key][:8]}"
            for key, label in (("run_id", "run"), ("conversation_id", "conv"))
            if context.get(key)
        ]
        return f"[{' | '.join(tags)}] " if tags else ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        line = f"{color}[{record.levelname:<8}]{self.RESET} {self._prefix()}{record.getMessage()}"

        event = getattr(record, "event", None)
        if event is not None:
            line += f" [{event}]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _resolve_format(format: str) -> str:
    if format != "auto":
        return format
    if os.getenv("LOG_FORMAT", "").lower() == "json":
        return "json"
    return "json" if os.getenv("ENV", "development").lower() == "production" else "human"


def configure_logging(level: str = "INFO", format: str = "auto") -> None:
    """
    Install a single root handler. Call once at process start.

    Args:
        level: Root log level name, e.g. "DEBUG" or "WARNING".
        format: "json", "human" or "auto". Auto picks JSON when
            ``LOG_FORMAT=json`` or ``ENV=production`` and human otherwise.
    """
    if _resolve_format(format) == "json":
        formatter: logging.Formatter = StructuredFormatter()
        _quiet_third_party_output()
    else:
        formatter = HumanReadableFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    # Libraries that install their own handlers would print twice otherwise
    for name in _THIRD_PARTY_LOGGERS:
        library_logger = logging.getLogger(name)
        library_logger.handlers.clear()
        library_logger.propagate = True


def _quiet_third_party_output() -> None:
    """Keep colour codes and banner text out of JSON log lines."""
    os.environ["NO_COLOR"] = "1"
    os.environ["FORCE_COLOR"] = "0"

    import litellm

    litellm.suppress_debug_info = True


def set_trace_context(**fields: Any) -> None:
    """Merge *fields* (run_id, conversation_id, ...) into the current context."""
    trace_context.set({**(trace_context.get() or {}), **fields})


def get_trace_context() -> dict[str, Any]:
    """Copy of the current context, empty when nothing was set."""
    return dict(trace_context.get() or {})


def clear_trace_context() -> None:
    trace_context.set(None)

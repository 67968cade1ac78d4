"""Lifecycle events produced by the run driver.

Events are emitted in production order and consumed exactly once by the
stream transport. Done and RunError are terminal: a run emits exactly one
of them, last.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class TextDelta:
    """A chunk of assistant text."""

    type: Literal["text_delta"] = "text_delta"
    text: str = ""


@dataclass(frozen=True)
class ToolStart:
    """A tool is about to execute."""

    type: Literal["tool_start"] = "tool_start"
    name: str = ""


@dataclass(frozen=True)
class ToolEnd:
    """A tool finished executing (successfully or not)."""

    type: Literal["tool_end"] = "tool_end"
    name: str = ""


@dataclass(frozen=True)
class Done:
    """The run completed."""

    type: Literal["done"] = "done"


@dataclass(frozen=True)
class RunError:
    """The run aborted."""

    type: Literal["error"] = "error"
    message: str = ""


LifecycleEvent = TextDelta | ToolStart | ToolEnd | Done | RunError


def is_terminal(event: LifecycleEvent) -> bool:
    return isinstance(event, (Done, RunError))

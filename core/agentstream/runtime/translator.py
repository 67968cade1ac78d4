"""Translate lifecycle events into wire frames.

Each event maps 1:1 onto a JSON payload, framed for Server-Sent Events as
``data: <JSON>\\n\\n``.
"""

import json
from typing import Any

from agentstream.loop.events import Done, LifecycleEvent, RunError, TextDelta, ToolEnd, ToolStart


def translate(event: LifecycleEvent) -> dict[str, Any]:
    """Map a lifecycle event to its wire payload."""
    if isinstance(event, TextDelta):
        return {"type": "text_delta", "text": event.text}
    if isinstance(event, ToolStart):
        return {"type": "tool_start", "tool_name": event.name}
    if isinstance(event, ToolEnd):
        return {"type": "tool_end", "tool_name": event.name}
    if isinstance(event, Done):
        return {"type": "done"}
    if isinstance(event, RunError):
        return {"type": "error", "message": event.message}
    raise TypeError(f"Unknown lifecycle event: {event!r}")


def encode_sse(payload: dict[str, Any]) -> bytes:
    """Frame a payload as one SSE ``data`` event."""
    return f"data: {json.dumps(payload)}\n\n".encode()

"""agentstream: turn-controlled agent runs streamed to clients over SSE."""

__version__ = "0.1.0"

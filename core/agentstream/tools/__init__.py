"""Built-in tools."""

from agentstream.runner.tool_registry import ToolRegistry
from agentstream.tools import ask_user_question


def register_builtin_tools(registry: ToolRegistry) -> None:
    """Register every built-in tool on *registry*."""
    ask_user_question.register(registry)


__all__ = ["register_builtin_tools"]

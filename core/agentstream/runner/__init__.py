"""Tool registration and execution."""

from agentstream.runner.tool_registry import RegisteredTool, ToolRegistry, tool

__all__ = ["RegisteredTool", "ToolRegistry", "tool"]

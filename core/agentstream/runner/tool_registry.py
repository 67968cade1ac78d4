"""Tool registration and execution for agent sessions.

A registry maps tool names to a model-facing ``Tool`` definition plus the
callable that does the work. ``execute()`` is the executor the tool
interceptor calls, and it reports every failure as an error-flagged
``ToolResult`` rather than raising.
"""

import inspect
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from agentstream.llm.provider import Tool, ToolResult, ToolUse

logger = logging.getLogger(__name__)

# Python annotation -> JSON-schema type; anything else is described as a string
_JSON_TYPES: dict[Any, str] = {
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
}


@dataclass
class RegisteredTool:
    tool: Tool
    executor: Callable[[dict], Any]


def tool(name: str | None = None, description: str | None = None) -> Callable:
    """Attach tool metadata for ToolRegistry.register_function().

    Example:
        @tool(description="Look up an OBD-II trouble code")
        def lookup_code(code: str) -> dict: ...
    """

    def mark(func: Callable) -> Callable:
        func._tool_metadata = {"name": name or func.__name__, "description": description}
        return func

    return mark


def _schema_for(func: Callable) -> dict[str, Any]:
    """Build an object schema from *func*'s parameters."""
    properties: dict[str, Any] = {}
    required: list[str] = []
    for param in inspect.signature(func).parameters.values():
        if param.name in ("self", "cls"):
            continue
        properties[param.name] = {"type": _JSON_TYPES.get(param.annotation, "string")}
        if param.default is inspect.Parameter.empty:
            required.append(param.name)
    return {"type": "object", "properties": properties, "required": required}


def _error_result(tool_use_id: str, message: str) -> ToolResult:
    return ToolResult(
        tool_use_id=tool_use_id,
        content=json.dumps({"error": message}),
        is_error=True,
    )


class ToolRegistry:
    """
    Ordered collection of tools available to a session.

    Usage:
        registry = ToolRegistry()
        registry.register_function(lookup_code)
        result = await registry.execute(ToolUse(id="t1", name="lookup_code", input={...}))
    """

    def __init__(self):
        self._tools: dict[str, RegisteredTool] = {}

    def register(self, name: str, tool: Tool, executor: Callable[[dict], Any]) -> None:
        """
        Register *tool* under *name*.

        Args:
            name: Registry key; must equal ``tool.name``
            tool: Definition sent to the model
            executor: Sync or async callable receiving the argument dict
        """
        if name != tool.name:
            raise ValueError(f"Tool name mismatch: {name!r} != {tool.name!r}")
        if name in self._tools:
            logger.warning("Tool '%s' re-registered, replacing previous executor", name)
        self._tools[name] = RegisteredTool(tool=tool, executor=executor)

    def register_function(
        self,
        func: Callable,
        name: str | None = None,
        description: str | None = None,
    ) -> None:
        """
        Register a plain function, deriving its definition from the signature.

        Name and description fall back to ``@tool`` metadata, then to the
        function's own name and docstring. Arguments are passed as keywords.
        """
        metadata = getattr(func, "_tool_metadata", {})
        tool_name = name or metadata.get("name") or func.__name__
        doc = description or metadata.get("description") or func.__doc__
        definition = Tool(
            name=tool_name,
            description=inspect.cleandoc(doc) if doc else f"Execute {tool_name}",
            parameters=_schema_for(func),
        )
        self.register(tool_name, definition, lambda inputs: func(**inputs))

    def get_tools(self) -> list[Tool]:
        """Definitions in registration order."""
        return [registered.tool for registered in self._tools.values()]

    def get_registered_names(self) -> list[str]:
        return list(self._tools)

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    async def execute(self, tool_use: ToolUse) -> ToolResult:
        """Run one tool call. Never raises for tool-level failures."""
        registered = self._tools.get(tool_use.name)
        if registered is None:
            return _error_result(tool_use.id, f"Unknown tool: {tool_use.name}")

        try:
            output = registered.executor(tool_use.input)
            if inspect.isawaitable(output):
                output = await output
        except Exception as e:
            logger.warning("Tool '%s' raised: %s", tool_use.name, e)
            return _error_result(tool_use.id, str(e))

        if isinstance(output, ToolResult):
            return output
        if not isinstance(output, str):
            output = json.dumps(output, default=str)
        return ToolResult(tool_use_id=tool_use.id, content=output)

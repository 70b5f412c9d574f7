"""Central registry for managing tool instances."""

from __future__ import annotations

from typing import Any

from asher.tools.base import fail
from asher.tools.protocol import Tool


class ToolRegistry:
    """
    Registry for managing tool instances.

    Example:
        registry = ToolRegistry()
        registry.register(my_tool)

        tool = registry.get("my_tool")
        result = await registry.execute_async("my_tool", param1="value")
    """

    def __init__(self) -> None:
        """Initialize empty registry."""
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """
        Register a tool instance.

        Raises:
            ValueError: If a tool with the same name is already registered
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool with name '{tool.name}' already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def all(self) -> list[Tool]:
        return list(self._tools.values())

    async def execute_async(self, name: str, **kwargs: Any) -> dict[str, Any]:
        """
        Execute a tool by name with parameters.

        Returns:
            Tool result envelope; an unknown name is a failure envelope
        """
        tool = self.get(name)
        if tool is None:
            return fail(f"Tool '{name}' not found")
        return await tool.execute_async(**kwargs)

    def __len__(self) -> int:
        """Return number of registered tools."""
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        """Check if tool is registered."""
        return name in self._tools

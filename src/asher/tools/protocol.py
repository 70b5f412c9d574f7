"""Tool protocol definition for standardized tool interfaces across frontends."""

from __future__ import annotations

from typing import Any, Protocol, TypedDict, runtime_checkable


class ToolParameter(TypedDict, total=False):
    """JSON Schema for a single parameter."""

    type: str
    description: str
    enum: list[str] | None
    format: str | None


class ToolInputSchema(TypedDict):
    """JSON Schema for tool input parameters."""

    type: str  # Always "object"
    properties: dict[str, ToolParameter]
    required: list[str]


@runtime_checkable
class Tool(Protocol):
    """
    Protocol for tools exposed over the CLI and the MCP server.

    Every tool returns a JSON-serializable envelope:
    ``{"success": True, "data": ...}`` or ``{"success": False, "error": "..."}``.
    Errors never propagate out of ``execute_async``.
    """

    @property
    def name(self) -> str:
        """Unique tool identifier (e.g., 'sql_query')."""
        ...

    @property
    def description(self) -> str:
        """Human-readable tool description for LLM context."""
        ...

    @property
    def input_schema(self) -> ToolInputSchema:
        """JSON Schema defining tool parameters."""
        ...

    async def execute_async(self, **kwargs: Any) -> dict[str, Any]:
        """
        Execute tool with provided parameters.

        Args:
            **kwargs: Parameters matching input_schema

        Returns:
            Result envelope with "success" and either "data" or "error"
        """
        ...

"""Sandboxed SQL query tool for the transaction store."""

from __future__ import annotations

from typing import Any

from asher.tools.base import StoreBackedTool, fail, ok
from asher.tools.protocol import ToolInputSchema


class SqlQueryTool(StoreBackedTool):
    """
    Tool for running read-only SQL against the transaction store.

    Only single SELECT statements (or table-introspection PRAGMAs) over the
    ``source_credentials`` and ``transactions`` tables are accepted; anything
    else comes back as a failure carrying the rejection reason.
    """

    _name = "sql_query"
    _description = (
        "Execute a safe SELECT query on the source_credentials and transactions "
        "tables. Returns rows as a list of objects. Only a single SELECT "
        "statement is allowed."
    )
    _input_schema: ToolInputSchema = {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "SQL SELECT query to execute",
            },
        },
        "required": ["query"],
    }

    async def _execute_impl(self, **kwargs: Any) -> dict[str, Any]:
        query: str = kwargs["query"]
        store = await self._open_store()
        result = store.run_read_only_query(query)
        if not result.success:
            return fail(result.error or "Query execution failed")
        return ok({"rows": result.rows, "count": len(result.rows)})

"""Schema introspection tools for the sandboxed tables."""

from __future__ import annotations

from typing import Any

from asher.tools.base import StoreBackedTool, fail, ok
from asher.tools.protocol import ToolInputSchema

_TABLE_SCHEMA: ToolInputSchema = {
    "type": "object",
    "properties": {
        "table": {
            "type": "string",
            "description": "Name of the table (source_credentials or transactions)",
        },
    },
    "required": ["table"],
}


class ListTablesTool(StoreBackedTool):
    _name = "list_tables"
    _description = "List all tables in the database that can be queried"
    _input_schema: ToolInputSchema = {
        "type": "object",
        "properties": {},
        "required": [],
    }

    async def _execute_impl(self, **kwargs: Any) -> dict[str, Any]:
        store = await self._open_store()
        return ok({"tables": store.list_tables()})


class GetTableSchemaTool(StoreBackedTool):
    _name = "get_table_schema"
    _description = "Get the column schema for a specific table"
    _input_schema = _TABLE_SCHEMA

    async def _execute_impl(self, **kwargs: Any) -> dict[str, Any]:
        store = await self._open_store()
        description = store.describe_table(kwargs["table"])
        if not description.success:
            return fail(description.error or "Failed to get table schema")
        return ok({"schema": description.columns})


class DescribeTableTool(StoreBackedTool):
    """Columns plus indexes for one table."""

    _name = "describe_table"
    _description = (
        "Get detailed information about a table including columns and indexes"
    )
    _input_schema = _TABLE_SCHEMA

    async def _execute_impl(self, **kwargs: Any) -> dict[str, Any]:
        store = await self._open_store()
        description = store.describe_table(kwargs["table"])
        if not description.success:
            return fail(description.error or "Failed to describe table")
        return ok({"columns": description.columns, "indexes": description.indexes})

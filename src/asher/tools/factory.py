from __future__ import annotations

from asher.core.runtime import AsherRuntime
from asher.tools.fetch.fetch_tool import FetchTransactionsTool
from asher.tools.query.query_tool import SqlQueryTool
from asher.tools.registry import ToolRegistry
from asher.tools.schema.schema_tools import (
    DescribeTableTool,
    GetTableSchemaTool,
    ListTablesTool,
)
from asher.tools.sources.source_tools import (
    GetTransactionsTool,
    ListScrapersTool,
    ListSourcesTool,
)


def build_registry(runtime: AsherRuntime) -> ToolRegistry:
    """Register every tool against the runtime's shared services."""
    registry = ToolRegistry()
    registry.register(ListTablesTool(runtime.store))
    registry.register(GetTableSchemaTool(runtime.store))
    registry.register(DescribeTableTool(runtime.store))
    registry.register(SqlQueryTool(runtime.store))
    registry.register(ListScrapersTool())
    registry.register(ListSourcesTool(runtime.store))
    registry.register(GetTransactionsTool(runtime.store))
    registry.register(FetchTransactionsTool(runtime.orchestrator))
    return registry

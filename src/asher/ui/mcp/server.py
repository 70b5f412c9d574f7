"""MCP server exposing Asher tools via the Anthropic MCP SDK."""

from __future__ import annotations

import sys
from typing import Any

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

from asher.core.config import load_config_from_env
from asher.core.logging import configure_logging
from asher.core.runtime import AsherRuntime, build_runtime
from asher.tools.factory import build_registry

FETCH_LAST_MONTH_PROMPT = """\
Fetch transactions from the last month and calculate the total expenses. \
Make sure to:
1. Query the database for transactions within the last month's date range
2. Filter for expenses (negative amounts)
3. Sum up the total expenses
4. Return a summary including:
   - Total expenses amount
   - Number of transactions
   - List of transactions with dates and amounts"""


def create_server(runtime: AsherRuntime) -> FastMCP:
    """Build a FastMCP server whose tools share the runtime's store and key."""
    registry = build_registry(runtime)
    mcp = FastMCP(name="asher")

    @mcp.tool()
    async def list_tables() -> dict[str, Any]:
        """List all tables in the database that can be queried."""
        return await registry.execute_async("list_tables")

    @mcp.tool()
    async def get_table_schema(table: str) -> dict[str, Any]:
        """
        Get the column schema for a specific table.

        Args:
            table: Name of the table (source_credentials or transactions)
        """
        return await registry.execute_async("get_table_schema", table=table)

    @mcp.tool()
    async def describe_table(table: str) -> dict[str, Any]:
        """
        Get detailed information about a table including columns and indexes.

        Args:
            table: Name of the table (source_credentials or transactions)
        """
        return await registry.execute_async("describe_table", table=table)

    @mcp.tool()
    async def sql_query(query: str) -> dict[str, Any]:
        """
        Execute a safe SELECT query on the source_credentials and transactions tables.

        Args:
            query: A single SQL SELECT statement
        """
        return await registry.execute_async("sql_query", query=query)

    @mcp.tool()
    async def list_scrapers() -> dict[str, Any]:
        """List all supported bank scrapers and their credential fields."""
        return await registry.execute_async("list_scrapers")

    @mcp.tool()
    async def list_sources() -> dict[str, Any]:
        """List configured sources without their credentials."""
        return await registry.execute_async("list_sources")

    @mcp.tool()
    async def get_transactions(
        friendly_name: str,
        provider_type: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> dict[str, Any]:
        """
        Get transactions for one configured source, most recent first.

        Args:
            friendly_name: Friendly name of the source
            provider_type: Provider of the source, to pick between sources that
                share a friendly name
            start_date: Earliest transaction date (ISO-8601), inclusive
            end_date: Latest transaction date (ISO-8601), inclusive
        """
        return await registry.execute_async(
            "get_transactions",
            friendly_name=friendly_name,
            provider_type=provider_type,
            start_date=start_date,
            end_date=end_date,
        )

    @mcp.tool()
    async def fetch_transactions() -> dict[str, Any]:
        """Fetch new transactions from all configured bank scrapers."""
        return await registry.execute_async("fetch_transactions")

    @mcp.prompt(name="fetch-last-month-transactions")
    def fetch_last_month_transactions() -> str:
        """Summarize last month's expenses."""
        return FETCH_LAST_MONTH_PROMPT

    return mcp


def main() -> None:
    """Run the MCP server over stdio."""
    load_dotenv(override=False)
    try:
        config = load_config_from_env()
    except ValueError as e:
        sys.exit(f"Configuration error: {e}")
    configure_logging(config.log_level, log_file=config.log_file)

    runtime = build_runtime(config)
    try:
        create_server(runtime).run()
    finally:
        runtime.close()


if __name__ == "__main__":
    main()

"""Tool wrapper for an ingestion run over all configured sources."""

from __future__ import annotations

from typing import Any

from asher.services.ingestion.orchestrator import IngestionOrchestrator
from asher.tools.base import StandardTool, ok
from asher.tools.protocol import ToolInputSchema


class FetchTransactionsTool(StandardTool):
    """
    Exposes IngestionOrchestrator.run through the Tool protocol.

    Per-source failures are part of the successful result; only a missing
    key, an unopenable store or no configured sources make the call fail.
    """

    _name = "fetch_transactions"
    _description = (
        "Fetch new transactions from all configured bank scrapers and store "
        "them. Returns per-source results including failures."
    )
    _input_schema: ToolInputSchema = {
        "type": "object",
        "properties": {},
        "required": [],
    }

    def __init__(self, orchestrator: IngestionOrchestrator) -> None:
        self._orchestrator = orchestrator

    async def _execute_impl(self, **kwargs: Any) -> dict[str, Any]:
        result = await self._orchestrator.run()
        data = result.to_dict()
        data["total_transactions"] = sum(
            outcome.transactions_fetched for outcome in result.sources
        )
        return ok(data)

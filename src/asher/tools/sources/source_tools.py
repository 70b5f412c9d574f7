"""Tools for inspecting configured sources and their transactions."""

from __future__ import annotations

from datetime import datetime
import json
from typing import Any

from asher.adapters.db.models import SourceCredential, Transaction
from asher.adapters.scrapers.base import ProviderType
from asher.core.errors import ValidationError
from asher.credentials.schemas import credential_fields
from asher.tools.base import StandardTool, StoreBackedTool, fail, ok
from asher.tools.protocol import ToolInputSchema


def source_summary(source: SourceCredential) -> dict[str, Any]:
    """Public view of a source; credentials are never included."""
    return {
        "id": source.id,
        "provider_type": source.provider_type,
        "friendly_name": source.friendly_name,
        "tags": json.loads(source.tags or "[]"),
        "last_scraped_at": source.last_scraped_at,
    }


def transaction_summary(txn: Transaction) -> dict[str, Any]:
    return {
        "provider_transaction_id": txn.provider_transaction_id,
        "type": txn.type,
        "status": txn.status,
        "occurred_at": txn.occurred_at,
        "processed_at": txn.processed_at,
        "original_amount": txn.original_amount,
        "original_currency": txn.original_currency,
        "charged_amount": txn.charged_amount,
        "charged_currency": txn.charged_currency,
        "description": txn.description,
        "memo": txn.memo,
        "category": txn.category,
    }


def _parse_date(name: str, value: str | None) -> datetime | None:
    if value is None or value == "":
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(
            f"{name} must be an ISO-8601 date, got {value!r}"
        ) from None


class ListScrapersTool(StandardTool):
    _name = "list_scrapers"
    _description = (
        "List all supported bank and credit card scrapers with the credential "
        "fields each one requires"
    )
    _input_schema: ToolInputSchema = {
        "type": "object",
        "properties": {},
        "required": [],
    }

    def _execute_impl(self, **kwargs: Any) -> dict[str, Any]:
        scrapers = [
            {
                "provider_type": provider.value,
                "credentials": credential_fields(provider),
            }
            for provider in ProviderType
        ]
        return ok({"scrapers": scrapers})


class ListSourcesTool(StoreBackedTool):
    _name = "list_sources"
    _description = (
        "List configured sources (provider, friendly name, tags and the time of "
        "the last ingested transaction). Credentials are not returned."
    )
    _input_schema: ToolInputSchema = {
        "type": "object",
        "properties": {},
        "required": [],
    }

    async def _execute_impl(self, **kwargs: Any) -> dict[str, Any]:
        store = await self._open_store()
        sources = [source_summary(s) for s in store.get_source_credentials()]
        return ok({"sources": sources})


class GetTransactionsTool(StoreBackedTool):
    """Transactions of one source within an optional date range."""

    _name = "get_transactions"
    _description = (
        "Get transactions for one configured source, most recent first. "
        "Dates are inclusive ISO-8601 bounds on the transaction date."
    )
    _input_schema: ToolInputSchema = {
        "type": "object",
        "properties": {
            "friendly_name": {
                "type": "string",
                "description": "Friendly name of the source",
            },
            "provider_type": {
                "type": "string",
                "description": "Provider of the source, optional; narrows the "
                "lookup when two providers share a friendly name",
            },
            "start_date": {
                "type": "string",
                "description": "Earliest transaction date (ISO-8601), optional",
                "format": "date-time",
            },
            "end_date": {
                "type": "string",
                "description": "Latest transaction date (ISO-8601), optional",
                "format": "date-time",
            },
        },
        "required": ["friendly_name"],
    }

    async def _execute_impl(self, **kwargs: Any) -> dict[str, Any]:
        friendly_name: str = kwargs["friendly_name"]
        provider_type: str | None = kwargs.get("provider_type") or None
        start_date = _parse_date("start_date", kwargs.get("start_date"))
        end_date = _parse_date("end_date", kwargs.get("end_date"))

        store = await self._open_store()
        source = store.get_source_credential_by_name(
            friendly_name, provider_type=provider_type
        )
        if source is None:
            label = (
                f"{friendly_name} ({provider_type})" if provider_type else friendly_name
            )
            return fail(f"Source not found: {label}")

        transactions = [
            transaction_summary(txn)
            for txn in store.get_transactions(source.id, start_date, end_date)
        ]
        return ok({"transactions": transactions, "count": len(transactions)})

"""Scraper provider protocol and the wire models it returns."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from datetime import datetime
from enum import StrEnum
import hashlib
from typing import Any, Protocol

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from asher.adapters.db.models import TransactionRecord, to_utc

DEFAULT_CURRENCY = "ILS"
DEFAULT_TRANSACTION_TYPE = "normal"
DEFAULT_TRANSACTION_STATUS = "completed"


class ProviderType(StrEnum):
    """Financial institutions supported by the scraper bridge."""

    HAPOALIM = "hapoalim"
    LEUMI = "leumi"
    DISCOUNT = "discount"
    MERCANTILE = "mercantile"
    MIZRAHI = "mizrahi"
    BEINLEUMI = "beinleumi"
    MASSAD = "massad"
    OTSAR_HAHAYAL = "otsarHahayal"
    VISA_CAL = "visaCal"
    MAX = "max"
    ISRACARD = "isracard"
    AMEX = "amex"
    YAHAV = "yahav"
    BEYAHAD_BISHVILHA = "beyahadBishvilha"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class ScrapedTransaction(_WireModel):
    """A single transaction as reported by a provider."""

    identifier: str | int | None = None
    type: str | None = None
    status: str | None = None
    date: datetime
    processed_date: datetime | None = None
    original_amount: float | None = None
    original_currency: str | None = None
    charged_amount: float | None = None
    charged_currency: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "chargedCurrency", "currency", "charged_currency"
        ),
    )
    description: str = ""
    memo: str | None = None
    category: str | None = None


class ScrapedAccount(_WireModel):
    account_number: str | None = None
    txns: list[ScrapedTransaction] = Field(default_factory=list)


class ScrapeResult(_WireModel):
    """Outcome of one provider call; failures carry error_type and message."""

    success: bool
    accounts: list[ScrapedAccount] = Field(default_factory=list)
    error_type: str | None = None
    error_message: str | None = None

    @classmethod
    def failure(cls, error_type: str, error_message: str) -> ScrapeResult:
        return cls(success=False, error_type=error_type, error_message=error_message)

    def transactions(self) -> Iterator[tuple[ScrapedAccount, ScrapedTransaction]]:
        for account in self.accounts:
            for txn in account.txns:
                yield account, txn

    @property
    def transaction_count(self) -> int:
        return sum(len(account.txns) for account in self.accounts)


class ScraperProvider(Protocol):
    """External collaborator that fetches transactions for one source.

    Implementations report provider-side failures as a ScrapeResult with
    ``success=False`` (or by raising ProviderError); they do not retry.
    """

    async def scrape(
        self,
        provider_type: str,
        credentials: Mapping[str, Any],
        start_date: datetime,
    ) -> ScrapeResult:
        """Fetch every transaction processed at or after start_date."""
        ...


def transaction_identity(account: ScrapedAccount, txn: ScrapedTransaction) -> str:
    """Provider id if present, else a stable hash of the transaction content."""
    if txn.identifier is not None and str(txn.identifier).strip():
        return str(txn.identifier)

    parts = [
        account.account_number or "",
        to_utc(txn.date).isoformat(),
        to_utc(txn.processed_date).isoformat() if txn.processed_date else "",
        repr(txn.original_amount),
        repr(txn.charged_amount),
        txn.description,
        txn.memo or "",
    ]
    digest = hashlib.sha256("\x1f".join(parts).encode("utf-8")).hexdigest()
    return f"sha256:{digest[:32]}"


def to_transaction_record(
    source_credential_id: int,
    account: ScrapedAccount,
    txn: ScrapedTransaction,
) -> TransactionRecord:
    occurred_at = to_utc(txn.date)
    processed_at = to_utc(txn.processed_date) if txn.processed_date else occurred_at
    charged_amount = txn.charged_amount if txn.charged_amount is not None else 0.0
    original_amount = (
        txn.original_amount if txn.original_amount is not None else charged_amount
    )
    return TransactionRecord(
        source_credential_id=source_credential_id,
        provider_transaction_id=transaction_identity(account, txn),
        type=txn.type or DEFAULT_TRANSACTION_TYPE,
        status=txn.status or DEFAULT_TRANSACTION_STATUS,
        occurred_at=occurred_at,
        processed_at=processed_at,
        original_amount=original_amount,
        original_currency=txn.original_currency or DEFAULT_CURRENCY,
        charged_amount=charged_amount,
        charged_currency=txn.charged_currency or DEFAULT_CURRENCY,
        description=txn.description,
        memo=txn.memo or None,
        category=txn.category or None,
    )


def to_transaction_records(
    source_credential_id: int, result: ScrapeResult
) -> list[TransactionRecord]:
    return [
        to_transaction_record(source_credential_id, account, txn)
        for account, txn in result.transactions()
    ]

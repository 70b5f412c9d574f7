from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import json
from typing import Any, Protocol

from asher.adapters.db.models import SourceCredential
from asher.adapters.db.store import EncryptedStore
from asher.adapters.scrapers.base import ScraperProvider, to_transaction_records
from asher.core.errors import (
    CredentialsError,
    IngestionPreconditionError,
    ProviderError,
)
from asher.services.ingestion.logger import IngestionLogger
from asher.services.watermark import WatermarkTracker

CREDENTIALS_ERROR = "CredentialsError"
PROVIDER_ERROR = "ProviderError"


class Notifier(Protocol):
    async def notify(self, title: str, message: str) -> None: ...


@dataclass
class SourceOutcome:
    """Result of processing one source during an ingestion run."""

    provider_type: str
    friendly_name: str
    success: bool
    transactions_fetched: int = 0
    transactions_inserted: int = 0
    watermark: datetime | None = None
    error: str | None = None
    error_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider_type": self.provider_type,
            "friendly_name": self.friendly_name,
            "success": self.success,
            "transactions_fetched": self.transactions_fetched,
            "transactions_inserted": self.transactions_inserted,
            "watermark": self.watermark.isoformat() if self.watermark else None,
            "error": self.error,
            "error_type": self.error_type,
        }


@dataclass
class IngestionRunResult:
    """
    Outcome of a full pass over every source.

    ``success`` is True whenever the run completed; individual failures are
    reported in ``sources``.
    """

    success: bool
    sources: list[SourceOutcome]

    @property
    def failed(self) -> list[SourceOutcome]:
        return [outcome for outcome in self.sources if not outcome.success]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "sources_processed": len(self.sources),
            "sources_failed": len(self.failed),
            "results": [outcome.to_dict() for outcome in self.sources],
        }


def decode_credentials(source: SourceCredential) -> dict[str, Any]:
    """
    Parse a source's stored credential payload.

    Raises:
        CredentialsError: If the payload is not a JSON object
    """
    try:
        value = json.loads(source.credentials)
    except (TypeError, ValueError) as e:
        raise CredentialsError("Invalid credentials format") from e
    if not isinstance(value, dict):
        raise CredentialsError("Invalid credentials format")
    return value


class IngestionOrchestrator:
    """
    Runs one fetch pass over every configured source.

    Sources are processed one at a time. A failure in one source (undecodable
    credentials, a provider error, or anything unexpected) is recorded in that
    source's outcome and the run moves on to the next source. Only a missing
    key, an unopenable store, or an empty source list abort the run.
    """

    def __init__(
        self,
        store: EncryptedStore,
        provider: ScraperProvider,
        watermarks: WatermarkTracker,
        *,
        notifier: Notifier | None = None,
        logger: IngestionLogger | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            store: Shared encrypted store
            provider: Scraper provider used for every source
            watermarks: Tracker computing fetch windows
            notifier: Optional per-source completion/failure notifier
            logger: Optional logger override
        """
        self._store = store
        self._provider = provider
        self._watermarks = watermarks
        self._notifier = notifier
        self._logger = logger or IngestionLogger()

    @property
    def notifier(self) -> Notifier | None:
        return self._notifier

    async def run(self) -> IngestionRunResult:
        """
        Fetch and persist transactions for every configured source.

        Raises:
            KeyUnavailableError: If no encryption key could be obtained
            AuthenticationError: If the store could not be unlocked
            IngestionPreconditionError: If no sources are configured
        """
        await self._store.open()
        sources = [s for s in self._store.get_source_credentials() if s.credentials]
        if not sources:
            raise IngestionPreconditionError("No configured sources found")

        self._logger.run_started(len(sources))
        outcomes: list[SourceOutcome] = []
        for source in sources:
            outcomes.append(await self._ingest_source(source))

        result = IngestionRunResult(success=True, sources=outcomes)
        self._logger.run_finished(
            len(outcomes) - len(result.failed), len(result.failed)
        )
        return result

    async def _ingest_source(self, source: SourceCredential) -> SourceOutcome:
        try:
            credentials = decode_credentials(source)
        except CredentialsError as e:
            self._logger.credentials_invalid(source.friendly_name)
            return self._failure(source, CREDENTIALS_ERROR, str(e))

        try:
            return await self._scrape_and_store(source, credentials)
        except ProviderError as e:
            outcome = self._failure(source, e.error_type, str(e))
        except Exception as e:
            self._logger.source_crashed(source.friendly_name)
            outcome = self._failure(source, type(e).__name__, str(e) or repr(e))

        await self._notify_failure(source, outcome.error)
        return outcome

    async def _scrape_and_store(
        self, source: SourceCredential, credentials: dict[str, Any]
    ) -> SourceOutcome:
        start_date = self._watermarks.start_date(source)
        self._logger.source_started(
            source.friendly_name, source.provider_type, start_date
        )
        result = await self._provider.scrape(
            source.provider_type, credentials, start_date
        )

        if not result.success:
            outcome = self._failure(
                source,
                result.error_type or PROVIDER_ERROR,
                result.error_message or "Unknown error",
            )
            await self._notify_failure(source, outcome.error)
            return outcome

        records = to_transaction_records(source.id, result)
        inserted = self._store.save_transactions(records)
        watermark = self._watermarks.advance(
            source, [record.processed_at for record in records]
        )
        self._logger.source_succeeded(source.friendly_name, len(records), inserted)
        await self._notify(
            "Scraping Complete",
            f"Successfully scraped {len(records)} transactions "
            f"from {source.friendly_name}",
        )
        return SourceOutcome(
            provider_type=source.provider_type,
            friendly_name=source.friendly_name,
            success=True,
            transactions_fetched=len(records),
            transactions_inserted=inserted,
            watermark=watermark or source.last_scraped_at,
        )

    def _failure(
        self, source: SourceCredential, error_type: str, error: str
    ) -> SourceOutcome:
        self._logger.source_failed(source.friendly_name, error_type, error)
        return SourceOutcome(
            provider_type=source.provider_type,
            friendly_name=source.friendly_name,
            success=False,
            watermark=source.last_scraped_at,
            error=error,
            error_type=error_type,
        )

    async def _notify_failure(
        self, source: SourceCredential, error: str | None
    ) -> None:
        await self._notify(
            "Scraping Failed",
            f"Failed to scrape {source.friendly_name}: {error or 'Unknown error'}",
        )

    async def _notify(self, title: str, message: str) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.notify(title, message)
        except Exception as e:
            self._logger.notification_failed(title, str(e))

from __future__ import annotations

from datetime import datetime

import loguru
from loguru import logger


class IngestionLogger:
    """Handles all logging for IngestionOrchestrator with business logic separated."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def run_started(self, source_count: int) -> None:
        """Log start of an ingestion run."""
        self._logger.bind(sources=source_count).info(
            "Fetching transactions for {} configured sources", source_count
        )

    def source_started(
        self, friendly_name: str, provider_type: str, start_date: datetime
    ) -> None:
        self._logger.bind(
            source=friendly_name,
            provider=provider_type,
            start_date=start_date.isoformat(),
        ).info(
            "Scraping '{}' ({}) from {}",
            friendly_name,
            provider_type,
            start_date.isoformat(),
        )

    def source_succeeded(self, friendly_name: str, fetched: int, inserted: int) -> None:
        self._logger.bind(
            source=friendly_name, fetched=fetched, inserted=inserted
        ).info(
            "Scraped {} transactions from '{}' ({} new)",
            fetched,
            friendly_name,
            inserted,
        )

    def source_failed(
        self, friendly_name: str, error_type: str, error: str | None
    ) -> None:
        self._logger.bind(source=friendly_name, error_type=error_type).error(
            "Failed to scrape '{}' ({}): {}", friendly_name, error_type, error
        )

    def credentials_invalid(self, friendly_name: str) -> None:
        self._logger.bind(source=friendly_name).error(
            "Stored credentials for '{}' could not be decoded", friendly_name
        )

    def source_crashed(self, friendly_name: str) -> None:
        """Log an unexpected exception while processing one source."""
        self._logger.bind(source=friendly_name).exception(
            "Unexpected error while processing '{}'", friendly_name
        )

    def notification_failed(self, title: str, detail: str) -> None:
        self._logger.bind(title=title).warning(
            "Failed to deliver notification '{}': {}", title, detail
        )

    def run_finished(self, succeeded: int, failed: int) -> None:
        """Log summary of an ingestion run."""
        self._logger.bind(succeeded=succeeded, failed=failed).info(
            "Ingestion run complete: {} sources succeeded, {} failed",
            succeeded,
            failed,
        )

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

import loguru
from loguru import logger

from asher.adapters.db.models import SourceCredential, to_utc
from asher.adapters.db.store import EncryptedStore

# Skip past the transaction that produced the previous watermark
WATERMARK_OFFSET = timedelta(seconds=1)
DEFAULT_LOOKBACK_YEARS = 1


def _utc_now() -> datetime:
    return datetime.now(UTC)


def years_before(moment: datetime, years: int) -> datetime:
    """Same calendar date ``years`` earlier; Feb 29 maps to Feb 28."""
    try:
        return moment.replace(year=moment.year - years)
    except ValueError:
        return moment.replace(year=moment.year - years, day=28)


class WatermarkLogger:
    """Handles all logging for WatermarkTracker with business logic separated."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def initial_window(self, friendly_name: str, start: datetime) -> None:
        self._logger.bind(source=friendly_name, start=start.isoformat()).info(
            "No watermark for '{}', fetching from {}", friendly_name, start.isoformat()
        )

    def stale_batch(
        self, friendly_name: str, batch_max: datetime, existing: datetime
    ) -> None:
        self._logger.bind(
            source=friendly_name,
            batch_max=batch_max.isoformat(),
            existing=existing.isoformat(),
        ).warning(
            "Batch for '{}' ends at {}, before current watermark {}; keeping it",
            friendly_name,
            batch_max.isoformat(),
            existing.isoformat(),
        )

    def advanced(self, friendly_name: str, watermark: datetime) -> None:
        self._logger.bind(source=friendly_name, watermark=watermark.isoformat()).info(
            "Watermark for '{}' advanced to {}", friendly_name, watermark.isoformat()
        )


class WatermarkTracker:
    """
    Computes fetch windows from each source's watermark and moves it forward.

    The watermark is the latest ``processed_at`` seen for a source. It only
    ever moves forward: a batch whose newest transaction is older than the
    stored watermark leaves it where it is.
    """

    def __init__(
        self,
        store: EncryptedStore,
        *,
        clock: Callable[[], datetime] = _utc_now,
        lookback_years: int = DEFAULT_LOOKBACK_YEARS,
        logger: WatermarkLogger | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._lookback_years = lookback_years
        self._logger = logger or WatermarkLogger()

    def start_date(self, credential: SourceCredential) -> datetime:
        """First instant to fetch for a source."""
        watermark = credential.last_scraped_at
        if watermark is None:
            start = years_before(to_utc(self._clock()), self._lookback_years)
            self._logger.initial_window(credential.friendly_name, start)
            return start
        return to_utc(watermark) + WATERMARK_OFFSET

    @staticmethod
    def compute_next(
        existing: datetime | None, processed_times: Iterable[datetime]
    ) -> datetime | None:
        """
        Watermark after a batch, or None when it should stay unchanged.

        Returns None for an empty batch and for a batch whose newest
        ``processed_at`` is not later than ``existing``.
        """
        times = [to_utc(t) for t in processed_times]
        if not times:
            return None
        batch_max = max(times)
        if existing is not None and batch_max <= to_utc(existing):
            return None
        return batch_max

    def advance(
        self, credential: SourceCredential, processed_times: Iterable[datetime]
    ) -> datetime | None:
        """
        Persist the watermark for a successfully fetched batch.

        Returns:
            The new watermark, or None if it was left unchanged
        """
        times = list(processed_times)
        new_watermark = self.compute_next(credential.last_scraped_at, times)
        if new_watermark is None:
            if times and credential.last_scraped_at is not None:
                self._logger.stale_batch(
                    credential.friendly_name,
                    max(to_utc(t) for t in times),
                    to_utc(credential.last_scraped_at),
                )
            return None

        updated = self._store.update_watermark(
            credential.friendly_name,
            new_watermark,
            provider_type=credential.provider_type,
        )
        if not updated:
            return None
        self._logger.advanced(credential.friendly_name, new_watermark)
        return new_watermark

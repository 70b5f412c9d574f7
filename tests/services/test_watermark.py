from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from asher.adapters.db.models import SourceCredential
from asher.services.watermark import WatermarkTracker, years_before

FIXED_NOW = datetime(2025, 6, 15, 9, 30, tzinfo=UTC)

# Helper classes


class RecordingStore:
    """Stand-in for EncryptedStore that records watermark updates."""

    def __init__(self, *, accept: bool = True) -> None:
        self._accept = accept
        self.updates: list[tuple[str, datetime, str | None]] = []

    def update_watermark(
        self,
        friendly_name: str,
        timestamp: datetime,
        *,
        provider_type: str | None = None,
    ) -> bool:
        self.updates.append((friendly_name, timestamp, provider_type))
        return self._accept


def create_source(last_scraped_at: datetime | None = None) -> SourceCredential:
    return SourceCredential(
        id=1,
        provider_type="isracard",
        friendly_name="Card",
        credentials="{}",
        tags="[]",
        last_scraped_at=last_scraped_at,
    )


def create_tracker(
    store: RecordingStore | None = None, now: datetime = FIXED_NOW
) -> WatermarkTracker:
    return WatermarkTracker(
        store or RecordingStore(),  # type: ignore[arg-type]
        clock=lambda: now,
    )


# Start date


def test_start_date_without_watermark_is_one_year_back() -> None:
    """
    Test the fetch window for a source that was never scraped.

    Verify: start date is exactly one year before now.
    """
    # helper setup
    tracker = create_tracker()

    # act
    start = tracker.start_date(create_source())

    # assert
    assert start == datetime(2024, 6, 15, 9, 30, tzinfo=UTC)


def test_start_date_on_leap_day() -> None:
    # helper setup
    tracker = create_tracker(now=datetime(2024, 2, 29, 12, 0, tzinfo=UTC))

    # act
    start = tracker.start_date(create_source())

    # assert
    assert start == datetime(2023, 2, 28, 12, 0, tzinfo=UTC)


def test_start_date_with_watermark_is_one_second_later() -> None:
    # input
    watermark = datetime(2025, 5, 1, 18, 45, 10, tzinfo=UTC)

    # helper setup
    tracker = create_tracker()

    # act
    start = tracker.start_date(create_source(watermark))

    # assert
    assert start == watermark + timedelta(seconds=1)


def test_naive_watermark_is_treated_as_utc() -> None:
    # helper setup
    tracker = create_tracker()

    # act
    start = tracker.start_date(create_source(datetime(2025, 5, 1, 18, 45, 10)))

    # assert
    assert start == datetime(2025, 5, 1, 18, 45, 11, tzinfo=UTC)


def test_years_before_regular_date() -> None:
    assert years_before(datetime(2025, 3, 1), 2) == datetime(2023, 3, 1)


# Next watermark


@pytest.mark.parametrize(
    ("existing", "times", "expected"),
    [
        (None, [], None),
        (
            None,
            [datetime(2025, 1, 2, tzinfo=UTC), datetime(2025, 1, 5, tzinfo=UTC)],
            datetime(2025, 1, 5, tzinfo=UTC),
        ),
        (
            datetime(2025, 1, 3, tzinfo=UTC),
            [datetime(2025, 1, 2, tzinfo=UTC), datetime(2025, 1, 5, tzinfo=UTC)],
            datetime(2025, 1, 5, tzinfo=UTC),
        ),
        (
            datetime(2025, 1, 10, tzinfo=UTC),
            [datetime(2025, 1, 2, tzinfo=UTC), datetime(2025, 1, 5, tzinfo=UTC)],
            None,
        ),
        (
            datetime(2025, 1, 5, tzinfo=UTC),
            [datetime(2025, 1, 5, tzinfo=UTC)],
            None,
        ),
    ],
)
def test_compute_next(
    existing: datetime | None,
    times: list[datetime],
    expected: datetime | None,
) -> None:
    assert WatermarkTracker.compute_next(existing, times) == expected


def test_advance_persists_batch_maximum() -> None:
    """
    Test advancing after a successful batch.

    Verify: the store receives the max processed time scoped to the provider.
    """
    # input
    times = [
        datetime(2025, 6, 1, tzinfo=UTC),
        datetime(2025, 6, 3, tzinfo=UTC),
        datetime(2025, 6, 2, tzinfo=UTC),
    ]

    # helper setup
    store = RecordingStore()
    tracker = create_tracker(store)

    # act
    watermark = tracker.advance(create_source(), times)

    # assert
    assert watermark == datetime(2025, 6, 3, tzinfo=UTC)
    assert store.updates == [("Card", datetime(2025, 6, 3, tzinfo=UTC), "isracard")]


def test_advance_keeps_watermark_for_stale_batch() -> None:
    """
    Test a batch whose newest transaction predates the stored watermark.

    Verify: nothing is written and None is returned.
    """
    # helper setup
    store = RecordingStore()
    tracker = create_tracker(store)
    source = create_source(datetime(2025, 6, 10, tzinfo=UTC))

    # act
    watermark = tracker.advance(source, [datetime(2025, 6, 1, tzinfo=UTC)])

    # assert
    assert watermark is None
    assert store.updates == []


def test_advance_with_empty_batch() -> None:
    # helper setup
    store = RecordingStore()
    tracker = create_tracker(store)

    # act
    watermark = tracker.advance(create_source(), [])

    # assert
    assert watermark is None
    assert store.updates == []


def test_advance_when_store_refuses_update() -> None:
    # helper setup
    store = RecordingStore(accept=False)
    tracker = create_tracker(store)

    # act
    watermark = tracker.advance(create_source(), [datetime(2025, 6, 1, tzinfo=UTC)])

    # assert
    assert watermark is None
    assert len(store.updates) == 1

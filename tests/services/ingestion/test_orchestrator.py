from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from asher.adapters.db.store import EncryptedStore
from asher.adapters.scrapers.base import (
    ScrapedAccount,
    ScrapedTransaction,
    ScrapeResult,
)
from asher.adapters.scrapers.command import UnconfiguredScraperProvider
from asher.core.errors import IngestionPreconditionError, KeyUnavailableError
from asher.services.ingestion.orchestrator import IngestionOrchestrator, SourceOutcome
from asher.services.watermark import WatermarkTracker

FIXED_NOW = datetime(2025, 6, 15, tzinfo=UTC)

# Helper functions


def create_scraped_transaction(
    identifier: str,
    *,
    day: int,
    amount: float = -25.0,
) -> ScrapedTransaction:
    occurred = datetime(2025, 6, day, 10, 0, tzinfo=UTC)
    return ScrapedTransaction(
        identifier=identifier,
        date=occurred,
        processed_date=occurred + timedelta(days=1),
        charged_amount=amount,
        description=f"Purchase {identifier}",
    )


def create_scrape_result(*txns: ScrapedTransaction) -> ScrapeResult:
    return ScrapeResult(
        success=True,
        accounts=[ScrapedAccount(account_number="12-345", txns=list(txns))],
    )


def add_source(
    store: EncryptedStore,
    provider_type: str,
    friendly_name: str,
    credentials: Mapping[str, Any] | str | None = None,
) -> int:
    return store.upsert_source_credential(
        provider_type=provider_type,
        friendly_name=friendly_name,
        credentials=credentials if credentials is not None else {"password": "pw"},
    )


def count_transactions(store: EncryptedStore) -> int:
    result = store.run_read_only_query("SELECT count(*) AS n FROM transactions")
    return result.rows[0]["n"]


# Helper classes


class FakeScraperProvider:
    """Scraper provider returning a scripted result per provider type."""

    def __init__(self, results: dict[str, ScrapeResult | Exception]) -> None:
        self._results = results
        self.calls: list[tuple[str, dict[str, Any], datetime]] = []

    async def scrape(
        self,
        provider_type: str,
        credentials: Mapping[str, Any],
        start_date: datetime,
    ) -> ScrapeResult:
        self.calls.append((provider_type, dict(credentials), start_date))
        result = self._results[provider_type]
        if isinstance(result, Exception):
            raise result
        return result


class RecordingNotifier:
    def __init__(self, *, fail: bool = False) -> None:
        self._fail = fail
        self.messages: list[tuple[str, str]] = []

    async def notify(self, title: str, message: str) -> None:
        self.messages.append((title, message))
        if self._fail:
            raise OSError("notify-send not found")


def create_orchestrator(
    store: EncryptedStore,
    provider: Any,
    notifier: RecordingNotifier | None = None,
    clock: Callable[[], datetime] = lambda: FIXED_NOW,
) -> IngestionOrchestrator:
    return IngestionOrchestrator(
        store,
        provider,
        WatermarkTracker(store, clock=clock),
        notifier=notifier,
    )


# Tests


def test_one_failing_source_does_not_stop_the_run(store: EncryptedStore) -> None:
    """
    Test a run over 3 sources where the second provider call fails.

    Verify: sources 1 and 3 are persisted and their watermarks advance,
    source 2 is recorded as failed, and the run itself succeeds.
    """
    # input
    first_batch = create_scrape_result(
        create_scraped_transaction("a1", day=1),
        create_scraped_transaction("a2", day=3),
    )
    third_batch = create_scrape_result(create_scraped_transaction("c1", day=5))

    # helper setup
    first_id = add_source(store, "hapoalim", "First")
    add_source(store, "leumi", "Second")
    third_id = add_source(store, "isracard", "Third")
    provider = FakeScraperProvider(
        {
            "hapoalim": first_batch,
            "leumi": ScrapeResult.failure("INVALID_PASSWORD", "Bad password"),
            "isracard": third_batch,
        }
    )
    notifier = RecordingNotifier()
    orchestrator = create_orchestrator(store, provider, notifier)

    # act
    result = asyncio.run(orchestrator.run())

    # expected
    expected_outcomes = [
        SourceOutcome(
            provider_type="hapoalim",
            friendly_name="First",
            success=True,
            transactions_fetched=2,
            transactions_inserted=2,
            watermark=datetime(2025, 6, 4, 10, 0, tzinfo=UTC),
        ),
        SourceOutcome(
            provider_type="leumi",
            friendly_name="Second",
            success=False,
            error="Bad password",
            error_type="INVALID_PASSWORD",
        ),
        SourceOutcome(
            provider_type="isracard",
            friendly_name="Third",
            success=True,
            transactions_fetched=1,
            transactions_inserted=1,
            watermark=datetime(2025, 6, 6, 10, 0, tzinfo=UTC),
        ),
    ]

    # assert
    assert result.success is True
    assert result.sources == expected_outcomes
    assert [o.friendly_name for o in result.failed] == ["Second"]
    assert len(store.get_transactions(first_id)) == 2
    assert len(store.get_transactions(third_id)) == 1

    watermarks = {
        s.friendly_name: s.last_scraped_at for s in store.get_source_credentials()
    }
    assert watermarks == {
        "First": datetime(2025, 6, 4, 10, 0, tzinfo=UTC),
        "Second": None,
        "Third": datetime(2025, 6, 6, 10, 0, tzinfo=UTC),
    }
    assert [title for title, _ in notifier.messages] == [
        "Scraping Complete",
        "Scraping Failed",
        "Scraping Complete",
    ]
    assert notifier.messages[1][1] == "Failed to scrape Second: Bad password"


def test_rerun_is_idempotent(store: EncryptedStore) -> None:
    """
    Test running ingestion twice against an unchanged provider result.

    Verify: row count unchanged, no new inserts, and the second fetch starts
    one second after the first run's watermark.
    """
    # helper setup
    add_source(store, "max", "Card")
    provider = FakeScraperProvider(
        {
            "max": create_scrape_result(
                create_scraped_transaction("m1", day=1),
                create_scraped_transaction("m2", day=2),
            )
        }
    )
    orchestrator = create_orchestrator(store, provider)

    # act
    first = asyncio.run(orchestrator.run())
    rows_after_first = count_transactions(store)
    second = asyncio.run(orchestrator.run())

    # assert
    assert rows_after_first == 2
    assert count_transactions(store) == 2
    assert first.sources[0].transactions_inserted == 2
    assert second.sources[0].transactions_inserted == 0
    assert second.sources[0].watermark == datetime(2025, 6, 3, 10, 0, tzinfo=UTC)
    assert provider.calls[0][2] == datetime(2024, 6, 15, tzinfo=UTC)
    assert provider.calls[1][2] == datetime(2025, 6, 3, 10, 0, 1, tzinfo=UTC)


def test_stored_credentials_are_passed_to_provider(store: EncryptedStore) -> None:
    # helper setup
    add_source(store, "hapoalim", "Main", {"userCode": "u1", "password": "p1"})
    provider = FakeScraperProvider({"hapoalim": create_scrape_result()})
    orchestrator = create_orchestrator(store, provider)

    # act
    asyncio.run(orchestrator.run())

    # assert
    assert provider.calls[0][0] == "hapoalim"
    assert provider.calls[0][1] == {"userCode": "u1", "password": "p1"}


def test_empty_batch_leaves_watermark_unset(store: EncryptedStore) -> None:
    # helper setup
    add_source(store, "hapoalim", "Main")
    provider = FakeScraperProvider({"hapoalim": create_scrape_result()})
    orchestrator = create_orchestrator(store, provider)

    # act
    result = asyncio.run(orchestrator.run())

    # assert
    assert result.sources[0].success is True
    assert result.sources[0].transactions_fetched == 0
    assert result.sources[0].watermark is None


def test_undecodable_credentials_are_isolated(store: EncryptedStore) -> None:
    """
    Test a source whose stored credentials are not a JSON object.

    Verify: CredentialsError entry, provider never called for it, others run.
    """
    # helper setup
    add_source(store, "hapoalim", "Broken", "not json")
    add_source(store, "leumi", "Fine")
    provider = FakeScraperProvider({"leumi": create_scrape_result()})
    notifier = RecordingNotifier()
    orchestrator = create_orchestrator(store, provider, notifier)

    # act
    result = asyncio.run(orchestrator.run())

    # assert
    broken, fine = result.sources
    assert broken.success is False
    assert broken.error_type == "CredentialsError"
    assert broken.error == "Invalid credentials format"
    assert fine.success is True
    assert [call[0] for call in provider.calls] == ["leumi"]
    assert [title for title, _ in notifier.messages] == ["Scraping Complete"]


def test_json_array_credentials_are_rejected(store: EncryptedStore) -> None:
    # helper setup
    add_source(store, "hapoalim", "Array", "[1, 2]")
    orchestrator = create_orchestrator(store, FakeScraperProvider({}))

    # act
    result = asyncio.run(orchestrator.run())

    # assert
    assert result.sources[0].error_type == "CredentialsError"


def test_provider_error_is_recorded_with_its_type(store: EncryptedStore) -> None:
    # helper setup
    add_source(store, "hapoalim", "Main")
    orchestrator = create_orchestrator(store, UnconfiguredScraperProvider())

    # act
    result = asyncio.run(orchestrator.run())

    # assert
    outcome = result.sources[0]
    assert outcome.success is False
    assert outcome.error_type == "ConfigurationError"
    assert "ASHER_SCRAPER_COMMAND" in (outcome.error or "")


def test_unexpected_exception_is_recorded(store: EncryptedStore) -> None:
    # helper setup
    add_source(store, "hapoalim", "Crashy")
    add_source(store, "leumi", "Fine")
    provider = FakeScraperProvider(
        {
            "hapoalim": RuntimeError("browser crashed"),
            "leumi": create_scrape_result(create_scraped_transaction("l1", day=2)),
        }
    )
    orchestrator = create_orchestrator(store, provider)

    # act
    result = asyncio.run(orchestrator.run())

    # assert
    crashy, fine = result.sources
    assert crashy.error_type == "RuntimeError"
    assert crashy.error == "browser crashed"
    assert fine.transactions_inserted == 1


def test_failed_result_without_details(store: EncryptedStore) -> None:
    # helper setup
    add_source(store, "hapoalim", "Main")
    provider = FakeScraperProvider({"hapoalim": ScrapeResult(success=False)})
    orchestrator = create_orchestrator(store, provider)

    # act
    result = asyncio.run(orchestrator.run())

    # assert
    assert result.sources[0].error_type == "ProviderError"
    assert result.sources[0].error == "Unknown error"


def test_notifier_failure_is_tolerated(store: EncryptedStore) -> None:
    # helper setup
    add_source(store, "hapoalim", "Main")
    provider = FakeScraperProvider(
        {"hapoalim": create_scrape_result(create_scraped_transaction("h1", day=1))}
    )
    notifier = RecordingNotifier(fail=True)
    orchestrator = create_orchestrator(store, provider, notifier)

    # act
    result = asyncio.run(orchestrator.run())

    # assert
    assert result.sources[0].success is True
    assert len(notifier.messages) == 1


def test_no_sources_aborts_run(store: EncryptedStore) -> None:
    # helper setup
    orchestrator = create_orchestrator(store, FakeScraperProvider({}))

    # act / assert
    with pytest.raises(IngestionPreconditionError, match="No configured sources"):
        asyncio.run(orchestrator.run())


def test_missing_key_aborts_run(make_store: Callable[..., EncryptedStore]) -> None:
    # helper setup
    store = make_store(key=None)
    orchestrator = create_orchestrator(store, FakeScraperProvider({}))

    # act / assert
    with pytest.raises(KeyUnavailableError):
        asyncio.run(orchestrator.run())


def test_run_result_to_dict(store: EncryptedStore) -> None:
    # helper setup
    add_source(store, "hapoalim", "Main")
    add_source(store, "leumi", "Other")
    provider = FakeScraperProvider(
        {
            "hapoalim": create_scrape_result(create_scraped_transaction("h1", day=1)),
            "leumi": ScrapeResult.failure("TIMEOUT", "Scraper timed out"),
        }
    )
    orchestrator = create_orchestrator(store, provider)

    # act
    data = asyncio.run(orchestrator.run()).to_dict()

    # assert
    assert data["success"] is True
    assert data["sources_processed"] == 2
    assert data["sources_failed"] == 1
    assert data["results"][0]["watermark"] == "2025-06-02T10:00:00+00:00"
    assert data["results"][1]["error_type"] == "TIMEOUT"

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

from asher.adapters.db.models import TransactionRecord
from asher.adapters.scrapers.base import (
    ProviderType,
    ScrapedAccount,
    ScrapedTransaction,
    ScrapeResult,
    to_transaction_records,
    transaction_identity,
)

ISRAEL = timezone(timedelta(hours=2))


def test_scrape_result_parses_camel_case_wire_format() -> None:
    """
    Test parsing a scraper bridge response.

    Verify: camelCase keys map onto the models and unknown keys are ignored.
    """
    # input
    payload = {
        "success": True,
        "accounts": [
            {
                "accountNumber": "12-345",
                "balance": 1000,
                "txns": [
                    {
                        "identifier": 98765,
                        "type": "installments",
                        "status": "pending",
                        "date": "2025-06-01T00:00:00.000Z",
                        "processedDate": "2025-07-10T00:00:00.000Z",
                        "originalAmount": -300,
                        "originalCurrency": "USD",
                        "chargedAmount": -1100.5,
                        "chargedCurrency": "ILS",
                        "description": "Electronics",
                        "memo": "1 of 3",
                        "installments": {"number": 1, "total": 3},
                    }
                ],
            }
        ],
    }

    # act
    result = ScrapeResult.model_validate(payload)

    # assert
    txn = result.accounts[0].txns[0]
    assert result.success is True
    assert result.transaction_count == 1
    assert result.accounts[0].account_number == "12-345"
    assert txn.identifier == 98765
    assert txn.processed_date == datetime(2025, 7, 10, tzinfo=UTC)
    assert txn.original_currency == "USD"
    assert txn.charged_amount == -1100.5


def test_failed_result_carries_error_type() -> None:
    result = ScrapeResult.model_validate(
        {"success": False, "errorType": "INVALID_PASSWORD", "errorMessage": "nope"}
    )

    assert result.success is False
    assert result.error_type == "INVALID_PASSWORD"
    assert result.error_message == "nope"
    assert result.transaction_count == 0


def test_currency_alias_is_accepted() -> None:
    txn = ScrapedTransaction.model_validate(
        {"date": "2025-06-01T00:00:00Z", "currency": "EUR"}
    )

    assert txn.charged_currency == "EUR"


def test_mapping_applies_defaults() -> None:
    """
    Test mapping a sparse transaction to a storable record.

    Verify: processed falls back to date, original amount to charged amount,
    and type, status and currencies get their defaults.
    """
    # input
    result = ScrapeResult(
        success=True,
        accounts=[
            ScrapedAccount(
                account_number="1",
                txns=[
                    ScrapedTransaction(
                        identifier="abc",
                        date=datetime(2025, 6, 1, 2, 0, tzinfo=ISRAEL),
                        charged_amount=-12.0,
                        description="Bakery",
                        memo="",
                    )
                ],
            )
        ],
    )

    # act
    records = to_transaction_records(7, result)

    # expected
    expected = TransactionRecord(
        source_credential_id=7,
        provider_transaction_id="abc",
        type="normal",
        status="completed",
        occurred_at=datetime(2025, 6, 1, 0, 0, tzinfo=UTC),
        processed_at=datetime(2025, 6, 1, 0, 0, tzinfo=UTC),
        original_amount=-12.0,
        original_currency="ILS",
        charged_amount=-12.0,
        charged_currency="ILS",
        description="Bakery",
        memo=None,
        category=None,
    )

    # assert
    assert records == [expected]


def test_missing_identifier_gets_stable_content_hash() -> None:
    """
    Test identity of transactions without a provider identifier.

    Verify: same content hashes the same, different content differs.
    """
    # input
    account = ScrapedAccount(account_number="1")
    txn = ScrapedTransaction(
        date=datetime(2025, 6, 1, tzinfo=UTC),
        charged_amount=-5.0,
        description="Parking",
    )
    same = txn.model_copy()
    other = txn.model_copy(update={"charged_amount": -6.0})

    # act
    identity = transaction_identity(account, txn)

    # assert
    assert identity.startswith("sha256:")
    assert len(identity) == len("sha256:") + 32
    assert transaction_identity(account, same) == identity
    assert transaction_identity(account, other) != identity
    assert transaction_identity(ScrapedAccount(account_number="2"), txn) != identity


def test_blank_identifier_is_hashed() -> None:
    account = ScrapedAccount(account_number="1")
    txn = ScrapedTransaction(identifier="  ", date=datetime(2025, 6, 1, tzinfo=UTC))

    assert transaction_identity(account, txn).startswith("sha256:")


def test_provider_types_match_bridge_company_ids() -> None:
    assert ProviderType("visaCal") is ProviderType.VISA_CAL
    assert ProviderType("beyahadBishvilha") is ProviderType.BEYAHAD_BISHVILHA
    assert len(ProviderType) == 14

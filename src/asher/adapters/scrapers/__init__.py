"""Scraper providers."""

from __future__ import annotations

from asher.adapters.scrapers.base import (
    ProviderType,
    ScrapedAccount,
    ScrapedTransaction,
    ScraperProvider,
    ScrapeResult,
    to_transaction_records,
)
from asher.adapters.scrapers.command import (
    CommandScraperProvider,
    UnconfiguredScraperProvider,
)

__all__ = [
    "CommandScraperProvider",
    "ProviderType",
    "ScrapeResult",
    "ScrapedAccount",
    "ScrapedTransaction",
    "ScraperProvider",
    "UnconfiguredScraperProvider",
    "to_transaction_records",
]

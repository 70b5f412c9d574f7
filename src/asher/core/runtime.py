"""Process-wide wiring of the key coordinator, store and ingestion services."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from asher.adapters.db.store import EncryptedStore
from asher.adapters.desktop import DesktopNotifier, DesktopPromptChannel, NullNotifier
from asher.adapters.scrapers.base import ScraperProvider
from asher.adapters.scrapers.command import (
    CommandScraperProvider,
    UnconfiguredScraperProvider,
)
from asher.core.config import AsherConfig
from asher.services.ingestion.orchestrator import IngestionOrchestrator, Notifier
from asher.services.keys.channels import PromptChannel, TerminalPromptChannel
from asher.services.keys.coordinator import KeyCoordinator
from asher.services.watermark import WatermarkTracker


@dataclass(frozen=True)
class AsherRuntime:
    """The single instance of each long-lived service for this process."""

    config: AsherConfig
    keys: KeyCoordinator
    store: EncryptedStore
    watermarks: WatermarkTracker
    provider: ScraperProvider
    orchestrator: IngestionOrchestrator

    def close(self) -> None:
        self.store.close()


def default_prompt_channels() -> list[PromptChannel]:
    """Desktop dialog first, terminal as fallback."""
    return [DesktopPromptChannel(), TerminalPromptChannel()]


def build_runtime(
    config: AsherConfig,
    *,
    channels: Sequence[PromptChannel] | None = None,
    provider: ScraperProvider | None = None,
    notifier: Notifier | None = None,
) -> AsherRuntime:
    """
    Construct one of each service and connect them.

    Args:
        config: Loaded configuration
        channels: Key prompt channels (defaults to desktop then terminal)
        provider: Scraper provider (defaults to the configured command)
        notifier: Notifier (defaults to desktop notifications if enabled)

    Returns:
        AsherRuntime holding the wired services; nothing is opened yet
    """
    keys = KeyCoordinator(
        default_prompt_channels() if channels is None else channels,
        max_attempts=config.key_prompt_attempts,
        prompt_timeout=config.key_prompt_timeout,
    )
    if config.encryption_key is not None:
        keys.set_key(config.encryption_key)

    if provider is None:
        if config.scraper_command:
            provider = CommandScraperProvider(
                config.scraper_command, timeout=config.scraper_timeout
            )
        else:
            provider = UnconfiguredScraperProvider()

    if notifier is None:
        notifier = DesktopNotifier() if config.notifications_enabled else NullNotifier()

    store = EncryptedStore(config.db_path, keys)
    watermarks = WatermarkTracker(store)
    orchestrator = IngestionOrchestrator(
        store, provider, watermarks, notifier=notifier
    )
    return AsherRuntime(
        config=config,
        keys=keys,
        store=store,
        watermarks=watermarks,
        provider=provider,
        orchestrator=orchestrator,
    )

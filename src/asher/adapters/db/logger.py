"""Logging for the encrypted store.

Keys and credential payloads must never reach these methods.
"""

from __future__ import annotations

from pathlib import Path

import loguru
from loguru import logger


class EncryptedStoreLogger:
    """Handles all logging for EncryptedStore with business logic separated."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def opening(self, path: Path, is_new: bool) -> None:
        self._logger.bind(path=str(path), is_new=is_new).info(
            "{} encrypted store at {}", "Creating" if is_new else "Opening", path
        )

    def opened(self, path: Path) -> None:
        self._logger.bind(path=str(path)).info("Encrypted store ready at {}", path)

    def authentication_failed(self, path: Path, detail: str) -> None:
        self._logger.bind(path=str(path)).error(
            "Failed to unlock encrypted store at {}: {}", path, detail
        )

    def closed(self, path: Path) -> None:
        self._logger.bind(path=str(path)).info("Encrypted store closed: {}", path)

    def rekeyed(self, path: Path) -> None:
        self._logger.bind(path=str(path)).info(
            "Encrypted store key changed: {}", path
        )

    def query_rejected(self, reason: str) -> None:
        self._logger.bind(reason=reason).warning("Rejected ad-hoc query: {}", reason)

    def query_failed(self, error: str) -> None:
        self._logger.bind(error=error).warning("Ad-hoc query failed: {}", error)

    def watermark_not_advanced(
        self, friendly_name: str, timestamp: str, existing: str | None
    ) -> None:
        self._logger.bind(
            friendly_name=friendly_name, timestamp=timestamp, existing=existing
        ).warning(
            "Watermark for '{}' not moved to {} (current: {})",
            friendly_name,
            timestamp,
            existing,
        )

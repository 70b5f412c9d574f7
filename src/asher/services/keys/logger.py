"""Logging for the key coordinator.

Never pass key material to any of these methods.
"""

from __future__ import annotations

import loguru
from loguru import logger


class KeyCoordinatorLogger:
    """Handles all logging for KeyCoordinator with business logic separated."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def prompt_started(self, attempt: int, max_attempts: int) -> None:
        self._logger.bind(attempt=attempt, max_attempts=max_attempts).info(
            "Requesting encryption key (attempt {}/{})", attempt, max_attempts
        )

    def waiting_for_prompt(self) -> None:
        self._logger.debug("Encryption key prompt already in flight, waiting")

    def channel_failed(self, channel: str, detail: str | None) -> None:
        self._logger.bind(channel=channel).warning(
            "Prompt channel '{}' failed: {}", channel, detail or "unknown error"
        )

    def reply_rejected(self, channel: str, reason: str) -> None:
        self._logger.bind(channel=channel).warning(
            "Rejected encryption key reply from '{}': {}", channel, reason
        )

    def prompt_cancelled(self, channel: str, outcome: str) -> None:
        self._logger.bind(channel=channel, outcome=outcome).warning(
            "Encryption key prompt via '{}' ended: {}", channel, outcome
        )

    def key_resolved(self, channel: str) -> None:
        self._logger.bind(channel=channel).info(
            "Encryption key received via '{}'", channel
        )

    def attempts_exhausted(self, max_attempts: int) -> None:
        self._logger.bind(max_attempts=max_attempts).error(
            "Encryption key not provided after {} attempts", max_attempts
        )

    def key_cleared(self) -> None:
        self._logger.info("Encryption key cleared from memory")

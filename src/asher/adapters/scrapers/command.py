from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from datetime import datetime
import json
import shlex
from typing import Any

import loguru
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from asher.adapters.db.models import to_utc
from asher.adapters.scrapers.base import ScrapeResult
from asher.core.errors import ProviderError

DEFAULT_SCRAPER_TIMEOUT = 300.0

# Error types shared with the scraper bridge
GENERIC_ERROR = "GENERIC"
TIMEOUT_ERROR = "TIMEOUT"

_STDERR_TAIL = 500


class CommandScraperLogger:
    """Handles all logging for CommandScraperProvider."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def started(self, provider_type: str, start_date: datetime) -> None:
        self._logger.bind(
            provider=provider_type, start_date=start_date.isoformat()
        ).info("Running scraper for {} from {}", provider_type, start_date.isoformat())

    def finished(self, provider_type: str, result: ScrapeResult) -> None:
        if result.success:
            self._logger.bind(
                provider=provider_type, transactions=result.transaction_count
            ).info(
                "Scraper for {} returned {} transactions",
                provider_type,
                result.transaction_count,
            )
        else:
            self._logger.bind(
                provider=provider_type, error_type=result.error_type
            ).warning(
                "Scraper for {} failed ({}): {}",
                provider_type,
                result.error_type,
                result.error_message,
            )


class CommandScraperProvider:
    """
    Runs an external scraper bridge as a subprocess, one call per source.

    The request goes to the command's stdin as JSON::

        {"companyId": "...", "credentials": {...},
         "startDate": "<ISO-8601>", "timeout": <milliseconds>}

    and a ScrapeResult is read from stdout. Non-zero exit, timeout and
    unparseable output all come back as failed results rather than raising.
    """

    def __init__(
        self,
        command: str | Sequence[str],
        *,
        timeout: float = DEFAULT_SCRAPER_TIMEOUT,
        logger: CommandScraperLogger | None = None,
    ) -> None:
        args = shlex.split(command) if isinstance(command, str) else list(command)
        if not args:
            raise ValueError("Scraper command must not be empty")
        self._args = args
        self._timeout = timeout
        self._logger = logger or CommandScraperLogger()

    async def scrape(
        self,
        provider_type: str,
        credentials: Mapping[str, Any],
        start_date: datetime,
    ) -> ScrapeResult:
        self._logger.started(provider_type, start_date)
        result = await self._run(provider_type, credentials, start_date)
        self._logger.finished(provider_type, result)
        return result

    def _request(
        self,
        provider_type: str,
        credentials: Mapping[str, Any],
        start_date: datetime,
    ) -> bytes:
        payload = {
            "companyId": str(provider_type),
            "credentials": dict(credentials),
            "startDate": to_utc(start_date).isoformat(),
            "timeout": int(self._timeout * 1000),
        }
        return json.dumps(payload).encode("utf-8")

    async def _run(
        self,
        provider_type: str,
        credentials: Mapping[str, Any],
        start_date: datetime,
    ) -> ScrapeResult:
        try:
            proc = await asyncio.create_subprocess_exec(  # noqa: S603
                *self._args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return ScrapeResult.failure(
                GENERIC_ERROR, f"Failed to start scraper command: {e}"
            )

        request = self._request(provider_type, credentials, start_date)
        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(request), timeout=self._timeout
            )
        except TimeoutError:
            proc.kill()
            await proc.wait()
            return ScrapeResult.failure(
                TIMEOUT_ERROR, f"Scraper timed out after {self._timeout:g} seconds"
            )
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
            raise

        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip()[-_STDERR_TAIL:]
            return ScrapeResult.failure(
                GENERIC_ERROR,
                f"Scraper exited with code {proc.returncode}"
                + (f": {detail}" if detail else ""),
            )

        try:
            return ScrapeResult.model_validate_json(stdout)
        except PydanticValidationError as e:
            return ScrapeResult.failure(
                GENERIC_ERROR,
                f"Malformed scraper output: {e.error_count()} validation error(s)",
            )


class UnconfiguredScraperProvider:
    """Stand-in provider used when no scraper command is configured."""

    async def scrape(
        self,
        provider_type: str,
        credentials: Mapping[str, Any],
        start_date: datetime,
    ) -> ScrapeResult:
        raise ProviderError(
            "No scraper command configured; set ASHER_SCRAPER_COMMAND",
            error_type="ConfigurationError",
        )

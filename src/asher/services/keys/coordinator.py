"""In-memory encryption key holder with single-flight prompting."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from enum import StrEnum

from asher.core.config import MIN_KEY_LENGTH
from asher.core.errors import KeyUnavailableError, ValidationError
from asher.services.keys.channels import PromptChannel, PromptOutcome, PromptReply
from asher.services.keys.logger import KeyCoordinatorLogger

DEFAULT_MAX_ATTEMPTS = 2
DEFAULT_PROMPT_TIMEOUT = 30.0
# Extra time for a channel to report its own timeout before we cut it off
PROMPT_GRACE_SECONDS = 5.0

PROMPT_TITLE = "Encryption Key Required"
PROMPT_MESSAGE = "Please enter the encryption key for the database"


class KeyState(StrEnum):
    NO_KEY = "no_key"
    PROMPTING = "prompting"
    KEY_SET = "key_set"


def validate_key(value: str) -> str:
    """Return the trimmed key or raise ValidationError if it is too short."""
    key = value.strip()
    if len(key) < MIN_KEY_LENGTH:
        raise ValidationError(
            f"Encryption key must be at least {MIN_KEY_LENGTH} characters long"
        )
    return key


class KeyCoordinator:
    """
    Holds the process-lifetime encryption key and arbitrates who prompts for it.

    Concurrent ``ensure_key_available()`` callers share one prompt sequence:
    the first caller starts it as a task and every caller awaits that same
    task, so they all resolve to the same key or fail with the same error.
    Once the task finishes the coordinator leaves the PROMPTING state whatever
    the outcome, so a later call can start over.

    Example:
        keys = KeyCoordinator([DesktopPromptChannel(), TerminalPromptChannel()])
        key = await keys.ensure_key_available()
    """

    def __init__(
        self,
        channels: Sequence[PromptChannel] = (),
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        prompt_timeout: float = DEFAULT_PROMPT_TIMEOUT,
        logger: KeyCoordinatorLogger | None = None,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            channels: Prompt channels in fallback order (primary first)
            max_attempts: Prompt attempts before giving up
            prompt_timeout: Seconds to wait for a single reply
            logger: Optional logger override
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._channels = list(channels)
        self._max_attempts = max_attempts
        self._prompt_timeout = prompt_timeout
        self._logger = logger or KeyCoordinatorLogger()
        self._key: str | None = None
        self._inflight: asyncio.Task[str] | None = None

    @property
    def state(self) -> KeyState:
        if self._key:
            return KeyState.KEY_SET
        if self._inflight is not None:
            return KeyState.PROMPTING
        return KeyState.NO_KEY

    def set_key(self, value: str) -> None:
        """Replace the current key after validating it."""
        self._key = validate_key(value)

    def get_key(self) -> str | None:
        """Return the current key without prompting."""
        return self._key

    def clear_key(self) -> None:
        """Discard the current key so the next access prompts again."""
        self._key = None
        self._logger.key_cleared()

    async def ensure_key_available(self) -> str:
        """
        Return the current key, prompting for it if necessary.

        Raises:
            KeyUnavailableError: If the prompt was dismissed, timed out, or
                ran out of attempts
        """
        if self._key:
            return self._key

        if self._inflight is None:
            task = asyncio.get_running_loop().create_task(self._prompt_sequence())
            task.add_done_callback(self._prompt_finished)
            self._inflight = task
        else:
            self._logger.waiting_for_prompt()

        # Shield so one caller's cancellation does not abort the shared prompt
        return await asyncio.shield(self._inflight)

    def _prompt_finished(self, task: asyncio.Task[str]) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _prompt_sequence(self) -> str:
        if not self._channels:
            raise KeyUnavailableError(
                "No prompt channel is configured to request the encryption key"
            )

        for attempt in range(1, self._max_attempts + 1):
            self._logger.prompt_started(attempt, self._max_attempts)
            channel, reply = await self._request_reply()

            if reply is None:
                continue

            if reply.outcome in (PromptOutcome.TIMEOUT, PromptOutcome.DISMISSED):
                self._logger.prompt_cancelled(channel, reply.outcome.value)
                raise KeyUnavailableError("Encryption key input was cancelled")

            try:
                key = validate_key(reply.value)
            except ValidationError as e:
                self._logger.reply_rejected(channel, str(e))
                continue

            self._key = key
            self._logger.key_resolved(channel)
            return key

        self._logger.attempts_exhausted(self._max_attempts)
        raise KeyUnavailableError(
            "Maximum number of encryption key prompt attempts reached"
        )

    async def _request_reply(self) -> tuple[str, PromptReply | None]:
        """
        Deliver one prompt, falling through channels that fail to deliver.

        Returns:
            The name of the last channel tried and its reply, or None when
            every channel reported a delivery error
        """
        name = ""
        for channel in self._channels:
            name = channel.name
            try:
                reply = await asyncio.wait_for(
                    channel.prompt_for_reply(
                        PROMPT_TITLE, PROMPT_MESSAGE, self._prompt_timeout
                    ),
                    timeout=self._prompt_timeout + PROMPT_GRACE_SECONDS,
                )
            except TimeoutError:
                reply = PromptReply.timeout()

            if reply.outcome is PromptOutcome.ERROR:
                self._logger.channel_failed(name, reply.detail)
                continue
            return name, reply
        return name, None

"""Out-of-band channels used to ask the user for the encryption key."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
import sys
from typing import Protocol

import typer


class PromptOutcome(StrEnum):
    REPLIED = "replied"
    TIMEOUT = "timeout"
    DISMISSED = "dismissed"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class PromptReply:
    """Result of one prompt delivered through a channel."""

    outcome: PromptOutcome
    value: str = ""
    detail: str | None = None

    @classmethod
    def replied(cls, value: str) -> PromptReply:
        return cls(PromptOutcome.REPLIED, value=value)

    @classmethod
    def timeout(cls) -> PromptReply:
        return cls(PromptOutcome.TIMEOUT)

    @classmethod
    def dismissed(cls) -> PromptReply:
        return cls(PromptOutcome.DISMISSED)

    @classmethod
    def error(cls, detail: str) -> PromptReply:
        return cls(PromptOutcome.ERROR, detail=detail)


class PromptChannel(Protocol):
    """A way to ask the user for a secret and wait for the reply.

    Implementations must not raise for delivery problems; they report them as
    ``PromptOutcome.ERROR`` so the coordinator can fall back to another
    channel.
    """

    @property
    def name(self) -> str: ...

    async def prompt_for_reply(
        self, title: str, message: str, timeout: float
    ) -> PromptReply: ...


class TerminalPromptChannel:
    """Hidden-input prompt on the controlling terminal."""

    def __init__(self, is_interactive: Callable[[], bool] | None = None) -> None:
        self._is_interactive = is_interactive or sys.stdin.isatty

    @property
    def name(self) -> str:
        return "terminal"

    async def prompt_for_reply(
        self, title: str, message: str, timeout: float
    ) -> PromptReply:
        if not self._is_interactive():
            return PromptReply.error("stdin is not an interactive terminal")

        typer.echo(f"\n=== {title} ===", err=True)
        try:
            value = await asyncio.to_thread(
                typer.prompt,
                message,
                default="",
                hide_input=True,
                show_default=False,
                err=True,
            )
        except typer.Abort:
            return PromptReply.dismissed()
        except OSError as e:
            return PromptReply.error(str(e))
        return PromptReply.replied(str(value))

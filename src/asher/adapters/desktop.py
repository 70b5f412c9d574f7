"""Desktop dialogs and notifications via the platform's own command-line tools.

macOS uses ``osascript``; Linux uses ``zenity`` for dialogs and
``notify-send`` for notifications. Windows is not supported and reports a
delivery error so callers can fall back to another channel.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import sys

from asher.services.keys.channels import PromptReply

# zenity exits with 5 when --timeout elapses
_ZENITY_TIMEOUT_EXIT = 5


@dataclass(frozen=True, slots=True)
class CommandResult:
    returncode: int
    stdout: str
    stderr: str


def _applescript_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


async def _run_command(*args: str) -> CommandResult:
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await proc.communicate()
    except asyncio.CancelledError:
        if proc.returncode is None:
            proc.kill()
        raise
    return CommandResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )


def parse_osascript_dialog(result: CommandResult) -> PromptReply:
    """Translate ``display dialog`` output into a PromptReply.

    Successful output looks like
    ``button returned:OK, text returned:secret, gave up:false``.
    """
    if result.returncode != 0:
        if "-128" in result.stderr or "User canceled" in result.stderr:
            return PromptReply.dismissed()
        return PromptReply.error(result.stderr.strip() or "osascript failed")

    output = result.stdout.rstrip("\n")
    if output.endswith("gave up:true"):
        return PromptReply.timeout()

    marker = "text returned:"
    start = output.find(marker)
    if start == -1:
        return PromptReply.error("Unexpected osascript output")
    text = output[start + len(marker) :]
    suffix = ", gave up:false"
    if text.endswith(suffix):
        text = text[: -len(suffix)]
    return PromptReply.replied(text)


def parse_zenity_entry(result: CommandResult) -> PromptReply:
    if result.returncode == 0:
        return PromptReply.replied(result.stdout.rstrip("\n"))
    if result.returncode == 1:
        return PromptReply.dismissed()
    if result.returncode == _ZENITY_TIMEOUT_EXIT:
        return PromptReply.timeout()
    return PromptReply.error(result.stderr.strip() or "zenity failed")


class DesktopPromptChannel:
    """System dialog with a hidden text field."""

    def __init__(self, platform: str | None = None) -> None:
        self._platform = platform or sys.platform

    @property
    def name(self) -> str:
        return "desktop"

    async def prompt_for_reply(
        self, title: str, message: str, timeout: float
    ) -> PromptReply:
        seconds = max(1, int(timeout))
        try:
            if self._platform == "darwin":
                script = (
                    f"display dialog {_applescript_string(message)} "
                    f"with title {_applescript_string(title)} "
                    'default answer "" with hidden answer '
                    f"giving up after {seconds}"
                )
                result = await _run_command("osascript", "-e", script)
                return parse_osascript_dialog(result)
            if self._platform.startswith("linux"):
                result = await _run_command(
                    "zenity",
                    "--entry",
                    "--hide-text",
                    f"--title={title}",
                    f"--text={message}",
                    f"--timeout={seconds}",
                )
                return parse_zenity_entry(result)
        except OSError as e:
            return PromptReply.error(str(e))
        return PromptReply.error(
            f"Desktop prompts are not supported on {self._platform}"
        )


class DesktopNotifier:
    """Fire-and-forget desktop notifications."""

    def __init__(self, platform: str | None = None) -> None:
        self._platform = platform or sys.platform

    async def notify(self, title: str, message: str) -> None:
        """
        Show a notification.

        Raises:
            OSError: If the notification could not be delivered
        """
        if self._platform == "darwin":
            script = (
                f"display notification {_applescript_string(message)} "
                f"with title {_applescript_string(title)}"
            )
            result = await _run_command("osascript", "-e", script)
        elif self._platform.startswith("linux"):
            result = await _run_command("notify-send", title, message)
        else:
            raise OSError(
                f"Desktop notifications are not supported on {self._platform}"
            )

        if result.returncode != 0:
            raise OSError(result.stderr.strip() or "notification command failed")


class NullNotifier:
    """Notifier used when notifications are disabled."""

    async def notify(self, title: str, message: str) -> None:
        return None

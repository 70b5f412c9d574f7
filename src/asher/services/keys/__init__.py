"""Encryption key coordination."""

from __future__ import annotations

from asher.services.keys.channels import (
    PromptChannel,
    PromptOutcome,
    PromptReply,
    TerminalPromptChannel,
)
from asher.services.keys.coordinator import (
    MIN_KEY_LENGTH,
    KeyCoordinator,
    KeyState,
    validate_key,
)

__all__ = [
    "MIN_KEY_LENGTH",
    "KeyCoordinator",
    "KeyState",
    "PromptChannel",
    "PromptOutcome",
    "PromptReply",
    "TerminalPromptChannel",
    "validate_key",
]

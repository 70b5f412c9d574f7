"""Error taxonomy shared by the key coordinator, store, and ingestion run."""

from __future__ import annotations


class AsherError(Exception):
    """Base error for all Asher failures."""


class ValidationError(AsherError):
    """Bad key length or malformed input."""


class KeyUnavailableError(AsherError):
    """The encryption key prompt was exhausted, dismissed, or timed out."""


class AuthenticationError(AsherError):
    """The store could not be unlocked with the provided key."""


class NotInitializedError(AsherError):
    """A store operation was attempted before ``open()``."""


class CredentialsError(AsherError):
    """A stored credential payload could not be decoded."""


class ProviderError(AsherError):
    """An external scraper provider reported a failure."""

    def __init__(self, message: str, *, error_type: str = "ProviderError") -> None:
        super().__init__(message)
        self.error_type = error_type


class QueryRejected(AsherError):
    """An ad-hoc query fell outside the read-only sandbox."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class IngestionPreconditionError(AsherError):
    """An ingestion run cannot start (for example, no sources configured)."""

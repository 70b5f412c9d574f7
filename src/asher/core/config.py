from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import sys

APP_DIR_NAME = "Asher"
DB_FILE_NAME = "transactions.db"
MIN_KEY_LENGTH = 6

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True, slots=True)
class AsherConfig:
    """Process configuration loaded at startup."""

    db_path: Path
    encryption_key: str | None = None
    key_prompt_timeout: float = 30.0
    key_prompt_attempts: int = 2
    scraper_command: str | None = None
    scraper_timeout: float = 300.0
    notifications_enabled: bool = True
    log_level: str = "INFO"
    log_file: Path | None = None


def app_data_dir() -> Path:
    """Return the per-user application data directory for this platform."""
    home = Path.home()
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        return Path(appdata) if appdata else home / "AppData" / "Roaming"
    if sys.platform == "darwin":
        return home / "Library" / "Application Support"
    xdg = os.environ.get("XDG_DATA_HOME")
    return Path(xdg) if xdg else home / ".local" / "share"


def default_db_path() -> Path:
    return app_data_dir() / APP_DIR_NAME / DB_FILE_NAME


def _optional_env(name: str) -> str | None:
    value = os.environ.get(name, "").strip()
    return value or None


def _positive_float_env(name: str, default: float) -> float:
    raw = _optional_env(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def _positive_int_env(name: str, default: int) -> int:
    raw = _optional_env(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {raw!r}")
    return value


def _bool_env(name: str, default: bool) -> bool:
    raw = _optional_env(name)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got {raw!r}")


def _encryption_key_env(name: str) -> str | None:
    key = _optional_env(name)
    if key is not None and len(key) < MIN_KEY_LENGTH:
        raise ValueError(
            f"{name} must be at least {MIN_KEY_LENGTH} characters long"
        )
    return key


def load_config_from_env() -> AsherConfig:
    """Load config from environment variables and validate it."""
    db_path_value = _optional_env("ASHER_DB_PATH")
    db_path = Path(db_path_value).expanduser() if db_path_value else default_db_path()

    log_level = (_optional_env("ASHER_LOG_LEVEL") or "INFO").upper()
    if log_level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"}:
        raise ValueError(
            "ASHER_LOG_LEVEL must be one of: TRACE, DEBUG, INFO, SUCCESS, "
            "WARNING, ERROR"
        )

    log_file_value = _optional_env("ASHER_LOG_FILE")

    return AsherConfig(
        db_path=db_path,
        encryption_key=_encryption_key_env("ASHER_ENCRYPTION_KEY"),
        key_prompt_timeout=_positive_float_env("ASHER_KEY_PROMPT_TIMEOUT", 30.0),
        key_prompt_attempts=_positive_int_env("ASHER_KEY_PROMPT_ATTEMPTS", 2),
        scraper_command=_optional_env("ASHER_SCRAPER_COMMAND"),
        scraper_timeout=_positive_float_env("ASHER_SCRAPER_TIMEOUT", 300.0),
        notifications_enabled=_bool_env("ASHER_NOTIFICATIONS", True),
        log_level=log_level,
        log_file=Path(log_file_value).expanduser() if log_file_value else None,
    )

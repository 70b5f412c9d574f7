"""Loguru sink setup.

stdout is reserved for the MCP stdio transport, so every sink writes to
stderr or a file.
"""

from __future__ import annotations

from pathlib import Path
import sys

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} [{level}] {name}: {message}"


def configure_logging(level: str = "INFO", *, log_file: Path | None = None) -> None:
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level)
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(log_file, format=LOG_FORMAT, level=level, enqueue=True)

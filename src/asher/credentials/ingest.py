from __future__ import annotations

from collections.abc import Sequence
import json
from pathlib import Path

from loguru import logger

from asher.adapters.db.store import EncryptedStore
from asher.core.errors import ValidationError
from asher.credentials.schemas import SourceConfig, parse_source_configs


def load_source_configs(path: Path) -> list[SourceConfig]:
    """
    Read and validate a source configuration file.

    The file holds either a JSON list of sources or ``{"credentials": [...]}``.

    Raises:
        ValidationError: If the file is missing, not JSON, or fails validation
    """
    if not path.is_file():
        raise ValidationError(f"File not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in {path}: {e.msg}") from e
    return parse_source_configs(data)


def ingest_source_configs(
    store: EncryptedStore, configs: Sequence[SourceConfig]
) -> list[int]:
    """
    Upsert validated sources into an open store.

    Re-ingesting a source replaces its credentials and tags and keeps its
    watermark.

    Returns:
        Source credential ids, in input order
    """
    ids: list[int] = []
    for config in configs:
        source_id = store.upsert_source_credential(
            provider_type=config.provider_type,
            friendly_name=config.friendly_name,
            credentials=config.credentials_payload(),
            tags=config.tags,
        )
        logger.bind(source=config.friendly_name, provider=config.provider_type).info(
            "Stored credentials for '{}' ({})",
            config.friendly_name,
            config.provider_type,
        )
        ids.append(source_id)
    return ids

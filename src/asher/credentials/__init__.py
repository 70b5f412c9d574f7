"""Source credential input validation and ingestion."""

from __future__ import annotations

from asher.credentials.ingest import ingest_source_configs, load_source_configs
from asher.credentials.schemas import (
    SOURCE_CONFIG_MODELS,
    SourceConfig,
    credential_fields,
    parse_source_configs,
)

__all__ = [
    "SOURCE_CONFIG_MODELS",
    "SourceConfig",
    "credential_fields",
    "ingest_source_configs",
    "load_source_configs",
    "parse_source_configs",
]

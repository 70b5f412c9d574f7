"""Ingestion run over all configured sources."""

from asher.services.ingestion.orchestrator import (
    IngestionOrchestrator,
    IngestionRunResult,
    Notifier,
    SourceOutcome,
)

__all__ = [
    "IngestionOrchestrator",
    "IngestionRunResult",
    "Notifier",
    "SourceOutcome",
]

"""Encrypted SQLite storage."""

from __future__ import annotations

from asher.adapters.db.models import (
    ALLOWED_TABLES,
    QueryResult,
    SourceCredential,
    Transaction,
    TransactionRecord,
)
from asher.adapters.db.store import EncryptedStore, TableDescription

__all__ = [
    "ALLOWED_TABLES",
    "EncryptedStore",
    "QueryResult",
    "SourceCredential",
    "TableDescription",
    "Transaction",
    "TransactionRecord",
]

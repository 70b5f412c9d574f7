from __future__ import annotations

import asyncio
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime
import json
from pathlib import Path
from typing import Any

from sqlalchemy import URL, Engine, create_engine, delete, event, or_, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlcipher3 import dbapi2 as sqlcipher

from asher.adapters.db.logger import EncryptedStoreLogger
from asher.adapters.db.models import (
    ALLOWED_TABLES,
    Base,
    QueryResult,
    SourceCredential,
    Transaction,
    TransactionRecord,
    to_utc,
)
from asher.adapters.db.query_guard import (
    ParsedQuery,
    parse_read_only_query,
    sandbox_authorizer,
)
from asher.core.errors import AuthenticationError, NotInitializedError, QueryRejected
from asher.services.keys.coordinator import KeyCoordinator, validate_key

# rw------- (read/write for owner only)
STORE_FILE_MODE = 0o600
STORE_DIR_MODE = 0o700


def _key_pragma(pragma: str, key: str) -> str:
    # PRAGMA does not accept bound parameters
    return f"PRAGMA {pragma} = '{key.replace(chr(39), chr(39) * 2)}'"


@dataclass(frozen=True, slots=True)
class TableDescription:
    """Columns and indexes of one sandboxed table."""

    success: bool
    columns: list[dict[str, Any]] = field(default_factory=list)
    indexes: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None


class EncryptedStore:
    """
    SQLCipher-encrypted transaction store.

    Owns a single connection (``StaticPool``) to one database file. The key
    comes from the shared KeyCoordinator and is applied with ``PRAGMA key``
    before any other statement runs on the connection.

    Every operation other than ``open()``, ``exists()`` and ``close()`` raises
    NotInitializedError until ``open()`` has succeeded.
    """

    def __init__(
        self,
        path: Path,
        keys: KeyCoordinator,
        *,
        logger: EncryptedStoreLogger | None = None,
    ) -> None:
        """
        Initialize the store without touching the filesystem.

        Args:
            path: Location of the encrypted database file
            keys: Process-wide key coordinator
            logger: Optional logger override
        """
        self._path = path
        self._keys = keys
        self._logger = logger or EncryptedStoreLogger()
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None
        self._active_key: str | None = None
        self._open_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def exists(self) -> bool:
        """Return True if the store file already holds persisted content."""
        return self._path.is_file() and self._path.stat().st_size > 0

    async def open(self) -> Engine:
        """
        Open the store, creating and keying it on first use.

        Concurrent callers converge on the same engine.

        Returns:
            The open SQLAlchemy engine

        Raises:
            KeyUnavailableError: If no key could be obtained
            AuthenticationError: If the key does not unlock the store; the
                coordinator's key is cleared so the next call prompts again
        """
        async with self._open_lock:
            if self._engine is not None:
                return self._engine

            is_new = not self.exists()
            key = await self._keys.ensure_key_available()
            self._logger.opening(self._path, is_new)

            if is_new:
                self._create_private_file()

            self._active_key = key
            engine = self._create_engine()
            try:
                with engine.connect() as conn:
                    # Any read forces SQLCipher to decrypt the first page
                    conn.exec_driver_sql("SELECT count(*) FROM sqlite_master").scalar()
                    Base.metadata.create_all(conn)
                    conn.commit()
            except DBAPIError as e:
                engine.dispose()
                self._active_key = None
                self._keys.clear_key()
                detail = str(e.orig) if e.orig is not None else str(e)
                self._logger.authentication_failed(self._path, detail)
                raise AuthenticationError(f"{detail}, incorrect key?") from e

            self._engine = engine
            self._session_factory = sessionmaker(
                bind=engine, class_=Session, expire_on_commit=False
            )
            self._logger.opened(self._path)
            return engine

    def close(self) -> None:
        """Release the connection; later operations must call ``open()`` again."""
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._session_factory = None
        self._active_key = None
        self._logger.closed(self._path)

    def change_key(self, new_key: str) -> None:
        """
        Re-encrypt the open store under a new key.

        Raises:
            ValidationError: If the new key is too short
        """
        key = validate_key(new_key)
        engine = self._require_open()
        with engine.connect() as conn:
            conn.exec_driver_sql(_key_pragma("rekey", key))
        self._active_key = key
        self._keys.set_key(key)
        self._logger.rekeyed(self._path)

    def _create_private_file(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True, mode=STORE_DIR_MODE)
        self._path.touch(mode=STORE_FILE_MODE, exist_ok=True)
        # touch() is subject to the umask; set the mode explicitly
        self._path.chmod(STORE_FILE_MODE)

    def _create_engine(self) -> Engine:
        engine = create_engine(
            URL.create("sqlite", database=str(self._path)),
            module=sqlcipher,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

        def apply_key(dbapi_connection: Any, connection_record: Any) -> None:
            if self._active_key is None:
                raise NotInitializedError("No encryption key to apply")
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute(_key_pragma("key", self._active_key))
                cursor.execute("PRAGMA foreign_keys = ON")
            finally:
                cursor.close()

        event.listen(engine, "connect", apply_key, insert=True)
        return engine

    def _require_open(self) -> Engine:
        if self._engine is None:
            raise NotInitializedError(
                "Database is not initialized. Please call open() first."
            )
        return self._engine

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context manager for database sessions."""
        self._require_open()
        assert self._session_factory is not None
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # Source credentials

    def upsert_source_credential(
        self,
        *,
        provider_type: str,
        friendly_name: str,
        credentials: Mapping[str, Any] | str,
        tags: Iterable[str] | None = None,
    ) -> int:
        """
        Insert or update a source keyed on (provider_type, friendly_name).

        An existing row keeps its watermark; only credentials and tags change.

        Returns:
            The source credential id
        """
        if isinstance(credentials, str):
            payload = credentials
        else:
            payload = json.dumps(dict(credentials))
        tags_json = json.dumps(sorted(set(tags or [])))

        stmt = sqlite_insert(SourceCredential).values(
            provider_type=str(provider_type),
            friendly_name=friendly_name,
            credentials=payload,
            tags=tags_json,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["provider_type", "friendly_name"],
            set_={
                "credentials": stmt.excluded.credentials,
                "tags": stmt.excluded.tags,
            },
        )

        with self.session() as session:  # type: Session
            session.execute(stmt)
            return session.execute(
                select(SourceCredential.id).where(
                    SourceCredential.provider_type == str(provider_type),
                    SourceCredential.friendly_name == friendly_name,
                )
            ).scalar_one()

    def get_source_credentials(self) -> list[SourceCredential]:
        with self.session() as session:  # type: Session
            rows = list(
                session.scalars(select(SourceCredential).order_by(SourceCredential.id))
            )
            for row in rows:
                session.expunge(row)
            return rows

    def get_source_credential_by_name(
        self, friendly_name: str, *, provider_type: str | None = None
    ) -> SourceCredential | None:
        """
        Get a source by friendly name, optionally narrowed to one provider.

        Returns:
            The first matching source or None
        """
        query = select(SourceCredential).where(
            SourceCredential.friendly_name == friendly_name
        )
        if provider_type is not None:
            query = query.where(SourceCredential.provider_type == str(provider_type))

        with self.session() as session:  # type: Session
            row = session.scalars(query.order_by(SourceCredential.id)).first()
            if row is not None:
                session.expunge(row)
            return row

    def delete_source_credential(self, credential_id: int) -> bool:
        """Delete a source and, through the foreign key, all its transactions."""
        with self.session() as session:  # type: Session
            result = session.execute(
                delete(SourceCredential)
                .where(SourceCredential.id == credential_id)
                .execution_options(synchronize_session=False)
            )
            return bool(result.rowcount)

    def update_watermark(
        self,
        friendly_name: str,
        timestamp: datetime,
        *,
        provider_type: str | None = None,
    ) -> bool:
        """
        Move a source's last-scraped watermark forward.

        The update only applies when the new timestamp is later than the
        stored one, so a watermark never moves backward.

        Returns:
            True if a row was updated
        """
        ts = to_utc(timestamp)
        stmt = (
            update(SourceCredential)
            .where(SourceCredential.friendly_name == friendly_name)
            .where(
                or_(
                    SourceCredential.last_scraped_at.is_(None),
                    SourceCredential.last_scraped_at < ts,
                )
            )
            .values(last_scraped_at=ts)
            .execution_options(synchronize_session=False)
        )
        if provider_type is not None:
            stmt = stmt.where(SourceCredential.provider_type == str(provider_type))

        with self.session() as session:  # type: Session
            updated = bool(session.execute(stmt).rowcount)

        if not updated:
            existing = self.get_source_credential_by_name(
                friendly_name, provider_type=provider_type
            )
            current = existing.last_scraped_at if existing is not None else None
            self._logger.watermark_not_advanced(
                friendly_name,
                ts.isoformat(),
                current.isoformat() if current is not None else None,
            )
        return updated

    # Transactions

    def _insert_transaction_stmt(self, record: TransactionRecord) -> Any:
        return (
            sqlite_insert(Transaction)
            .values(**asdict(record))
            .on_conflict_do_nothing(
                index_elements=["source_credential_id", "provider_transaction_id"]
            )
        )

    def save_transaction(self, record: TransactionRecord) -> bool:
        """
        Insert a transaction unless its identity already exists.

        Returns:
            True if inserted, False if it was a duplicate (left untouched)
        """
        with self.session() as session:  # type: Session
            result = session.execute(self._insert_transaction_stmt(record))
            return bool(result.rowcount)

    def save_transactions(self, records: Iterable[TransactionRecord]) -> int:
        """
        Insert many transactions in one unit of work, skipping duplicates.

        Returns:
            Number of rows actually inserted
        """
        inserted = 0
        with self.session() as session:  # type: Session
            for record in records:
                result = session.execute(self._insert_transaction_stmt(record))
                inserted += result.rowcount or 0
        return inserted

    def get_transactions(
        self,
        source_credential_id: int,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[Transaction]:
        """
        Get a source's transactions, most recent first.

        Args:
            source_credential_id: Owning source id
            start_date: Inclusive lower bound on occurred_at
            end_date: Inclusive upper bound on occurred_at
        """
        query = select(Transaction).where(
            Transaction.source_credential_id == source_credential_id
        )
        if start_date is not None:
            query = query.where(Transaction.occurred_at >= to_utc(start_date))
        if end_date is not None:
            query = query.where(Transaction.occurred_at <= to_utc(end_date))
        query = query.order_by(
            Transaction.occurred_at.desc(), Transaction.processed_at.desc()
        )

        with self.session() as session:  # type: Session
            rows = list(session.scalars(query))
            for row in rows:
                session.expunge(row)
            return rows

    # Sandboxed access

    def list_tables(self) -> list[str]:
        engine = self._require_open()
        with engine.connect() as conn:
            names = conn.exec_driver_sql(
                "SELECT name FROM sqlite_master "
                "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
            ).scalars()
            return [name for name in names if name in ALLOWED_TABLES]

    def run_read_only_query(self, query: str) -> QueryResult:
        """
        Run untrusted query text inside the two-table sandbox.

        Returns:
            QueryResult; rejected or failing queries come back with
            success=False and a reason instead of raising
        """
        self._require_open()
        try:
            parsed = parse_read_only_query(query)
        except QueryRejected as e:
            self._logger.query_rejected(e.reason)
            return QueryResult.rejected(e.reason)
        return self._execute_sandboxed(parsed)

    def describe_table(self, table: str) -> TableDescription:
        """Return columns and indexes for an allowed table."""
        columns = self.run_read_only_query(f"PRAGMA table_info({table!r})")
        if not columns.success:
            return TableDescription(success=False, error=columns.error)
        indexes = self.run_read_only_query(f"PRAGMA index_list({table!r})")
        if not indexes.success:
            return TableDescription(success=False, error=indexes.error)
        return TableDescription(
            success=True, columns=columns.rows, indexes=indexes.rows
        )

    def _execute_sandboxed(self, parsed: ParsedQuery) -> QueryResult:
        engine = self._require_open()
        with engine.connect() as conn:
            raw = conn.connection.driver_connection
            raw.set_authorizer(sandbox_authorizer())
            try:
                result = conn.exec_driver_sql(parsed.sql)
                rows = [dict(row._mapping) for row in result]
            except DBAPIError as e:
                detail = str(e.orig) if e.orig is not None else str(e)
                self._logger.query_failed(detail)
                return QueryResult(success=False, rows=[], error=detail)
            finally:
                raw.set_authorizer(None)
        return QueryResult(success=True, rows=rows)

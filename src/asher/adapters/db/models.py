from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)

SOURCE_CREDENTIALS_TABLE = "source_credentials"
TRANSACTIONS_TABLE = "transactions"

# The only tables reachable from ad-hoc queries
ALLOWED_TABLES = frozenset({SOURCE_CREDENTIALS_TABLE, TRANSACTIONS_TABLE})


def to_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class UTCDateTime(TypeDecorator[datetime]):
    """Stores naive UTC in SQLite and hands back aware UTC datetimes."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> datetime | None:
        if value is None:
            return None
        return to_utc(value).replace(tzinfo=None)

    def process_result_value(self, value: Any, dialect: Any) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=UTC)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    pass


class SourceCredential(Base):
    """One configured account at one scraper provider."""

    __tablename__ = SOURCE_CREDENTIALS_TABLE
    __table_args__ = (
        UniqueConstraint(
            "provider_type",
            "friendly_name",
            name="uq_source_credentials_provider_name",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider_type: Mapped[str] = mapped_column(String, nullable=False)
    friendly_name: Mapped[str] = mapped_column(String, nullable=False)
    credentials: Mapped[str] = mapped_column(Text, nullable=False)  # JSON
    tags: Mapped[str] = mapped_column(
        Text, nullable=False, default="[]"
    )  # JSON array stored as TEXT
    last_scraped_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )

    # Relationships
    transactions: Mapped[list[Transaction]] = relationship(
        "Transaction",
        back_populates="source_credential",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Transaction(Base):
    """One financial event, owned by exactly one source credential."""

    __tablename__ = TRANSACTIONS_TABLE

    source_credential_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey(f"{SOURCE_CREDENTIALS_TABLE}.id", ondelete="CASCADE"),
        primary_key=True,
    )
    provider_transaction_id: Mapped[str] = mapped_column(String, primary_key=True)
    type: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str | None] = mapped_column(String, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    processed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    original_amount: Mapped[float] = mapped_column(Float, nullable=False)
    original_currency: Mapped[str] = mapped_column(String, nullable=False)
    charged_amount: Mapped[float] = mapped_column(Float, nullable=False)
    charged_currency: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    memo: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String, nullable=True)

    # Relationships
    source_credential: Mapped[SourceCredential] = relationship(
        "SourceCredential", back_populates="transactions"
    )


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """A transaction ready to be saved; identity is (source id, provider id)."""

    source_credential_id: int
    provider_transaction_id: str
    occurred_at: datetime
    processed_at: datetime
    original_amount: float
    original_currency: str
    charged_amount: float
    charged_currency: str
    description: str
    memo: str | None = None
    category: str | None = None
    status: str | None = None
    type: str | None = None


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Structured outcome of a sandboxed query; never raised past the store."""

    success: bool
    rows: list[dict[str, Any]]
    error: str | None = None

    @classmethod
    def rejected(cls, reason: str) -> QueryResult:
        return cls(success=False, rows=[], error=reason)

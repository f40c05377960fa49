"""
Module: pricing_kernel.db.base
Responsibility: Declarative base for the pricing tables: UUID keys stored as
    text, Decimal prices stored as NUMERIC, and the audit columns shared by
    index entries, adjustments, parts and price history.
Architecture position: Kernel > DB.  Lowest import target of the kernel;
    MUST NOT import from models/, services/, selectors/ or domain/.

Invariants enforced:
    - Every row has a uuid4 primary key.
    - USD/MT prices, per-kg prices, weights and standard values are
      Numeric(38, 9) columns; none of them round-trips through float.
    - Constraint and index names follow PRICING_NAMING_CONVENTION so that
      PostgreSQL and SQLite schemas carry identical names.

Audit relevance:
    created_by_id is mandatory on every row.  updated_at / updated_by_id are
    bookkeeping and stay writable on frozen rows (see db/immutability.py).
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import DateTime, MetaData, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

PRICING_NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_N_name)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class UUIDString(TypeDecorator):
    """UUID stored as its 36-character text form (String(36) on every backend)."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect) -> str | None:
        return str(value) if value is not None else None

    def process_result_value(self, value: Any, dialect) -> PyUUID | None:
        return PyUUID(value) if value is not None else None


class Base(DeclarativeBase):
    """Base of every pricing table: uuid4 ``id`` plus the column type map."""

    metadata = MetaData(naming_convention=PRICING_NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds who/when columns.

    created_at and updated_at come from the database clock; the engine's
    injected Clock is used only for business timestamps such as applied_at.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    created_by_id: Mapped[PyUUID] = mapped_column(nullable=False)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(nullable=True)

    def record_update_by(self, actor_id: PyUUID | None) -> None:
        """Stamp the actor of an in-place change; None leaves the column alone."""
        if actor_id is not None:
            self.updated_by_id = actor_id

"""
Module: pricing_kernel.models.material_index
Responsibility: ORM persistence for the append-only ledger of monthly
    commodity prices (USD per metric ton) per material and index source.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: rows are never updated or deleted (ORM listener in
      db/immutability.py).  A correction is a NEW row whose supersedes_id
      points at the row it replaces.
    - At most one canonical row per (material, price_month, index_source):
      the canonical row is the one no other row supersedes.  A partial
      unique index allows one original observation (supersedes_id IS NULL)
      per key, and the unique constraint on supersedes_id keeps each
      correction chain linear.

Failure modes:
    - ImmutabilityViolationError on UPDATE/DELETE.
    - IntegrityError if two corrections target the same row, or if two
      original observations are recorded for the same key.

Audit relevance:
    Every adjustment's new_average_price must be reproducible from the
    canonical rows of this table, so history here is never rewritten.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Numeric, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from pricing_kernel.db.base import TrackedBase, UUIDString


class MaterialIndexEntry(TrackedBase):
    """
    One observed monthly price point for a material.

    Contract:
        price_month is always the "YYYY-MM" of price_date and is the lookup
        key used by the timeline and formula stages.

    Non-goals:
        - fx_rate_cny_usd is recorded for provenance only; no currency
          conversion is performed anywhere in the engine.
    """

    __tablename__ = "material_indices"

    __table_args__ = (
        UniqueConstraint("supersedes_id", name="uq_material_index_supersedes"),
        Index(
            "uq_material_index_original",
            "material",
            "price_month",
            "index_source",
            unique=True,
            postgresql_where=text("supersedes_id IS NULL"),
            sqlite_where=text("supersedes_id IS NULL"),
        ),
        Index("idx_material_index_lookup", "material", "price_month", "index_source"),
        Index("idx_material_index_date", "price_date"),
    )

    material: Mapped[str] = mapped_column(String(50), nullable=False)

    price_usd_per_mt: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    price_date: Mapped[date] = mapped_column(Date, nullable=False)

    # "YYYY-MM", derived from price_date
    price_month: Mapped[str] = mapped_column(String(7), nullable=False)

    # Index provenance, e.g. "SHSPI", "LME"
    index_source: Mapped[str] = mapped_column(String(50), nullable=False)

    # Human-readable period, e.g. "January 2025"
    data_period: Mapped[str | None] = mapped_column(String(50), nullable=True)

    fx_rate_cny_usd: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    # Row this entry corrects (None for an original observation)
    supersedes_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("material_indices.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<MaterialIndexEntry {self.material} {self.price_month} "
            f"{self.index_source} = {self.price_usd_per_mt}>"
        )

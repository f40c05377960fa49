"""
Module: pricing_kernel.models.part_price_history
Responsibility: ORM persistence for the per-part record of every applied
    pricing adjustment (old and new material price and standard value).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: rows are never updated or deleted (ORM listener in
      db/immutability.py).
    - At most one row per (part_id, adjustment_id).
    - Rows are written in the same transaction as the part update and the
      adjustment status change, so either all three exist or none do.

Audit relevance:
    This table answers "why did part X's standard value change on date Y"
    without re-running any formula.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pricing_kernel.db.base import TrackedBase, UUIDString


class PartPriceHistory(TrackedBase):
    """One part's price change caused by one applied adjustment."""

    __tablename__ = "part_price_history"

    __table_args__ = (
        UniqueConstraint("part_id", "adjustment_id", name="uq_part_price_history_part_adjustment"),
        Index("idx_part_price_history_part", "part_id"),
        Index("idx_part_price_history_effective", "effective_date"),
    )

    part_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("parts.id"),
        nullable=False,
    )

    adjustment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("pricing_adjustments.id"),
        nullable=False,
    )

    old_material_price: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    new_material_price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    old_standard_value: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    new_standard_value: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    material_weight_kg: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # USD/kg delta applied to the part
    price_adjustment_per_kg: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # First day of the adjustment's effective month
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<PartPriceHistory part={self.part_id} adj={self.adjustment_id} "
            f"{self.old_standard_value} -> {self.new_standard_value}>"
        )

"""
Module: pricing_kernel.models.pricing_adjustment
Responsibility: ORM persistence for proposed and committed material price
    adjustments and their lifecycle status.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Status transitions are DRAFT -> APPLIED and DRAFT -> CANCELLED only.
    - Once APPLIED or CANCELLED, every field is frozen (ORM listener in
      db/immutability.py); updated_at/updated_by_id are audit metadata and
      stay writable.
    - data_months holds exactly three strictly increasing "YYYY-MM" keys
      (validated by the lifecycle manager before insert).

Failure modes:
    - ImmutabilityViolationError on any update of a terminal adjustment.
    - ImmutabilityViolationError on DELETE of an applied adjustment.

Audit relevance:
    parts_affected and total_cost_impact are snapshot figures written in the
    same transaction as the catalog changes; formula_breakdown records how
    new_average_price was derived.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Date, DateTime, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from pricing_kernel.db.base import TrackedBase, UUIDString


class AdjustmentStatus(str, Enum):
    """Lifecycle status of a pricing adjustment.

    Contract: DRAFT -> APPLIED | CANCELLED.  Terminal states never change.
    """

    DRAFT = "draft"
    APPLIED = "applied"
    CANCELLED = "cancelled"


VALID_TRANSITIONS: dict[AdjustmentStatus, frozenset[AdjustmentStatus]] = {
    AdjustmentStatus.DRAFT: frozenset({AdjustmentStatus.APPLIED, AdjustmentStatus.CANCELLED}),
    AdjustmentStatus.APPLIED: frozenset(),
    AdjustmentStatus.CANCELLED: frozenset(),
}


def can_transition(current: AdjustmentStatus | str, target: AdjustmentStatus | str) -> bool:
    return AdjustmentStatus(target) in VALID_TRANSITIONS[AdjustmentStatus(current)]


class PricingAdjustment(TrackedBase):
    """
    A proposed or committed change of a material's average index price.

    Guarantees:
        - new_average_price was re-derived server-side from the canonical
          index prices at data_months when the draft was created.
        - applied_at/applied_by_id are set exactly once, together with the
          APPLIED status, parts_affected and total_cost_impact.
    """

    __tablename__ = "pricing_adjustments"

    __table_args__ = (
        Index("idx_pricing_adjustment_material", "material"),
        Index("idx_pricing_adjustment_status", "status"),
        Index("idx_pricing_adjustment_material_status", "material", "status"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    material: Mapped[str] = mapped_column(String(50), nullable=False)

    adjustment_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Timeline
    data_months: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    communication_month: Mapped[str] = mapped_column(String(7), nullable=False)
    effective_month: Mapped[str] = mapped_column(String(7), nullable=False)

    # Pricing (USD per metric ton)
    index_source: Mapped[str] = mapped_column(String(50), nullable=False)
    old_average_price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    new_average_price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    price_change_usd: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    price_change_percent: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    formula: Mapped[str] = mapped_column(String(50), nullable=False)
    formula_breakdown: Mapped[str] = mapped_column(String(4000), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=AdjustmentStatus.DRAFT.value,
        nullable=False,
    )

    # Snapshot figures, written at apply time
    parts_affected: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_cost_impact: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        default=Decimal("0"),
        nullable=False,
    )

    applied_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    applied_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    cancelled_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    @property
    def status_enum(self) -> AdjustmentStatus:
        """Status as an enum (String column may hold a plain str after reload)."""
        return AdjustmentStatus(self.status)

    @property
    def is_draft(self) -> bool:
        return self.status_enum is AdjustmentStatus.DRAFT

    def __repr__(self) -> str:
        return f"<PricingAdjustment {self.name!r} {self.material} [{self.status_enum.value}]>"

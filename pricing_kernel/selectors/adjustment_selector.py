"""
Module: pricing_kernel.selectors.adjustment_selector
Responsibility: Read-only query access to pricing adjustments.
Architecture position: Kernel > Selectors.

Failure modes:
    - Returns None or an empty list when nothing matches.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from pricing_kernel.models.pricing_adjustment import AdjustmentStatus, PricingAdjustment
from pricing_kernel.selectors.base import BaseSelector


def _opt_str(value: Any) -> str | None:
    return str(value) if value is not None else None


@dataclass(frozen=True)
class AdjustmentDTO:
    """Data transfer object for a pricing adjustment."""

    id: UUID
    name: str
    material: str
    adjustment_date: date
    data_months: tuple[str, ...]
    communication_month: str
    effective_month: str
    index_source: str
    old_average_price: Decimal
    new_average_price: Decimal
    price_change_usd: Decimal
    price_change_percent: Decimal
    formula: str
    formula_breakdown: str
    status: AdjustmentStatus
    parts_affected: int
    total_cost_impact: Decimal
    applied_at: datetime | None
    applied_by_id: UUID | None
    cancelled_at: datetime | None
    cancelled_by_id: UUID | None
    cancel_reason: str | None
    created_at: datetime | None
    created_by_id: UUID

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "material": self.material,
            "adjustment_date": self.adjustment_date.isoformat(),
            "data_months": list(self.data_months),
            "communication_month": self.communication_month,
            "effective_month": self.effective_month,
            "index_source": self.index_source,
            "old_average_price": str(self.old_average_price),
            "new_average_price": str(self.new_average_price),
            "price_change_usd": str(self.price_change_usd),
            "price_change_percent": str(self.price_change_percent),
            "formula": self.formula,
            "formula_breakdown": self.formula_breakdown,
            "status": self.status.value,
            "parts_affected": self.parts_affected,
            "total_cost_impact": str(self.total_cost_impact),
            "applied_at": self.applied_at.isoformat() if self.applied_at else None,
            "applied_by_id": _opt_str(self.applied_by_id),
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "cancelled_by_id": _opt_str(self.cancelled_by_id),
            "cancel_reason": self.cancel_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "created_by_id": str(self.created_by_id),
        }


class AdjustmentSelector(BaseSelector[PricingAdjustment]):
    """Selector for pricing adjustment queries, newest first."""

    def __init__(self, session: Session):
        super().__init__(session)

    def _to_dto(self, adj: PricingAdjustment) -> AdjustmentDTO:
        return AdjustmentDTO(
            id=adj.id,
            name=adj.name,
            material=adj.material,
            adjustment_date=adj.adjustment_date,
            data_months=tuple(adj.data_months),
            communication_month=adj.communication_month,
            effective_month=adj.effective_month,
            index_source=adj.index_source,
            old_average_price=adj.old_average_price,
            new_average_price=adj.new_average_price,
            price_change_usd=adj.price_change_usd,
            price_change_percent=adj.price_change_percent,
            formula=adj.formula,
            formula_breakdown=adj.formula_breakdown,
            status=adj.status_enum,
            parts_affected=adj.parts_affected,
            total_cost_impact=adj.total_cost_impact,
            applied_at=adj.applied_at,
            applied_by_id=adj.applied_by_id,
            cancelled_at=adj.cancelled_at,
            cancelled_by_id=adj.cancelled_by_id,
            cancel_reason=adj.cancel_reason,
            created_at=adj.created_at,
            created_by_id=adj.created_by_id,
        )

    def get(self, adjustment_id: UUID) -> AdjustmentDTO | None:
        adj = self.session.get(PricingAdjustment, adjustment_id)
        return self._to_dto(adj) if adj is not None else None

    def list_adjustments(
        self,
        status: AdjustmentStatus | str | None = None,
        material: str | None = None,
        effective_from: str | None = None,
        effective_to: str | None = None,
    ) -> list[AdjustmentDTO]:
        """
        Adjustments filtered by status, material and effective month range
        (inclusive "YYYY-MM" bounds).
        """
        query = select(PricingAdjustment)
        if status is not None:
            query = query.where(PricingAdjustment.status == AdjustmentStatus(status).value)
        if material is not None:
            query = query.where(PricingAdjustment.material == material)
        if effective_from is not None:
            query = query.where(PricingAdjustment.effective_month >= effective_from)
        if effective_to is not None:
            query = query.where(PricingAdjustment.effective_month <= effective_to)
        query = query.order_by(PricingAdjustment.created_at.desc(), PricingAdjustment.name)
        return [self._to_dto(a) for a in self.session.execute(query).scalars().all()]

"""
Module: pricing_kernel.selectors.price_history_selector
Responsibility: Read-only access to per-part price history written by
    applied adjustments.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from pricing_kernel.models.part_price_history import PartPriceHistory
from pricing_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class PriceHistoryDTO:
    id: UUID
    part_id: UUID
    adjustment_id: UUID
    old_material_price: Decimal | None
    new_material_price: Decimal
    old_standard_value: Decimal
    new_standard_value: Decimal
    material_weight_kg: Decimal
    price_adjustment_per_kg: Decimal
    effective_date: date

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "part_id": str(self.part_id),
            "adjustment_id": str(self.adjustment_id),
            "old_material_price": (
                str(self.old_material_price) if self.old_material_price is not None else None
            ),
            "new_material_price": str(self.new_material_price),
            "old_standard_value": str(self.old_standard_value),
            "new_standard_value": str(self.new_standard_value),
            "material_weight_kg": str(self.material_weight_kg),
            "price_adjustment_per_kg": str(self.price_adjustment_per_kg),
            "effective_date": self.effective_date.isoformat(),
        }


class PriceHistorySelector(BaseSelector[PartPriceHistory]):
    """Selector for part price history, ordered by effective date."""

    def __init__(self, session: Session):
        super().__init__(session)

    def _to_dto(self, row: PartPriceHistory) -> PriceHistoryDTO:
        return PriceHistoryDTO(
            id=row.id,
            part_id=row.part_id,
            adjustment_id=row.adjustment_id,
            old_material_price=row.old_material_price,
            new_material_price=row.new_material_price,
            old_standard_value=row.old_standard_value,
            new_standard_value=row.new_standard_value,
            material_weight_kg=row.material_weight_kg,
            price_adjustment_per_kg=row.price_adjustment_per_kg,
            effective_date=row.effective_date,
        )

    def for_adjustment(self, adjustment_id: UUID) -> list[PriceHistoryDTO]:
        rows = self.session.execute(
            select(PartPriceHistory)
            .where(PartPriceHistory.adjustment_id == adjustment_id)
            .order_by(PartPriceHistory.part_id)
        ).scalars().all()
        return [self._to_dto(r) for r in rows]

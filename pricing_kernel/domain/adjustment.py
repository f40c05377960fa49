"""
Adjustment value objects -- Draft payloads and apply results.

Responsibility:
    Typed inputs and outputs of the AdjustmentLifecycleManager.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from pricing_kernel.db.types import MONEY_DECIMAL_PLACES, round_money


# Materials with published monthly indices
DEFAULT_MATERIALS: tuple[str, ...] = ("aluminum", "steel", "stainless_steel")


def material_label(material: str) -> str:
    """Display label for a material id ('stainless_steel' -> 'Stainless Steel')."""
    return material.replace("_", " ").title()


@dataclass(frozen=True)
class AdjustmentDraft:
    """
    Caller-supplied payload for a new pricing adjustment.

    new_average_price is the caller's claim; the lifecycle manager re-derives
    it from index data and rejects a mismatch.  old_average_price may be
    omitted, in which case it is derived from the three months before the
    first data month.
    """

    name: str
    material: str
    data_months: tuple[str, ...]
    communication_month: str
    effective_month: str
    new_average_price: Decimal
    formula: str = "3_month_rolling"
    old_average_price: Decimal | None = None
    index_source: str | None = None
    adjustment_date: date | None = None


@dataclass(frozen=True)
class ApplyResult:
    adjustment_id: UUID
    parts_updated: int
    total_cost_impact: Decimal
    price_changes_recorded: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "adjustment_id": str(self.adjustment_id),
            "parts_updated": self.parts_updated,
            "total_cost_impact": str(round_money(self.total_cost_impact, MONEY_DECIMAL_PLACES)),
            "price_changes_recorded": self.price_changes_recorded,
        }

"""Aggregate figures over a set of pricing adjustments (quarterly report)."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable

from pricing_kernel.db.types import MONEY_DECIMAL_PLACES, PERCENT_DECIMAL_PLACES, round_money

_ZERO = Decimal("0")


@dataclass(frozen=True)
class MaterialBreakdown:
    count: int
    total_impact: Decimal
    average_change: Decimal


@dataclass(frozen=True)
class AdjustmentReport:
    total_adjustments: int
    parts_affected: int
    total_cost_impact: Decimal
    average_percent_change: Decimal
    material_breakdown: dict[str, MaterialBreakdown] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_adjustments": self.total_adjustments,
            "parts_affected": self.parts_affected,
            "total_cost_impact": str(round_money(self.total_cost_impact, MONEY_DECIMAL_PLACES)),
            "average_percent_change": str(
                round_money(self.average_percent_change, PERCENT_DECIMAL_PLACES)
            ),
            "material_breakdown": {
                material: {
                    "count": b.count,
                    "total_impact": str(round_money(b.total_impact, MONEY_DECIMAL_PLACES)),
                    "average_change": str(round_money(b.average_change, PERCENT_DECIMAL_PLACES)),
                }
                for material, b in self.material_breakdown.items()
            },
        }


def summarize_adjustments(adjustments: Iterable[Any]) -> AdjustmentReport:
    """
    Summarize adjustments (anything with material, parts_affected,
    total_cost_impact and price_change_percent attributes).

    Empty input yields an all-zero report.
    """
    count = 0
    parts = 0
    total_impact = _ZERO
    total_percent = _ZERO
    per_material: dict[str, list] = {}

    for adj in adjustments:
        impact = adj.total_cost_impact or _ZERO
        percent = adj.price_change_percent or _ZERO
        count += 1
        parts += adj.parts_affected or 0
        total_impact += impact
        total_percent += percent

        bucket = per_material.setdefault(adj.material, [0, _ZERO, _ZERO])
        bucket[0] += 1
        bucket[1] += impact
        bucket[2] += percent

    return AdjustmentReport(
        total_adjustments=count,
        parts_affected=parts,
        total_cost_impact=total_impact,
        average_percent_change=total_percent / count if count else _ZERO,
        material_breakdown={
            material: MaterialBreakdown(
                count=n,
                total_impact=impact_sum,
                average_change=percent_sum / n,
            )
            for material, (n, impact_sum, percent_sum) in sorted(per_material.items())
        },
    )

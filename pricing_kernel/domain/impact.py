"""
PriceImpactCalculator -- Spread a per-ton price change across a parts list.

Responsibility:
    For every part containing the material, computes how much its standard
    value moves when the material price moves from old to new (USD per
    metric ton), and aggregates the result.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Works on PartSnapshot
    values, never on ORM rows, so the input catalog is never mutated.

Invariants enforced:
    - impact = material_weight_kg * (new - old) / 1000 (linear in weight).
    - total_cost_impact is the sum of UNROUNDED per-part impacts.
    - Rounding happens only in to_dict() (presentation).
    - Parts with zero or missing weight are excluded from the affected set
      but still counted in total_parts.
    - percent_change is 0 when the old standard value is 0.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from pricing_kernel.db.types import (
    KG_DECIMAL_PLACES,
    MONEY_DECIMAL_PLACES,
    PERCENT_DECIMAL_PLACES,
    PRICE_DECIMAL_PLACES,
    per_mt_to_per_kg,
    round_money,
    to_decimal,
)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class PartSnapshot:
    """Read-only view of the part fields the impact calculation needs."""

    part_id: UUID | str
    part_number: str
    description: str = ""
    material_weight_kg: Decimal | None = None
    standard_value: Decimal = _ZERO
    material_price: Decimal | None = None

    @classmethod
    def from_part(cls, part: Any) -> PartSnapshot:
        return cls(
            part_id=part.id,
            part_number=part.part_number,
            description=part.description or "",
            material_weight_kg=part.material_weight_kg,
            standard_value=part.standard_value if part.standard_value is not None else _ZERO,
            material_price=part.material_price,
        )


@dataclass(frozen=True)
class PartPriceImpact:
    """Effect of the price change on one part (full precision)."""

    part_id: UUID | str
    part_number: str
    description: str
    material_weight_kg: Decimal
    price_impact_per_part: Decimal
    old_standard_value: Decimal
    new_standard_value: Decimal
    percent_change: Decimal
    old_material_price: Decimal | None
    new_material_price: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "part_id": str(self.part_id),
            "part_number": self.part_number,
            "description": self.description,
            "material_weight_kg": str(self.material_weight_kg),
            "price_impact_per_part": str(round_money(self.price_impact_per_part, PRICE_DECIMAL_PLACES)),
            "old_standard_value": str(round_money(self.old_standard_value, MONEY_DECIMAL_PLACES)),
            "new_standard_value": str(round_money(self.new_standard_value, MONEY_DECIMAL_PLACES)),
            "percent_change": str(round_money(self.percent_change, PERCENT_DECIMAL_PLACES)),
            "old_material_price": (
                str(round_money(self.old_material_price, PRICE_DECIMAL_PLACES))
                if self.old_material_price is not None
                else None
            ),
            "new_material_price": str(round_money(self.new_material_price, PRICE_DECIMAL_PLACES)),
        }


@dataclass(frozen=True)
class ImpactSummary:
    parts_affected: int
    total_parts: int
    total_cost_impact: Decimal
    average_impact_per_part: Decimal
    price_change_per_mt: Decimal
    price_change_per_kg: Decimal
    price_change_percent: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "parts_affected": self.parts_affected,
            "total_parts": self.total_parts,
            "total_cost_impact": str(round_money(self.total_cost_impact, MONEY_DECIMAL_PLACES)),
            "average_impact_per_part": str(
                round_money(self.average_impact_per_part, MONEY_DECIMAL_PLACES)
            ),
            "price_change_per_mt": str(round_money(self.price_change_per_mt, MONEY_DECIMAL_PLACES)),
            "price_change_per_kg": str(round_money(self.price_change_per_kg, KG_DECIMAL_PLACES)),
            "price_change_percent": str(
                round_money(self.price_change_percent, PERCENT_DECIMAL_PLACES)
            ),
        }


@dataclass(frozen=True)
class ImpactReport:
    impacts: tuple[PartPriceImpact, ...] = field(default_factory=tuple)
    summary: ImpactSummary | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "impacts": [impact.to_dict() for impact in self.impacts],
            "summary": self.summary.to_dict() if self.summary is not None else None,
        }


def price_change_percent(old_price: Decimal, new_price: Decimal) -> Decimal:
    """(new - old) / old * 100, or 0 when old is 0."""
    if old_price == 0:
        return _ZERO
    return (new_price - old_price) / old_price * _HUNDRED


class PriceImpactCalculator:
    """
    Computes ImpactReports.

    Contract:
        compute_impact() is a pure function of its arguments.
    """

    def compute_impact(
        self,
        parts: Iterable[PartSnapshot],
        old_price_per_mt: Decimal | int | str,
        new_price_per_mt: Decimal | int | str,
    ) -> ImpactReport:
        old_price = to_decimal(old_price_per_mt)
        new_price = to_decimal(new_price_per_mt)
        new_price_per_kg = per_mt_to_per_kg(new_price)
        delta_per_mt = new_price - old_price
        delta_per_kg = per_mt_to_per_kg(delta_per_mt)

        impacts: list[PartPriceImpact] = []
        total_parts = 0
        total_impact = _ZERO

        for part in parts:
            total_parts += 1
            weight = part.material_weight_kg
            if weight is None or weight <= 0:
                continue

            impact = weight * delta_per_kg
            old_value = part.standard_value
            percent = impact / old_value * _HUNDRED if old_value != 0 else _ZERO

            impacts.append(
                PartPriceImpact(
                    part_id=part.part_id,
                    part_number=part.part_number,
                    description=part.description,
                    material_weight_kg=weight,
                    price_impact_per_part=impact,
                    old_standard_value=old_value,
                    new_standard_value=old_value + impact,
                    percent_change=percent,
                    old_material_price=part.material_price,
                    new_material_price=weight * new_price_per_kg,
                )
            )
            total_impact += impact

        affected = len(impacts)
        summary = ImpactSummary(
            parts_affected=affected,
            total_parts=total_parts,
            total_cost_impact=total_impact,
            average_impact_per_part=total_impact / affected if affected else _ZERO,
            price_change_per_mt=delta_per_mt,
            price_change_per_kg=delta_per_kg,
            price_change_percent=price_change_percent(old_price, new_price),
        )
        return ImpactReport(impacts=tuple(impacts), summary=summary)

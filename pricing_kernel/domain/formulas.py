"""
PricingFormulaRegistry -- Named strategies that turn 3 monthly prices into one.

Responsibility:
    Holds the pricing formulas by string id and runs them with uniform input
    validation, rounding and an audit breakdown.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    A registry is an ordinary object passed by the caller; there is no
    process-wide registry.

Invariants enforced:
    - Every formula receives exactly three finite, positive Decimal prices.
    - Results are rounded to PRICE_DECIMAL_PLACES with ROUND_HALF_UP via
      round_money(); intermediate values keep full precision.

Failure modes:
    - InvalidFormulaInputError naming the offending index.
    - FormulaNotFoundError for an unknown id.

Audit relevance:
    FormulaResult.breakdown is persisted on the adjustment and shows the
    exact arithmetic that produced new_average_price.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Sequence

from pricing_kernel.db.types import PRICE_DECIMAL_PLACES, round_money, to_decimal
from pricing_kernel.exceptions import FormulaNotFoundError, InvalidFormulaInputError

REQUIRED_INPUTS = 3

# Fixed FTZ compliance buffer applied by the quarterly standard formula.
QUARTERLY_COMPLIANCE_BUFFER = Decimal("1.005")


@dataclass(frozen=True)
class TimelineConvention:
    """How a formula's months are laid out, for display only."""

    data_months: int = REQUIRED_INPUTS
    communication_delay: int = 1
    effective_delay: int = 2


@dataclass(frozen=True)
class FormulaResult:
    """Outcome of one formula evaluation."""

    result: Decimal
    breakdown: str
    formula_id: str
    formula_name: str
    input_prices: tuple[Decimal, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "result": str(self.result),
            "breakdown": self.breakdown,
            "formula": self.formula_id,
            "formula_name": self.formula_name,
            "input_prices": [str(p) for p in self.input_prices],
        }


class PricingFormula(ABC):
    """
    Base class for pricing formulas.

    Contract:
        Subclasses implement ``_compute`` over already validated inputs and
        return the unrounded value together with the breakdown prefix.
    """

    formula_id: str = ""
    name: str = ""
    description: str = ""
    timeline = TimelineConvention()

    def calculate(self, prices: Sequence[Any]) -> FormulaResult:
        values = validate_prices(self.formula_id, prices)
        raw, expression = self._compute(values)
        result = round_money(raw, PRICE_DECIMAL_PLACES)
        return FormulaResult(
            result=result,
            breakdown=f"{expression} = {result}",
            formula_id=self.formula_id,
            formula_name=self.name,
            input_prices=values,
        )

    @abstractmethod
    def _compute(self, prices: tuple[Decimal, ...]) -> tuple[Decimal, str]:
        ...


def _sum_expression(prices: tuple[Decimal, ...]) -> str:
    return "(" + " + ".join(str(p) for p in prices) + f") / {len(prices)}"


def _mean(prices: tuple[Decimal, ...]) -> Decimal:
    return sum(prices, Decimal("0")) / Decimal(len(prices))


class SimpleAverageFormula(PricingFormula):
    """Arithmetic mean of the three prices."""

    def __init__(
        self,
        formula_id: str = "simple_average",
        name: str = "Simple 3-Month Average",
        description: str = "Average of specific 3 months",
        timeline: TimelineConvention | None = None,
    ):
        self.formula_id = formula_id
        self.name = name
        self.description = description
        self.timeline = timeline or TimelineConvention(communication_delay=0, effective_delay=1)

    def _compute(self, prices: tuple[Decimal, ...]) -> tuple[Decimal, str]:
        return _mean(prices), _sum_expression(prices)


class QuarterlyStandardFormula(PricingFormula):
    """Arithmetic mean times the fixed 1.005 compliance buffer."""

    formula_id = "quarterly_standard"
    name = "Quarterly Standard Formula"
    description = "Standard quarterly pricing adjustment formula (3-month mean with 0.5% FTZ compliance buffer)"

    def _compute(self, prices: tuple[Decimal, ...]) -> tuple[Decimal, str]:
        return (
            _mean(prices) * QUARTERLY_COMPLIANCE_BUFFER,
            f"({_sum_expression(prices)}) * {QUARTERLY_COMPLIANCE_BUFFER}",
        )


def validate_prices(formula_id: str, prices: Sequence[Any]) -> tuple[Decimal, ...]:
    """
    Convert and check formula inputs.

    Raises:
        InvalidFormulaInputError: wrong count, or a non-numeric, non-finite
            or non-positive value (with its index).
    """
    if isinstance(prices, (str, bytes)) or not hasattr(prices, "__len__"):
        raise InvalidFormulaInputError(
            formula_id,
            "Prices must be a sequence of 3 values",
            expected=REQUIRED_INPUTS,
            actual=prices,
        )
    if len(prices) != REQUIRED_INPUTS:
        raise InvalidFormulaInputError(
            formula_id,
            f"Exactly {REQUIRED_INPUTS} price values are required",
            expected=REQUIRED_INPUTS,
            actual=len(prices),
        )

    values = []
    for index, raw in enumerate(prices):
        try:
            value = to_decimal(raw)
        except ValueError:
            raise InvalidFormulaInputError(
                formula_id, "Price is not a number", index=index, actual=raw
            ) from None
        if not value.is_finite():
            raise InvalidFormulaInputError(
                formula_id, "Price must be finite", index=index, actual=str(value)
            )
        if value <= 0:
            raise InvalidFormulaInputError(
                formula_id,
                "Price must be positive",
                index=index,
                expected="> 0",
                actual=str(value),
            )
        values.append(value)
    return tuple(values)


class PricingFormulaRegistry:
    """
    Formulas keyed by string id.

    Contract:
        Callers select formulas only by id, so new strategies can be
        registered without touching them.
    """

    def __init__(self) -> None:
        self._formulas: dict[str, PricingFormula] = {}

    def register(self, formula: PricingFormula) -> None:
        if formula.formula_id in self._formulas:
            raise ValueError(f"Formula already registered: {formula.formula_id}")
        self._formulas[formula.formula_id] = formula

    def get(self, formula_id: str) -> PricingFormula:
        formula = self._formulas.get(formula_id)
        if formula is None:
            raise FormulaNotFoundError(formula_id, sorted(self._formulas))
        return formula

    def has(self, formula_id: str) -> bool:
        return formula_id in self._formulas

    def calculate(self, formula_id: str, prices: Sequence[Any]) -> FormulaResult:
        return self.get(formula_id).calculate(prices)

    def list_formulas(self) -> list[dict[str, Any]]:
        return [
            {
                "key": formula.formula_id,
                "name": formula.name,
                "description": formula.description,
                "timeline": {
                    "data_months": formula.timeline.data_months,
                    "communication_delay": formula.timeline.communication_delay,
                    "effective_delay": formula.timeline.effective_delay,
                },
            }
            for formula in self._formulas.values()
        ]


def build_default_registry() -> PricingFormulaRegistry:
    """Registry holding the built-in formulas."""
    registry = PricingFormulaRegistry()
    registry.register(
        SimpleAverageFormula(
            formula_id="3_month_rolling",
            name="3-Month Rolling Average Standard",
            description=(
                "Average of rolling 3 months (month1, month2, month3) "
                "communicated in month4 becomes new price in month5"
            ),
            timeline=TimelineConvention(communication_delay=1, effective_delay=2),
        )
    )
    registry.register(SimpleAverageFormula())
    registry.register(QuarterlyStandardFormula())
    return registry

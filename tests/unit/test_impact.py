"""
PriceImpactCalculator tests.

Tests cover:
- The worked example (2.5 kg, 2800 -> 2850 USD/MT)
- Exclusion of weightless parts
- Zero standard value, zero old price
- Aggregates and presentation rounding
- Properties: linearity in weight, total equals sum of impacts
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from pricing_kernel.domain.impact import PartSnapshot, PriceImpactCalculator, price_change_percent


def _part(number: str, weight, value="45.00", price=None) -> PartSnapshot:
    return PartSnapshot(
        part_id=number,
        part_number=number,
        description=f"Part {number}",
        material_weight_kg=Decimal(weight) if weight is not None else None,
        standard_value=Decimal(value),
        material_price=Decimal(price) if price is not None else None,
    )


@pytest.fixture
def calculator():
    return PriceImpactCalculator()


class TestWorkedExample:
    def test_single_part(self, calculator):
        report = calculator.compute_impact([_part("AL-001", "2.5")], "2800", "2850")

        impact = report.impacts[0]
        assert report.summary.price_change_per_kg == Decimal("0.05")
        assert impact.price_impact_per_part == Decimal("0.125")
        assert impact.new_standard_value == Decimal("45.125")
        assert impact.old_standard_value == Decimal("45.00")

    def test_new_material_price_is_weight_times_new_price_per_kg(self, calculator):
        report = calculator.compute_impact([_part("AL-001", "2.5", price="7.00")], "2800", "2850")

        impact = report.impacts[0]
        assert impact.old_material_price == Decimal("7.00")
        assert impact.new_material_price == Decimal("7.125")

    def test_presentation_rounding(self, calculator):
        data = calculator.compute_impact([_part("AL-001", "2.5")], "2800", "2850").to_dict()

        row = data["impacts"][0]
        assert row["price_impact_per_part"] == "0.1250"
        assert row["new_standard_value"] == "45.13"
        assert data["summary"]["total_cost_impact"] == "0.13"
        assert data["summary"]["price_change_per_kg"] == "0.0500"
        assert data["summary"]["price_change_percent"] == "1.79"


class TestFiltering:
    def test_zero_and_missing_weight_are_excluded(self, calculator):
        parts = [_part("A", "2.5"), _part("B", "0"), _part("C", None), _part("D", "-1")]
        report = calculator.compute_impact(parts, "2800", "2850")

        assert [i.part_number for i in report.impacts] == ["A"]
        assert report.summary.parts_affected == 1
        assert report.summary.total_parts == 4

    def test_empty_catalog(self, calculator):
        report = calculator.compute_impact([], "2800", "2850")

        assert report.impacts == ()
        assert report.summary.parts_affected == 0
        assert report.summary.total_cost_impact == 0
        assert report.summary.average_impact_per_part == 0

    def test_zero_standard_value_gives_zero_percent(self, calculator):
        report = calculator.compute_impact([_part("A", "4", value="0")], "1000", "1500")

        assert report.impacts[0].percent_change == 0
        assert report.impacts[0].new_standard_value == Decimal("2")

    def test_price_decrease(self, calculator):
        report = calculator.compute_impact([_part("A", "10", value="100")], "3000", "2500")

        assert report.impacts[0].price_impact_per_part == Decimal("-5")
        assert report.impacts[0].percent_change == Decimal("-5")
        assert report.summary.price_change_per_mt == Decimal("-500")


class TestAggregates:
    def test_total_and_average(self, calculator):
        parts = [_part("A", "2.5"), _part("B", "10", value="120")]
        report = calculator.compute_impact(parts, "2800", "2850")

        assert report.summary.total_cost_impact == Decimal("0.625")
        assert report.summary.average_impact_per_part == Decimal("0.3125")

    def test_total_uses_unrounded_impacts(self, calculator):
        # Each impact is 0.0045 (rounds to 0.00); three of them total 0.0135 -> 0.01
        parts = [_part(str(i), "0.09") for i in range(3)]
        report = calculator.compute_impact(parts, "1000", "1050")

        assert report.summary.total_cost_impact == Decimal("0.0135")
        assert report.summary.to_dict()["total_cost_impact"] == "0.01"

    def test_inputs_are_not_mutated(self, calculator):
        part = _part("A", "2.5")
        calculator.compute_impact([part], "2800", "2850")
        assert part.standard_value == Decimal("45.00")


class TestPriceChangePercent:
    def test_zero_old_price(self):
        assert price_change_percent(Decimal("0"), Decimal("100")) == 0

    def test_percent(self):
        assert price_change_percent(Decimal("200"), Decimal("250")) == Decimal("25")


weights = st.decimals(min_value=Decimal("0.001"), max_value=Decimal("1000"), places=3)
prices = st.decimals(min_value=Decimal("1"), max_value=Decimal("100000"), places=2)


class TestImpactProperties:
    @given(weight=weights, old=prices, new=prices)
    @settings(max_examples=200)
    def test_impact_is_linear_in_weight(self, weight, old, new):
        calculator = PriceImpactCalculator()
        single = calculator.compute_impact([_part("A", weight)], old, new)
        double = calculator.compute_impact([_part("A", weight * 2)], old, new)

        assert double.impacts[0].price_impact_per_part == 2 * single.impacts[0].price_impact_per_part

    @given(ws=st.lists(weights, min_size=1, max_size=10), old=prices, new=prices)
    @settings(max_examples=100)
    def test_total_equals_sum_of_impacts(self, ws, old, new):
        parts = [_part(str(i), w) for i, w in enumerate(ws)]
        report = PriceImpactCalculator().compute_impact(parts, old, new)

        assert report.summary.total_cost_impact == sum(
            (i.price_impact_per_part for i in report.impacts), Decimal("0")
        )

    @given(weight=weights, price=prices)
    def test_no_change_means_no_impact(self, weight, price):
        report = PriceImpactCalculator().compute_impact([_part("A", weight)], price, price)
        assert report.impacts[0].price_impact_per_part == 0

"""
PricingFormulaRegistry tests.

Tests cover:
- Built-in formulas and their documented results
- Input validation (count, numeric, finite, positive)
- Registry lookup and extension
- Properties: mean bounds, scaling, permutation invariance
"""

from decimal import ROUND_HALF_UP, Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from pricing_kernel.domain.formulas import (
    PricingFormula,
    PricingFormulaRegistry,
    QUARTERLY_COMPLIANCE_BUFFER,
    build_default_registry,
)
from pricing_kernel.exceptions import FormulaNotFoundError, InvalidFormulaInputError

prices_strategy = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("100000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


@pytest.fixture
def registry():
    return build_default_registry()


class TestBuiltInFormulas:
    def test_simple_average(self, registry):
        result = registry.calculate("simple_average", ["2800.00", "2850.00", "2900.00"])

        assert result.result == Decimal("2850.0000")
        assert str(result.result) == "2850.0000"
        assert result.formula_id == "simple_average"

    def test_rolling_average_matches_simple_average(self, registry):
        prices = [Decimal("2800"), Decimal("2850"), Decimal("2901")]
        assert (
            registry.calculate("3_month_rolling", prices).result
            == registry.calculate("simple_average", prices).result
        )

    def test_quarterly_standard_applies_buffer(self, registry):
        result = registry.calculate("quarterly_standard", [100, 100, 100])
        assert str(result.result) == "100.5000"

    def test_result_rounded_half_up_to_four_places(self, registry):
        # (1 + 1 + 1.00015) / 3 = 1.00005 exactly
        result = registry.calculate("simple_average", ["1", "1", "1.00015"])
        assert result.result == Decimal("1.0001")

    def test_breakdown_shows_arithmetic(self, registry):
        result = registry.calculate("simple_average", ["2800.00", "2850.00", "2900.00"])
        assert result.breakdown == "(2800.00 + 2850.00 + 2900.00) / 3 = 2850.0000"

    def test_quarterly_breakdown_mentions_buffer(self, registry):
        result = registry.calculate("quarterly_standard", [100, 100, 100])
        assert "* 1.005" in result.breakdown
        assert result.breakdown.endswith("= 100.5000")

    def test_float_inputs_do_not_leak_binary_noise(self, registry):
        result = registry.calculate("simple_average", [0.1, 0.2, 0.3])
        assert result.result == Decimal("0.2000")


class TestValidation:
    @pytest.mark.parametrize("prices", [[], [1], [1, 2], [1, 2, 3, 4]])
    def test_wrong_count(self, registry, prices):
        with pytest.raises(InvalidFormulaInputError) as exc_info:
            registry.calculate("simple_average", prices)
        assert exc_info.value.actual == len(prices)
        assert exc_info.value.expected == 3

    def test_zero_price_names_index(self, registry):
        with pytest.raises(InvalidFormulaInputError) as exc_info:
            registry.calculate("simple_average", [100, 0, 100])
        assert exc_info.value.index == 1

    def test_negative_price(self, registry):
        with pytest.raises(InvalidFormulaInputError) as exc_info:
            registry.calculate("quarterly_standard", [100, 100, -5])
        assert exc_info.value.index == 2

    def test_non_numeric_price(self, registry):
        with pytest.raises(InvalidFormulaInputError) as exc_info:
            registry.calculate("simple_average", ["abc", 100, 100])
        assert exc_info.value.index == 0

    @pytest.mark.parametrize("bad", ["NaN", "Infinity", float("inf")])
    def test_non_finite_price(self, registry, bad):
        with pytest.raises(InvalidFormulaInputError):
            registry.calculate("simple_average", [100, bad, 100])

    def test_boolean_is_not_a_price(self, registry):
        with pytest.raises(InvalidFormulaInputError):
            registry.calculate("simple_average", [True, 100, 100])

    def test_string_is_not_a_sequence_of_prices(self, registry):
        with pytest.raises(InvalidFormulaInputError):
            registry.calculate("simple_average", "123")


class TestRegistry:
    def test_unknown_formula(self, registry):
        with pytest.raises(FormulaNotFoundError) as exc_info:
            registry.get("weighted_average")
        assert "simple_average" in exc_info.value.available

    def test_list_formulas(self, registry):
        keys = [f["key"] for f in registry.list_formulas()]
        assert keys == ["3_month_rolling", "simple_average", "quarterly_standard"]

    def test_duplicate_registration_rejected(self, registry):
        with pytest.raises(ValueError):
            registry.register(registry.get("simple_average"))

    def test_new_formula_can_be_registered(self):
        class MaxFormula(PricingFormula):
            formula_id = "max_price"
            name = "Max"

            def _compute(self, prices):
                return max(prices), f"max{tuple(str(p) for p in prices)}"

        registry = PricingFormulaRegistry()
        registry.register(MaxFormula())

        assert registry.has("max_price")
        assert registry.calculate("max_price", [1, 3, 2]).result == Decimal("3.0000")

    def test_registries_are_independent(self):
        first = build_default_registry()
        second = PricingFormulaRegistry()
        assert first.has("simple_average")
        assert not second.has("simple_average")


class TestFormulaProperties:
    @given(a=prices_strategy, b=prices_strategy, c=prices_strategy)
    @settings(max_examples=200)
    def test_simple_average_between_min_and_max(self, a, b, c):
        result = build_default_registry().calculate("simple_average", [a, b, c]).result
        assert min(a, b, c) <= result <= max(a, b, c)

    @given(a=prices_strategy, b=prices_strategy, c=prices_strategy)
    @settings(max_examples=200)
    def test_permutation_invariant(self, a, b, c):
        registry = build_default_registry()
        assert (
            registry.calculate("simple_average", [a, b, c]).result
            == registry.calculate("simple_average", [c, a, b]).result
        )

    @given(p=prices_strategy)
    def test_quarterly_on_equal_prices_is_buffered_price(self, p):
        result = build_default_registry().calculate("quarterly_standard", [p, p, p]).result
        expected = (p * QUARTERLY_COMPLIANCE_BUFFER).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
        assert result == expected

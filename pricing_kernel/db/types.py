"""
Module: pricing_kernel.db.types
Responsibility: Decimal conversion and the sanctioned rounding helpers for
    prices and monetary values.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for prices or standard values.  All amounts are Decimal.
    - round_money() is the ONLY sanctioned rounding function.  Rounding is a
      presentation concern; computations carry full Decimal precision.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

# Rounding constants
PRICE_DECIMAL_PLACES = 4
MONEY_DECIMAL_PLACES = 2
PERCENT_DECIMAL_PLACES = 2
KG_DECIMAL_PLACES = 4
DEFAULT_ROUNDING = ROUND_HALF_UP

_THOUSAND = Decimal("1000")


def to_decimal(value: Any) -> Decimal:
    """
    Convert a numeric input to Decimal without going through binary float.

    Floats are converted via their shortest repr so 0.1 becomes Decimal("0.1").
    Booleans are rejected.

    Raises:
        ValueError: If value cannot be converted.
    """
    if isinstance(value, bool):
        raise ValueError(f"Boolean is not a numeric value: {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(repr(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a numeric value: {value!r}") from exc
    raise ValueError(f"Not a numeric value: {value!r}")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a Decimal to the given number of places (ROUND_HALF_UP).

    Every rounding of prices, values and percentages goes through here.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places > 0 else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def per_mt_to_per_kg(price_per_mt: Decimal) -> Decimal:
    """Convert a USD/metric-ton price to USD/kg (1 MT = 1000 kg)."""
    return price_per_mt / _THOUSAND

"""
Configuration schema (``pricing_config.schema``).

Frozen dataclasses describing the engine's settings.  Instances are built by
``pricing_config.loader`` and never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class PricingSettings:
    """
    Runtime settings for the pricing engine.

    Contract:
        supported_materials is non-empty; default_formula is one of the
        built-in formula ids; derivation_tolerance is a non-negative Decimal;
        lock_timeout_ms is a positive number of milliseconds.
    """

    database_url: str = "sqlite:///pricing.db"
    supported_materials: tuple[str, ...] = ("aluminum", "steel", "stainless_steel")
    default_index_source: str = "SHSPI"
    default_formula: str = "3_month_rolling"
    derivation_tolerance: Decimal = Decimal("0.0001")
    log_level: str = "INFO"
    pool_size: int = 20
    # Max wait for a row or table lock before the operation fails
    lock_timeout_ms: int = 5000
    echo_sql: bool = False
    source_path: str | None = field(default=None, compare=False)
    checksum: str = field(default="", compare=False)

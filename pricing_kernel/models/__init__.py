"""ORM models for the pricing kernel."""

from pricing_kernel.models.material_index import MaterialIndexEntry
from pricing_kernel.models.part import Part
from pricing_kernel.models.part_price_history import PartPriceHistory
from pricing_kernel.models.pricing_adjustment import (
    VALID_TRANSITIONS,
    AdjustmentStatus,
    PricingAdjustment,
    can_transition,
)

__all__ = [
    "MaterialIndexEntry",
    "PricingAdjustment",
    "AdjustmentStatus",
    "VALID_TRANSITIONS",
    "can_transition",
    "Part",
    "PartPriceHistory",
]

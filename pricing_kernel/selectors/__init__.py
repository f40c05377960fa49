"""Read-only selectors returning DTOs."""

from pricing_kernel.selectors.adjustment_selector import AdjustmentDTO, AdjustmentSelector
from pricing_kernel.selectors.material_index_selector import IndexEntryDTO, MaterialIndexSelector
from pricing_kernel.selectors.price_history_selector import PriceHistoryDTO, PriceHistorySelector

__all__ = [
    "AdjustmentDTO",
    "AdjustmentSelector",
    "IndexEntryDTO",
    "MaterialIndexSelector",
    "PriceHistoryDTO",
    "PriceHistorySelector",
]

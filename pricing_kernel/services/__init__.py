"""Kernel services: index ledger writes, parts catalog, adjustment lifecycle."""

from pricing_kernel.services.adjustment_lifecycle import AdjustmentLifecycleManager
from pricing_kernel.services.material_index_service import (
    BatchImportResult,
    MaterialIndexService,
)
from pricing_kernel.services.parts_catalog import PartsCatalog, SqlPartsCatalog

__all__ = [
    "AdjustmentLifecycleManager",
    "BatchImportResult",
    "MaterialIndexService",
    "PartsCatalog",
    "SqlPartsCatalog",
]

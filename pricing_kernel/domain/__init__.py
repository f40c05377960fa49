"""Pure domain core: timeline, formulas, impact, reporting."""

from pricing_kernel.domain.adjustment import (
    DEFAULT_MATERIALS,
    AdjustmentDraft,
    ApplyResult,
    material_label,
)
from pricing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from pricing_kernel.domain.formulas import (
    QUARTERLY_COMPLIANCE_BUFFER,
    FormulaResult,
    PricingFormula,
    PricingFormulaRegistry,
    QuarterlyStandardFormula,
    SimpleAverageFormula,
    build_default_registry,
)
from pricing_kernel.domain.impact import (
    ImpactReport,
    ImpactSummary,
    PartPriceImpact,
    PartSnapshot,
    PriceImpactCalculator,
)
from pricing_kernel.domain.months import MonthKey
from pricing_kernel.domain.reporting import AdjustmentReport, summarize_adjustments
from pricing_kernel.domain.timeline import (
    PricingTimelineCalculator,
    Timeline,
    TimelineOverride,
    quarter_months,
    validate_ordering,
)

__all__ = [
    "AdjustmentDraft",
    "ApplyResult",
    "DEFAULT_MATERIALS",
    "material_label",
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "FormulaResult",
    "PricingFormula",
    "PricingFormulaRegistry",
    "SimpleAverageFormula",
    "QuarterlyStandardFormula",
    "QUARTERLY_COMPLIANCE_BUFFER",
    "build_default_registry",
    "PartSnapshot",
    "PartPriceImpact",
    "ImpactSummary",
    "ImpactReport",
    "PriceImpactCalculator",
    "MonthKey",
    "AdjustmentReport",
    "summarize_adjustments",
    "PricingTimelineCalculator",
    "Timeline",
    "TimelineOverride",
    "quarter_months",
    "validate_ordering",
]

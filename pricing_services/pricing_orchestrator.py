"""
pricing_services.pricing_orchestrator -- DI container for kernel services.

Responsibility:
    Creates every kernel service and selector for one session exactly once
    and wires them together.  No kernel service creates another service
    internally; the orchestrator is the single point of dependency
    injection.

Architecture position:
    Services -- sits above ``pricing_kernel`` and below the API facade and
    CLI.  Settings arrive as a ``PricingSettings`` value; the kernel only
    ever sees plain values.

Invariants enforced:
    - Single-instance lifecycle: one registry, catalog, clock and service
      of each kind per orchestrator.
    - All services share the same Session and Clock instances.

Non-goals:
    - Does NOT manage transaction boundaries (caller's responsibility).

Usage:
    with session_scope(factory) as session:
        orchestrator = PricingOrchestrator(session, settings, clock=clock)
        orchestrator.lifecycle.apply(adjustment_id, actor_id)
"""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy.orm import Session

from pricing_config.schema import PricingSettings
from pricing_kernel.domain.clock import Clock, SystemClock
from pricing_kernel.domain.formulas import PricingFormulaRegistry, build_default_registry
from pricing_kernel.domain.impact import PriceImpactCalculator
from pricing_kernel.domain.timeline import PricingTimelineCalculator
from pricing_kernel.selectors.adjustment_selector import AdjustmentSelector
from pricing_kernel.selectors.material_index_selector import MaterialIndexSelector
from pricing_kernel.selectors.price_history_selector import PriceHistorySelector
from pricing_kernel.services.adjustment_lifecycle import AdjustmentLifecycleManager
from pricing_kernel.services.material_index_service import MaterialIndexService
from pricing_kernel.services.parts_catalog import PartsCatalog, SqlPartsCatalog

CatalogFactory = Callable[[Session], PartsCatalog]


class PricingOrchestrator:
    """Central factory for pricing kernel services.

    Contract:
        Receives a Session and PricingSettings, plus an optional Clock,
        formula registry and parts-catalog factory.  Exposes the wired
        services and selectors as public attributes.
    """

    def __init__(
        self,
        session: Session,
        settings: PricingSettings,
        clock: Clock | None = None,
        formula_registry: PricingFormulaRegistry | None = None,
        catalog_factory: CatalogFactory | None = None,
    ) -> None:
        self._session = session
        self.settings = settings
        self.clock = clock or SystemClock()
        self.formula_registry = formula_registry or build_default_registry()

        # Pure calculators
        self.timeline_calculator = PricingTimelineCalculator(settings.default_formula)
        self.impact_calculator = PriceImpactCalculator()

        # Read side
        self.index_selector = MaterialIndexSelector(session)
        self.adjustment_selector = AdjustmentSelector(session)
        self.history_selector = PriceHistorySelector(session)

        # Catalog collaborator (shares the session, so it shares the transaction)
        self.parts_catalog = (catalog_factory or SqlPartsCatalog)(session)

        # Write side
        self.index_service = MaterialIndexService(
            session,
            self.formula_registry,
            supported_materials=settings.supported_materials,
            default_index_source=settings.default_index_source,
        )
        self.lifecycle = AdjustmentLifecycleManager(
            session,
            self.formula_registry,
            parts_catalog=self.parts_catalog,
            clock=self.clock,
            supported_materials=settings.supported_materials,
            default_index_source=settings.default_index_source,
            derivation_tolerance=settings.derivation_tolerance,
            impact_calculator=self.impact_calculator,
        )

    @property
    def session(self) -> Session:
        return self._session

"""
AdjustmentLifecycleManager -- Create, apply and cancel pricing adjustments.

Responsibility:
    Owns the draft -> applied / draft -> cancelled state machine.  Creating a
    draft re-derives the new average price from recorded index data; applying
    it rewrites the standard value of every affected part and records one
    price-history row per part, all or nothing.

Architecture position:
    Kernel > Services -- imperative shell.  Consumes MaterialIndexSelector,
    PricingFormulaRegistry, PriceImpactCalculator and a PartsCatalog.

Invariants enforced:
    - Server-side re-derivation: new_average_price is recomputed from the
      canonical index entries at create time and again at apply time.
    - Idempotent apply: the adjustment row is locked (SELECT ... FOR UPDATE)
      and the status change is a compare-and-set
      ``UPDATE ... WHERE status = 'draft'``; a second apply always fails with
      AlreadyAppliedError and changes nothing.
    - Atomic apply: part updates, history rows and the status change happen
      inside one SAVEPOINT.  On any failure the savepoint is rolled back and
      the adjustment stays draft.
    - Fresh reads: the impact applied is computed from the live catalog
      rows read under lock, never from a stored preview.

Failure modes:
    - Validation (nothing written): InvalidAdjustmentError,
      UnsupportedMaterialError, InvalidTimelineError, FormulaNotFoundError,
      MissingIndexDataError.
    - Conflict: AlreadyAppliedError, StaleAdjustmentError.
    - ApplyFailedError (retriable): lock wait timed out, or a catalog or
      history write failed; rolled back.
    - AdjustmentNotFoundError: unknown id.

Audit relevance:
    applied_by_id / applied_at, parts_affected, total_cost_impact and the
    part_price_history rows are written in the same transaction, so an
    applied adjustment always has a complete, matching trail.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from pricing_kernel.db.types import to_decimal
from pricing_kernel.domain.adjustment import DEFAULT_MATERIALS, AdjustmentDraft, ApplyResult
from pricing_kernel.domain.clock import Clock, SystemClock
from pricing_kernel.domain.formulas import FormulaResult, PricingFormulaRegistry
from pricing_kernel.domain.impact import (
    ImpactReport,
    PartSnapshot,
    PriceImpactCalculator,
    price_change_percent,
)
from pricing_kernel.domain.months import MonthKey
from pricing_kernel.domain.timeline import DATA_MONTH_COUNT, TimelineOverride, validate_ordering
from pricing_kernel.exceptions import (
    AdjustmentNotFoundError,
    AlreadyAppliedError,
    ApplyFailedError,
    InvalidAdjustmentError,
    MissingIndexDataError,
    StaleAdjustmentError,
    UnsupportedMaterialError,
)
from pricing_kernel.logging_config import LogContext, get_logger
from pricing_kernel.models.part_price_history import PartPriceHistory
from pricing_kernel.models.pricing_adjustment import (
    AdjustmentStatus,
    PricingAdjustment,
    can_transition,
)
from pricing_kernel.selectors.material_index_selector import MaterialIndexSelector
from pricing_kernel.services.material_index_service import DEFAULT_INDEX_SOURCE
from pricing_kernel.services.parts_catalog import PartsCatalog, SqlPartsCatalog

logger = get_logger("services.adjustment_lifecycle")

DEFAULT_DERIVATION_TOLERANCE = Decimal("0.0001")

_NAME_MAX_LENGTH = 100


class AdjustmentLifecycleManager:
    """
    Lifecycle of a PricingAdjustment.

    Contract:
        create() -> draft; apply() draft -> applied; cancel() draft ->
        cancelled.  Terminal states are never left.

    Guarantees:
        - Flushes within the caller's transaction; never commits.
        - apply() either fully succeeds or leaves catalog, history and the
          adjustment exactly as they were.

    Non-goals:
        - Does not approve adjustments; any actor may apply a draft.
    """

    def __init__(
        self,
        session: Session,
        formula_registry: PricingFormulaRegistry,
        parts_catalog: PartsCatalog | None = None,
        clock: Clock | None = None,
        supported_materials: Sequence[str] = DEFAULT_MATERIALS,
        default_index_source: str = DEFAULT_INDEX_SOURCE,
        derivation_tolerance: Decimal = DEFAULT_DERIVATION_TOLERANCE,
        impact_calculator: PriceImpactCalculator | None = None,
    ):
        self._session = session
        self._registry = formula_registry
        self._catalog = parts_catalog or SqlPartsCatalog(session)
        self._clock = clock or SystemClock()
        self._supported = tuple(supported_materials)
        self._default_source = default_index_source
        self._tolerance = derivation_tolerance
        self._impact = impact_calculator or PriceImpactCalculator()
        self._index = MaterialIndexSelector(session)

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def create(self, draft: AdjustmentDraft, actor_id: UUID) -> PricingAdjustment:
        """
        Validate a draft and persist it with status ``draft``.

        Every check runs before anything is added to the session.
        """
        name = (draft.name or "").strip()
        if not name:
            raise InvalidAdjustmentError("name", "Name is required")
        if len(name) > _NAME_MAX_LENGTH:
            raise InvalidAdjustmentError(
                "name",
                f"Name must be at most {_NAME_MAX_LENGTH} characters",
                expected=_NAME_MAX_LENGTH,
                actual=len(name),
            )

        if draft.material not in self._supported:
            raise UnsupportedMaterialError(str(draft.material), list(self._supported))

        timeline = TimelineOverride.from_strings(
            draft.data_months, draft.communication_month, draft.effective_month
        )
        validate_ordering(
            timeline.data_months, timeline.communication_month, timeline.effective_month
        )

        formula = self._registry.get(draft.formula)
        claimed_new = self._decimal_field("new_average_price", draft.new_average_price)
        source = (draft.index_source or "").strip() or self._default_source
        data_months = [str(m) for m in timeline.data_months]

        derived = formula.calculate(
            self._index.prices_for_months(draft.material, data_months, source)
        )
        if abs(derived.result - claimed_new) > self._tolerance:
            raise StaleAdjustmentError(
                field="new_average_price",
                expected=str(derived.result),
                actual=str(claimed_new),
            )

        if draft.old_average_price is not None:
            old_price = self._decimal_field("old_average_price", draft.old_average_price)
        else:
            old_price = self._derive_previous_average(
                draft.material, timeline.data_months[0], draft.formula, source
            )

        new_price = derived.result
        adjustment = PricingAdjustment(
            name=name,
            material=draft.material,
            adjustment_date=draft.adjustment_date or self._clock.today(),
            data_months=data_months,
            communication_month=str(timeline.communication_month),
            effective_month=str(timeline.effective_month),
            index_source=source,
            old_average_price=old_price,
            new_average_price=new_price,
            price_change_usd=new_price - old_price,
            price_change_percent=price_change_percent(old_price, new_price),
            formula=draft.formula,
            formula_breakdown=derived.breakdown,
            status=AdjustmentStatus.DRAFT.value,
            parts_affected=0,
            total_cost_impact=Decimal("0"),
            created_by_id=actor_id,
        )
        self._session.add(adjustment)
        self._session.flush()

        logger.info(
            "adjustment_created",
            extra={
                "adjustment_id": str(adjustment.id),
                "material": adjustment.material,
                "formula": adjustment.formula,
                "data_months": data_months,
                "old_average_price": str(old_price),
                "new_average_price": str(new_price),
                "effective_month": adjustment.effective_month,
            },
        )
        return adjustment

    def _decimal_field(self, field_name: str, value: Any) -> Decimal:
        try:
            number = to_decimal(value)
        except ValueError:
            raise InvalidAdjustmentError(field_name, "Must be a number", actual=value) from None
        if not number.is_finite() or number <= 0:
            raise InvalidAdjustmentError(
                field_name, "Must be a positive number", expected="> 0", actual=str(number)
            )
        return number

    def _derive_previous_average(
        self,
        material: str,
        first_data_month: MonthKey,
        formula_id: str,
        index_source: str,
    ) -> Decimal:
        """Same formula over the three months before the first data month."""
        months = [
            str(first_data_month.add_months(-offset))
            for offset in range(DATA_MONTH_COUNT, 0, -1)
        ]
        try:
            prices = self._index.prices_for_months(material, months, index_source)
        except MissingIndexDataError as exc:
            raise InvalidAdjustmentError(
                "old_average_price",
                f"Not supplied and no index data for {exc.month} to derive it",
                expected=months,
            ) from exc
        return self._registry.calculate(formula_id, prices).result

    # ------------------------------------------------------------------
    # apply
    # ------------------------------------------------------------------

    def apply(self, adjustment_id: UUID, actor_id: UUID) -> ApplyResult:
        """
        Commit a draft adjustment to the parts catalog.

        Steps:
            1. Lock the adjustment row; reject anything but draft.  A lock
               wait beyond lock_timeout_ms fails with ApplyFailedError.
            2. Re-derive new_average_price from current index data.
            3. In a SAVEPOINT: lock and read the material's parts, compute the
               impact, update each part, insert history rows, then flip the
               status with a compare-and-set.

        Raises:
            AdjustmentNotFoundError, AlreadyAppliedError,
            StaleAdjustmentError, ApplyFailedError
        """
        try:
            adjustment = self._load_for_update(adjustment_id)
        except DBAPIError as exc:
            # lock_timeout expired or the connection dropped while waiting
            logger.error(
                "apply_rolled_back",
                extra={"adjustment_id": str(adjustment_id), "stage": "lock_adjustment"},
                exc_info=True,
            )
            raise ApplyFailedError(
                str(adjustment_id), str(exc.orig), stage="lock_adjustment"
            ) from exc

        with LogContext.bind(
            adjustment_id=str(adjustment.id),
            actor_id=str(actor_id),
            material=adjustment.material,
        ):
            if not can_transition(adjustment.status, AdjustmentStatus.APPLIED):
                logger.warning(
                    "apply_rejected_not_draft",
                    extra={"status": adjustment.status_enum.value},
                )
                raise AlreadyAppliedError(str(adjustment.id), adjustment.status_enum.value)

            self.verify_derivation(adjustment)

            old_price = adjustment.old_average_price
            new_price = adjustment.new_average_price
            effective_date = MonthKey.parse(adjustment.effective_month).first_day()
            now = self._clock.now()
            stage = "load_parts"

            try:
                with self._session.begin_nested():
                    parts = self._catalog.get_parts_by_material(adjustment.material, lock=True)
                    report = self._impact.compute_impact(
                        [PartSnapshot.from_part(p) for p in parts], old_price, new_price
                    )
                    delta_per_kg = report.summary.price_change_per_kg

                    stage = "update_parts"
                    for impact in report.impacts:
                        self._catalog.update_standard_value(
                            impact.part_id,
                            impact.new_standard_value,
                            impact.new_material_price,
                            actor_id=actor_id,
                        )

                    stage = "record_history"
                    for impact in report.impacts:
                        self._session.add(
                            PartPriceHistory(
                                part_id=impact.part_id,
                                adjustment_id=adjustment.id,
                                old_material_price=impact.old_material_price,
                                new_material_price=impact.new_material_price,
                                old_standard_value=impact.old_standard_value,
                                new_standard_value=impact.new_standard_value,
                                material_weight_kg=impact.material_weight_kg,
                                price_adjustment_per_kg=delta_per_kg,
                                effective_date=effective_date,
                                created_by_id=actor_id,
                            )
                        )
                    self._session.flush()

                    stage = "mark_applied"
                    outcome = self._session.execute(
                        update(PricingAdjustment)
                        .where(
                            PricingAdjustment.id == adjustment.id,
                            PricingAdjustment.status == AdjustmentStatus.DRAFT.value,
                        )
                        .values(
                            status=AdjustmentStatus.APPLIED.value,
                            applied_at=now,
                            applied_by_id=actor_id,
                            parts_affected=report.summary.parts_affected,
                            total_cost_impact=report.summary.total_cost_impact,
                            updated_by_id=actor_id,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if outcome.rowcount != 1:
                        raise AlreadyAppliedError(str(adjustment.id), "applied")
            except AlreadyAppliedError:
                logger.warning("apply_lost_status_race")
                raise
            except Exception as exc:
                logger.error(
                    "apply_rolled_back",
                    extra={"stage": stage},
                    exc_info=True,
                )
                raise ApplyFailedError(str(adjustment.id), str(exc), stage=stage) from exc

            self._session.refresh(adjustment)

            result = ApplyResult(
                adjustment_id=adjustment.id,
                parts_updated=report.summary.parts_affected,
                total_cost_impact=report.summary.total_cost_impact,
                price_changes_recorded=len(report.impacts),
            )
            logger.info(
                "adjustment_applied",
                extra={
                    "parts_updated": result.parts_updated,
                    "total_parts": report.summary.total_parts,
                    "total_cost_impact": str(result.total_cost_impact),
                    "effective_date": str(effective_date),
                },
            )
            return result

    def verify_derivation(self, adjustment: PricingAdjustment) -> FormulaResult:
        """
        Recompute new_average_price from the canonical index entries.

        Raises:
            StaleAdjustmentError: a correction moved the result beyond the
                tolerance.
        """
        try:
            prices = self._index.prices_for_months(
                adjustment.material, list(adjustment.data_months), adjustment.index_source
            )
        except MissingIndexDataError as exc:
            raise StaleAdjustmentError(
                field="data_months",
                expected=f"index data for {exc.month}",
                actual=None,
                adjustment_id=str(adjustment.id),
            ) from exc

        derived = self._registry.calculate(adjustment.formula, prices)
        if abs(derived.result - adjustment.new_average_price) > self._tolerance:
            logger.warning(
                "adjustment_derivation_stale",
                extra={
                    "adjustment_id": str(adjustment.id),
                    "stored": str(adjustment.new_average_price),
                    "recomputed": str(derived.result),
                },
            )
            raise StaleAdjustmentError(
                field="new_average_price",
                expected=str(derived.result),
                actual=str(adjustment.new_average_price),
                adjustment_id=str(adjustment.id),
            )
        return derived

    # ------------------------------------------------------------------
    # cancel
    # ------------------------------------------------------------------

    def cancel(
        self,
        adjustment_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> PricingAdjustment:
        """
        Move a draft to ``cancelled``.  The parts catalog is not touched.

        Raises:
            AdjustmentNotFoundError, AlreadyAppliedError
        """
        adjustment = self._load_for_update(adjustment_id)
        if not can_transition(adjustment.status, AdjustmentStatus.CANCELLED):
            raise AlreadyAppliedError(
                str(adjustment.id), adjustment.status_enum.value, operation="cancel"
            )

        adjustment.status = AdjustmentStatus.CANCELLED.value
        adjustment.cancelled_at = self._clock.now()
        adjustment.cancelled_by_id = actor_id
        adjustment.cancel_reason = reason
        adjustment.record_update_by(actor_id)
        self._session.flush()

        logger.info(
            "adjustment_cancelled",
            extra={
                "adjustment_id": str(adjustment.id),
                "actor_id": str(actor_id),
                "reason": reason,
            },
        )
        return adjustment

    # ------------------------------------------------------------------
    # preview
    # ------------------------------------------------------------------

    def preview(self, adjustment_id: UUID) -> ImpactReport:
        """Impact of an adjustment against the live catalog; writes nothing."""
        adjustment = self._session.get(PricingAdjustment, adjustment_id)
        if adjustment is None:
            raise AdjustmentNotFoundError(str(adjustment_id))
        return self.preview_impact(
            adjustment.material,
            adjustment.old_average_price,
            adjustment.new_average_price,
        )

    def preview_impact(self, material: str, old_price: Any, new_price: Any) -> ImpactReport:
        """Impact of moving ``material`` from old_price to new_price (USD/MT)."""
        if material not in self._supported:
            raise UnsupportedMaterialError(str(material), list(self._supported))
        old = self._decimal_field("old_average_price", old_price)
        new = self._decimal_field("new_average_price", new_price)
        parts = self._catalog.get_parts_by_material(material)
        return self._impact.compute_impact([PartSnapshot.from_part(p) for p in parts], old, new)

    def _load_for_update(self, adjustment_id: UUID) -> PricingAdjustment:
        adjustment = self._session.execute(
            select(PricingAdjustment)
            .where(PricingAdjustment.id == adjustment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if adjustment is None:
            raise AdjustmentNotFoundError(str(adjustment_id))
        return adjustment

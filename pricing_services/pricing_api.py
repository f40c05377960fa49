"""
MaterialPricingAPI -- JSON-ready facade over the pricing kernel.

Responsibility
--------------
The outer surface used by a web layer, the CLI or a notebook: plain dicts
and strings in, plain dicts out.  Every call builds a PricingOrchestrator on
a fresh session and owns its transaction (commit on success, rollback on
any error).

Response envelope
-----------------
Success::

    {"success": True, "data": {...}}

Kernel error (any ``PricingKernelError``)::

    {"success": False,
     "error": {"code", "message", "details", "retriable"},
     "status": 400 | 404 | 409 | 503}

Failure modes
-------------
* ``PricingKernelError``  -> error envelope; transaction rolled back.
* Anything else (driver failures, programming errors)  -> rolled back and
  re-raised unchanged.

Audit relevance
---------------
Each call logs ``api_request_failed`` with the error code when it fails;
the kernel services log the successful state changes themselves.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from pricing_config.schema import PricingSettings
from pricing_kernel.db.engine import session_scope
from pricing_kernel.domain.adjustment import AdjustmentDraft, material_label
from pricing_kernel.domain.clock import Clock, SystemClock
from pricing_kernel.domain.formulas import PricingFormulaRegistry, build_default_registry
from pricing_kernel.domain.reporting import summarize_adjustments
from pricing_kernel.domain.timeline import (
    PricingTimelineCalculator,
    TimelineOverride,
    quarter_months,
)
from pricing_kernel.exceptions import (
    AdjustmentNotFoundError,
    IndexEntryNotFoundError,
    InvalidAdjustmentError,
    InvalidIndexEntryError,
    InvalidTimelineError,
    PricingKernelError,
    UnsupportedMaterialError,
)
from pricing_kernel.logging_config import LogContext, get_logger
from pricing_kernel.models.pricing_adjustment import AdjustmentStatus
from pricing_services.pricing_orchestrator import CatalogFactory, PricingOrchestrator

logger = get_logger("services.pricing_api")

_REQUIRED_DRAFT_FIELDS = (
    "name",
    "material",
    "data_months",
    "communication_month",
    "effective_month",
    "new_average_price",
)


def _parse_uuid(value: Any, not_found: Callable[[str], PricingKernelError]) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise not_found(str(value)) from None


def _optional_date(field: str, value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise InvalidIndexEntryError(
            field=field, reason="Expected an ISO date (YYYY-MM-DD)", actual=value
        ) from None


def _parse_year(value: Any) -> int:
    if isinstance(value, bool):
        year = None
    elif isinstance(value, int):
        year = value
    else:
        text = str(value).strip()
        year = int(text) if text.isdigit() else None
    if year is None or not 1 <= year <= 9999:
        raise InvalidTimelineError(
            field="year",
            reason="Expected a calendar year between 1 and 9999",
            actual=value,
        )
    return year


def _draft_from_payload(payload: dict[str, Any]) -> AdjustmentDraft:
    if not isinstance(payload, dict):
        raise InvalidAdjustmentError("payload", "Expected an object")
    for name in _REQUIRED_DRAFT_FIELDS:
        if payload.get(name) in (None, ""):
            raise InvalidAdjustmentError(name, "Field is required")

    data_months = payload["data_months"]
    if isinstance(data_months, str) or not isinstance(data_months, (list, tuple)):
        raise InvalidAdjustmentError(
            "data_months", "Expected a list of YYYY-MM months", actual=data_months
        )

    adjustment_date = payload.get("adjustment_date")
    if adjustment_date is not None and not isinstance(adjustment_date, date):
        try:
            adjustment_date = date.fromisoformat(str(adjustment_date))
        except ValueError:
            raise InvalidAdjustmentError(
                "adjustment_date", "Expected an ISO date (YYYY-MM-DD)", actual=adjustment_date
            ) from None

    return AdjustmentDraft(
        name=str(payload["name"]),
        material=payload["material"],
        data_months=tuple(data_months),
        communication_month=payload["communication_month"],
        effective_month=payload["effective_month"],
        new_average_price=payload["new_average_price"],
        formula=payload.get("formula") or "3_month_rolling",
        old_average_price=payload.get("old_average_price"),
        index_source=payload.get("index_source"),
        adjustment_date=adjustment_date,
    )


class MaterialPricingAPI:
    """
    Facade exposing the pricing engine as dict-in / dict-out calls.

    Contract:
        Mutating calls take an ``actor_id``; the facade never invents one.
        Decimal values leave as strings.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: PricingSettings | None = None,
        clock: Clock | None = None,
        formula_registry: PricingFormulaRegistry | None = None,
        catalog_factory: CatalogFactory | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or PricingSettings()
        self._clock = clock or SystemClock()
        self._registry = formula_registry or build_default_registry()
        self._catalog_factory = catalog_factory

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _error(self, exc: PricingKernelError) -> dict[str, Any]:
        logger.warning(
            "api_request_failed",
            extra={
                "error_code": exc.code,
                "status": exc.status,
                "retriable": exc.retriable,
                "details": exc.details(),
            },
        )
        return {"success": False, "error": exc.to_dict(), "status": exc.status}

    def _call(self, operation: str, fn: Callable[[], Any]) -> dict[str, Any]:
        """Run a call that needs no database."""
        with LogContext.bind(operation=operation):
            try:
                return {"success": True, "data": fn()}
            except PricingKernelError as exc:
                return self._error(exc)

    def _run(
        self,
        operation: str,
        fn: Callable[[PricingOrchestrator], Any],
    ) -> dict[str, Any]:
        """Run ``fn`` inside its own transaction."""
        with LogContext.bind(operation=operation):
            try:
                with session_scope(self._session_factory) as session:
                    orchestrator = PricingOrchestrator(
                        session,
                        self._settings,
                        clock=self._clock,
                        formula_registry=self._registry,
                        catalog_factory=self._catalog_factory,
                    )
                    data = fn(orchestrator)
                return {"success": True, "data": data}
            except PricingKernelError as exc:
                return self._error(exc)

    def _check_material(self, material: Any) -> str:
        if not isinstance(material, str) or material not in self._settings.supported_materials:
            raise UnsupportedMaterialError(
                str(material), list(self._settings.supported_materials)
            )
        return material

    # ------------------------------------------------------------------
    # Material index
    # ------------------------------------------------------------------

    def list_index_entries(
        self,
        material: str | None = None,
        start_date: Any = None,
        end_date: Any = None,
        index_source: str | None = None,
        include_superseded: bool = False,
    ) -> dict[str, Any]:
        def op(orch: PricingOrchestrator) -> Any:
            if material is not None:
                self._check_material(material)
            entries = orch.index_selector.list_entries(
                material=material,
                start_date=_optional_date("start_date", start_date),
                end_date=_optional_date("end_date", end_date),
                index_source=index_source,
                include_superseded=include_superseded,
            )
            return {"entries": [e.to_dict() for e in entries], "count": len(entries)}

        return self._run("list_index_entries", op)

    def add_index_entry(self, payload: dict[str, Any], actor_id: UUID) -> dict[str, Any]:
        def op(orch: PricingOrchestrator) -> Any:
            entry = orch.index_service.add_entry(
                material=payload.get("material"),
                price_usd_per_mt=payload.get("price_usd_per_mt"),
                price_date=payload.get("price_date"),
                actor_id=actor_id,
                index_source=payload.get("index_source"),
                data_period=payload.get("data_period"),
                fx_rate_cny_usd=payload.get("fx_rate_cny_usd"),
            )
            return entry.to_dict()

        return self._run("add_index_entry", op)

    def add_index_entries(
        self,
        payloads: list[dict[str, Any]],
        actor_id: UUID,
    ) -> dict[str, Any]:
        return self._run(
            "add_index_entries",
            lambda orch: orch.index_service.add_batch(payloads, actor_id).to_dict(),
        )

    def import_index_csv(
        self,
        path: str,
        actor_id: UUID,
        options: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return self._run(
            "import_index_csv",
            lambda orch: orch.index_service.import_csv(path, actor_id, options).to_dict(),
        )

    def correct_index_entry(
        self,
        entry_id: Any,
        payload: dict[str, Any],
        actor_id: UUID,
    ) -> dict[str, Any]:
        def op(orch: PricingOrchestrator) -> Any:
            entry = orch.index_service.record_correction(
                _parse_uuid(entry_id, IndexEntryNotFoundError),
                payload.get("price_usd_per_mt"),
                actor_id,
                fx_rate_cny_usd=payload.get("fx_rate_cny_usd"),
                data_period=payload.get("data_period"),
            )
            return entry.to_dict()

        return self._run("correct_index_entry", op)

    def latest_prices(self, index_source: str | None = None) -> dict[str, Any]:
        def op(orch: PricingOrchestrator) -> Any:
            latest = orch.index_selector.latest_prices(index_source)
            return {material: entry.to_dict() for material, entry in latest.items()}

        return self._run("latest_prices", op)

    # ------------------------------------------------------------------
    # Timeline and formulas
    # ------------------------------------------------------------------

    def get_timeline(
        self,
        reference_date: Any = None,
        override: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        def op() -> Any:
            if reference_date is None or reference_date == "":
                ref = self._clock.today()
            elif isinstance(reference_date, date):
                ref = reference_date
            else:
                try:
                    ref = date.fromisoformat(str(reference_date))
                except ValueError:
                    raise InvalidTimelineError(
                        field="reference_date",
                        reason="Expected an ISO date (YYYY-MM-DD)",
                        actual=reference_date,
                    ) from None

            parsed_override = None
            if override:
                parsed_override = TimelineOverride.from_strings(
                    override.get("data_months") or [],
                    override.get("communication_month"),
                    override.get("effective_month"),
                )
            calculator = PricingTimelineCalculator(self._settings.default_formula)
            return calculator.compute_timeline(ref, parsed_override).to_dict()

        return self._call("get_timeline", op)

    def calculate_price(self, formula: str, prices: list[Any]) -> dict[str, Any]:
        return self._call(
            "calculate_price",
            lambda: self._registry.calculate(formula, prices).to_dict(),
        )

    def calculate_average(
        self,
        material: str,
        months: list[str],
        formula: str | None = None,
        index_source: str | None = None,
    ) -> dict[str, Any]:
        def op(orch: PricingOrchestrator) -> Any:
            result = orch.index_service.calculate_average(
                material,
                months,
                formula or self._settings.default_formula,
                index_source=index_source,
            )
            data = result.to_dict()
            data["material"] = material
            data["months"] = list(months)
            return data

        return self._run("calculate_average", op)

    def list_formulas(self) -> dict[str, Any]:
        return self._call("list_formulas", lambda: {"formulas": self._registry.list_formulas()})

    def list_materials(self) -> dict[str, Any]:
        return self._call(
            "list_materials",
            lambda: {
                "materials": [
                    {"id": material, "label": material_label(material)}
                    for material in self._settings.supported_materials
                ]
            },
        )

    # ------------------------------------------------------------------
    # Impact
    # ------------------------------------------------------------------

    def preview_impact(self, material: str, old_price: Any, new_price: Any) -> dict[str, Any]:
        return self._run(
            "preview_impact",
            lambda orch: orch.lifecycle.preview_impact(material, old_price, new_price).to_dict(),
        )

    def preview_adjustment(self, adjustment_id: Any) -> dict[str, Any]:
        return self._run(
            "preview_adjustment",
            lambda orch: orch.lifecycle.preview(
                _parse_uuid(adjustment_id, AdjustmentNotFoundError)
            ).to_dict(),
        )

    # ------------------------------------------------------------------
    # Adjustments
    # ------------------------------------------------------------------

    def create_adjustment(self, payload: dict[str, Any], actor_id: UUID) -> dict[str, Any]:
        def op(orch: PricingOrchestrator) -> Any:
            adjustment = orch.lifecycle.create(_draft_from_payload(payload), actor_id)
            return orch.adjustment_selector.get(adjustment.id).to_dict()

        return self._run("create_adjustment", op)

    def apply_adjustment(self, adjustment_id: Any, actor_id: UUID) -> dict[str, Any]:
        def op(orch: PricingOrchestrator) -> Any:
            return orch.lifecycle.apply(
                _parse_uuid(adjustment_id, AdjustmentNotFoundError), actor_id
            ).to_dict()

        with LogContext.bind(actor_id=str(actor_id)):
            return self._run("apply_adjustment", op)

    def cancel_adjustment(
        self,
        adjustment_id: Any,
        actor_id: UUID,
        reason: str | None = None,
    ) -> dict[str, Any]:
        def op(orch: PricingOrchestrator) -> Any:
            adjustment = orch.lifecycle.cancel(
                _parse_uuid(adjustment_id, AdjustmentNotFoundError), actor_id, reason
            )
            return orch.adjustment_selector.get(adjustment.id).to_dict()

        return self._run("cancel_adjustment", op)

    def get_adjustment(self, adjustment_id: Any) -> dict[str, Any]:
        def op(orch: PricingOrchestrator) -> Any:
            key = _parse_uuid(adjustment_id, AdjustmentNotFoundError)
            adjustment = orch.adjustment_selector.get(key)
            if adjustment is None:
                raise AdjustmentNotFoundError(str(adjustment_id))
            data = adjustment.to_dict()
            data["price_history"] = [
                row.to_dict() for row in orch.history_selector.for_adjustment(key)
            ]
            return data

        return self._run("get_adjustment", op)

    def list_adjustments(
        self,
        status: str | None = None,
        material: str | None = None,
    ) -> dict[str, Any]:
        def op(orch: PricingOrchestrator) -> Any:
            if status is not None and status not in {s.value for s in AdjustmentStatus}:
                raise InvalidAdjustmentError(
                    "status",
                    "Unknown status",
                    expected=[s.value for s in AdjustmentStatus],
                    actual=status,
                )
            adjustments = orch.adjustment_selector.list_adjustments(
                status=status, material=material
            )
            return {
                "adjustments": [a.to_dict() for a in adjustments],
                "count": len(adjustments),
            }

        return self._run("list_adjustments", op)

    def quarterly_report(self, quarter: str, year: int) -> dict[str, Any]:
        """Summary of the adjustments applied with an effective month in the quarter."""

        def op(orch: PricingOrchestrator) -> Any:
            report_year = _parse_year(year)
            months = quarter_months(quarter, report_year)
            adjustments = orch.adjustment_selector.list_adjustments(
                status=AdjustmentStatus.APPLIED,
                effective_from=str(months[0]),
                effective_to=str(months[-1]),
            )
            report = summarize_adjustments(adjustments)
            return {
                "quarter": quarter.strip().upper(),
                "year": report_year,
                "months": [str(m) for m in months],
                "summary": report.to_dict(),
                "adjustments": [a.to_dict() for a in adjustments],
            }

        return self._run("quarterly_report", op)

"""
MaterialIndexService -- Write side of the monthly material price ledger.

Responsibility:
    Validates and records index entries (single, batch, CSV file) and
    corrections, and computes formula averages over recorded months.

Architecture position:
    Kernel > Services -- imperative shell.  Uses MaterialIndexSelector for
    canonical lookups and the injected PricingFormulaRegistry for averages.

Invariants enforced:
    - At most one canonical entry per (material, price_month, index_source):
      a plain add for an occupied key is rejected; changes go through
      record_correction(), which appends a superseding row.
    - Entries are never updated in place (see db/immutability.py).
    - Batch imports are per-record atomic: each record runs in its own
      SAVEPOINT, so one bad record never leaves a half-written row.

Failure modes:
    - UnsupportedMaterialError, InvalidIndexEntryError: bad payload.
    - DuplicateIndexEntryError: canonical entry already exists.
    - IndexEntryNotFoundError / StaleIndexEntryError: correction target
      unknown or already superseded.

Audit relevance:
    Every recorded entry carries created_by_id; corrections keep the full
    chain of superseded prices.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pricing_kernel.db.types import to_decimal
from pricing_kernel.domain.adjustment import DEFAULT_MATERIALS
from pricing_kernel.domain.formulas import FormulaResult, PricingFormulaRegistry
from pricing_kernel.domain.months import MonthKey
from pricing_kernel.exceptions import (
    DuplicateIndexEntryError,
    IndexEntryNotFoundError,
    InvalidIndexEntryError,
    PricingKernelError,
    StaleIndexEntryError,
    UnsupportedMaterialError,
)
from pricing_kernel.ingestion.csv_index_reader import CsvIndexReader
from pricing_kernel.logging_config import get_logger
from pricing_kernel.models.material_index import MaterialIndexEntry
from pricing_kernel.selectors.material_index_selector import (
    IndexEntryDTO,
    MaterialIndexSelector,
)

logger = get_logger("services.material_index")

DEFAULT_INDEX_SOURCE = "SHSPI"


@dataclass
class BatchImportResult:
    """Outcome of a batch import: what was created and what was rejected."""

    created: list[IndexEntryDTO] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.created)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": [entry.to_dict() for entry in self.created],
            "errors": list(self.errors),
            "summary": {
                "success_count": self.success_count,
                "error_count": self.error_count,
            },
        }


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise InvalidIndexEntryError(
        field="price_date",
        reason="Expected an ISO date (YYYY-MM-DD)",
        actual=value,
    )


def _parse_positive(field_name: str, value: Any, required: bool = True) -> Decimal | None:
    if value is None or value == "":
        if required:
            raise InvalidIndexEntryError(field=field_name, reason="Value is required")
        return None
    try:
        number = to_decimal(value)
    except ValueError:
        raise InvalidIndexEntryError(
            field=field_name, reason="Must be a number", actual=value
        ) from None
    if not number.is_finite() or number <= 0:
        raise InvalidIndexEntryError(
            field=field_name, reason="Must be a positive number", actual=str(number)
        )
    return number


class MaterialIndexService:
    """
    Records material index entries.

    Contract:
        Flushes within the caller's transaction; never commits.

    Non-goals:
        - Does not fetch prices from any external market-data feed.
    """

    def __init__(
        self,
        session: Session,
        formula_registry: PricingFormulaRegistry,
        supported_materials: Sequence[str] = DEFAULT_MATERIALS,
        default_index_source: str = DEFAULT_INDEX_SOURCE,
        csv_reader: CsvIndexReader | None = None,
    ):
        self._session = session
        self._registry = formula_registry
        self._supported = tuple(supported_materials)
        self._default_source = default_index_source
        self._csv_reader = csv_reader or CsvIndexReader()
        self._selector = MaterialIndexSelector(session)

    @property
    def supported_materials(self) -> tuple[str, ...]:
        return self._supported

    @property
    def default_index_source(self) -> str:
        return self._default_source

    def check_material(self, material: Any) -> str:
        """Return material if supported, else raise UnsupportedMaterialError."""
        if not isinstance(material, str) or material not in self._supported:
            raise UnsupportedMaterialError(str(material), list(self._supported))
        return material

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_entry(
        self,
        material: str,
        price_usd_per_mt: Any,
        price_date: Any,
        actor_id: UUID,
        index_source: str | None = None,
        data_period: str | None = None,
        fx_rate_cny_usd: Any = None,
    ) -> IndexEntryDTO:
        """
        Record a new canonical index entry.

        Raises:
            UnsupportedMaterialError, InvalidIndexEntryError,
            DuplicateIndexEntryError
        """
        material = self.check_material(material)
        price = _parse_positive("price_usd_per_mt", price_usd_per_mt)
        fx_rate = _parse_positive("fx_rate_cny_usd", fx_rate_cny_usd, required=False)
        parsed_date = _parse_date(price_date)
        month = MonthKey.from_date(parsed_date)
        source = (index_source or "").strip() or self._default_source

        existing = self._selector.canonical_entry(material, str(month), source)
        if existing is not None:
            raise DuplicateIndexEntryError(material, str(month), source, str(existing.id))

        entry = MaterialIndexEntry(
            material=material,
            price_usd_per_mt=price,
            price_date=parsed_date,
            price_month=str(month),
            index_source=source,
            data_period=data_period or month.label,
            fx_rate_cny_usd=fx_rate,
            created_by_id=actor_id,
        )
        try:
            with self._session.begin_nested():
                self._session.add(entry)
                self._session.flush()
        except IntegrityError as exc:
            # Another transaction committed the same key after our check.
            winner = self._selector.canonical_entry(material, str(month), source)
            logger.warning(
                "index_entry_duplicate_race",
                extra={
                    "material": material,
                    "price_month": str(month),
                    "index_source": source,
                },
            )
            raise DuplicateIndexEntryError(
                material,
                str(month),
                source,
                str(winner.id) if winner is not None else "",
            ) from exc

        logger.info(
            "index_entry_recorded",
            extra={
                "entry_id": str(entry.id),
                "material": material,
                "price_month": str(month),
                "index_source": source,
                "price_usd_per_mt": str(price),
            },
        )
        return self._selector.get(entry.id)

    def add_batch(
        self,
        records: Iterable[dict[str, Any]],
        actor_id: UUID,
    ) -> BatchImportResult:
        """
        Record many entries, each in its own SAVEPOINT.

        Rejected records are reported in ``errors`` with their position,
        error code and message; accepted records stay recorded.
        """
        records = list(records)
        if not records:
            raise InvalidIndexEntryError(field="records", reason="Batch is empty")

        result = BatchImportResult()
        for position, record in enumerate(records):
            try:
                with self._session.begin_nested():
                    entry = self.add_entry(
                        material=record.get("material"),
                        price_usd_per_mt=record.get("price_usd_per_mt"),
                        price_date=record.get("price_date"),
                        actor_id=actor_id,
                        index_source=record.get("index_source"),
                        data_period=record.get("data_period"),
                        fx_rate_cny_usd=record.get("fx_rate_cny_usd"),
                    )
                result.created.append(entry)
            except PricingKernelError as exc:
                result.errors.append(
                    {
                        "index": position,
                        "material": record.get("material"),
                        "price_date": str(record.get("price_date")),
                        "code": exc.code,
                        "message": str(exc),
                    }
                )
            except IntegrityError as exc:
                result.errors.append(
                    {
                        "index": position,
                        "material": record.get("material"),
                        "price_date": str(record.get("price_date")),
                        "code": "INTEGRITY_ERROR",
                        "message": str(exc.orig),
                    }
                )

        logger.info(
            "index_batch_imported",
            extra={
                "record_count": len(records),
                "success_count": result.success_count,
                "error_count": result.error_count,
            },
        )
        return result

    def import_csv(
        self,
        path: Path | str,
        actor_id: UUID,
        options: dict[str, Any] | None = None,
    ) -> BatchImportResult:
        """Import an index CSV file through add_batch()."""
        rows = list(self._csv_reader.read(path, options))
        logger.info("index_csv_read", extra={"path": str(path), "row_count": len(rows)})
        return self.add_batch(rows, actor_id)

    def record_correction(
        self,
        entry_id: UUID,
        price_usd_per_mt: Any,
        actor_id: UUID,
        fx_rate_cny_usd: Any = None,
        data_period: str | None = None,
    ) -> IndexEntryDTO:
        """
        Supersede the canonical entry ``entry_id`` with a corrected price.

        Raises:
            IndexEntryNotFoundError: entry_id is unknown.
            StaleIndexEntryError: entry_id was already superseded.
            InvalidIndexEntryError: price is not a positive number.
        """
        original = self._session.execute(
            select(MaterialIndexEntry)
            .where(MaterialIndexEntry.id == entry_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if original is None:
            raise IndexEntryNotFoundError(str(entry_id))

        successor = self._selector.superseded_by(original.id)
        if successor is not None:
            raise StaleIndexEntryError(str(entry_id), str(successor))

        price = _parse_positive("price_usd_per_mt", price_usd_per_mt)
        fx_rate = _parse_positive("fx_rate_cny_usd", fx_rate_cny_usd, required=False)

        correction = MaterialIndexEntry(
            material=original.material,
            price_usd_per_mt=price,
            price_date=original.price_date,
            price_month=original.price_month,
            index_source=original.index_source,
            data_period=data_period or original.data_period,
            fx_rate_cny_usd=fx_rate if fx_rate is not None else original.fx_rate_cny_usd,
            supersedes_id=original.id,
            created_by_id=actor_id,
        )
        self._session.add(correction)
        self._session.flush()

        logger.info(
            "index_entry_corrected",
            extra={
                "entry_id": str(correction.id),
                "supersedes_id": str(original.id),
                "material": original.material,
                "price_month": original.price_month,
                "old_price_usd_per_mt": str(original.price_usd_per_mt),
                "price_usd_per_mt": str(price),
            },
        )
        return self._selector.get(correction.id)

    # ------------------------------------------------------------------
    # Derived reads
    # ------------------------------------------------------------------

    def calculate_average(
        self,
        material: str,
        months: Sequence[str],
        formula_id: str,
        index_source: str | None = None,
    ) -> FormulaResult:
        """
        Run a formula over the canonical prices of ``months``.

        Raises:
            UnsupportedMaterialError, InvalidTimelineError,
            MissingIndexDataError, FormulaNotFoundError,
            InvalidFormulaInputError
        """
        material = self.check_material(material)
        formula = self._registry.get(formula_id)
        keys = [str(MonthKey.parse(m, field=f"months[{i}]")) for i, m in enumerate(months)]
        prices = self._selector.prices_for_months(
            material, keys, index_source or self._default_source
        )
        return formula.calculate(prices)

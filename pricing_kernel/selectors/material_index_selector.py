"""
Module: pricing_kernel.selectors.material_index_selector
Responsibility: Read-only access to the material index ledger, resolving
    correction chains to the canonical price per (material, month, source).
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.

Invariants enforced:
    - Canonical = not superseded by any other entry.  Price lookups for
      pricing purposes only ever see canonical entries.
    - Read-only: no mutations performed.

Failure modes:
    - prices_for_months raises MissingIndexDataError naming the first month
      without a canonical entry.  Every other method returns None or an
      empty list on absence of data.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.orm import Session, aliased

from pricing_kernel.exceptions import MissingIndexDataError
from pricing_kernel.models.material_index import MaterialIndexEntry
from pricing_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class IndexEntryDTO:
    """Data transfer object for a material index entry."""

    id: UUID
    material: str
    price_usd_per_mt: Decimal
    price_date: date
    price_month: str
    index_source: str
    data_period: str | None
    fx_rate_cny_usd: Decimal | None
    supersedes_id: UUID | None
    created_at: datetime | None
    created_by_id: UUID

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "material": self.material,
            "price_usd_per_mt": str(self.price_usd_per_mt),
            "price_date": self.price_date.isoformat(),
            "price_month": self.price_month,
            "index_source": self.index_source,
            "data_period": self.data_period,
            "fx_rate_cny_usd": (
                str(self.fx_rate_cny_usd) if self.fx_rate_cny_usd is not None else None
            ),
            "supersedes_id": str(self.supersedes_id) if self.supersedes_id else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "created_by_id": str(self.created_by_id),
        }


def _not_superseded():
    """WHERE clause selecting canonical entries."""
    successor = aliased(MaterialIndexEntry)
    return ~exists().where(successor.supersedes_id == MaterialIndexEntry.id)


class MaterialIndexSelector(BaseSelector[MaterialIndexEntry]):
    """
    Selector for material index queries.

    Guarantees:
        - list_entries orders by price_date descending, newest first.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def _to_dto(self, entry: MaterialIndexEntry) -> IndexEntryDTO:
        return IndexEntryDTO(
            id=entry.id,
            material=entry.material,
            price_usd_per_mt=entry.price_usd_per_mt,
            price_date=entry.price_date,
            price_month=entry.price_month,
            index_source=entry.index_source,
            data_period=entry.data_period,
            fx_rate_cny_usd=entry.fx_rate_cny_usd,
            supersedes_id=entry.supersedes_id,
            created_at=entry.created_at,
            created_by_id=entry.created_by_id,
        )

    def get(self, entry_id: UUID) -> IndexEntryDTO | None:
        entry = self.session.get(MaterialIndexEntry, entry_id)
        return self._to_dto(entry) if entry is not None else None

    def superseded_by(self, entry_id: UUID) -> UUID | None:
        """Id of the entry that corrects entry_id, if any."""
        return self.session.execute(
            select(MaterialIndexEntry.id).where(MaterialIndexEntry.supersedes_id == entry_id)
        ).scalar_one_or_none()

    def list_entries(
        self,
        material: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        index_source: str | None = None,
        include_superseded: bool = False,
    ) -> list[IndexEntryDTO]:
        query = select(MaterialIndexEntry)
        if material is not None:
            query = query.where(MaterialIndexEntry.material == material)
        if start_date is not None:
            query = query.where(MaterialIndexEntry.price_date >= start_date)
        if end_date is not None:
            query = query.where(MaterialIndexEntry.price_date <= end_date)
        if index_source is not None:
            query = query.where(MaterialIndexEntry.index_source == index_source)
        if not include_superseded:
            query = query.where(_not_superseded())
        query = query.order_by(
            MaterialIndexEntry.price_date.desc(),
            MaterialIndexEntry.material,
            MaterialIndexEntry.created_at.desc(),
        )
        return [self._to_dto(e) for e in self.session.execute(query).scalars().all()]

    def canonical_entry(
        self,
        material: str,
        month: str,
        index_source: str,
    ) -> IndexEntryDTO | None:
        entry = self.session.execute(
            select(MaterialIndexEntry)
            .where(
                MaterialIndexEntry.material == material,
                MaterialIndexEntry.price_month == month,
                MaterialIndexEntry.index_source == index_source,
                _not_superseded(),
            )
            .order_by(MaterialIndexEntry.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        return self._to_dto(entry) if entry is not None else None

    def prices_for_months(
        self,
        material: str,
        months: Sequence[str],
        index_source: str,
    ) -> list[Decimal]:
        """
        Canonical USD/MT prices for each month, in the order given.

        Raises:
            MissingIndexDataError: for the first month without data.
        """
        prices = []
        for month in months:
            entry = self.canonical_entry(material, str(month), index_source)
            if entry is None:
                raise MissingIndexDataError(material, str(month), index_source)
            prices.append(entry.price_usd_per_mt)
        return prices

    def latest_prices(self, index_source: str | None = None) -> dict[str, IndexEntryDTO]:
        """Latest canonical entry per material, keyed by material."""
        query = select(MaterialIndexEntry).where(_not_superseded())
        if index_source is not None:
            query = query.where(MaterialIndexEntry.index_source == index_source)
        query = query.order_by(
            MaterialIndexEntry.material,
            MaterialIndexEntry.price_date.desc(),
            MaterialIndexEntry.created_at.desc(),
        )
        latest: dict[str, IndexEntryDTO] = {}
        for entry in self.session.execute(query).scalars():
            if entry.material not in latest:
                latest[entry.material] = self._to_dto(entry)
        return latest

    def average_for_months(
        self,
        material: str,
        months: Sequence[str],
        index_source: str,
    ) -> Decimal:
        """
        Unrounded arithmetic mean of the canonical prices of ``months``.

        Raises:
            MissingIndexDataError: for the first month without data.
        """
        prices = self.prices_for_months(material, months, index_source)
        if not prices:
            return Decimal("0")
        return sum(prices, Decimal("0")) / Decimal(len(prices))

"""
PartsCatalog -- The engine's view of the external parts catalog.

Responsibility:
    Reads the parts that contain a material and writes a part's new standard
    value and material price.  The apply path depends only on the abstract
    PartsCatalog, so a deployment can plug in another catalog store.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - SqlPartsCatalog shares the caller's session, so catalog writes commit
      or roll back together with the adjustment status change.
    - Locked reads take rows in part_number order so concurrent applies on
      overlapping part sets lock in the same order.
    - Only standard_value, material_price and updated_by_id are written.

Failure modes:
    - PartNotFoundError from update_standard_value for an unknown part.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from pricing_kernel.exceptions import PartNotFoundError
from pricing_kernel.logging_config import get_logger
from pricing_kernel.models.part import Part

logger = get_logger("services.parts_catalog")


class PartsCatalog(ABC):
    """
    Parts catalog collaborator.

    Contract:
        Both methods run inside the caller's transaction.
    """

    @abstractmethod
    def get_parts_by_material(self, material: str, lock: bool = False) -> list[Part]:
        ...

    @abstractmethod
    def update_standard_value(
        self,
        part_id: UUID,
        new_value: Decimal,
        new_material_price: Decimal | None = None,
        actor_id: UUID | None = None,
    ) -> None:
        ...


class SqlPartsCatalog(PartsCatalog):
    """PartsCatalog backed by the ``parts`` table in the caller's session."""

    def __init__(self, session: Session):
        self._session = session

    def get_parts_by_material(self, material: str, lock: bool = False) -> list[Part]:
        query = (
            select(Part)
            .where(Part.material == material)
            .order_by(Part.part_number, Part.id)
        )
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        parts = list(self._session.execute(query).scalars().all())
        logger.debug(
            "catalog_parts_loaded",
            extra={"material": material, "part_count": len(parts), "locked": lock},
        )
        return parts

    def update_standard_value(
        self,
        part_id: UUID,
        new_value: Decimal,
        new_material_price: Decimal | None = None,
        actor_id: UUID | None = None,
    ) -> None:
        part = self._session.get(Part, part_id)
        if part is None:
            raise PartNotFoundError(str(part_id))
        part.standard_value = new_value
        if new_material_price is not None:
            part.material_price = new_material_price
        part.record_update_by(actor_id)
        self._session.flush()

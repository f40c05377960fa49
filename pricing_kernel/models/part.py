"""
Module: pricing_kernel.models.part
Responsibility: ORM persistence for the parts catalog rows whose material
    price and standard value the engine adjusts.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - The pricing engine writes only standard_value and material_price
      (plus the updated_by_id audit column).  All other attributes belong
      to the wider FTZ inventory system.

Failure modes:
    - IntegrityError on duplicate part_number.
"""

from decimal import Decimal

from sqlalchemy import Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from pricing_kernel.db.base import TrackedBase


class Part(TrackedBase):
    """
    A catalog part with a material weight and a standard (customs) value.

    Non-goals:
        - hts_code, country_of_origin and unit_of_measure are carried for
          the surrounding inventory system; this engine never reads them.
    """

    __tablename__ = "parts"

    __table_args__ = (
        Index("idx_part_number", "part_number", unique=True),
        Index("idx_part_material", "material"),
    )

    part_number: Mapped[str] = mapped_column(String(100), nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    material: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Kilograms of the adjusted material contained in one part
    material_weight_kg: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    # USD value of the material content
    material_price: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    standard_value: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        default=Decimal("0"),
        nullable=False,
    )

    hts_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    country_of_origin: Mapped[str | None] = mapped_column(String(2), nullable=True)
    unit_of_measure: Mapped[str] = mapped_column(String(10), default="EA", nullable=False)

    def __repr__(self) -> str:
        return f"<Part {self.part_number} {self.material} sv={self.standard_value}>"

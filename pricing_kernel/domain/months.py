"""
MonthKey -- Calendar-month value object.

Responsibility:
    Parses, formats and does arithmetic on ``YYYY-MM`` month keys, the unit
    every pricing timeline and index lookup is expressed in.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Failure modes:
    - InvalidTimelineError on a malformed key or an out-of-range month.
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date

from pricing_kernel.exceptions import InvalidTimelineError

_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")


@dataclass(frozen=True, slots=True, order=True)
class MonthKey:
    """
    A calendar month.

    Guarantees:
        - Immutable, hashable and totally ordered (year first, then month).
        - ``str(key)`` is the canonical ``YYYY-MM`` form.
    """

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise InvalidTimelineError(
                field="month",
                reason=f"Month must be between 1 and 12, got {self.month}",
                actual=self.month,
            )
        if not 1 <= self.year <= 9999:
            raise InvalidTimelineError(
                field="year",
                reason=f"Year out of range: {self.year}",
                actual=self.year,
            )

    @classmethod
    def parse(cls, value: str | MonthKey, field: str = "month") -> MonthKey:
        """Parse a ``YYYY-MM`` string (MonthKey passes through)."""
        if isinstance(value, MonthKey):
            return value
        match = _MONTH_KEY_RE.match(value.strip()) if isinstance(value, str) else None
        if match is None:
            raise InvalidTimelineError(
                field=field,
                reason=f"Expected a YYYY-MM month key, got {value!r}",
                expected="YYYY-MM",
                actual=value,
            )
        return cls(int(match.group(1)), int(match.group(2)))

    @classmethod
    def from_date(cls, value: date) -> MonthKey:
        return cls(value.year, value.month)

    def add_months(self, count: int) -> MonthKey:
        index = self.year * 12 + (self.month - 1) + count
        return MonthKey(index // 12, index % 12 + 1)

    def prev(self) -> MonthKey:
        return self.add_months(-1)

    def next(self) -> MonthKey:
        return self.add_months(1)

    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def month_name(self) -> str:
        """English month name, e.g. ``March``."""
        return calendar.month_name[self.month]

    @property
    def label(self) -> str:
        """Display label, e.g. ``March 2024``."""
        return f"{self.month_name} {self.year}"

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

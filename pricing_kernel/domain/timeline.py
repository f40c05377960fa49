"""
PricingTimelineCalculator -- Which months feed an adjustment and when it bites.

Responsibility:
    Derives the three data months, the communication month and the
    effective month of a pricing adjustment from a reference date, or
    validates an explicitly supplied set of months.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - data_months has exactly three strictly increasing months.
    - communication_month >= last data month.
    - effective_month > communication_month.

Failure modes:
    - InvalidTimelineError on any ordering violation, a wrong number of data
      months, or an unknown quarter.

Audit relevance:
    Timeline.description is stored with the adjustment so a reviewer can see
    in words which months were averaged and when the new price took effect.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any

from pricing_kernel.domain.months import MonthKey
from pricing_kernel.exceptions import InvalidTimelineError

DATA_MONTH_COUNT = 3

DEFAULT_TIMELINE_FORMULA = "3_month_rolling"

_QUARTER_START = {"Q1": 1, "Q2": 4, "Q3": 7, "Q4": 10}


@dataclass(frozen=True)
class TimelineOverride:
    """All five months of a timeline supplied explicitly by the caller."""

    data_months: tuple[MonthKey, ...]
    communication_month: MonthKey
    effective_month: MonthKey

    @classmethod
    def from_strings(
        cls,
        data_months: list[str] | tuple[str, ...],
        communication_month: str,
        effective_month: str,
    ) -> TimelineOverride:
        return cls(
            data_months=tuple(
                MonthKey.parse(m, field=f"data_months[{i}]") for i, m in enumerate(data_months)
            ),
            communication_month=MonthKey.parse(communication_month, field="communication_month"),
            effective_month=MonthKey.parse(effective_month, field="effective_month"),
        )


@dataclass(frozen=True)
class Timeline:
    """
    A validated pricing timeline.

    Guarantees:
        - Ordering invariants hold (checked by validate_ordering on build).
    """

    data_months: tuple[MonthKey, ...]
    communication_month: MonthKey
    effective_month: MonthKey
    formula: str = DEFAULT_TIMELINE_FORMULA

    @property
    def description(self) -> str:
        """E.g. 'Average of March, April, May 2024 communicated in June 2024
        becomes new price in July 2024'."""
        years = {m.year for m in self.data_months}
        if len(years) == 1:
            months_text = (
                ", ".join(m.month_name for m in self.data_months)
                + f" {self.data_months[0].year}"
            )
        else:
            months_text = ", ".join(m.label for m in self.data_months)
        return (
            f"Average of {months_text} communicated in "
            f"{self.communication_month.label} becomes new price in "
            f"{self.effective_month.label}"
        )

    @property
    def data_month_keys(self) -> list[str]:
        return [str(m) for m in self.data_months]

    def to_dict(self) -> dict[str, Any]:
        return {
            "data_months": self.data_month_keys,
            "communication_month": str(self.communication_month),
            "effective_month": str(self.effective_month),
            "formula": self.formula,
            "description": self.description,
            "summary": {
                "data_months_text": ", ".join(m.label for m in self.data_months),
                "communication_text": self.communication_month.label,
                "effective_text": self.effective_month.label,
            },
        }


def validate_ordering(
    data_months: tuple[MonthKey, ...] | list[MonthKey],
    communication_month: MonthKey,
    effective_month: MonthKey,
) -> None:
    """
    Check the timeline ordering rules.

    Only ordering is checked; gaps between months are the caller's choice.

    Raises:
        InvalidTimelineError: naming the offending field.
    """
    if len(data_months) != DATA_MONTH_COUNT:
        raise InvalidTimelineError(
            field="data_months",
            reason=f"Exactly {DATA_MONTH_COUNT} data months are required",
            expected=DATA_MONTH_COUNT,
            actual=len(data_months),
        )

    for i in range(1, len(data_months)):
        if data_months[i] <= data_months[i - 1]:
            raise InvalidTimelineError(
                field=f"data_months[{i}]",
                reason="Data months must be strictly increasing",
                expected=f"> {data_months[i - 1]}",
                actual=str(data_months[i]),
            )

    if communication_month < data_months[-1]:
        raise InvalidTimelineError(
            field="communication_month",
            reason="Communication month cannot precede the last data month",
            expected=f">= {data_months[-1]}",
            actual=str(communication_month),
        )

    if effective_month <= communication_month:
        raise InvalidTimelineError(
            field="effective_month",
            reason="Effective month must come after the communication month",
            expected=f"> {communication_month}",
            actual=str(effective_month),
        )


def quarter_months(quarter: str, year: int) -> list[MonthKey]:
    """The three months of a calendar quarter ("Q1".."Q4")."""
    start = _QUARTER_START.get(quarter.strip().upper()) if isinstance(quarter, str) else None
    if start is None:
        raise InvalidTimelineError(
            field="quarter",
            reason=f"Invalid quarter: {quarter}. Use Q1, Q2, Q3, or Q4",
            expected=sorted(_QUARTER_START),
            actual=quarter,
        )
    first = MonthKey(year, start)
    return [first, first.add_months(1), first.add_months(2)]


class PricingTimelineCalculator:
    """
    Computes pricing timelines.

    Contract:
        compute_timeline(reference_date) -> the three months preceding the
        reference month (oldest first), communicated in the reference month,
        effective the month after.

    Non-goals:
        - Does not check that index data exists for the data months.
    """

    def __init__(self, formula: str = DEFAULT_TIMELINE_FORMULA):
        self._formula = formula

    def compute_timeline(
        self,
        reference_date: date,
        override: TimelineOverride | None = None,
    ) -> Timeline:
        if override is not None:
            validate_ordering(
                override.data_months,
                override.communication_month,
                override.effective_month,
            )
            return Timeline(
                data_months=tuple(override.data_months),
                communication_month=override.communication_month,
                effective_month=override.effective_month,
                formula=self._formula,
            )

        communication = MonthKey.from_date(reference_date)
        data_months = tuple(
            communication.add_months(-offset) for offset in range(DATA_MONTH_COUNT, 0, -1)
        )
        timeline = Timeline(
            data_months=data_months,
            communication_month=communication,
            effective_month=communication.next(),
            formula=self._formula,
        )
        validate_ordering(
            timeline.data_months, timeline.communication_month, timeline.effective_month
        )
        return timeline

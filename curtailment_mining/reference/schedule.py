"""Shared "most recent at or before" lookup over a dated series."""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from datetime import date
from typing import Mapping


@dataclass(frozen=True)
class ResolvedValue:
    """A reference value together with where it came from.

    Attributes:
        value: The resolved number.
        effective_date: Date the value was recorded for.
        requested_date: Date the caller asked about.
    """

    value: float
    effective_date: date
    requested_date: date

    @property
    def is_fallback(self) -> bool:
        """True when an earlier value stood in for a missing one."""
        return self.effective_date < self.requested_date


class DatedSeries:
    """Sorted (date, value) pairs with at-or-before lookup."""

    def __init__(self, points: Mapping[date, float]) -> None:
        items = sorted(points.items())
        self._dates = [d for d, _ in items]
        self._values = [float(v) for _, v in items]

    def __len__(self) -> int:
        return len(self._dates)

    def at_or_before(self, day: date) -> ResolvedValue | None:
        idx = bisect.bisect_right(self._dates, day) - 1
        if idx < 0:
            return None
        return ResolvedValue(
            value=self._values[idx],
            effective_date=self._dates[idx],
            requested_date=day,
        )

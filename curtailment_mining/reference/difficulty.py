"""Network difficulty resolvers.

Both resolvers answer "most recent known difficulty at or before a date".
A value older than the requested date is a recoverable gap: the caller
logs a warning and carries on. No value at all is a ReferenceDataError.
"""

from __future__ import annotations

from datetime import date
from typing import Callable, Mapping, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from curtailment_mining.core.exceptions import ReferenceDataError
from curtailment_mining.core.models.network_difficulty import NetworkDifficulty
from curtailment_mining.reference.schedule import DatedSeries, ResolvedValue


class DifficultyResolver(Protocol):
    def resolve(self, day: date) -> ResolvedValue: ...


class StaticDifficultySchedule:
    """In-memory difficulty series, e.g. loaded from a CSV or a test fixture."""

    def __init__(self, points: Mapping[date, float]) -> None:
        self._series = DatedSeries(points)

    def resolve(self, day: date) -> ResolvedValue:
        resolved = self._series.at_or_before(day)
        if resolved is None:
            raise ReferenceDataError(f"No network difficulty known on or before {day}")
        return resolved


class DatabaseDifficultyResolver:
    """Difficulty lookups against the ``network_difficulty`` table.

    Opens a short read-only session per lookup so it can be shared by
    concurrent reconciliation workers.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def resolve(self, day: date) -> ResolvedValue:
        stmt = (
            select(NetworkDifficulty.effective_date, NetworkDifficulty.difficulty)
            .where(NetworkDifficulty.effective_date <= day)
            .order_by(NetworkDifficulty.effective_date.desc())
            .limit(1)
        )
        with self._session_factory() as session:
            row = session.execute(stmt).first()
        if row is None:
            raise ReferenceDataError(f"No network difficulty known on or before {day}")
        return ResolvedValue(
            value=float(row.difficulty),
            effective_date=row.effective_date,
            requested_date=day,
        )

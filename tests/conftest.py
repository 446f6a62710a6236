"""Root pytest configuration and shared fixtures.

Provides common test fixtures used across all test modules:
- engine / session_factory: in-memory SQLite with the full schema
- seed_events: callable inserting raw curtailment rows
- hardware, difficulty_schedule, reward_schedule: reference data
- reconciler / auditor: wired to the fixtures above
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from curtailment_mining.core.models import Base, CurtailmentRecord
from curtailment_mining.reconciliation import CompletenessAuditor, Reconciler
from curtailment_mining.reference import (
    HARDWARE_CATALOGUE,
    BlockRewardSchedule,
    StaticDifficultySchedule,
)

BASE_INGESTED_AT = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_dates() -> dict[str, date]:
    """Return a dict of commonly used test dates.

    Keys:
        day_10, day_15, other_month, other_year
    """
    return {
        "day_10": date(2024, 3, 10),
        "day_15": date(2024, 3, 15),
        "other_month": date(2024, 4, 2),
        "other_year": date(2023, 12, 30),
    }


@pytest.fixture
def engine():
    """In-memory SQLite shared across threads, schema created."""
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def seed_events(session_factory) -> Callable[..., list[int]]:
    """Return a callable that inserts raw curtailment rows for one date.

    Each row is ``(interval, farm_id, volume[, payment[, minutes_after_base]])``.
    Later rows get later ``ingested_at`` stamps unless given explicitly.

    Usage::

        ids = seed_events(date(2024, 3, 10), [(5, "F1", "-10")])
    """
    counter = {"n": 0}

    def _seed(day: date, rows: list[tuple], lead_party: Optional[str] = "Wind Co") -> list[int]:
        records = []
        for row in rows:
            interval, farm_id, volume = row[0], row[1], row[2]
            payment = row[3] if len(row) > 3 else Decimal(volume) * Decimal("-50")
            counter["n"] += 1
            minutes = row[4] if len(row) > 4 else counter["n"]
            records.append(
                CurtailmentRecord(
                    settlement_date=day,
                    settlement_period=interval,
                    farm_id=farm_id,
                    lead_party_name=lead_party,
                    volume=Decimal(str(volume)),
                    payment=Decimal(str(payment)),
                    ingested_at=BASE_INGESTED_AT + timedelta(minutes=minutes),
                )
            )
        with session_factory() as session:
            session.add_all(records)
            session.commit()
            return [r.id for r in records]

    return _seed


@pytest.fixture
def hardware():
    return [HARDWARE_CATALOGUE["S19J_PRO"], HARDWARE_CATALOGUE["S9"]]


@pytest.fixture
def difficulty_schedule() -> StaticDifficultySchedule:
    """A difficulty value for every day of 2023-2024 (no fallbacks)."""
    start = date(2023, 1, 1)
    points = {}
    for offset in range(731):
        day = start + timedelta(days=offset)
        points[day] = 7.2e13 if day < date(2024, 3, 12) else 8.1e13
    return StaticDifficultySchedule(points)


@pytest.fixture
def reward_schedule() -> BlockRewardSchedule:
    return BlockRewardSchedule()


@pytest.fixture
def make_reconciler(session_factory, hardware, difficulty_schedule, reward_schedule):
    """Return a factory building a Reconciler with fixture defaults overridable."""

    def _make(**overrides: Any) -> Reconciler:
        kwargs: dict[str, Any] = {
            "difficulty_resolver": difficulty_schedule,
            "reward_schedule": reward_schedule,
            "hardware": hardware,
            "intervals_per_day": 48,
            "interval_seconds": 1800,
            "max_workers": 1,
        }
        kwargs.update(overrides)
        return Reconciler(session_factory, **kwargs)

    return _make


@pytest.fixture
def reconciler(make_reconciler) -> Reconciler:
    return make_reconciler()


@pytest.fixture
def auditor(session_factory, hardware) -> CompletenessAuditor:
    return CompletenessAuditor(session_factory, hardware=hardware, intervals_per_day=48)

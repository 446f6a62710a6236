"""Aggregate store access layer.

Wraps one SQLAlchemy session (one date's transaction) and exposes the
reads and writes the reconciler and auditor need across the four-level
hierarchy: curtailment events -> mining calculations -> daily -> monthly
-> yearly summaries.

Every derived write is ``INSERT ... ON CONFLICT DO UPDATE`` on the table's
natural key, so repeated runs and concurrent duplicate-key races are
no-ops rather than errors. The dialect-native insert construct is chosen
from the session's bind (PostgreSQL in production, SQLite in tests).

Sums are computed in Python with ``Decimal`` over the rows of the level
directly below, never in SQL, so the equality laws between levels hold
exactly regardless of the backend's floating behaviour.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Sequence

from sqlalchemy import and_, delete, distinct, func, select, tuple_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from curtailment_mining.core.events import CurtailmentEvent
from curtailment_mining.core.models import (
    CurtailmentRecord,
    DailyMiningSummary,
    MiningCalculation,
    MonthlyMiningSummary,
    YearlyMiningSummary,
)
from curtailment_mining.core.models.base import utcnow

_UPSERT_CHUNK = 500

CalculationKey = tuple[int, str, str]  # (interval, source_id, model)

ZERO = Decimal("0")


@dataclass(frozen=True)
class Totals:
    """Running totals for one period and one hardware model."""

    total_yield: Decimal = ZERO
    total_energy_mwh: Decimal = ZERO
    total_compensation: Decimal = ZERO

    def __add__(self, other: "Totals") -> "Totals":
        return Totals(
            total_yield=self.total_yield + other.total_yield,
            total_energy_mwh=self.total_energy_mwh + other.total_energy_mwh,
            total_compensation=self.total_compensation + other.total_compensation,
        )

    @classmethod
    def of(cls, row: Any) -> "Totals":
        return cls(
            total_yield=Decimal(row.total_yield),
            total_energy_mwh=Decimal(row.total_energy_mwh),
            total_compensation=Decimal(row.total_compensation),
        )


def year_month_of(day: date) -> str:
    """``YYYY-MM`` key of the month containing ``day``."""
    return f"{day.year:04d}-{day.month:02d}"


def month_bounds(year_month: str) -> tuple[date, date]:
    """First and last calendar day of a ``YYYY-MM`` month."""
    year, month = (int(part) for part in year_month.split("-"))
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


def _totals_select(model_class: type):
    return select(
        model_class.miner_model,
        model_class.total_yield,
        model_class.total_energy_mwh,
        model_class.total_compensation,
    )


class AggregateStore:
    """Reads and idempotent writes over the aggregate hierarchy.

    The store never commits; transaction boundaries belong to the caller.

    Args:
        session: Session whose transaction scopes every statement issued.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Dialect helpers
    # ------------------------------------------------------------------
    @property
    def dialect_name(self) -> str:
        return self.session.get_bind().dialect.name

    def _insert(self, model_class: type):
        if self.dialect_name == "postgresql":
            return pg_insert(model_class)
        if self.dialect_name == "sqlite":
            return sqlite_insert(model_class)
        raise NotImplementedError(f"Upsert not supported on dialect {self.dialect_name!r}")

    def _upsert(
        self,
        model_class: type,
        records: Sequence[dict[str, Any]],
        index_elements: list[str],
    ) -> int:
        """Bulk upsert ``records`` keyed by ``index_elements``.

        Returns:
            Number of rows written (inserted or updated).
        """
        if not records:
            return 0

        update_columns = [c for c in records[0] if c not in index_elements]
        for start in range(0, len(records), _UPSERT_CHUNK):
            chunk = list(records[start:start + _UPSERT_CHUNK])
            stmt = self._insert(model_class).values(chunk)
            stmt = stmt.on_conflict_do_update(
                index_elements=index_elements,
                set_={col: stmt.excluded[col] for col in update_columns},
            )
            self.session.execute(stmt)
        return len(records)

    # ------------------------------------------------------------------
    # Curtailment events
    # ------------------------------------------------------------------
    def load_events(self, day: date) -> list[CurtailmentEvent]:
        """All raw (possibly duplicated) curtailment rows for ``day``."""
        stmt = (
            select(CurtailmentRecord)
            .where(CurtailmentRecord.settlement_date == day)
            .order_by(CurtailmentRecord.settlement_period, CurtailmentRecord.farm_id, CurtailmentRecord.id)
        )
        return [CurtailmentEvent.from_record(r) for r in self.session.scalars(stmt)]

    def delete_events(self, record_ids: Iterable[int]) -> int:
        """Delete raw rows by primary key; returns the number removed."""
        ids = [rid for rid in record_ids if rid is not None]
        if not ids:
            return 0
        result = self.session.execute(
            delete(CurtailmentRecord).where(CurtailmentRecord.id.in_(ids))
        )
        return result.rowcount or 0

    def interval_counts(self, start: date, end: date, intervals_per_day: int) -> dict[date, int]:
        """Distinct settlement periods in ``1..intervals_per_day`` per date in ``[start, end]``.

        Dates whose only periods fall outside that range are omitted.
        """
        stmt = (
            select(
                CurtailmentRecord.settlement_date,
                func.count(distinct(CurtailmentRecord.settlement_period)),
            )
            .where(
                CurtailmentRecord.settlement_date.between(start, end),
                CurtailmentRecord.settlement_period.between(1, intervals_per_day),
            )
            .group_by(CurtailmentRecord.settlement_date)
        )
        return {row[0]: int(row[1]) for row in self.session.execute(stmt)}

    def event_dates(self, start: date, end: date) -> list[date]:
        stmt = (
            select(distinct(CurtailmentRecord.settlement_date))
            .where(CurtailmentRecord.settlement_date.between(start, end))
            .order_by(CurtailmentRecord.settlement_date)
        )
        return list(self.session.scalars(stmt))

    # ------------------------------------------------------------------
    # Mining calculations
    # ------------------------------------------------------------------
    def upsert_calculations(self, records: Sequence[dict[str, Any]]) -> int:
        """Upsert calculation rows keyed by (date, period, farm, model)."""
        return self._upsert(
            MiningCalculation,
            records,
            ["settlement_date", "settlement_period", "farm_id", "miner_model"],
        )

    def calculation_keys(self, day: date, models: Iterable[str] | None = None) -> set[CalculationKey]:
        stmt = select(
            MiningCalculation.settlement_period,
            MiningCalculation.farm_id,
            MiningCalculation.miner_model,
        ).where(MiningCalculation.settlement_date == day)
        if models is not None:
            stmt = stmt.where(MiningCalculation.miner_model.in_(list(models)))
        return {(r[0], r[1], r[2]) for r in self.session.execute(stmt)}

    def delete_calculations(self, day: date, keys: Iterable[CalculationKey]) -> int:
        """Delete the given (period, farm, model) calculations for ``day``."""
        keys = list(keys)
        if not keys:
            return 0
        removed = 0
        for start in range(0, len(keys), _UPSERT_CHUNK):
            chunk = keys[start:start + _UPSERT_CHUNK]
            result = self.session.execute(
                delete(MiningCalculation).where(
                    and_(
                        MiningCalculation.settlement_date == day,
                        tuple_(
                            MiningCalculation.settlement_period,
                            MiningCalculation.farm_id,
                            MiningCalculation.miner_model,
                        ).in_(chunk),
                    )
                )
            )
            removed += result.rowcount or 0
        return removed

    def load_calculations(self, day: date, models: Iterable[str] | None = None) -> list[MiningCalculation]:
        stmt = select(MiningCalculation).where(MiningCalculation.settlement_date == day)
        if models is not None:
            stmt = stmt.where(MiningCalculation.miner_model.in_(list(models)))
        stmt = stmt.order_by(
            MiningCalculation.miner_model,
            MiningCalculation.settlement_period,
            MiningCalculation.farm_id,
        )
        stmt = stmt.execution_options(populate_existing=True)
        return list(self.session.scalars(stmt))

    # ------------------------------------------------------------------
    # Roll-ups (each from the level directly below)
    # ------------------------------------------------------------------
    def daily_totals_from_calculations(self, day: date, models: Iterable[str]) -> dict[str, Totals]:
        """Sum calculation rows for ``day`` per model (zero for models with none)."""
        totals = {m: Totals() for m in models}
        stmt = select(
            MiningCalculation.miner_model,
            MiningCalculation.estimated_yield,
            MiningCalculation.curtailed_energy_mwh,
            MiningCalculation.compensation,
        ).where(
            MiningCalculation.settlement_date == day,
            MiningCalculation.miner_model.in_(list(totals)),
        )
        for model, yld, energy, comp in self.session.execute(stmt):
            totals[model] = totals[model] + Totals(Decimal(yld), Decimal(energy), Decimal(comp))
        return totals

    def monthly_totals_from_daily(self, year_month: str, models: Iterable[str]) -> dict[str, Totals]:
        """Sum every daily summary row in ``year_month`` per model."""
        first, last = month_bounds(year_month)
        totals = {m: Totals() for m in models}
        stmt = _totals_select(DailyMiningSummary).where(
            DailyMiningSummary.summary_date.between(first, last),
            DailyMiningSummary.miner_model.in_(list(totals)),
        )
        for row in self.session.execute(stmt):
            totals[row.miner_model] = totals[row.miner_model] + Totals.of(row)
        return totals

    def yearly_totals_from_monthly(self, year: int, models: Iterable[str]) -> dict[str, Totals]:
        """Sum every monthly summary row in ``year`` per model."""
        totals = {m: Totals() for m in models}
        stmt = _totals_select(MonthlyMiningSummary).where(
            MonthlyMiningSummary.year_month.like(f"{year:04d}-%"),
            MonthlyMiningSummary.miner_model.in_(list(totals)),
        )
        for row in self.session.execute(stmt):
            totals[row.miner_model] = totals[row.miner_model] + Totals.of(row)
        return totals

    # ------------------------------------------------------------------
    # Summary upserts
    # ------------------------------------------------------------------
    @staticmethod
    def _summary_records(key: dict[str, Any], totals: dict[str, Totals]) -> list[dict[str, Any]]:
        now = utcnow()
        return [
            {
                **key,
                "miner_model": model,
                "total_yield": t.total_yield,
                "total_energy_mwh": t.total_energy_mwh,
                "total_compensation": t.total_compensation,
                "updated_at": now,
            }
            for model, t in totals.items()
        ]

    def upsert_daily(self, day: date, totals: dict[str, Totals]) -> int:
        return self._upsert(
            DailyMiningSummary,
            self._summary_records({"summary_date": day}, totals),
            ["summary_date", "miner_model"],
        )

    def upsert_monthly(self, year_month: str, totals: dict[str, Totals]) -> int:
        return self._upsert(
            MonthlyMiningSummary,
            self._summary_records({"year_month": year_month}, totals),
            ["year_month", "miner_model"],
        )

    def upsert_yearly(self, year: int, totals: dict[str, Totals]) -> int:
        return self._upsert(
            YearlyMiningSummary,
            self._summary_records({"year": year}, totals),
            ["year", "miner_model"],
        )

    # ------------------------------------------------------------------
    # Persisted summary reads
    # ------------------------------------------------------------------
    def get_daily(self, day: date) -> dict[str, Totals]:
        stmt = _totals_select(DailyMiningSummary).where(DailyMiningSummary.summary_date == day)
        return {row.miner_model: Totals.of(row) for row in self.session.execute(stmt)}

    def get_monthly(self, year_month: str) -> dict[str, Totals]:
        stmt = _totals_select(MonthlyMiningSummary).where(MonthlyMiningSummary.year_month == year_month)
        return {row.miner_model: Totals.of(row) for row in self.session.execute(stmt)}

    def get_yearly(self, year: int) -> dict[str, Totals]:
        stmt = _totals_select(YearlyMiningSummary).where(YearlyMiningSummary.year == year)
        return {row.miner_model: Totals.of(row) for row in self.session.execute(stmt)}

"""Completeness auditor -- read-only diagnostics over the aggregate hierarchy.

``audit_date`` answers "does this date need a reconcile run?":

1. Intervals absent from the canonical events (upstream data gaps).
2. (interval, source, model) units with a curtailed event but no
   calculation, per active hardware model.
3. Persisted daily/monthly/yearly rows that disagree with the level
   directly below by more than an epsilon.

It also reports pending duplicates, orphaned calculations, calculations
priced at a difficulty the reference data no longer holds, and interval
numbers outside ``1..N``. ``find_partial_dates`` and ``summarize_year``
scan wider ranges. Nothing here writes; sessions are rolled back on exit.

Events come from the same source the reconciler reads: the injected
``fetch_raw_events`` collaborator when given, else ``curtailment_records``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Optional, Sequence

from sqlalchemy.orm import Session

from curtailment_mining.core.config import positive_setting, settings
from curtailment_mining.core.enums import AggregateLevel
from curtailment_mining.core.events import CurtailmentEvent
from curtailment_mining.core.utils.logging_config import get_logger
from curtailment_mining.reconciliation.deduplicator import dedupe
from curtailment_mining.reconciliation.reconciler import EventFetcher, iter_dates, load_day_events
from curtailment_mining.reference.difficulty import DifficultyResolver
from curtailment_mining.reference.hardware import HardwareSpec, active_hardware
from curtailment_mining.store.aggregate_store import AggregateStore, Totals, year_month_of

logger = get_logger("reconciliation.auditor")

ZERO = Decimal("0")


@dataclass(frozen=True)
class AggregateMismatch:
    """Persisted summary row that disagrees with the level below it.

    ``persisted`` is None when the row is missing altogether.
    """

    level: AggregateLevel
    period_key: str
    model: str
    expected: Decimal
    persisted: Optional[Decimal]

    @property
    def delta(self) -> Decimal:
        return (self.persisted or ZERO) - self.expected


@dataclass
class AuditReport:
    """Findings for one calendar date."""

    date: date
    expected_intervals: int
    missing_intervals: set[int] = field(default_factory=set)
    unexpected_intervals: set[int] = field(default_factory=set)
    incomplete_models: dict[str, list[tuple[int, str]]] = field(default_factory=dict)
    aggregate_mismatches: list[AggregateMismatch] = field(default_factory=list)
    pending_duplicates: int = 0
    orphaned_calculations: list[tuple[int, str, str]] = field(default_factory=list)
    stale_difficulty: list[tuple[int, str, str]] = field(default_factory=list)
    event_count: int = 0
    calculation_count: int = 0

    @property
    def missing_calculations(self) -> int:
        return sum(len(keys) for keys in self.incomplete_models.values())

    @property
    def needs_reconcile(self) -> bool:
        """True when a reconcile run would change persisted state."""
        return bool(
            self.incomplete_models
            or self.aggregate_mismatches
            or self.pending_duplicates
            or self.orphaned_calculations
            or self.stale_difficulty
        )

    @property
    def is_clean(self) -> bool:
        """No reconciliation defects and no upstream gaps."""
        return not self.needs_reconcile and not self.missing_intervals and not self.unexpected_intervals


@dataclass
class YearStatus:
    """Calculation coverage for one year across every date with events."""

    year: int
    dates_with_events: int = 0
    expected_calculations: int = 0
    actual_calculations: int = 0
    dates_with_issues: list[date] = field(default_factory=list)

    @property
    def completion_pct(self) -> float:
        if self.expected_calculations == 0:
            return 100.0
        return round(100.0 * self.actual_calculations / self.expected_calculations, 2)


class CompletenessAuditor:
    """Diagnose reconciliation gaps without touching persisted state.

    Args:
        session_factory: Callable returning a new Session.
        hardware: Active hardware models; defaults to the configured set.
        intervals_per_day: Expected settlement periods per day.
        epsilon: Largest tolerated difference between a persisted total and
            the sum beneath it.
        fetch_raw_events: Raw-event collaborator; pass the one the
            reconciler uses. When omitted, events are read from
            ``curtailment_records``.
        difficulty_resolver: When given, calculations whose stored
            difficulty differs from the resolved value are reported as
            stale. Without it the check is skipped.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        *,
        hardware: Optional[Sequence[HardwareSpec]] = None,
        intervals_per_day: Optional[int] = None,
        epsilon: Optional[float] = None,
        fetch_raw_events: Optional[EventFetcher] = None,
        difficulty_resolver: Optional[DifficultyResolver] = None,
    ) -> None:
        if session_factory is None:
            from curtailment_mining.core.database import sync_session_factory

            session_factory = sync_session_factory

        self._session_factory = session_factory
        self._hardware = active_hardware(hardware)
        self._intervals_per_day = positive_setting(
            "intervals_per_day", intervals_per_day, settings.intervals_per_day
        )
        self._epsilon = Decimal(repr(settings.aggregate_epsilon if epsilon is None else epsilon))
        self._fetch_raw_events = fetch_raw_events
        self._difficulty = difficulty_resolver

    @property
    def model_names(self) -> list[str]:
        return [spec.model for spec in self._hardware]

    @property
    def intervals_per_day(self) -> int:
        return self._intervals_per_day

    # ------------------------------------------------------------------
    # Per-date audit
    # ------------------------------------------------------------------
    def audit_date(self, day: date) -> AuditReport:
        """Audit one date: intervals, calculations and all three aggregate levels.

        Raises:
            UpstreamFetchError: If the raw-event collaborator fails.
            ReferenceDataError: If a difficulty resolver is set, the date has
                calculations and no difficulty is known at or before it.
        """
        models = self.model_names
        report = AuditReport(date=day, expected_intervals=self._intervals_per_day)

        with self._session_factory() as session:
            store = AggregateStore(session)
            try:
                result = dedupe(self._events(day, store))
                report.event_count = len(result.canonical)
                # Only persisted rows can be deleted by a reconcile run.
                report.pending_duplicates = len(result.discarded_record_ids)

                present = {e.interval for e in result.canonical}
                expected = set(range(1, self._intervals_per_day + 1))
                report.missing_intervals = expected - present
                report.unexpected_intervals = present - expected

                calc_keys = store.calculation_keys(day, models)
                report.calculation_count = len(calc_keys)
                wanted = {(e.interval, e.source_id) for e in result.canonical if e.is_curtailed}

                for model in models:
                    gaps = sorted(
                        key for key in wanted if (key[0], key[1], model) not in calc_keys
                    )
                    if gaps:
                        report.incomplete_models[model] = gaps
                report.orphaned_calculations = sorted(
                    key for key in calc_keys if (key[0], key[1]) not in wanted
                )
                if self._difficulty is not None and calc_keys:
                    report.stale_difficulty = self._stale_difficulty(day, store, models)

                self._check_aggregates(day, store, report)
            finally:
                session.rollback()

        logger.info(
            "date_audited",
            date=day.isoformat(),
            missing_intervals=len(report.missing_intervals),
            missing_calculations=report.missing_calculations,
            mismatches=len(report.aggregate_mismatches),
            pending_duplicates=report.pending_duplicates,
            orphans=len(report.orphaned_calculations),
            stale_difficulty=len(report.stale_difficulty),
        )
        return report

    def _events(self, day: date, store: AggregateStore) -> list[CurtailmentEvent]:
        events, _ = load_day_events(day, store, self._fetch_raw_events)
        return events

    def _stale_difficulty(
        self, day: date, store: AggregateStore, models: Sequence[str]
    ) -> list[tuple[int, str, str]]:
        current = self._difficulty.resolve(day).value
        return sorted(
            (row.settlement_period, row.farm_id, row.miner_model)
            for row in store.load_calculations(day, models)
            if not math.isclose(row.difficulty, current, rel_tol=1e-9)
        )

    def _check_aggregates(self, day: date, store: AggregateStore, report: AuditReport) -> None:
        models = self.model_names
        year_month = year_month_of(day)
        checks = [
            (
                AggregateLevel.DAILY,
                day.isoformat(),
                store.daily_totals_from_calculations(day, models),
                store.get_daily(day),
            ),
            (
                AggregateLevel.MONTHLY,
                year_month,
                store.monthly_totals_from_daily(year_month, models),
                store.get_monthly(year_month),
            ),
            (
                AggregateLevel.YEARLY,
                str(day.year),
                store.yearly_totals_from_monthly(day.year, models),
                store.get_yearly(day.year),
            ),
        ]
        for level, period_key, expected, persisted in checks:
            report.aggregate_mismatches.extend(
                self._compare(level, period_key, expected, persisted)
            )

    def _compare(
        self,
        level: AggregateLevel,
        period_key: str,
        expected: dict[str, Totals],
        persisted: dict[str, Totals],
    ) -> list[AggregateMismatch]:
        mismatches = []
        for model, want in expected.items():
            have = persisted.get(model)
            if have is None:
                # A missing row is consistent with nothing beneath it.
                if want.total_yield != ZERO:
                    mismatches.append(
                        AggregateMismatch(level, period_key, model, want.total_yield, None)
                    )
                continue
            if abs(have.total_yield - want.total_yield) > self._epsilon:
                mismatches.append(
                    AggregateMismatch(level, period_key, model, want.total_yield, have.total_yield)
                )
        return mismatches

    # ------------------------------------------------------------------
    # Range scans
    # ------------------------------------------------------------------
    def find_partial_dates(self, start: date, end: date) -> dict[date, int]:
        """Dates in ``[start, end]`` with some, but fewer than N, intervals.

        Only interval numbers in ``1..N`` count towards completeness.

        Returns:
            Mapping of date to the number of distinct intervals present.
        """
        n = self._intervals_per_day
        with self._session_factory() as session:
            store = AggregateStore(session)
            try:
                if self._fetch_raw_events is None:
                    counts = store.interval_counts(start, end, n)
                else:
                    counts = {}
                    for day in iter_dates(start, end):
                        present = {
                            e.interval for e in self._events(day, store) if 1 <= e.interval <= n
                        }
                        if present:
                            counts[day] = len(present)
            finally:
                session.rollback()
        return {
            day: count
            for day, count in sorted(counts.items())
            if 0 < count < self._intervals_per_day
        }

    def summarize_year(self, year: int) -> YearStatus:
        """Expected vs. actual calculation counts for every date in ``year``.

        Without a fetcher only dates present in ``curtailment_records`` are
        scanned; with one, every calendar day of the year is fetched.
        """
        start, end = date(year, 1, 1), date(year, 12, 31)
        models = self.model_names
        status = YearStatus(year=year)

        with self._session_factory() as session:
            store = AggregateStore(session)
            try:
                if self._fetch_raw_events is None:
                    days = store.event_dates(start, end)
                else:
                    days = list(iter_dates(start, end))
                for day in days:
                    canonical = dedupe(self._events(day, store)).canonical
                    wanted = {
                        (e.interval, e.source_id, model)
                        for e in canonical
                        if e.is_curtailed
                        for model in models
                    }
                    present = store.calculation_keys(day, models)
                    if not canonical and not present:
                        continue
                    if canonical:
                        status.dates_with_events += 1
                    status.expected_calculations += len(wanted)
                    status.actual_calculations += len(wanted & present)
                    if wanted != present:
                        status.dates_with_issues.append(day)
            finally:
                session.rollback()

        logger.info(
            "year_summarized",
            year=year,
            dates=status.dates_with_events,
            expected=status.expected_calculations,
            actual=status.actual_calculations,
            completion_pct=status.completion_pct,
            dates_with_issues=len(status.dates_with_issues),
        )
        return status

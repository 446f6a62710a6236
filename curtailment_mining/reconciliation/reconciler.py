"""Reconciler -- idempotent curtailment-to-mining reconciliation per date.

For each calendar date the reconciler runs, inside one transaction:

    dedupe -> calculate -> daily roll-up -> monthly roll-up -> yearly roll-up

and drives the date through the state machine

    PENDING -> DEDUPLICATING -> CALCULATING -> AGGREGATING_DAY
            -> AGGREGATING_MONTH -> AGGREGATING_YEAR -> RECONCILED

with FAILED reachable from any non-terminal state. A failure rolls back
the date's writes and leaves previously reconciled state untouched; other
dates in the same range are unaffected.

Date ranges are processed by a bounded pool of workers
(``asyncio.Semaphore`` + ``asyncio.to_thread``). Cancelling stops new dates
from being scheduled; dates already in flight finish their transaction.
Retries belong to the caller: every write is an upsert, so re-running a
date is always safe.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Iterator, Optional, Sequence

from sqlalchemy.orm import Session

from curtailment_mining.core.config import positive_setting, settings
from curtailment_mining.core.enums import LockScope, ReconcileState
from curtailment_mining.core.events import CurtailmentEvent
from curtailment_mining.core.exceptions import InputValidationError, UpstreamFetchError
from curtailment_mining.core.models.base import utcnow
from curtailment_mining.core.utils.logging_config import date_context, get_logger
from curtailment_mining.mining.yield_calculator import estimate_yield, quantize_yield
from curtailment_mining.reconciliation.deduplicator import dedupe
from curtailment_mining.reconciliation.locks import LockRegistry
from curtailment_mining.reference.difficulty import DatabaseDifficultyResolver, DifficultyResolver
from curtailment_mining.reference.hardware import HardwareSpec, active_hardware
from curtailment_mining.reference.rewards import BlockRewardSchedule
from curtailment_mining.store.aggregate_store import AggregateStore, year_month_of

logger = get_logger("reconciliation.reconciler")

_STATE_ORDER = [
    ReconcileState.PENDING,
    ReconcileState.DEDUPLICATING,
    ReconcileState.CALCULATING,
    ReconcileState.AGGREGATING_DAY,
    ReconcileState.AGGREGATING_MONTH,
    ReconcileState.AGGREGATING_YEAR,
    ReconcileState.RECONCILED,
]

_ENERGY_QUANTUM = Decimal("0.000001")
_MONEY_QUANTUM = Decimal("0.01")

EventFetcher = Callable[[date], Sequence[CurtailmentEvent]]


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Inclusive calendar-day iterator."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def load_day_events(
    day: date,
    store: AggregateStore,
    fetch_raw_events: Optional[EventFetcher] = None,
) -> tuple[list[CurtailmentEvent], int]:
    """Raw events for ``day`` from the fetcher, or ``curtailment_records`` without one.

    Returns:
        The events dated ``day`` and the number of foreign-dated events dropped.

    Raises:
        UpstreamFetchError: If the fetcher fails.
    """
    if fetch_raw_events is None:
        return store.load_events(day), 0
    try:
        events = list(fetch_raw_events(day))
    except Exception as exc:
        raise UpstreamFetchError(f"raw event fetch failed for {day}: {exc}") from exc
    own = [e for e in events if e.date == day]
    return own, len(events) - len(own)


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------
@dataclass
class DateOutcome:
    """What happened to one date.

    Attributes:
        date: The calendar date.
        state: Current (terminal once returned) state.
        reason: Failure reason when FAILED.
        failed_at: State the date was in when it failed.
        duplicates_removed: Raw rows discarded by the deduplicator.
        calculations_written: Calculation rows upserted.
        calculations_removed: Orphaned calculation rows deleted.
        aggregates_updated: Daily + monthly + yearly rows upserted.
        invalid_units: ``P{interval}/{source}/{model}`` units rejected by
            input validation.
        warnings: Recoverable issues (reference fallbacks, odd intervals).
        duration_seconds: Wall-clock time for the date.
    """

    date: date
    state: ReconcileState = ReconcileState.PENDING
    reason: Optional[str] = None
    failed_at: Optional[ReconcileState] = None
    duplicates_removed: int = 0
    calculations_written: int = 0
    calculations_removed: int = 0
    aggregates_updated: int = 0
    invalid_units: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    def advance(self, state: ReconcileState) -> None:
        """Move strictly forward through the state machine."""
        if self.state.is_terminal:
            raise RuntimeError(f"{self.date}: cannot leave terminal state {self.state.value}")
        if _STATE_ORDER.index(state) <= _STATE_ORDER.index(self.state):
            raise RuntimeError(
                f"{self.date}: illegal transition {self.state.value} -> {state.value}"
            )
        self.state = state

    def fail(self, reason: str) -> None:
        """Enter FAILED; counters are cleared because the transaction rolled back."""
        self.failed_at = self.state
        self.state = ReconcileState.FAILED
        self.reason = reason
        self.duplicates_removed = 0
        self.calculations_written = 0
        self.calculations_removed = 0
        self.aggregates_updated = 0

    @property
    def succeeded(self) -> bool:
        return self.state is ReconcileState.RECONCILED


@dataclass
class ReconcileReport:
    """Per-range summary returned to the scheduler / CLI."""

    start: date
    end: date
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    outcomes: list[DateOutcome] = field(default_factory=list)
    skipped: list[date] = field(default_factory=list)
    cancelled: bool = False
    duration_seconds: float = 0.0

    @property
    def dates_processed(self) -> int:
        return len(self.outcomes)

    @property
    def calculations_written(self) -> int:
        return sum(o.calculations_written for o in self.outcomes)

    @property
    def aggregates_updated(self) -> int:
        return sum(o.aggregates_updated for o in self.outcomes)

    @property
    def errors(self) -> dict[date, str]:
        return {o.date: o.reason or "unknown error" for o in self.outcomes if not o.succeeded}

    @property
    def reconciled_dates(self) -> list[date]:
        return [o.date for o in self.outcomes if o.succeeded]

    @property
    def failed_dates(self) -> list[date]:
        return [o.date for o in self.outcomes if not o.succeeded]

    def outcome_for(self, day: date) -> Optional[DateOutcome]:
        for outcome in self.outcomes:
            if outcome.date == day:
                return outcome
        return None


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------
class Reconciler:
    """Keep calculations and summaries consistent with curtailment events.

    Args:
        session_factory: Callable returning a new Session. Defaults to the
            project's sync session factory.
        difficulty_resolver: "At or before" difficulty lookup. Defaults to
            the ``network_difficulty`` table.
        reward_schedule: Block reward by date. Defaults to the halving history.
        hardware: Active hardware models. Defaults to the configured set.
        fetch_raw_events: Raw-event collaborator. When omitted, events are
            read from ``curtailment_records`` inside the date's transaction.
        locks: Lock registry shared by workers (one per process).
        intervals_per_day: Expected settlement periods per day.
        interval_seconds: Length of one settlement period.
        max_workers: Default worker pool size for date ranges.
        yield_places: Decimal places persisted for yields.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        *,
        difficulty_resolver: Optional[DifficultyResolver] = None,
        reward_schedule: Optional[BlockRewardSchedule] = None,
        hardware: Optional[Sequence[HardwareSpec]] = None,
        fetch_raw_events: Optional[EventFetcher] = None,
        locks: Optional[LockRegistry] = None,
        intervals_per_day: Optional[int] = None,
        interval_seconds: Optional[int] = None,
        max_workers: Optional[int] = None,
        yield_places: Optional[int] = None,
    ) -> None:
        if session_factory is None:
            from curtailment_mining.core.database import sync_session_factory

            session_factory = sync_session_factory

        self._session_factory = session_factory
        self._difficulty = difficulty_resolver or DatabaseDifficultyResolver(session_factory)
        self._rewards = reward_schedule or BlockRewardSchedule()
        self._hardware = active_hardware(hardware)
        self._fetch_raw_events = fetch_raw_events
        self._locks = locks or LockRegistry()
        self._intervals_per_day = positive_setting(
            "intervals_per_day", intervals_per_day, settings.intervals_per_day
        )
        self._interval_seconds = positive_setting(
            "interval_seconds", interval_seconds, settings.interval_seconds
        )
        self._max_workers = positive_setting(
            "max_workers", max_workers, settings.reconcile_max_workers
        )
        self._yield_places = settings.yield_decimal_places if yield_places is None else yield_places

    @property
    def model_names(self) -> list[str]:
        return [spec.model for spec in self._hardware]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def reconcile(
        self,
        start: date,
        end: Optional[date] = None,
        *,
        max_workers: Optional[int] = None,
    ) -> ReconcileReport:
        """Reconcile every date in ``[start, end]`` (blocking).

        Must not be called from inside a running event loop; use
        ``reconcile_async`` there.
        """
        return asyncio.run(self.reconcile_async(start, end, max_workers=max_workers))

    async def reconcile_async(
        self,
        start: date,
        end: Optional[date] = None,
        *,
        max_workers: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ReconcileReport:
        """Reconcile ``[start, end]`` with a bounded pool of date workers.

        Args:
            start: First date (inclusive).
            end: Last date (inclusive); defaults to ``start``.
            max_workers: Concurrent dates; defaults to the configured pool size.
            cancel_event: When set, no further dates are scheduled. In-flight
                dates complete and unscheduled ones are listed in ``skipped``.

        Returns:
            ReconcileReport with one outcome per scheduled date.
        """
        end = start if end is None else end
        if end < start:
            raise ValueError(f"end date {end} precedes start date {start}")

        workers = positive_setting("max_workers", max_workers, self._max_workers)
        semaphore = asyncio.Semaphore(workers)
        report = ReconcileReport(start=start, end=end)
        days = list(iter_dates(start, end))
        t0 = time.monotonic()

        logger.info(
            "reconcile_started",
            run_id=report.run_id,
            start=start.isoformat(),
            end=end.isoformat(),
            dates=len(days),
            workers=workers,
            models=self.model_names,
        )

        async def _worker(day: date) -> None:
            try:
                outcome = await asyncio.to_thread(self.reconcile_date, day)
            finally:
                semaphore.release()
            report.outcomes.append(outcome)

        tasks: list[asyncio.Task] = []
        for index, day in enumerate(days):
            await semaphore.acquire()
            if cancel_event is not None and cancel_event.is_set():
                semaphore.release()
                report.cancelled = True
                report.skipped = days[index:]
                logger.warning(
                    "reconcile_cancelled",
                    run_id=report.run_id,
                    next_date=day.isoformat(),
                    skipped=len(report.skipped),
                )
                break
            tasks.append(asyncio.create_task(_worker(day)))

        await asyncio.gather(*tasks)

        report.outcomes.sort(key=lambda o: o.date)
        report.duration_seconds = time.monotonic() - t0
        logger.info(
            "reconcile_completed",
            run_id=report.run_id,
            processed=report.dates_processed,
            failed=len(report.failed_dates),
            skipped=len(report.skipped),
            calculations=report.calculations_written,
            aggregates=report.aggregates_updated,
            duration=f"{report.duration_seconds:.1f}s",
        )
        return report

    def reconcile_date(self, day: date) -> DateOutcome:
        """Reconcile a single date in one transaction. Never raises."""
        outcome = DateOutcome(date=day)
        t0 = time.monotonic()
        with date_context(day):
            try:
                self._run_date(day, outcome)
            except Exception as exc:  # noqa: BLE001
                state = outcome.state
                outcome.fail(f"{type(exc).__name__}: {exc}")
                logger.error(
                    "date_failed",
                    state=state.value,
                    error=outcome.reason,
                )
            outcome.duration_seconds = time.monotonic() - t0
        return outcome

    # ------------------------------------------------------------------
    # Per-date pipeline
    # ------------------------------------------------------------------
    def _run_date(self, day: date, outcome: DateOutcome) -> None:
        models = self.model_names
        with self._session_factory() as session:
            store = AggregateStore(session)
            try:
                with self._locks.hold(LockScope.DATE, day, session):
                    outcome.advance(ReconcileState.DEDUPLICATING)
                    canonical = self._deduplicate(day, store, outcome)

                    outcome.advance(ReconcileState.CALCULATING)
                    self._calculate(day, canonical, store, outcome)

                    outcome.advance(ReconcileState.AGGREGATING_DAY)
                    daily = store.daily_totals_from_calculations(day, models)
                    outcome.aggregates_updated += store.upsert_daily(day, daily)

                    with self._locks.hold(LockScope.MONTH, day, session):
                        outcome.advance(ReconcileState.AGGREGATING_MONTH)
                        year_month = year_month_of(day)
                        monthly = store.monthly_totals_from_daily(year_month, models)
                        outcome.aggregates_updated += store.upsert_monthly(year_month, monthly)

                        with self._locks.hold(LockScope.YEAR, day, session):
                            outcome.advance(ReconcileState.AGGREGATING_YEAR)
                            yearly = store.yearly_totals_from_monthly(day.year, models)
                            outcome.aggregates_updated += store.upsert_yearly(day.year, yearly)
                            session.commit()
            except Exception:
                session.rollback()
                raise

        outcome.advance(ReconcileState.RECONCILED)
        logger.info(
            "date_reconciled",
            duplicates_removed=outcome.duplicates_removed,
            calculations=outcome.calculations_written,
            orphans_removed=outcome.calculations_removed,
            aggregates=outcome.aggregates_updated,
            invalid_units=len(outcome.invalid_units),
            warnings=len(outcome.warnings),
        )

    def _deduplicate(
        self, day: date, store: AggregateStore, outcome: DateOutcome
    ) -> list[CurtailmentEvent]:
        events, foreign = load_day_events(day, store, self._fetch_raw_events)
        if foreign:
            message = f"ignored {foreign} event(s) dated outside {day}"
            logger.warning("foreign_events_ignored", count=foreign)
            outcome.warnings.append(message)

        result = dedupe(events)
        store.delete_events(result.discarded_record_ids)
        outcome.duplicates_removed = result.removed_count
        return result.canonical

    def _calculate(
        self,
        day: date,
        canonical: Sequence[CurtailmentEvent],
        store: AggregateStore,
        outcome: DateOutcome,
    ) -> None:
        curtailed = [e for e in canonical if e.is_curtailed]
        records: list[dict] = []
        expected: set[tuple[int, str, str]] = set()

        if curtailed:
            difficulty = self._difficulty.resolve(day)
            if difficulty.is_fallback:
                message = (
                    f"difficulty for {day} missing; using {difficulty.value:g} "
                    f"from {difficulty.effective_date}"
                )
                logger.warning(
                    "difficulty_fallback",
                    effective_date=difficulty.effective_date.isoformat(),
                    difficulty=difficulty.value,
                )
                outcome.warnings.append(message)
            reward = self._rewards.resolve(day)

            out_of_range = sorted(
                {e.interval for e in curtailed if e.interval > self._intervals_per_day}
            )
            if out_of_range:
                outcome.warnings.append(
                    f"intervals beyond {self._intervals_per_day}: {out_of_range}"
                )

            computed_at = utcnow()
            for event in curtailed:
                energy = event.curtailed_mwh.quantize(_ENERGY_QUANTUM)
                compensation = abs(Decimal(event.compensation)).quantize(_MONEY_QUANTUM)
                for spec in self._hardware:
                    try:
                        if event.interval < 1:
                            raise InputValidationError(f"interval must be >= 1, got {event.interval}")
                        value = estimate_yield(
                            float(energy),
                            spec,
                            difficulty.value,
                            self._interval_seconds,
                            reward.value,
                        )
                    except InputValidationError as exc:
                        logger.warning(
                            "calculation_rejected",
                            interval=event.interval,
                            source_id=event.source_id,
                            model=spec.model,
                            error=str(exc),
                        )
                        outcome.invalid_units.append(
                            f"P{event.interval}/{event.source_id}/{spec.model}: {exc}"
                        )
                        continue

                    expected.add((event.interval, event.source_id, spec.model))
                    records.append(
                        {
                            "settlement_date": day,
                            "settlement_period": event.interval,
                            "farm_id": event.source_id,
                            "miner_model": spec.model,
                            "estimated_yield": quantize_yield(value, self._yield_places),
                            "difficulty": difficulty.value,
                            "block_reward": reward.value,
                            "curtailed_energy_mwh": energy,
                            "compensation": compensation,
                            "computed_at": computed_at,
                        }
                    )

        orphans = store.calculation_keys(day, self.model_names) - expected
        outcome.calculations_removed = store.delete_calculations(day, orphans)
        outcome.calculations_written = store.upsert_calculations(records)

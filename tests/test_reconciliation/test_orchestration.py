"""Tests for date-range orchestration: worker bound, cancellation, lock order."""

import asyncio
import threading
import time
from contextlib import contextmanager
from datetime import date, timedelta

import pytest

from curtailment_mining.core.enums import LockScope, ReconcileState
from curtailment_mining.reconciliation import DateOutcome, LockRegistry, Reconciler, iter_dates
from curtailment_mining.reconciliation.locks import advisory_lock_id, lock_key

START = date(2024, 3, 1)


class _StubReconciler(Reconciler):
    """Reconciler whose per-date work is a short sleep, for scheduling tests."""

    def __init__(self, delay: float = 0.02, on_date=None, **kwargs):
        super().__init__(lambda: None, difficulty_resolver=object(), **kwargs)
        self.delay = delay
        self.on_date = on_date
        self.seen: list[date] = []
        self.active = 0
        self.peak = 0
        self._guard = threading.Lock()

    def reconcile_date(self, day):
        with self._guard:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.seen.append(day)
        time.sleep(self.delay)
        if self.on_date is not None:
            self.on_date(day)
        with self._guard:
            self.active -= 1
        return DateOutcome(date=day, state=ReconcileState.RECONCILED)


class TestIterDates:
    def test_inclusive(self):
        assert list(iter_dates(START, START + timedelta(days=2))) == [
            date(2024, 3, 1),
            date(2024, 3, 2),
            date(2024, 3, 3),
        ]


class TestReconcileRange:
    def test_worker_pool_is_bounded(self):
        stub = _StubReconciler(max_workers=3)
        report = stub.reconcile(START, START + timedelta(days=8))
        assert report.dates_processed == 9
        assert 1 <= stub.peak <= 3
        assert [o.date for o in report.outcomes] == list(iter_dates(START, START + timedelta(days=8)))

    def test_end_before_start_rejected(self):
        with pytest.raises(ValueError):
            _StubReconciler().reconcile(START, START - timedelta(days=1))

    def test_single_date_default_end(self):
        report = _StubReconciler().reconcile(START)
        assert report.dates_processed == 1
        assert report.start == report.end == START

    @pytest.mark.asyncio
    async def test_cancel_before_start_skips_everything(self):
        cancel = asyncio.Event()
        cancel.set()
        stub = _StubReconciler()
        report = await stub.reconcile_async(START, START + timedelta(days=4), cancel_event=cancel)
        assert report.cancelled
        assert report.outcomes == []
        assert len(report.skipped) == 5

    @pytest.mark.asyncio
    async def test_cancel_lets_in_flight_date_finish(self):
        loop = asyncio.get_running_loop()
        cancel = asyncio.Event()

        def _cancel_after_first(day):
            loop.call_soon_threadsafe(cancel.set)

        stub = _StubReconciler(on_date=_cancel_after_first, max_workers=1)
        report = await stub.reconcile_async(START, START + timedelta(days=4), cancel_event=cancel)

        assert report.cancelled
        assert [o.date for o in report.outcomes] == [START]
        assert report.outcomes[0].state is ReconcileState.RECONCILED
        assert report.skipped == list(iter_dates(START + timedelta(days=1), START + timedelta(days=4)))
        assert stub.seen == [START]


# ---------------------------------------------------------------------------
# Locks
# ---------------------------------------------------------------------------
class _RecordingLocks(LockRegistry):
    def __init__(self):
        super().__init__()
        self.events: list[tuple[str, LockScope]] = []

    @contextmanager
    def hold(self, scope, day, session=None):
        with super().hold(scope, day, session) as name:
            self.events.append(("acquire", scope))
            try:
                yield name
            finally:
                self.events.append(("release", scope))


class TestLocks:
    def test_lock_keys(self):
        day = date(2024, 3, 9)
        assert lock_key(LockScope.DATE, day) == "date:2024-03-09"
        assert lock_key(LockScope.MONTH, day) == "month:2024-03"
        assert lock_key(LockScope.YEAR, day) == "year:2024"

    def test_advisory_id_is_stable_signed_64_bit(self):
        first = advisory_lock_id("month:2024-03")
        assert first == advisory_lock_id("month:2024-03")
        assert first != advisory_lock_id("month:2024-04")
        assert -(2**63) <= first < 2**63

    def test_acquired_date_month_year_released_in_reverse(self, make_reconciler, seed_events):
        locks = _RecordingLocks()
        seed_events(START, [(1, "F1", "-5")])
        outcome = make_reconciler(locks=locks).reconcile_date(START)

        assert outcome.succeeded
        assert locks.events == [
            ("acquire", LockScope.DATE),
            ("acquire", LockScope.MONTH),
            ("acquire", LockScope.YEAR),
            ("release", LockScope.YEAR),
            ("release", LockScope.MONTH),
            ("release", LockScope.DATE),
        ]

    def test_locks_released_after_failure(self, make_reconciler):
        def _fetch(day):
            raise RuntimeError("nope")

        locks = _RecordingLocks()
        outcome = make_reconciler(locks=locks, fetch_raw_events=_fetch).reconcile_date(START)
        assert outcome.state is ReconcileState.FAILED
        assert locks.events == [("acquire", LockScope.DATE), ("release", LockScope.DATE)]

    def test_month_lock_blocks_sibling_date(self):
        registry = LockRegistry()
        holding = threading.Event()
        release = threading.Event()
        sibling_acquired = threading.Event()

        def _first():
            with registry.hold(LockScope.MONTH, date(2024, 3, 10)):
                holding.set()
                release.wait(2)

        def _sibling():
            with registry.hold(LockScope.MONTH, date(2024, 3, 15)):
                sibling_acquired.set()

        t1 = threading.Thread(target=_first)
        t1.start()
        assert holding.wait(2)
        t2 = threading.Thread(target=_sibling)
        t2.start()
        assert not sibling_acquired.wait(0.1)
        release.set()
        assert sibling_acquired.wait(2)
        t1.join()
        t2.join()

    def test_different_months_do_not_contend(self):
        registry = LockRegistry()
        with registry.hold(LockScope.MONTH, date(2024, 3, 10)):
            done = threading.Event()

            def _other():
                with registry.hold(LockScope.MONTH, date(2024, 4, 10)):
                    done.set()

            t = threading.Thread(target=_other)
            t.start()
            assert done.wait(2)
            t.join()

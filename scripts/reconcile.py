#!/usr/bin/env python3
"""Date-range reconciliation runner for the curtailment mining engine.

Runs the idempotent per-date reconcile (dedupe -> calculate -> daily ->
monthly -> yearly) over an inclusive date range with a bounded pool of
workers, then prints a per-date summary table.

Features:
- Idempotent: every write is an upsert, so re-running any range is safe.
- Fault-tolerant: a FAILED date never rolls back other dates.
- Scheduler-side retry: FAILED dates are retried with exponential backoff
  via tenacity (``--retries``); the core itself never loops.
- CLI via argparse with ``--start-date``, ``--end-date``, ``--workers``,
  ``--retries``, ``--json-logs`` and ``--dry-run`` flags.

Usage::

    python scripts/reconcile.py --start-date 2024-03-01 --end-date 2024-03-31
    python scripts/reconcile.py --start-date 2024-03-15 --retries 3
    python scripts/reconcile.py --start-date 2024-01-01 --end-date 2024-12-31 --dry-run
"""

from __future__ import annotations

import argparse
import sys
from datetime import date, datetime
from pathlib import Path

# Ensure project root is on sys.path so ``curtailment_mining.*`` imports work
# when this script is executed directly.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_exponential_jitter

from curtailment_mining.core.config import settings
from curtailment_mining.core.utils.logging_config import configure_logging, get_logger
from curtailment_mining.reconciliation import DateOutcome, ReconcileReport, Reconciler, iter_dates

logger = get_logger("scripts.reconcile")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _format_number(n: int) -> str:
    """Return an integer formatted with comma thousands separator."""
    return f"{n:,}"


def _format_seconds(s: float) -> str:
    """Return seconds as a human-friendly string."""
    if s < 60:
        return f"{s:.1f}s"
    minutes = int(s // 60)
    secs = s % 60
    return f"{minutes}m{secs:.0f}s"


def _parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD string into a date object."""
    return datetime.strptime(value, "%Y-%m-%d").date()


# ---------------------------------------------------------------------------
# Retry of FAILED dates
# ---------------------------------------------------------------------------
def retry_failed_dates(
    reconciler: Reconciler,
    report: ReconcileReport,
    retries: int,
    wait_initial: float = 1.0,
    wait_max: float = 30.0,
) -> ReconcileReport:
    """Re-run each FAILED date up to ``retries`` more times with backoff.

    The report's outcomes are replaced in place by the last attempt for
    each retried date.
    """
    if retries <= 0:
        return report

    for index, outcome in enumerate(report.outcomes):
        if outcome.succeeded:
            continue

        retrying = Retrying(
            retry=retry_if_result(lambda o: not o.succeeded),
            stop=stop_after_attempt(retries),
            wait=wait_exponential_jitter(initial=wait_initial, max=wait_max, jitter=wait_initial),
            retry_error_callback=lambda state: state.outcome.result(),
        )
        day = outcome.date
        logger.info("date_retry_scheduled", date=day.isoformat(), retries=retries, reason=outcome.reason)
        report.outcomes[index] = retrying(reconciler.reconcile_date, day)

    return report


# ---------------------------------------------------------------------------
# Summary table
# ---------------------------------------------------------------------------
def _status_of(outcome: DateOutcome) -> str:
    if outcome.succeeded:
        return "OK" if not outcome.warnings else "OK (warn)"
    return f"\033[91mFAILED\033[0m {outcome.reason}"


def print_summary(report: ReconcileReport) -> None:
    """Print one line per date plus totals."""
    print()
    print("=" * 72)
    print(" SUMMARY")
    print("=" * 72)
    header = f" {'Date':<10} | {'Dups':>5} | {'Calcs':>7} | {'Aggs':>5} | {'Time':>7} | Status"
    print(header)
    print(" " + "-" * (len(header) - 1))

    for outcome in report.outcomes:
        print(
            f" {outcome.date.isoformat():<10} | "
            f"{outcome.duplicates_removed:>5} | "
            f"{_format_number(outcome.calculations_written):>7} | "
            f"{outcome.aggregates_updated:>5} | "
            f"{_format_seconds(outcome.duration_seconds):>7} | "
            f"{_status_of(outcome)}"
        )
        for warning in outcome.warnings:
            print(f"   ! {warning}")
        if outcome.invalid_units:
            print(f"   ! {len(outcome.invalid_units)} invalid unit(s), first: {outcome.invalid_units[0]}")

    print(" " + "-" * (len(header) - 1))
    overall = "ALL OK" if not report.failed_dates else f"{len(report.failed_dates)} FAILED"
    print(
        f" {'TOTAL':<10} | "
        f"{sum(o.duplicates_removed for o in report.outcomes):>5} | "
        f"{_format_number(report.calculations_written):>7} | "
        f"{report.aggregates_updated:>5} | "
        f"{_format_seconds(report.duration_seconds):>7} | "
        f"{overall}"
    )
    if report.skipped:
        print(f" Skipped (cancelled): {len(report.skipped)} date(s) from {report.skipped[0]}")
    print("=" * 72)
    print()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------
def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Curtailment Mining - Date-Range Reconciliation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python scripts/reconcile.py --start-date 2024-03-01 --end-date 2024-03-31\n"
            "  python scripts/reconcile.py --start-date 2024-03-15 --retries 3\n"
            "  python scripts/reconcile.py --start-date 2024-01-01 --end-date 2024-12-31 --dry-run\n"
        ),
    )
    parser.add_argument(
        "--start-date",
        type=str,
        required=True,
        help="Start date in YYYY-MM-DD format",
    )
    parser.add_argument(
        "--end-date",
        type=str,
        default=None,
        help="End date in YYYY-MM-DD format (default: start date)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=settings.reconcile_max_workers,
        help=f"Dates reconciled concurrently (default: {settings.reconcile_max_workers})",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=0,
        help="Extra attempts for each FAILED date, with exponential backoff (default: 0)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=False,
        help="Emit JSON log lines instead of the console format",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="List the dates and models that would be reconciled, then exit",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Entry point: parse arguments, reconcile, print summary."""
    args = parse_args(argv)
    configure_logging(json_output=args.json_logs, force=True)

    start_date = _parse_date(args.start_date)
    end_date = _parse_date(args.end_date) if args.end_date else start_date
    if start_date > end_date:
        print(f"Error: start-date ({start_date}) is after end-date ({end_date})")
        return 1
    if args.workers < 1:
        print(f"Error: --workers must be >= 1, got {args.workers}")
        return 1

    days = list(iter_dates(start_date, end_date))
    print()
    print("=" * 72)
    print(" CURTAILMENT MINING - RECONCILE")
    print(f" Range: {start_date} to {end_date} | Dates: {len(days)} | Workers: {args.workers}")
    print(f" Models: {', '.join(settings.hardware_model_names)}")
    print("=" * 72)

    if args.dry_run:
        print("\n  *** DRY RUN - nothing will be written ***\n")
        for day in days:
            print(f"  {day.isoformat()}")
        print(f"\n  Would reconcile {len(days)} date(s).")
        return 0

    reconciler = Reconciler()
    report = reconciler.reconcile(start_date, end_date, max_workers=args.workers)
    report = retry_failed_dates(reconciler, report, args.retries)
    print_summary(report)
    return 0 if not report.failed_dates else 1


if __name__ == "__main__":
    sys.exit(main())

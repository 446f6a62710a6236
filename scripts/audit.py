#!/usr/bin/env python3
"""Read-only completeness audit for the curtailment mining engine.

Three modes:
- ``--date D``: per-date findings (missing intervals, missing calculations,
  aggregate mismatches, pending duplicates, orphaned calculations,
  calculations priced at a superseded difficulty).
- ``--partial START END``: dates with some but not all settlement periods.
- ``--year Y``: expected vs. actual calculation coverage for a year.

Nothing is written. Exit code is 1 when the audited scope needs a
reconcile run, so the script can gate a scheduler job.

Usage::

    python scripts/audit.py --date 2024-03-15
    python scripts/audit.py --partial 2024-03-01 2024-03-31
    python scripts/audit.py --year 2024
"""

from __future__ import annotations

import argparse
import sys
from datetime import date, datetime
from pathlib import Path

# Ensure project root is on sys.path so ``curtailment_mining.*`` imports work
# when this script is executed directly.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from curtailment_mining.core.utils.logging_config import configure_logging
from curtailment_mining.reconciliation import AuditReport, CompletenessAuditor, YearStatus
from curtailment_mining.reference import DatabaseDifficultyResolver

# ---------------------------------------------------------------------------
# Color helpers
# ---------------------------------------------------------------------------
GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
RESET = "\033[0m"


def _ok(msg: str) -> str:
    return f"{GREEN}{msg}{RESET}"


def _fail(msg: str) -> str:
    return f"{RED}{msg}{RESET}"


def _warn(msg: str) -> str:
    return f"{YELLOW}{msg}{RESET}"


def _parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD string into a date object."""
    return datetime.strptime(value, "%Y-%m-%d").date()


def _compress(intervals: set[int]) -> str:
    """Render ``{1, 2, 3, 7}`` as ``1-3, 7``."""
    if not intervals:
        return "-"
    ordered = sorted(intervals)
    runs: list[str] = []
    start = prev = ordered[0]
    for n in ordered[1:]:
        if n == prev + 1:
            prev = n
            continue
        runs.append(f"{start}-{prev}" if start != prev else str(start))
        start = prev = n
    runs.append(f"{start}-{prev}" if start != prev else str(start))
    return ", ".join(runs)


# ---------------------------------------------------------------------------
# Report printers
# ---------------------------------------------------------------------------
def print_date_report(report: AuditReport) -> None:
    print()
    print("=" * 64)
    print(f" AUDIT {report.date.isoformat()}")
    print("=" * 64)
    print(f"  Canonical events:      {report.event_count}")
    print(f"  Calculations (active): {report.calculation_count}")

    gap = _compress(report.missing_intervals)
    line = f"  Missing intervals:     {gap}"
    print(_warn(line) if report.missing_intervals else line)
    if report.unexpected_intervals:
        print(_warn(f"  Unexpected intervals:  {_compress(report.unexpected_intervals)}"))
    if report.pending_duplicates:
        print(_warn(f"  Pending duplicates:    {report.pending_duplicates}"))

    for model, keys in sorted(report.incomplete_models.items()):
        sample = ", ".join(f"P{i}/{s}" for i, s in keys[:5])
        more = f" (+{len(keys) - 5} more)" if len(keys) > 5 else ""
        print(_fail(f"  {model}: {len(keys)} missing calculation(s): {sample}{more}"))
    if report.orphaned_calculations:
        print(_fail(f"  Orphaned calculations: {len(report.orphaned_calculations)}"))
    if report.stale_difficulty:
        print(_fail(f"  Stale difficulty:      {len(report.stale_difficulty)} calculation(s)"))
    for m in report.aggregate_mismatches:
        persisted = "missing" if m.persisted is None else str(m.persisted)
        print(_fail(
            f"  {m.level.value:<8} {m.period_key:<10} {m.model:<9} "
            f"expected={m.expected} persisted={persisted}"
        ))

    print("-" * 64)
    if report.is_clean:
        print(_ok("  CLEAN"))
    elif report.needs_reconcile:
        print(_fail("  NEEDS RECONCILE"))
    else:
        print(_warn("  UPSTREAM GAPS ONLY"))
    print("=" * 64)


def print_partial_dates(start: date, end: date, partial: dict[date, int], expected: int) -> None:
    print()
    print("=" * 64)
    print(f" PARTIAL DATES {start} to {end} (expected {expected} periods)")
    print("=" * 64)
    if not partial:
        print(_ok("  None"))
    for day, count in partial.items():
        print(_warn(f"  {day.isoformat()}: {count}/{expected}"))
    print("=" * 64)


def print_year_status(status: YearStatus) -> None:
    print()
    print("=" * 64)
    print(f" YEAR {status.year}")
    print("=" * 64)
    print(f"  Dates with events:     {status.dates_with_events}")
    print(f"  Expected calculations: {status.expected_calculations:,}")
    print(f"  Actual calculations:   {status.actual_calculations:,}")
    pct = f"  Completion:            {status.completion_pct:.2f}%"
    print(_ok(pct) if status.completion_pct >= 100 else _warn(pct))
    if status.dates_with_issues:
        shown = ", ".join(d.isoformat() for d in status.dates_with_issues[:10])
        more = f" (+{len(status.dates_with_issues) - 10} more)" if len(status.dates_with_issues) > 10 else ""
        print(_fail(f"  Dates with issues:     {shown}{more}"))
    print("=" * 64)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------
def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Curtailment Mining - Completeness Audit (read-only)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python scripts/audit.py --date 2024-03-15\n"
            "  python scripts/audit.py --partial 2024-03-01 2024-03-31\n"
            "  python scripts/audit.py --year 2024\n"
        ),
    )
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--date", type=str, help="Audit a single date (YYYY-MM-DD)")
    mode.add_argument(
        "--partial",
        nargs=2,
        metavar=("START", "END"),
        help="List dates with partial interval coverage in [START, END]",
    )
    mode.add_argument("--year", type=int, help="Summarise calculation coverage for a year")
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=False,
        help="Emit JSON log lines instead of the console format",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Entry point: run the requested audit and print findings."""
    args = parse_args(argv)
    configure_logging(json_output=args.json_logs, force=True)

    from curtailment_mining.core.database import sync_session_factory

    auditor = CompletenessAuditor(
        sync_session_factory,
        difficulty_resolver=DatabaseDifficultyResolver(sync_session_factory),
    )

    if args.date:
        report = auditor.audit_date(_parse_date(args.date))
        print_date_report(report)
        return 1 if report.needs_reconcile else 0

    if args.partial:
        start, end = (_parse_date(v) for v in args.partial)
        if start > end:
            print(f"Error: START ({start}) is after END ({end})")
            return 1
        partial = auditor.find_partial_dates(start, end)
        print_partial_dates(start, end, partial, auditor.intervals_per_day)
        return 0

    status = auditor.summarize_year(args.year)
    print_year_status(status)
    return 0 if not status.dates_with_issues else 1


if __name__ == "__main__":
    sys.exit(main())

"""Tests for the operator CLIs (argument parsing, retry, formatting)."""

import importlib.util
from datetime import date
from pathlib import Path

import pytest

from curtailment_mining.core.enums import ReconcileState
from curtailment_mining.reconciliation import DateOutcome, ReconcileReport

SCRIPTS_DIR = Path(__file__).resolve().parent.parent / "scripts"


def _load_script(name):
    spec = importlib.util.spec_from_file_location(f"scripts_{name}", SCRIPTS_DIR / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture(scope="module")
def reconcile_cli():
    return _load_script("reconcile")


@pytest.fixture(scope="module")
def audit_cli():
    return _load_script("audit")


# ---------------------------------------------------------------------------
# scripts/reconcile.py
# ---------------------------------------------------------------------------
class TestReconcileCli:
    def test_parse_args(self, reconcile_cli):
        args = reconcile_cli.parse_args([
            "--start-date", "2024-03-01", "--end-date", "2024-03-31",
            "--workers", "2", "--retries", "3", "--json-logs",
        ])
        assert args.start_date == "2024-03-01"
        assert args.end_date == "2024-03-31"
        assert args.workers == 2
        assert args.retries == 3
        assert args.json_logs
        assert not args.dry_run

    def test_start_date_required(self, reconcile_cli):
        with pytest.raises(SystemExit):
            reconcile_cli.parse_args([])

    def test_dry_run_returns_zero(self, reconcile_cli, capsys):
        assert reconcile_cli.main(["--start-date", "2024-03-01", "--end-date", "2024-03-03", "--dry-run"]) == 0
        out = capsys.readouterr().out
        assert "2024-03-02" in out
        assert "Would reconcile 3 date(s)" in out

    def test_inverted_range_rejected(self, reconcile_cli):
        assert reconcile_cli.main(["--start-date", "2024-03-05", "--end-date", "2024-03-01"]) == 1

    def test_format_seconds(self, reconcile_cli):
        assert reconcile_cli._format_seconds(12.34) == "12.3s"
        assert reconcile_cli._format_seconds(125) == "2m5s"

    def test_retry_failed_dates_replaces_outcome(self, reconcile_cli):
        day = date(2024, 3, 10)

        class _Flaky:
            calls = 0

            def reconcile_date(self, d):
                self.calls += 1
                state = ReconcileState.RECONCILED if self.calls >= 2 else ReconcileState.FAILED
                return DateOutcome(date=d, state=state, reason=None if self.calls >= 2 else "flaky")

        flaky = _Flaky()
        report = ReconcileReport(start=day, end=day)
        report.outcomes.append(DateOutcome(date=day, state=ReconcileState.FAILED, reason="first"))

        reconcile_cli.retry_failed_dates(flaky, report, retries=3, wait_initial=0, wait_max=0)
        assert flaky.calls == 2
        assert report.failed_dates == []

    def test_retry_gives_up_with_last_outcome(self, reconcile_cli):
        day = date(2024, 3, 10)

        class _Broken:
            calls = 0

            def reconcile_date(self, d):
                self.calls += 1
                return DateOutcome(date=d, state=ReconcileState.FAILED, reason=f"attempt {self.calls}")

        broken = _Broken()
        report = ReconcileReport(start=day, end=day)
        report.outcomes.append(DateOutcome(date=day, state=ReconcileState.FAILED, reason="first"))

        reconcile_cli.retry_failed_dates(broken, report, retries=2, wait_initial=0, wait_max=0)
        assert broken.calls == 2
        assert report.errors == {day: "attempt 2"}

    def test_print_summary(self, reconcile_cli, capsys):
        day = date(2024, 3, 10)
        report = ReconcileReport(start=day, end=day)
        report.outcomes.append(
            DateOutcome(date=day, state=ReconcileState.RECONCILED, calculations_written=1234,
                        warnings=["difficulty fallback"])
        )
        reconcile_cli.print_summary(report)
        out = capsys.readouterr().out
        assert "1,234" in out
        assert "ALL OK" in out
        assert "difficulty fallback" in out


# ---------------------------------------------------------------------------
# scripts/audit.py
# ---------------------------------------------------------------------------
class TestAuditCli:
    def test_modes_are_mutually_exclusive(self, audit_cli):
        with pytest.raises(SystemExit):
            audit_cli.parse_args(["--date", "2024-03-01", "--year", "2024"])

    def test_partial_takes_two_dates(self, audit_cli):
        args = audit_cli.parse_args(["--partial", "2024-03-01", "2024-03-31"])
        assert args.partial == ["2024-03-01", "2024-03-31"]
        assert args.date is None

    def test_compress_intervals(self, audit_cli):
        assert audit_cli._compress({1, 2, 3, 7, 9, 10}) == "1-3, 7, 9-10"
        assert audit_cli._compress(set()) == "-"

"""Reconciliation pipeline: dedupe, audit, and idempotent per-date reconcile.

Usage::

    from curtailment_mining.reconciliation import CompletenessAuditor, Reconciler

    report = Reconciler().reconcile(date(2024, 3, 1), date(2024, 3, 31))
    audit = CompletenessAuditor().audit_date(date(2024, 3, 15))
"""

from curtailment_mining.reconciliation.auditor import (
    AggregateMismatch,
    AuditReport,
    CompletenessAuditor,
    YearStatus,
)
from curtailment_mining.reconciliation.deduplicator import DedupResult, dedupe
from curtailment_mining.reconciliation.locks import LockRegistry
from curtailment_mining.reconciliation.reconciler import (
    DateOutcome,
    ReconcileReport,
    Reconciler,
    iter_dates,
)

__all__ = [
    "AggregateMismatch",
    "AuditReport",
    "CompletenessAuditor",
    "DateOutcome",
    "DedupResult",
    "LockRegistry",
    "ReconcileReport",
    "Reconciler",
    "YearStatus",
    "dedupe",
    "iter_dates",
]

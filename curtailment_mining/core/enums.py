"""Shared enumerations used across the reconciliation engine.

All enums use the (str, Enum) mixin pattern so their values are
serializable strings, compatible with database storage and JSON output.
"""

from enum import Enum


class ReconcileState(str, Enum):
    """Per-date reconciliation state machine.

    A date only moves forward through the non-terminal states. RECONCILED
    and FAILED are terminal.
    """

    PENDING = "PENDING"
    DEDUPLICATING = "DEDUPLICATING"
    CALCULATING = "CALCULATING"
    AGGREGATING_DAY = "AGGREGATING_DAY"
    AGGREGATING_MONTH = "AGGREGATING_MONTH"
    AGGREGATING_YEAR = "AGGREGATING_YEAR"
    RECONCILED = "RECONCILED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (ReconcileState.RECONCILED, ReconcileState.FAILED)


class AggregateLevel(str, Enum):
    """Pre-aggregated summary levels maintained above the event level."""

    DAILY = "DAILY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class LockScope(str, Enum):
    """Key spaces guarded during a date's reconciliation, in acquisition order."""

    DATE = "DATE"
    MONTH = "MONTH"
    YEAR = "YEAR"

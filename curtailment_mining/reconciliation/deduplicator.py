"""Deduplicator -- collapse duplicate (interval, source) rows for one date.

Policy: more than one row for the same (interval, source_id) is an
ingestion artifact, not several legitimate reports. Exactly one row
survives -- the most recently ingested (``ingested_at``, then the higher
``record_id`` as tie-break) -- and the others are discarded. Magnitudes are
never summed across duplicates.

Keep-latest is a policy decision, not something upstream guarantees; if
the settlement provider ever sends partial bids that must be added
together, this is the single place to change.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable

from curtailment_mining.core.events import CurtailmentEvent
from curtailment_mining.core.utils.logging_config import get_logger

logger = get_logger("reconciliation.deduplicator")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class DedupResult:
    """Output of a deduplication pass over one date.

    Attributes:
        canonical: One event per (interval, source_id), ordered by key.
        discarded: Rows that lost to a more recent duplicate.
        duplicate_groups: Number of keys that had more than one row.
        discarded_mwh: Unsigned magnitude carried by discarded rows.
    """

    canonical: list[CurtailmentEvent] = field(default_factory=list)
    discarded: list[CurtailmentEvent] = field(default_factory=list)
    duplicate_groups: int = 0
    discarded_mwh: Decimal = Decimal("0")

    @property
    def removed_count(self) -> int:
        return len(self.discarded)

    @property
    def discarded_record_ids(self) -> list[int]:
        return [e.record_id for e in self.discarded if e.record_id is not None]


def _ingestion_order(event: CurtailmentEvent) -> tuple[datetime, int]:
    ingested = event.ingested_at or _EPOCH
    if ingested.tzinfo is None:
        ingested = ingested.replace(tzinfo=timezone.utc)
    return (ingested, event.record_id if event.record_id is not None else -1)


def dedupe(events: Iterable[CurtailmentEvent]) -> DedupResult:
    """Keep the most recently ingested row per (interval, source_id).

    Args:
        events: Raw events for a single calendar date.

    Returns:
        DedupResult with ``len(canonical) + removed_count`` equal to the
        number of input events.
    """
    groups: dict[tuple[int, str], list[CurtailmentEvent]] = defaultdict(list)
    for event in events:
        groups[event.key].append(event)

    result = DedupResult()
    for key in sorted(groups):
        members = groups[key]
        if len(members) == 1:
            result.canonical.append(members[0])
            continue

        ranked = sorted(members, key=_ingestion_order)
        keeper, losers = ranked[-1], ranked[:-1]
        result.canonical.append(keeper)
        result.discarded.extend(losers)
        result.duplicate_groups += 1
        result.discarded_mwh += sum((e.curtailed_mwh for e in losers), Decimal("0"))

    if result.duplicate_groups:
        logger.info(
            "duplicates_collapsed",
            groups=result.duplicate_groups,
            removed=result.removed_count,
            discarded_mwh=str(result.discarded_mwh),
        )
    return result

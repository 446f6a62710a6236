"""CurtailmentEvent -- the engine's view of one raw curtailment row."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class CurtailmentEvent:
    """One observation of energy curtailed at a farm for one settlement interval.

    Attributes:
        date: Settlement (calendar) date.
        interval: Settlement period, 1..N.
        source_id: Curtailed generator identifier (BMU / farm id).
        energy_mwh: Signed volume; negative denotes curtailment.
        compensation: Amount paid for the curtailment.
        source_label: Display name of the owning lead party.
        ingested_at: Arrival time, used to pick the canonical duplicate.
        record_id: Primary key in ``curtailment_records`` when persisted.
    """

    date: date
    interval: int
    source_id: str
    energy_mwh: Decimal
    compensation: Decimal
    source_label: Optional[str] = None
    ingested_at: Optional[datetime] = None
    record_id: Optional[int] = None

    @property
    def key(self) -> tuple[int, str]:
        """Deduplication key within a single date."""
        return (self.interval, self.source_id)

    @property
    def curtailed_mwh(self) -> Decimal:
        """Unsigned curtailed magnitude."""
        return abs(Decimal(self.energy_mwh))

    @property
    def is_curtailed(self) -> bool:
        return self.curtailed_mwh != 0

    @classmethod
    def from_record(cls, record) -> "CurtailmentEvent":
        """Build from a ``CurtailmentRecord`` ORM row."""
        return cls(
            date=record.settlement_date,
            interval=record.settlement_period,
            source_id=record.farm_id,
            energy_mwh=Decimal(record.volume),
            compensation=Decimal(record.payment),
            source_label=record.lead_party_name,
            ingested_at=record.ingested_at,
            record_id=record.id,
        )

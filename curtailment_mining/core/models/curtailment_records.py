"""Curtailment records -- raw half-hourly curtailment events per farm.

Written by the ingestion collaborator. The natural key
(settlement_date, settlement_period, farm_id) is deliberately NOT unique:
upstream duplicates land here and are collapsed by the deduplicator.
``ingested_at`` plus ``id`` order duplicates by arrival.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class CurtailmentRecord(Base):
    __tablename__ = "curtailment_records"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    settlement_date: Mapped[date] = mapped_column(Date, nullable=False)
    settlement_period: Mapped[int] = mapped_column(Integer, nullable=False)
    farm_id: Mapped[str] = mapped_column(String(50), nullable=False)
    lead_party_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    volume: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    payment: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    ingested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index(
            "ix_curtailment_records_natural_key",
            "settlement_date", "settlement_period", "farm_id",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<CurtailmentRecord {self.settlement_date} P{self.settlement_period} "
            f"{self.farm_id} volume={self.volume}>"
        )

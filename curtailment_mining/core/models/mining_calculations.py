"""Mining calculations -- estimated yield per event per hardware model.

Natural key: (settlement_date, settlement_period, farm_id, miner_model),
enforced as a unique constraint so every write can be an upsert. Curtailed
energy and compensation are copied from the canonical event so the daily
summary can be derived from this table alone.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class MiningCalculation(Base):
    __tablename__ = "mining_calculations"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    settlement_date: Mapped[date] = mapped_column(Date, nullable=False)
    settlement_period: Mapped[int] = mapped_column(Integer, nullable=False)
    farm_id: Mapped[str] = mapped_column(String(50), nullable=False)
    miner_model: Mapped[str] = mapped_column(String(30), nullable=False)
    estimated_yield: Mapped[Decimal] = mapped_column(Numeric(24, 8), nullable=False)
    difficulty: Mapped[float] = mapped_column(Float, nullable=False)
    block_reward: Mapped[float] = mapped_column(Float, nullable=False)
    curtailed_energy_mwh: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    compensation: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "settlement_date", "settlement_period", "farm_id", "miner_model",
            name="uq_mining_calculations_natural_key",
        ),
        Index("ix_mining_calculations_settlement_date", "settlement_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<MiningCalculation {self.settlement_date} P{self.settlement_period} "
            f"{self.farm_id} {self.miner_model} yield={self.estimated_yield}>"
        )

"""Daily, monthly and yearly mining summaries per hardware model.

Each level is derived only from the level directly below it:
mining_calculations -> daily -> monthly -> yearly. Natural keys are unique
constraints so the reconciler can upsert.
"""

from datetime import date

from sqlalchemy import Date, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, SummaryTotalsMixin


class DailyMiningSummary(SummaryTotalsMixin, Base):
    __tablename__ = "mining_daily_summaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    summary_date: Mapped[date] = mapped_column(Date, nullable=False)
    miner_model: Mapped[str] = mapped_column(String(30), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "summary_date", "miner_model",
            name="uq_mining_daily_summaries_natural_key",
        ),
    )

    def __repr__(self) -> str:
        return f"<DailyMiningSummary {self.summary_date} {self.miner_model} {self.total_yield}>"


class MonthlyMiningSummary(SummaryTotalsMixin, Base):
    __tablename__ = "mining_monthly_summaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    year_month: Mapped[str] = mapped_column(String(7), nullable=False)  # YYYY-MM
    miner_model: Mapped[str] = mapped_column(String(30), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "year_month", "miner_model",
            name="uq_mining_monthly_summaries_natural_key",
        ),
    )

    def __repr__(self) -> str:
        return f"<MonthlyMiningSummary {self.year_month} {self.miner_model} {self.total_yield}>"


class YearlyMiningSummary(SummaryTotalsMixin, Base):
    __tablename__ = "mining_yearly_summaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    miner_model: Mapped[str] = mapped_column(String(30), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "year", "miner_model",
            name="uq_mining_yearly_summaries_natural_key",
        ),
    )

    def __repr__(self) -> str:
        return f"<YearlyMiningSummary {self.year} {self.miner_model} {self.total_yield}>"

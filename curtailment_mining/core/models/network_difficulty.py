"""Network difficulty reference table.

One row per date on which a difficulty value became known. Lookups are
"most recent at or before" so gaps between adjustments are expected.
"""

from datetime import date
from typing import Optional

from sqlalchemy import Date, Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class NetworkDifficulty(Base):
    __tablename__ = "network_difficulty"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    difficulty: Mapped[float] = mapped_column(Float, nullable=False)
    source: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    __table_args__ = (
        UniqueConstraint("effective_date", name="uq_network_difficulty_effective_date"),
    )

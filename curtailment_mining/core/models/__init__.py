"""SQLAlchemy 2.0 ORM models for the curtailment mining engine.

Re-exports Base and all model classes for convenient imports:
  - 1 source table: CurtailmentRecord
  - 1 derived event table: MiningCalculation
  - 3 summary tables: DailyMiningSummary, MonthlyMiningSummary,
    YearlyMiningSummary
  - 1 reference table: NetworkDifficulty
"""

from .base import Base
from .curtailment_records import CurtailmentRecord
from .mining_calculations import MiningCalculation
from .network_difficulty import NetworkDifficulty
from .summaries import DailyMiningSummary, MonthlyMiningSummary, YearlyMiningSummary

__all__ = [
    "Base",
    "CurtailmentRecord",
    "MiningCalculation",
    "DailyMiningSummary",
    "MonthlyMiningSummary",
    "YearlyMiningSummary",
    "NetworkDifficulty",
]

"""SQLAlchemy 2.0 DeclarativeBase, naming conventions and shared columns.

All models inherit from Base. The naming convention keeps Alembic
constraint names stable across the event, calculation, summary and
reference tables. ``SummaryTotalsMixin`` carries the three running totals
that every aggregate level stores.
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, MetaData, Numeric
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Naming conventions for Alembic constraint management
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "pk": "pk_%(table_name)s",
}


def utcnow() -> datetime:
    """Timezone-aware UTC now, used for computed_at / updated_at stamps."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    metadata = MetaData(naming_convention=convention)


class SummaryTotalsMixin:
    """Totals shared by the daily, monthly and yearly summary tables."""

    total_yield: Mapped[Decimal] = mapped_column(Numeric(24, 8), nullable=False)
    total_energy_mwh: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    total_compensation: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

"""Initial schema: curtailment events, calculations, summaries, difficulty.

Creates the complete database schema for the curtailment mining engine:
- 1 source table: curtailment_records (duplicates allowed pre-dedup)
- 1 derived table: mining_calculations
- 3 summary tables: mining_daily/monthly/yearly_summaries
- 1 reference table: network_difficulty

Revision ID: c7a1d2e3f4b5
Revises: None
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "c7a1d2e3f4b5"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SUMMARY_TABLES = {
    "mining_daily_summaries": ("summary_date", sa.Date),
    "mining_monthly_summaries": ("year_month", lambda: sa.String(7)),
    "mining_yearly_summaries": ("year", sa.Integer),
}


def upgrade() -> None:
    # -----------------------------------------------------------------------
    # Step 1: Source and reference tables
    # -----------------------------------------------------------------------

    # curtailment_records -- raw half-hourly curtailment, non-unique natural key
    op.create_table(
        "curtailment_records",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("settlement_date", sa.Date(), nullable=False),
        sa.Column("settlement_period", sa.Integer(), nullable=False),
        sa.Column("farm_id", sa.String(50), nullable=False),
        sa.Column("lead_party_name", sa.String(200), nullable=True),
        sa.Column("volume", sa.Numeric(18, 6), nullable=False),
        sa.Column("payment", sa.Numeric(18, 2), nullable=False),
        sa.Column(
            "ingested_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_curtailment_records"),
    )
    op.create_index(
        "ix_curtailment_records_natural_key",
        "curtailment_records",
        ["settlement_date", "settlement_period", "farm_id"],
    )

    # network_difficulty -- one row per known difficulty value
    op.create_table(
        "network_difficulty",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.Column("difficulty", sa.Float(), nullable=False),
        sa.Column("source", sa.String(50), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_network_difficulty"),
        sa.UniqueConstraint("effective_date", name="uq_network_difficulty_effective_date"),
    )

    # -----------------------------------------------------------------------
    # Step 2: Derived tables (all keyed for upsert)
    # -----------------------------------------------------------------------
    op.create_table(
        "mining_calculations",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("settlement_date", sa.Date(), nullable=False),
        sa.Column("settlement_period", sa.Integer(), nullable=False),
        sa.Column("farm_id", sa.String(50), nullable=False),
        sa.Column("miner_model", sa.String(30), nullable=False),
        sa.Column("estimated_yield", sa.Numeric(24, 8), nullable=False),
        sa.Column("difficulty", sa.Float(), nullable=False),
        sa.Column("block_reward", sa.Float(), nullable=False),
        sa.Column("curtailed_energy_mwh", sa.Numeric(18, 6), nullable=False),
        sa.Column("compensation", sa.Numeric(18, 2), nullable=False),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_mining_calculations"),
        sa.UniqueConstraint(
            "settlement_date", "settlement_period", "farm_id", "miner_model",
            name="uq_mining_calculations_natural_key",
        ),
    )
    op.create_index(
        "ix_mining_calculations_settlement_date",
        "mining_calculations",
        ["settlement_date"],
    )

    for table, (period_column, period_type) in SUMMARY_TABLES.items():
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column(period_column, period_type(), nullable=False),
            sa.Column("miner_model", sa.String(30), nullable=False),
            sa.Column("total_yield", sa.Numeric(24, 8), nullable=False),
            sa.Column("total_energy_mwh", sa.Numeric(20, 6), nullable=False),
            sa.Column("total_compensation", sa.Numeric(20, 2), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id", name=f"pk_{table}"),
            sa.UniqueConstraint(
                period_column, "miner_model",
                name=f"uq_{table}_natural_key",
            ),
        )


def downgrade() -> None:
    for table in reversed(list(SUMMARY_TABLES)):
        op.drop_table(table)
    op.drop_index("ix_mining_calculations_settlement_date", table_name="mining_calculations")
    op.drop_table("mining_calculations")
    op.drop_table("network_difficulty")
    op.drop_index("ix_curtailment_records_natural_key", table_name="curtailment_records")
    op.drop_table("curtailment_records")

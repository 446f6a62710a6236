"""Database engine layer for the curtailment mining engine.

Provides the sync engine (psycopg2) used by the reconciler, the auditor,
Alembic migrations and the operator scripts. The session factory is
configured with autoflush=False and expire_on_commit=False for explicit
transaction control: one session and one transaction per calendar date.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .config import settings


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"echo": settings.debug}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": settings.db_pool_pre_ping,
        "echo": settings.debug,
    }


sync_engine = create_engine(
    settings.sync_database_url,
    **_engine_kwargs(settings.sync_database_url),
)

# Sync session factory
sync_session_factory = sessionmaker(
    sync_engine,
    autoflush=False,
    expire_on_commit=False,
)

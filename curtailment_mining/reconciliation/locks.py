"""Lock discipline for concurrent per-date reconciliation.

A date's run holds its DATE lock for dedupe/calculate/daily, then widens
to the MONTH lock for the monthly roll-up and the YEAR lock for the yearly
roll-up. Locks nest, so they are released in reverse order of acquisition,
and every worker acquires them in the same DATE -> MONTH -> YEAR order.

Two layers are taken for each scope:
- a process-local ``threading.Lock`` (workers share one process), and
- on PostgreSQL, ``pg_advisory_xact_lock`` so separate processes
  reconciling overlapping ranges also serialise; it is released when the
  date's transaction commits or rolls back.
"""

from __future__ import annotations

import hashlib
import threading
from contextlib import contextmanager
from datetime import date
from typing import Iterator, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from curtailment_mining.core.enums import LockScope


def lock_key(scope: LockScope, day: date) -> str:
    """Name of the ``scope`` lock covering ``day``."""
    if scope is LockScope.DATE:
        return f"date:{day.isoformat()}"
    if scope is LockScope.MONTH:
        return f"month:{day.year:04d}-{day.month:02d}"
    return f"year:{day.year:04d}"


def advisory_lock_id(name: str) -> int:
    """Stable signed 64-bit id for ``pg_advisory_xact_lock``."""
    digest = hashlib.blake2b(name.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class LockRegistry:
    """Named locks created on demand and shared by all reconciliation workers."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, name: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = self._locks[name] = threading.Lock()
            return lock

    @contextmanager
    def hold(
        self,
        scope: LockScope,
        day: date,
        session: Optional[Session] = None,
    ) -> Iterator[str]:
        """Hold the ``scope`` lock for ``day`` for the enclosed block.

        Args:
            scope: DATE, MONTH or YEAR.
            day: Date being reconciled; the month/year are derived from it.
            session: When bound to PostgreSQL, also take the advisory lock
                inside this session's transaction.

        Yields:
            The lock name.
        """
        name = lock_key(scope, day)
        lock = self._lock_for(name)
        lock.acquire()
        try:
            if session is not None and session.get_bind().dialect.name == "postgresql":
                session.execute(
                    text("SELECT pg_advisory_xact_lock(:lock_id)"),
                    {"lock_id": advisory_lock_id(name)},
                )
            yield name
        finally:
            lock.release()

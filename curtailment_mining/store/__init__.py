"""Aggregate store -- the reconciler's only write surface.

Usage::

    from curtailment_mining.store import AggregateStore
    with session_factory() as session:
        store = AggregateStore(session)
        events = store.load_events(day)
"""

from curtailment_mining.store.aggregate_store import AggregateStore, Totals

__all__ = [
    "AggregateStore",
    "Totals",
]

"""Purchase store adapters.

The purchase gate depends only on ``AbstractPurchaseStore`` so the backing
store can be the in-memory implementation (tests, single-process dev) or a
shared SQL database (PostgreSQL/SQLite through SQLAlchemy) without changing
the decision logic or the API layer.
"""

from __future__ import annotations

from corn_gate.adapters.purchase_store.base import (
    AbstractPurchaseStore,
    ClientPurchaseRecord,
    ConsumeOutcome,
)
from corn_gate.adapters.purchase_store.factory import create_purchase_store
from corn_gate.adapters.purchase_store.in_memory import InMemoryPurchaseStore
from corn_gate.adapters.purchase_store.sql import SqlAlchemyPurchaseStore

__all__ = [
    "AbstractPurchaseStore",
    "ClientPurchaseRecord",
    "ConsumeOutcome",
    "InMemoryPurchaseStore",
    "SqlAlchemyPurchaseStore",
    "create_purchase_store",
]

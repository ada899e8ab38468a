"""In-memory purchase store.

Notes:
- Per-process and non-durable: each worker has its own state and a restart
  forgets every cooldown, so this backend is for tests only.
- Same-key operations are serialized by a per-key ``asyncio.Lock``. A lock
  lives only while its key has callers; the last one out drops it.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator

from corn_gate.adapters.purchase_store.base import (
    AbstractPurchaseStore,
    ClientPurchaseRecord,
    ConsumeOutcome,
    is_cooldown_elapsed,
)


class InMemoryPurchaseStore(AbstractPurchaseStore):
    """Purchase store backed by a dict, with per-key critical sections."""

    backend = "memory"

    def __init__(self) -> None:
        self._records: dict[str, ClientPurchaseRecord] = {}
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._key_users: dict[str, int] = {}

    @asynccontextmanager
    async def _key_lock(self, client_id: str) -> AsyncIterator[None]:
        # Lock table updates never await, so they are atomic on the event loop
        lock = self._key_locks.get(client_id)
        if lock is None:
            lock = self._key_locks[client_id] = asyncio.Lock()
        self._key_users[client_id] = self._key_users.get(client_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._key_users[client_id] - 1
            if remaining:
                self._key_users[client_id] = remaining
            else:
                del self._key_users[client_id]
                del self._key_locks[client_id]

    async def consume(
        self, client_id: str, now: datetime, cooldown: timedelta
    ) -> ConsumeOutcome:
        async with self._key_lock(client_id):
            current = self._records.get(client_id)

            if current is None:
                created = ClientPurchaseRecord(
                    client_id=client_id, last_purchase_time=now, purchase_count=1
                )
                self._records[client_id] = created
                return ConsumeOutcome(allowed=True, record=created)

            if is_cooldown_elapsed(current, now, cooldown):
                updated = ClientPurchaseRecord(
                    client_id=client_id,
                    last_purchase_time=now,
                    purchase_count=current.purchase_count + 1,
                )
                self._records[client_id] = updated
                return ConsumeOutcome(allowed=True, record=updated)

            return ConsumeOutcome(allowed=False, record=current)

    async def get(self, client_id: str) -> ClientPurchaseRecord | None:
        return self._records.get(client_id)

    @property
    def active_locks(self) -> int:
        """Number of per-key locks currently held or awaited."""
        return len(self._key_locks)

    def __len__(self) -> int:
        return len(self._records)

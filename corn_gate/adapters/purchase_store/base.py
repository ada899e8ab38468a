"""Purchase store interfaces.

The purchase gate depends on this abstraction (not a concrete backend) so the
store handle can be injected at construction and swapped in tests.

Contract for implementations:
- ``consume`` performs lookup, cooldown check and write as ONE atomic unit
  with respect to other operations on the same client id.
- Operations on different client ids must not block each other.
- A failed ``consume`` leaves the prior record (or its absence) intact and
  raises ``StoreUnavailableError``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class ClientPurchaseRecord:
    """Persisted purchase state for one client.

    Attributes:
        client_id: Opaque, case-sensitive client identifier (unique key).
        last_purchase_time: UTC timestamp of the most recent allowed purchase.
        purchase_count: Number of allowed purchases (informational only).
    """

    client_id: str
    last_purchase_time: datetime
    purchase_count: int


@dataclass(frozen=True)
class ConsumeOutcome:
    """Result of an atomic consume attempt.

    Attributes:
        allowed: Whether the purchase was allowed and persisted.
        record: The client's record after the attempt. On a denial this is the
            unchanged record that caused it (None only if it is not visible).
    """

    allowed: bool
    record: ClientPurchaseRecord | None


def is_cooldown_elapsed(
    record: ClientPurchaseRecord, now: datetime, cooldown: timedelta
) -> bool:
    """Return True when ``cooldown`` has fully elapsed since the last purchase."""
    return now - record.last_purchase_time >= cooldown


class AbstractPurchaseStore(ABC):
    """Interface for purchase stores."""

    backend: str = "abstract"

    @abstractmethod
    async def consume(
        self, client_id: str, now: datetime, cooldown: timedelta
    ) -> ConsumeOutcome:
        """Atomically decide and record a purchase attempt.

        Creates the record (count 1) when absent; refreshes it (count + 1) when
        ``now - last_purchase_time >= cooldown``; otherwise leaves it untouched.

        Args:
            client_id: Non-empty client identifier.
            now: Timezone-aware UTC instant of the attempt.
            cooldown: Minimum time between allowed purchases.

        Returns:
            ConsumeOutcome describing the decision and resulting record.

        Raises:
            StoreUnavailableError: If the store cannot complete the operation.
        """
        raise NotImplementedError

    @abstractmethod
    async def get(self, client_id: str) -> ClientPurchaseRecord | None:
        """Point lookup of a client's record.

        Raises:
            StoreUnavailableError: If the store cannot be reached.
        """
        raise NotImplementedError

    async def initialize(self) -> None:
        """Prepare the backing store (e.g., create schema). No-op by default."""

    async def close(self) -> None:
        """Release resources held by the store. No-op by default."""

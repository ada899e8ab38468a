"""Corn purchase gate: the per-client cooldown decision engine.

A client may buy corn at most once per cooldown window (60 seconds by
default), measured from its last *allowed* purchase. The engine itself is
stateless: every decision is delegated to the injected purchase store as one
atomic conditional write, so any number of engine instances can share a store.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from corn_gate.adapters.purchase_store.base import (
    AbstractPurchaseStore,
    ClientPurchaseRecord,
)
from corn_gate.core.errors import InvalidClientIdError, StoreUnavailableError
from corn_gate.core.logging import hash_client_id

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SECONDS = 60


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Decision:
    """Verdict of a single purchase attempt.

    Attributes:
        allowed: True if the purchase was allowed and durably recorded.
        client_id: Client the decision applies to.
        record: Client's record after the attempt (unchanged on denial).
        retry_after_seconds: Whole seconds until the cooldown ends (denials only).
    """

    allowed: bool
    client_id: str
    record: ClientPurchaseRecord | None
    retry_after_seconds: int | None = None

    @property
    def denied(self) -> bool:
        return not self.allowed


def _validate_client_id(client_id: object) -> str:
    if not isinstance(client_id, str) or not client_id.strip():
        logger.warning(
            "purchase.invalid_client_id",
            extra={"client_id_type": type(client_id).__name__},
        )
        raise InvalidClientIdError()
    return client_id


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class PurchaseGate:
    """Decide whether a client may purchase now, and persist the effect.

    Example:
        >>> gate = PurchaseGate(InMemoryPurchaseStore())
        >>> decision = await gate.try_consume("c1")
        >>> decision.allowed
        True
    """

    def __init__(
        self,
        store: AbstractPurchaseStore,
        *,
        cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the gate.

        Args:
            store: Purchase store performing the atomic read-decide-write.
            cooldown_seconds: Minimum seconds between allowed purchases.
            clock: Time source returning the current UTC datetime.

        Raises:
            ValueError: If cooldown_seconds is invalid.
        """
        if cooldown_seconds < 1:
            raise ValueError("cooldown_seconds must be >= 1")

        self._store = store
        self._cooldown = timedelta(seconds=cooldown_seconds)
        self._clock = clock

    @property
    def store(self) -> AbstractPurchaseStore:
        return self._store

    @property
    def cooldown(self) -> timedelta:
        return self._cooldown

    def _retry_after(self, record: ClientPurchaseRecord | None, now: datetime) -> int:
        cooldown_s = int(self._cooldown.total_seconds())
        if record is None:
            return cooldown_s
        remaining = (record.last_purchase_time + self._cooldown - now).total_seconds()
        # Clock skew between instances can put the last purchase in our future
        return min(cooldown_s, max(1, int(math.ceil(remaining))))

    async def try_consume(self, client_id: str, now: datetime | None = None) -> Decision:
        """Attempt a purchase for ``client_id`` at ``now``.

        The first purchase of an unseen client is allowed and creates its
        record. Later purchases are allowed once the cooldown has fully elapsed
        since the last allowed one; otherwise they are denied and the record is
        left untouched.

        Args:
            client_id: Non-empty client identifier (case-sensitive, opaque).
            now: Instant of the attempt; defaults to the gate's clock. Naive
                datetimes are treated as UTC.

        Returns:
            Decision: Allowed (already persisted) or denied.

        Raises:
            InvalidClientIdError: If client_id is missing or empty.
            StoreUnavailableError: If the store could not complete the operation.
        """
        client_id = _validate_client_id(client_id)
        moment = _as_utc(now) if now is not None else _as_utc(self._clock())
        client_hash = hash_client_id(client_id)

        try:
            outcome = await self._store.consume(client_id, moment, self._cooldown)
        except StoreUnavailableError:
            logger.error(
                "purchase.store_unavailable",
                extra={"client_hash": client_hash, "backend": self._store.backend},
            )
            raise

        if outcome.allowed:
            logger.info(
                "purchase.allowed",
                extra={
                    "client_hash": client_hash,
                    "purchase_count": outcome.record.purchase_count if outcome.record else None,
                },
            )
            return Decision(allowed=True, client_id=client_id, record=outcome.record)

        retry_after = self._retry_after(outcome.record, moment)
        logger.info(
            "purchase.denied",
            extra={
                "client_hash": client_hash,
                "retry_after_s": retry_after,
                "cooldown_s": int(self._cooldown.total_seconds()),
            },
        )
        return Decision(
            allowed=False,
            client_id=client_id,
            record=outcome.record,
            retry_after_seconds=retry_after,
        )

    async def lookup(self, client_id: str) -> ClientPurchaseRecord | None:
        """Return the stored record for ``client_id`` without mutating it.

        Raises:
            InvalidClientIdError: If client_id is missing or empty.
            StoreUnavailableError: If the store cannot be reached.
        """
        return await self._store.get(_validate_client_id(client_id))

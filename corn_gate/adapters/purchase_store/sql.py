"""SQLAlchemy-backed purchase store (PostgreSQL / SQLite).

The whole read-decide-write sequence is a single conditional upsert executed
in its own transaction::

    INSERT INTO corn_purchase_limits (client_id, last_purchase_time, purchase_count)
    VALUES (:client_id, :now, 1)
    ON CONFLICT (client_id) DO UPDATE
        SET last_purchase_time = excluded.last_purchase_time,
            purchase_count = corn_purchase_limits.purchase_count + 1
        WHERE corn_purchase_limits.last_purchase_time <= :now - cooldown
    RETURNING client_id, last_purchase_time, purchase_count

A returned row means the purchase was allowed and written; no row means the
conflict predicate failed and the record was left untouched. The database row
lock serializes concurrent writers for the same client id, while other client
ids proceed independently.

Timestamps are stored as naive UTC to keep comparisons portable between
dialects; values are converted back to aware UTC datetimes on read.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from corn_gate.adapters.purchase_store.base import (
    AbstractPurchaseStore,
    ClientPurchaseRecord,
    ConsumeOutcome,
)
from corn_gate.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

metadata = MetaData()

corn_purchase_limits = Table(
    "corn_purchase_limits",
    metadata,
    Column("client_id", String(255), primary_key=True),
    Column("last_purchase_time", DateTime(timezone=False), nullable=False),
    Column("purchase_count", Integer, nullable=False),
)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

# SQLSTATEs for transaction conflicts worth retrying
_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})
_RETRYABLE_MESSAGES = ("database is locked", "database table is locked")


def _to_db_time(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db_time(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _row_to_record(row: Any) -> ClientPurchaseRecord:
    return ClientPurchaseRecord(
        client_id=row.client_id,
        last_purchase_time=_from_db_time(row.last_purchase_time),
        purchase_count=int(row.purchase_count),
    )


def is_conflict_error(exc: DBAPIError) -> bool:
    """Return True if the DB error is a transient transaction conflict.

    Serialization failures and deadlocks (PostgreSQL) or a locked database
    (SQLite) are retryable; connectivity and other errors are not.
    """
    if exc.connection_invalidated:
        return False
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _RETRYABLE_SQLSTATES:
        return True
    message = str(orig).lower()
    return any(fragment in message for fragment in _RETRYABLE_MESSAGES)


class SqlAlchemyPurchaseStore(AbstractPurchaseStore):
    """Purchase store using one atomic conditional upsert per decision."""

    backend = "sql"

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        timeout_seconds: float = 5.0,
        conflict_retries: int = 3,
    ) -> None:
        """Initialize the store around an async engine.

        Args:
            engine: SQLAlchemy async engine (PostgreSQL or SQLite dialect).
            timeout_seconds: Upper bound for a single store operation.
            conflict_retries: Retries on transaction conflicts before failing.

        Raises:
            ValueError: If the dialect is unsupported or arguments are invalid.
        """
        dialect = engine.dialect.name
        if dialect not in _INSERT_BY_DIALECT:
            raise ValueError(f"unsupported database dialect: {dialect}")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if conflict_retries < 0:
            raise ValueError("conflict_retries must be >= 0")

        self._engine = engine
        self._insert = _INSERT_BY_DIALECT[dialect]
        self._timeout_seconds = timeout_seconds
        self._conflict_retries = conflict_retries

    @classmethod
    def from_url(
        cls,
        database_url: str,
        *,
        timeout_seconds: float = 5.0,
        conflict_retries: int = 3,
        **engine_kwargs: Any,
    ) -> "SqlAlchemyPurchaseStore":
        engine = create_async_engine(database_url, **engine_kwargs)
        return cls(engine, timeout_seconds=timeout_seconds, conflict_retries=conflict_retries)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def initialize(self) -> None:
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(metadata.create_all)
        except (SQLAlchemyError, OSError) as exc:
            raise self._unavailable("initialize", exc) from exc

    async def close(self) -> None:
        await self._engine.dispose()

    async def _consume_once(
        self, client_id: str, now: datetime, cooldown: timedelta
    ) -> ConsumeOutcome:
        table = corn_purchase_limits
        db_now = _to_db_time(now)

        stmt = self._insert(table).values(
            client_id=client_id,
            last_purchase_time=db_now,
            purchase_count=1,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.client_id],
            set_={
                "last_purchase_time": stmt.excluded.last_purchase_time,
                "purchase_count": table.c.purchase_count + 1,
            },
            where=table.c.last_purchase_time <= db_now - cooldown,
        ).returning(
            table.c.client_id,
            table.c.last_purchase_time,
            table.c.purchase_count,
        )

        async with self._engine.begin() as conn:
            row = (await conn.execute(stmt)).first()
            if row is not None:
                return ConsumeOutcome(allowed=True, record=_row_to_record(row))
            # Denied: report the untouched record for retry hints
            current = await self._select(conn, client_id)
            return ConsumeOutcome(allowed=False, record=current)

    async def consume(
        self, client_id: str, now: datetime, cooldown: timedelta
    ) -> ConsumeOutcome:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await asyncio.wait_for(
                    self._consume_once(client_id, now, cooldown),
                    timeout=self._timeout_seconds,
                )
            except asyncio.TimeoutError as exc:
                raise self._unavailable("consume", exc, attempts=attempt) from exc
            except DBAPIError as exc:
                if is_conflict_error(exc) and attempt <= self._conflict_retries:
                    logger.warning(
                        "store.conflict_retry",
                        extra={
                            "backend": self.backend,
                            "attempt": attempt,
                            "max_retries": self._conflict_retries,
                        },
                    )
                    continue
                raise self._unavailable("consume", exc, attempts=attempt) from exc
            except (SQLAlchemyError, OSError) as exc:
                raise self._unavailable("consume", exc, attempts=attempt) from exc

    async def get(self, client_id: str) -> ClientPurchaseRecord | None:
        async def _get() -> ClientPurchaseRecord | None:
            async with self._engine.connect() as conn:
                return await self._select(conn, client_id)

        try:
            return await asyncio.wait_for(_get(), timeout=self._timeout_seconds)
        except (asyncio.TimeoutError, SQLAlchemyError, OSError) as exc:
            raise self._unavailable("get", exc) from exc

    @staticmethod
    async def _select(conn: AsyncConnection, client_id: str) -> ClientPurchaseRecord | None:
        table = corn_purchase_limits
        result = await conn.execute(
            select(
                table.c.client_id,
                table.c.last_purchase_time,
                table.c.purchase_count,
            ).where(table.c.client_id == client_id)
        )
        row = result.first()
        return _row_to_record(row) if row is not None else None

    def _unavailable(
        self, operation: str, exc: BaseException, *, attempts: int | None = None
    ) -> StoreUnavailableError:
        logger.error(
            "store.unavailable",
            extra={
                "backend": self.backend,
                "operation": operation,
                "error_type": type(exc).__name__,
                "attempts": attempts,
            },
        )
        details = {"backend": self.backend, "operation": operation}
        if attempts is not None:
            details["attempts"] = attempts
        if isinstance(exc, asyncio.TimeoutError):
            details["timeout_seconds"] = self._timeout_seconds
        return StoreUnavailableError(details=details)  # type: ignore[arg-type]

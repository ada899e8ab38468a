"""Factory for creating purchase stores based on configuration."""

from __future__ import annotations

import logging

from sqlalchemy.exc import ArgumentError

from corn_gate.adapters.purchase_store.base import AbstractPurchaseStore
from corn_gate.adapters.purchase_store.in_memory import InMemoryPurchaseStore
from corn_gate.adapters.purchase_store.sql import SqlAlchemyPurchaseStore
from corn_gate.core.config import StoreSettings, settings
from corn_gate.core.errors import ValidationAppError

logger = logging.getLogger(__name__)


def create_purchase_store(store_settings: StoreSettings | None = None) -> AbstractPurchaseStore:
    """Create a purchase store for the configured backend.

    Args:
        store_settings: Optional settings; defaults to global settings.

    Returns:
        AbstractPurchaseStore: Configured store (not yet initialized).

    Raises:
        ValidationAppError: If the backend is unknown or its config is invalid.
    """
    cfg = store_settings or settings.store
    backend = cfg.backend.lower().strip()

    if backend == "memory":
        logger.info("store.created", extra={"backend": backend})
        return InMemoryPurchaseStore()

    if backend == "sql":
        try:
            store = SqlAlchemyPurchaseStore.from_url(
                cfg.database_url,
                timeout_seconds=cfg.timeout_seconds,
                conflict_retries=cfg.conflict_retries,
                echo=cfg.echo,
            )
        except (ValueError, ArgumentError) as exc:
            raise ValidationAppError(
                code="invalid_store_config",
                message=str(exc),
                details={"backend": backend},
            ) from exc
        logger.info(
            "store.created",
            extra={"backend": backend, "dialect": store.engine.dialect.name},
        )
        return store

    raise ValidationAppError(
        code="invalid_store_backend",
        message=f"Unsupported store backend: {cfg.backend}",
        details={"backend": cfg.backend, "hint": "Use 'memory' or 'sql'."},
    )

from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers, store
lifecycle) so tests can build isolated apps with an injected purchase gate.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from corn_gate.adapters.purchase_store.factory import create_purchase_store
from corn_gate.api.routes import corn_router, health_router
from corn_gate.core.config import parse_csv, settings
from corn_gate.core.exception_handlers import setup_exception_handlers
from corn_gate.core.logging import configure_logging
from corn_gate.core.middleware import request_id_middleware
from corn_gate.core.openapi import apply_openapi_customizations
from corn_gate.services.purchase_gate import PurchaseGate

logger = logging.getLogger(__name__)


def _build_lifespan(gate: PurchaseGate | None):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if gate is not None:
            # Injected gates (tests) are owned by the caller
            app.state.purchase_gate = gate
            yield
            return

        store = create_purchase_store(settings.store)
        if settings.store.create_schema:
            await store.initialize()
        app.state.purchase_gate = PurchaseGate(
            store, cooldown_seconds=settings.app.cooldown_seconds
        )
        logger.info(
            "app.started",
            extra={
                "backend": store.backend,
                "cooldown_s": settings.app.cooldown_seconds,
                "app_env": settings.app_env,
            },
        )
        try:
            yield
        finally:
            app.state.purchase_gate = None
            await store.close()
            logger.info("app.stopped", extra={"backend": store.backend})

    return lifespan


def create_app(gate: PurchaseGate | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        gate: Optional pre-built purchase gate. When omitted, the lifespan
            builds the store from settings and owns its lifecycle.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Corn Purchase Gate",
        description=(
            "Buy corn, at most once per minute per client. The client is "
            "identified by the clientId header; purchases inside the cooldown "
            "window are rejected with 429 Too Many Requests."
        ),
        version="0.1.0",
        debug=settings.app.debug,
        lifespan=_build_lifespan(gate),
    )
    if gate is not None:
        app.state.purchase_gate = gate

    # Middleware
    app.middleware("http")(request_id_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=parse_csv(settings.app.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Retry-After", settings.log.request_id_header],
    )

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(corn_router)
    app.include_router(health_router)

    # OpenAPI customizations (tags, client id header)
    apply_openapi_customizations(app)

    return app

from __future__ import annotations

from corn_gate.api.routes.corn import router as corn_router
from corn_gate.api.routes.health import router as health_router

__all__ = ["corn_router", "health_router"]

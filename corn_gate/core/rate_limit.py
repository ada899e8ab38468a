"""Purchase gate wiring for FastAPI routes.

This module connects the HTTP layer to the purchase gate.

Design goals:
- Minimal coupling: routes depend on dependency functions only.
- Injection over globals: the gate lives on ``app.state`` and is built by the
  application lifespan (or injected directly in tests).
- Header-driven identity: the client identifier is read from a configurable
  request header and trusted as given.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from corn_gate.core.config import settings
from corn_gate.core.errors import InvalidClientIdError, StoreUnavailableError
from corn_gate.services.purchase_gate import Decision, PurchaseGate

RATE_LIMITED_DETAIL = "Too Many Requests: Limit exceeded."


def get_purchase_gate(request: Request) -> PurchaseGate:
    """Return the purchase gate attached to the running application.

    Raises:
        StoreUnavailableError: If the application has no gate (store not started).
    """

    gate = getattr(request.app.state, "purchase_gate", None)
    if gate is None:
        raise StoreUnavailableError(
            message="Purchase store is not initialized.",
            details={"operation": "get_purchase_gate"},
        )
    return gate


def read_client_id(request: Request) -> str:
    """Read the client identifier from the configured request header.

    Header lookup is case-insensitive. An empty value is passed through so the
    gate applies its own validation.

    Raises:
        InvalidClientIdError: If the header is absent.
    """

    header_name = settings.app.client_id_header
    value = request.headers.get(header_name)
    if value is None:
        raise InvalidClientIdError(
            message=f"Missing required header: {header_name}",
            details={"header": header_name},
        )
    return value


def build_denied_headers(decision: Decision) -> dict[str, str] | None:
    """Build response headers for a denied purchase."""

    if not settings.app.rate_limit_include_headers or decision.retry_after_seconds is None:
        return None
    return {"Retry-After": str(decision.retry_after_seconds)}


def raise_rate_limited(decision: Decision) -> None:
    """Translate a denied decision into HTTP 429."""

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=RATE_LIMITED_DETAIL,
        headers=build_denied_headers(decision),
    )

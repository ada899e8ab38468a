from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from corn_gate.core.rate_limit import get_purchase_gate, raise_rate_limited, read_client_id
from corn_gate.schemas.purchase import PurchaseResponse, RateLimitedResponse
from corn_gate.services.purchase_gate import PurchaseGate

router = APIRouter(prefix="/corn", tags=["Corn"])


@router.post(
    "/purchase",
    response_model=PurchaseResponse,
    responses={
        429: {"model": RateLimitedResponse, "description": "Client is still in its cooldown window"},
        400: {"description": "Missing or empty client identifier"},
        503: {"description": "Purchase store unavailable"},
    },
)
async def purchase_corn(
    request: Request,
    gate: Annotated[PurchaseGate, Depends(get_purchase_gate)],
) -> PurchaseResponse:
    """Buy corn, at most once per cooldown window per client.

    The client identifier is read from the ``clientId`` header (configurable
    via APP_CLIENT_ID_HEADER).

    Returns:
        PurchaseResponse: Confirmation with the client's updated purchase count.

    Raises:
        HTTPException: 429 when the client purchased within the cooldown window.
        InvalidClientIdError: 400 when the header is missing or empty.
        StoreUnavailableError: 503 when the purchase store cannot be reached.
    """
    decision = await gate.try_consume(read_client_id(request))
    if decision.denied:
        raise_rate_limited(decision)

    record = decision.record
    return PurchaseResponse(
        client_id=decision.client_id,
        purchase_count=record.purchase_count,
        last_purchase_time=record.last_purchase_time,
    )

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from corn_gate.core.rate_limit import get_purchase_gate
from corn_gate.services.purchase_gate import PurchaseGate

router = APIRouter(tags=["Health"])

_READINESS_PROBE_KEY = "__readiness_probe__"


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check(
    gate: Annotated[PurchaseGate, Depends(get_purchase_gate)],
) -> dict:
    """Readiness check: verifies the purchase store answers a point lookup.

    A store failure surfaces as 503 through the global exception handlers.
    """

    await gate.lookup(_READINESS_PROBE_KEY)
    return {"status": "ok", "store": gate.store.backend}

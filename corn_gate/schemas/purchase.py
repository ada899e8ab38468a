from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class PurchaseResponse(BaseModel):
    """Response returned when a corn purchase is allowed."""

    message: str = Field(
        "Corn purchased successfully!",
        description="Human-readable confirmation",
    )
    client_id: str = Field(..., description="Client identifier the purchase was recorded for")
    purchase_count: int = Field(..., ge=1, description="Allowed purchases so far for this client")
    last_purchase_time: datetime = Field(..., description="UTC time of this purchase")


class RateLimitedResponse(BaseModel):
    """Response body for a denied purchase (HTTP 429)."""

    detail: str = Field(
        "Too Many Requests: Limit exceeded.",
        description="Rate-limit message",
    )

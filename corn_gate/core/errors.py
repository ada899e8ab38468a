"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.

A denied purchase is not an error: it is a normal decision returned by the
purchase gate. Only invalid input and persistence failures raise.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    backend: str
    operation: str
    attempts: int
    timeout_seconds: float
    header: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class InvalidClientIdError(ValidationAppError):
    """Raised when the client identifier is missing or empty."""

    def __init__(
        self,
        message: str = "Client identifier must be a non-empty string.",
        details: ErrorDetails | None = None,
    ) -> None:
        super().__init__(code="invalid_client_id", message=message, details=details)


class StoreUnavailableError(AppError):
    """Raised when the purchase store cannot be reached or a transaction fails.

    The store guarantees that no partial state is left behind when this is
    raised: the prior record (or its absence) is intact.
    """

    def __init__(
        self,
        message: str = "Purchase store is unavailable. Try again later.",
        details: ErrorDetails | None = None,
    ) -> None:
        super().__init__(code="store_unavailable", message=message, details=details)

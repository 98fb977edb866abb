"""
Shared error handling for the Spoil Me commerce layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel
from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class CommerceLayerException(Exception):
    """Base exception for commerce layer services."""

    status_code: int = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class InvalidInputError(CommerceLayerException):
    """Missing or malformed pricing, quantity or currency input."""

    status_code = 400

    def __init__(self, message: str = "Invalid input", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_INPUT", message, details)


class EntitlementDeniedError(CommerceLayerException):
    """The user's membership does not grant this action.

    Distinct from ``LimitExceededError`` so callers can show an upsell
    instead of an error.
    """

    status_code = 403

    def __init__(self, message: str = "Entitlement denied", details: Optional[Dict[str, Any]] = None):
        super().__init__("ENTITLEMENT_DENIED", message, details)


class LimitExceededError(CommerceLayerException):
    """A cap or balance was reached. Recoverable by the caller."""

    status_code = 409

    def __init__(self, message: str = "Limit exceeded", details: Optional[Dict[str, Any]] = None):
        super().__init__("LIMIT_EXCEEDED", message, details)


class ConcurrencyConflictError(CommerceLayerException):
    """An atomic ledger update lost a race; re-fetch and retry once."""

    status_code = 409

    def __init__(self, message: str = "Concurrent update conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONCURRENCY_CONFLICT", message, details)


class ServiceError(CommerceLayerException):
    """Service-related errors."""

    status_code = 503

    def __init__(self, message: str = "Service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERVICE_ERROR", message, details)

"""
Service error taxonomy.

Every error carries a machine code and the HTTP status the API layer renders it
with. Only ProviderUnavailable and Conflict are retryable by the caller.
"""
from typing import Any


class ServiceError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500
    retryable = False

    def __init__(self, message: str, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ValidationError(ServiceError):
    """Malformed input, rejected before any I/O."""
    code = "VALIDATION_ERROR"
    status_code = 400


class Unauthorized(ServiceError):
    code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class Forbidden(ServiceError):
    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, message: str = "You don't have permission to access this resource"):
        super().__init__(message)


class NotFound(ServiceError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str = "Resource", detail: dict[str, Any] | None = None):
        super().__init__(f"{resource} not found", detail)
        self.resource = resource


class Conflict(ServiceError):
    """Concurrent write or invalid state transition detected at the store."""
    code = "CONFLICT"
    status_code = 409
    retryable = True


class ProviderUnavailable(ServiceError):
    """Transport error, timeout or open breaker talking to an external provider."""
    code = "PROVIDER_UNAVAILABLE"
    status_code = 503
    retryable = True

    def __init__(self, provider: str, message: str | None = None, detail: dict[str, Any] | None = None):
        super().__init__(message or f"{provider} is currently unavailable", detail)
        self.provider = provider


class PaymentNotPaid(ServiceError):
    """Terminal status for the status query: the order is not paid yet, poll again later."""
    code = "PAYMENT_NOT_PAID"
    status_code = 200

    def __init__(self, payment_id: str, payment_status: str):
        super().__init__(
            "Payment has not been confirmed yet",
            {"paymentId": payment_id, "paymentStatus": payment_status},
        )
        self.payment_id = payment_id
        self.payment_status = payment_status


class RateLimited(ServiceError):
    code = "RATE_LIMIT"
    status_code = 429
    retryable = True

    def __init__(self, message: str = "Too many requests"):
        super().__init__(message)

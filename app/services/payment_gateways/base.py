"""
Base classes and types for payment gateway providers.
Used by the factory and all providers (paystack, flutterwave, etegram).

Gateways only talk to the network: they never touch the database.
"""
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import httpx
import pybreaker

from app.core.errors import NotFound, ProviderUnavailable, ValidationError
from app.services.circuit_breaker import get_circuit_breaker
from app.utils.metrics import gateway_request_duration_seconds, gateway_requests_total

logger = logging.getLogger(__name__)

GATEWAY_SUCCESS = "success"
GATEWAY_FAILED = "failed"
GATEWAY_PENDING = "pending"


@dataclass
class GatewayInitRequest:
    """Request to open a hosted checkout."""
    amount: Decimal
    email: str
    reference: str
    currency: str = "NGN"
    metadata: dict[str, Any] = field(default_factory=dict)
    callback_url: str | None = None


@dataclass
class GatewayInitResult:
    authorization_url: str
    reference: str
    access_code: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class GatewayVerifyResult:
    """Provider view of a transaction, normalized to success / failed / pending."""
    status: str
    amount: Decimal | None
    reference: str
    currency: str | None = None
    authorization_code: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.status == GATEWAY_SUCCESS


class PaymentGateway(ABC):
    """Base class for payment gateway providers."""

    name: str = ""

    def __init__(self, config: dict) -> None:
        self.config = config
        self.api_url = (config.get("api_url") or "").rstrip("/")
        self.timeout = config.get("timeout", 15.0)
        # Tests pass an httpx.MockTransport here
        self._transport = config.get("transport")
        self.breaker = get_circuit_breaker(
            f"gateway:{self.name}", exclude=[NotFound, ValidationError]
        )

    @abstractmethod
    def is_available(self) -> bool:
        """Check if provider credentials are configured."""

    @abstractmethod
    def initialize(self, request: GatewayInitRequest) -> GatewayInitResult:
        """Open a transaction. Raises ProviderUnavailable on transport failure."""

    @abstractmethod
    def verify(self, reference: str) -> GatewayVerifyResult:
        """Look up a transaction. Raises NotFound for unknown references, ProviderUnavailable otherwise."""

    def verify_webhook_signature(self, body: bytes, signature: str | None) -> bool:
        """Override for providers that sign their webhooks."""
        return True

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self._transport)

    def _request(self, method: str, path: str, operation: str, **kwargs: Any) -> dict[str, Any]:
        """
        Perform an API call through the provider's circuit breaker.
        Timeouts, transport errors, 5xx and an open breaker all become ProviderUnavailable.
        """
        if not self.is_available():
            raise ProviderUnavailable(self.name, f"{self.name} gateway is not configured")

        start = time.time()
        try:
            body = self.breaker.call(self._send, method, path, **kwargs)
            gateway_requests_total.labels(provider=self.name, operation=operation, status="ok").inc()
            return body
        except (NotFound, ValidationError):
            gateway_requests_total.labels(provider=self.name, operation=operation, status="rejected").inc()
            raise
        except pybreaker.CircuitBreakerError as e:
            gateway_requests_total.labels(provider=self.name, operation=operation, status="breaker_open").inc()
            raise ProviderUnavailable(self.name, f"{self.name} circuit is open") from e
        except ProviderUnavailable:
            gateway_requests_total.labels(provider=self.name, operation=operation, status="error").inc()
            raise
        finally:
            gateway_request_duration_seconds.labels(provider=self.name, operation=operation).observe(
                time.time() - start
            )

    def _send(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self.api_url}{path}"
        try:
            with self._client() as client:
                response = client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("gateway_timeout", extra={"provider": self.name, "path": path})
            raise ProviderUnavailable(self.name, f"{self.name} request timed out") from e
        except httpx.HTTPError as e:
            logger.warning("gateway_transport_error", extra={"provider": self.name, "error": str(e)})
            raise ProviderUnavailable(self.name, f"{self.name} transport error") from e

        if response.status_code >= 500:
            raise ProviderUnavailable(
                self.name,
                f"{self.name} returned HTTP {response.status_code}",
                {"status_code": response.status_code},
            )
        try:
            body = response.json()
        except ValueError as e:
            raise ProviderUnavailable(self.name, f"{self.name} returned a non-JSON response") from e

        if response.status_code >= 400:
            self._raise_for_client_error(response.status_code, body)
        return body

    def _raise_for_client_error(self, status_code: int, body: dict[str, Any]) -> None:
        message = str(body.get("message") or f"HTTP {status_code}")
        if status_code == 404 or "not found" in message.lower():
            raise NotFound("Transaction", {"provider": self.name, "message": message})
        if status_code in (401, 403):
            # Bad credentials are an operator problem, not the caller's
            raise ProviderUnavailable(self.name, f"{self.name} rejected credentials", {"status_code": status_code})
        raise ValidationError(message, {"provider": self.name, "status_code": status_code})

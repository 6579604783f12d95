"""
Base classes and types for brand warranty providers and the IMEI blacklist check.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx
import pybreaker

from app.services.circuit_breaker import get_circuit_breaker

# Raw statuses reported by the lookup adapter
STATUS_ACTIVE = "active"
STATUS_IN_WARRANTY = "in_warranty"
STATUS_EXPIRED = "expired"
STATUS_OUT_OF_WARRANTY = "out_of_warranty"
STATUS_REQUIRES_VERIFICATION = "requires_verification"
STATUS_UNKNOWN = "unknown"
STATUS_NOT_APPLICABLE = "not_applicable"

DEVICE_CLEAN = "clean"
DEVICE_BLACKLISTED = "blacklisted"
DEVICE_UNKNOWN = "unknown"


@dataclass
class WarrantyLookupResult:
    """Canonical shape every provider response is normalized into."""
    status: str
    provider: str
    expiry_date: datetime | None = None
    purchase_date: datetime | None = None
    coverage_start: datetime | None = None
    coverage_end: datetime | None = None
    device_status: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


class WarrantyProviderError(Exception):
    """Any failure talking to a warranty or blacklist API. Never leaves the lookup adapter."""


def parse_date(value: Any) -> datetime | None:
    """Parse ISO-ish dates from provider payloads; unparseable values become None."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def coverage_status(end: datetime | None, now: datetime | None = None) -> str:
    """in_warranty while the latest coverage end is in the future."""
    if end is None:
        return STATUS_REQUIRES_VERIFICATION
    now = now or datetime.now(timezone.utc)
    return STATUS_IN_WARRANTY if end > now else STATUS_OUT_OF_WARRANTY


class HttpLookupProvider(ABC):
    """Shared httpx + circuit breaker plumbing for warranty / blacklist providers."""

    name: str = ""

    def __init__(self, config: dict) -> None:
        self.config = config
        self.api_url = (config.get("api_url") or "").rstrip("/")
        self.timeout = config.get("timeout", 10.0)
        self._transport = config.get("transport")
        self.breaker = get_circuit_breaker(f"warranty:{self.name}")

    @abstractmethod
    def is_available(self) -> bool:
        """Check if provider credentials are configured."""

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self._transport)

    def _call(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            return self.breaker.call(self._send, method, path, **kwargs)
        except pybreaker.CircuitBreakerError as e:
            raise WarrantyProviderError(f"{self.name} circuit is open") from e

    def _send(self, method: str, path: str, **kwargs: Any) -> Any:
        url = path if path.startswith("http") else f"{self.api_url}{path}"
        try:
            with self._client() as client:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise WarrantyProviderError(f"{self.name}: {e}") from e


class WarrantyProvider(HttpLookupProvider):
    """Brand-specific warranty API."""

    # Which identifiers the brand API can look a device up by
    accepts_serial: bool = True
    accepts_imei: bool = False

    def can_lookup(self, serial_number: str | None, imei: str | None) -> bool:
        return bool((self.accepts_serial and serial_number) or (self.accepts_imei and imei))

    @abstractmethod
    def lookup(self, serial_number: str | None, imei: str | None) -> WarrantyLookupResult:
        """Query the brand API. Raises WarrantyProviderError on any failure."""

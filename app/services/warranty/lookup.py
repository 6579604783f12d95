"""
WarrantyLookupAdapter: one entry point over the brand warranty APIs plus the
IMEI blacklist check.

The adapter never raises for "can't determine" outcomes. Missing credentials,
timeouts and provider errors all come back as `requires_verification` so the
caller can route the device to manual review. Only a missing brand raises.
"""
import logging
import time

from app.core.errors import ValidationError
from app.services.warranty.base import (
    DEVICE_UNKNOWN,
    STATUS_NOT_APPLICABLE,
    STATUS_REQUIRES_VERIFICATION,
    STATUS_UNKNOWN,
    WarrantyLookupResult,
    WarrantyProvider,
)
from app.services.warranty.providers.apple import AppleWarrantyProvider
from app.services.warranty.providers.dell import DellWarrantyProvider
from app.services.warranty.providers.hp import HPWarrantyProvider
from app.services.warranty.providers.imei_blacklist import ImeiBlacklistProvider
from app.services.warranty.providers.samsung import SamsungWarrantyProvider
from app.utils.metrics import warranty_lookup_duration_seconds, warranty_lookups_total

logger = logging.getLogger(__name__)

CUSTOM_PROVIDER = "custom"

BRAND_FAMILIES: dict[str, frozenset[str]] = {
    "apple": frozenset({"APPLE", "IPHONE", "IPAD", "MAC", "MACBOOK", "IMAC"}),
    "dell": frozenset({"DELL", "XPS", "INSPIRON", "VOSTRO", "LATITUDE", "ALIENWARE"}),
    "samsung": frozenset({"SAMSUNG", "GALAXY", "CHROMEBOOK"}),
    "hp": frozenset({"HP", "HEWLETT", "HEWLETT-PACKARD", "HEWLETT PACKARD", "PAVILION", "ELITEBOOK"}),
}


def resolve_brand_family(brand: str) -> str:
    """Map a free-text brand to apple / dell / samsung / hp, or "custom" when unsupported."""
    token = " ".join(brand.strip().upper().split())
    for family, aliases in BRAND_FAMILIES.items():
        if token in aliases:
            return family
    # "Apple MacBook Pro", "HP EliteBook 840"
    first = token.split(" ", 1)[0]
    for family, aliases in BRAND_FAMILIES.items():
        if first in aliases:
            return family
    return CUSTOM_PROVIDER


class WarrantyLookupAdapter:
    def __init__(
        self,
        providers: dict[str, WarrantyProvider],
        blacklist: ImeiBlacklistProvider | None = None,
    ) -> None:
        self.providers = providers
        self.blacklist = blacklist

    @classmethod
    def from_settings(cls, settings, transport=None) -> "WarrantyLookupAdapter":
        timeout = settings.warranty_provider_timeout
        common = {"timeout": timeout, "transport": transport}
        providers: dict[str, WarrantyProvider] = {
            "apple": AppleWarrantyProvider({
                **common,
                "api_key": settings.apple_warranty_api_key,
                "api_url": settings.apple_warranty_api_url,
            }),
            "dell": DellWarrantyProvider({
                **common,
                "client_id": settings.dell_client_id,
                "client_secret": settings.dell_client_secret,
                "api_url": settings.dell_api_url,
            }),
            "samsung": SamsungWarrantyProvider({
                **common,
                "api_key": settings.samsung_warranty_api_key,
                "api_url": settings.samsung_warranty_api_url,
            }),
            "hp": HPWarrantyProvider({
                **common,
                "api_key": settings.hp_warranty_api_key,
                "api_secret": settings.hp_warranty_api_secret,
                "api_url": settings.hp_warranty_api_url,
            }),
        }
        blacklist = ImeiBlacklistProvider({
            **common,
            "api_key": settings.imei_check_api_key,
            "api_url": settings.imei_check_api_url,
        })
        return cls(providers, blacklist)

    def check(
        self,
        brand: str,
        serial_number: str | None = None,
        imei: str | None = None,
    ) -> WarrantyLookupResult:
        if not brand or not brand.strip():
            raise ValidationError("Brand required")

        serial_number = (serial_number or "").strip() or None
        imei = (imei or "").strip() or None
        family = resolve_brand_family(brand)

        result = self._check_brand(family, serial_number, imei)
        if imei:
            result.device_status = self._check_blacklist(imei)

        warranty_lookups_total.labels(provider=result.provider, status=result.status).inc()
        logger.info(
            "warranty_lookup_done",
            extra={"provider": result.provider, "status": result.status},
        )
        return result

    def _check_brand(self, family: str, serial_number: str | None, imei: str | None) -> WarrantyLookupResult:
        if family == CUSTOM_PROVIDER:
            return WarrantyLookupResult(status=STATUS_NOT_APPLICABLE, provider=CUSTOM_PROVIDER)

        provider = self.providers.get(family)
        if provider is None or not provider.can_lookup(serial_number, imei):
            return WarrantyLookupResult(status=STATUS_UNKNOWN, provider=family)

        if not provider.is_available():
            logger.info("warranty_provider_not_configured", extra={"provider": family})
            return WarrantyLookupResult(status=STATUS_REQUIRES_VERIFICATION, provider=family)

        start = time.time()
        try:
            return provider.lookup(serial_number, imei)
        except Exception as e:
            logger.warning(
                "warranty_provider_failed",
                extra={"provider": family, "error": str(e)},
            )
            return WarrantyLookupResult(
                status=STATUS_REQUIRES_VERIFICATION,
                provider=family,
                raw={"error": str(e)},
            )
        finally:
            warranty_lookup_duration_seconds.labels(provider=family).observe(time.time() - start)

    def _check_blacklist(self, imei: str) -> str:
        if self.blacklist is None or not self.blacklist.is_available():
            return DEVICE_UNKNOWN
        try:
            return self.blacklist.check(imei)
        except Exception as e:
            logger.warning("imei_blacklist_failed", extra={"provider": "imei_blacklist", "error": str(e)})
            return DEVICE_UNKNOWN

"""
Apple coverage lookup through a third-party coverage API (Apple has no public one).
Accepts serial number or IMEI.
"""
from app.services.warranty.base import (
    STATUS_ACTIVE,
    STATUS_EXPIRED,
    STATUS_REQUIRES_VERIFICATION,
    WarrantyLookupResult,
    WarrantyProvider,
    WarrantyProviderError,
    parse_date,
)


class AppleWarrantyProvider(WarrantyProvider):
    name = "apple"
    accepts_serial = True
    accepts_imei = True

    def __init__(self, config: dict) -> None:
        super().__init__(config)
        self.api_key = config.get("api_key")

    def is_available(self) -> bool:
        return bool(self.api_key)

    def lookup(self, serial_number, imei) -> WarrantyLookupResult:
        params = {"serial": serial_number} if serial_number else {"imei": imei}
        body = self._call("GET", "/coverage", params=params, headers={"X-API-Key": self.api_key})
        coverage = body.get("coverage") if isinstance(body, dict) else None
        if not isinstance(coverage, dict):
            raise WarrantyProviderError("apple: response has no coverage block")

        raw_status = str(coverage.get("status", "")).lower()
        if raw_status in ("active", "covered", "applecare"):
            status = STATUS_ACTIVE
        elif raw_status in ("expired", "not_covered"):
            status = STATUS_EXPIRED
        else:
            status = STATUS_REQUIRES_VERIFICATION

        return WarrantyLookupResult(
            status=status,
            provider=self.name,
            expiry_date=parse_date(coverage.get("expiresAt")),
            purchase_date=parse_date(coverage.get("purchaseDate")),
            coverage_start=parse_date(coverage.get("startsAt") or coverage.get("purchaseDate")),
            coverage_end=parse_date(coverage.get("expiresAt")),
            raw=body,
        )

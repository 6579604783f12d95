"""
HP product warranty lookup by serial number.
"""
from app.services.warranty.base import (
    STATUS_REQUIRES_VERIFICATION,
    WarrantyLookupResult,
    WarrantyProvider,
    coverage_status,
    parse_date,
)


class HPWarrantyProvider(WarrantyProvider):
    name = "hp"
    accepts_serial = True
    accepts_imei = False

    def __init__(self, config: dict) -> None:
        super().__init__(config)
        self.api_key = config.get("api_key")
        self.api_secret = config.get("api_secret")

    def is_available(self) -> bool:
        return bool(self.api_key and self.api_secret)

    def lookup(self, serial_number, imei) -> WarrantyLookupResult:
        body = self._call(
            "POST",
            "/productwarranty/v2/queries",
            json=[{"sn": serial_number}],
            headers={"apikey": self.api_key, "apisecret": self.api_secret},
        )
        products = body if isinstance(body, list) else []
        product = products[0] if products else None
        warranties = (product or {}).get("warranties") or []
        if not warranties:
            return WarrantyLookupResult(status=STATUS_REQUIRES_VERIFICATION, provider=self.name, raw={"products": products})

        starts = [d for d in (parse_date(w.get("start")) for w in warranties) if d]
        ends = [d for d in (parse_date(w.get("end")) for w in warranties) if d]
        latest_end = max(ends) if ends else None
        return WarrantyLookupResult(
            status=coverage_status(latest_end),
            provider=self.name,
            expiry_date=latest_end,
            coverage_start=min(starts) if starts else None,
            coverage_end=latest_end,
            raw={"product": product},
        )

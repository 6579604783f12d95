"""
Samsung warranty lookup. Accepts IMEI or serial number.
"""
from app.services.warranty.base import (
    STATUS_IN_WARRANTY,
    STATUS_OUT_OF_WARRANTY,
    STATUS_REQUIRES_VERIFICATION,
    WarrantyLookupResult,
    WarrantyProvider,
    parse_date,
)

_STATUS_MAP = {
    "IN_WARRANTY": STATUS_IN_WARRANTY,
    "IW": STATUS_IN_WARRANTY,
    "OUT_OF_WARRANTY": STATUS_OUT_OF_WARRANTY,
    "OOW": STATUS_OUT_OF_WARRANTY,
}


class SamsungWarrantyProvider(WarrantyProvider):
    name = "samsung"
    accepts_serial = True
    accepts_imei = True

    def __init__(self, config: dict) -> None:
        super().__init__(config)
        self.api_key = config.get("api_key")

    def is_available(self) -> bool:
        return bool(self.api_key)

    def lookup(self, serial_number, imei) -> WarrantyLookupResult:
        params = {"imei": imei} if imei else {"serialNumber": serial_number}
        body = self._call(
            "GET", "/warranty", params=params, headers={"Authorization": f"Bearer {self.api_key}"}
        )
        raw_status = str(body.get("warrantyStatus", "")).upper()
        end = parse_date(body.get("warrantyEndDate"))
        return WarrantyLookupResult(
            status=_STATUS_MAP.get(raw_status, STATUS_REQUIRES_VERIFICATION),
            provider=self.name,
            expiry_date=end,
            purchase_date=parse_date(body.get("purchaseDate")),
            coverage_start=parse_date(body.get("warrantyStartDate")),
            coverage_end=end,
            raw=body,
        )

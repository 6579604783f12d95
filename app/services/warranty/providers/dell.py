"""
Dell asset entitlements (service tag lookup) with OAuth2 client credentials.
"""
from app.services.warranty.base import (
    STATUS_REQUIRES_VERIFICATION,
    WarrantyLookupResult,
    WarrantyProvider,
    WarrantyProviderError,
    coverage_status,
    parse_date,
)


class DellWarrantyProvider(WarrantyProvider):
    name = "dell"
    accepts_serial = True
    accepts_imei = False

    def __init__(self, config: dict) -> None:
        super().__init__(config)
        self.client_id = config.get("client_id")
        self.client_secret = config.get("client_secret")

    def is_available(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _access_token(self) -> str:
        body = self._call(
            "POST",
            "/auth/oauth/v2/token",
            data={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )
        token = body.get("access_token") if isinstance(body, dict) else None
        if not token:
            raise WarrantyProviderError("dell: no access token in response")
        return token

    def lookup(self, serial_number, imei) -> WarrantyLookupResult:
        token = self._access_token()
        body = self._call(
            "GET",
            "/PROD/sbil/eapi/v5/asset-entitlements",
            params={"servicetags": serial_number},
            headers={"Authorization": f"Bearer {token}"},
        )
        assets = body if isinstance(body, list) else []
        asset = next((a for a in assets if a.get("serviceTag", "").upper() == serial_number.upper()), None)
        if asset is None or asset.get("invalid"):
            return WarrantyLookupResult(status=STATUS_REQUIRES_VERIFICATION, provider=self.name, raw={"assets": assets})

        entitlements = asset.get("entitlements") or []
        starts = [d for d in (parse_date(e.get("startDate")) for e in entitlements) if d]
        ends = [d for d in (parse_date(e.get("endDate")) for e in entitlements) if d]
        latest_end = max(ends) if ends else None

        return WarrantyLookupResult(
            status=coverage_status(latest_end),
            provider=self.name,
            expiry_date=latest_end,
            purchase_date=parse_date(asset.get("shipDate")),
            coverage_start=min(starts) if starts else None,
            coverage_end=latest_end,
            raw={"asset": asset},
        )

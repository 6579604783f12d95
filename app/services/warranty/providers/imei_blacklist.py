"""
IMEI blacklist (lost / stolen) lookup, independent of the device brand.
"""
from app.services.warranty.base import (
    DEVICE_BLACKLISTED,
    DEVICE_CLEAN,
    DEVICE_UNKNOWN,
    HttpLookupProvider,
)


class ImeiBlacklistProvider(HttpLookupProvider):
    name = "imei_blacklist"

    def __init__(self, config: dict) -> None:
        super().__init__(config)
        self.api_key = config.get("api_key")

    def is_available(self) -> bool:
        return bool(self.api_key)

    def check(self, imei: str) -> str:
        """Return clean / blacklisted / unknown. Raises WarrantyProviderError on failure."""
        body = self._call(
            "GET", "/checks", params={"imei": imei}, headers={"Authorization": f"Bearer {self.api_key}"}
        )
        if isinstance(body.get("blacklisted"), bool):
            return DEVICE_BLACKLISTED if body["blacklisted"] else DEVICE_CLEAN
        result = body.get("result") or {}
        status = str(result.get("blacklistStatus", "")).upper()
        if status == "BLACKLISTED":
            return DEVICE_BLACKLISTED
        if status == "CLEAN":
            return DEVICE_CLEAN
        return DEVICE_UNKNOWN

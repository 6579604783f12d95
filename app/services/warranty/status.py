"""
Canonical mapping from a raw lookup status to WarrantyCheck.status.
"""
from app.models.warranty_check import WarrantyCheckStatus
from app.services.warranty.base import (
    STATUS_ACTIVE,
    STATUS_EXPIRED,
    STATUS_IN_WARRANTY,
    STATUS_OUT_OF_WARRANTY,
    STATUS_REQUIRES_VERIFICATION,
)

_CANONICAL = {
    STATUS_ACTIVE: WarrantyCheckStatus.SUCCESS,
    STATUS_IN_WARRANTY: WarrantyCheckStatus.SUCCESS,
    STATUS_EXPIRED: WarrantyCheckStatus.FAILED,
    STATUS_OUT_OF_WARRANTY: WarrantyCheckStatus.FAILED,
    STATUS_REQUIRES_VERIFICATION: WarrantyCheckStatus.MANUAL_REQUIRED,
}


def map_warranty_status(raw_status: str | None) -> WarrantyCheckStatus:
    """
    active / in_warranty -> SUCCESS, expired / out_of_warranty -> FAILED,
    requires_verification -> MANUAL_REQUIRED.

    Everything else, "unknown" and "not_applicable" included, is SUCCESS: the
    lookup recorded what it could and nothing further is owed.
    """
    return _CANONICAL.get((raw_status or "").lower(), WarrantyCheckStatus.SUCCESS)

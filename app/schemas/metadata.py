"""
Typed views over the opaque `metadata` map stored on Payment / WorkOrder.

The `service` key is the discriminator. Unknown services fall back to
OtherPurchase, which keeps the raw map untouched.
"""
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

SERVICE_WARRANTY_CHECK = "warranty-check"
SERVICE_REPAIR = "repair"


class _PurchaseBase(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class WarrantyCheckPurchase(_PurchaseBase):
    service: Literal["warranty-check"]
    brand: str | None = None
    model: str | None = None
    device_type: str | None = Field(default=None, alias="deviceType")
    serial_number: str | None = Field(default=None, alias="serialNumber")
    imei: str | None = None
    customer_name: str | None = Field(default=None, alias="customerName")


class RepairPurchase(_PurchaseBase):
    service: Literal["repair"]
    work_order_id: str | None = Field(default=None, alias="workOrderId")


class OtherPurchase(_PurchaseBase):
    service: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


PaymentMetadata = Union[WarrantyCheckPurchase, RepairPurchase, OtherPurchase]


def parse_payment_metadata(raw: dict[str, Any] | None) -> PaymentMetadata:
    """Parse a stored metadata map. Never raises: malformed maps become OtherPurchase."""
    raw = dict(raw or {})
    service = raw.get("service")
    try:
        if service == SERVICE_WARRANTY_CHECK:
            return WarrantyCheckPurchase.model_validate(raw)
        if service == SERVICE_REPAIR:
            return RepairPurchase.model_validate(raw)
    except ValueError:
        pass
    return OtherPurchase(service=service if isinstance(service, str) else None, raw=raw)


def is_warranty_check_purchase(raw: dict[str, Any] | None) -> bool:
    return isinstance(parse_payment_metadata(raw), WarrantyCheckPurchase)

"""Import all models so Base.metadata knows every table."""
from app.models.user import User, UserRole
from app.models.device import Device
from app.models.work_order import WorkOrder
from app.models.payment import Payment, PaymentProvider, PaymentStatus
from app.models.payment_log import PaymentLog
from app.models.warranty_check import WarrantyCheck, WarrantyCheckStatus

__all__ = [
    "Device",
    "Payment",
    "PaymentLog",
    "PaymentProvider",
    "PaymentStatus",
    "User",
    "UserRole",
    "WarrantyCheck",
    "WarrantyCheckStatus",
    "WorkOrder",
]

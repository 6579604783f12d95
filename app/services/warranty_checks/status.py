"""
Status query for warranty checks.

By payment id the read heals itself: a PAID order with a device but no check
gets one through the same create-if-absent path the verification uses. By
email / serial / IMEI it only reads.
"""
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from app.core.errors import NotFound, PaymentNotPaid, ValidationError
from app.models.payment import PaymentStatus
from app.models.warranty_check import INITIATED_BY_PAYMENT_AUTO, WarrantyCheck
from app.services.payments.store import PaymentRecordStore
from app.services.warranty_checks.service import WarrantyCheckService

logger = logging.getLogger(__name__)


@dataclass
class StatusResult:
    check: WarrantyCheck
    payment_status: str
    created: bool = False

    def to_dict(self) -> dict[str, Any]:
        check = self.check
        return {
            "status": check.status,
            "provider": check.provider,
            "warrantyStatus": check.warranty_status,
            "warrantyExpiry": check.warranty_expiry.isoformat() if check.warranty_expiry else None,
            "deviceStatus": check.device_status,
            "paymentStatus": self.payment_status,
            "errorMessage": check.error_message,
            "check": check.to_dict(),
        }


class StatusQueryService:
    def __init__(self, db: Session, warranty_checks: WarrantyCheckService, store: PaymentRecordStore | None = None):
        self.db = db
        self.warranty_checks = warranty_checks
        self.store = store or PaymentRecordStore(db)

    def get_status(
        self,
        payment_id: str | None = None,
        email: str | None = None,
        serial_number: str | None = None,
        imei: str | None = None,
    ) -> StatusResult:
        if payment_id:
            return self._by_payment(payment_id)
        if not (email or serial_number or imei):
            raise ValidationError("At least one search criteria required")
        return self._search(email, serial_number, imei)

    def _by_payment(self, payment_id: str) -> StatusResult:
        payment = self.store.find_payment_by_id(payment_id, with_work_order_and_device=True)
        if payment is None:
            raise NotFound("Payment", {"paymentId": payment_id})

        work_order = payment.work_order
        payment_status = work_order.payment_status if work_order is not None else payment.status
        if payment.status != PaymentStatus.PAID.value or payment_status != PaymentStatus.PAID.value:
            logger.info(
                "warranty_status_payment_not_paid",
                extra={"payment_id": payment.id, "status": payment_status},
            )
            raise PaymentNotPaid(payment.id, payment_status)

        if work_order is None:
            raise NotFound("Warranty check", {"paymentId": payment_id})

        existing = self.store.find_latest_warranty_check(work_order.id)
        if existing is not None:
            return StatusResult(check=existing, payment_status=payment_status)

        if work_order.device is None:
            raise NotFound("Warranty check", {"paymentId": payment_id, "workOrderId": work_order.id})

        logger.info(
            "warranty_check_self_heal",
            extra={"payment_id": payment.id, "work_order_id": work_order.id},
        )
        check = self.warranty_checks.ensure_check(work_order, INITIATED_BY_PAYMENT_AUTO)
        return StatusResult(check=check, payment_status=payment_status, created=True)

    def _search(self, email: str | None, serial_number: str | None, imei: str | None) -> StatusResult:
        check = self.store.find_latest_check_for_customer(email=email, serial_number=serial_number, imei=imei)
        if check is None:
            raise NotFound("Warranty check", {"message": "No warranty check found matching the provided information"})
        payment_status = check.work_order.payment_status if check.work_order is not None else "UNKNOWN"
        return StatusResult(check=check, payment_status=payment_status)

"""
WarrantyCheckService: the single place a warranty lookup turns into a persisted
WarrantyCheck. Both the payment verification path and the status query go
through ensure_check(), so the create-if-absent guard lives here only.
"""
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from app.core.errors import Conflict, NotFound, ValidationError
from app.models.device import Device
from app.models.warranty_check import (
    INITIATED_BY_PUBLIC,
    OPEN_STATUSES,
    WarrantyCheck,
    WarrantyCheckStatus,
)
from app.models.work_order import WorkOrder
from app.services.payments.store import PaymentRecordStore
from app.services.warranty import WarrantyLookupAdapter, map_warranty_status, resolve_brand_family
from app.services.warranty.base import WarrantyLookupResult
from app.utils.metrics import warranty_checks_created_total

logger = logging.getLogger(__name__)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class WarrantyCheckService:
    def __init__(self, db: Session, adapter: WarrantyLookupAdapter, store: PaymentRecordStore | None = None):
        self.db = db
        self.adapter = adapter
        self.store = store or PaymentRecordStore(db)

    def ensure_check(self, work_order: WorkOrder, initiated_by: str) -> WarrantyCheck:
        """
        Return the work order's existing check, or claim and run a new one.
        A caller that loses the claim race gets the winner's row and never calls the provider.
        """
        device = work_order.device
        if device is None:
            raise ValidationError("Work order has no device attached", {"workOrderId": work_order.id})

        check, created = self.store.claim_warranty_check(
            work_order_id=work_order.id,
            provider=resolve_brand_family(device.brand or ""),
            initiated_by=initiated_by,
        )
        if not created:
            logger.info(
                "warranty_check_exists",
                extra={"work_order_id": work_order.id, "warranty_check_id": check.id, "status": check.status},
            )
            return check

        warranty_checks_created_total.labels(initiated_by=initiated_by).inc()
        logger.info(
            "warranty_check_claimed",
            extra={"work_order_id": work_order.id, "warranty_check_id": check.id, "initiated_by": initiated_by},
        )
        return self.run(check, device.brand, device.serial_number, device.imei)

    def run(
        self,
        check: WarrantyCheck,
        brand: str | None,
        serial_number: str | None,
        imei: str | None,
    ) -> WarrantyCheck:
        """Run the lookup for a claimed check and persist the outcome. Errors end as FAILED, never raise."""
        check.status = WarrantyCheckStatus.IN_PROGRESS.value
        self.db.commit()

        try:
            result = self.adapter.check(brand or "", serial_number=serial_number, imei=imei)
        except Exception as e:
            logger.warning(
                "warranty_check_failed",
                extra={"warranty_check_id": check.id, "work_order_id": check.work_order_id, "error": str(e)},
            )
            check.status = WarrantyCheckStatus.FAILED.value
            check.error_message = str(e) or type(e).__name__
            check.finished_at = datetime.now(timezone.utc)
            self.db.commit()
            return check

        self._apply_result(check, result, brand, serial_number, imei)
        self.db.commit()
        logger.info(
            "warranty_check_finished",
            extra={
                "warranty_check_id": check.id,
                "work_order_id": check.work_order_id,
                "provider": check.provider,
                "status": check.status,
            },
        )
        return check

    def _apply_result(
        self,
        check: WarrantyCheck,
        result: WarrantyLookupResult,
        brand: str | None,
        serial_number: str | None,
        imei: str | None,
    ) -> None:
        now = datetime.now(timezone.utc)
        check.provider = result.provider
        check.status = map_warranty_status(result.status).value
        check.warranty_status = result.status
        check.warranty_expiry = result.expiry_date
        check.purchase_date = result.purchase_date
        check.coverage_start = result.coverage_start
        check.coverage_end = result.coverage_end
        check.device_status = result.device_status
        check.error_message = None
        check.finished_at = now
        check.result = {
            "status": result.status,
            "provider": result.provider,
            "expiryDate": _iso(result.expiry_date),
            "deviceStatus": result.device_status,
            "checkedAt": now.isoformat(),
            "brand": brand,
            "serialNumber": serial_number,
            "imei": imei,
        }

    def lookup_public(
        self,
        brand: str,
        serial_number: str | None = None,
        imei: str | None = None,
        initiated_by: str = INITIATED_BY_PUBLIC,
    ) -> WarrantyCheck:
        """Ad hoc lookup with no work order; the check is still persisted."""
        if not brand or not brand.strip():
            raise ValidationError("Brand required")
        if not (serial_number or imei):
            raise ValidationError("Serial number or IMEI required")

        check = self.store.create_warranty_check(
            work_order_id=None,
            provider=resolve_brand_family(brand),
            initiated_by=initiated_by,
            status=WarrantyCheckStatus.QUEUED.value,
            result={"brand": brand, "serialNumber": serial_number, "imei": imei},
        )
        self.db.commit()
        warranty_checks_created_total.labels(initiated_by=initiated_by).inc()
        return self.run(check, brand, serial_number, imei)

    def retry(self, check_id: str) -> WarrantyCheck:
        """Reset a finished check to QUEUED so the worker runs it again."""
        check = self.store.get_warranty_check(check_id)
        if check is None:
            raise NotFound("Warranty check", {"id": check_id})
        if check.status in OPEN_STATUSES:
            raise Conflict("Warranty check is already queued or running", {"id": check_id, "status": check.status})

        check.status = WarrantyCheckStatus.QUEUED.value
        check.error_message = None
        check.finished_at = None
        self.db.commit()
        logger.info("warranty_check_requeued", extra={"warranty_check_id": check.id})
        return check

    def run_queued(self, check_id: str) -> WarrantyCheck | None:
        """Worker entry point: run a QUEUED (or stuck IN_PROGRESS) check against its device."""
        check = self.store.get_warranty_check(check_id)
        if check is None or check.status not in OPEN_STATUSES:
            return check

        identifiers = self._identifiers_for(check)
        if identifiers is None:
            check.status = WarrantyCheckStatus.FAILED.value
            check.error_message = "No device identifiers available for this check"
            check.finished_at = datetime.now(timezone.utc)
            self.db.commit()
            return check
        return self.run(check, *identifiers)

    def _identifiers_for(self, check: WarrantyCheck) -> tuple[str | None, str | None, str | None] | None:
        if check.work_order_id:
            device = (
                self.db.query(Device)
                .join(WorkOrder, WorkOrder.device_id == Device.id)
                .filter(WorkOrder.id == check.work_order_id)
                .one_or_none()
            )
            if device is not None:
                return device.brand, device.serial_number, device.imei
        result: dict[str, Any] = check.result or {}
        if result.get("serialNumber") or result.get("imei"):
            brand = result.get("brand") or check.provider
            return brand, result.get("serialNumber"), result.get("imei")
        return None

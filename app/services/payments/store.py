"""
PaymentRecordStore: every read and write the payment / warranty workflow needs.

Status changes are compare-and-swap updates (`UPDATE ... WHERE status = <expected>`),
so two racing verifications cannot both observe PENDING and both flip it.
Warranty checks are claimed through a partial unique index (plus a transaction
advisory lock on PostgreSQL) so a work order gets at most one automatic check.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

from sqlalchemy import or_, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.core.errors import Conflict
from app.models.device import Device
from app.models.payment import Payment, PaymentStatus, can_transition
from app.models.payment_log import PaymentLog
from app.models.user import User
from app.models.warranty_check import AUTO_INITIATORS, WarrantyCheck, WarrantyCheckStatus
from app.models.work_order import WorkOrder
from app.schemas.metadata import SERVICE_WARRANTY_CHECK, WarrantyCheckPurchase

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PaymentRecordStore:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def transactionally(self, fn: Callable[[Session], T]) -> T:
        """Run fn(db) and commit; roll back and re-raise on any error."""
        try:
            result = fn(self.db)
            self.db.commit()
            return result
        except Exception:
            self.db.rollback()
            raise

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def find_payment_by_reference(self, reference: str, provider: str | None = None) -> Payment | None:
        query = self.db.query(Payment).filter(Payment.provider_reference == reference)
        if provider:
            query = query.filter(Payment.provider == provider)
        return query.order_by(Payment.created_at.desc()).first()

    def find_payment_by_id(self, payment_id: str, with_work_order_and_device: bool = False) -> Payment | None:
        query = self.db.query(Payment).filter(Payment.id == payment_id)
        if with_work_order_and_device:
            query = query.options(
                joinedload(Payment.user),
                joinedload(Payment.work_order).joinedload(WorkOrder.device),
            )
        return query.one_or_none()

    def add_payment(self, payment: Payment) -> Payment:
        self.db.add(payment)
        self.db.flush()
        return payment

    def list_payments_for_user(self, user_id: str, page: int = 1, limit: int = 10) -> tuple[list[Payment], int]:
        query = self.db.query(Payment).filter(Payment.user_id == user_id)
        total = query.count()
        payments = (
            query.order_by(Payment.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return payments, total

    def _transition(self, payment: Payment, target: PaymentStatus, values: dict[str, Any]) -> bool:
        """
        CAS the payment from its only valid predecessor to `target`.
        Returns False when the row is already in `target`; raises Conflict for any other state.
        """
        expected = next(
            (source for source in PaymentStatus if target in _successors(source)),
            None,
        )
        result = self.db.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status == expected.value)
            .values(status=target.value, **values)
            .execution_options(synchronize_session=False)
        )
        self.db.expire(payment)
        if result.rowcount == 1:
            return True

        current = self.db.query(Payment.status).filter(Payment.id == payment.id).scalar()
        if current == target.value:
            return False
        raise Conflict(
            f"Payment cannot move from {current} to {target.value}",
            {"paymentId": payment.id, "status": current},
        )

    def _set_work_order_payment_status(self, work_order_id: str | None, status: PaymentStatus, **values: Any) -> None:
        if not work_order_id:
            return
        self.db.execute(
            update(WorkOrder)
            .where(WorkOrder.id == work_order_id)
            .values(payment_status=status.value, updated_at=datetime.now(timezone.utc), **values)
            .execution_options(synchronize_session=False)
        )

    def mark_paid(self, payment: Payment, authorization_code: str | None = None) -> bool:
        """PENDING -> PAID for the payment and its work order. False when it was already PAID."""
        now = datetime.now(timezone.utc)
        values: dict[str, Any] = {"webhook_verified": True, "webhook_verified_at": now}
        if authorization_code:
            values["authorization_code"] = authorization_code
        work_order_id = payment.work_order_id
        reference = payment.provider_reference
        if not self._transition(payment, PaymentStatus.PAID, values):
            return False
        self._set_work_order_payment_status(work_order_id, PaymentStatus.PAID, payment_reference=reference)
        return True

    def mark_failed(self, payment: Payment) -> bool:
        """PENDING -> FAILED. The work order follows only while it is still PENDING."""
        work_order_id = payment.work_order_id
        if not self._transition(payment, PaymentStatus.FAILED, {}):
            return False
        if work_order_id:
            self.db.execute(
                update(WorkOrder)
                .where(WorkOrder.id == work_order_id, WorkOrder.payment_status == PaymentStatus.PENDING.value)
                .values(payment_status=PaymentStatus.FAILED.value)
                .execution_options(synchronize_session=False)
            )
        return True

    def mark_refunded(self, payment: Payment) -> bool:
        """PAID -> REFUNDED for the payment and its work order."""
        work_order_id = payment.work_order_id
        if not self._transition(payment, PaymentStatus.REFUNDED, {"refunded_at": datetime.now(timezone.utc)}):
            return False
        self._set_work_order_payment_status(work_order_id, PaymentStatus.REFUNDED)
        return True

    def log_event(self, payment_id: str, event: str, response: dict[str, Any] | None = None) -> PaymentLog:
        entry = PaymentLog(payment_id=payment_id, event=event, response=response or {})
        self.db.add(entry)
        return entry

    # ------------------------------------------------------------------
    # Users / work orders
    # ------------------------------------------------------------------

    def get_or_create_user(self, email: str) -> User:
        email = email.strip().lower()
        user = self.db.query(User).filter(User.email == email).one_or_none()
        if user:
            return user
        user = User(email=email)
        try:
            self.db.add(user)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return self.db.query(User).filter(User.email == email).one()
        self.db.refresh(user)
        return user

    def find_work_order(self, work_order_id: str) -> WorkOrder | None:
        return (
            self.db.query(WorkOrder)
            .options(joinedload(WorkOrder.device), joinedload(WorkOrder.user))
            .filter(WorkOrder.id == work_order_id)
            .one_or_none()
        )

    def ensure_work_order_for_warranty_purchase(
        self, payment: Payment, purchase: WarrantyCheckPurchase
    ) -> WorkOrder | None:
        """
        Create Device + WorkOrder for a warranty-check purchase made without a work order.
        Must run inside the transaction that moves the payment to PAID.
        """
        if payment.work_order_id:
            return self.find_work_order(payment.work_order_id)
        if not purchase.brand:
            logger.warning("warranty_purchase_missing_brand", extra={"payment_id": payment.id})
            return None

        device = Device(
            user_id=payment.user_id,
            brand=purchase.brand,
            model=purchase.model,
            device_type=purchase.device_type,
            serial_number=purchase.serial_number,
            imei=purchase.imei,
        )
        self.db.add(device)
        self.db.flush()

        work_order = WorkOrder(
            user_id=payment.user_id,
            device_id=device.id,
            status="CREATED",
            payment_status=PaymentStatus.PENDING.value,
            total_amount=payment.amount,
            issue_description="Warranty & device status check",
            meta={"service": SERVICE_WARRANTY_CHECK, "paymentId": payment.id},
        )
        self.db.add(work_order)
        self.db.flush()

        self.db.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.work_order_id.is_(None))
            .values(work_order_id=work_order.id)
            .execution_options(synchronize_session=False)
        )
        self.db.expire(payment)
        logger.info(
            "warranty_work_order_created",
            extra={"payment_id": payment.id, "work_order_id": work_order.id},
        )
        return work_order

    # ------------------------------------------------------------------
    # Warranty checks
    # ------------------------------------------------------------------

    def create_warranty_check(self, **data: Any) -> WarrantyCheck:
        check = WarrantyCheck(**data)
        self.db.add(check)
        self.db.flush()
        return check

    def get_warranty_check(self, check_id: str) -> WarrantyCheck | None:
        return self.db.query(WarrantyCheck).filter(WarrantyCheck.id == check_id).one_or_none()

    def find_latest_warranty_check(self, work_order_id: str) -> WarrantyCheck | None:
        return (
            self.db.query(WarrantyCheck)
            .filter(WarrantyCheck.work_order_id == work_order_id)
            .order_by(WarrantyCheck.created_at.desc())
            .first()
        )

    def find_auto_warranty_check(self, work_order_id: str) -> WarrantyCheck | None:
        return (
            self.db.query(WarrantyCheck)
            .filter(
                WarrantyCheck.work_order_id == work_order_id,
                WarrantyCheck.initiated_by.in_(AUTO_INITIATORS),
            )
            .one_or_none()
        )

    def claim_warranty_check(
        self, work_order_id: str, provider: str, initiated_by: str
    ) -> tuple[WarrantyCheck, bool]:
        """
        Create-if-absent. Commits an IN_PROGRESS row before any provider call so
        concurrent callers find it and back off. Returns (check, created).
        """
        existing = self.find_latest_warranty_check(work_order_id)
        if existing:
            return existing, False

        if self.db.get_bind().dialect.name == "postgresql":
            self.db.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                {"key": f"warranty_check:{work_order_id}"},
            )
            existing = self.find_latest_warranty_check(work_order_id)
            if existing:
                self.db.commit()
                return existing, False

        try:
            check = self.create_warranty_check(
                work_order_id=work_order_id,
                provider=provider,
                initiated_by=initiated_by,
                status=WarrantyCheckStatus.IN_PROGRESS.value,
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info("warranty_check_claim_lost", extra={"work_order_id": work_order_id})
            existing = self.find_auto_warranty_check(work_order_id)
            if existing is None:
                raise
            return existing, False
        return check, True

    def find_latest_check_for_customer(
        self,
        email: str | None = None,
        serial_number: str | None = None,
        imei: str | None = None,
    ) -> WarrantyCheck | None:
        """Most recent check whose work order matches any of the given criteria."""
        conditions = []
        if email:
            conditions.append(User.email == email.strip().lower())
        if serial_number:
            conditions.append(Device.serial_number == serial_number.strip())
        if imei:
            conditions.append(Device.imei == imei.strip())
        if not conditions:
            return None

        return (
            self.db.query(WarrantyCheck)
            .join(WorkOrder, WarrantyCheck.work_order_id == WorkOrder.id)
            .join(User, WorkOrder.user_id == User.id)
            .outerjoin(Device, WorkOrder.device_id == Device.id)
            .options(joinedload(WarrantyCheck.work_order))
            .filter(or_(*conditions))
            .order_by(WarrantyCheck.created_at.desc())
            .first()
        )

    def find_stuck_warranty_checks(self, older_than: datetime) -> list[WarrantyCheck]:
        return (
            self.db.query(WarrantyCheck)
            .filter(
                WarrantyCheck.status == WarrantyCheckStatus.IN_PROGRESS.value,
                WarrantyCheck.updated_at < older_than,
            )
            .all()
        )


def _successors(status: PaymentStatus) -> list[PaymentStatus]:
    return [target for target in PaymentStatus if can_transition(status.value, target.value)]

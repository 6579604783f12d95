"""
Payment verification: the state machine that turns a provider reference into a
PAID payment and, when the payment bought one, exactly one warranty check.

    RECEIVED -> PROVIDER_VERIFIED -> PERSISTED -> WARRANTY_EVALUATED -> DONE
    (FAILED from any stage)

Provider errors propagate untouched and leave the store as it was. Warranty
errors after PAID is committed are contained: the payment stays PAID.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable

from sqlalchemy.orm import Session

from app.core.errors import NotFound
from app.models.payment import Payment, PaymentStatus
from app.models.warranty_check import INITIATED_BY_PAYMENT_VERIFY
from app.schemas.metadata import WarrantyCheckPurchase, parse_payment_metadata
from app.services.payment_gateways import GATEWAY_SUCCESS, GatewayVerifyResult, PaymentGateway
from app.services.payments.store import PaymentRecordStore
from app.services.warranty_checks.service import WarrantyCheckService
from app.utils.metrics import payment_verifications_total

logger = logging.getLogger(__name__)


class VerificationStage(str, Enum):
    RECEIVED = "RECEIVED"
    PROVIDER_VERIFIED = "PROVIDER_VERIFIED"
    PERSISTED = "PERSISTED"
    WARRANTY_EVALUATED = "WARRANTY_EVALUATED"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class PaymentNotification:
    """What the caller needs to compose a customer email; the orchestrator never sends it."""
    email: str | None
    customer_name: str | None
    payment_id: str
    reference: str
    status: str
    amount: str
    currency: str
    device: str | None = None


@dataclass
class VerificationOutcome:
    status: str
    amount: Decimal | None
    payment: dict[str, Any]
    stage: VerificationStage
    newly_paid: bool = False
    warranty_check: dict[str, Any] | None = None
    notification: PaymentNotification | None = None
    errors: list[str] = field(default_factory=list)

    def to_response(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "amount": str(self.amount) if self.amount is not None else None,
            "payment": self.payment,
        }


class PaymentVerificationOrchestrator:
    def __init__(
        self,
        db: Session,
        gateway_for: Callable[[str], PaymentGateway],
        warranty_checks: WarrantyCheckService,
        store: PaymentRecordStore | None = None,
    ):
        self.db = db
        self.gateway_for = gateway_for
        self.warranty_checks = warranty_checks
        self.store = store or PaymentRecordStore(db)

    def verify(self, reference: str) -> VerificationOutcome:
        stage = VerificationStage.RECEIVED
        log_extra = {"reference": reference}
        logger.info("payment_verify_received", extra=log_extra)

        payment = self.store.find_payment_by_reference(reference)
        if payment is None:
            raise NotFound("Payment", {"reference": reference})
        log_extra = {"reference": reference, "payment_id": payment.id, "provider": payment.provider}

        try:
            result = self.gateway_for(payment.provider).verify(reference)
        except Exception as e:
            payment_verifications_total.labels(provider=payment.provider, outcome="error").inc()
            logger.warning(
                "payment_verify_failed",
                extra={**log_extra, "stage": stage.value, "error": str(e)},
            )
            raise
        stage = VerificationStage.PROVIDER_VERIFIED

        if payment.status == PaymentStatus.REFUNDED.value:
            # Terminal; a replayed verify reports the stored state and writes nothing
            payment_verifications_total.labels(provider=payment.provider, outcome="already_refunded").inc()
            logger.info("payment_verify_refunded", extra={**log_extra, "status": result.status})
            return VerificationOutcome(
                status=result.status,
                amount=result.amount,
                payment=payment.to_public_dict(),
                stage=VerificationStage.DONE,
            )

        already_paid = payment.status == PaymentStatus.PAID.value
        if not result.is_success and not already_paid:
            payment_verifications_total.labels(provider=payment.provider, outcome=result.status).inc()
            logger.info("payment_not_successful", extra={**log_extra, "status": result.status})
            return VerificationOutcome(
                status=result.status,
                amount=result.amount,
                payment=payment.to_public_dict(),
                stage=stage,
            )

        newly_paid = self._persist_paid(payment, result)
        stage = VerificationStage.PERSISTED
        payment_verifications_total.labels(
            provider=payment.provider, outcome="paid" if newly_paid else "already_paid"
        ).inc()

        payment = self.store.find_payment_by_id(payment.id, with_work_order_and_device=True)
        outcome = VerificationOutcome(
            status=GATEWAY_SUCCESS,
            amount=result.amount if result.amount is not None else payment.amount,
            payment=payment.to_public_dict(),
            stage=stage,
            newly_paid=newly_paid,
            notification=self._notification(payment),
        )

        outcome.warranty_check = self._evaluate_warranty(payment, outcome, log_extra)
        if outcome.stage != VerificationStage.FAILED:
            outcome.stage = VerificationStage.DONE
        logger.info(
            "payment_verified",
            extra={**log_extra, "status": payment.status, "stage": outcome.stage.value},
        )
        return outcome

    def _persist_paid(self, payment: Payment, result: GatewayVerifyResult) -> bool:
        """Payment and work order go to PAID in one transaction. False when it was already PAID."""
        purchase = parse_payment_metadata(payment.meta)

        def _apply(db: Session) -> bool:
            transitioned = self.store.mark_paid(payment, authorization_code=result.authorization_code)
            if not transitioned:
                return False
            if isinstance(purchase, WarrantyCheckPurchase) and not payment.work_order_id:
                work_order = self.store.ensure_work_order_for_warranty_purchase(payment, purchase)
                if work_order is not None:
                    work_order.payment_status = PaymentStatus.PAID.value
                    work_order.payment_reference = payment.provider_reference
            self.store.log_event(payment.id, "verified", result.raw)
            return True

        return self.store.transactionally(_apply)

    def _evaluate_warranty(
        self,
        payment: Payment,
        outcome: VerificationOutcome,
        log_extra: dict[str, Any],
    ) -> dict[str, Any] | None:
        if not isinstance(parse_payment_metadata(payment.meta), WarrantyCheckPurchase):
            return None
        work_order = payment.work_order
        if work_order is None or work_order.device is None:
            logger.warning("warranty_check_skipped_no_device", extra=log_extra)
            return None

        try:
            check = self.warranty_checks.ensure_check(work_order, INITIATED_BY_PAYMENT_VERIFY)
        except Exception as e:
            # Payment is already committed as PAID; the status query re-attempts later
            self.db.rollback()
            outcome.stage = VerificationStage.FAILED
            outcome.errors.append(str(e))
            logger.exception(
                "warranty_check_after_payment_failed",
                extra={**log_extra, "work_order_id": work_order.id, "error": str(e)},
            )
            return None
        outcome.stage = VerificationStage.WARRANTY_EVALUATED
        return check.to_dict()

    def _notification(self, payment: Payment) -> PaymentNotification:
        user = payment.user
        work_order = payment.work_order
        device = work_order.device if work_order is not None else None
        return PaymentNotification(
            email=user.email if user else None,
            customer_name=user.name if user else None,
            payment_id=payment.id,
            reference=payment.provider_reference,
            status=payment.status,
            amount=str(payment.amount),
            currency=payment.currency,
            device=device.summary() if device else None,
        )

"""
PaymentService: everything around a payment except verification itself.

Responsibilities:
- Open a hosted checkout and persist the PENDING payment
- Admin refund (PAID -> REFUNDED)
- Public payment view and per-user history
- Webhook routing onto the verification path, de-duplicated per delivery
"""
import logging
import secrets
from decimal import Decimal
from typing import Any, Callable
from uuid import uuid4

import redis
from email_validator import EmailNotValidError, validate_email
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import Conflict, NotFound, ValidationError
from app.models.payment import Payment, PaymentStatus
from app.models.user import User
from app.services.idempotency import WebhookDeduplicator
from app.services.payment_gateways import GATEWAY_FAILED, GatewayInitRequest, PaymentGateway
from app.services.payments.store import PaymentRecordStore
from app.services.payments.verification import PaymentVerificationOrchestrator, VerificationOutcome
from app.utils.metrics import payments_initialized_total, webhooks_received_total

logger = logging.getLogger(__name__)

# Provider event names that mean "money captured" / "charge failed"
SUCCESS_EVENTS = frozenset({"charge.success", "charge.completed", "payment.success", "transaction.successful"})
FAILURE_EVENTS = frozenset({"charge.failed", "payment.failed", "transaction.failed"})


def generate_reference() -> str:
    return f"SVX-{secrets.token_hex(8).upper()}"


class PaymentService:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        gateway_for: Callable[[str], PaymentGateway],
        orchestrator: PaymentVerificationOrchestrator | None = None,
        deduplicator: WebhookDeduplicator | None = None,
    ):
        self.db = db
        self.settings = settings
        self.gateway_for = gateway_for
        self.orchestrator = orchestrator
        self.deduplicator = deduplicator
        self.store = PaymentRecordStore(db)

    # ------------------------------------------------------------------
    # Initialize
    # ------------------------------------------------------------------

    def initialize_payment(
        self,
        amount: Decimal,
        email: str,
        provider: str | None = None,
        metadata: dict[str, Any] | None = None,
        work_order_id: str | None = None,
        user: User | None = None,
    ) -> dict[str, Any]:
        """
        Open a checkout with the provider, then persist the PENDING payment.
        Nothing is written when the gateway call fails.
        """
        amount = Decimal(str(amount))
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero")
        try:
            email = validate_email(email or "", check_deliverability=False).normalized
        except EmailNotValidError as e:
            raise ValidationError("A valid email is required", {"email": str(e)}) from e

        provider_name = (provider or self.settings.default_payment_provider).strip().lower()
        gateway = self.gateway_for(provider_name)
        if user is None:
            user = self.store.get_or_create_user(email)

        if work_order_id:
            work_order = self.store.find_work_order(work_order_id)
            if work_order is None or work_order.user_id != user.id:
                raise NotFound("Work order", {"workOrderId": work_order_id})
            if work_order.payment_status == PaymentStatus.PAID.value:
                raise Conflict("Work order already paid", {"workOrderId": work_order_id})

        payment_id = str(uuid4())
        reference = generate_reference()
        meta = dict(metadata or {})
        gateway_metadata = {**meta, "paymentId": payment_id}
        if work_order_id:
            gateway_metadata["workOrderId"] = work_order_id

        result = gateway.initialize(
            GatewayInitRequest(
                amount=amount,
                email=email,
                reference=reference,
                currency=self.settings.default_currency,
                metadata=gateway_metadata,
                callback_url=self._callback_url(work_order_id),
            )
        )

        payment = Payment(
            id=payment_id,
            work_order_id=work_order_id,
            user_id=user.id,
            amount=amount,
            currency=self.settings.default_currency,
            provider=provider_name,
            provider_reference=result.reference or reference,
            access_code=result.access_code,
            status=PaymentStatus.PENDING.value,
            meta=meta,
        )

        def _persist(db: Session) -> Payment:
            self.store.add_payment(payment)
            self.store.log_event(payment.id, "initialized", result.raw)
            return payment

        self.store.transactionally(_persist)
        payments_initialized_total.labels(provider=provider_name).inc()
        logger.info(
            "payment_initialized",
            extra={
                "payment_id": payment_id,
                "reference": payment.provider_reference,
                "provider": provider_name,
                "work_order_id": work_order_id,
                "user_id": user.id,
            },
        )
        return {
            "authorizationUrl": result.authorization_url,
            "accessCode": result.access_code,
            "reference": payment.provider_reference,
            "paymentId": payment_id,
        }

    def _callback_url(self, work_order_id: str | None) -> str:
        base = self.settings.app_url.rstrip("/")
        if work_order_id:
            return f"{base}/dashboard/work-orders/{work_order_id}"
        return f"{base}/payment/callback"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_public_payment(self, payment_id: str) -> dict[str, Any]:
        payment = self.store.find_payment_by_id(payment_id)
        if payment is None:
            raise NotFound("Payment", {"paymentId": payment_id})
        return payment.to_public_dict()

    def list_payments_for_user(self, user_id: str, page: int = 1, limit: int = 10) -> dict[str, Any]:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        payments, total = self.store.list_payments_for_user(user_id, page=page, limit=limit)
        return {
            "payments": [p.to_public_dict() for p in payments],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
        }

    # ------------------------------------------------------------------
    # Refund
    # ------------------------------------------------------------------

    def refund(self, payment_id: str, actor_id: str, reason: str) -> dict[str, Any]:
        """Record a refund locally. Moving the money back happens in the provider dashboard."""
        payment = self.store.find_payment_by_id(payment_id)
        if payment is None:
            raise NotFound("Payment", {"paymentId": payment_id})
        if payment.status != PaymentStatus.PAID.value:
            raise Conflict(
                "Only paid payments can be refunded",
                {"paymentId": payment_id, "status": payment.status},
            )

        def _apply(db: Session) -> bool:
            refunded = self.store.mark_refunded(payment)
            if refunded:
                self.store.log_event(payment_id, "refunded", {"reason": reason, "requestedBy": actor_id})
            return refunded

        self.store.transactionally(_apply)
        logger.info("payment_refunded", extra={"payment_id": payment_id, "user_id": actor_id})
        return self.store.find_payment_by_id(payment_id).to_public_dict()

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def verify_webhook_signature(self, provider: str, body: bytes, signature: str | None) -> bool:
        return self.gateway_for(provider).verify_webhook_signature(body, signature)

    def handle_webhook(self, provider: str, event: str, data: dict[str, Any]) -> VerificationOutcome | None:
        """
        Route a signed webhook delivery. Success events go through verify() so a
        webhook and a client poll converge on the same idempotent path. Failure
        events fail a PENDING payment only after the provider reports it failed.
        """
        reference = _webhook_reference(data)
        if not event or not reference:
            webhooks_received_total.labels(provider=provider, outcome="ignored").inc()
            logger.info("webhook_ignored", extra={"provider": provider, "event": event})
            return None

        key = WebhookDeduplicator.key_for(provider, event, reference)
        if self.deduplicator is not None:
            try:
                if not self.deduplicator.check_and_set(key):
                    webhooks_received_total.labels(provider=provider, outcome="duplicate").inc()
                    logger.info("webhook_duplicate", extra={"provider": provider, "event": event, "reference": reference})
                    return None
            except redis.RedisError as e:
                # Verification is idempotent on its own; de-duplication only saves provider calls
                logger.warning("webhook_dedupe_unavailable", extra={"provider": provider, "error": str(e)})

        try:
            outcome = self._dispatch_webhook(provider, event, reference, data)
        except Exception:
            webhooks_received_total.labels(provider=provider, outcome="error").inc()
            if self.deduplicator is not None:
                try:
                    self.deduplicator.release(key)
                except redis.RedisError:
                    logger.warning("webhook_dedupe_release_failed", extra={"provider": provider, "reference": reference})
            raise
        webhooks_received_total.labels(provider=provider, outcome="processed").inc()
        return outcome

    def _dispatch_webhook(
        self, provider: str, event: str, reference: str, data: dict[str, Any]
    ) -> VerificationOutcome | None:
        payment = self.store.find_payment_by_reference(reference, provider=provider)
        if payment is None:
            logger.warning("webhook_payment_not_found", extra={"provider": provider, "reference": reference})
            return None

        if event in SUCCESS_EVENTS:
            self.store.log_event(payment.id, f"webhook_{event}", data)
            self.db.commit()
            if self.orchestrator is None:
                raise RuntimeError("PaymentService needs an orchestrator to process success webhooks")
            return self.orchestrator.verify(reference)

        if event in FAILURE_EVENTS:
            if payment.status != PaymentStatus.PENDING.value:
                return None
            # Webhook bodies are not trusted to fail a payment; the provider must confirm it
            result = self.gateway_for(payment.provider).verify(reference)
            if result.status != GATEWAY_FAILED:
                logger.warning(
                    "webhook_failure_not_confirmed",
                    extra={"provider": provider, "payment_id": payment.id, "status": result.status},
                )
                return None

            def _apply(db: Session) -> bool:
                changed = self.store.mark_failed(payment)
                self.store.log_event(payment.id, f"webhook_{event}", {**data, "providerStatus": result.status})
                return changed

            self.store.transactionally(_apply)
            logger.info("payment_failed_by_webhook", extra={"provider": provider, "payment_id": payment.id})
            return None

        logger.info("webhook_event_unhandled", extra={"provider": provider, "event": event, "reference": reference})
        return None


def _webhook_reference(data: dict[str, Any] | None) -> str | None:
    if not isinstance(data, dict):
        return None
    for key in ("reference", "tx_ref", "txRef", "transactionReference"):
        value = data.get(key)
        if value:
            return str(value)
    return None

"""Tests for PaymentService: initialize, refund, public reads, webhook routing."""
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import redis

from app.core.config import settings
from app.core.errors import Conflict, NotFound, ProviderUnavailable, ValidationError
from app.models.payment import Payment, PaymentStatus
from app.models.payment_log import PaymentLog
from app.models.user import User
from app.services.payment_gateways import GATEWAY_FAILED, GatewayInitResult, GatewayVerifyResult
from app.services.payments.service import PaymentService
from app.services.payments.store import PaymentRecordStore
from app.services.payments.verification import PaymentVerificationOrchestrator
from app.services.warranty_checks.service import WarrantyCheckService


def _gateway():
    gw = MagicMock()
    gw.initialize.side_effect = lambda request: GatewayInitResult(
        authorization_url="https://checkout.test/x",
        access_code="ac_1",
        reference=request.reference,
        raw={"status": True},
    )
    return gw


def _service(db, gateway=None, orchestrator=None, deduplicator=None):
    gateway = gateway or _gateway()
    return PaymentService(db, settings, lambda provider: gateway, orchestrator, deduplicator)


class TestInitialize:
    def test_persists_pending_payment_after_gateway_success(self, db):
        gateway = _gateway()
        service = _service(db, gateway)

        result = service.initialize_payment(
            amount=Decimal("1000"),
            email="New.Customer@Example.com",
            provider="paystack",
            metadata={"service": "warranty-check", "brand": "APPLE"},
        )

        payment = db.get(Payment, result["paymentId"])
        assert payment.status == "PENDING"
        assert payment.provider_reference == result["reference"]
        assert payment.access_code == "ac_1"
        assert payment.meta["service"] == "warranty-check"
        assert result["authorizationUrl"] == "https://checkout.test/x"
        # unknown email -> user created
        assert db.query(User).filter(User.email == "new.customer@example.com").count() == 1
        sent = gateway.initialize.call_args.args[0]
        assert sent.metadata["paymentId"] == payment.id
        assert db.query(PaymentLog).filter(PaymentLog.event == "initialized").count() == 1

    def test_gateway_failure_writes_no_payment(self, db):
        gateway = _gateway()
        gateway.initialize.side_effect = ProviderUnavailable("paystack")
        with pytest.raises(ProviderUnavailable):
            _service(db, gateway).initialize_payment(amount=Decimal("10"), email="a@example.com")
        assert db.query(Payment).count() == 0

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
    def test_non_positive_amount_rejected_before_io(self, db, amount):
        gateway = _gateway()
        with pytest.raises(ValidationError):
            _service(db, gateway).initialize_payment(amount=amount, email="a@example.com")
        gateway.initialize.assert_not_called()

    def test_malformed_email_rejected_before_io(self, db):
        gateway = _gateway()
        with pytest.raises(ValidationError):
            _service(db, gateway).initialize_payment(amount=Decimal("10"), email="not-an-email")
        gateway.initialize.assert_not_called()

    def test_paid_work_order_rejected(self, db, make_order):
        payment = make_order()
        store = PaymentRecordStore(db)
        store.transactionally(lambda _: store.mark_paid(payment))
        user = db.get(User, payment.user_id)

        with pytest.raises(Conflict):
            _service(db).initialize_payment(
                amount=Decimal("10"), email=user.email, work_order_id=payment.work_order_id, user=user
            )

    def test_other_users_work_order_not_found(self, db, make_order):
        payment = make_order()
        with pytest.raises(NotFound):
            _service(db).initialize_payment(
                amount=Decimal("10"), email="someone.else@example.com", work_order_id=payment.work_order_id
            )


class TestReadsAndRefund:
    def test_public_payment_view(self, db, make_order):
        payment = make_order()
        view = _service(db).get_public_payment(payment.id)
        assert set(view) == {"id", "status", "amount", "currency", "metadata", "createdAt"}
        with pytest.raises(NotFound):
            _service(db).get_public_payment("nope")

    def test_history_is_paginated(self, db, make_order):
        for i in range(3):
            payment = make_order(reference=f"ref_{i}")
        history = _service(db).list_payments_for_user(payment.user_id, page=1, limit=2)
        assert len(history["payments"]) == 2
        assert history["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}

    def test_refund_paid_payment(self, db, make_order):
        payment = make_order()
        store = PaymentRecordStore(db)
        store.transactionally(lambda _: store.mark_paid(payment))

        view = _service(db).refund(payment.id, actor_id="admin_1", reason="customer cancelled")

        assert view["status"] == "REFUNDED"
        log = db.query(PaymentLog).filter(PaymentLog.event == "refunded").one()
        assert log.response == {"reason": "customer cancelled", "requestedBy": "admin_1"}

    def test_refund_pending_conflicts(self, db, make_order):
        payment = make_order()
        with pytest.raises(Conflict):
            _service(db).refund(payment.id, actor_id="admin_1", reason="nope")


class TestWebhooks:
    def test_success_event_goes_through_verify(self, db, make_order):
        make_order()
        orchestrator = MagicMock()
        dedupe = MagicMock()
        dedupe.check_and_set.return_value = True

        _service(db, orchestrator=orchestrator, deduplicator=dedupe).handle_webhook(
            "paystack", "charge.success", {"reference": "ref_123"}
        )

        orchestrator.verify.assert_called_once_with("ref_123")
        assert db.query(PaymentLog).filter(PaymentLog.event == "webhook_charge.success").count() == 1

    def test_duplicate_delivery_is_skipped(self, db, make_order):
        make_order()
        orchestrator = MagicMock()
        dedupe = MagicMock()
        dedupe.check_and_set.return_value = False

        result = _service(db, orchestrator=orchestrator, deduplicator=dedupe).handle_webhook(
            "paystack", "charge.success", {"reference": "ref_123"}
        )

        assert result is None
        orchestrator.verify.assert_not_called()

    def test_failed_processing_releases_dedupe_key(self, db, make_order):
        make_order()
        orchestrator = MagicMock()
        orchestrator.verify.side_effect = ProviderUnavailable("paystack")
        dedupe = MagicMock()
        dedupe.check_and_set.return_value = True

        with pytest.raises(ProviderUnavailable):
            _service(db, orchestrator=orchestrator, deduplicator=dedupe).handle_webhook(
                "paystack", "charge.success", {"reference": "ref_123"}
            )
        dedupe.release.assert_called_once_with("webhook:paystack:charge.success:ref_123")

    def test_redis_outage_does_not_block_processing(self, db, make_order):
        make_order()
        orchestrator = MagicMock()
        dedupe = MagicMock()
        dedupe.check_and_set.side_effect = redis.ConnectionError("down")

        _service(db, orchestrator=orchestrator, deduplicator=dedupe).handle_webhook(
            "paystack", "charge.success", {"reference": "ref_123"}
        )
        orchestrator.verify.assert_called_once()

    def test_failure_event_confirmed_by_provider_marks_payment_failed(self, db, make_order):
        payment = make_order(provider="flutterwave", reference="SVX-1")
        gateway = _gateway()
        gateway.verify.return_value = GatewayVerifyResult(status=GATEWAY_FAILED, amount=None, reference="SVX-1")

        _service(db, gateway).handle_webhook("flutterwave", "charge.failed", {"tx_ref": "SVX-1"})

        gateway.verify.assert_called_once_with("SVX-1")
        db.refresh(payment)
        assert payment.status == PaymentStatus.FAILED.value

    def test_unconfirmed_failure_event_leaves_payment_payable(self, db, make_order, gateway):
        payment = make_order(provider="etegram")
        orchestrator = PaymentVerificationOrchestrator(
            db, lambda provider: gateway, WarrantyCheckService(db, MagicMock())
        )
        service = _service(db, gateway, orchestrator=orchestrator)

        assert service.handle_webhook("etegram", "charge.failed", {"reference": "ref_123"}) is None
        db.refresh(payment)
        assert payment.status == PaymentStatus.PENDING.value
        assert db.query(PaymentLog).filter(PaymentLog.event == "webhook_charge.failed").count() == 0

        outcome = orchestrator.verify("ref_123")
        assert outcome.newly_paid is True
        db.refresh(payment)
        assert payment.status == PaymentStatus.PAID.value

    def test_unknown_reference_is_ignored(self, db):
        orchestrator = MagicMock()
        assert _service(db, orchestrator=orchestrator).handle_webhook(
            "paystack", "charge.success", {"reference": "ghost"}
        ) is None
        orchestrator.verify.assert_not_called()

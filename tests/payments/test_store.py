"""Tests for PaymentRecordStore: CAS transitions and the warranty check claim."""
from unittest.mock import patch

import pytest

from app.core.errors import Conflict
from app.models.payment import PaymentStatus, can_transition
from app.models.payment_log import PaymentLog
from app.models.warranty_check import WarrantyCheck
from app.models.work_order import WorkOrder
from app.schemas.metadata import WarrantyCheckPurchase
from app.services.payments.store import PaymentRecordStore


class TestTransitions:
    def test_transition_table(self):
        assert can_transition("PENDING", "PAID")
        assert can_transition("PENDING", "FAILED")
        assert can_transition("PAID", "REFUNDED")
        assert not can_transition("PAID", "PENDING")
        assert not can_transition("FAILED", "PAID")
        assert not can_transition("REFUNDED", "PAID")

    def test_mark_paid_updates_payment_and_work_order_together(self, db, make_order):
        payment = make_order()
        store = PaymentRecordStore(db)

        assert store.transactionally(lambda _: store.mark_paid(payment, authorization_code="AUTH_1")) is True

        db.refresh(payment)
        assert payment.status == "PAID"
        assert payment.webhook_verified is True
        assert payment.webhook_verified_at is not None
        assert payment.authorization_code == "AUTH_1"
        work_order = db.get(WorkOrder, payment.work_order_id)
        assert work_order.payment_status == "PAID"
        assert work_order.payment_reference == "ref_123"

    def test_mark_paid_twice_is_a_no_op(self, db, make_order):
        payment = make_order()
        store = PaymentRecordStore(db)
        store.transactionally(lambda _: store.mark_paid(payment))
        assert store.transactionally(lambda _: store.mark_paid(payment)) is False

    def test_mark_paid_on_failed_payment_conflicts(self, db, make_order):
        payment = make_order()
        store = PaymentRecordStore(db)
        store.transactionally(lambda _: store.mark_failed(payment))
        with pytest.raises(Conflict):
            store.transactionally(lambda _: store.mark_paid(payment))
        db.refresh(payment)
        assert payment.status == "FAILED"

    def test_failed_transaction_rolls_back_both_rows(self, db, make_order):
        payment = make_order()
        store = PaymentRecordStore(db)

        def _apply(_):
            store.mark_paid(payment)
            raise RuntimeError("crash after update")

        with pytest.raises(RuntimeError):
            store.transactionally(_apply)

        db.refresh(payment)
        assert payment.status == PaymentStatus.PENDING.value
        assert db.get(WorkOrder, payment.work_order_id).payment_status == "PENDING"

    def test_refund_requires_paid(self, db, make_order):
        payment = make_order()
        store = PaymentRecordStore(db)
        with pytest.raises(Conflict):
            store.transactionally(lambda _: store.mark_refunded(payment))
        store.transactionally(lambda _: store.mark_paid(payment))
        assert store.transactionally(lambda _: store.mark_refunded(payment)) is True
        db.refresh(payment)
        assert payment.status == "REFUNDED"
        assert payment.refunded_at is not None
        assert db.get(WorkOrder, payment.work_order_id).payment_status == "REFUNDED"

    def test_log_event(self, db, make_order):
        payment = make_order()
        store = PaymentRecordStore(db)
        store.transactionally(lambda _: store.log_event(payment.id, "verified", {"ok": True}))
        assert db.query(PaymentLog).filter(PaymentLog.payment_id == payment.id).count() == 1


class TestWorkOrderSynthesis:
    def test_creates_device_and_work_order(self, db, make_order):
        payment = make_order(metadata={"service": "warranty-check"}, with_work_order=False)
        store = PaymentRecordStore(db)
        purchase = WarrantyCheckPurchase(service="warranty-check", brand="Dell", serialNumber="ABC1234")

        work_order = store.transactionally(lambda _: store.ensure_work_order_for_warranty_purchase(payment, purchase))

        db.refresh(payment)
        assert payment.work_order_id == work_order.id
        assert work_order.device.brand == "Dell"
        assert work_order.device.serial_number == "ABC1234"
        assert work_order.meta["service"] == "warranty-check"

    def test_without_brand_creates_nothing(self, db, make_order):
        payment = make_order(metadata={"service": "warranty-check"}, with_work_order=False)
        store = PaymentRecordStore(db)
        purchase = WarrantyCheckPurchase(service="warranty-check")
        assert store.ensure_work_order_for_warranty_purchase(payment, purchase) is None
        assert db.query(WorkOrder).count() == 0


class TestWarrantyClaim:
    def test_first_claim_creates_in_progress_row(self, db, make_order):
        payment = make_order()
        store = PaymentRecordStore(db)
        check, created = store.claim_warranty_check(payment.work_order_id, "apple", "payment_verify")
        assert created is True
        assert check.status == "IN_PROGRESS"

    def test_second_claim_returns_existing(self, db, make_order):
        payment = make_order()
        store = PaymentRecordStore(db)
        first, _ = store.claim_warranty_check(payment.work_order_id, "apple", "payment_verify")
        second, created = store.claim_warranty_check(payment.work_order_id, "apple", "payment_auto")
        assert created is False
        assert second.id == first.id
        assert db.query(WarrantyCheck).count() == 1

    def test_lost_race_falls_back_to_winner(self, db, make_order):
        """Both callers saw no check; the unique index rejects the second insert."""
        payment = make_order()
        store = PaymentRecordStore(db)
        winner, _ = store.claim_warranty_check(payment.work_order_id, "apple", "payment_verify")

        with patch.object(store, "find_latest_warranty_check", return_value=None):
            loser, created = store.claim_warranty_check(payment.work_order_id, "apple", "payment_auto")

        assert created is False
        assert loser.id == winner.id
        assert db.query(WarrantyCheck).count() == 1

    def test_public_checks_are_not_limited(self, db, make_order):
        payment = make_order()
        store = PaymentRecordStore(db)
        store.claim_warranty_check(payment.work_order_id, "apple", "payment_verify")
        store.create_warranty_check(work_order_id=payment.work_order_id, provider="apple", initiated_by="public")
        db.commit()
        assert db.query(WarrantyCheck).count() == 2

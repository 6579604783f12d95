"""Tests for StatusQueryService: self-healing read, unpaid guard, customer search."""
from unittest.mock import MagicMock

import pytest

from app.core.errors import NotFound, PaymentNotPaid, ValidationError
from app.models.warranty_check import WarrantyCheck
from app.services.payments.store import PaymentRecordStore
from app.services.warranty import WarrantyLookupAdapter
from app.services.warranty.base import WarrantyLookupResult
from app.services.warranty_checks.service import WarrantyCheckService
from app.services.warranty_checks.status import StatusQueryService


def _service(db, status="in_warranty"):
    adapter = MagicMock(spec=WarrantyLookupAdapter)
    adapter.check.return_value = WarrantyLookupResult(status=status, provider="apple")
    return StatusQueryService(db, WarrantyCheckService(db, adapter)), adapter


def _mark_paid(db, payment):
    store = PaymentRecordStore(db)
    store.transactionally(lambda _: store.mark_paid(payment))


class TestByPaymentId:
    def test_self_heals_missing_check_once(self, db, make_order):
        payment = make_order(metadata={"service": "warranty-check"})
        _mark_paid(db, payment)
        service, adapter = _service(db)

        first = service.get_status(payment_id=payment.id)
        second = service.get_status(payment_id=payment.id)

        assert first.created is True
        assert first.check.initiated_by == "payment_auto"
        assert first.check.status == "SUCCESS"
        assert second.created is False
        assert second.check.id == first.check.id
        assert db.query(WarrantyCheck).count() == 1
        assert adapter.check.call_count == 1

    def test_unpaid_order_is_not_looked_up(self, db, make_order):
        payment = make_order(metadata={"service": "warranty-check"})
        service, adapter = _service(db)

        with pytest.raises(PaymentNotPaid) as exc:
            service.get_status(payment_id=payment.id)

        assert exc.value.payment_status == "PENDING"
        adapter.check.assert_not_called()
        assert db.query(WarrantyCheck).count() == 0

    def test_existing_check_returned_verbatim(self, db, make_order):
        payment = make_order()
        _mark_paid(db, payment)
        store = PaymentRecordStore(db)
        existing = store.create_warranty_check(
            work_order_id=payment.work_order_id, provider="apple", initiated_by="public", status="FAILED"
        )
        db.commit()
        service, adapter = _service(db)

        result = service.get_status(payment_id=payment.id)

        assert result.check.id == existing.id
        assert result.to_dict()["paymentStatus"] == "PAID"
        adapter.check.assert_not_called()

    def test_paid_order_without_device_has_nothing_to_check(self, db, make_order):
        payment = make_order(with_device=False)
        _mark_paid(db, payment)
        service, adapter = _service(db)
        with pytest.raises(NotFound):
            service.get_status(payment_id=payment.id)
        adapter.check.assert_not_called()

    def test_unknown_payment(self, db):
        service, _ = _service(db)
        with pytest.raises(NotFound):
            service.get_status(payment_id="nope")


class TestSearch:
    def test_requires_a_criterion(self, db):
        service, _ = _service(db)
        with pytest.raises(ValidationError):
            service.get_status()

    def test_finds_most_recent_by_serial_without_healing(self, db, make_order):
        payment = make_order(serial_number="SN-1")
        store = PaymentRecordStore(db)
        store.create_warranty_check(work_order_id=payment.work_order_id, provider="apple", initiated_by="public", status="FAILED")
        db.commit()
        latest = store.create_warranty_check(
            work_order_id=payment.work_order_id, provider="apple", initiated_by="admin_retry", status="SUCCESS"
        )
        db.commit()
        service, adapter = _service(db)

        result = service.get_status(serial_number="SN-1")

        assert result.check.id == latest.id
        assert result.payment_status == "PENDING"
        adapter.check.assert_not_called()

    def test_finds_by_email_case_insensitively(self, db, make_order):
        payment = make_order(email="ada@example.com")
        PaymentRecordStore(db).create_warranty_check(
            work_order_id=payment.work_order_id, provider="apple", initiated_by="public"
        )
        db.commit()
        service, _ = _service(db)
        assert service.get_status(email="ADA@example.com").check.work_order_id == payment.work_order_id

    def test_no_match(self, db, make_order):
        make_order()
        service, _ = _service(db)
        with pytest.raises(NotFound):
            service.get_status(imei="000000000000000")

"""HTTP surface: response envelope, role checks, PAYMENT_NOT_PAID payload, webhook acks."""
import json
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_deduplicator, get_gateway_resolver, get_warranty_adapter
from app.api.session import SessionData, require_session
from app.core.errors import ProviderUnavailable
from app.db.session import get_db
from app.main import app
from app.models.payment import Payment
from app.models.user import User, UserRole
from app.services.payment_gateways import GatewayInitResult
from app.services.warranty.base import WarrantyLookupResult


@pytest.fixture
def adapter():
    adapter = MagicMock()
    adapter.check.return_value = WarrantyLookupResult(status="active", provider="apple")
    return adapter


@pytest.fixture
def client(db, gateway, adapter):
    gateway.initialize.return_value = GatewayInitResult(
        authorization_url="https://checkout.test/x", reference="ignored", access_code="ac_1"
    )
    gateway.verify_webhook_signature.return_value = True
    dedupe = MagicMock()
    dedupe.check_and_set.return_value = True

    def _db():
        yield db

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_gateway_resolver] = lambda: (lambda provider: gateway)
    app.dependency_overrides[get_warranty_adapter] = lambda: adapter
    app.dependency_overrides[get_deduplicator] = lambda: dedupe
    with patch("app.services.rate_limit.check_rate_limit", return_value=True), \
            patch("app.api.routes.payments.enqueue_payment_email") as enqueue:
        test_client = TestClient(app)
        test_client.enqueue = enqueue
        yield test_client
    app.dependency_overrides.clear()


def _login(user_id="u1", role=UserRole.CUSTOMER):
    app.dependency_overrides[require_session] = lambda: SessionData(
        user_id=user_id, email="ada@example.com", role=role
    )


class TestHealth:
    def test_liveness(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestPaymentRoutes:
    def test_public_initialize_returns_envelope(self, client, db):
        response = client.post(
            "/public/payments/initialize",
            json={"amount": "1000", "email": "guest@example.com", "metadata": {"service": "warranty-check"}},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["authorizationUrl"] == "https://checkout.test/x"
        assert db.get(Payment, body["data"]["paymentId"]).status == "PENDING"

    def test_invalid_amount_is_validation_error(self, client):
        response = client.post("/public/payments/initialize", json={"amount": "0", "email": "guest@example.com"})
        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": {"code": "VALIDATION_ERROR", "message": response.json()["error"]["message"]},
        }

    def test_rate_limited(self, client):
        with patch("app.services.rate_limit.check_rate_limit", return_value=False):
            response = client.post("/public/payments/verify", json={"reference": "ref_123"})
        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMIT"

    def test_public_verify_marks_paid_and_enqueues_email(self, client, make_order):
        make_order()
        response = client.post("/public/payments/verify", json={"reference": "ref_123"})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "success"
        assert data["amount"] == "500"
        client.enqueue.assert_called_once()

        client.post("/public/payments/verify", json={"reference": "ref_123"})
        client.enqueue.assert_called_once()

    def test_unknown_reference_is_not_found(self, client):
        response = client.post("/public/payments/verify", json={"reference": "ghost"})
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_authenticated_routes_need_session(self, client):
        response = client.get("/payments")
        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_history_for_session_user(self, client, make_order):
        payment = make_order()
        _login(user_id=payment.user_id)
        response = client.get("/payments", params={"limit": 5})
        assert response.status_code == 200
        assert response.json()["data"]["pagination"]["total"] == 1

    def test_refund_requires_admin(self, client, make_order):
        payment = make_order()
        _login(role=UserRole.CUSTOMER)
        response = client.post(f"/payments/{payment.id}/refund", json={"reason": "duplicate charge"})
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    def test_admin_refund_of_pending_conflicts(self, client, make_order):
        payment = make_order()
        _login(role=UserRole.ADMIN)
        response = client.post(f"/payments/{payment.id}/refund", json={"reason": "duplicate charge"})
        assert response.status_code == 409


class TestWarrantyRoutes:
    def test_status_for_unpaid_payment_is_200_payload(self, client, make_order):
        payment = make_order(metadata={"service": "warranty-check"})
        response = client.post("/public/warranty-check/status", json={"paymentId": payment.id})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["status"] == "PAYMENT_NOT_PAID"
        assert body["data"]["paymentStatus"] == "PENDING"

    def test_status_requires_some_criteria(self, client):
        response = client.post("/public/warranty-check/status", json={})
        assert response.status_code == 400

    def test_status_after_verify_returns_the_check(self, client, make_order, adapter):
        payment = make_order(metadata={"service": "warranty-check", "brand": "APPLE", "serialNumber": "C02ABC"})
        client.post("/public/payments/verify", json={"reference": "ref_123"})

        response = client.post("/public/warranty-check/status", json={"paymentId": payment.id})

        data = response.json()["data"]
        assert data["paymentStatus"] == "PAID"
        assert data["status"] == "SUCCESS"
        assert data["warrantyStatus"] == "active"
        assert adapter.check.call_count == 1

    def test_public_lookup(self, client):
        response = client.post("/public/warranty-check", json={"brand": "APPLE", "serialNumber": "C02XYZ"})
        assert response.status_code == 200
        assert response.json()["data"]["initiatedBy"] == "public"

    def test_admin_retry_enqueues_run(self, client, db, adapter):
        adapter.check.side_effect = ProviderUnavailable("apple")
        check_id = client.post(
            "/public/warranty-check", json={"brand": "APPLE", "serialNumber": "C02XYZ"}
        ).json()["data"]["id"]
        _login(role=UserRole.ADMIN)

        with patch("app.api.routes.warranty_checks.run_warranty_check") as task:
            response = client.post(f"/admin/warranty-checks/{check_id}/retry")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "QUEUED"
        task.delay.assert_called_once_with(check_id)


class TestWebhooks:
    def _post(self, client, provider, payload, headers=None):
        return client.post(f"/webhooks/{provider}", content=json.dumps(payload), headers=headers or {})

    def test_bad_signature_still_acknowledged(self, client, gateway, make_order, db):
        payment = make_order()
        gateway.verify_webhook_signature.return_value = False
        response = self._post(client, "paystack", {"event": "charge.success", "data": {"reference": "ref_123"}})
        assert response.status_code == 200
        assert response.json() == {"received": True}
        db.refresh(payment)
        assert payment.status == "PENDING"
        gateway.verify.assert_not_called()

    def test_success_event_marks_paid(self, client, gateway, make_order, db):
        payment = make_order()
        with patch("app.api.routes.webhooks.enqueue_payment_email") as enqueue:
            response = self._post(
                client,
                "paystack",
                {"event": "charge.success", "data": {"reference": "ref_123"}},
                headers={"x-paystack-signature": "sig"},
            )
        assert response.json() == {"received": True}
        signature_args = gateway.verify_webhook_signature.call_args.args
        assert signature_args[1] == "sig"
        db.refresh(payment)
        assert payment.status == "PAID"
        enqueue.assert_called_once()

    def test_unsigned_failure_event_does_not_fail_payment(self, client, make_order, db):
        payment = make_order(provider="etegram")
        response = self._post(client, "etegram", {"event": "charge.failed", "data": {"reference": "ref_123"}})
        assert response.json() == {"received": True}
        db.refresh(payment)
        assert payment.status == "PENDING"

    def test_processing_error_is_acknowledged(self, client, gateway, make_order):
        make_order()
        gateway.verify.side_effect = ProviderUnavailable("paystack")
        response = self._post(client, "paystack", {"event": "charge.success", "data": {"reference": "ref_123"}})
        assert response.status_code == 200
        assert response.json() == {"received": True, "error": "Processing error"}

    def test_malformed_body_is_acknowledged(self, client):
        response = client.post("/webhooks/etegram", content=b"not json")
        assert response.status_code == 200
        assert response.json()["received"] is True

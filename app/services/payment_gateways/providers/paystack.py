"""
Paystack gateway. Amounts travel in kobo (minor units).
"""
import hashlib
import hmac
from decimal import Decimal
from urllib.parse import quote

from app.core.errors import NotFound, ProviderUnavailable
from app.services.payment_gateways.base import (
    GATEWAY_FAILED,
    GATEWAY_PENDING,
    GATEWAY_SUCCESS,
    GatewayInitRequest,
    GatewayInitResult,
    GatewayVerifyResult,
    PaymentGateway,
)

_STATUS_MAP = {
    "success": GATEWAY_SUCCESS,
    "failed": GATEWAY_FAILED,
    "reversed": GATEWAY_FAILED,
    "abandoned": GATEWAY_FAILED,
}


class PaystackGateway(PaymentGateway):
    name = "paystack"

    def __init__(self, config: dict) -> None:
        super().__init__(config)
        self.secret_key = config.get("secret_key")

    def is_available(self) -> bool:
        return bool(self.secret_key)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def initialize(self, request: GatewayInitRequest) -> GatewayInitResult:
        payload = {
            "email": request.email,
            "amount": int((request.amount * 100).to_integral_value()),
            "reference": request.reference,
            "currency": request.currency,
            "metadata": request.metadata,
        }
        if request.callback_url:
            payload["callback_url"] = request.callback_url

        body = self._request("POST", "/transaction/initialize", "initialize", json=payload)
        if not body.get("status") or not body.get("data"):
            raise ProviderUnavailable(self.name, body.get("message") or "Failed to initialize payment")
        data = body["data"]
        return GatewayInitResult(
            authorization_url=data["authorization_url"],
            access_code=data.get("access_code"),
            reference=data.get("reference") or request.reference,
            raw=body,
        )

    def verify(self, reference: str) -> GatewayVerifyResult:
        body = self._request("GET", f"/transaction/verify/{quote(reference, safe='')}", "verify")
        data = body.get("data")
        if not body.get("status") or not data:
            raise NotFound("Transaction", {"provider": self.name, "message": body.get("message")})

        kobo = data.get("amount")
        authorization = data.get("authorization") or {}
        return GatewayVerifyResult(
            status=_STATUS_MAP.get(str(data.get("status", "")).lower(), GATEWAY_PENDING),
            amount=(Decimal(kobo) / 100) if kobo is not None else None,
            reference=data.get("reference") or reference,
            currency=data.get("currency"),
            authorization_code=authorization.get("authorization_code"),
            metadata=data.get("metadata") if isinstance(data.get("metadata"), dict) else {},
            raw=body,
        )

    def verify_webhook_signature(self, body: bytes, signature: str | None) -> bool:
        """x-paystack-signature is the HMAC-SHA512 of the raw body keyed with the secret key."""
        if not signature or not self.secret_key:
            return False
        computed = hmac.new(self.secret_key.encode(), body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(computed, signature.strip())

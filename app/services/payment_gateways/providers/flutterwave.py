"""
Flutterwave v3 gateway. Amounts are in major units.
"""
import hashlib
import hmac
from decimal import Decimal

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
    "successful": GATEWAY_SUCCESS,
    "success": GATEWAY_SUCCESS,
    "completed": GATEWAY_SUCCESS,
    "failed": GATEWAY_FAILED,
    "cancelled": GATEWAY_FAILED,
}


class FlutterwaveGateway(PaymentGateway):
    name = "flutterwave"

    def __init__(self, config: dict) -> None:
        super().__init__(config)
        self.secret_key = config.get("secret_key")
        self.secret_hash = config.get("secret_hash")

    def is_available(self) -> bool:
        return bool(self.secret_key)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def initialize(self, request: GatewayInitRequest) -> GatewayInitResult:
        payload = {
            "tx_ref": request.reference,
            "amount": str(request.amount),
            "currency": request.currency,
            "customer": {"email": request.email},
            "meta": request.metadata,
        }
        if request.callback_url:
            payload["redirect_url"] = request.callback_url

        body = self._request("POST", "/v3/payments", "initialize", json=payload)
        data = body.get("data") or {}
        if body.get("status") != "success" or not data.get("link"):
            raise ProviderUnavailable(self.name, body.get("message") or "Failed to initialize payment")
        return GatewayInitResult(
            authorization_url=data["link"],
            access_code=None,
            reference=request.reference,
            raw=body,
        )

    def verify(self, reference: str) -> GatewayVerifyResult:
        body = self._request(
            "GET", "/v3/transactions/verify_by_reference", "verify", params={"tx_ref": reference}
        )
        data = body.get("data")
        if body.get("status") != "success" or not data:
            raise NotFound("Transaction", {"provider": self.name, "message": body.get("message")})

        amount = data.get("charged_amount", data.get("amount"))
        meta = data.get("meta")
        return GatewayVerifyResult(
            status=_STATUS_MAP.get(str(data.get("status", "")).lower(), GATEWAY_PENDING),
            amount=Decimal(str(amount)) if amount is not None else None,
            reference=data.get("tx_ref") or reference,
            currency=data.get("currency"),
            authorization_code=str(data["flw_ref"]) if data.get("flw_ref") else None,
            metadata=meta if isinstance(meta, dict) else {},
            raw=body,
        )

    def verify_webhook_signature(self, body: bytes, signature: str | None) -> bool:
        """verif-hash carries the HMAC-SHA256 of the body; unchecked when no hash is configured."""
        if not self.secret_hash:
            return True
        if not signature:
            return False
        computed = hmac.new(self.secret_hash.encode(), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(computed, signature.strip())

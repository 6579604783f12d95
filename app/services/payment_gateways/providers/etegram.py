"""
Etegram checkout gateway. Amounts are in major units; webhooks are unsigned,
so every webhook is confirmed through verify() before it changes anything.
"""
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
    "successful": GATEWAY_SUCCESS,
    "success": GATEWAY_SUCCESS,
    "failed": GATEWAY_FAILED,
    "declined": GATEWAY_FAILED,
}


class EtegramGateway(PaymentGateway):
    name = "etegram"

    def __init__(self, config: dict) -> None:
        super().__init__(config)
        self.public_key = config.get("public_key")
        self.project_id = config.get("project_id")

    def is_available(self) -> bool:
        return bool(self.public_key and self.project_id)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.public_key}",
            "Content-Type": "application/json",
        }

    def initialize(self, request: GatewayInitRequest) -> GatewayInitResult:
        payload = {
            "amount": str(request.amount),
            "email": request.email,
            "reference": request.reference,
            "currency": request.currency,
            "metadata": request.metadata,
        }
        if request.callback_url:
            payload["callbackUrl"] = request.callback_url

        body = self._request("POST", f"/initialize/{self.project_id}", "initialize", json=payload)
        data = body.get("data") or body
        url = data.get("authorization_url") or data.get("authorizationUrl")
        if not url:
            raise ProviderUnavailable(self.name, body.get("message") or "Failed to initialize payment")
        return GatewayInitResult(
            authorization_url=url,
            access_code=data.get("access_code") or data.get("accessCode"),
            reference=data.get("reference") or request.reference,
            raw=body,
        )

    def verify(self, reference: str) -> GatewayVerifyResult:
        body = self._request(
            "GET", f"/verify/{self.project_id}/{quote(reference, safe='')}", "verify"
        )
        # Older responses are flat, newer ones nest everything under "data"
        data = body.get("data") if isinstance(body.get("data"), dict) else body
        if not data.get("status"):
            raise NotFound("Transaction", {"provider": self.name, "message": body.get("message")})

        amount = data.get("amount")
        metadata = data.get("metadata")
        return GatewayVerifyResult(
            status=_STATUS_MAP.get(str(data["status"]).lower(), GATEWAY_PENDING),
            amount=Decimal(str(amount)) if amount is not None else None,
            reference=data.get("reference") or reference,
            currency=data.get("currency"),
            metadata=metadata if isinstance(metadata, dict) else {},
            raw=body,
        )

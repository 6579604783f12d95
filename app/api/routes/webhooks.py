"""
Provider webhooks. Always answer 200 {"received": true}: a non-2xx makes the
provider retry, and every failure here is logged and recoverable by verify.
"""
import json
import logging

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_payment_service
from app.services.payments.service import PaymentService
from app.utils.metrics import webhooks_received_total
from app.workers.tasks.notifications import enqueue_payment_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_HEADERS = {
    "paystack": "x-paystack-signature",
    "flutterwave": "verif-hash",
    "etegram": None,
}


async def _handle(provider: str, request: Request, service: PaymentService) -> dict:
    raw_body = await request.body()
    header = SIGNATURE_HEADERS[provider]
    signature = request.headers.get(header) if header else None
    return await run_in_threadpool(_process, provider, raw_body, signature, service)


def _process(provider: str, raw_body: bytes, signature: str | None, service: PaymentService) -> dict:
    try:
        if not service.verify_webhook_signature(provider, raw_body, signature):
            webhooks_received_total.labels(provider=provider, outcome="bad_signature").inc()
            logger.warning("webhook_bad_signature", extra={"provider": provider})
            return {"received": True}

        payload = json.loads(raw_body or b"{}")
        event = payload.get("event")
        data = payload.get("data") or {}
        logger.info("webhook_received", extra={"provider": provider, "event": event})

        outcome = service.handle_webhook(provider, event, data)
        if outcome is not None and outcome.newly_paid:
            enqueue_payment_email(outcome.notification)
        return {"received": True}
    except Exception as e:
        logger.exception("webhook_processing_error", extra={"provider": provider, "error": str(e)})
        return {"received": True, "error": "Processing error"}


@router.post("/paystack")
async def paystack_webhook(request: Request, service: PaymentService = Depends(get_payment_service)):
    return await _handle("paystack", request, service)


@router.post("/flutterwave")
async def flutterwave_webhook(request: Request, service: PaymentService = Depends(get_payment_service)):
    return await _handle("flutterwave", request, service)


@router.post("/etegram")
async def etegram_webhook(request: Request, service: PaymentService = Depends(get_payment_service)):
    return await _handle("etegram", request, service)

"""
Payment routes: initialize, verify, public read, history, admin refund.
Public variants need no session and are rate limited per client IP.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_orchestrator, get_payment_service
from app.api.errors import success_body
from app.api.session import SessionData, require_role, require_session
from app.core.errors import Unauthorized
from app.db.session import get_db
from app.models.user import User, UserRole
from app.schemas.payments import InitializePaymentIn, RefundIn, VerifyPaymentIn
from app.services.payments.service import PaymentService
from app.services.payments.verification import PaymentVerificationOrchestrator
from app.services.rate_limit import rate_limiter
from app.workers.tasks.notifications import enqueue_payment_email

router = APIRouter(tags=["payments"])


def _verify(reference: str, orchestrator: PaymentVerificationOrchestrator) -> dict:
    outcome = orchestrator.verify(reference)
    if outcome.newly_paid:
        enqueue_payment_email(outcome.notification)
    return success_body(outcome.to_response())


@router.post("/payments/initialize")
def initialize_payment(
    body: InitializePaymentIn,
    session: SessionData = Depends(require_session),
    db: Session = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
):
    user = db.query(User).filter(User.id == session.user_id).one_or_none()
    if user is None:
        raise Unauthorized()
    result = service.initialize_payment(
        amount=body.amount,
        email=str(body.email),
        provider=body.provider,
        metadata=body.metadata,
        work_order_id=body.work_order_id,
        user=user,
    )
    return success_body(result)


@router.post(
    "/public/payments/initialize",
    dependencies=[Depends(rate_limiter("public:payments:init", "public_init_rate_limit"))],
)
def public_initialize_payment(
    body: InitializePaymentIn,
    service: PaymentService = Depends(get_payment_service),
):
    result = service.initialize_payment(
        amount=body.amount,
        email=str(body.email),
        provider=body.provider,
        metadata=body.metadata,
        work_order_id=body.work_order_id,
    )
    return success_body(result)


@router.post("/payments/verify", dependencies=[Depends(require_session)])
def verify_payment(
    body: VerifyPaymentIn,
    orchestrator: PaymentVerificationOrchestrator = Depends(get_orchestrator),
):
    return _verify(body.reference, orchestrator)


@router.post(
    "/public/payments/verify",
    dependencies=[Depends(rate_limiter("public:payments:verify", "public_verify_rate_limit"))],
)
def public_verify_payment(
    body: VerifyPaymentIn,
    orchestrator: PaymentVerificationOrchestrator = Depends(get_orchestrator),
):
    return _verify(body.reference, orchestrator)


@router.get("/public/payments/{payment_id}")
def get_public_payment(payment_id: str, service: PaymentService = Depends(get_payment_service)):
    return success_body(service.get_public_payment(payment_id))


@router.get("/payments")
def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    session: SessionData = Depends(require_session),
    service: PaymentService = Depends(get_payment_service),
):
    return success_body(service.list_payments_for_user(session.user_id, page=page, limit=limit))


@router.post("/payments/{payment_id}/refund")
def refund_payment(
    payment_id: str,
    body: RefundIn,
    session: SessionData = Depends(require_role(*UserRole.ADMINS)),
    service: PaymentService = Depends(get_payment_service),
):
    return success_body(service.refund(payment_id, actor_id=session.user_id, reason=body.reason))

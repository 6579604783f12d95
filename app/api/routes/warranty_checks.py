"""
Warranty check routes: public ad hoc lookup, status query, admin retry.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.deps import get_status_service, get_warranty_check_service
from app.api.errors import success_body
from app.api.session import require_role
from app.core.errors import PaymentNotPaid
from app.models.user import UserRole
from app.schemas.warranty import WarrantyLookupIn, WarrantyStatusIn
from app.services.rate_limit import rate_limiter
from app.services.warranty_checks.service import WarrantyCheckService
from app.services.warranty_checks.status import StatusQueryService
from app.workers.tasks.warranty_checks import run_warranty_check

router = APIRouter(tags=["warranty-checks"])

public_limit = Depends(rate_limiter("public:warranty-check", "public_warranty_rate_limit"))


@router.post("/public/warranty-check", dependencies=[public_limit])
def public_warranty_check(
    body: WarrantyLookupIn,
    service: WarrantyCheckService = Depends(get_warranty_check_service),
):
    check = service.lookup_public(body.brand, serial_number=body.serial_number, imei=body.imei)
    return success_body(check.to_dict())


@router.post("/public/warranty-check/status", dependencies=[public_limit])
def warranty_check_status(
    body: WarrantyStatusIn,
    service: StatusQueryService = Depends(get_status_service),
):
    try:
        result = service.get_status(
            payment_id=body.payment_id,
            email=str(body.email) if body.email else None,
            serial_number=body.serial_number,
            imei=body.imei,
        )
    except PaymentNotPaid as e:
        return JSONResponse(
            status_code=200,
            content=success_body({
                "status": e.code,
                "paymentId": e.payment_id,
                "paymentStatus": e.payment_status,
                "message": e.message,
            }),
        )
    return success_body(result.to_dict())


@router.post(
    "/admin/warranty-checks/{check_id}/retry",
    dependencies=[Depends(require_role(*UserRole.ADMINS))],
)
def retry_warranty_check(
    check_id: str,
    service: WarrantyCheckService = Depends(get_warranty_check_service),
):
    check = service.retry(check_id)
    run_warranty_check.delay(check.id)
    return success_body(check.to_dict())

"""
Warranty check background work: admin re-runs and the stuck-check watchdog.
"""
import logging
from datetime import datetime, timedelta, timezone

from app.core.celery_app import celery_app
from app.core.config import settings
from app.db.session import SessionLocal
from app.models.warranty_check import WarrantyCheckStatus
from app.services.payments.store import PaymentRecordStore
from app.services.warranty import WarrantyLookupAdapter
from app.services.warranty_checks.service import WarrantyCheckService

logger = logging.getLogger(__name__)


@celery_app.task(
    name="app.workers.tasks.warranty_checks.run_warranty_check",
    time_limit=120,
    soft_time_limit=110,
)
def run_warranty_check(check_id: str) -> dict:
    db = SessionLocal()
    try:
        service = WarrantyCheckService(db, WarrantyLookupAdapter.from_settings(settings))
        check = service.run_queued(check_id)
        if check is None:
            return {"ok": False, "error": "not_found"}
        return {"ok": True, "status": check.status}
    except Exception:
        logger.exception("run_warranty_check_error", extra={"warranty_check_id": check_id})
        db.rollback()
        return {"ok": False}
    finally:
        db.close()


@celery_app.task(
    name="app.workers.tasks.warranty_checks.reset_stuck_warranty_checks",
    time_limit=60,
    soft_time_limit=55,
)
def reset_stuck_warranty_checks() -> dict:
    """Re-queue checks left IN_PROGRESS (worker or request died mid-lookup)."""
    db = SessionLocal()
    try:
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=settings.warranty_check_stuck_minutes)
        stuck = PaymentRecordStore(db).find_stuck_warranty_checks(cutoff)
        if not stuck:
            return {"ok": True, "requeued": 0}

        for check in stuck:
            check.status = WarrantyCheckStatus.QUEUED.value
        db.commit()

        for check in stuck:
            run_warranty_check.delay(check.id)
        logger.warning("watchdog_requeued_warranty_checks", extra={"status": f"{len(stuck)} requeued"})
        return {"ok": True, "requeued": len(stuck)}
    except Exception:
        logger.exception("watchdog_warranty_checks_error")
        db.rollback()
        return {"ok": False}
    finally:
        db.close()

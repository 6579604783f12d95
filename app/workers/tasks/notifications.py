"""
Customer email on payment status changes. Sending never blocks or fails the
request that triggered it.
"""
import logging
from dataclasses import asdict

from app.core.celery_app import celery_app
from app.core.config import settings
from app.services.notifications.mailer import MailerError, build_payment_email, send_email
from app.services.payments.verification import PaymentNotification

logger = logging.getLogger("notifications")


@celery_app.task(
    bind=True,
    name="app.workers.tasks.notifications.send_payment_email",
    autoretry_for=(MailerError,),
    retry_backoff=True,
    max_retries=3,
)
def send_payment_email(self, notification: dict) -> dict:
    email = notification.get("email")
    if not email:
        return {"sent": False, "error": "no_recipient"}

    subject, body = build_payment_email(notification, app_name=settings.app_name)
    sent = send_email(settings, email, subject, body)
    logger.info(
        "payment_email_processed",
        extra={"payment_id": notification.get("payment_id"), "status": notification.get("status")},
    )
    return {"sent": sent}


def enqueue_payment_email(notification: PaymentNotification | None) -> None:
    """Queue the email; a broker outage is logged and otherwise ignored."""
    if notification is None or not notification.email:
        return
    try:
        send_payment_email.delay(asdict(notification))
    except Exception:
        logger.exception("payment_email_enqueue_failed", extra={"payment_id": notification.payment_id})

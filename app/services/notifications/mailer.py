"""
Outbound email through the Resend HTTP API, plus the payment email templates.
"""
import html
import logging
from typing import Any

import httpx

from app.core.config import Settings

logger = logging.getLogger(__name__)


class MailerError(Exception):
    """Resend rejected the message or could not be reached."""


def send_email(
    settings: Settings,
    to: str | list[str],
    subject: str,
    html_body: str,
    transport: httpx.BaseTransport | None = None,
) -> bool:
    """Send one email. Returns False when sending is skipped (dev mode or no API key)."""
    recipients = [to] if isinstance(to, str) else list(to)

    if settings.email_skip_in_dev and settings.app_env in ("local", "development"):
        logger.info("email_skipped_dev", extra={"event": subject})
        return False
    if not settings.resend_api_key:
        logger.warning("email_not_configured", extra={"event": subject})
        return False

    payload = {
        "from": f"{settings.email_from_name} <{settings.email_from}>",
        "to": recipients,
        "subject": subject,
        "html": html_body,
    }
    try:
        with httpx.Client(timeout=10.0, transport=transport) as client:
            response = client.post(
                f"{settings.resend_api_url.rstrip('/')}/emails",
                json=payload,
                headers={"Authorization": f"Bearer {settings.resend_api_key}"},
            )
    except httpx.HTTPError as e:
        raise MailerError(f"Resend transport error: {e}") from e

    if response.status_code >= 400:
        raise MailerError(f"Resend returned HTTP {response.status_code}: {response.text[:200]}")
    logger.info("email_sent", extra={"event": subject, "status_code": response.status_code})
    return True


def build_payment_email(notification: dict[str, Any], app_name: str = "Servixing") -> tuple[str, str]:
    """(subject, html) for a payment status change."""
    status = notification.get("status", "")
    name = html.escape(notification.get("customer_name") or "there")
    amount = html.escape(f"{notification.get('currency', '')} {notification.get('amount', '')}".strip())
    reference = html.escape(notification.get("reference") or "")
    device = notification.get("device")

    if status == "PAID":
        subject = f"{app_name}: payment received"
        headline = "We have received your payment."
    elif status == "REFUNDED":
        subject = f"{app_name}: payment refunded"
        headline = "Your payment has been refunded."
    else:
        subject = f"{app_name}: payment update"
        headline = f"Your payment status is now {html.escape(status)}."

    device_line = f"<p>Device: {html.escape(device)}</p>" if device else ""
    body = (
        f"<p>Hi {name},</p>"
        f"<p>{headline}</p>"
        f"<p>Amount: {amount}<br>Reference: {reference}</p>"
        f"{device_line}"
        f"<p>Thank you for choosing {html.escape(app_name)}.</p>"
    )
    return subject, body

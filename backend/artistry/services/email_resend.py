# backend/artistry/services/email_resend.py
import logging

import resend

from ..config import settings

logger = logging.getLogger(__name__)


def resend_configured() -> bool:
    return bool(settings.RESEND_API_KEY)


def send_email_html(to: str, subject: str, html: str) -> str | None:
    """
    Sends an HTML mail through Resend.
    Returns the provider message id. Raises on API errors.
    """
    if not resend_configured():
        raise RuntimeError("RESEND_API_KEY missing")

    resend.api_key = settings.RESEND_API_KEY
    params = {
        "from": settings.EMAIL_FROM or f"{settings.BUSINESS_NAME} <onboarding@resend.dev>",
        "to": [to],
        "subject": subject,
        "html": html,
    }
    response = resend.Emails.send(params)
    logger.debug("Resend accepted mail to %s: %s", to, response)
    return (response or {}).get("id")

"""
Outbound email over SMTP.

smtplib is blocking, so delivery runs in a worker thread. With SMTP_HOST unset
delivery is disabled and messages are only logged, which is the default for
local development and tests.
"""

import asyncio
import smtplib
from email.message import EmailMessage
from typing import Optional

from tour_api.core.config import get_settings
from tour_api.core.exceptions import ExternalServiceError
from tour_api.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


def render_notification_html(title: str, message: str, action_url: Optional[str] = None) -> str:
    button = ""
    if action_url:
        button = (
            f'<p style="text-align:center;margin-top:24px">'
            f'<a href="{settings.FRONTEND_URL}{action_url}" '
            f'style="padding:12px 30px;background:#667eea;color:#fff;text-decoration:none;border-radius:5px">'
            f"View details</a></p>"
        )
    return (
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto">'
        f'<h1 style="background:#764ba2;color:#fff;padding:24px;text-align:center">{title}</h1>'
        f'<div style="padding:24px;background:#f9f9f9"><p>{message}</p>{button}</div>'
        "</div>"
    )


def _deliver(message: EmailMessage) -> None:
    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
        if settings.SMTP_USE_TLS:
            smtp.starttls()
        if settings.SMTP_USERNAME:
            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        smtp.send_message(message)


async def send_email(to_email: str, subject: str, text: str, html: Optional[str] = None) -> bool:
    """
    Send one email. Returns False when delivery is disabled.
    Raises ExternalServiceError when the SMTP server refuses or is unreachable.
    """
    if not settings.SMTP_HOST:
        logger.info("email_delivery_disabled", to=to_email, subject=subject)
        return False

    message = EmailMessage()
    message["From"] = settings.SMTP_FROM
    message["To"] = to_email
    message["Subject"] = subject
    message.set_content(text)
    if html:
        message.add_alternative(html, subtype="html")

    try:
        await asyncio.to_thread(_deliver, message)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("email_send_failed", to=to_email, subject=subject, error=str(e))
        raise ExternalServiceError(detail=str(e))

    logger.info("email_sent", to=to_email, subject=subject)
    return True


async def send_notification_email(
    to_email: str,
    title: str,
    message: str,
    action_url: Optional[str] = None,
) -> bool:
    return await send_email(
        to_email,
        title,
        message,
        html=render_notification_html(title, message, action_url),
    )

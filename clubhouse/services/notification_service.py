"""
clubhouse.services.notification_service — Fire-and-Forget Mail
===============================================================

Sends participation emails through SMTP with :mod:`aiosmtplib`.  Routes
schedule these with FastAPI ``BackgroundTasks`` after the response is
built; a delivery failure is logged and never reaches the caller.

SMTP settings come from the environment (``SMTP_HOST``, ``SMTP_PORT``,
``SMTP_USER``, ``SMTP_PASSWORD``, ``SMTP_FROM``, ``SMTP_TLS``).  With no
``SMTP_HOST`` configured every send is skipped with a warning.
"""

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass
from email.message import EmailMessage

import aiosmtplib

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SmtpSettings:
    host: str
    port: int
    username: str | None
    password: str | None
    from_email: str
    tls: bool

    @classmethod
    def from_env(cls) -> SmtpSettings:
        return cls(
            host=os.getenv("SMTP_HOST", "").strip(),
            port=int(os.getenv("SMTP_PORT", "587") or 587),
            username=os.getenv("SMTP_USER") or None,
            password=os.getenv("SMTP_PASSWORD") or None,
            from_email=os.getenv("SMTP_FROM", "no-reply@clubhouse.local"),
            tls=os.getenv("SMTP_TLS", "1") not in ("0", "false", "False", ""),
        )


def mask_email(email: str) -> str:
    """Stable short hash so addresses never appear in logs."""
    return hashlib.sha256(email.lower().encode("utf-8")).hexdigest()[:12]


async def send_email(
    to_email: str,
    subject: str,
    body: str,
    *,
    settings: SmtpSettings | None = None,
) -> bool:
    """Send one plain-text email.  Returns ``True`` on success.

    Never raises: failures are logged.
    """
    cfg = settings or SmtpSettings.from_env()
    if not cfg.host:
        logger.warning("SMTP not configured, skipping email to %s", mask_email(to_email))
        return False

    msg = EmailMessage()
    msg["From"] = cfg.from_email
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    try:
        await aiosmtplib.send(
            msg,
            hostname=cfg.host,
            port=cfg.port,
            username=cfg.username,
            password=cfg.password,
            start_tls=cfg.tls and cfg.port == 587,
            use_tls=cfg.tls and cfg.port == 465,
        )
    except Exception:
        logger.exception("Failed to send email to %s", mask_email(to_email))
        return False

    logger.info("Email sent to %s", mask_email(to_email))
    return True


async def send_registration_confirmation(
    to_email: str, first_name: str, event_title: str, start_date: str
) -> bool:
    body = (
        f"Hello {first_name},\n\n"
        f"You are registered for \"{event_title}\" starting {start_date}.\n"
        "If you can no longer attend, please unregister so someone else "
        "can take your spot.\n"
    )
    return await send_email(to_email, f"Registration confirmed: {event_title}", body)


async def send_unregistration_notice(
    to_email: str, first_name: str, event_title: str
) -> bool:
    body = (
        f"Hello {first_name},\n\n"
        f"Your registration for \"{event_title}\" has been cancelled.\n"
    )
    return await send_email(to_email, f"Registration cancelled: {event_title}", body)

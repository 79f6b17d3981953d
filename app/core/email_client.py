"""
SMTP delivery for vendor status e-mails.

Configured from SMTP_* environment variables (HOST, PORT, USERNAME,
PASSWORD, FROM_EMAIL, FROM_NAME, USE_TLS, USE_SSL).
"""

import logging
import os
import smtplib
from email.message import EmailMessage

logger = logging.getLogger(__name__)


def _get_bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y"}


SMTP_HOST: str | None = os.getenv("SMTP_HOST")
SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME: str | None = os.getenv("SMTP_USERNAME")
SMTP_PASSWORD: str | None = os.getenv("SMTP_PASSWORD")
SMTP_FROM_EMAIL: str = os.getenv("SMTP_FROM_EMAIL", SMTP_USERNAME or "")
SMTP_FROM_NAME: str = os.getenv("SMTP_FROM_NAME", "Viridian Marketplace")
SMTP_USE_TLS: bool = _get_bool_env("SMTP_USE_TLS", default=True)
SMTP_USE_SSL: bool = _get_bool_env("SMTP_USE_SSL", default=False)


def smtp_configured() -> bool:
    return bool(SMTP_HOST and SMTP_USERNAME and SMTP_PASSWORD)


def _connect() -> smtplib.SMTP:
    if SMTP_USE_SSL:
        return smtplib.SMTP_SSL(SMTP_HOST, SMTP_PORT, timeout=30)
    server = smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=30)
    if SMTP_USE_TLS:
        server.starttls()
    return server


def send_email(to_email: str, subject: str, text_body: str) -> None:
    """
    Send a plain-text message to one recipient.

    Raises RuntimeError when SMTP is not configured and
    smtplib.SMTPException when delivery fails.
    """
    if not smtp_configured():
        raise RuntimeError("SMTP_HOST, SMTP_USERNAME and SMTP_PASSWORD must be set")

    msg = EmailMessage()
    msg["From"] = f"{SMTP_FROM_NAME} <{SMTP_FROM_EMAIL}>" if SMTP_FROM_EMAIL else SMTP_USERNAME
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(text_body)

    server = _connect()
    try:
        server.login(SMTP_USERNAME, SMTP_PASSWORD)
        server.send_message(msg)
    finally:
        try:
            server.quit()
        except smtplib.SMTPException as exc:
            logger.debug("SMTP quit failed: %s", exc)

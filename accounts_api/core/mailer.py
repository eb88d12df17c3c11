"""
Outgoing mail for the accounts backend (password reset links).

SMTP credentials come from Settings. Port 465 uses implicit TLS, any other
port is upgraded with STARTTLS.
"""

from __future__ import annotations

from email.message import EmailMessage
import logging
import smtplib
import ssl

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

SMTPS_PORT = 465


def smtp_configured(settings: Settings) -> bool:
    return all(
        (settings.smtp_host, settings.smtp_user, settings.smtp_password, settings.smtp_from, settings.smtp_port)
    )


def build_message(sender: str, to_email: str, subject: str, html_body: str, text_body: str | None) -> EmailMessage:
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = sender
    message["To"] = to_email
    message.set_content(text_body or html_body)
    message.add_alternative(html_body, subtype="html")
    return message


def _deliver(settings: Settings, message: EmailMessage) -> None:
    context = ssl.create_default_context()
    if settings.smtp_port == SMTPS_PORT:
        with smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, context=context) as connection:
            connection.login(settings.smtp_user, settings.smtp_password)
            connection.send_message(message)
        return
    # handshake inside the block; the socket closes on any failure
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as connection:
        connection.ehlo()
        connection.starttls(context=context)
        connection.login(settings.smtp_user, settings.smtp_password)
        connection.send_message(message)


def send_email(subject: str, to_email: str, html_body: str, text_body: str | None = None) -> bool:
    """Deliver one message. Returns False (and logs) when SMTP is unconfigured or fails."""
    settings = get_settings()
    if not smtp_configured(settings):
        logger.warning("SMTP not configured; skipping email %r", subject)
        return False
    message = build_message(settings.smtp_from, to_email, subject, html_body, text_body)
    try:
        _deliver(settings, message)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("failed to send %r to %s: %s", subject, to_email, exc)
        return False
    logger.info("sent %r to %s", subject, to_email)
    return True

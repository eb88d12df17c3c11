from __future__ import annotations

import smtplib

from accounts_api.core import mailer


def test_message_carries_text_and_html_parts():
    message = mailer.build_message("noreply@example.com", "a@example.com", "Hi", "<p>Hi</p>", "Hi")
    assert message["To"] == "a@example.com"
    types = [part.get_content_type() for part in message.iter_parts()]
    assert types == ["text/plain", "text/html"]


def test_send_email_skips_without_smtp(monkeypatch):
    monkeypatch.setenv("SMTP_HOST", "")
    mailer.get_settings.cache_clear()
    try:
        assert mailer.send_email("Hi", "a@example.com", "<p>Hi</p>") is False
    finally:
        mailer.get_settings.cache_clear()


class _RefusingSMTP:
    """SMTP double whose STARTTLS handshake fails."""

    instances = []

    def __init__(self, host, port):
        self.closed = False
        _RefusingSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True
        return False

    def ehlo(self):
        return (250, b"ok")

    def starttls(self, context=None):
        raise smtplib.SMTPNotSupportedError("STARTTLS extension not supported by server.")


def test_failed_starttls_closes_connection(monkeypatch):
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTP_PORT", "587")
    monkeypatch.setenv("SMTP_USER", "mailer")
    monkeypatch.setenv("SMTP_PASSWORD", "secret")
    monkeypatch.setenv("SMTP_FROM", "noreply@example.com")
    monkeypatch.setattr(mailer.smtplib, "SMTP", _RefusingSMTP)
    _RefusingSMTP.instances.clear()
    mailer.get_settings.cache_clear()
    try:
        assert mailer.send_email("Hi", "a@example.com", "<p>Hi</p>") is False
    finally:
        mailer.get_settings.cache_clear()
    assert len(_RefusingSMTP.instances) == 1
    assert _RefusingSMTP.instances[0].closed is True

from __future__ import annotations

import re
import threading

import pytest

from accounts_api.core.errors import BadRequestError, InvalidCredentialsError, InvalidOrExpiredTokenError
from accounts_api.core.jobs import PeriodicJob
from accounts_api.core.security import hash_password
from accounts_api.core.tokens import TokenService
from accounts_api.repositories.sql_repository import SQLRepository
from accounts_api.services import auth_service as auth_module
from accounts_api.services.auth_service import (
    FORGOT_PASSWORD_MESSAGE,
    RESET_PASSWORD_MESSAGE,
    AuthService,
)


@pytest.fixture()
def outbox(monkeypatch):
    sent = []

    def fake_send(subject, to_email, html_body, text_body=None):
        sent.append({"subject": subject, "to": to_email, "html": html_body, "text": text_body})
        return True

    monkeypatch.setattr(auth_module, "send_email", fake_send)
    return sent


@pytest.fixture()
def service(temp_db, clock):
    return AuthService(token_service=TokenService("secret", clock=clock), clock=clock)


@pytest.fixture()
def alice(temp_db):
    return SQLRepository().create_user("Alice", "alice@example.com", hash_password("password1"))


def _secret_from(mail) -> str:
    match = re.search(r"token=([0-9a-f]{64})", mail["text"])
    assert match, mail["text"]
    return match.group(1)


def test_login_returns_token_and_public_user(service, alice):
    result = service.login("  Alice@Example.com ", "password1")
    claims = service.token_service.verify(result.access_token)
    assert claims.sub == alice.id
    assert claims.role == "USER"
    assert result.user["email"] == "alice@example.com"
    assert "password_hash" not in result.user


def test_login_rejects_bad_credentials(service, alice):
    with pytest.raises(InvalidCredentialsError):
        service.login("alice@example.com", "wrong-password")
    with pytest.raises(InvalidCredentialsError):
        service.login("nobody@example.com", "password1")


def test_forgot_password_unknown_email_writes_nothing(service, alice, outbox):
    assert service.forgot_password("nobody@example.com") == FORGOT_PASSWORD_MESSAGE
    assert outbox == []
    assert SQLRepository().get_user(alice.id).reset_password_token is None


def test_forgot_password_stores_only_the_digest(service, alice, outbox):
    assert service.forgot_password("alice@example.com") == FORGOT_PASSWORD_MESSAGE
    assert len(outbox) == 1
    secret = _secret_from(outbox[0])
    stored = SQLRepository().get_user(alice.id)
    assert stored.reset_password_token is not None
    assert stored.reset_password_token != secret


def test_reset_password_flow(service, alice, outbox):
    service.forgot_password("alice@example.com")
    secret = _secret_from(outbox[0])

    assert service.reset_password(secret, "brand-new-pass") == RESET_PASSWORD_MESSAGE
    assert service.login("alice@example.com", "brand-new-pass").access_token
    stored = SQLRepository().get_user(alice.id)
    assert stored.reset_password_token is None
    assert stored.reset_password_expires is None

    # the secret cannot be redeemed twice
    with pytest.raises(InvalidOrExpiredTokenError):
        service.reset_password(secret, "another-pass")


def test_reset_password_rejects_expired_and_unknown(service, alice, outbox, clock):
    service.forgot_password("alice@example.com")
    secret = _secret_from(outbox[0])
    with pytest.raises(InvalidOrExpiredTokenError):
        service.reset_password("0" * 64, "brand-new-pass")
    clock.advance(seconds=601)
    with pytest.raises(InvalidOrExpiredTokenError):
        service.reset_password(secret, "brand-new-pass")


def test_reset_password_checks_policy(service, alice, outbox):
    service.forgot_password("alice@example.com")
    with pytest.raises(BadRequestError):
        service.reset_password(_secret_from(outbox[0]), "short")


def test_sweep_clears_expired_tokens(service, alice, outbox, clock):
    service.forgot_password("alice@example.com")
    assert service.sweep_expired_reset_tokens() == 0
    clock.advance(minutes=11)
    job = service.reset_sweep_job()
    assert job.run_once() == 1
    assert SQLRepository().get_user(alice.id).reset_password_token is None


def test_periodic_job_logs_and_survives_failures(caplog):
    def boom():
        raise RuntimeError("boom")

    job = PeriodicJob("boom", 60, boom)
    assert job.run_once() is None
    assert "job boom failed" in caplog.text


def test_periodic_job_start_and_stop():
    ran = threading.Event()
    job = PeriodicJob("tick", 0.01, ran.set)
    job.start()
    try:
        assert ran.wait(2)
        assert job.running
    finally:
        job.stop()
    assert not job.running


def test_periodic_job_rejects_bad_interval():
    with pytest.raises(ValueError):
        PeriodicJob("bad", 0, lambda: None)


def test_restart_after_slow_stop_does_not_revive_old_loop():
    entered = threading.Event()
    gate = threading.Event()

    def slow_task():
        entered.set()
        gate.wait(2)

    job = PeriodicJob("slow", 0.01, slow_task)
    job.start()
    assert entered.wait(2)
    first = job._thread
    job.stop(timeout=0.01)
    assert first.is_alive()

    job.start()
    gate.set()
    first.join(2)
    try:
        assert not first.is_alive()
        assert job.running
    finally:
        job.stop()


def test_forgot_password_can_defer_delivery(service, alice, outbox):
    deferred = []
    message = service.forgot_password("alice@example.com", schedule=lambda func, *args: deferred.append((func, args)))
    assert message == FORGOT_PASSWORD_MESSAGE
    assert outbox == []
    assert len(deferred) == 1

    func, args = deferred[0]
    func(*args)
    assert outbox[0]["to"] == "alice@example.com"
    assert service.reset_password(_secret_from(outbox[0]), "brand-new-pass") == RESET_PASSWORD_MESSAGE

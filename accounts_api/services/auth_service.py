"""
Authentication and password-reset use cases.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from accounts_api.core.config import get_settings
from accounts_api.core.errors import InvalidCredentialsError, InvalidOrExpiredTokenError
from accounts_api.core.jobs import PeriodicJob
from accounts_api.core.mailer import send_email
from accounts_api.core.security import (
    check_password_policy,
    hash_password,
    hash_reset_secret,
    new_reset_secret,
    verify_password,
)
from accounts_api.core.tokens import TokenService
from accounts_api.core.utils import absolute_url, utcnow
from accounts_api.repositories.sql_repository import SQLRepository
from accounts_api.services.presenters import public_user

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If the email exists, you will receive instructions to reset your password."
RESET_PASSWORD_MESSAGE = "Password reset successfully!"


@dataclass
class LoginResult:
    access_token: str
    user: Dict[str, Any]
    token_type: str = "bearer"


@dataclass
class AuthService:
    """Handles login, forgot/reset password and the expired reset-token sweep."""

    token_service: TokenService
    clock: Callable[[], datetime] = utcnow
    repository: SQLRepository = field(default_factory=SQLRepository)

    def __post_init__(self):
        self.settings = get_settings()

    # -------------------------------------- login --------------------------------------
    def login(self, email: str, password: str) -> LoginResult:
        raw_email = (email or "").strip().lower()
        if not raw_email or not password:
            raise InvalidCredentialsError()
        user = self.repository.get_user_by_email(raw_email)
        if not user or not verify_password(password, user.password_hash):
            logger.info("login rejected for %s", raw_email)
            raise InvalidCredentialsError()
        token = self.token_service.issue(
            {"sub": user.id, "email": user.email, "name": user.name, "role": user.role}
        )
        return LoginResult(access_token=token, user=public_user(user))

    # -------------------------------------- password reset --------------------------------------
    def forgot_password(self, email: str, schedule: Optional[Callable[..., Any]] = None) -> str:
        """
        Start a reset for ``email``. The answer is the same whether or not the
        account exists, and unknown addresses cause no writes.

        ``schedule(func, *args)`` defers the mail (FastAPI's
        ``BackgroundTasks.add_task``), so response time does not depend on SMTP.
        Without it the mail is sent inline.
        """
        raw = (email or "").strip().lower()
        user = self.repository.get_user_by_email(raw) if raw else None
        if not user:
            return FORGOT_PASSWORD_MESSAGE
        secret = new_reset_secret()
        expires_at = self.clock() + timedelta(seconds=self.settings.password_reset_ttl)
        self.repository.set_reset_token(user.id, hash_reset_secret(secret), expires_at)
        if schedule is None:
            self._send_reset_email(user.email, secret)
        else:
            schedule(self._send_reset_email, user.email, secret)
        logger.info("password reset issued for user %s", user.id)
        return FORGOT_PASSWORD_MESSAGE

    def _send_reset_email(self, email: str, secret: str) -> bool:
        reset_url = absolute_url(f"/reset-password?token={secret}")
        minutes = max(1, self.settings.password_reset_ttl // 60)
        html_body = f"""
        <p>Hello!</p>
        <p>We received a request to reset your password.</p>
        <p><a href="{reset_url}">Reset password</a></p>
        <p>This link expires in {minutes} minutes. If it wasn't you, ignore this message.</p>
        """
        return send_email(
            "Reset your password",
            email,
            html_body,
            f"Use this link to reset your password: {reset_url}",
        )

    def reset_password(self, token: str, new_password: str) -> str:
        token = (token or "").strip()
        if not token:
            raise InvalidOrExpiredTokenError()
        token_hash = hash_reset_secret(token)
        user = self.repository.get_user_by_reset_token(token_hash, self.clock())
        if not user:
            raise InvalidOrExpiredTokenError()
        check_password_policy(new_password)
        if not self.repository.complete_password_reset(user.id, token_hash, hash_password(new_password)):
            # redeemed concurrently
            raise InvalidOrExpiredTokenError()
        logger.info("password reset completed for user %s", user.id)
        return RESET_PASSWORD_MESSAGE

    def sweep_expired_reset_tokens(self, now: datetime | None = None) -> int:
        cleared = self.repository.clear_expired_reset_tokens(now or self.clock())
        if cleared:
            logger.info("cleared %d expired password reset tokens", cleared)
        return cleared

    def reset_sweep_job(self) -> PeriodicJob:
        return PeriodicJob(
            "reset-token-sweep",
            self.settings.reset_sweep_interval,
            self.sweep_expired_reset_tokens,
        )

"""Signed session tokens (JWT, HS256 by default)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict

import jwt
from jwt.exceptions import InvalidTokenError

from .config import Settings
from .errors import ConfigurationError, TokenExpiredError, TokenInvalidError
from .utils import utcnow

REQUIRED_CLAIMS = ("sub", "email", "role")


@dataclass(frozen=True)
class TokenClaims:
    sub: str
    email: str
    name: str
    role: str


class TokenService:
    """Issues and verifies session tokens carrying identity and role."""

    def __init__(
        self,
        secret: str,
        expires_seconds: int = 3600,
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not secret:
            raise ConfigurationError("JWT_SECRET must be configured")
        self._secret = secret
        self._expires = timedelta(seconds=max(1, expires_seconds))
        self._algorithm = algorithm
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(settings.jwt_secret, settings.jwt_expires_seconds, settings.jwt_algorithm)

    def issue(self, claims: Dict[str, Any]) -> str:
        now = self._clock()
        payload = dict(claims)
        payload["sub"] = str(payload["sub"])
        payload["iat"] = int(now.timestamp())
        payload["exp"] = int((now + self._expires).timestamp())
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> TokenClaims:
        if not token:
            raise TokenInvalidError("Token not provided")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except InvalidTokenError:
            raise TokenInvalidError()
        # expiry is checked against the injected clock, not the wall clock
        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            raise TokenInvalidError()
        if exp <= self._clock().timestamp():
            raise TokenExpiredError()
        if any(not payload.get(name) for name in REQUIRED_CLAIMS):
            raise TokenInvalidError()
        return TokenClaims(
            sub=str(payload["sub"]),
            email=str(payload["email"]),
            name=str(payload.get("name") or ""),
            role=str(payload["role"]),
        )

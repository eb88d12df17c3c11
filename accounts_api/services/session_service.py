"""Session helpers: bearer-token extraction and actor resolution."""
from __future__ import annotations

from fastapi import Request

from accounts_api.core.errors import ForbiddenError, TokenInvalidError
from accounts_api.core.tokens import TokenService
from accounts_api.domain.policy import Actor, Role
from accounts_api.repositories.sql_repository import SQLRepository

BEARER_PREFIX = "Bearer "


def bearer_token(request: Request) -> str:
    header = request.headers.get("authorization")
    if not header:
        raise ForbiddenError("Authorization header not found")
    if not header.startswith(BEARER_PREFIX):
        raise ForbiddenError("Invalid token format")
    token = header[len(BEARER_PREFIX):].strip()
    if not token:
        raise ForbiddenError("Token not provided")
    return token


class SessionService:
    """Turns a session token into the acting user."""

    def __init__(self, token_service: TokenService, repository: SQLRepository | None = None) -> None:
        self.token_service = token_service
        self.repository = repository or SQLRepository()

    def actor_for_token(self, token: str) -> Actor:
        claims = self.token_service.verify(token)
        user = self.repository.get_user(claims.sub)
        if not user:
            raise ForbiddenError("User not found")
        # role is read from the store so a demotion takes effect before the token expires
        try:
            role = Role(user.role)
        except ValueError:
            raise TokenInvalidError()
        return Actor(id=user.id, role=role)


def current_actor(request: Request) -> Actor:
    """FastAPI dependency resolving the authenticated actor."""
    sessions: SessionService = request.app.state.session_service
    return sessions.actor_for_token(bearer_token(request))

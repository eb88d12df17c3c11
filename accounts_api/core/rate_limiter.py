from __future__ import annotations

from fastapi import Request

from accounts_api.core.errors import TooManyRequestsError
from accounts_api.repositories.sql_repository import SQLRepository


class _RateLimiter:
    """Fixed-window counters kept in the shared database, keyed by scope and actor."""

    def __init__(self, repository: SQLRepository | None = None) -> None:
        self._repository = repository or SQLRepository()

    def check(self, key: str, limit: int, window_seconds: int) -> None:
        if limit <= 0:
            return
        count = self._repository.hit_rate_limit(key, window_seconds)
        if count > limit:
            raise TooManyRequestsError()

    def reset(self, key: str) -> None:
        self._repository.clear_rate_limit(key)


_limiter = _RateLimiter()


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit_key(scope: str, identity: str) -> str:
    return f"{scope}:{(identity or '').strip().lower()}"


def rate_limit(scope: str, identity: str, *, limit: int, window_seconds: int) -> None:
    _limiter.check(rate_limit_key(scope, identity), limit, window_seconds)


def rate_limit_ip(request: Request, scope: str, *, limit: int, window_seconds: int) -> None:
    rate_limit(scope, _client_ip(request), limit=limit, window_seconds=window_seconds)


def reset_rate_limit(scope: str, identity: str) -> None:
    _limiter.reset(rate_limit_key(scope, identity))

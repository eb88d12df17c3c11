"""Error taxonomy shared by services and routers.

Services raise these; the app factory registers a single handler that turns
any ``ServiceError`` into ``{"detail": message}`` with its status code.
"""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised at startup when a required setting is missing."""


class ServiceError(Exception):
    status_code = 400
    default_message = "Bad request"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequestError(ServiceError):
    status_code = 400
    default_message = "Bad request"


class UnauthorizedError(ServiceError):
    """Authenticated, but the actor may not perform the operation."""

    status_code = 401
    default_message = "Not allowed"


class ForbiddenError(ServiceError):
    """Missing or invalid session."""

    status_code = 403
    default_message = "Not authenticated"


class NotFoundError(ServiceError):
    status_code = 404
    default_message = "Not found"


class ConflictError(ServiceError):
    status_code = 409
    default_message = "Conflict"


class TooManyRequestsError(ServiceError):
    status_code = 429
    default_message = "Too many requests. Try again later."


class InvalidCredentialsError(UnauthorizedError):
    default_message = "Invalid credentials"


class InvalidOrExpiredTokenError(BadRequestError):
    default_message = "Invalid or expired token"


class TokenInvalidError(ForbiddenError):
    default_message = "Token invalid"


class TokenExpiredError(ForbiddenError):
    default_message = "Token expired"

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from accounts_api.core.config import Settings, get_settings
from accounts_api.core.errors import ServiceError
from accounts_api.core.tokens import TokenService
from accounts_api.core.utils import utcnow
from accounts_api.domain.policy import Actor
from accounts_api.routers import admin as admin_router
from accounts_api.routers import auth as auth_router
from accounts_api.routers import payment as payment_router
from accounts_api.routers import users as users_router
from accounts_api.routers.deps import require_active_subscription
from accounts_api.services.auth_service import AuthService
from accounts_api.services.billing_events import BillingEventHandler
from accounts_api.services.payment_gateway import PaymentGateway
from accounts_api.services.session_service import SessionService
from accounts_api.services.subscription_service import SubscriptionService
from accounts_api.services.user_service import UserService

logger = logging.getLogger(__name__)

# interactive docs load scripts and styles from a CDN
DOCS_PATHS = ("/docs", "/redoc", "/openapi.json")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Baseline security headers for a JSON-only API."""

    def __init__(self, app, *, enforce_hsts: bool) -> None:
        super().__init__(app)
        self._enforce_hsts = enforce_hsts

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        if not request.url.path.startswith(DOCS_PATHS):
            response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Cache-Control", "no-store")
        if self._enforce_hsts:
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return response


def load_env_file() -> None:
    """Load `.env` from the working directory without overriding real environment variables."""
    load_dotenv(find_dotenv(usecwd=True))


async def service_error_handler(_request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse({"detail": exc.message}, status_code=exc.status_code)


def create_app(
    settings: Optional[Settings] = None,
    *,
    payment_gateway: Optional[PaymentGateway] = None,
    run_background_jobs: bool = True,
) -> FastAPI:
    """Build the API. Missing JWT or Stripe secrets abort here, before serving."""
    load_env_file()
    settings = settings or get_settings()
    token_service = TokenService.from_settings(settings)
    gateway = payment_gateway or PaymentGateway.from_settings(settings)
    auth_service = AuthService(token_service=token_service)
    sweep_job = auth_service.reset_sweep_job()

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if run_background_jobs:
            sweep_job.start()
        try:
            yield
        finally:
            sweep_job.stop()

    app = FastAPI(title="Accounts API", lifespan=lifespan)
    app.state.settings = settings
    app.state.token_service = token_service
    app.state.session_service = SessionService(token_service)
    app.state.auth_service = auth_service
    app.state.user_service = UserService()
    app.state.payment_gateway = gateway
    app.state.subscription_service = SubscriptionService(gateway)
    app.state.billing_events = BillingEventHandler()
    app.state.reset_sweep_job = sweep_job

    allowed_cors = {settings.public_base_url}
    if settings.app_env != "prod":
        allowed_cors.update({"http://localhost:3000", "http://127.0.0.1:3000"})
    allowed_cors = {origin for origin in allowed_cors if origin}
    if allowed_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=sorted(allowed_cors),
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )
    app.add_middleware(SecurityHeadersMiddleware, enforce_hsts=settings.app_env == "prod")
    app.add_exception_handler(ServiceError, service_error_handler)

    app.include_router(auth_router.router)
    app.include_router(users_router.router)
    app.include_router(admin_router.router)
    app.include_router(payment_router.router)
    logger.info("accounts api configured (env=%s, database=%s)", settings.app_env, settings.database_url.split(":", 1)[0])

    @app.get("/health")
    def health():
        return {"status": "OK", "timestamp": utcnow().isoformat()}

    @app.get("/premium-feature")
    def premium_feature(_actor: Actor = Depends(require_active_subscription)):
        return {
            "message": "You have access to this premium feature!",
            "feature": "Only users with an active subscription can reach this endpoint.",
        }

    return app


def main() -> None:
    import uvicorn

    # before the first get_settings(), which caches
    load_env_file()
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(settings), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()

"""
Configuration helpers for the accounts backend.

Routers and services read options through ``get_settings()`` instead of
touching os.environ directly, so tests can swap the environment and clear the
cache.
"""

from dataclasses import dataclass
from functools import lru_cache
import os


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    app_env: str
    log_level: str
    database_url: str
    public_base_url: str
    jwt_secret: str
    jwt_algorithm: str
    jwt_expires_seconds: int
    stripe_secret_key: str
    stripe_api_version: str
    stripe_webhook_secret: str
    password_reset_ttl: int
    reset_sweep_interval: int
    password_hash_cost: int
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    smtp_from: str
    login_rate_limit: int
    forgot_password_rate_limit: int
    rate_limit_window: int


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    def _int(value: str, default: int = 0) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    return Settings(
        app_env=(os.getenv("APP_ENV") or "dev").lower(),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./accounts.db"),
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:3000").rstrip("/"),
        jwt_secret=os.getenv("JWT_SECRET", ""),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        jwt_expires_seconds=_int(os.getenv("JWT_EXPIRES_SECONDS", "3600"), 3600),
        stripe_secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
        stripe_api_version=os.getenv("STRIPE_API_VERSION", "2024-12-18.acacia"),
        stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET", ""),
        password_reset_ttl=_int(os.getenv("PASSWORD_RESET_TTL", "600"), 600),
        reset_sweep_interval=_int(os.getenv("RESET_SWEEP_INTERVAL", "3600"), 3600),
        password_hash_cost=_int(os.getenv("PASSWORD_HASH_COST", "12"), 12),
        smtp_host=os.getenv("SMTP_HOST", ""),
        smtp_port=_int(os.getenv("SMTP_PORT", "465"), 465),
        smtp_user=os.getenv("SMTP_USER", ""),
        smtp_password=os.getenv("SMTP_PASSWORD", ""),
        smtp_from=os.getenv("SMTP_FROM", os.getenv("SMTP_USER", "")),
        login_rate_limit=_int(os.getenv("LOGIN_RATE_LIMIT", "5"), 5),
        forgot_password_rate_limit=_int(os.getenv("FORGOT_PASSWORD_RATE_LIMIT", "3"), 3),
        rate_limit_window=_int(os.getenv("RATE_LIMIT_WINDOW", "900"), 900),
    )

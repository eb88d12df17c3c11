from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel

from accounts_api.core.config import get_settings
from accounts_api.core.rate_limiter import rate_limit, reset_rate_limit
from accounts_api.routers.deps import auth_service
from accounts_api.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginIn(BaseModel):
    email: str
    password: str


class ForgotPasswordIn(BaseModel):
    email: str


class ResetPasswordIn(BaseModel):
    token: str
    new_password: str


@router.post("/login")
def login(payload: LoginIn, service: AuthService = Depends(auth_service)):
    settings = get_settings()
    rate_limit(
        "auth:login",
        payload.email,
        limit=settings.login_rate_limit,
        window_seconds=settings.rate_limit_window,
    )
    result = service.login(payload.email, payload.password)
    reset_rate_limit("auth:login", payload.email)
    return {"access_token": result.access_token, "token_type": result.token_type, "user": result.user}


@router.post("/forgot-password")
def forgot_password(
    payload: ForgotPasswordIn,
    background_tasks: BackgroundTasks,
    service: AuthService = Depends(auth_service),
):
    settings = get_settings()
    rate_limit(
        "auth:forgot",
        payload.email,
        limit=settings.forgot_password_rate_limit,
        window_seconds=settings.rate_limit_window,
    )
    # mail goes out after the response is sent
    return {"message": service.forgot_password(payload.email, schedule=background_tasks.add_task)}


@router.post("/reset-password")
def reset_password(payload: ResetPasswordIn, service: AuthService = Depends(auth_service)):
    return {"message": service.reset_password(payload.token, payload.new_password)}

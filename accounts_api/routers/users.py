"""Self-service account endpoints."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel

from accounts_api.core.rate_limiter import rate_limit_ip
from accounts_api.domain.policy import Actor
from accounts_api.routers.deps import user_service
from accounts_api.services.session_service import current_actor
from accounts_api.services.user_service import UserService

router = APIRouter(prefix="/user", tags=["user"])


class RegisterIn(BaseModel):
    name: str
    email: str
    password: str


class ProfileUpdateIn(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None


class ChangePasswordIn(BaseModel):
    current_password: Optional[str] = None
    new_password: str


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(request: Request, payload: RegisterIn, service: UserService = Depends(user_service)):
    rate_limit_ip(request, "user:register", limit=10, window_seconds=3600)
    return service.register(payload.name, payload.email, payload.password)


@router.get("/profile")
def get_profile(actor: Actor = Depends(current_actor), service: UserService = Depends(user_service)):
    return service.get_profile(actor, actor.id)


@router.put("/profile")
def update_profile(
    payload: ProfileUpdateIn,
    actor: Actor = Depends(current_actor),
    service: UserService = Depends(user_service),
):
    return service.update_user(actor, actor.id, payload.model_dump(exclude_none=True))


@router.put("/change-password")
def change_password(
    payload: ChangePasswordIn,
    actor: Actor = Depends(current_actor),
    service: UserService = Depends(user_service),
):
    return service.change_password(actor, actor.id, payload.new_password, payload.current_password)


@router.delete("/account")
def delete_account(actor: Actor = Depends(current_actor), service: UserService = Depends(user_service)):
    return service.delete_own_account(actor)

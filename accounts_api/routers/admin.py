"""Administrative user management. Every operation is checked by the policy table."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from accounts_api.domain.policy import Actor
from accounts_api.routers.deps import user_service
from accounts_api.routers.users import ProfileUpdateIn
from accounts_api.services.session_service import current_actor
from accounts_api.services.user_service import UserService

router = APIRouter(prefix="/admin", tags=["admin"])


class CreateUserIn(BaseModel):
    name: str
    email: str
    password: str
    role: str = "USER"


class CreateAdminIn(BaseModel):
    name: str
    email: str
    password: str


class SetPasswordIn(BaseModel):
    new_password: str


@router.get("/users")
def list_users(
    role: Optional[str] = None,
    actor: Actor = Depends(current_actor),
    service: UserService = Depends(user_service),
):
    if role:
        return service.list_users_by_role(actor, role)
    return service.list_users(actor)


@router.post("/users", status_code=status.HTTP_201_CREATED)
def create_user(payload: CreateUserIn, actor: Actor = Depends(current_actor), service: UserService = Depends(user_service)):
    return service.create_user(actor, payload.name, payload.email, payload.password, payload.role)


@router.post("/users/admins", status_code=status.HTTP_201_CREATED)
def create_admin(payload: CreateAdminIn, actor: Actor = Depends(current_actor), service: UserService = Depends(user_service)):
    return service.create_admin(actor, payload.name, payload.email, payload.password)


@router.get("/users/{user_id}")
def get_user(user_id: str, actor: Actor = Depends(current_actor), service: UserService = Depends(user_service)):
    return service.get_profile(actor, user_id)


@router.put("/users/{user_id}")
def update_user(
    user_id: str,
    payload: ProfileUpdateIn,
    actor: Actor = Depends(current_actor),
    service: UserService = Depends(user_service),
):
    return service.update_user(actor, user_id, payload.model_dump(exclude_none=True))


@router.put("/users/{user_id}/password")
def set_password(
    user_id: str,
    payload: SetPasswordIn,
    actor: Actor = Depends(current_actor),
    service: UserService = Depends(user_service),
):
    return service.change_password(actor, user_id, payload.new_password)


@router.post("/users/{user_id}/promote")
def promote(user_id: str, actor: Actor = Depends(current_actor), service: UserService = Depends(user_service)):
    return service.promote_to_admin(actor, user_id)


@router.post("/users/{user_id}/demote")
def demote(user_id: str, actor: Actor = Depends(current_actor), service: UserService = Depends(user_service)):
    return service.demote_from_admin(actor, user_id)


@router.delete("/users/{user_id}")
def delete_user(user_id: str, actor: Actor = Depends(current_actor), service: UserService = Depends(user_service)):
    return service.delete_user(actor, user_id)

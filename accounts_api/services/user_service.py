"""Account use cases guarded by the authorization policy."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from accounts_api.core.errors import BadRequestError, ConflictError, NotFoundError, UnauthorizedError
from accounts_api.core.security import check_password_policy, hash_password, verify_password
from accounts_api.db.models import User
from accounts_api.domain.policy import Actor, Operation, Role, authorize
from accounts_api.repositories.sql_repository import SQLRepository
from accounts_api.services.presenters import public_user

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "email", "role")


def _normalize_email(email: str | None) -> str:
    value = (email or "").strip().lower()
    if not value or "@" not in value:
        raise BadRequestError("A valid email is required")
    return value


def _normalize_name(name: str | None) -> str:
    value = (name or "").strip()
    if not value:
        raise BadRequestError("Name is required")
    return value


def _parse_role(role: Any) -> Role:
    if isinstance(role, Role):
        return role
    try:
        return Role(str(role).upper())
    except ValueError:
        raise BadRequestError("Role must be USER or ADMIN")


class UserService:
    """Registration, profile management and the administrative user operations."""

    def __init__(self, repository: SQLRepository | None = None) -> None:
        self.repository = repository or SQLRepository()

    # -------------------------------------- helpers --------------------------------------
    def _require_user(self, user_id: str, message: str = "User not found") -> User:
        user = self.repository.get_user(user_id)
        if not user:
            raise NotFoundError(message)
        return user

    def _insert(self, name: str, email: str, password: str, role: Role) -> Dict[str, Any]:
        name = _normalize_name(name)
        email = _normalize_email(email)
        check_password_policy(password)
        if self.repository.get_user_by_email(email):
            raise ConflictError("Email already exists")
        user = self.repository.create_user(name, email, hash_password(password), role=role.value)
        logger.info("user %s created with role %s", user.id, user.role)
        return public_user(user)

    # -------------------------------------- self-service --------------------------------------
    def register(self, name: str, email: str, password: str) -> Dict[str, Any]:
        """Public sign-up. The role is always USER on this path."""
        return self._insert(name, email, password, Role.USER)

    def get_profile(self, actor: Actor, user_id: str) -> Dict[str, Any]:
        authorize(actor, Operation.READ_PROFILE, user_id)
        user = self._require_user(user_id)
        subscription = self.repository.get_subscription_for_user(user.id)
        return public_user(user, subscription)

    def update_user(self, actor: Actor, user_id: str, changes: Mapping[str, Any]) -> Dict[str, Any]:
        requested = {key: value for key, value in (changes or {}).items() if value is not None}
        unknown = set(requested) - set(UPDATABLE_FIELDS)
        if unknown:
            raise BadRequestError(f"Unsupported fields: {', '.join(sorted(unknown))}")
        authorize(actor, Operation.UPDATE_PROFILE, user_id, fields=requested.keys())
        user = self._require_user(user_id)
        values: Dict[str, Any] = {}
        if "name" in requested:
            values["name"] = _normalize_name(requested["name"])
        if "email" in requested:
            email = _normalize_email(requested["email"])
            owner = self.repository.get_user_by_email(email)
            if owner and owner.id != user.id:
                raise ConflictError("Email already exists")
            values["email"] = email
        if "role" in requested:
            values["role"] = _parse_role(requested["role"]).value
        if not values:
            return public_user(user)
        updated = self.repository.update_user(user.id, **values)
        return public_user(updated)

    def change_password(
        self,
        actor: Actor,
        user_id: str,
        new_password: str,
        current_password: Optional[str] = None,
    ) -> Dict[str, str]:
        authorize(actor, Operation.CHANGE_PASSWORD, user_id)
        user = self._require_user(user_id)
        check_password_policy(new_password)
        if user.id != actor.id:
            # only an admin gets here; resetting someone else's password skips the current one
            self.repository.update_user_password(user.id, hash_password(new_password))
            logger.info("admin %s reset password of user %s", actor.id, user.id)
            return {"message": "Password reset successfully!"}
        if not verify_password(current_password or "", user.password_hash):
            raise UnauthorizedError("Current password is incorrect")
        if verify_password(new_password, user.password_hash):
            raise BadRequestError("New password must be different from the current password")
        self.repository.update_user_password(user.id, hash_password(new_password))
        logger.info("user %s changed password", user.id)
        return {"message": "Password changed successfully!"}

    def delete_own_account(self, actor: Actor) -> Dict[str, str]:
        authorize(actor, Operation.DELETE_OWN_ACCOUNT, actor.id)
        if not self.repository.delete_user(actor.id):
            raise NotFoundError("User not found")
        logger.info("user %s deleted own account", actor.id)
        return {"message": "Account deleted successfully"}

    # -------------------------------------- admin --------------------------------------
    def list_users(self, actor: Actor) -> List[Dict[str, Any]]:
        authorize(actor, Operation.LIST_USERS)
        return [public_user(user) for user in self.repository.list_users()]

    def list_users_by_role(self, actor: Actor, role: Any) -> List[Dict[str, Any]]:
        authorize(actor, Operation.LIST_BY_ROLE)
        wanted = _parse_role(role)
        return [public_user(user) for user in self.repository.list_users(role=wanted.value)]

    def create_user(
        self,
        actor: Actor,
        name: str,
        email: str,
        password: str,
        role: Any = Role.USER,
    ) -> Dict[str, Any]:
        authorize(actor, Operation.CREATE_USER)
        return self._insert(name, email, password, _parse_role(role or Role.USER))

    def create_admin(self, actor: Actor, name: str, email: str, password: str) -> Dict[str, Any]:
        authorize(actor, Operation.CREATE_ADMIN)
        return self._insert(name, email, password, Role.ADMIN)

    def promote_to_admin(self, actor: Actor, user_id: str) -> Dict[str, Any]:
        authorize(actor, Operation.PROMOTE, user_id)
        user = self._require_user(user_id)
        if user.role == Role.ADMIN.value:
            raise ConflictError("User is already an administrator")
        updated = self.repository.update_user(user.id, role=Role.ADMIN.value)
        logger.info("admin %s promoted user %s", actor.id, user.id)
        return public_user(updated)

    def demote_from_admin(self, actor: Actor, user_id: str) -> Dict[str, Any]:
        authorize(actor, Operation.DEMOTE, user_id)
        user = self._require_user(user_id)
        if user.role == Role.USER.value:
            raise ConflictError("User is already a regular user")
        updated = self.repository.update_user(user.id, role=Role.USER.value)
        logger.info("admin %s demoted user %s", actor.id, user.id)
        return public_user(updated)

    def delete_user(self, actor: Actor, user_id: str) -> Dict[str, str]:
        authorize(actor, Operation.DELETE_USER, user_id)
        if not self.repository.delete_user(user_id):
            raise NotFoundError("User not found")
        logger.info("admin %s deleted user %s", actor.id, user_id)
        return {"message": "User deleted successfully"}

"""Authorization policy: who may act on which account.

Every decision is a lookup in ``POLICY`` keyed by (operation, actor role,
relationship between actor and target). ``decide`` is pure; ``authorize``
raises ``UnauthorizedError`` when the decision is a denial.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from accounts_api.core.errors import UnauthorizedError


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class Operation(str, Enum):
    LIST_USERS = "list_users"
    LIST_BY_ROLE = "list_by_role"
    READ_PROFILE = "read_profile"
    CREATE_USER = "create_user"
    CREATE_ADMIN = "create_admin"
    UPDATE_PROFILE = "update_profile"
    CHANGE_PASSWORD = "change_password"
    PROMOTE = "promote"
    DEMOTE = "demote"
    DELETE_USER = "delete_user"
    DELETE_OWN_ACCOUNT = "delete_own_account"


class Relation(str, Enum):
    NONE = "none"
    OWN = "own"
    OTHER = "other"


@dataclass(frozen=True)
class Actor:
    id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""


ALLOW = Decision(True)


def _deny(reason: str) -> Decision:
    return Decision(False, reason)


PolicyKey = Tuple[Operation, Role, Relation]

_ADMIN_ONLY = {
    Operation.LIST_USERS: "Only administrators can list users",
    Operation.LIST_BY_ROLE: "Only administrators can search users by role",
    Operation.CREATE_USER: "Only administrators can create users",
    Operation.CREATE_ADMIN: "Only administrators can create administrators",
    Operation.PROMOTE: "Only administrators can promote users to admin",
    Operation.DEMOTE: "Only administrators can demote other administrators",
    Operation.DELETE_USER: "Only administrators can delete users",
}

_OWNER_OR_ADMIN = {
    Operation.READ_PROFILE: "Users can only view their own profile",
    Operation.UPDATE_PROFILE: "Users can only update their own profile",
    Operation.CHANGE_PASSWORD: "Users can only change their own password",
}


def _build_policy() -> Dict[PolicyKey, Decision]:
    table: Dict[PolicyKey, Decision] = {}
    for op, reason in _ADMIN_ONLY.items():
        for rel in Relation:
            table[(op, Role.ADMIN, rel)] = ALLOW
            table[(op, Role.USER, rel)] = _deny(reason)
    for op, reason in _OWNER_OR_ADMIN.items():
        for rel in Relation:
            table[(op, Role.ADMIN, rel)] = ALLOW
            table[(op, Role.USER, rel)] = ALLOW if rel == Relation.OWN else _deny(reason)
    for role in Role:
        for rel in Relation:
            table[(Operation.DELETE_OWN_ACCOUNT, role, rel)] = (
                ALLOW if rel == Relation.OWN else _deny("Users can only delete their own account")
            )
    return table


POLICY: Dict[PolicyKey, Decision] = _build_policy()

# fields each role may touch through UPDATE_PROFILE
EDITABLE_FIELDS: Dict[Role, frozenset] = {
    Role.ADMIN: frozenset({"name", "email", "role"}),
    Role.USER: frozenset({"name"}),
}
FIELD_DENIAL = {Role.USER: "Users can only update their name"}


def relation_of(actor: Actor, target_id: Optional[str]) -> Relation:
    if target_id is None:
        return Relation.NONE
    return Relation.OWN if str(target_id) == str(actor.id) else Relation.OTHER


def decide(
    actor: Actor,
    operation: Operation,
    target_id: Optional[str] = None,
    fields: Iterable[str] = (),
) -> Decision:
    role = Role(actor.role)
    decision = POLICY.get((operation, role, relation_of(actor, target_id)))
    if decision is None:
        return _deny("Operation not permitted")
    if not decision.allowed or operation != Operation.UPDATE_PROFILE:
        return decision
    requested = set(fields)
    if requested - EDITABLE_FIELDS[role]:
        # one disallowed field rejects the whole request
        return _deny(FIELD_DENIAL.get(role, "Field not editable"))
    return decision


def authorize(
    actor: Actor,
    operation: Operation,
    target_id: Optional[str] = None,
    fields: Iterable[str] = (),
) -> None:
    decision = decide(actor, operation, target_id, fields)
    if not decision.allowed:
        raise UnauthorizedError(decision.reason)

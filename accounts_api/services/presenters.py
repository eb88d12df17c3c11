"""Public representations of persisted entities.

Responses are built from an explicit allow-list of fields, so the password
hash and reset-token columns can never leak into an API payload.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from accounts_api.core.utils import isoformat
from accounts_api.db.models import Subscription, User

PUBLIC_USER_FIELDS = ("id", "name", "email", "role")


def public_user(user: User, subscription: Optional[Subscription] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {field: getattr(user, field) for field in PUBLIC_USER_FIELDS}
    data["created_at"] = isoformat(user.created_at)
    data["updated_at"] = isoformat(user.updated_at)
    if subscription is not None:
        data["subscription"] = subscription_summary(subscription)
    return data


def subscription_summary(subscription: Subscription) -> Dict[str, Any]:
    return {
        "id": subscription.id,
        "status": subscription.status,
        "current_period_end": isoformat(subscription.current_period_end),
        "cancel_at_period_end": bool(subscription.cancel_at_period_end),
    }


def public_subscription(subscription: Subscription) -> Dict[str, Any]:
    data = subscription_summary(subscription)
    data.update(
        {
            "user_id": subscription.user_id,
            "external_customer_id": subscription.external_customer_id,
            "external_subscription_id": subscription.external_subscription_id,
            "created_at": isoformat(subscription.created_at),
            "updated_at": isoformat(subscription.updated_at),
        }
    )
    return data

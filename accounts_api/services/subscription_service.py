"""Subscription lifecycle driven by direct user requests.

Local rows mirror the provider's subscription. Status and period end come
from the provider, except the optimistic ``canceled`` written when the user
asks to cancel; a later webhook may overwrite it (last writer wins).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import stripe
from sqlalchemy.exc import IntegrityError

from accounts_api.core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError, ServiceError
from accounts_api.core.utils import as_utc, from_epoch, utcnow
from accounts_api.db.models import Subscription
from accounts_api.repositories.sql_repository import SQLRepository
from accounts_api.services.payment_gateway import PaymentGateway, nested_value, value_of
from accounts_api.services.presenters import public_subscription, subscription_summary

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "active"
STATUS_CANCELED = "canceled"
STATUS_PAST_DUE = "past_due"

PROCESSING_ERROR = "Error processing subscription"


def provider_period_end(subscription: Any) -> Optional[datetime]:
    """Period end of a provider subscription (top level, or on its first item in newer API versions)."""
    seconds = value_of(subscription, "current_period_end")
    if seconds is None:
        items = nested_value(subscription, "items", "data", default=[])
        if items:
            seconds = value_of(items[0], "current_period_end")
    return from_epoch(seconds)


class SubscriptionService:
    """Create, cancel and read a user's single subscription."""

    def __init__(
        self,
        gateway: PaymentGateway,
        repository: SQLRepository | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.gateway = gateway
        self.repository = repository or SQLRepository()
        self.clock = clock

    # -------------------------------------- create --------------------------------------
    def create_subscription(self, user_id: str, price_id: str) -> Dict[str, Any]:
        return self._create(user_id, price_id, with_test_payment=False)

    def create_subscription_with_test_payment(self, user_id: str, price_id: str) -> Dict[str, Any]:
        """Development aid: attaches the provider's test card before subscribing."""
        return self._create(user_id, price_id, with_test_payment=True)

    def _create(self, user_id: str, price_id: str, *, with_test_payment: bool) -> Dict[str, Any]:
        price_id = (price_id or "").strip()
        if not price_id:
            raise BadRequestError("price_id is required")
        try:
            if self.repository.get_subscription_for_user(user_id):
                raise ConflictError("User already has a subscription")
            user = self.repository.get_user(user_id)
            if not user:
                raise NotFoundError("User not found")
            self._verify_price(price_id)
            customer_id = self._resolve_customer(user.email, user.name, user.id)
            payment_method = self.gateway.create_test_payment_method(customer_id) if with_test_payment else None
            remote = self.gateway.create_subscription(
                customer_id,
                price_id,
                user.id,
                default_payment_method=payment_method,
            )
            try:
                local = self.repository.create_subscription(
                    user.id,
                    external_customer_id=customer_id,
                    external_subscription_id=value_of(remote, "id"),
                    status=value_of(remote, "status", "incomplete"),
                    current_period_end=provider_period_end(remote),
                    cancel_at_period_end=False,
                )
            except IntegrityError:
                # a concurrent request won the check-then-create race
                raise ConflictError("User already has a subscription")
        except ServiceError:
            raise
        except Exception:
            logger.exception("subscription creation failed for user %s", user_id)
            raise BadRequestError(PROCESSING_ERROR)
        logger.info(
            "subscription %s created for user %s (status=%s)",
            local.external_subscription_id,
            user_id,
            local.status,
        )
        return public_subscription(local)

    def _verify_price(self, price_id: str) -> None:
        try:
            self.gateway.retrieve_price(price_id)
        except stripe.InvalidRequestError as exc:
            logger.warning("price %s rejected by provider: %s", price_id, exc)
            raise BadRequestError("Invalid price ID or price not found")

    def _resolve_customer(self, email: str, name: str, user_id: str) -> str:
        customer = self.gateway.find_customer_by_email(email)
        if customer is None:
            customer = self.gateway.create_customer(email, name, user_id)
        return value_of(customer, "id")

    # -------------------------------------- cancel --------------------------------------
    def cancel_subscription(self, user_id: str) -> Dict[str, Any]:
        subscription = self.repository.get_subscription_for_user(user_id)
        if not subscription:
            raise NotFoundError("Subscription not found")
        try:
            self.gateway.cancel_at_period_end(subscription.external_subscription_id)
        except Exception:
            logger.exception("provider cancel failed for %s", subscription.external_subscription_id)
            raise BadRequestError(PROCESSING_ERROR)
        updated = self.repository.update_subscription_for_user(
            user_id,
            status=STATUS_CANCELED,
            cancel_at_period_end=True,
        )
        if not updated:
            raise NotFoundError("Subscription not found")
        logger.info("subscription %s canceled at period end", updated.external_subscription_id)
        return public_subscription(updated)

    # -------------------------------------- read --------------------------------------
    def get_subscription(self, user_id: str) -> Optional[Dict[str, Any]]:
        subscription = self.repository.get_subscription_for_user(user_id)
        return public_subscription(subscription) if subscription else None

    def is_active(self, subscription: Optional[Subscription]) -> bool:
        if not subscription or subscription.status != STATUS_ACTIVE:
            return False
        period_end = as_utc(subscription.current_period_end)
        return period_end is not None and period_end > self.clock()

    def has_active_subscription(self, user_id: str) -> bool:
        return self.is_active(self.repository.get_subscription_for_user(user_id))

    def get_subscription_status(self, user_id: str) -> Dict[str, Any]:
        subscription = self.repository.get_subscription_for_user(user_id)
        if not self.is_active(subscription):
            return {"has_active_subscription": False}
        return {"has_active_subscription": True, "subscription": subscription_summary(subscription)}

    def require_access(self, user_id: str) -> Subscription:
        """Gate for paid features; raises ForbiddenError with the reason access is refused."""
        subscription = self.repository.get_subscription_for_user(user_id)
        if not subscription:
            raise ForbiddenError("Subscription required to access this resource")
        if subscription.status != STATUS_ACTIVE:
            raise ForbiddenError(f"Subscription is not active. Current status: {subscription.status}")
        if not self.is_active(subscription):
            raise ForbiddenError("Subscription expired")
        return subscription

"""Dependency helpers that pull services from ``app.state``."""
from __future__ import annotations

from fastapi import Depends, Request

from accounts_api.domain.policy import Actor
from accounts_api.services.auth_service import AuthService
from accounts_api.services.billing_events import BillingEventHandler
from accounts_api.services.session_service import current_actor
from accounts_api.services.subscription_service import SubscriptionService
from accounts_api.services.user_service import UserService


def auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def user_service(request: Request) -> UserService:
    return request.app.state.user_service


def subscription_service(request: Request) -> SubscriptionService:
    return request.app.state.subscription_service


def billing_events(request: Request) -> BillingEventHandler:
    return request.app.state.billing_events


def require_active_subscription(
    actor: Actor = Depends(current_actor),
    subscriptions: SubscriptionService = Depends(subscription_service),
) -> Actor:
    subscriptions.require_access(actor.id)
    return actor

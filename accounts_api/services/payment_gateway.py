"""Thin adapter over the Stripe SDK.

Only the calls the subscription flows need are exposed, so services can be
exercised against a fake object with the same methods.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import stripe

from accounts_api.core.config import Settings
from accounts_api.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

TEST_CARD_TOKEN = "tok_visa"


def value_of(obj: Any, name: str, default: Any = None) -> Any:
    """Read ``name`` from a Stripe object or a plain dict."""
    if obj is None:
        return default
    try:
        value = obj[name]
    except (KeyError, TypeError, AttributeError, IndexError):
        return default
    return default if value is None else value


def nested_value(obj: Any, *names: Any, default: Any = None) -> Any:
    current = obj
    for name in names:
        current = value_of(current, name)
        if current is None:
            return default
    return current


class PaymentGateway:
    """Wraps the provider calls used by the subscription engine."""

    def __init__(self, secret_key: str, api_version: str | None = None, webhook_secret: str = "") -> None:
        if not secret_key:
            raise ConfigurationError("STRIPE_SECRET_KEY must be configured")
        stripe.api_key = secret_key
        if api_version:
            stripe.api_version = api_version
        self.webhook_secret = webhook_secret

    @classmethod
    def from_settings(cls, settings: Settings) -> "PaymentGateway":
        return cls(settings.stripe_secret_key, settings.stripe_api_version, settings.stripe_webhook_secret)

    def retrieve_price(self, price_id: str):
        return stripe.Price.retrieve(price_id)

    def find_customer_by_email(self, email: str):
        customers = stripe.Customer.list(email=email, limit=1)
        data = value_of(customers, "data", [])
        return data[0] if data else None

    def create_customer(self, email: str, name: str, user_id: str):
        return stripe.Customer.create(email=email, name=name, metadata={"user_id": user_id})

    def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        user_id: str,
        default_payment_method: Optional[str] = None,
    ):
        params: dict = {
            "customer": customer_id,
            "items": [{"price": price_id}],
            "metadata": {"user_id": user_id},
            "expand": ["latest_invoice.payment_intent"],
        }
        if default_payment_method:
            params["default_payment_method"] = default_payment_method
        else:
            params["payment_behavior"] = "default_incomplete"
            params["payment_settings"] = {"save_default_payment_method": "on_subscription"}
        return stripe.Subscription.create(**params)

    def cancel_at_period_end(self, subscription_id: str):
        return stripe.Subscription.modify(subscription_id, cancel_at_period_end=True)

    def create_test_payment_method(self, customer_id: str) -> str:
        """Attach Stripe's test card to ``customer_id`` and make it the default (development only)."""
        payment_method = stripe.PaymentMethod.create(type="card", card={"token": TEST_CARD_TOKEN})
        payment_method_id = value_of(payment_method, "id")
        stripe.PaymentMethod.attach(payment_method_id, customer=customer_id)
        stripe.Customer.modify(
            customer_id,
            invoice_settings={"default_payment_method": payment_method_id},
        )
        return payment_method_id

    def construct_event(self, payload: bytes, signature: str):
        """Verify the signature and parse the event.

        Raises ``stripe.SignatureVerificationError`` or ``ValueError``.
        """
        return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)

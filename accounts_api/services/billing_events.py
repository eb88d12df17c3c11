"""Reconciliation of provider webhook events into local subscription rows.

Events are dispatched on their ``type``. Every handler writes absolute
values, so redelivery of the same event leaves the row unchanged. Handler
errors propagate so the webhook route can answer with a failure and let the
provider retry.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict

from accounts_api.core.errors import NotFoundError
from accounts_api.repositories.sql_repository import SQLRepository
from accounts_api.services.payment_gateway import nested_value, value_of
from accounts_api.services.subscription_service import (
    STATUS_ACTIVE,
    STATUS_CANCELED,
    STATUS_PAST_DUE,
    provider_period_end,
)

logger = logging.getLogger(__name__)

SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"
PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
PAYMENT_FAILED = "invoice.payment_failed"


def invoice_subscription_id(invoice: Any) -> str | None:
    """Subscription referenced by an invoice (``parent.subscription_details`` on newer API versions)."""
    reference = value_of(invoice, "subscription")
    if reference is None:
        reference = nested_value(invoice, "parent", "subscription_details", "subscription")
    if reference is not None and not isinstance(reference, str):
        reference = value_of(reference, "id")
    return reference


class BillingEventHandler:
    """Applies provider events to the subscription table."""

    def __init__(self, repository: SQLRepository | None = None) -> None:
        self.repository = repository or SQLRepository()
        self._handlers: Dict[str, Callable[[Any], None]] = {
            SUBSCRIPTION_CREATED: self._subscription_created,
            SUBSCRIPTION_UPDATED: self._subscription_updated,
            SUBSCRIPTION_DELETED: self._subscription_deleted,
            PAYMENT_SUCCEEDED: self._payment_succeeded,
            PAYMENT_FAILED: self._payment_failed,
        }

    @property
    def event_types(self) -> tuple:
        return tuple(self._handlers)

    def handle(self, event: Any) -> bool:
        """Dispatch ``event``; returns False when its type is not handled."""
        event_type = value_of(event, "type", "")
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info("ignoring unhandled event type %s", event_type or "<missing>")
            return False
        data_object = nested_value(event, "data", "object")
        if data_object is None:
            raise ValueError(f"event {value_of(event, 'id')} has no data.object")
        handler(data_object)
        return True

    # -------------------------------------- subscription events --------------------------------------
    def _owner_is_tagged(self, subscription: Any) -> bool:
        if nested_value(subscription, "metadata", "user_id"):
            return True
        logger.error("subscription %s has no user_id in metadata", value_of(subscription, "id"))
        return False

    def _apply(self, subscription: Any, **values) -> None:
        external_id = value_of(subscription, "id")
        updated = self.repository.update_subscription_by_external_id(external_id, **values)
        if updated is None:
            # may arrive before the creating request committed; failing makes the provider retry
            raise NotFoundError(f"Subscription {external_id} not found")
        logger.info("subscription %s reconciled: %s", external_id, sorted(values))

    def _subscription_created(self, subscription: Any) -> None:
        if not self._owner_is_tagged(subscription):
            return
        self._apply(
            subscription,
            status=value_of(subscription, "status"),
            current_period_end=provider_period_end(subscription),
        )

    def _subscription_updated(self, subscription: Any) -> None:
        if not self._owner_is_tagged(subscription):
            return
        self._apply(
            subscription,
            status=value_of(subscription, "status"),
            current_period_end=provider_period_end(subscription),
            cancel_at_period_end=bool(value_of(subscription, "cancel_at_period_end", False)),
        )

    def _subscription_deleted(self, subscription: Any) -> None:
        if not self._owner_is_tagged(subscription):
            return
        self._apply(subscription, status=STATUS_CANCELED, cancel_at_period_end=True)

    # -------------------------------------- invoice events --------------------------------------
    def _set_status_from_invoice(self, invoice: Any, status: str) -> None:
        external_id = invoice_subscription_id(invoice)
        if not external_id:
            return
        if self.repository.get_subscription_by_external_id(external_id) is None:
            logger.info("invoice for unknown subscription %s ignored", external_id)
            return
        self.repository.update_subscription_by_external_id(external_id, status=status)
        logger.info("subscription %s marked %s from invoice", external_id, status)

    def _payment_succeeded(self, invoice: Any) -> None:
        self._set_status_from_invoice(invoice, STATUS_ACTIVE)

    def _payment_failed(self, invoice: Any) -> None:
        self._set_status_from_invoice(invoice, STATUS_PAST_DUE)

"""Subscription endpoints and the provider webhook receiver."""
from __future__ import annotations

import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from accounts_api.domain.policy import Actor
from accounts_api.routers.deps import billing_events, subscription_service
from accounts_api.services.billing_events import BillingEventHandler
from accounts_api.services.payment_gateway import value_of
from accounts_api.services.session_service import current_actor
from accounts_api.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payment", tags=["payment"])


class CreateSubscriptionIn(BaseModel):
    price_id: str


@router.post("/subscription", status_code=status.HTTP_201_CREATED)
def create_subscription(
    payload: CreateSubscriptionIn,
    actor: Actor = Depends(current_actor),
    service: SubscriptionService = Depends(subscription_service),
):
    return service.create_subscription(actor.id, payload.price_id)


@router.post("/subscription/test", status_code=status.HTTP_201_CREATED)
def create_subscription_with_test_payment(
    payload: CreateSubscriptionIn,
    actor: Actor = Depends(current_actor),
    service: SubscriptionService = Depends(subscription_service),
):
    return service.create_subscription_with_test_payment(actor.id, payload.price_id)


@router.get("/subscription")
def get_subscription(actor: Actor = Depends(current_actor), service: SubscriptionService = Depends(subscription_service)):
    return service.get_subscription(actor.id)


@router.get("/subscription/status")
def get_subscription_status(
    actor: Actor = Depends(current_actor),
    service: SubscriptionService = Depends(subscription_service),
):
    return service.get_subscription_status(actor.id)


@router.delete("/subscription")
def cancel_subscription(actor: Actor = Depends(current_actor), service: SubscriptionService = Depends(subscription_service)):
    return service.cancel_subscription(actor.id)


@router.post("/webhook")
async def webhook(request: Request, handler: BillingEventHandler = Depends(billing_events)):
    """Signed provider callbacks. No session token; the signature is the authentication."""
    gateway = request.app.state.payment_gateway
    if not gateway.webhook_secret:
        raise HTTPException(status_code=500, detail="Webhook secret not configured")
    signature = request.headers.get("stripe-signature")
    if not signature:
        raise HTTPException(status_code=400, detail="Missing Stripe-Signature header")
    payload = await request.body()
    if not payload:
        raise HTTPException(status_code=400, detail="Raw body not available")
    try:
        event = gateway.construct_event(payload, signature)
    except stripe.SignatureVerificationError:
        logger.warning("webhook rejected: invalid signature")
        raise HTTPException(status_code=400, detail="Invalid signature")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")

    try:
        await run_in_threadpool(handler.handle, event)
    except Exception:
        # non-2xx makes the provider redeliver the event
        logger.exception("webhook handler failed for event %s", value_of(event, "id"))
        raise HTTPException(status_code=500, detail="Webhook handler failed")
    return {"received": True}

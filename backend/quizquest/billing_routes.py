"""Checkout, billing portal, subscription status and Stripe webhook endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from .billing import BillingClient, plan_for_subscription
from .billing_webhooks import construct_event, handle_event
from .config import Settings, get_settings
from .dependencies import Clock, current_learner, get_billing_client, get_clock, get_store
from .learner import Learner
from .record_store import LearnerRecordStore

router = APIRouter(prefix="/api/billing", tags=["billing"])
logger = logging.getLogger(__name__)


class CheckoutRequest(BaseModel):
    plan: Literal["professional", "premium"]
    email: str = Field(..., min_length=3, max_length=256, pattern=r"^[^@\s]+@[^@\s]+$")


class CheckoutResponse(BaseModel):
    session_id: str
    url: Optional[str] = None


class PortalResponse(BaseModel):
    url: str


class SubscriptionStatusResponse(BaseModel):
    plan: str
    trial_end_date: Optional[str] = None
    has_subscription: bool
    subscription_id: Optional[str] = None
    subscription_plan: Optional[str] = None
    status: Optional[str] = None


class WebhookResponse(BaseModel):
    received: bool = True
    handled: bool
    event_type: str


def _price_for(settings: Settings, plan: str) -> str:
    if plan == "premium":
        return settings.stripe_premium_price_id
    return settings.stripe_professional_price_id


@router.post("/checkout", response_model=CheckoutResponse)
def create_checkout(
    payload: CheckoutRequest,
    learner: Learner = Depends(current_learner),
    store: LearnerRecordStore = Depends(get_store),
    billing: BillingClient = Depends(get_billing_client),
    settings: Settings = Depends(get_settings),
) -> CheckoutResponse:
    base_url = settings.public_app_url.rstrip("/")
    checkout = billing.create_checkout_session(
        learner,
        email=payload.email,
        price_id=_price_for(settings, payload.plan),
        success_url=f"{base_url}/dashboard?success=true",
        cancel_url=f"{base_url}/pricing?canceled=true",
        store=store,
    )
    return CheckoutResponse(session_id=checkout.session_id, url=checkout.url)


@router.post("/portal", response_model=PortalResponse)
def create_portal(
    learner: Learner = Depends(current_learner),
    billing: BillingClient = Depends(get_billing_client),
    settings: Settings = Depends(get_settings),
) -> PortalResponse:
    if not learner.stripe_customer_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No billing account on file.")
    url = billing.create_portal_session(
        learner.stripe_customer_id,
        return_url=f"{settings.public_app_url.rstrip('/')}/dashboard",
    )
    return PortalResponse(url=url)


@router.get("/status", response_model=SubscriptionStatusResponse)
def subscription_status(
    learner: Learner = Depends(current_learner),
    billing: BillingClient = Depends(get_billing_client),
    settings: Settings = Depends(get_settings),
) -> SubscriptionStatusResponse:
    response = SubscriptionStatusResponse(
        plan=learner.subscription_plan,
        trial_end_date=learner.trial_end_date.isoformat() if learner.trial_end_date else None,
        has_subscription=False,
    )
    if not learner.stripe_customer_id:
        return response
    subscriptions = billing.list_active_subscriptions(learner.stripe_customer_id)
    if not subscriptions:
        return response
    subscription = subscriptions[0]
    return response.model_copy(
        update={
            "has_subscription": True,
            "subscription_id": subscription.get("id"),
            "subscription_plan": plan_for_subscription(settings, subscription),
            "status": subscription.get("status"),
        }
    )


@router.post("/webhook", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None),
    store: LearnerRecordStore = Depends(get_store),
    billing: BillingClient = Depends(get_billing_client),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> WebhookResponse:
    payload = await request.body()
    event: Dict[str, Any] = construct_event(payload, stripe_signature, settings.stripe_webhook_secret)
    result = await run_in_threadpool(
        handle_event, event, store=store, billing=billing, settings=settings, now=clock()
    )
    return WebhookResponse(handled=result.handled, event_type=result.event_type)


__all__ = ["router"]

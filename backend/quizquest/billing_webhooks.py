"""Verification and handling of Stripe subscription webhooks.

Webhooks are the only path that moves a learner between plans. Each handled
event rewrites the plan fields through ``apply_plan_change``, which also
zeroes the daily counters; the quiz session then picks the change up via
subscription sync.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .billing import BillingClient, plan_for_subscription
from .config import Settings
from .errors import WebhookSignatureError
from .record_store import LearnerRecordStore
from .telemetry import emit_event

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300
ACTIVE_STATUSES = frozenset({"active", "trialing"})


@dataclass(frozen=True)
class WebhookResult:
    event_type: str
    handled: bool
    learner_id: Optional[str] = None
    plan: Optional[str] = None


def _parse_signature_header(header: str) -> Tuple[Optional[int], List[str]]:
    timestamp: Optional[int] = None
    signatures: List[str] = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None, []
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


def verify_signature(
    payload: bytes,
    header: Optional[str],
    secret: Optional[str],
    *,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> None:
    """Check a ``Stripe-Signature`` header against the raw request body."""
    if not secret:
        raise WebhookSignatureError("Webhook secret is not configured.")
    if not header:
        raise WebhookSignatureError("Missing Stripe-Signature header.")
    timestamp, signatures = _parse_signature_header(header)
    if timestamp is None or not signatures:
        raise WebhookSignatureError("Malformed Stripe-Signature header.")

    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    expected = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        raise WebhookSignatureError("No signature matches the payload.")

    current = time.time() if now is None else now
    if tolerance > 0 and abs(current - timestamp) > tolerance:
        raise WebhookSignatureError("Signature timestamp is outside the tolerance window.")


def construct_event(
    payload: bytes,
    header: Optional[str],
    secret: Optional[str],
    *,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> Dict[str, Any]:
    verify_signature(payload, header, secret, tolerance=tolerance, now=now)
    try:
        event = json.loads(payload)
    except ValueError as exc:
        raise WebhookSignatureError("Webhook payload is not valid JSON.") from exc
    if not isinstance(event, dict) or not isinstance(event.get("type"), str):
        raise WebhookSignatureError("Webhook payload is not a Stripe event.")
    return event


def _event_object(event: Mapping[str, Any]) -> Mapping[str, Any]:
    data = event.get("data") or {}
    obj = data.get("object") if isinstance(data, Mapping) else None
    return obj if isinstance(obj, Mapping) else {}


def _apply(
    store: LearnerRecordStore,
    event_type: str,
    learner_id: str,
    plan: str,
    trial_end_date: Optional[datetime],
    now: datetime,
) -> WebhookResult:
    store.apply_plan_change(learner_id, plan, trial_end_date, now.date())
    logger.info("Applied plan=%s to learner=%s from %s", plan, learner_id, event_type)
    emit_event(
        "billing_plan_applied",
        learner_id=learner_id,
        plan=plan,
        trial_end_date=trial_end_date,
        source_event=event_type,
    )
    return WebhookResult(event_type=event_type, handled=True, learner_id=learner_id, plan=plan)


def _checkout_completed(
    event_type: str,
    obj: Mapping[str, Any],
    store: LearnerRecordStore,
    billing: BillingClient,
    settings: Settings,
    now: datetime,
) -> WebhookResult:
    learner_id = (obj.get("metadata") or {}).get("user_id")
    subscription_id = obj.get("subscription")
    if not learner_id or not subscription_id:
        logger.error("Checkout session %s is missing user metadata or subscription", obj.get("id"))
        return WebhookResult(event_type=event_type, handled=False)

    subscription = billing.retrieve_subscription(str(subscription_id))
    plan = plan_for_subscription(settings, subscription)
    if plan is None:
        logger.error("Could not determine plan for subscription %s", subscription_id)
        return WebhookResult(event_type=event_type, handled=False, learner_id=learner_id)
    return _apply(store, event_type, learner_id, plan, None, now)


def _subscription_updated(
    event_type: str,
    obj: Mapping[str, Any],
    store: LearnerRecordStore,
    settings: Settings,
    now: datetime,
) -> WebhookResult:
    learner = store.find_by_stripe_customer(str(obj.get("customer") or ""))
    if learner is None:
        logger.warning("No learner for Stripe customer %s", obj.get("customer"))
        return WebhookResult(event_type=event_type, handled=False)

    status = obj.get("status")
    if status in ACTIVE_STATUSES:
        plan = plan_for_subscription(settings, obj)
        if plan is None:
            return WebhookResult(event_type=event_type, handled=False, learner_id=learner.id)
        return _apply(store, event_type, learner.id, plan, None, now)
    if status == "canceled" or obj.get("cancel_at_period_end"):
        return _apply(store, event_type, learner.id, "free_trial", now, now)

    logger.info("Ignoring subscription status=%s for learner=%s", status, learner.id)
    return WebhookResult(event_type=event_type, handled=False, learner_id=learner.id)


def _subscription_deleted(
    event_type: str,
    obj: Mapping[str, Any],
    store: LearnerRecordStore,
    settings: Settings,
    now: datetime,
) -> WebhookResult:
    learner = store.find_by_stripe_customer(str(obj.get("customer") or ""))
    if learner is None:
        logger.warning("No learner for Stripe customer %s", obj.get("customer"))
        return WebhookResult(event_type=event_type, handled=False)
    trial_end = now + timedelta(days=settings.trial_days)
    return _apply(store, event_type, learner.id, "free_trial", trial_end, now)


def _payment_failed(event_type: str, obj: Mapping[str, Any], store: LearnerRecordStore) -> WebhookResult:
    customer_id = str(obj.get("customer") or "")
    learner = store.find_by_stripe_customer(customer_id) if customer_id else None
    learner_id = learner.id if learner else None
    logger.warning("Payment failed for customer=%s learner=%s", customer_id, learner_id)
    emit_event(
        "billing_payment_failed",
        learner_id=learner_id,
        customer_id=customer_id,
        invoice_id=obj.get("id"),
    )
    return WebhookResult(event_type=event_type, handled=True, learner_id=learner_id)


def handle_event(
    event: Mapping[str, Any],
    *,
    store: LearnerRecordStore,
    billing: BillingClient,
    settings: Settings,
    now: Optional[datetime] = None,
) -> WebhookResult:
    event_type = str(event.get("type") or "")
    obj = _event_object(event)
    current = now or datetime.now(timezone.utc)
    logger.info("Processing Stripe event %s (%s)", event.get("id"), event_type)

    if event_type == "checkout.session.completed":
        return _checkout_completed(event_type, obj, store, billing, settings, current)
    if event_type == "customer.subscription.updated":
        return _subscription_updated(event_type, obj, store, settings, current)
    if event_type == "customer.subscription.deleted":
        return _subscription_deleted(event_type, obj, store, settings, current)
    if event_type == "invoice.payment_failed":
        return _payment_failed(event_type, obj, store)

    logger.debug("Unhandled Stripe event type: %s", event_type)
    return WebhookResult(event_type=event_type, handled=False)


__all__ = [
    "WebhookResult",
    "construct_event",
    "handle_event",
    "verify_signature",
]

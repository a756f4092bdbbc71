"""Stripe REST client for hosted checkout, the billing portal and subscriptions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import httpx

from .config import Settings
from .errors import BillingError
from .learner import Learner
from .record_store import LearnerRecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: Optional[str]


def plan_for_price(settings: Settings, price_id: Optional[str], nickname: Optional[str] = None) -> Optional[str]:
    """Map a Stripe price onto a plan name, falling back to the price nickname."""
    if price_id:
        plan = settings.price_to_plan().get(price_id)
        if plan:
            return plan
        logger.warning("Unknown Stripe price id: %s", price_id)
    lowered = (nickname or "").lower()
    if "professional" in lowered:
        return "professional"
    if "premium" in lowered:
        return "premium"
    return None


def plan_for_subscription(settings: Settings, subscription: Mapping[str, Any]) -> Optional[str]:
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        logger.error("Subscription %s has no items", subscription.get("id"))
        return None
    price = items[0].get("price") or {}
    return plan_for_price(settings, price.get("id"), price.get("nickname"))


class BillingClient:
    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None) -> None:
        self._settings = settings
        self._client = client

    def _request(
        self,
        method: str,
        path: str,
        *,
        data: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        secret = self._settings.stripe_secret_key
        if not secret:
            raise BillingError("Stripe configuration missing.")
        url = f"{self._settings.stripe_api_base.rstrip('/')}/{path.lstrip('/')}"
        timeout_seconds = max(self._settings.stripe_timeout_ms, 1000) / 1000
        local_client = self._client or httpx.Client(timeout=timeout_seconds)
        close_client = self._client is None
        try:
            response = local_client.request(
                method,
                url,
                data=data,
                params=params,
                headers={"Authorization": f"Bearer {secret}"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("Stripe %s %s failed: %s %s", method, path, exc.response.status_code, exc.response.text)
            raise BillingError(f"Stripe request failed with status {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise BillingError(f"Stripe request failed: {exc}") from exc
        finally:
            if close_client:
                local_client.close()

        try:
            payload = response.json()
        except ValueError as exc:
            raise BillingError("Stripe returned a non-JSON response") from exc
        if not isinstance(payload, dict):
            raise BillingError("Stripe returned an unexpected payload")
        return payload

    def create_customer(self, learner_id: str, email: str) -> str:
        payload = self._request(
            "POST",
            "customers",
            data={"email": email, "metadata[user_id]": learner_id},
        )
        customer_id = payload.get("id")
        if not isinstance(customer_id, str):
            raise BillingError("Stripe customer response did not include an id")
        return customer_id

    def create_checkout_session(
        self,
        learner: Learner,
        *,
        email: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        store: LearnerRecordStore,
    ) -> CheckoutSession:
        customer_id = learner.stripe_customer_id
        if not customer_id:
            customer_id = self.create_customer(learner.id, email)
            store.set_stripe_customer_id(learner.id, customer_id)

        payload = self._request(
            "POST",
            "checkout/sessions",
            data={
                "customer": customer_id,
                "payment_method_types[]": "card",
                "mode": "subscription",
                "line_items[0][price]": price_id,
                "line_items[0][quantity]": "1",
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata[user_id]": learner.id,
                "metadata[plan]": plan_for_price(self._settings, price_id) or "unknown",
            },
        )
        session_id = payload.get("id")
        if not isinstance(session_id, str):
            raise BillingError("No session id returned from checkout creation")
        logger.info("Created checkout session %s for learner=%s", session_id, learner.id)
        return CheckoutSession(session_id=session_id, url=payload.get("url"))

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        payload = self._request(
            "POST",
            "billing_portal/sessions",
            data={"customer": customer_id, "return_url": return_url},
        )
        url = payload.get("url")
        if not isinstance(url, str):
            raise BillingError("Stripe portal response did not include a url")
        return url

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return self._request("GET", f"subscriptions/{subscription_id}")

    def list_active_subscriptions(self, customer_id: str) -> List[Dict[str, Any]]:
        payload = self._request(
            "GET",
            "subscriptions",
            params={"customer": customer_id, "status": "active"},
        )
        data = payload.get("data") or []
        return [item for item in data if isinstance(item, dict)]


__all__ = [
    "BillingClient",
    "CheckoutSession",
    "plan_for_price",
    "plan_for_subscription",
]

"""Subscription plan limits and the daily usage gate."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, NamedTuple, Optional

from pydantic import BaseModel

from .learner import Learner

logger = logging.getLogger(__name__)


class SubscriptionPlan(str, Enum):
    FREE_TRIAL = "free_trial"
    PROFESSIONAL = "professional"
    PREMIUM = "premium"


class GatedAction(str, Enum):
    QUESTION = "question"
    CHAT = "chat"


class GateReason(str, Enum):
    OK = "ok"
    LIMIT_REACHED = "limit_reached"
    TRIAL_EXPIRED = "trial_expired"


class PlanLimits(NamedTuple):
    questions: float
    chat: float

    def for_action(self, action: GatedAction) -> float:
        if action is GatedAction.QUESTION:
            return self.questions
        return self.chat


FREE_TRIAL_LIMITS = PlanLimits(questions=50, chat=10)
PROFESSIONAL_LIMITS = PlanLimits(questions=500, chat=100)
PREMIUM_LIMITS = PlanLimits(questions=math.inf, chat=math.inf)


class EntitlementDecision(BaseModel):
    action: GatedAction
    allowed: bool
    reason: GateReason
    plan: SubscriptionPlan
    used: int
    limit: Optional[int] = None  # None means unlimited
    remaining: Optional[int] = None


def resolve_plan(value: object) -> SubscriptionPlan:
    """Map a stored plan value onto a known plan; anything else is a free trial."""
    if isinstance(value, SubscriptionPlan):
        return value
    if isinstance(value, str):
        try:
            return SubscriptionPlan(value.strip().lower())
        except ValueError:
            pass
    logger.debug("Unknown subscription plan %r; applying free trial limits", value)
    return SubscriptionPlan.FREE_TRIAL


def limits_for(plan: SubscriptionPlan) -> PlanLimits:
    if plan is SubscriptionPlan.PREMIUM:
        return PREMIUM_LIMITS
    if plan is SubscriptionPlan.PROFESSIONAL:
        return PROFESSIONAL_LIMITS
    if plan is SubscriptionPlan.FREE_TRIAL:
        return FREE_TRIAL_LIMITS
    raise AssertionError(f"Unhandled subscription plan: {plan!r}")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_trial_expired(learner: Learner, now: Optional[datetime] = None) -> bool:
    if resolve_plan(learner.subscription_plan) is not SubscriptionPlan.FREE_TRIAL:
        return False
    if learner.trial_end_date is None:
        return False
    current = _as_utc(now or datetime.now(timezone.utc))
    return current > _as_utc(learner.trial_end_date)


def _usage(learner: Learner, action: GatedAction) -> int:
    if action is GatedAction.QUESTION:
        return learner.daily_questions_used
    return learner.daily_chat_messages_used


def check(action: GatedAction, learner: Learner, now: Optional[datetime] = None) -> EntitlementDecision:
    action = GatedAction(action)
    plan = resolve_plan(learner.subscription_plan)
    limit = limits_for(plan).for_action(action)
    used = _usage(learner, action)
    finite_limit = None if math.isinf(limit) else int(limit)
    remaining = None if finite_limit is None else max(finite_limit - used, 0)

    if is_trial_expired(learner, now):
        return EntitlementDecision(
            action=action,
            allowed=False,
            reason=GateReason.TRIAL_EXPIRED,
            plan=plan,
            used=used,
            limit=finite_limit,
            remaining=0,
        )
    allowed = used < limit
    return EntitlementDecision(
        action=action,
        allowed=allowed,
        reason=GateReason.OK if allowed else GateReason.LIMIT_REACHED,
        plan=plan,
        used=used,
        limit=finite_limit,
        remaining=remaining,
    )


def can_perform(action: GatedAction, learner: Learner, now: Optional[datetime] = None) -> bool:
    return check(action, learner, now).allowed


def usage_summary(learner: Learner, now: Optional[datetime] = None) -> Dict[str, EntitlementDecision]:
    return {action.value: check(action, learner, now) for action in GatedAction}


__all__ = [
    "EntitlementDecision",
    "FREE_TRIAL_LIMITS",
    "GateReason",
    "GatedAction",
    "PREMIUM_LIMITS",
    "PROFESSIONAL_LIMITS",
    "PlanLimits",
    "SubscriptionPlan",
    "can_perform",
    "check",
    "is_trial_expired",
    "limits_for",
    "resolve_plan",
    "usage_summary",
]

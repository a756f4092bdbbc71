"""Reconciling the locally held plan with the billing-driven learner record."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import TransientStoreError
from .learner import Learner
from .quiz_session import LearnerContext
from .telemetry import emit_event

logger = logging.getLogger(__name__)

# Only these fields are copied from the store; session-derived stats stay local.
PLAN_FIELDS = ("subscription_plan", "trial_end_date")


@dataclass(frozen=True)
class SyncResult:
    learner: Learner
    changed: bool = False
    skipped: bool = False
    previous_plan: Optional[str] = None


def reconcile(context: LearnerContext) -> SyncResult:
    local = context.learner
    try:
        remote = context.store.get_learner(local.id)
    except TransientStoreError as exc:
        logger.warning("Subscription sync skipped for learner=%s: %s", local.id, exc)
        return SyncResult(learner=local, skipped=True)

    if remote is None:
        logger.debug("Subscription sync found no stored record for learner=%s", local.id)
        return SyncResult(learner=local)

    updates = {
        name: getattr(remote, name)
        for name in PLAN_FIELDS
        if getattr(remote, name) != getattr(local, name)
    }
    if not updates:
        return SyncResult(learner=local)

    updated = local.model_copy(update=updates)
    context.learner = updated
    logger.info(
        "Subscription plan for learner=%s reconciled: %s -> %s",
        local.id,
        local.subscription_plan,
        updated.subscription_plan,
    )
    emit_event(
        "subscription_plan_changed",
        learner_id=local.id,
        previous_plan=local.subscription_plan,
        plan=updated.subscription_plan,
        trial_end_date=updated.trial_end_date,
    )
    return SyncResult(learner=updated, changed=True, previous_plan=local.subscription_plan)


__all__ = ["PLAN_FIELDS", "SyncResult", "reconcile"]

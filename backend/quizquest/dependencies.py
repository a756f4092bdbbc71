"""Shared FastAPI dependencies and learner loading helpers."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Callable, Optional

from fastapi import Depends

from .billing import BillingClient
from .config import Settings, get_settings
from .errors import LearnerNotFound
from .identity import require_identity
from .learner import Learner
from .question_bank import QuestionBank, load_question_bank
from .quiz_session import SessionRegistry
from .record_store import LearnerRecordStore, learner_store

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_session_registry: Optional[SessionRegistry] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_store() -> LearnerRecordStore:
    return learner_store


def get_question_bank() -> QuestionBank:
    return load_question_bank()


def get_clock() -> Clock:
    return _utcnow


def get_session_registry() -> SessionRegistry:
    global _session_registry
    if _session_registry is None:
        _session_registry = SessionRegistry(session_length=get_settings().session_length)
    return _session_registry


def get_billing_client(settings: Settings = Depends(get_settings)) -> BillingClient:
    return BillingClient(settings)


def roll_over_daily_usage(store: LearnerRecordStore, learner: Learner, today: date) -> Learner:
    """Zero the daily counters once per calendar day (UTC)."""
    if learner.last_reset_date == today:
        return learner
    stored = store.reset_daily_usage(learner.id, today)
    logger.debug("Daily usage rolled over for learner=%s", learner.id)
    return learner.model_copy(
        update={
            "daily_questions_used": stored.daily_questions_used,
            "daily_chat_messages_used": stored.daily_chat_messages_used,
            "last_reset_date": stored.last_reset_date,
        }
    )


def load_learner(learner_id: str, store: LearnerRecordStore, now: datetime) -> Learner:
    learner = store.get_learner(learner_id)
    if learner is None:
        raise LearnerNotFound(learner_id)
    return roll_over_daily_usage(store, learner, now.date())


def current_learner(
    learner_id: str = Depends(require_identity),
    store: LearnerRecordStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> Learner:
    return load_learner(learner_id, store, clock())


__all__ = [
    "Clock",
    "current_learner",
    "get_billing_client",
    "get_clock",
    "get_question_bank",
    "get_session_registry",
    "get_store",
    "load_learner",
    "roll_over_daily_usage",
]

"""Daily chat message allowance for the coaching chat."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from .dependencies import Clock, current_learner, get_clock, get_store
from .entitlements import EntitlementDecision, GatedAction, check
from .learner import Learner
from .record_store import LearnerRecordStore
from .telemetry import emit_event

router = APIRouter(prefix="/api/chat", tags=["chat"])
logger = logging.getLogger(__name__)


class ChatUsageResponse(BaseModel):
    recorded: bool
    entitlement: EntitlementDecision


@router.get("/usage", response_model=EntitlementDecision)
def get_chat_usage(
    learner: Learner = Depends(current_learner),
    clock: Clock = Depends(get_clock),
) -> EntitlementDecision:
    return check(GatedAction.CHAT, learner, clock())


@router.post("/usage", response_model=ChatUsageResponse)
def record_chat_message(
    learner: Learner = Depends(current_learner),
    store: LearnerRecordStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> ChatUsageResponse:
    now = clock()
    decision = check(GatedAction.CHAT, learner, now)
    if not decision.allowed:
        logger.info("Chat message blocked for learner=%s reason=%s", learner.id, decision.reason.value)
        emit_event("chat_message_blocked", learner_id=learner.id, reason=decision.reason)
        return ChatUsageResponse(recorded=False, entitlement=decision)
    updated = store.increment_usage(learner.id, GatedAction.CHAT.value)
    return ChatUsageResponse(recorded=True, entitlement=check(GatedAction.CHAT, updated, now))


__all__ = ["router"]

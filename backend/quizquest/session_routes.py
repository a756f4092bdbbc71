"""REST endpoints driving the quiz session state machine."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from .dependencies import (
    Clock,
    get_clock,
    get_question_bank,
    get_session_registry,
    get_store,
    load_learner,
    roll_over_daily_usage,
)
from .entitlements import EntitlementDecision
from .errors import TransientStoreError
from .identity import require_identity
from .progress import ProgressSummary, summarize
from .question_bank import QuestionBank
from .quiz_session import AnswerStatus, LearnerContext, QuizSession, SessionRegistry, SessionSnapshot
from .record_store import LearnerRecordStore
from .subscription_sync import reconcile

router = APIRouter(prefix="/api/session", tags=["session"])
subscription_router = APIRouter(prefix="/api/subscription", tags=["subscription"])
logger = logging.getLogger(__name__)


class AnswerRequest(BaseModel):
    answer: str = Field(..., min_length=1)


class SessionResponse(BaseModel):
    session: SessionSnapshot
    progress: ProgressSummary


class AnswerResponse(BaseModel):
    status: AnswerStatus
    is_correct: bool = False
    xp_gained: int = 0
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    persisted: bool = False
    entitlement: Optional[EntitlementDecision] = None
    session: SessionSnapshot
    progress: ProgressSummary


class AdvanceResponse(BaseModel):
    session_completed: bool
    pool_reset: bool
    session: SessionSnapshot
    progress: ProgressSummary


class SubscriptionSyncResponse(BaseModel):
    changed: bool
    skipped: bool
    plan: str
    previous_plan: Optional[str] = None


def _require_session(registry: SessionRegistry, learner_id: str) -> QuizSession:
    session = registry.get(learner_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active quiz session.")
    return session


@router.post("/start", response_model=SessionResponse)
def start_session(
    learner_id: str = Depends(require_identity),
    store: LearnerRecordStore = Depends(get_store),
    bank: QuestionBank = Depends(get_question_bank),
    registry: SessionRegistry = Depends(get_session_registry),
    clock: Clock = Depends(get_clock),
) -> SessionResponse:
    learner = load_learner(learner_id, store, clock())
    session = registry.start(LearnerContext(learner=learner, store=store, clock=clock), bank)
    if session.pool_exhausted:
        logger.warning(
            "No questions available for learner=%s skill=%s age=%s",
            learner.id,
            learner.skill_level.value,
            learner.age,
        )
    return SessionResponse(session=session.snapshot(), progress=summarize(session.learner))


@router.get("", response_model=SessionResponse)
def get_session(
    learner_id: str = Depends(require_identity),
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionResponse:
    session = _require_session(registry, learner_id)
    return SessionResponse(session=session.snapshot(), progress=summarize(session.learner))


@router.post("/answer", response_model=AnswerResponse)
def submit_answer(
    payload: AnswerRequest,
    learner_id: str = Depends(require_identity),
    registry: SessionRegistry = Depends(get_session_registry),
) -> AnswerResponse:
    session = _require_session(registry, learner_id)
    context = session.context
    try:
        context.learner = roll_over_daily_usage(context.store, context.learner, context.now().date())
    except TransientStoreError as exc:
        logger.warning("Daily usage rollover skipped for learner=%s: %s", learner_id, exc)

    outcome = session.submit_answer(payload.answer)
    if outcome.status in (AnswerStatus.NOT_AWAITING_ANSWER, AnswerStatus.NO_QUESTION):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=outcome.status.value)
    return AnswerResponse(
        status=outcome.status,
        is_correct=outcome.is_correct,
        xp_gained=outcome.xp_gained,
        correct_answer=outcome.correct_answer,
        explanation=outcome.explanation,
        persisted=outcome.persisted,
        entitlement=outcome.entitlement,
        session=session.snapshot(),
        progress=summarize(session.learner),
    )


@router.post("/next", response_model=AdvanceResponse)
def next_question(
    learner_id: str = Depends(require_identity),
    registry: SessionRegistry = Depends(get_session_registry),
) -> AdvanceResponse:
    session = _require_session(registry, learner_id)
    outcome = session.advance()
    if not outcome.advanced:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Answer the current question first.")
    return AdvanceResponse(
        session_completed=outcome.session_completed,
        pool_reset=outcome.pool_reset,
        session=session.snapshot(),
        progress=summarize(session.learner),
    )


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def end_session(
    learner_id: str = Depends(require_identity),
    registry: SessionRegistry = Depends(get_session_registry),
) -> Response:
    registry.discard(learner_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@subscription_router.post("/sync", response_model=SubscriptionSyncResponse)
def sync_subscription(
    learner_id: str = Depends(require_identity),
    store: LearnerRecordStore = Depends(get_store),
    registry: SessionRegistry = Depends(get_session_registry),
    clock: Clock = Depends(get_clock),
) -> SubscriptionSyncResponse:
    session = registry.get(learner_id)
    if session is not None:
        context = session.context
    else:
        context = LearnerContext(learner=load_learner(learner_id, store, clock()), store=store, clock=clock)
    result = reconcile(context)
    return SubscriptionSyncResponse(
        changed=result.changed,
        skipped=result.skipped,
        plan=result.learner.subscription_plan,
        previous_plan=result.previous_plan,
    )


__all__ = ["router", "subscription_router"]

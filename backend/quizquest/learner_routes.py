"""Learner onboarding, profile and progress endpoints."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from .dependencies import Clock, current_learner, get_clock, get_store
from .entitlements import EntitlementDecision, usage_summary
from .identity import require_identity
from .learner import AnswerAttempt, Learner, SkillLevel
from .progress import ProgressSummary, summarize
from .record_store import LearnerRecordStore
from .telemetry import emit_event

router = APIRouter(prefix="/api/learners", tags=["learners"])
logger = logging.getLogger(__name__)


class OnboardingRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    age: int = Field(..., ge=1, le=120)
    skill_level: SkillLevel = SkillLevel.STARTER


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    age: Optional[int] = Field(default=None, ge=1, le=120)
    skill_level: Optional[SkillLevel] = None


class LearnerResponse(BaseModel):
    learner: Learner
    progress: ProgressSummary
    entitlements: Dict[str, EntitlementDecision]


def _learner_response(learner: Learner, now: datetime) -> LearnerResponse:
    return LearnerResponse(
        learner=learner,
        progress=summarize(learner),
        entitlements=usage_summary(learner, now),
    )


@router.post("", response_model=LearnerResponse, status_code=status.HTTP_201_CREATED)
def onboard_learner(
    payload: OnboardingRequest,
    learner_id: str = Depends(require_identity),
    store: LearnerRecordStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> LearnerResponse:
    now = clock()
    if store.get_learner(learner_id) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Learner already onboarded.")
    try:
        learner = store.create_learner(
            learner_id,
            name=payload.name,
            age=payload.age,
            skill_level=payload.skill_level,
            now=now,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    logger.info("Onboarded learner=%s skill=%s", learner.id, learner.skill_level.value)
    emit_event("learner_onboarded", learner_id=learner.id, skill_level=learner.skill_level, age=learner.age)
    return _learner_response(learner, now)


@router.get("/me", response_model=LearnerResponse)
def get_me(
    learner: Learner = Depends(current_learner),
    clock: Clock = Depends(get_clock),
) -> LearnerResponse:
    return _learner_response(learner, clock())


@router.patch("/me", response_model=LearnerResponse)
def update_me(
    payload: ProfileUpdateRequest,
    learner: Learner = Depends(current_learner),
    store: LearnerRecordStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> LearnerResponse:
    fields = payload.model_dump(exclude_none=True)
    if not fields:
        return _learner_response(learner, clock())
    updated = store.update_learner(learner.id, fields)
    return _learner_response(updated, clock())


@router.get("/me/progress", response_model=ProgressSummary)
def get_progress(learner: Learner = Depends(current_learner)) -> ProgressSummary:
    return summarize(learner)


@router.get("/me/entitlements", response_model=Dict[str, EntitlementDecision])
def get_entitlements(
    learner: Learner = Depends(current_learner),
    clock: Clock = Depends(get_clock),
) -> Dict[str, EntitlementDecision]:
    return usage_summary(learner, clock())


@router.get("/me/attempts", response_model=List[AnswerAttempt])
def get_attempts(
    limit: int = Query(default=20, ge=1, le=100),
    learner: Learner = Depends(current_learner),
    store: LearnerRecordStore = Depends(get_store),
) -> List[AnswerAttempt]:
    return store.recent_attempts(learner.id, limit=limit)


__all__ = ["router"]

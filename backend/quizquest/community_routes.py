"""Leaderboard and contact form endpoints."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from .dependencies import get_store
from .learner import LeaderboardEntry
from .record_store import LearnerRecordStore

router = APIRouter(prefix="/api", tags=["community"])
logger = logging.getLogger(__name__)


class ContactRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    email: str = Field(..., min_length=3, max_length=256, pattern=r"^[^@\s]+@[^@\s]+$")
    subject: str = Field(..., min_length=1, max_length=256)
    message: str = Field(..., min_length=1, max_length=5000)


class ContactResponse(BaseModel):
    id: str


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
def leaderboard(
    limit: int = Query(default=20, ge=1, le=100),
    store: LearnerRecordStore = Depends(get_store),
) -> List[LeaderboardEntry]:
    return store.list_top_learners(limit)


@router.post("/contact", response_model=ContactResponse, status_code=status.HTTP_201_CREATED)
def submit_contact(
    payload: ContactRequest,
    store: LearnerRecordStore = Depends(get_store),
) -> ContactResponse:
    submission_id = store.add_contact_submission(
        name=payload.name,
        email=payload.email,
        subject=payload.subject,
        message=payload.message,
    )
    logger.info("Stored contact submission %s", submission_id)
    return ContactResponse(id=submission_id)


__all__ = ["router"]

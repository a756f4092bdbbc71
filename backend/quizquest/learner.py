"""Learner profile model shared by the session, gate and store layers."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

XP_PER_LEVEL = 100


class SkillLevel(str, Enum):
    STARTER = "Starter"
    MODERATE = "Moderate"
    EXPERT = "Expert"


class Learner(BaseModel):
    id: str
    name: str
    age: int = Field(ge=1)
    skill_level: SkillLevel = SkillLevel.STARTER
    xp: int = Field(default=0, ge=0)
    streak: int = Field(default=0, ge=0)
    questions_answered: int = Field(default=0, ge=0)
    correct_answers: int = Field(default=0, ge=0)
    # Raw stored value; the entitlement gate resolves unknown plans.
    subscription_plan: str = "free_trial"
    trial_end_date: Optional[datetime] = None
    daily_questions_used: int = Field(default=0, ge=0)
    daily_chat_messages_used: int = Field(default=0, ge=0)
    last_reset_date: Optional[date] = None
    stripe_customer_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_answer_counts(self) -> "Learner":
        if self.correct_answers > self.questions_answered:
            raise ValueError("correct_answers cannot exceed questions_answered")
        return self

    @property
    def level(self) -> int:
        return self.xp // XP_PER_LEVEL + 1

    @property
    def xp_in_level(self) -> int:
        return self.xp % XP_PER_LEVEL

    @property
    def xp_to_next_level(self) -> int:
        return XP_PER_LEVEL - self.xp_in_level

    @property
    def accuracy(self) -> int:
        """Percentage of correct answers, rounded; 0 before the first answer."""
        if self.questions_answered <= 0:
            return 0
        return round(self.correct_answers / self.questions_answered * 100)


class AnswerAttempt(BaseModel):
    question_id: str
    selected_answer: str
    correct_answer: str
    is_correct: bool
    xp_gained: int
    created_at: datetime


class LeaderboardEntry(BaseModel):
    id: str
    name: str
    xp: int
    streak: int
    avatar: str = ""


__all__ = [
    "AnswerAttempt",
    "Learner",
    "LeaderboardEntry",
    "SkillLevel",
    "XP_PER_LEVEL",
]

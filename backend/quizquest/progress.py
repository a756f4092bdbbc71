"""Folding answer outcomes into persistent learner stats."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from .learner import Learner

CORRECT_ANSWER_XP = 20
INCORRECT_ANSWER_XP = 5


def xp_for(is_correct: bool) -> int:
    return CORRECT_ANSWER_XP if is_correct else INCORRECT_ANSWER_XP


def apply_answer_outcome(learner: Learner, is_correct: bool, xp_gained: int) -> Learner:
    """Return a copy of ``learner`` with one more answer folded in.

    The caller commits the result to the record store. A failed commit does
    not undo the in-memory value.
    """
    if xp_gained < 0:
        raise ValueError(f"xp_gained cannot be negative: {xp_gained}")
    streak = learner.streak + 1 if is_correct else max(0, learner.streak - 1)
    return learner.model_copy(
        update={
            "xp": learner.xp + xp_gained,
            "questions_answered": learner.questions_answered + 1,
            "correct_answers": learner.correct_answers + (1 if is_correct else 0),
            "streak": streak,
            "daily_questions_used": learner.daily_questions_used + 1,
        }
    )


def apply_chat_message(learner: Learner) -> Learner:
    return learner.model_copy(update={"daily_chat_messages_used": learner.daily_chat_messages_used + 1})


class Achievement(BaseModel):
    achievement_id: str
    name: str
    description: str
    unlocked: bool


class ProgressSummary(BaseModel):
    xp: int
    level: int
    xp_in_level: int
    xp_to_next_level: int
    streak: int
    questions_answered: int
    correct_answers: int
    accuracy: int
    achievements: List[Achievement] = Field(default_factory=list)


def achievements(learner: Learner) -> List[Achievement]:
    return [
        Achievement(
            achievement_id="first_question",
            name="First Steps",
            description="Answer your first question",
            unlocked=learner.questions_answered >= 1,
        ),
        Achievement(
            achievement_id="streak_3",
            name="Getting Warmed Up",
            description="Maintain a 3-day streak",
            unlocked=learner.streak >= 3,
        ),
        Achievement(
            achievement_id="accuracy_80",
            name="Sharp Mind",
            description="Achieve 80% accuracy",
            unlocked=learner.accuracy >= 80,
        ),
        Achievement(
            achievement_id="xp_500",
            name="Dedicated Learner",
            description="Earn 500 XP",
            unlocked=learner.xp >= 500,
        ),
    ]


def summarize(learner: Learner) -> ProgressSummary:
    return ProgressSummary(
        xp=learner.xp,
        level=learner.level,
        xp_in_level=learner.xp_in_level,
        xp_to_next_level=learner.xp_to_next_level,
        streak=learner.streak,
        questions_answered=learner.questions_answered,
        correct_answers=learner.correct_answers,
        accuracy=learner.accuracy,
        achievements=achievements(learner),
    )


__all__ = [
    "Achievement",
    "CORRECT_ANSWER_XP",
    "INCORRECT_ANSWER_XP",
    "ProgressSummary",
    "achievements",
    "apply_answer_outcome",
    "apply_chat_message",
    "summarize",
    "xp_for",
]

from __future__ import annotations

import random

import pytest
from pydantic import ValidationError

from quizquest.learner import Learner
from quizquest.progress import (
    CORRECT_ANSWER_XP,
    INCORRECT_ANSWER_XP,
    achievements,
    apply_answer_outcome,
    summarize,
    xp_for,
)


def test_correct_answer_updates_all_counters(make_learner) -> None:
    learner = make_learner(xp=40, streak=2, questions_answered=3, correct_answers=2, daily_questions_used=4)
    updated = apply_answer_outcome(learner, True, xp_for(True))
    assert updated.xp == 40 + CORRECT_ANSWER_XP
    assert updated.streak == 3
    assert updated.questions_answered == 4
    assert updated.correct_answers == 3
    assert updated.daily_questions_used == 5
    assert learner.xp == 40, "input learner must not be mutated"


def test_wrong_answer_decrements_streak_but_awards_xp(make_learner) -> None:
    updated = apply_answer_outcome(make_learner(streak=4), False, xp_for(False))
    assert updated.streak == 3
    assert updated.xp == INCORRECT_ANSWER_XP
    assert updated.correct_answers == 0


def test_streak_never_goes_negative(make_learner) -> None:
    updated = apply_answer_outcome(make_learner(streak=0), False, xp_for(False))
    assert updated.streak == 0


def test_correct_answers_never_exceed_questions_answered(make_learner) -> None:
    rng = random.Random(42)
    learner: Learner = make_learner(streak=0)
    for _ in range(200):
        is_correct = rng.random() < 0.6
        learner = apply_answer_outcome(learner, is_correct, xp_for(is_correct))
        assert 0 <= learner.correct_answers <= learner.questions_answered
        assert learner.streak >= 0


def test_negative_xp_is_rejected(make_learner) -> None:
    with pytest.raises(ValueError):
        apply_answer_outcome(make_learner(), True, -1)


def test_learner_model_rejects_inconsistent_counts(make_learner) -> None:
    with pytest.raises(ValidationError):
        make_learner(questions_answered=1, correct_answers=2)


def test_summary_reports_level_and_accuracy(make_learner) -> None:
    summary = summarize(make_learner(xp=250, questions_answered=8, correct_answers=7, streak=3))
    assert summary.level == 3
    assert summary.xp_in_level == 50
    assert summary.xp_to_next_level == 50
    assert summary.accuracy == 88
    unlocked = {item.achievement_id for item in summary.achievements if item.unlocked}
    assert unlocked == {"first_question", "streak_3", "accuracy_80"}


def test_fresh_learner_has_no_achievements(make_learner) -> None:
    assert not any(item.unlocked for item in achievements(make_learner()))
    assert summarize(make_learner()).accuracy == 0

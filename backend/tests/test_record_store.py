from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import NOW
from quizquest.errors import LearnerNotFound, TransientStoreError
from quizquest.learner import SkillLevel
from quizquest.record_store import DatabaseLearnerStore
from quizquest.repositories.learners import learner_repository


@pytest.fixture
def store(database) -> DatabaseLearnerStore:
    return DatabaseLearnerStore()


def _onboard(store: DatabaseLearnerStore, learner_id: str = "learner-1", name: str = "Maya", **kwargs):
    return store.create_learner(
        learner_id,
        name=name,
        age=kwargs.pop("age", 9),
        skill_level=kwargs.pop("skill_level", SkillLevel.STARTER),
        now=kwargs.pop("now", NOW),
    )


def test_create_learner_applies_server_defaults(store) -> None:
    learner = _onboard(store)
    assert learner.xp == 0
    assert learner.streak == 1
    assert learner.daily_questions_used == 0
    assert learner.daily_chat_messages_used == 0
    assert learner.subscription_plan == "free_trial"
    assert learner.trial_end_date == NOW + timedelta(days=7)
    assert learner.last_reset_date == NOW.date()
    assert store.get_learner("learner-1") == learner


def test_create_learner_twice_is_rejected(store) -> None:
    _onboard(store)
    with pytest.raises(ValueError):
        _onboard(store)


def test_get_missing_learner_returns_none(store) -> None:
    assert store.get_learner("nobody") is None


def test_update_missing_learner_raises_not_found(store) -> None:
    with pytest.raises(LearnerNotFound):
        store.update_learner("nobody", {"xp": 10})


def test_update_rejects_unknown_fields(store) -> None:
    _onboard(store)
    with pytest.raises(ValueError):
        store.update_learner("learner-1", {"password": "hunter2"})


def test_increment_usage_is_relative_to_stored_value(store) -> None:
    _onboard(store)
    store.increment_usage("learner-1", "question")
    store.increment_usage("learner-1", "question")
    learner = store.increment_usage("learner-1", "chat")
    assert learner.daily_questions_used == 2
    assert learner.daily_chat_messages_used == 1


def test_reset_daily_usage_runs_once_per_day(store) -> None:
    _onboard(store)
    store.increment_usage("learner-1", "question")

    same_day = store.reset_daily_usage("learner-1", NOW.date())
    assert same_day.daily_questions_used == 1

    next_day = NOW.date() + timedelta(days=1)
    reset = store.reset_daily_usage("learner-1", next_day)
    again = store.reset_daily_usage("learner-1", next_day)
    assert reset.daily_questions_used == 0
    assert reset.last_reset_date == next_day
    assert again == reset


def test_apply_plan_change_clears_counters_and_trial(store) -> None:
    _onboard(store)
    store.increment_usage("learner-1", "question")
    learner = store.apply_plan_change("learner-1", "professional", None, NOW.date())
    assert learner.subscription_plan == "professional"
    assert learner.trial_end_date is None
    assert learner.daily_questions_used == 0

    grace = NOW + timedelta(days=7)
    downgraded = store.apply_plan_change("learner-1", "free_trial", grace, NOW.date())
    assert downgraded.subscription_plan == "free_trial"
    assert downgraded.trial_end_date == grace


def test_stripe_customer_lookup(store) -> None:
    _onboard(store)
    assert store.find_by_stripe_customer("cus_123") is None
    store.set_stripe_customer_id("learner-1", "cus_123")
    found = store.find_by_stripe_customer("cus_123")
    assert found is not None and found.id == "learner-1"


def _commit(
    store: DatabaseLearnerStore, learner_id: str, question_id: str, answer: str, is_correct: bool, **stats
):
    return store.commit_answer(
        learner_id,
        stats,
        question_id=question_id,
        selected_answer=answer,
        correct_answer="A",
        is_correct=is_correct,
        xp_gained=20 if is_correct else 5,
    )


def test_commit_answer_writes_stats_attempt_and_usage(store) -> None:
    _onboard(store)
    _commit(store, "learner-1", "1", "A", True, xp=20, streak=2, questions_answered=1, correct_answers=1)
    learner = _commit(store, "learner-1", "2", "C", False, xp=25, streak=1, questions_answered=2, correct_answers=1)

    assert learner.xp == 25
    assert learner.questions_answered == 2
    assert learner.daily_questions_used == 2
    attempts = store.recent_attempts("learner-1")
    assert {attempt.question_id for attempt in attempts} == {"1", "2"}
    assert all(attempt.created_at.tzinfo is not None for attempt in attempts)


def test_commit_answer_rolls_back_when_attempt_insert_fails(store, monkeypatch) -> None:
    _onboard(store)

    def fail_insert(*_args, **_kwargs) -> None:
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(learner_repository, "record_answer_attempt", fail_insert)
    with pytest.raises(TransientStoreError):
        _commit(store, "learner-1", "1", "A", True, xp=20, streak=2, questions_answered=1, correct_answers=1)

    learner = store.get_learner("learner-1")
    assert learner.xp == 0
    assert learner.questions_answered == 0
    assert learner.daily_questions_used == 0
    assert store.recent_attempts("learner-1") == []


def test_standalone_attempt_is_recorded(store) -> None:
    _onboard(store)
    store.record_answer_attempt("learner-1", "9", "B", "A", False, 5)
    [attempt] = store.recent_attempts("learner-1")
    assert attempt.question_id == "9" and attempt.is_correct is False
    assert store.get_learner("learner-1").daily_questions_used == 0


def test_commit_answer_for_unknown_learner_raises_not_found(store) -> None:
    with pytest.raises(LearnerNotFound):
        _commit(store, "nobody", "1", "A", True, xp=20)


def test_leaderboard_orders_by_xp(store) -> None:
    for learner_id, name, xp in (("a", "ada", 40), ("b", "Bo", 120), ("c", "cy", 80)):
        _onboard(store, learner_id, name)
        store.update_learner(learner_id, {"xp": xp})
    top = store.list_top_learners(2)
    assert [entry.id for entry in top] == ["b", "c"]
    assert top[0].avatar == "B"
    assert top[1].avatar == "C"


def test_audit_events_recorded(store) -> None:
    _onboard(store)
    store.record_audit_event("learner-1", "answer_recorded", {"question_id": "1"})
    events = store.recent_audit_events("learner-1")
    assert {event.event_type for event in events} >= {"learner_created", "answer_recorded"}


def test_contact_submission_returns_id(store) -> None:
    submission_id = store.add_contact_submission(
        name="Maya", email="maya@example.com", subject="Hi", message="Love the quizzes"
    )
    assert submission_id


def test_missing_database_url_surfaces_as_transient_error(monkeypatch) -> None:
    from quizquest.config import get_settings
    from quizquest.db.session import dispose_engine

    monkeypatch.setenv("QUIZQUEST_DATABASE_URL", "")
    get_settings.cache_clear()
    dispose_engine()
    try:
        with pytest.raises(TransientStoreError):
            DatabaseLearnerStore().get_learner("learner-1")
    finally:
        get_settings.cache_clear()
        dispose_engine()

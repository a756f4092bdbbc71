from __future__ import annotations

import os
import random
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import pytest

os.environ.setdefault("QUIZQUEST_DATABASE_URL", "sqlite://")

from quizquest.config import get_settings  # noqa: E402
from quizquest.db.session import create_schema, dispose_engine  # noqa: E402
from quizquest.errors import LearnerNotFound, TransientStoreError  # noqa: E402
from quizquest.learner import AnswerAttempt, LeaderboardEntry, Learner, SkillLevel  # noqa: E402
from quizquest.question_bank import Question, QuestionBank  # noqa: E402

NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)

_USAGE_FIELDS = {"question": "daily_questions_used", "chat": "daily_chat_messages_used"}


class FakeLearnerStore:
    """In-memory stand-in for the database store.

    ``offline`` simulates an outage; ``fail_attempt_write`` fails an answer
    commit partway through.
    """

    def __init__(self) -> None:
        self.learners: Dict[str, Learner] = {}
        self.attempts: Dict[str, List[AnswerAttempt]] = {}
        self.contacts: List[Dict[str, str]] = []
        self.updates: List[Dict[str, Any]] = []
        self.offline = False
        self.fail_attempt_write = False
        self.audit: List[Tuple[Optional[str], str, Dict[str, Any]]] = []

    def _check(self) -> None:
        if self.offline:
            raise TransientStoreError("record store offline")

    def _require(self, learner_id: str) -> Learner:
        learner = self.learners.get(learner_id)
        if learner is None:
            raise LearnerNotFound(learner_id)
        return learner

    def _save(self, learner: Learner) -> Learner:
        self.learners[learner.id] = learner
        return learner

    def add(self, learner: Learner) -> Learner:
        return self._save(learner)

    def get_learner(self, learner_id: str) -> Optional[Learner]:
        self._check()
        return self.learners.get(learner_id)

    def create_learner(
        self,
        learner_id: str,
        *,
        name: str,
        age: int,
        skill_level: SkillLevel,
        now: Optional[datetime] = None,
    ) -> Learner:
        self._check()
        if learner_id in self.learners:
            raise ValueError(f"Learner '{learner_id}' already exists.")
        current = now or datetime.now(timezone.utc)
        return self._save(
            Learner(
                id=learner_id,
                name=name,
                age=age,
                skill_level=skill_level,
                streak=1,
                trial_end_date=current + timedelta(days=7),
                last_reset_date=current.date(),
            )
        )

    def update_learner(self, learner_id: str, fields: Mapping[str, Any]) -> Learner:
        self._check()
        self.updates.append(dict(fields))
        return self._save(self._require(learner_id).model_copy(update=dict(fields)))

    def commit_answer(
        self,
        learner_id: str,
        stats: Mapping[str, Any],
        *,
        question_id: str,
        selected_answer: str,
        correct_answer: str,
        is_correct: bool,
        xp_gained: int,
    ) -> Learner:
        self._check()
        learner = self._require(learner_id)
        updated = learner.model_copy(
            update={**stats, "daily_questions_used": learner.daily_questions_used + 1}
        )
        # Nothing is kept when the attempt write fails, like a rolled back transaction.
        if self.fail_attempt_write:
            raise TransientStoreError("attempt insert failed")
        self.updates.append(dict(stats))
        self.record_answer_attempt(learner_id, question_id, selected_answer, correct_answer, is_correct, xp_gained)
        return self._save(updated)

    def record_answer_attempt(
        self,
        learner_id: str,
        question_id: str,
        selected_answer: str,
        correct_answer: str,
        is_correct: bool,
        xp_gained: int,
    ) -> None:
        self._check()
        self._require(learner_id)
        self.attempts.setdefault(learner_id, []).append(
            AnswerAttempt(
                question_id=question_id,
                selected_answer=selected_answer,
                correct_answer=correct_answer,
                is_correct=is_correct,
                xp_gained=xp_gained,
                created_at=NOW,
            )
        )

    def list_top_learners(self, limit: int) -> List[LeaderboardEntry]:
        self._check()
        ranked = sorted(self.learners.values(), key=lambda item: (-item.xp, item.id))[:limit]
        return [
            LeaderboardEntry(id=item.id, name=item.name, xp=item.xp, streak=item.streak, avatar=item.name[:1].upper())
            for item in ranked
        ]

    def increment_usage(self, learner_id: str, action: str) -> Learner:
        self._check()
        learner = self._require(learner_id)
        field = _USAGE_FIELDS[action]
        return self._save(learner.model_copy(update={field: getattr(learner, field) + 1}))

    def reset_daily_usage(self, learner_id: str, today: date) -> Learner:
        self._check()
        learner = self._require(learner_id)
        if learner.last_reset_date == today:
            return learner
        return self._save(
            learner.model_copy(
                update={"daily_questions_used": 0, "daily_chat_messages_used": 0, "last_reset_date": today}
            )
        )

    def apply_plan_change(
        self,
        learner_id: str,
        plan: str,
        trial_end_date: Optional[datetime],
        today: date,
    ) -> Learner:
        self._check()
        learner = self._require(learner_id)
        update: Dict[str, Any] = {
            "subscription_plan": plan,
            "daily_questions_used": 0,
            "daily_chat_messages_used": 0,
            "last_reset_date": today,
        }
        if trial_end_date is not None:
            update["trial_end_date"] = trial_end_date
        elif plan != "free_trial":
            update["trial_end_date"] = None
        return self._save(learner.model_copy(update=update))

    def find_by_stripe_customer(self, customer_id: str) -> Optional[Learner]:
        self._check()
        for learner in self.learners.values():
            if learner.stripe_customer_id == customer_id:
                return learner
        return None

    def set_stripe_customer_id(self, learner_id: str, customer_id: str) -> Learner:
        return self.update_learner(learner_id, {"stripe_customer_id": customer_id})

    def recent_attempts(self, learner_id: str, limit: int = 50) -> List[AnswerAttempt]:
        self._check()
        return list(reversed(self.attempts.get(learner_id, [])))[:limit]

    def add_contact_submission(self, *, name: str, email: str, subject: str, message: str) -> str:
        self._check()
        submission_id = str(uuid.uuid4())
        self.contacts.append({"id": submission_id, "name": name, "email": email, "subject": subject, "message": message})
        return submission_id

    def record_audit_event(self, learner_id: Optional[str], event_type: str, payload: Dict[str, Any]) -> None:
        self._check()
        self.audit.append((learner_id, event_type, dict(payload)))


def build_learner(**overrides: Any) -> Learner:
    values: Dict[str, Any] = {
        "id": "learner-1",
        "name": "Maya",
        "age": 9,
        "skill_level": SkillLevel.STARTER,
        "streak": 1,
        "trial_end_date": NOW + timedelta(days=7),
        "last_reset_date": NOW.date(),
    }
    values.update(overrides)
    return Learner(**values)


def build_question(question_id: str, **overrides: Any) -> Question:
    values: Dict[str, Any] = {
        "id": question_id,
        "prompt": f"Question {question_id}?",
        "options": ["A", "B", "C", "D"],
        "correct_answer": "A",
        "explanation": f"A is right for {question_id}.",
        "difficulty": SkillLevel.STARTER,
        "age_min": 5,
        "age_max": 12,
    }
    values.update(overrides)
    return Question(**values)


@pytest.fixture
def fake_store() -> FakeLearnerStore:
    return FakeLearnerStore()


@pytest.fixture
def make_learner() -> Callable[..., Learner]:
    return build_learner


@pytest.fixture
def make_question() -> Callable[..., Question]:
    return build_question


@pytest.fixture
def starter_bank() -> QuestionBank:
    return QuestionBank((build_question(str(index)) for index in range(1, 6)), rng=random.Random(7))


@pytest.fixture
def database(tmp_path, monkeypatch):
    """Point the record store at a fresh SQLite file with the schema created."""
    monkeypatch.setenv("QUIZQUEST_DATABASE_URL", f"sqlite:///{tmp_path / 'quizquest.sqlite'}")
    get_settings.cache_clear()
    dispose_engine()
    create_schema()
    yield
    dispose_engine()
    get_settings.cache_clear()

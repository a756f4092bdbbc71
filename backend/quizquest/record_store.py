"""Learner record store contract and its database implementation."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Generator, List, Mapping, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import get_settings
from .db.session import session_scope
from .errors import LearnerNotFound, TransientStoreError
from .learner import AnswerAttempt, LeaderboardEntry, Learner, SkillLevel
from .repositories.learners import LearnerRecordMissing, learner_repository

logger = logging.getLogger(__name__)


class AuditEvent(Protocol):
    event_type: str
    payload: dict
    created_at: datetime


class LearnerRecordStore(Protocol):
    """Operations the quiz core consumes from the authoritative record store."""

    def get_learner(self, learner_id: str) -> Optional[Learner]: ...

    def create_learner(
        self,
        learner_id: str,
        *,
        name: str,
        age: int,
        skill_level: SkillLevel,
        now: Optional[datetime] = None,
    ) -> Learner: ...

    def update_learner(self, learner_id: str, fields: Mapping[str, Any]) -> Learner: ...

    def record_answer_attempt(
        self,
        learner_id: str,
        question_id: str,
        selected_answer: str,
        correct_answer: str,
        is_correct: bool,
        xp_gained: int,
    ) -> None: ...

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
        """Write stats, the attempt row and the daily question count together or not at all."""
        ...

    def list_top_learners(self, limit: int) -> List[LeaderboardEntry]: ...

    def increment_usage(self, learner_id: str, action: str) -> Learner: ...

    def reset_daily_usage(self, learner_id: str, today: date) -> Learner: ...

    def apply_plan_change(
        self,
        learner_id: str,
        plan: str,
        trial_end_date: Optional[datetime],
        today: date,
    ) -> Learner: ...

    def find_by_stripe_customer(self, customer_id: str) -> Optional[Learner]: ...

    def set_stripe_customer_id(self, learner_id: str, customer_id: str) -> Learner: ...

    def recent_attempts(self, learner_id: str, limit: int = 50) -> List[AnswerAttempt]: ...

    def add_contact_submission(self, *, name: str, email: str, subject: str, message: str) -> str: ...

    def record_audit_event(self, learner_id: Optional[str], event_type: str, payload: Dict[str, Any]) -> None: ...


class DatabaseLearnerStore:
    """SQLAlchemy-backed store; storage failures surface as TransientStoreError."""

    @contextmanager
    def _session(self, learner_id: Optional[str] = None, *, commit: bool = True) -> Generator[Session, None, None]:
        try:
            with session_scope(commit=commit) as session:
                yield session
        except LearnerRecordMissing as exc:
            raise LearnerNotFound(learner_id or "") from exc
        except (SQLAlchemyError, RuntimeError) as exc:
            logger.warning("Record store operation failed for learner=%s: %s", learner_id, exc)
            raise TransientStoreError(str(exc)) from exc

    def get_learner(self, learner_id: str) -> Optional[Learner]:
        with self._session(learner_id, commit=False) as session:
            return learner_repository.get(session, learner_id)

    def create_learner(
        self,
        learner_id: str,
        *,
        name: str,
        age: int,
        skill_level: SkillLevel,
        now: Optional[datetime] = None,
    ) -> Learner:
        current = now or datetime.now(timezone.utc)
        trial_end = current + timedelta(days=get_settings().trial_days)
        with self._session(learner_id) as session:
            return learner_repository.create(
                session,
                learner_id,
                name=name,
                age=age,
                skill_level=skill_level,
                trial_end_date=trial_end,
                today=current.date(),
            )

    def update_learner(self, learner_id: str, fields: Mapping[str, Any]) -> Learner:
        with self._session(learner_id) as session:
            return learner_repository.update(session, learner_id, fields)

    def record_answer_attempt(
        self,
        learner_id: str,
        question_id: str,
        selected_answer: str,
        correct_answer: str,
        is_correct: bool,
        xp_gained: int,
    ) -> None:
        with self._session(learner_id) as session:
            learner_repository.record_answer_attempt(
                session,
                learner_id,
                question_id=question_id,
                selected_answer=selected_answer,
                correct_answer=correct_answer,
                is_correct=is_correct,
                xp_gained=xp_gained,
            )

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
        with self._session(learner_id) as session:
            return learner_repository.commit_answer(
                session,
                learner_id,
                stats,
                question_id=question_id,
                selected_answer=selected_answer,
                correct_answer=correct_answer,
                is_correct=is_correct,
                xp_gained=xp_gained,
            )

    def list_top_learners(self, limit: int) -> List[LeaderboardEntry]:
        with self._session(commit=False) as session:
            return learner_repository.list_top(session, limit)

    def increment_usage(self, learner_id: str, action: str) -> Learner:
        with self._session(learner_id) as session:
            return learner_repository.increment_usage(session, learner_id, action)

    def reset_daily_usage(self, learner_id: str, today: date) -> Learner:
        with self._session(learner_id) as session:
            return learner_repository.reset_daily_usage(session, learner_id, today)

    def apply_plan_change(
        self,
        learner_id: str,
        plan: str,
        trial_end_date: Optional[datetime],
        today: date,
    ) -> Learner:
        with self._session(learner_id) as session:
            return learner_repository.apply_plan_change(
                session,
                learner_id,
                plan=plan,
                trial_end_date=trial_end_date,
                today=today,
            )

    def find_by_stripe_customer(self, customer_id: str) -> Optional[Learner]:
        with self._session(commit=False) as session:
            return learner_repository.find_by_stripe_customer(session, customer_id)

    def set_stripe_customer_id(self, learner_id: str, customer_id: str) -> Learner:
        return self.update_learner(learner_id, {"stripe_customer_id": customer_id})

    def record_audit_event(self, learner_id: Optional[str], event_type: str, payload: Dict[str, Any]) -> None:
        with self._session(learner_id) as session:
            learner_repository.record_audit(session, learner_id, event_type, payload, actor="telemetry")

    def recent_attempts(self, learner_id: str, limit: int = 50) -> List[AnswerAttempt]:
        with self._session(learner_id, commit=False) as session:
            return learner_repository.list_attempts(session, learner_id, limit=limit)

    def recent_audit_events(self, learner_id: str, limit: int = 50) -> List[AuditEvent]:
        with self._session(learner_id, commit=False) as session:
            return learner_repository.recent_audit_events(session, learner_id, limit=limit)

    def add_contact_submission(self, *, name: str, email: str, subject: str, message: str) -> str:
        with self._session() as session:
            return learner_repository.add_contact_submission(
                session, name=name, email=email, subject=subject, message=message
            )


learner_store = DatabaseLearnerStore()

__all__ = [
    "DatabaseLearnerStore",
    "LearnerRecordStore",
    "learner_store",
]

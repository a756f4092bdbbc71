"""Database-backed learner repository."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..db.models import (
    ContactSubmissionModel,
    LearnerModel,
    PersistenceAuditEventModel,
    QuestionAttemptModel,
)
from ..learner import AnswerAttempt, LeaderboardEntry, Learner, SkillLevel

UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "age",
        "skill_level",
        "xp",
        "streak",
        "questions_answered",
        "correct_answers",
        "subscription_plan",
        "trial_end_date",
        "daily_questions_used",
        "daily_chat_messages_used",
        "last_reset_date",
        "stripe_customer_id",
    }
)

USAGE_COLUMNS = {
    "question": LearnerModel.daily_questions_used,
    "chat": LearnerModel.daily_chat_messages_used,
}


class LearnerRecordMissing(LookupError):
    """No learner row exists for the requested id."""


def _normalize_learner_id(learner_id: str) -> str:
    normalized = learner_id.strip()
    if not normalized:
        raise ValueError("Learner id cannot be empty.")
    return normalized


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class LearnerRepository:
    """Session-scoped persistence helpers for learner records."""

    def get(self, session: Session, learner_id: str) -> Learner | None:
        model = session.get(LearnerModel, _normalize_learner_id(learner_id))
        if model is None:
            return None
        return self._to_domain(model)

    def create(
        self,
        session: Session,
        learner_id: str,
        *,
        name: str,
        age: int,
        skill_level: SkillLevel,
        trial_end_date: datetime,
        today: date,
    ) -> Learner:
        normalized = _normalize_learner_id(learner_id)
        if session.get(LearnerModel, normalized) is not None:
            raise ValueError(f"Learner '{normalized}' already exists.")
        model = LearnerModel(
            id=normalized,
            name=name.strip(),
            age=age,
            skill_level=SkillLevel(skill_level).value,
            xp=0,
            streak=1,
            questions_answered=0,
            correct_answers=0,
            subscription_plan="free_trial",
            trial_end_date=trial_end_date,
            daily_questions_used=0,
            daily_chat_messages_used=0,
            last_reset_date=today,
        )
        session.add(model)
        session.flush()
        self.record_audit(session, model.id, "learner_created", {"skill_level": model.skill_level})
        return self._to_domain(model)

    def update(self, session: Session, learner_id: str, fields: Mapping[str, Any]) -> Learner:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown learner fields: {', '.join(sorted(unknown))}")
        model = self._require_model(session, learner_id)
        for key, value in fields.items():
            if key == "skill_level" and value is not None:
                value = SkillLevel(value).value
            setattr(model, key, value)
        session.flush()
        return self._to_domain(model)

    def increment_usage(self, session: Session, learner_id: str, action: str) -> Learner:
        column = USAGE_COLUMNS.get(action)
        if column is None:
            raise ValueError(f"Unknown usage counter: {action}")
        normalized = _normalize_learner_id(learner_id)
        session.execute(
            update(LearnerModel)
            .where(LearnerModel.id == normalized)
            .values({column: column + 1})
            .execution_options(synchronize_session=False)
        )
        model = self._require_model(session, normalized)
        session.refresh(model)
        return self._to_domain(model)

    def reset_daily_usage(self, session: Session, learner_id: str, today: date) -> Learner:
        model = self._require_model(session, learner_id)
        if model.last_reset_date != today:
            model.daily_questions_used = 0
            model.daily_chat_messages_used = 0
            model.last_reset_date = today
            session.flush()
            self.record_audit(session, model.id, "daily_usage_reset", {"date": today.isoformat()})
        return self._to_domain(model)

    def apply_plan_change(
        self,
        session: Session,
        learner_id: str,
        *,
        plan: str,
        trial_end_date: Optional[datetime],
        today: date,
    ) -> Learner:
        model = self._require_model(session, learner_id)
        model.subscription_plan = plan
        model.daily_questions_used = 0
        model.daily_chat_messages_used = 0
        model.last_reset_date = today
        if trial_end_date is not None:
            model.trial_end_date = trial_end_date
        elif plan != "free_trial":
            model.trial_end_date = None
        session.flush()
        self.record_audit(session, model.id, "plan_change", {"plan": plan})
        return self._to_domain(model)

    def find_by_stripe_customer(self, session: Session, customer_id: str) -> Learner | None:
        stmt = select(LearnerModel).where(LearnerModel.stripe_customer_id == customer_id)
        model = session.execute(stmt).scalar_one_or_none()
        return self._to_domain(model) if model else None

    def commit_answer(
        self,
        session: Session,
        learner_id: str,
        stats: Mapping[str, Any],
        *,
        question_id: str,
        selected_answer: str,
        correct_answer: str,
        is_correct: bool,
        xp_gained: int,
    ) -> Learner:
        self.update(session, learner_id, stats)
        self.record_answer_attempt(
            session,
            learner_id,
            question_id=question_id,
            selected_answer=selected_answer,
            correct_answer=correct_answer,
            is_correct=is_correct,
            xp_gained=xp_gained,
        )
        return self.increment_usage(session, learner_id, "question")

    def record_answer_attempt(
        self,
        session: Session,
        learner_id: str,
        *,
        question_id: str,
        selected_answer: str,
        correct_answer: str,
        is_correct: bool,
        xp_gained: int,
    ) -> None:
        model = self._require_model(session, learner_id)
        session.add(
            QuestionAttemptModel(
                learner_id=model.id,
                question_id=question_id,
                selected_answer=selected_answer,
                correct_answer=correct_answer,
                is_correct=is_correct,
                xp_gained=xp_gained,
            )
        )
        session.flush()

    def list_attempts(self, session: Session, learner_id: str, limit: int = 50) -> List[AnswerAttempt]:
        stmt = (
            select(QuestionAttemptModel)
            .where(QuestionAttemptModel.learner_id == _normalize_learner_id(learner_id))
            .order_by(QuestionAttemptModel.created_at.desc())
            .limit(limit)
        )
        return [
            AnswerAttempt(
                question_id=row.question_id,
                selected_answer=row.selected_answer,
                correct_answer=row.correct_answer,
                is_correct=row.is_correct,
                xp_gained=row.xp_gained,
                created_at=_aware(row.created_at),
            )
            for row in session.execute(stmt).scalars()
        ]

    def list_top(self, session: Session, limit: int) -> List[LeaderboardEntry]:
        stmt = (
            select(LearnerModel.id, LearnerModel.name, LearnerModel.xp, LearnerModel.streak)
            .order_by(LearnerModel.xp.desc(), LearnerModel.id.asc())
            .limit(limit)
        )
        return [
            LeaderboardEntry(
                id=row.id,
                name=row.name,
                xp=row.xp,
                streak=row.streak,
                avatar=row.name[:1].upper(),
            )
            for row in session.execute(stmt)
        ]

    def add_contact_submission(
        self,
        session: Session,
        *,
        name: str,
        email: str,
        subject: str,
        message: str,
    ) -> str:
        model = ContactSubmissionModel(name=name, email=email, subject=subject, message=message)
        session.add(model)
        session.flush()
        return model.id

    def record_audit(
        self,
        session: Session,
        learner_id: Optional[str],
        event_type: str,
        payload: Dict[str, Any],
        actor: Optional[str] = None,
    ) -> None:
        session.add(
            PersistenceAuditEventModel(
                learner_id=learner_id,
                event_type=event_type,
                payload=payload,
                actor=actor,
            )
        )

    def recent_audit_events(
        self, session: Session, learner_id: str, limit: int = 50
    ) -> List[PersistenceAuditEventModel]:
        stmt = (
            select(PersistenceAuditEventModel)
            .where(PersistenceAuditEventModel.learner_id == _normalize_learner_id(learner_id))
            .order_by(PersistenceAuditEventModel.created_at.desc())
            .limit(limit)
        )
        return list(session.execute(stmt).scalars().all())

    def _require_model(self, session: Session, learner_id: str) -> LearnerModel:
        normalized = _normalize_learner_id(learner_id)
        model = session.get(LearnerModel, normalized)
        if model is None:
            raise LearnerRecordMissing(f"Learner '{normalized}' not found.")
        return model

    @staticmethod
    def _to_domain(model: LearnerModel) -> Learner:
        return Learner(
            id=model.id,
            name=model.name,
            age=model.age,
            skill_level=SkillLevel(model.skill_level),
            xp=model.xp,
            streak=model.streak,
            questions_answered=model.questions_answered,
            correct_answers=model.correct_answers,
            subscription_plan=model.subscription_plan or "free_trial",
            trial_end_date=_aware(model.trial_end_date),
            daily_questions_used=model.daily_questions_used or 0,
            daily_chat_messages_used=model.daily_chat_messages_used or 0,
            last_reset_date=model.last_reset_date,
            stripe_customer_id=model.stripe_customer_id,
        )


learner_repository = LearnerRepository()

__all__ = ["LearnerRecordMissing", "LearnerRepository", "UPDATABLE_FIELDS", "learner_repository"]

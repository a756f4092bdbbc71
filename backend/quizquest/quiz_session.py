"""In-memory quiz session state machine.

A session cycles ``awaiting_answer -> feedback -> awaiting_answer``. Answers
are gated by the learner's plan, folded into the learner's cumulative stats
and committed to the record store on a best-effort basis: a failed write is
logged and the in-memory learner keeps the update. Every ``session_length``
completed questions the session counters start over while cumulative stats
are left alone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import RLock
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from . import entitlements
from .entitlements import EntitlementDecision, GatedAction, GateReason
from .errors import TransientStoreError
from .learner import Learner
from .progress import apply_answer_outcome, xp_for
from .question_bank import Question, QuestionBank
from .record_store import LearnerRecordStore
from .telemetry import emit_event

logger = logging.getLogger(__name__)

DEFAULT_SESSION_LENGTH = 10

# Absolute fields an answer commit writes. The daily counter is incremented
# in the same store transaction; plan and trial fields belong to subscription sync.
SESSION_OWNED_FIELDS = (
    "xp",
    "streak",
    "questions_answered",
    "correct_answers",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LearnerContext:
    """The active learner plus the collaborators that operate on it."""

    learner: Learner
    store: LearnerRecordStore
    clock: Callable[[], datetime] = _utcnow

    @property
    def learner_id(self) -> str:
        return self.learner.id

    def now(self) -> datetime:
        return self.clock()


class SessionPhase(str, Enum):
    AWAITING_ANSWER = "awaiting_answer"
    FEEDBACK = "feedback"


class AnswerStatus(str, Enum):
    ACCEPTED = "accepted"
    LIMIT_REACHED = "limit_reached"
    TRIAL_EXPIRED = "trial_expired"
    NO_QUESTION = "no_question"
    NOT_AWAITING_ANSWER = "not_awaiting_answer"


_GATE_STATUS = {
    GateReason.LIMIT_REACHED: AnswerStatus.LIMIT_REACHED,
    GateReason.TRIAL_EXPIRED: AnswerStatus.TRIAL_EXPIRED,
}


@dataclass(frozen=True)
class AnswerOutcome:
    status: AnswerStatus
    is_correct: bool = False
    xp_gained: int = 0
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    persisted: bool = False
    entitlement: Optional[EntitlementDecision] = None

    @property
    def accepted(self) -> bool:
        return self.status is AnswerStatus.ACCEPTED


@dataclass(frozen=True)
class AdvanceOutcome:
    advanced: bool
    session_completed: bool = False
    pool_reset: bool = False
    pool_exhausted: bool = False
    question: Optional[Question] = None


class QuestionView(BaseModel):
    """Question as shown while awaiting an answer; the key stays server-side."""

    id: str
    prompt: str
    options: List[str]
    difficulty: str
    category: str


class SessionSnapshot(BaseModel):
    phase: SessionPhase
    question: Optional[QuestionView] = None
    selected_answer: Optional[str] = None
    feedback_visible: bool = False
    last_answer_correct: bool = False
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    questions_answered_in_session: int = 0
    session_length: int = DEFAULT_SESSION_LENGTH
    session_xp: int = 0
    used_question_ids: List[str] = Field(default_factory=list)
    pool_exhausted: bool = False


@dataclass
class QuizSession:
    context: LearnerContext
    bank: QuestionBank
    session_length: int = DEFAULT_SESSION_LENGTH
    current_question: Optional[Question] = None
    selected_answer: Optional[str] = None
    feedback_visible: bool = False
    last_answer_correct: bool = False
    questions_answered_in_session: int = 0
    session_xp: int = 0
    # dict keys keep insertion order and give O(1) membership.
    used_question_ids: Dict[str, None] = field(default_factory=dict)
    pool_exhausted: bool = False
    phase: SessionPhase = SessionPhase.AWAITING_ANSWER
    _lock: RLock = field(default_factory=RLock, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.session_length < 1:
            raise ValueError("session_length must be at least 1")

    @property
    def learner(self) -> Learner:
        return self.context.learner

    def start(self) -> Optional[Question]:
        """Draw the opening question."""
        self._draw_next()
        return self.current_question

    def submit_answer(self, answer: str) -> AnswerOutcome:
        # Held across the gate and commit so a second submission sees FEEDBACK.
        with self._lock:
            return self._submit_answer(answer)

    def _submit_answer(self, answer: str) -> AnswerOutcome:
        if self.phase is not SessionPhase.AWAITING_ANSWER:
            return AnswerOutcome(status=AnswerStatus.NOT_AWAITING_ANSWER)
        question = self.current_question
        if question is None:
            return AnswerOutcome(status=AnswerStatus.NO_QUESTION)

        decision = entitlements.check(GatedAction.QUESTION, self.learner, self.context.now())
        if not decision.allowed:
            logger.info(
                "Answer blocked for learner=%s reason=%s used=%s limit=%s",
                self.context.learner_id,
                decision.reason.value,
                decision.used,
                decision.limit,
            )
            emit_event(
                "answer_blocked",
                learner_id=self.context.learner_id,
                reason=decision.reason,
                plan=decision.plan,
            )
            return AnswerOutcome(status=_GATE_STATUS[decision.reason], entitlement=decision)

        is_correct = answer == question.correct_answer
        xp_gained = xp_for(is_correct)
        self.selected_answer = answer
        self.feedback_visible = True
        self.last_answer_correct = is_correct
        self.session_xp += xp_gained
        self.phase = SessionPhase.FEEDBACK

        self.context.learner = apply_answer_outcome(self.learner, is_correct, xp_gained)
        persisted = self._commit_answer(question, answer, is_correct, xp_gained)

        emit_event(
            "answer_recorded",
            learner_id=self.context.learner_id,
            question_id=question.id,
            is_correct=is_correct,
            xp_gained=xp_gained,
            persisted=persisted,
        )
        return AnswerOutcome(
            status=AnswerStatus.ACCEPTED,
            is_correct=is_correct,
            xp_gained=xp_gained,
            correct_answer=question.correct_answer,
            explanation=question.explanation,
            persisted=persisted,
            entitlement=entitlements.check(GatedAction.QUESTION, self.learner, self.context.now()),
        )

    def advance(self) -> AdvanceOutcome:
        with self._lock:
            return self._advance()

    def _advance(self) -> AdvanceOutcome:
        if self.phase is not SessionPhase.FEEDBACK:
            return AdvanceOutcome(advanced=False, question=self.current_question)

        self.questions_answered_in_session += 1
        completed = self.questions_answered_in_session >= self.session_length
        if completed:
            self.questions_answered_in_session = 0
            self.session_xp = 0

        self.selected_answer = None
        self.feedback_visible = False
        self.last_answer_correct = False
        reset = self._draw_next()
        self.phase = SessionPhase.AWAITING_ANSWER
        return AdvanceOutcome(
            advanced=True,
            session_completed=completed,
            pool_reset=reset,
            pool_exhausted=self.pool_exhausted,
            question=self.current_question,
        )

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> SessionSnapshot:
        question = self.current_question
        in_feedback = self.phase is SessionPhase.FEEDBACK
        return SessionSnapshot(
            phase=self.phase,
            question=QuestionView(
                id=question.id,
                prompt=question.prompt,
                options=list(question.options),
                difficulty=question.difficulty.value,
                category=question.category,
            )
            if question
            else None,
            selected_answer=self.selected_answer,
            feedback_visible=self.feedback_visible,
            last_answer_correct=self.last_answer_correct,
            correct_answer=question.correct_answer if question and in_feedback else None,
            explanation=question.explanation if question and in_feedback else None,
            questions_answered_in_session=self.questions_answered_in_session,
            session_length=self.session_length,
            session_xp=self.session_xp,
            used_question_ids=list(self.used_question_ids),
            pool_exhausted=self.pool_exhausted,
        )

    def _draw_next(self) -> bool:
        learner = self.learner
        draw = self.bank.draw(learner.skill_level, learner.age, self.used_question_ids)
        if draw.reset:
            self.used_question_ids.clear()
        self.current_question = draw.question
        self.pool_exhausted = draw.exhausted
        if draw.question is not None:
            self.used_question_ids[draw.question.id] = None
        return draw.reset

    def _commit_answer(self, question: Question, answer: str, is_correct: bool, xp_gained: int) -> bool:
        learner = self.learner
        try:
            self.context.store.commit_answer(
                learner.id,
                {name: getattr(learner, name) for name in SESSION_OWNED_FIELDS},
                question_id=question.id,
                selected_answer=answer,
                correct_answer=question.correct_answer,
                is_correct=is_correct,
                xp_gained=xp_gained,
            )
        except TransientStoreError as exc:
            logger.warning("Keeping unsaved answer progress for learner=%s: %s", learner.id, exc)
            return False
        return True


class SessionRegistry:
    """Holds the single live session of each learner in process memory."""

    def __init__(self, session_length: int = DEFAULT_SESSION_LENGTH) -> None:
        self._sessions: Dict[str, QuizSession] = {}
        self._session_length = session_length
        self._lock = RLock()

    def get(self, learner_id: str) -> Optional[QuizSession]:
        with self._lock:
            return self._sessions.get(learner_id)

    def start(self, context: LearnerContext, bank: QuestionBank) -> QuizSession:
        session = QuizSession(context=context, bank=bank, session_length=self._session_length)
        session.start()
        with self._lock:
            self._sessions[context.learner_id] = session
        return session

    def discard(self, learner_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(learner_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


__all__ = [
    "AdvanceOutcome",
    "AnswerOutcome",
    "AnswerStatus",
    "LearnerContext",
    "QuestionView",
    "QuizSession",
    "SESSION_OWNED_FIELDS",
    "SessionPhase",
    "SessionRegistry",
    "SessionSnapshot",
]

"""Static question bank and random question selection."""

from __future__ import annotations

import json
import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .config import get_settings
from .learner import SkillLevel

logger = logging.getLogger(__name__)


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    prompt: str
    options: List[str] = Field(..., min_length=2)
    correct_answer: str
    explanation: str = ""
    difficulty: SkillLevel
    age_min: int = Field(ge=0)
    age_max: int = Field(ge=0)
    category: str = "General"

    @model_validator(mode="after")
    def _check_consistency(self) -> "Question":
        if len(set(self.options)) != len(self.options):
            raise ValueError(f"Question {self.id} has duplicate options")
        if self.correct_answer not in self.options:
            raise ValueError(f"Question {self.id} correct answer is not one of its options")
        if self.age_min > self.age_max:
            raise ValueError(f"Question {self.id} has an empty age range")
        return self

    def suits(self, skill_level: SkillLevel, age: int) -> bool:
        return self.difficulty == skill_level and self.age_min <= age <= self.age_max


@dataclass(frozen=True)
class QuestionDraw:
    """Result of the select, reset-and-retry-once fallback."""

    question: Optional[Question]
    reset: bool = False

    @property
    def exhausted(self) -> bool:
        return self.question is None


class QuestionBank:
    def __init__(self, questions: Iterable[Question], rng: Optional[random.Random] = None) -> None:
        self._questions: Dict[str, Question] = {}
        for question in questions:
            if question.id in self._questions:
                raise ValueError(f"Duplicate question id: {question.id}")
            self._questions[question.id] = question
        self._rng = rng or random.Random()

    def __len__(self) -> int:
        return len(self._questions)

    def __iter__(self) -> Iterator[Question]:
        return iter(self._questions.values())

    def get(self, question_id: str) -> Optional[Question]:
        return self._questions.get(question_id)

    def select_question(
        self,
        skill_level: SkillLevel,
        age: int,
        exclude_ids: Iterable[str] = (),
    ) -> Optional[Question]:
        excluded = set(exclude_ids)
        candidates = [
            question
            for question in self._questions.values()
            if question.suits(skill_level, age) and question.id not in excluded
        ]
        if not candidates:
            return None
        return self._rng.choice(candidates)

    def draw(self, skill_level: SkillLevel, age: int, used_ids: Iterable[str]) -> QuestionDraw:
        question = self.select_question(skill_level, age, used_ids)
        if question is not None:
            return QuestionDraw(question=question)
        question = self.select_question(skill_level, age, ())
        if question is None:
            logger.warning("No questions configured for level=%s age=%s", skill_level.value, age)
        return QuestionDraw(question=question, reset=True)


_BANK_CACHE: Dict[Path, QuestionBank] = {}


def load_question_bank(path: Optional[Path] = None, *, force_reload: bool = False) -> QuestionBank:
    """Load a JSON question list, caching one bank per resolved path."""
    resolved = Path(path or get_settings().question_bank_path).resolve()
    if not force_reload and resolved in _BANK_CACHE:
        return _BANK_CACHE[resolved]

    if not resolved.exists():
        raise FileNotFoundError(f"Question bank not found: {resolved}")
    raw = json.loads(resolved.read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError(f"Question bank {resolved} must contain a JSON list")
    bank = QuestionBank(Question.model_validate(item) for item in raw)
    logger.info("Loaded %s questions from %s", len(bank), resolved)
    _BANK_CACHE[resolved] = bank
    return bank


__all__ = [
    "Question",
    "QuestionBank",
    "QuestionDraw",
    "load_question_bank",
]

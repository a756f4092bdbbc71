from __future__ import annotations

import json
import random

import pytest
from pydantic import ValidationError

from quizquest.learner import SkillLevel
from quizquest.question_bank import Question, QuestionBank, load_question_bank


def test_select_question_returns_none_when_all_ids_excluded(starter_bank) -> None:
    all_ids = [question.id for question in starter_bank]
    assert len(all_ids) == 5
    assert starter_bank.select_question(SkillLevel.STARTER, 9, all_ids) is None


def test_select_question_filters_by_skill_and_age(make_question) -> None:
    bank = QuestionBank(
        [
            make_question("starter-young", age_min=5, age_max=8),
            make_question("starter-fit", age_min=8, age_max=12),
            make_question("moderate-fit", difficulty=SkillLevel.MODERATE, age_min=8, age_max=12),
        ],
        rng=random.Random(1),
    )
    for _ in range(20):
        question = bank.select_question(SkillLevel.STARTER, 10)
        assert question is not None
        assert question.id == "starter-fit"
    assert bank.select_question(SkillLevel.EXPERT, 10) is None


def test_select_question_is_uniform_over_matches(starter_bank) -> None:
    seen = {starter_bank.select_question(SkillLevel.STARTER, 9).id for _ in range(200)}
    assert seen == {"1", "2", "3", "4", "5"}


def test_draw_resets_exclusions_once_pool_is_used_up(starter_bank) -> None:
    draw = starter_bank.draw(SkillLevel.STARTER, 9, ["1", "2", "3", "4", "5"])
    assert draw.reset is True
    assert draw.question is not None
    assert draw.exhausted is False


def test_draw_without_reset_when_candidates_remain(starter_bank) -> None:
    draw = starter_bank.draw(SkillLevel.STARTER, 9, ["1", "2", "3", "4"])
    assert draw.reset is False
    assert draw.question is not None and draw.question.id == "5"


def test_draw_reports_content_gap_after_retry(starter_bank) -> None:
    draw = starter_bank.draw(SkillLevel.EXPERT, 9, [])
    assert draw.question is None
    assert draw.reset is True
    assert draw.exhausted is True


def test_question_requires_correct_answer_among_options(make_question) -> None:
    with pytest.raises(ValidationError):
        make_question("bad", correct_answer="Z")
    with pytest.raises(ValidationError):
        make_question("dupes", options=["A", "A", "B"])


def test_bank_rejects_duplicate_ids(make_question) -> None:
    with pytest.raises(ValueError):
        QuestionBank([make_question("1"), make_question("1")])


def test_load_question_bank_reads_json(tmp_path, make_question) -> None:
    path = tmp_path / "bank.json"
    path.write_text(
        json.dumps([make_question("a").model_dump(mode="json"), make_question("b").model_dump(mode="json")]),
        encoding="utf-8",
    )
    bank = load_question_bank(path, force_reload=True)
    assert len(bank) == 2
    assert load_question_bank(path) is bank


def test_default_question_bank_covers_every_skill_level() -> None:
    bank = load_question_bank(force_reload=True)
    assert all(isinstance(question, Question) for question in bank)
    for skill in SkillLevel:
        assert any(question.difficulty is skill for question in bank)
    assert bank.select_question(SkillLevel.STARTER, 9) is not None

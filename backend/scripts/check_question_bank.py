"""Validate a question bank file and report coverage per skill level and age."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from quizquest.learner import SkillLevel
from quizquest.question_bank import QuestionBank, load_question_bank

LOGGER = logging.getLogger("quizquest.question_bank_check")
DEFAULT_AGES = range(5, 19)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check a QuizQuest question bank.")
    parser.add_argument("path", nargs="?", default=None, help="Question bank JSON (default: configured bank).")
    parser.add_argument("--min-age", type=int, default=DEFAULT_AGES.start)
    parser.add_argument("--max-age", type=int, default=DEFAULT_AGES.stop - 1)
    return parser.parse_args(argv)


def coverage(bank: QuestionBank, ages: range) -> Dict[str, Dict[int, int]]:
    report: Dict[str, Dict[int, int]] = {}
    for skill in SkillLevel:
        report[skill.value] = {age: sum(1 for q in bank if q.suits(skill, age)) for age in ages}
    return report


def gaps(report: Dict[str, Dict[int, int]]) -> List[str]:
    return [f"{skill}@{age}" for skill, by_age in report.items() for age, count in by_age.items() if count == 0]


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    args = parse_args(argv)
    try:
        bank = load_question_bank(Path(args.path) if args.path else None, force_reload=True)
    except (OSError, ValueError, ValidationError) as exc:
        LOGGER.error("Question bank is invalid: %s", exc)
        return 1

    report = coverage(bank, range(args.min_age, args.max_age + 1))
    missing = gaps(report)
    if missing:
        LOGGER.warning("No questions for %s", ", ".join(missing))
    print(json.dumps({"questions": len(bank), "coverage": report}))
    return 0


if __name__ == "__main__":
    sys.exit(main())

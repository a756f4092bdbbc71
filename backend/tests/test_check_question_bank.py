from __future__ import annotations

import json

from scripts import check_question_bank as checker


def test_coverage_counts_matching_questions(starter_bank) -> None:
    report = checker.coverage(starter_bank, range(4, 7))
    assert report["Starter"] == {4: 0, 5: 5, 6: 5}
    assert report["Moderate"] == {4: 0, 5: 0, 6: 0}
    assert "Starter@4" in checker.gaps(report)
    assert "Starter@5" not in checker.gaps(report)


def test_main_reports_bundled_bank(capsys) -> None:
    assert checker.main(["--min-age", "9", "--max-age", "9"]) == 0
    output = json.loads(capsys.readouterr().out)
    assert output["questions"] > 0
    assert set(output["coverage"]) == {"Starter", "Moderate", "Expert"}


def test_main_rejects_invalid_bank(tmp_path) -> None:
    path = tmp_path / "bank.json"
    bad = {
        "id": "1",
        "prompt": "?",
        "options": ["A", "B"],
        "correct_answer": "Z",
        "difficulty": "Starter",
        "age_min": 5,
        "age_max": 9,
    }
    path.write_text(json.dumps([bad]))
    assert checker.main([str(path)]) == 1

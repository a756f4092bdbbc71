from __future__ import annotations

import json
from datetime import timedelta

from conftest import NOW
from quizquest.learner import SkillLevel
from quizquest.record_store import DatabaseLearnerStore
from scripts import db_metrics


def _seed() -> None:
    store = DatabaseLearnerStore()
    for learner_id in ("a", "b", "c"):
        store.create_learner(learner_id, name=learner_id, age=9, skill_level=SkillLevel.STARTER, now=NOW)
    store.increment_usage("a", "question")
    store.increment_usage("a", "question")
    store.increment_usage("b", "chat")
    store.apply_plan_change("b", "premium", None, NOW.date())
    store.update_learner("c", {"daily_questions_used": 7, "last_reset_date": NOW.date() - timedelta(days=1)})


def test_collect_reports_tables_plans_and_todays_usage(database) -> None:
    _seed()
    payload = db_metrics.collect(now=NOW)

    assert payload["tables"]["learners"] == 3
    assert payload["tables"]["question_attempts"] == 0
    assert payload["tables"]["persistence_audit_events"] >= 3
    assert payload["plans"] == {"free_trial": 2, "premium": 1}
    assert payload["usage_today"] == {"active_learners": 2, "questions_used": 2, "chat_messages_used": 0}
    assert "pool" in payload


def test_pool_only_skips_table_queries(database, capsys) -> None:
    assert db_metrics.main(["--pool-only"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert "tables" not in payload
    assert "status" in payload["pool"]


def test_failure_returns_exit_code(monkeypatch) -> None:
    def broken_engine():
        raise RuntimeError("QUIZQUEST_DATABASE_URL is not configured")

    monkeypatch.setattr(db_metrics, "get_engine", broken_engine)
    assert db_metrics.main([]) == 1

"""Report record store health: pool state, table sizes, plan mix and today's usage.

Prints one JSON document, suitable for a cron job or an ad-hoc check before
changing plan limits.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from quizquest.db.models import (
    ContactSubmissionModel,
    LearnerModel,
    PersistenceAuditEventModel,
    QuestionAttemptModel,
)
from quizquest.db.monitoring import get_pool_snapshot
from quizquest.db.session import get_engine, session_scope

LOGGER = logging.getLogger("quizquest.db_metrics")

COUNTED_TABLES = {
    "learners": LearnerModel,
    "question_attempts": QuestionAttemptModel,
    "contact_submissions": ContactSubmissionModel,
    "persistence_audit_events": PersistenceAuditEventModel,
}


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Print QuizQuest record store metrics as JSON.")
    parser.add_argument(
        "--pool-only",
        action="store_true",
        help="Only report the connection pool, without querying tables.",
    )
    return parser.parse_args(argv)


def table_counts(session: Session) -> Dict[str, int]:
    return {
        name: session.execute(select(func.count()).select_from(model)).scalar_one()
        for name, model in COUNTED_TABLES.items()
    }


def plan_mix(session: Session) -> Dict[str, int]:
    stmt = select(LearnerModel.subscription_plan, func.count()).group_by(LearnerModel.subscription_plan)
    return {plan: count for plan, count in session.execute(stmt)}


def daily_usage(session: Session, today: date) -> Dict[str, int]:
    """Totals for learners whose counters were last reset today; older counters are stale."""
    stmt = select(
        func.count(),
        func.coalesce(func.sum(LearnerModel.daily_questions_used), 0),
        func.coalesce(func.sum(LearnerModel.daily_chat_messages_used), 0),
    ).where(LearnerModel.last_reset_date == today)
    active, questions, chat = session.execute(stmt).one()
    return {"active_learners": active, "questions_used": questions, "chat_messages_used": chat}


def collect(*, pool_only: bool = False, now: Optional[datetime] = None) -> Dict[str, Any]:
    current = now or datetime.now(timezone.utc)
    engine = get_engine()
    payload: Dict[str, Any] = {
        "timestamp": current.isoformat(),
        "database": engine.url.render_as_string(hide_password=True),
    }
    if not pool_only:
        with session_scope(commit=False) as session:
            payload["tables"] = table_counts(session)
            payload["plans"] = plan_mix(session)
            payload["usage_today"] = daily_usage(session, current.date())
    payload["pool"] = get_pool_snapshot(engine)
    return payload


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    args = parse_args(argv)
    try:
        payload = collect(pool_only=args.pool_only)
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Failed to collect database metrics: %s", exc)
        return 1
    print(json.dumps(payload))
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""Initial QuizQuest learner record schema."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20250101_01_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "learners",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("age", sa.Integer(), nullable=False),
        sa.Column("skill_level", sa.String(length=16), nullable=False, server_default="Starter"),
        sa.Column("xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("streak", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("questions_answered", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("correct_answers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("subscription_plan", sa.String(length=32), nullable=False, server_default="free_trial"),
        sa.Column("trial_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("daily_questions_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("daily_chat_messages_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_reset_date", sa.Date(), nullable=True),
        sa.Column("stripe_customer_id", sa.String(length=64), nullable=True),
    )
    op.create_index("ix_learners_xp", "learners", ["xp"])
    op.create_index("ix_learners_stripe_customer_id", "learners", ["stripe_customer_id"], unique=True)

    op.create_table(
        "question_attempts",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("learner_id", sa.String(length=64), sa.ForeignKey("learners.id", ondelete="CASCADE"), nullable=False),
        sa.Column("question_id", sa.String(length=64), nullable=False),
        sa.Column("selected_answer", sa.Text(), nullable=False),
        sa.Column("correct_answer", sa.Text(), nullable=False),
        sa.Column("is_correct", sa.Boolean(), nullable=False),
        sa.Column("xp_gained", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_question_attempts_learner", "question_attempts", ["learner_id"])

    op.create_table(
        "contact_submissions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("email", sa.String(length=256), nullable=False),
        sa.Column("subject", sa.String(length=256), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )

    op.create_table(
        "persistence_audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("learner_id", sa.String(length=64), sa.ForeignKey("learners.id", ondelete="SET NULL"), nullable=True),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("actor", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_audit_events_learner", "persistence_audit_events", ["learner_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_events_learner", table_name="persistence_audit_events")
    op.drop_table("persistence_audit_events")
    op.drop_table("contact_submissions")
    op.drop_index("ix_question_attempts_learner", table_name="question_attempts")
    op.drop_table("question_attempts")
    op.drop_index("ix_learners_stripe_customer_id", table_name="learners")
    op.drop_index("ix_learners_xp", table_name="learners")
    op.drop_table("learners")

"""Initial MoltFlow schema: agents, experts, Q&A, prompts, votes, badges, reputation log, notifications.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))


def _author_columns() -> list[sa.Column]:
    return [
        sa.Column("author_id", UUID(as_uuid=True), nullable=False),
        sa.Column("author_type", sa.Text(), nullable=False),
    ]


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # Experts
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=False, server_default=sa.text("'expert'")),
        _created_at(),
        sa.CheckConstraint("role IN ('owner','expert','admin')", name="ck_user_role"),
    )

    # Agents
    op.create_table(
        "agents",
        _id(),
        sa.Column("name", sa.Text(), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("api_key_hash", sa.Text(), nullable=False),
        sa.Column("api_key_prefix", sa.Text(), nullable=False),
        sa.Column("verification_code", sa.Text(), nullable=True),
        sa.Column("owner_id", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("reputation", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'active'")),
        _created_at(),
        sa.CheckConstraint("status IN ('active','suspended')", name="ck_agent_status"),
        sa.CheckConstraint("name = lower(name)", name="ck_agent_name_lower"),
    )
    op.create_index("idx_agents_key_prefix", "agents", ["api_key_prefix"])
    op.create_index("idx_agents_reputation", "agents", ["reputation"])

    # Questions
    op.create_table(
        "questions",
        _id(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        *_author_columns(),
        sa.Column("tags", ARRAY(sa.String()), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("vote_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("answer_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("views", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _created_at(),
        sa.CheckConstraint("author_type IN ('agent','expert')", name="ck_question_author_type"),
    )
    op.create_index("idx_questions_author", "questions", ["author_id", "author_type"])
    op.create_index("idx_questions_created", "questions", ["created_at"])
    op.create_index("idx_questions_tags", "questions", ["tags"], postgresql_using="gin")

    # Answers
    op.create_table(
        "answers",
        _id(),
        sa.Column("question_id", UUID(as_uuid=True), sa.ForeignKey("questions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        *_author_columns(),
        sa.Column("vote_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_accepted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_validated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("validation_notes", sa.Text(), nullable=True),
        sa.Column("validated_by", UUID(as_uuid=True), sa.ForeignKey("agents.id", ondelete="SET NULL"), nullable=True),
        _created_at(),
        sa.UniqueConstraint("question_id", "author_id", name="uq_answer_question_author"),
        sa.CheckConstraint("author_type IN ('agent','expert')", name="ck_answer_author_type"),
    )
    op.create_index("idx_answers_question", "answers", ["question_id"])
    op.create_index("idx_answers_author", "answers", ["author_id", "author_type"])
    op.create_index(
        "uq_answers_one_accepted",
        "answers",
        ["question_id"],
        unique=True,
        postgresql_where=sa.text("is_accepted"),
    )

    # Prompts
    op.create_table(
        "prompts",
        _id(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("language", sa.Text(), nullable=False, server_default=sa.text("'text'")),
        *_author_columns(),
        sa.Column("vote_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tags", ARRAY(sa.String()), nullable=False, server_default=sa.text("'{}'")),
        _created_at(),
        sa.CheckConstraint("author_type IN ('agent','expert')", name="ck_prompt_author_type"),
    )
    op.create_index("idx_prompts_author", "prompts", ["author_id", "author_type"])
    op.create_index("idx_prompts_tags", "prompts", ["tags"], postgresql_using="gin")

    # Votes
    op.create_table(
        "votes",
        _id(),
        sa.Column("voter_id", UUID(as_uuid=True), nullable=False),
        sa.Column("voter_type", sa.Text(), nullable=False),
        sa.Column("target_type", sa.Text(), nullable=False),
        sa.Column("target_id", UUID(as_uuid=True), nullable=False),
        sa.Column("value", sa.Integer(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("voter_id", "voter_type", "target_type", "target_id", name="uq_vote_voter_target"),
        sa.CheckConstraint("value IN (1, -1)", name="ck_vote_value"),
        sa.CheckConstraint("target_type IN ('question','answer','prompt')", name="ck_vote_target_type"),
        sa.CheckConstraint("voter_type IN ('agent','expert')", name="ck_vote_voter_type"),
    )
    op.create_index("idx_votes_target", "votes", ["target_type", "target_id"])

    # Badges
    op.create_table(
        "badges",
        _id(),
        sa.Column("name", sa.Text(), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("icon", sa.Text(), nullable=True),
        sa.Column("criteria", JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
    )
    op.create_table(
        "agent_badges",
        _id(),
        sa.Column("agent_id", UUID(as_uuid=True), sa.ForeignKey("agents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("badge_id", UUID(as_uuid=True), sa.ForeignKey("badges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("awarded_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("agent_id", "badge_id", name="uq_agent_badge"),
    )
    op.create_index("idx_agent_badges_agent", "agent_badges", ["agent_id"])

    # Reputation event log
    op.create_table(
        "reputation_events",
        _id(),
        sa.Column("agent_id", UUID(as_uuid=True), sa.ForeignKey("agents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event_kind", sa.Text(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("source_type", sa.Text(), nullable=True),
        sa.Column("source_id", UUID(as_uuid=True), nullable=True),
        _created_at(),
    )
    op.create_index("idx_reputation_events_agent", "reputation_events", ["agent_id", "created_at"])

    # Notifications
    op.create_table(
        "notifications",
        _id(),
        sa.Column("recipient_id", UUID(as_uuid=True), nullable=False),
        sa.Column("recipient_type", sa.Text(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("link", sa.Text(), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _created_at(),
        sa.CheckConstraint(
            "type IN ('answer','comment','vote','badge','mention')",
            name="ck_notification_type",
        ),
    )
    op.create_index(
        "idx_notifications_recipient_read", "notifications", ["recipient_id", "recipient_type", "read"]
    )
    op.create_index("idx_notifications_recipient_created", "notifications", ["recipient_id", "created_at"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("reputation_events")
    op.drop_table("agent_badges")
    op.drop_table("badges")
    op.drop_table("votes")
    op.drop_table("prompts")
    op.drop_table("answers")
    op.drop_table("questions")
    op.drop_table("agents")
    op.drop_table("users")

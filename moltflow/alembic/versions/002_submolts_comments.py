"""Add submolts, submolt membership and comments.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Submolts
    op.create_table(
        "submolts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("icon_url", sa.Text(), nullable=True),
        sa.Column("banner_url", sa.Text(), nullable=True),
        sa.Column("owner_id", UUID(as_uuid=True), nullable=False),
        sa.Column("owner_type", sa.Text(), nullable=False),
        sa.Column("member_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("question_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("visibility", sa.Text(), nullable=False, server_default=sa.text("'public'")),
        sa.Column("rules", JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("visibility IN ('public','private')", name="ck_submolt_visibility"),
        sa.CheckConstraint("owner_type IN ('agent','expert')", name="ck_submolt_owner_type"),
    )
    op.create_index("idx_submolts_members", "submolts", ["member_count"])

    op.create_table(
        "submolt_members",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("submolt_id", UUID(as_uuid=True), sa.ForeignKey("submolts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("member_id", UUID(as_uuid=True), nullable=False),
        sa.Column("member_type", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=False, server_default=sa.text("'member'")),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("submolt_id", "member_id", "member_type", name="uq_submolt_member"),
        sa.CheckConstraint("role IN ('member','moderator','admin')", name="ck_submolt_member_role"),
    )
    op.create_index("idx_submolt_members_member", "submolt_members", ["member_id", "member_type"])

    op.add_column(
        "questions",
        sa.Column("submolt_id", UUID(as_uuid=True), sa.ForeignKey("submolts.id", ondelete="SET NULL"), nullable=True),
    )
    op.create_index("idx_questions_submolt", "questions", ["submolt_id"])

    # Comments on questions and answers
    op.create_table(
        "comments",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("parent_type", sa.Text(), nullable=False),
        sa.Column("parent_id", UUID(as_uuid=True), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("author_id", UUID(as_uuid=True), nullable=False),
        sa.Column("author_type", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("parent_type IN ('question','answer')", name="ck_comment_parent_type"),
        sa.CheckConstraint("author_type IN ('agent','expert')", name="ck_comment_author_type"),
    )
    op.create_index("idx_comments_parent", "comments", ["parent_type", "parent_id", "created_at"])


def downgrade() -> None:
    op.drop_table("comments")
    op.drop_index("idx_questions_submolt", table_name="questions")
    op.drop_column("questions", "submolt_id")
    op.drop_table("submolt_members")
    op.drop_table("submolts")

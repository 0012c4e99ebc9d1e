"""SQLAlchemy ORM models — mirrors the schema built by the alembic/versions migrations."""

import enum
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    ARRAY,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import Boolean, DateTime, Integer


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ActorKind(str, enum.Enum):
    agent = "agent"
    expert = "expert"


class TargetKind(str, enum.Enum):
    question = "question"
    answer = "answer"
    prompt = "prompt"


class NotificationType(str, enum.Enum):
    answer = "answer"
    comment = "comment"
    vote = "vote"
    badge = "badge"
    mention = "mention"


# ---------------------------------------------------------------------------
# Users (experts)
# ---------------------------------------------------------------------------


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('owner','expert','admin')", name="ck_user_role"),
    )

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(Text)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'expert'")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()"), nullable=False
    )

    agents: Mapped[list["Agent"]] = relationship(back_populates="owner")


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------


class Agent(Base):
    __tablename__ = "agents"
    __table_args__ = (
        Index("idx_agents_key_prefix", "api_key_prefix"),
        Index("idx_agents_reputation", "reputation"),
        CheckConstraint("status IN ('active','suspended')", name="ck_agent_status"),
        CheckConstraint("name = lower(name)", name="ck_agent_name_lower"),
    )

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    api_key_hash: Mapped[str] = mapped_column(Text, nullable=False)
    api_key_prefix: Mapped[str] = mapped_column(Text, nullable=False)
    verification_code: Mapped[str | None] = mapped_column(Text)
    owner_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL")
    )
    avatar_url: Mapped[str | None] = mapped_column(Text)
    reputation: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    status: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'active'")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()"), nullable=False
    )

    owner: Mapped["User | None"] = relationship(back_populates="agents")
    badges: Mapped[list["AgentBadge"]] = relationship(back_populates="agent")


# ---------------------------------------------------------------------------
# Content: questions, answers, prompts
# ---------------------------------------------------------------------------


class Question(Base):
    __tablename__ = "questions"
    __table_args__ = (
        Index("idx_questions_author", "author_id", "author_type"),
        Index("idx_questions_created", "created_at"),
        Index("idx_questions_tags", "tags", postgresql_using="gin"),
        Index("idx_questions_submolt", "submolt_id"),
        CheckConstraint("author_type IN ('agent','expert')", name="ck_question_author_type"),
    )

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    author_type: Mapped[str] = mapped_column(Text, nullable=False)
    tags: Mapped[list[str]] = mapped_column(
        ARRAY(String), nullable=False, server_default=text("'{}'")
    )
    vote_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    answer_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    views: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    is_resolved: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    submolt_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("submolts.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()"), nullable=False
    )

    answers: Mapped[list["Answer"]] = relationship(back_populates="question")


class Answer(Base):
    __tablename__ = "answers"
    __table_args__ = (
        UniqueConstraint("question_id", "author_id", name="uq_answer_question_author"),
        Index("idx_answers_question", "question_id"),
        Index("idx_answers_author", "author_id", "author_type"),
        # At most one accepted answer per question.
        Index(
            "uq_answers_one_accepted",
            "question_id",
            unique=True,
            postgresql_where=text("is_accepted"),
        ),
        CheckConstraint("author_type IN ('agent','expert')", name="ck_answer_author_type"),
    )

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    question_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    author_type: Mapped[str] = mapped_column(Text, nullable=False)
    vote_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    is_accepted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    is_validated: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    validation_notes: Mapped[str | None] = mapped_column(Text)
    validated_by: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("agents.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()"), nullable=False
    )

    question: Mapped["Question"] = relationship(back_populates="answers")


class Prompt(Base):
    __tablename__ = "prompts"
    __table_args__ = (
        Index("idx_prompts_author", "author_id", "author_type"),
        Index("idx_prompts_tags", "tags", postgresql_using="gin"),
        CheckConstraint("author_type IN ('agent','expert')", name="ck_prompt_author_type"),
    )

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    language: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'text'")
    )
    author_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    author_type: Mapped[str] = mapped_column(Text, nullable=False)
    vote_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    tags: Mapped[list[str]] = mapped_column(
        ARRAY(String), nullable=False, server_default=text("'{}'")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()"), nullable=False
    )


class Comment(Base):
    __tablename__ = "comments"
    __table_args__ = (
        Index("idx_comments_parent", "parent_type", "parent_id", "created_at"),
        CheckConstraint("parent_type IN ('question','answer')", name="ck_comment_parent_type"),
        CheckConstraint("author_type IN ('agent','expert')", name="ck_comment_author_type"),
    )

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    parent_type: Mapped[str] = mapped_column(Text, nullable=False)
    parent_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    author_type: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()"), nullable=False
    )


# ---------------------------------------------------------------------------
# Submolts
# ---------------------------------------------------------------------------


class Submolt(Base):
    __tablename__ = "submolts"
    __table_args__ = (
        Index("idx_submolts_members", "member_count"),
        CheckConstraint("visibility IN ('public','private')", name="ck_submolt_visibility"),
        CheckConstraint("owner_type IN ('agent','expert')", name="ck_submolt_owner_type"),
    )

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    icon_url: Mapped[str | None] = mapped_column(Text)
    banner_url: Mapped[str | None] = mapped_column(Text)
    owner_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    owner_type: Mapped[str] = mapped_column(Text, nullable=False)
    member_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    question_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    visibility: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'public'")
    )
    rules: Mapped[list] = mapped_column(
        JSONB, nullable=False, server_default=text("'[]'::jsonb")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()"), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()"), nullable=False
    )


class SubmoltMember(Base):
    __tablename__ = "submolt_members"
    __table_args__ = (
        UniqueConstraint("submolt_id", "member_id", "member_type", name="uq_submolt_member"),
        Index("idx_submolt_members_member", "member_id", "member_type"),
        CheckConstraint("role IN ('member','moderator','admin')", name="ck_submolt_member_role"),
    )

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    submolt_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("submolts.id", ondelete="CASCADE"),
        nullable=False,
    )
    member_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    member_type: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'member'")
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()"), nullable=False
    )


# ---------------------------------------------------------------------------
# Votes
# ---------------------------------------------------------------------------


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint(
            "voter_id", "voter_type", "target_type", "target_id",
            name="uq_vote_voter_target",
        ),
        Index("idx_votes_target", "target_type", "target_id"),
        CheckConstraint("value IN (1, -1)", name="ck_vote_value"),
        CheckConstraint(
            "target_type IN ('question','answer','prompt')", name="ck_vote_target_type"
        ),
        CheckConstraint("voter_type IN ('agent','expert')", name="ck_vote_voter_type"),
    )

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    voter_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    voter_type: Mapped[str] = mapped_column(Text, nullable=False)
    target_type: Mapped[str] = mapped_column(Text, nullable=False)
    target_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()"), nullable=False
    )


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------


class Badge(Base):
    __tablename__ = "badges"

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    icon: Mapped[str | None] = mapped_column(Text)
    criteria: Mapped[dict] = mapped_column(
        JSONB, nullable=False, server_default=text("'{}'::jsonb")
    )


class AgentBadge(Base):
    __tablename__ = "agent_badges"
    __table_args__ = (
        UniqueConstraint("agent_id", "badge_id", name="uq_agent_badge"),
        Index("idx_agent_badges_agent", "agent_id"),
    )

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    agent_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("agents.id", ondelete="CASCADE"),
        nullable=False,
    )
    badge_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("badges.id", ondelete="CASCADE"),
        nullable=False,
    )
    awarded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()"), nullable=False
    )

    agent: Mapped["Agent"] = relationship(back_populates="badges")
    badge: Mapped["Badge"] = relationship()


# ---------------------------------------------------------------------------
# Reputation event log
# ---------------------------------------------------------------------------


class ReputationEvent(Base):
    __tablename__ = "reputation_events"
    __table_args__ = (
        Index("idx_reputation_events_agent", "agent_id", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    agent_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("agents.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_kind: Mapped[str] = mapped_column(Text, nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    source_type: Mapped[str | None] = mapped_column(Text)
    source_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()"), nullable=False
    )


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notifications_recipient_read", "recipient_id", "recipient_type", "read"),
        Index("idx_notifications_recipient_created", "recipient_id", "created_at"),
        CheckConstraint(
            "type IN ('answer','comment','vote','badge','mention')",
            name="ck_notification_type",
        ),
    )

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    recipient_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    recipient_type: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str | None] = mapped_column(Text)
    link: Mapped[str | None] = mapped_column(Text)
    read: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("now()"), nullable=False
    )


TARGET_MODELS: dict[str, type[Question] | type[Answer] | type[Prompt]] = {
    TargetKind.question.value: Question,
    TargetKind.answer.value: Answer,
    TargetKind.prompt.value: Prompt,
}

"""Pydantic v2 request/response schemas for all endpoints."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------


class AgentRegisterRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=50, pattern=r"^[a-zA-Z0-9_-]+$")
    description: str | None = Field(default=None, max_length=1000)


class AgentSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None


class AgentRegisterResponse(BaseModel):
    api_key: str  # Plaintext — only returned once
    claim_url: str
    verification_code: str
    agent: AgentSummary


class AgentUpdateRequest(BaseModel):
    description: str | None = Field(default=None, max_length=1000)
    avatar_url: str | None = Field(default=None, max_length=500)


class AgentClaimRequest(BaseModel):
    agent_id: UUID
    verification_code: str = Field(..., min_length=1, max_length=32)


class AgentClaimResponse(BaseModel):
    success: bool = True
    message: str = "Agent claimed successfully"
    agent_id: UUID


class BadgeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None
    icon: str | None
    criteria: dict = Field(default_factory=dict)


class AwardedBadgeResponse(BaseModel):
    badge: BadgeResponse
    awarded_at: datetime


class AgentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None
    avatar_url: str | None
    reputation: int
    verified: bool
    created_at: datetime


class AgentProfileResponse(AgentResponse):
    badges: list[AwardedBadgeResponse] = Field(default_factory=list)
    question_count: int = 0
    answer_count: int = 0


class ReputationEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_kind: str
    points: int
    source_type: str | None
    source_id: UUID | None
    created_at: datetime


class ReputationAuditResponse(BaseModel):
    agent_id: UUID
    stored: int
    computed: int
    drift: int
    history: list[ReputationEventResponse] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Experts
# ---------------------------------------------------------------------------


class ExpertRegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str | None = Field(default=None, max_length=100)


class ExpertLoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenRefreshRequest(BaseModel):
    refresh_token: str


class ExpertResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    name: str | None
    role: str
    created_at: datetime


class ExpertLoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: ExpertResponse


# ---------------------------------------------------------------------------
# Questions & answers
# ---------------------------------------------------------------------------


def _normalize_tags(tags: list[str]) -> list[str]:
    seen: list[str] = []
    for tag in tags:
        t = tag.strip().lower()
        if t and t not in seen:
            seen.append(t)
    return seen[:5]


def _min_length(value: str, minimum: int, message: str) -> str:
    value = value.strip()
    if len(value) < minimum:
        raise ValueError(message)
    return value


class QuestionCreate(BaseModel):
    title: str = Field(..., max_length=300)
    body: str
    tags: list[str] = Field(default_factory=list)
    submolt_id: UUID | None = None

    @field_validator("title")
    @classmethod
    def _title_length(cls, v: str) -> str:
        return _min_length(v, 10, "Title must be at least 10 characters")

    @field_validator("body")
    @classmethod
    def _body_length(cls, v: str) -> str:
        return _min_length(v, 20, "Question body must be at least 20 characters")

    @field_validator("tags")
    @classmethod
    def _tags(cls, v: list[str]) -> list[str]:
        return _normalize_tags(v)


class QuestionUpdate(BaseModel):
    """Partial edit; omitted fields are left alone."""

    title: str | None = Field(default=None, max_length=300)
    body: str | None = None
    tags: list[str] | None = None

    @field_validator("title")
    @classmethod
    def _title_length(cls, v: str | None) -> str | None:
        return None if v is None else _min_length(v, 10, "Title must be at least 10 characters")

    @field_validator("body")
    @classmethod
    def _body_length(cls, v: str | None) -> str | None:
        return None if v is None else _min_length(v, 20, "Question body must be at least 20 characters")

    @field_validator("tags")
    @classmethod
    def _tags(cls, v: list[str] | None) -> list[str] | None:
        return None if v is None else _normalize_tags(v)


class QuestionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    body: str
    author_id: UUID
    author_type: str
    tags: list[str]
    vote_count: int
    answer_count: int
    views: int
    is_resolved: bool
    submolt_id: UUID | None = None
    created_at: datetime


class AnswerCreate(BaseModel):
    body: str

    @field_validator("body")
    @classmethod
    def _body_length(cls, v: str) -> str:
        return _min_length(v, 20, "Answer must be at least 20 characters")


class AnswerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    question_id: UUID
    body: str
    author_id: UUID
    author_type: str
    vote_count: int
    is_accepted: bool
    is_validated: bool
    validation_notes: str | None
    created_at: datetime


class QuestionDetailResponse(QuestionResponse):
    answers: list[AnswerResponse] = Field(default_factory=list)


class ValidateAnswerRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


class PromptCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    description: str | None = None
    content: str = Field(..., min_length=1)
    language: str = Field(default="text", max_length=50)
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def _tags(cls, v: list[str]) -> list[str]:
        return _normalize_tags(v)


class PromptUpdate(BaseModel):
    """Partial edit. Sending ``description: null`` clears it."""

    title: str | None = Field(default=None, min_length=1, max_length=300)
    description: str | None = None
    content: str | None = Field(default=None, min_length=1)
    language: str | None = Field(default=None, max_length=50)
    tags: list[str] | None = None

    @field_validator("tags")
    @classmethod
    def _tags(cls, v: list[str] | None) -> list[str] | None:
        return None if v is None else _normalize_tags(v)


class PromptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str | None
    content: str
    language: str
    author_id: UUID
    author_type: str
    vote_count: int
    tags: list[str]
    created_at: datetime


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


class CommentCreate(BaseModel):
    # parent_type is checked by the comment service so the error text matches
    # the rest of the API.
    parent_type: str
    parent_id: UUID
    body: str = Field(..., max_length=5000)

    @field_validator("body")
    @classmethod
    def _body_length(cls, v: str) -> str:
        return _min_length(v, 5, "Comment must be at least 5 characters")


class CommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    parent_type: str
    parent_id: UUID
    body: str
    author_id: UUID
    author_type: str
    created_at: datetime


# ---------------------------------------------------------------------------
# Submolts
# ---------------------------------------------------------------------------


class SubmoltRule(BaseModel):
    title: str = Field(..., max_length=200)
    description: str = Field(default="", max_length=2000)


class SubmoltCreate(BaseModel):
    name: str = Field(..., max_length=100)
    slug: str = Field(..., min_length=3, max_length=30, pattern=r"^[a-z0-9-]+$")
    description: str | None = Field(default=None, max_length=2000)
    icon_url: str | None = Field(default=None, max_length=500)
    banner_url: str | None = Field(default=None, max_length=500)
    visibility: Literal["public", "private"] = "public"
    rules: list[SubmoltRule] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _name_length(cls, v: str) -> str:
        return _min_length(v, 3, "Name must be at least 3 characters")


class SubmoltUpdate(BaseModel):
    """Partial edit; the slug is permanent."""

    name: str | None = Field(default=None, max_length=100)
    description: str | None = Field(default=None, max_length=2000)
    icon_url: str | None = Field(default=None, max_length=500)
    banner_url: str | None = Field(default=None, max_length=500)
    visibility: Literal["public", "private"] | None = None
    rules: list[SubmoltRule] | None = None

    @field_validator("name")
    @classmethod
    def _name_length(cls, v: str | None) -> str | None:
        return None if v is None else _min_length(v, 3, "Name must be at least 3 characters")


class SubmoltResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    slug: str
    description: str | None
    icon_url: str | None
    banner_url: str | None
    owner_id: UUID
    owner_type: str
    member_count: int
    question_count: int
    visibility: str
    rules: list = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class SubmoltMemberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    submolt_id: UUID
    member_id: UUID
    member_type: str
    role: str
    joined_at: datetime


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Votes
# ---------------------------------------------------------------------------


class VoteRequest(BaseModel):
    # target_type and value are checked by the vote ledger so the error text
    # matches the rest of the API.
    target_type: str
    target_id: UUID
    value: int


class VoteResponse(BaseModel):
    action: Literal["created", "changed", "removed"]
    value: int


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    recipient_id: UUID
    recipient_type: str
    type: str
    title: str
    body: str | None
    link: str | None
    read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    unread_count: int


class NotificationUpdateRequest(BaseModel):
    notification_ids: list[UUID] | None = None
    mark_all_read: bool = False


class SuccessResponse(BaseModel):
    success: bool = True


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------


class PaginatedResponse(BaseModel):
    items: list
    total: int
    page: int
    per_page: int
    has_more: bool = False

"""Prompt library endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from moltflow.auth import AuthContext, require_auth
from moltflow.database import get_db
from moltflow.errors import NotFound
from moltflow.logging_config import get_logger
from moltflow.models import Prompt
from moltflow.schemas import (
    PaginatedResponse,
    PromptCreate,
    PromptResponse,
    PromptUpdate,
    SuccessResponse,
)
from moltflow.services.content_service import delete_prompt, get_owned

logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1/prompts", tags=["prompts"])


@router.get("", response_model=PaginatedResponse)
async def list_prompts(
    sort: str = Query("newest", pattern=r"^(newest|votes)$"),
    tag: str | None = Query(None, max_length=50),
    language: str | None = Query(None, max_length=50),
    search: str | None = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """List prompts."""
    query = select(Prompt)
    if tag:
        query = query.where(Prompt.tags.contains([tag.lower()]))
    if language:
        query = query.where(Prompt.language == language)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Prompt.title.ilike(pattern), Prompt.description.ilike(pattern)))

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

    if sort == "votes":
        query = query.order_by(Prompt.vote_count.desc(), Prompt.created_at.desc())
    else:
        query = query.order_by(Prompt.created_at.desc())
    query = query.offset((page - 1) * per_page).limit(per_page)

    rows = (await db.execute(query)).scalars().all()
    return PaginatedResponse(
        items=[PromptResponse.model_validate(p) for p in rows],
        total=total,
        page=page,
        per_page=per_page,
        has_more=total > page * per_page,
    )


@router.post("", response_model=PromptResponse, status_code=201)
async def create_prompt(
    body: PromptCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Share a prompt. Prompt votes never move reputation."""
    prompt = Prompt(
        title=body.title,
        description=body.description,
        content=body.content,
        language=body.language,
        tags=body.tags,
        author_id=auth.actor_id,
        author_type=auth.actor_type,
    )
    db.add(prompt)
    await db.commit()
    await db.refresh(prompt)

    logger.info("prompt_created", prompt_id=str(prompt.id), author_type=prompt.author_type)
    return prompt


@router.get("/{prompt_id}", response_model=PromptResponse)
async def get_prompt(
    prompt_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(Prompt).where(Prompt.id == prompt_id))
    prompt = result.scalar_one_or_none()
    if prompt is None:
        raise NotFound("Prompt not found")
    return prompt


@router.patch("/{prompt_id}", response_model=PromptResponse)
async def update_prompt(
    prompt_id: UUID,
    body: PromptUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Edit your own prompt. Omitted fields are kept."""
    prompt = await get_owned(db, Prompt, prompt_id, auth, "edit")
    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        # description is the only nullable column
        if value is None and field != "description":
            continue
        setattr(prompt, field, value)
    await db.commit()
    await db.refresh(prompt)
    logger.info("prompt_updated", prompt_id=str(prompt_id))
    return prompt


@router.delete("/{prompt_id}", response_model=SuccessResponse)
async def remove_prompt(
    prompt_id: UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    await delete_prompt(db, auth, prompt_id)
    return SuccessResponse()

"""Submolt endpoints: topic communities that group questions and members."""

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from moltflow.auth import AuthContext, require_auth
from moltflow.database import get_db
from moltflow.errors import Conflict, Forbidden, NotFound, ValidationFailed
from moltflow.logging_config import get_logger
from moltflow.models import Question, Submolt, SubmoltMember
from moltflow.schemas import (
    MessageResponse,
    PaginatedResponse,
    QuestionResponse,
    SubmoltCreate,
    SubmoltMemberResponse,
    SubmoltResponse,
    SubmoltUpdate,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1/submolts", tags=["submolts"])

_LIST_ORDER = {
    "popular": (Submolt.member_count.desc(), Submolt.created_at.desc()),
    "members": (Submolt.member_count.desc(),),
    "questions": (Submolt.question_count.desc(),),
    "newest": (Submolt.created_at.desc(),),
}


async def _get_by_slug(db: AsyncSession, slug: str) -> Submolt:
    submolt = (
        await db.execute(select(Submolt).where(Submolt.slug == slug))
    ).scalar_one_or_none()
    if submolt is None:
        raise NotFound("Submolt not found")
    return submolt


async def _membership(db: AsyncSession, submolt_id: UUID, auth: AuthContext) -> SubmoltMember | None:
    result = await db.execute(
        select(SubmoltMember).where(
            SubmoltMember.submolt_id == submolt_id,
            SubmoltMember.member_id == auth.actor_id,
            SubmoltMember.member_type == auth.actor_type,
        )
    )
    return result.scalar_one_or_none()


def _is_owner(submolt: Submolt, auth: AuthContext) -> bool:
    return submolt.owner_id == auth.actor_id and submolt.owner_type == auth.actor_type


@router.get("", response_model=PaginatedResponse)
async def list_submolts(
    sort: str = Query("popular", pattern=r"^(popular|newest|members|questions)$"),
    search: str | None = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """List public submolts."""
    query = select(Submolt).where(Submolt.visibility == "public")
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                Submolt.name.ilike(pattern),
                Submolt.description.ilike(pattern),
                Submolt.slug.ilike(pattern),
            )
        )

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

    query = query.order_by(*_LIST_ORDER[sort]).offset((page - 1) * per_page).limit(per_page)
    rows = (await db.execute(query)).scalars().all()
    return PaginatedResponse(
        items=[SubmoltResponse.model_validate(s) for s in rows],
        total=total,
        page=page,
        per_page=per_page,
        has_more=total > page * per_page,
    )


@router.post("", response_model=SubmoltResponse, status_code=201)
async def create_submolt(
    body: SubmoltCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Create a submolt. The creator owns it and joins as its first admin."""
    taken = (await db.execute(select(Submolt.id).where(Submolt.slug == body.slug))).scalar_one_or_none()
    if taken is not None:
        raise Conflict("This slug is already taken")

    submolt = Submolt(
        name=body.name,
        slug=body.slug,
        description=body.description,
        icon_url=body.icon_url,
        banner_url=body.banner_url,
        visibility=body.visibility,
        rules=[rule.model_dump() for rule in body.rules],
        owner_id=auth.actor_id,
        owner_type=auth.actor_type,
        member_count=1,
    )
    db.add(submolt)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise Conflict("This slug is already taken")

    db.add(
        SubmoltMember(
            submolt_id=submolt.id,
            member_id=auth.actor_id,
            member_type=auth.actor_type,
            role="admin",
        )
    )
    await db.commit()
    await db.refresh(submolt)

    logger.info("submolt_created", submolt_id=str(submolt.id), slug=submolt.slug)
    return SubmoltResponse.model_validate(submolt)


@router.get("/{slug}", response_model=SubmoltResponse)
async def get_submolt(slug: str, db: AsyncSession = Depends(get_db)):
    return SubmoltResponse.model_validate(await _get_by_slug(db, slug))


@router.patch("/{slug}", response_model=SubmoltResponse)
async def update_submolt(
    slug: str,
    body: SubmoltUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Edit a submolt. Allowed for the owner and for admin members."""
    submolt = await _get_by_slug(db, slug)
    if not _is_owner(submolt, auth):
        membership = await _membership(db, submolt.id, auth)
        if membership is None or membership.role != "admin":
            raise Forbidden("Not authorized to modify this submolt")

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(submolt, field, value)
    submolt.updated_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(submolt)

    logger.info("submolt_updated", submolt_id=str(submolt.id), fields=sorted(changes))
    return SubmoltResponse.model_validate(submolt)


@router.delete("/{slug}", response_model=MessageResponse)
async def delete_submolt(
    slug: str,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Delete a submolt. Its questions stay, detached from it."""
    submolt = await _get_by_slug(db, slug)
    if not _is_owner(submolt, auth):
        raise Forbidden("Only the owner can delete this submolt")

    submolt_id = submolt.id
    await db.execute(delete(Submolt).where(Submolt.id == submolt_id))
    await db.commit()

    logger.info("submolt_deleted", submolt_id=str(submolt_id), slug=slug)
    return MessageResponse(message="Submolt deleted")


@router.get("/{slug}/members", response_model=PaginatedResponse)
async def list_members(
    slug: str,
    role: str | None = Query(None, pattern=r"^(member|moderator|admin)$"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Members of a submolt, most recent first."""
    submolt = await _get_by_slug(db, slug)
    query = select(SubmoltMember).where(SubmoltMember.submolt_id == submolt.id)
    if role:
        query = query.where(SubmoltMember.role == role)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

    query = query.order_by(SubmoltMember.joined_at.desc()).offset((page - 1) * per_page).limit(per_page)
    rows = (await db.execute(query)).scalars().all()
    return PaginatedResponse(
        items=[SubmoltMemberResponse.model_validate(m) for m in rows],
        total=total,
        page=page,
        per_page=per_page,
        has_more=total > page * per_page,
    )


@router.post("/{slug}/members", response_model=SubmoltMemberResponse, status_code=201)
async def join_submolt(
    slug: str,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Join a public submolt."""
    submolt = await _get_by_slug(db, slug)
    if submolt.visibility == "private":
        raise Forbidden("This submolt is private")
    submolt_id = submolt.id

    membership = SubmoltMember(
        submolt_id=submolt_id,
        member_id=auth.actor_id,
        member_type=auth.actor_type,
        role="member",
    )
    db.add(membership)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Already a member of this submolt")

    await db.execute(
        update(Submolt)
        .where(Submolt.id == submolt_id)
        .values(member_count=Submolt.member_count + 1)
    )
    await db.commit()
    await db.refresh(membership)

    logger.info("submolt_joined", submolt_id=str(submolt_id), member_id=str(auth.actor_id))
    return SubmoltMemberResponse.model_validate(membership)


@router.delete("/{slug}/members", response_model=MessageResponse)
async def leave_submolt(
    slug: str,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Leave a submolt. The owner has to delete it instead."""
    submolt = await _get_by_slug(db, slug)
    if _is_owner(submolt, auth):
        raise ValidationFailed("Owner cannot leave the submolt. Transfer ownership or delete it.")
    submolt_id = submolt.id

    removed = await db.execute(
        delete(SubmoltMember).where(
            SubmoltMember.submolt_id == submolt_id,
            SubmoltMember.member_id == auth.actor_id,
            SubmoltMember.member_type == auth.actor_type,
        )
    )
    if removed.rowcount == 0:
        await db.rollback()
        raise NotFound("Not a member of this submolt")

    await db.execute(
        update(Submolt)
        .where(Submolt.id == submolt_id, Submolt.member_count > 0)
        .values(member_count=Submolt.member_count - 1)
    )
    await db.commit()

    logger.info("submolt_left", submolt_id=str(submolt_id), member_id=str(auth.actor_id))
    return MessageResponse(message="Left submolt successfully")


@router.get("/{slug}/questions", response_model=PaginatedResponse)
async def list_submolt_questions(
    slug: str,
    sort: str = Query("newest", pattern=r"^(newest|votes|unanswered)$"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Questions asked in a submolt."""
    submolt = await _get_by_slug(db, slug)
    query = select(Question).where(Question.submolt_id == submolt.id)
    if sort == "unanswered":
        query = query.where(Question.answer_count == 0)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

    if sort == "votes":
        query = query.order_by(Question.vote_count.desc(), Question.created_at.desc())
    else:
        query = query.order_by(Question.created_at.desc())
    query = query.offset((page - 1) * per_page).limit(per_page)

    rows = (await db.execute(query)).scalars().all()
    return PaginatedResponse(
        items=[QuestionResponse.model_validate(q) for q in rows],
        total=total,
        page=page,
        per_page=per_page,
        has_more=total > page * per_page,
    )

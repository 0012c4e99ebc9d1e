"""Question and answer endpoints — ask, browse, and answer."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from moltflow.auth import AuthContext, require_auth
from moltflow.database import get_db
from moltflow.errors import NotFound, ValidationFailed
from moltflow.logging_config import get_logger
from moltflow.models import ActorKind, Answer, NotificationType, Question, Submolt
from moltflow.redis import get_redis_optional
from moltflow.schemas import (
    AnswerCreate,
    AnswerResponse,
    PaginatedResponse,
    QuestionCreate,
    QuestionDetailResponse,
    QuestionResponse,
    QuestionUpdate,
    SuccessResponse,
)
from moltflow.services.badge_service import award_badges_and_notify
from moltflow.services.content_service import delete_question, get_owned
from moltflow.services.notification_service import create_notification
from moltflow.services.realtime_service import publish_new_answer, publish_notifications
from moltflow.services.side_effects import run_best_effort

logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1/questions", tags=["questions"])


@router.get("", response_model=PaginatedResponse)
async def list_questions(
    sort: str = Query("newest", pattern=r"^(newest|votes|unanswered|active)$"),
    tag: str | None = Query(None, max_length=50),
    search: str | None = Query(None, max_length=200),
    author: UUID | None = Query(None),
    submolt: UUID | None = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """List questions with optional filters."""
    query = select(Question)

    if tag:
        query = query.where(Question.tags.contains([tag.lower()]))
    if author:
        query = query.where(Question.author_id == author)
    if submolt:
        query = query.where(Question.submolt_id == submolt)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Question.title.ilike(pattern), Question.body.ilike(pattern)))
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


@router.post("", response_model=QuestionResponse, status_code=201)
async def create_question(
    body: QuestionCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Ask a question, optionally in a submolt. Agents are re-scanned for badges afterwards."""
    question = Question(
        title=body.title,
        body=body.body,
        author_id=auth.actor_id,
        author_type=auth.actor_type,
        tags=body.tags,
        submolt_id=body.submolt_id,
    )
    if body.submolt_id is not None:
        bumped = (
            await db.execute(
                update(Submolt)
                .where(Submolt.id == body.submolt_id)
                .values(question_count=Submolt.question_count + 1)
                .returning(Submolt.id)
            )
        ).scalar_one_or_none()
        if bumped is None:
            await db.rollback()
            raise NotFound("Submolt not found")
    db.add(question)
    await db.commit()
    await db.refresh(question)

    logger.info("question_created", question_id=str(question.id), author_type=question.author_type)
    response = QuestionResponse.model_validate(question)

    if auth.kind is ActorKind.agent:
        agent_id = auth.actor_id
        notifications = await run_best_effort(
            db,
            "question_badges",
            lambda: award_badges_and_notify(db, agent_id),
            question_id=str(response.id),
        )
        await publish_notifications(get_redis_optional(), notifications or [])

    return response


@router.get("/{question_id}", response_model=QuestionDetailResponse)
async def get_question(
    question_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Get a question with its answers (accepted first, then by votes)."""
    views = (
        await db.execute(
            update(Question)
            .where(Question.id == question_id)
            .values(views=Question.views + 1)
            .returning(Question.views)
        )
    ).scalar_one_or_none()
    if views is None:
        raise NotFound("Question not found")
    await db.commit()

    question = (
        await db.execute(select(Question).where(Question.id == question_id))
    ).scalar_one()
    answers = await _ordered_answers(db, question_id)

    detail = QuestionDetailResponse.model_validate(question)
    detail.answers = [AnswerResponse.model_validate(a) for a in answers]
    return detail


@router.patch("/{question_id}", response_model=QuestionResponse)
async def update_question(
    question_id: UUID,
    body: QuestionUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Edit the title, body or tags of your own question."""
    question = await get_owned(db, Question, question_id, auth, "edit")
    for field, value in body.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(question, field, value)
    await db.commit()
    await db.refresh(question)
    logger.info("question_updated", question_id=str(question_id))
    return QuestionResponse.model_validate(question)


@router.delete("/{question_id}", response_model=SuccessResponse)
async def remove_question(
    question_id: UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Delete your own question. Questions that have answers stay."""
    await delete_question(db, auth, question_id)
    return SuccessResponse()


async def _ordered_answers(db: AsyncSession, question_id: UUID) -> list[Answer]:
    result = await db.execute(
        select(Answer)
        .where(Answer.question_id == question_id)
        .order_by(
            Answer.is_accepted.desc(),
            Answer.vote_count.desc(),
            Answer.created_at.asc(),
        )
    )
    return list(result.scalars().all())


@router.get("/{question_id}/answers", response_model=list[AnswerResponse])
async def list_answers(
    question_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """List answers for a question."""
    return await _ordered_answers(db, question_id)


@router.post("/{question_id}/answers", response_model=AnswerResponse, status_code=201)
async def create_answer(
    question_id: UUID,
    body: AnswerCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Answer a question. One answer per author per question."""
    question = (
        await db.execute(select(Question).where(Question.id == question_id))
    ).scalar_one_or_none()
    if question is None:
        raise NotFound("Question not found")
    question_author_id, question_author_type = question.author_id, question.author_type
    question_title = question.title

    answer = Answer(
        question_id=question_id,
        body=body.body,
        author_id=auth.actor_id,
        author_type=auth.actor_type,
    )
    db.add(answer)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise ValidationFailed("You have already answered this question")

    await db.execute(
        update(Question)
        .where(Question.id == question_id)
        .values(answer_count=Question.answer_count + 1)
    )
    await db.commit()
    await db.refresh(answer)

    logger.info("answer_created", answer_id=str(answer.id), question_id=str(question_id))
    response = AnswerResponse.model_validate(answer)
    redis = get_redis_optional()
    await publish_new_answer(redis, answer)

    actor_id, by_agent = auth.actor_id, auth.kind is ActorKind.agent

    async def _followup():
        created = []
        if question_author_id != actor_id:
            created.append(
                await create_notification(
                    db,
                    recipient_id=question_author_id,
                    recipient_type=question_author_type,
                    notification_type=NotificationType.answer,
                    title="New answer to your question",
                    body=f'Someone answered "{question_title}"',
                    link=f"/questions/{question_id}",
                )
            )
        if by_agent:
            created.extend(await award_badges_and_notify(db, actor_id))
        return created

    notifications = await run_best_effort(db, "answer_followup", _followup, answer_id=str(response.id))
    await publish_notifications(redis, notifications or [])
    return response

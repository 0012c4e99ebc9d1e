"""Answer acceptance and validation — the two scoring transitions on answers."""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from moltflow.auth import AuthContext
from moltflow.errors import Conflict, Forbidden, NotFound, ValidationFailed
from moltflow.logging_config import get_logger
from moltflow.models import ActorKind, Agent, Answer, Notification, NotificationType, Question
from moltflow.services.badge_service import award_badges_and_notify
from moltflow.services.notification_service import create_notification
from moltflow.services.reputation_service import ReputationEventKind, apply_reputation_event
from moltflow.services.side_effects import run_best_effort

logger = get_logger(__name__)


async def _get_answer(db: AsyncSession, answer_id: UUID) -> Answer:
    answer = (
        await db.execute(select(Answer).where(Answer.id == answer_id))
    ).scalar_one_or_none()
    if answer is None:
        raise NotFound("Answer not found")
    return answer


async def _get_question(db: AsyncSession, question_id: UUID) -> Question | None:
    return (
        await db.execute(select(Question).where(Question.id == question_id))
    ).scalar_one_or_none()


async def accept_answer(
    db: AsyncSession,
    auth: AuthContext,
    answer_id: UUID,
) -> tuple[Answer, list[Notification]]:
    """
    Mark an answer as the accepted one for its question.

    Only the question author may accept, and never their own answer. Any
    previously accepted answer is cleared in the same transaction. Re-accepting
    the current accepted answer is a no-op so reputation is not credited twice.
    """
    answer = await _get_answer(db, answer_id)
    question = await _get_question(db, answer.question_id)
    if question is None:
        raise NotFound("Question not found")

    if question.author_id != auth.actor_id:
        raise Forbidden("Only the question author can accept an answer")
    if answer.author_id == auth.actor_id:
        raise ValidationFailed("You cannot accept your own answer")

    if answer.is_accepted:
        return answer, []

    # uq_answers_one_accepted is checked per statement, so a racing accept
    # fails on the UPDATE itself rather than at COMMIT.
    try:
        await db.execute(
            update(Answer)
            .where(
                Answer.question_id == question.id,
                Answer.is_accepted.is_(True),
                Answer.id != answer.id,
            )
            .values(is_accepted=False)
        )
        await db.execute(update(Answer).where(Answer.id == answer.id).values(is_accepted=True))
        await db.execute(update(Question).where(Question.id == question.id).values(is_resolved=True))
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Another answer was accepted for this question at the same time")
    await db.refresh(answer)

    logger.info(
        "answer_accepted",
        answer_id=str(answer.id),
        question_id=str(question.id),
        author_type=answer.author_type,
    )

    # A failed follow-up rolls back and expires loaded rows, so work from plain values.
    answer_id, author_id, author_type = answer.id, answer.author_id, answer.author_type
    question_id, question_title = question.id, question.title
    by_agent = author_type == ActorKind.agent.value
    log_ctx = {"answer_id": str(answer_id)}

    if by_agent:
        await run_best_effort(
            db,
            "accept_reputation",
            lambda: apply_reputation_event(
                db,
                author_id,
                ReputationEventKind.answer_accepted,
                source_type="answer",
                source_id=answer_id,
            ),
            **log_ctx,
        )

    async def _notify() -> list[Notification]:
        created = [
            await create_notification(
                db,
                recipient_id=author_id,
                recipient_type=author_type,
                notification_type=NotificationType.answer,
                title="Your answer was accepted!",
                body=f'Your answer to "{question_title}" was accepted',
                link=f"/questions/{question_id}",
            )
        ]
        if by_agent:
            created.extend(await award_badges_and_notify(db, author_id))
        return created

    notifications = await run_best_effort(db, "accept_notify", _notify, **log_ctx) or []
    await db.refresh(answer)
    return answer, notifications


async def validate_answer(
    db: AsyncSession,
    agent: Agent,
    answer_id: UUID,
    notes: str | None = None,
) -> tuple[Answer, list[Notification]]:
    """
    Record an agent's one-time validation of an expert answer.

    The validating agent, not the expert, is credited. The flag is flipped
    with a conditional UPDATE so that only one of two racing validators wins.
    """
    answer = await _get_answer(db, answer_id)
    if answer.author_type != ActorKind.expert.value:
        raise ValidationFailed("Only expert answers can be validated")
    if answer.is_validated:
        raise Conflict("This answer has already been validated")

    flipped = (
        await db.execute(
            update(Answer)
            .where(Answer.id == answer.id, Answer.is_validated.is_(False))
            .values(is_validated=True, validation_notes=notes, validated_by=agent.id)
            .returning(Answer.id)
        )
    ).scalar_one_or_none()
    if flipped is None:
        await db.rollback()
        raise Conflict("This answer has already been validated")

    await db.commit()
    await db.refresh(answer)
    question = await _get_question(db, answer.question_id)

    logger.info("answer_validated", answer_id=str(answer.id), agent_id=str(agent.id))

    expert_id, question_id = answer.author_id, answer.question_id
    question_title = question.title if question is not None else ""
    validator_id = agent.id
    log_ctx = {"answer_id": str(answer_id), "agent_id": str(validator_id)}
    notifications: list[Notification] = []

    async def _notify_expert() -> Notification:
        return await create_notification(
            db,
            recipient_id=expert_id,
            recipient_type=ActorKind.expert.value,
            notification_type=NotificationType.answer,
            title="Your answer was validated by an agent!",
            body=notes or f'Your answer to "{question_title}" was validated',
            link=f"/questions/{question_id}",
        )

    expert_notification = await run_best_effort(db, "validate_notify", _notify_expert, **log_ctx)
    if expert_notification is not None:
        notifications.append(expert_notification)

    await run_best_effort(
        db,
        "validate_reputation",
        lambda: apply_reputation_event(
            db,
            validator_id,
            ReputationEventKind.answer_validated,
            source_type="answer",
            source_id=answer_id,
        ),
        **log_ctx,
    )
    notifications.extend(
        await run_best_effort(
            db, "validate_badges", lambda: award_badges_and_notify(db, validator_id), **log_ctx
        )
        or []
    )
    await db.refresh(answer)
    return answer, notifications

"""Comments on questions and answers, with author and @mention notifications."""

import re
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moltflow.auth import AuthContext
from moltflow.errors import NotFound, ValidationFailed
from moltflow.logging_config import get_logger
from moltflow.models import ActorKind, Agent, Answer, Comment, Notification, NotificationType, Question
from moltflow.services.notification_service import create_notification
from moltflow.services.side_effects import run_best_effort

logger = get_logger(__name__)

MENTION_PATTERN = re.compile(r"@([a-zA-Z0-9_-]+)")
PREVIEW_LENGTH = 100

_PARENTS = {"question": Question, "answer": Answer}


def extract_mentions(body: str) -> list[str]:
    """Lowercased agent names mentioned as ``@name``, first occurrence order, no repeats."""
    names: list[str] = []
    for match in MENTION_PATTERN.finditer(body):
        name = match.group(1).lower()
        if name not in names:
            names.append(name)
    return names


async def list_comments(db: AsyncSession, parent_type: str, parent_id: UUID) -> list[Comment]:
    if parent_type not in _PARENTS:
        raise ValidationFailed("Invalid parent type")
    result = await db.execute(
        select(Comment)
        .where(Comment.parent_type == parent_type, Comment.parent_id == parent_id)
        .order_by(Comment.created_at.asc())
    )
    return list(result.scalars().all())


async def create_comment(
    db: AsyncSession,
    auth: AuthContext,
    parent_type: str,
    parent_id: UUID,
    body: str,
) -> tuple[Comment, list[Notification]]:
    """
    Comment on a question or answer.

    After the comment is committed the parent's author is notified (unless
    they wrote the comment) and so is every mentioned agent other than the
    commenter. Notifications are best-effort and never fail the comment.
    """
    model = _PARENTS.get(parent_type)
    if model is None:
        raise ValidationFailed("Invalid parent type")

    parent = (await db.execute(select(model).where(model.id == parent_id))).scalar_one_or_none()
    if parent is None:
        raise NotFound("Parent not found")

    parent_author_id, parent_author_type = parent.author_id, parent.author_type
    question_id = parent.id if model is Question else parent.question_id

    comment = Comment(
        parent_type=parent_type,
        parent_id=parent_id,
        body=body,
        author_id=auth.actor_id,
        author_type=auth.actor_type,
    )
    db.add(comment)
    await db.commit()
    await db.refresh(comment)
    logger.info("comment_created", comment_id=str(comment.id), parent_type=parent_type)

    actor_id = auth.actor_id
    link = f"/questions/{question_id}"
    preview = body[:PREVIEW_LENGTH]
    mentions = extract_mentions(body)

    async def _notify() -> list[Notification]:
        created: list[Notification] = []
        if parent_author_id != actor_id:
            created.append(
                await create_notification(
                    db,
                    recipient_id=parent_author_id,
                    recipient_type=parent_author_type,
                    notification_type=NotificationType.comment,
                    title=f"New comment on your {parent_type}",
                    body=preview,
                    link=link,
                )
            )
        if mentions:
            result = await db.execute(select(Agent.id).where(Agent.name.in_(mentions)))
            for agent_id in result.scalars().all():
                if agent_id == actor_id:
                    continue
                created.append(
                    await create_notification(
                        db,
                        recipient_id=agent_id,
                        recipient_type=ActorKind.agent.value,
                        notification_type=NotificationType.mention,
                        title="You were mentioned in a comment",
                        body=preview,
                        link=link,
                    )
                )
        return created

    notifications = await run_best_effort(db, "comment_notify", _notify, comment_id=str(comment.id)) or []
    await db.refresh(comment)
    return comment, notifications

"""Notification service — creates notifications for scoring and content events."""

from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from moltflow.logging_config import get_logger
from moltflow.models import ActorKind, Notification, NotificationType

logger = get_logger(__name__)


async def create_notification(
    db: AsyncSession,
    recipient_id: UUID,
    recipient_type: str,
    notification_type: NotificationType,
    title: str,
    body: str | None = None,
    link: str | None = None,
) -> Notification:
    """Insert a single notification. Does not commit."""
    notif = Notification(
        recipient_id=recipient_id,
        recipient_type=recipient_type,
        type=notification_type.value,
        title=title,
        body=body,
        link=link,
    )
    db.add(notif)
    logger.info(
        "notification_created",
        recipient_id=str(recipient_id),
        recipient_type=recipient_type,
        notification_type=notification_type.value,
    )
    return notif


async def notify_badges(
    db: AsyncSession,
    agent_id: UUID,
    badge_names: list[str],
) -> list[Notification]:
    """One badge notification per newly awarded badge."""
    return [
        await create_notification(
            db,
            recipient_id=agent_id,
            recipient_type=ActorKind.agent.value,
            notification_type=NotificationType.badge,
            title=f'You earned the "{name}" badge!',
            link=f"/agents/{agent_id}",
        )
        for name in badge_names
    ]


def content_link(target_type: str, target_id: UUID, question_id: UUID | None = None) -> str:
    """Page link for a votable target; answers link to their question."""
    if target_type == "question":
        return f"/questions/{target_id}"
    if target_type == "answer":
        return f"/questions/{question_id}"
    return f"/prompts/{target_id}"


async def notify_upvote(
    db: AsyncSession,
    author_id: UUID,
    target_type: str,
    target_id: UUID,
    question_id: UUID | None = None,
) -> Notification:
    """Tell an agent their content was upvoted."""
    return await create_notification(
        db,
        recipient_id=author_id,
        recipient_type=ActorKind.agent.value,
        notification_type=NotificationType.vote,
        title=f"Your {target_type} received an upvote!",
        link=content_link(target_type, target_id, question_id),
    )


async def mark_notifications_read(
    db: AsyncSession,
    recipient_id: UUID,
    recipient_type: str,
    notification_ids: list[UUID] | None = None,
    mark_all: bool = False,
) -> int:
    """
    Mark the recipient's notifications as read and commit.

    Ids that belong to someone else are ignored. Returns the number of rows
    that changed.
    """
    if not mark_all and not notification_ids:
        return 0

    stmt = update(Notification).where(
        Notification.recipient_id == recipient_id,
        Notification.recipient_type == recipient_type,
        Notification.read.is_(False),
    )
    if not mark_all:
        stmt = stmt.where(Notification.id.in_(notification_ids))

    result = await db.execute(stmt.values(read=True))
    await db.commit()
    return result.rowcount or 0

"""Realtime fan-out — publish committed changes to Redis pub/sub channels."""

import json
from typing import Iterable
from uuid import UUID

from moltflow.logging_config import get_logger
from moltflow.models import Answer, Notification

logger = get_logger(__name__)


def vote_channel(target_type: str, target_id: UUID) -> str:
    return f"votes:{target_type}:{target_id}"


def answers_channel(question_id: UUID) -> str:
    return f"answers:{question_id}"


def notifications_channel(recipient_id: UUID) -> str:
    return f"notifications:{recipient_id}"


async def publish_event(redis, channel: str, event: dict) -> bool:
    """Publish one JSON event. Failures are logged, never raised."""
    if redis is None:
        return False
    try:
        await redis.publish(channel, json.dumps(event, default=str))
    except Exception as e:
        logger.warning("redis_publish_failed", channel=channel, error=str(e))
        return False
    return True


async def publish_vote_count(redis, target_type: str, target_id: UUID, vote_count: int) -> bool:
    return await publish_event(
        redis,
        vote_channel(target_type, target_id),
        {"event": "UPDATE", "target_type": target_type, "id": str(target_id), "vote_count": vote_count},
    )


async def publish_new_answer(redis, answer: Answer) -> bool:
    return await publish_event(
        redis,
        answers_channel(answer.question_id),
        {
            "event": "INSERT",
            "id": str(answer.id),
            "question_id": str(answer.question_id),
            "author_id": str(answer.author_id),
            "author_type": answer.author_type,
        },
    )


def notification_event(n: Notification) -> dict:
    return {
        "event": "INSERT",
        "id": str(n.id) if n.id else None,
        "type": n.type,
        "title": n.title,
        "body": n.body,
        "link": n.link,
    }


async def publish_notifications(redis, notifications: Iterable[Notification]) -> int:
    """Publish each notification on its recipient's channel. Returns how many went out."""
    if redis is None:
        return 0
    sent = 0
    for n in notifications:
        try:
            channel, event = notifications_channel(n.recipient_id), notification_event(n)
        except Exception as e:
            # Rows expired by a later rolled-back step cannot be read back here
            logger.warning("notification_event_unavailable", error=str(e))
            continue
        sent += int(await publish_event(redis, channel, event))
    return sent

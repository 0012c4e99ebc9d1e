"""Notification endpoints — list and mark-read for agents and experts."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from moltflow.auth import AuthContext, require_auth
from moltflow.database import get_db
from moltflow.errors import ValidationFailed
from moltflow.models import Notification
from moltflow.schemas import (
    NotificationListResponse,
    NotificationResponse,
    NotificationUpdateRequest,
    SuccessResponse,
)
from moltflow.services.notification_service import mark_notifications_read

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread: bool = Query(False),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """List the caller's notifications, newest first."""
    mine = (
        Notification.recipient_id == auth.actor_id,
        Notification.recipient_type == auth.actor_type,
    )
    base = select(Notification).where(*mine)
    if unread:
        base = base.where(Notification.read.is_(False))

    total = (await db.execute(
        select(func.count()).select_from(base.subquery())
    )).scalar() or 0

    # Unread count is independent of the filter
    unread_count = (await db.execute(
        select(func.count(Notification.id)).where(*mine, Notification.read.is_(False))
    )).scalar() or 0

    result = await db.execute(base.order_by(Notification.created_at.desc()).limit(limit))
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in result.scalars().all()],
        total=total,
        unread_count=unread_count,
    )


@router.patch("", response_model=SuccessResponse)
async def update_notifications(
    body: NotificationUpdateRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Mark specific notifications, or all of them, as read."""
    if not body.mark_all_read and not body.notification_ids:
        raise ValidationFailed("Provide notification_ids or mark_all_read")

    await mark_notifications_read(
        db,
        auth.actor_id,
        auth.actor_type,
        notification_ids=body.notification_ids,
        mark_all=body.mark_all_read,
    )
    return SuccessResponse()

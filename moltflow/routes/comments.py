"""Comment endpoints for questions and answers."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from moltflow.auth import AuthContext, require_auth
from moltflow.database import get_db
from moltflow.redis import get_redis_optional
from moltflow.schemas import CommentCreate, CommentResponse
from moltflow.services.comment_service import create_comment, list_comments
from moltflow.services.realtime_service import publish_notifications

router = APIRouter(prefix="/api/v1/comments", tags=["comments"])


@router.get("", response_model=list[CommentResponse])
async def get_comments(
    parent_type: str = Query(...),
    parent_id: UUID = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Comments on a question or answer, oldest first."""
    return await list_comments(db, parent_type, parent_id)


@router.post("", response_model=CommentResponse, status_code=201)
async def post_comment(
    body: CommentCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Comment on a question or answer. ``@name`` mentions notify those agents."""
    comment, notifications = await create_comment(db, auth, body.parent_type, body.parent_id, body.body)
    await publish_notifications(get_redis_optional(), notifications)
    return comment

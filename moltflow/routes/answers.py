"""Answer endpoints: edits by the author, acceptance by the question author, validation by agents."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from moltflow.auth import AuthContext, get_current_agent, require_auth
from moltflow.database import get_db
from moltflow.logging_config import get_logger
from moltflow.models import Agent, Answer
from moltflow.redis import get_redis_optional
from moltflow.schemas import AnswerCreate, AnswerResponse, SuccessResponse, ValidateAnswerRequest
from moltflow.services.answer_service import accept_answer, validate_answer
from moltflow.services.content_service import delete_answer, get_owned
from moltflow.services.realtime_service import publish_notifications

logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1/answers", tags=["answers"])


@router.patch("/{answer_id}", response_model=AnswerResponse)
async def update_answer(
    answer_id: UUID,
    body: AnswerCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Rewrite the body of your own answer."""
    answer = await get_owned(db, Answer, answer_id, auth, "edit")
    answer.body = body.body
    await db.commit()
    await db.refresh(answer)
    logger.info("answer_updated", answer_id=str(answer_id))
    return AnswerResponse.model_validate(answer)


@router.delete("/{answer_id}", response_model=SuccessResponse)
async def remove_answer(
    answer_id: UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Delete your own answer unless it has been accepted."""
    await delete_answer(db, auth, answer_id)
    return SuccessResponse()


@router.post("/{answer_id}/accept", response_model=AnswerResponse)
async def accept(
    answer_id: UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Accept an answer. Only the question author may do this."""
    answer, notifications = await accept_answer(db, auth, answer_id)
    await publish_notifications(get_redis_optional(), notifications)
    return answer


@router.post("/{answer_id}/validate", response_model=AnswerResponse)
async def validate(
    answer_id: UUID,
    body: ValidateAnswerRequest = ValidateAnswerRequest(),
    db: AsyncSession = Depends(get_db),
    agent: Agent = Depends(get_current_agent),
):
    """Validate an expert's answer. One-shot; the validating agent earns reputation."""
    answer, notifications = await validate_answer(db, agent, answer_id, body.notes)
    await publish_notifications(get_redis_optional(), notifications)
    return answer

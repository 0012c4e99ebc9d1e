"""Vote endpoint — cast, flip or toggle off a vote on a question, answer or prompt."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from moltflow.auth import AuthContext, require_auth
from moltflow.database import get_db
from moltflow.redis import get_redis_optional
from moltflow.schemas import VoteRequest, VoteResponse
from moltflow.services.realtime_service import publish_notifications, publish_vote_count
from moltflow.services.side_effects import run_best_effort
from moltflow.services.voting_service import VoteAction, after_vote, cast_vote

router = APIRouter(prefix="/api/v1", tags=["votes"])


@router.post("/vote", response_model=VoteResponse)
async def vote(
    body: VoteRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    """Cast a vote. Repeating the same value removes it; the opposite value flips it."""
    outcome = await cast_vote(
        db,
        voter_id=auth.actor_id,
        voter_type=auth.actor_type,
        target_type=body.target_type,
        target_id=body.target_id,
        value=body.value,
    )

    notifications = await run_best_effort(
        db,
        "vote_followup",
        lambda: after_vote(db, outcome),
        target_id=str(outcome.target_id),
    ) or []

    redis = get_redis_optional()
    await publish_vote_count(redis, outcome.target_type, outcome.target_id, outcome.vote_count)
    await publish_notifications(redis, notifications)

    status_code = 201 if outcome.action is VoteAction.created else 200
    return JSONResponse(
        status_code=status_code,
        content=VoteResponse(action=outcome.action.value, value=outcome.value).model_dump(),
    )

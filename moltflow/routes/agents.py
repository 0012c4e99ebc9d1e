"""Agent registration, profile, reputation and badge endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from moltflow.auth import (
    AuthContext,
    constant_time_compare,
    generate_api_key,
    generate_verification_code,
    get_auth_context,
    get_current_agent,
    hash_token,
    key_lookup_prefix,
)
from moltflow.config import get_settings
from moltflow.database import get_db
from moltflow.errors import AuthenticationRequired, Conflict, Forbidden, NotFound, ValidationFailed
from moltflow.logging_config import get_logger
from moltflow.models import ActorKind, Agent, AgentBadge, Answer, Badge, Question, ReputationEvent
from moltflow.schemas import (
    AgentClaimRequest,
    AgentClaimResponse,
    AgentProfileResponse,
    AgentRegisterRequest,
    AgentRegisterResponse,
    AgentResponse,
    AgentSummary,
    AgentUpdateRequest,
    AwardedBadgeResponse,
    BadgeResponse,
    ReputationAuditResponse,
    ReputationEventResponse,
)
from moltflow.services.reputation_service import audit_reputation, reconcile_reputation

logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1/agents", tags=["agents"])
badges_router = APIRouter(prefix="/api/v1/badges", tags=["badges"])


@router.post("/register", response_model=AgentRegisterResponse, status_code=201)
async def register_agent(
    body: AgentRegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    """Register a new agent. Returns its API key (shown once) and a claim link."""
    name = body.name.lower()

    existing = await db.execute(select(Agent.id).where(Agent.name == name))
    if existing.scalar_one_or_none() is not None:
        raise Conflict("An agent with this name already exists")

    api_key = generate_api_key()
    verification_code = generate_verification_code()
    agent = Agent(
        name=name,
        description=body.description,
        api_key_hash=hash_token(api_key),
        api_key_prefix=key_lookup_prefix(api_key),
        verification_code=verification_code,
    )
    db.add(agent)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration of the same name
        await db.rollback()
        raise Conflict("An agent with this name already exists")
    await db.refresh(agent)

    logger.info("agent_registered", agent_id=str(agent.id), name=agent.name)

    app_url = get_settings().app_url.rstrip("/")
    return AgentRegisterResponse(
        api_key=api_key,
        claim_url=f"{app_url}/agents/claim?code={verification_code}&agent={agent.id}",
        verification_code=verification_code,
        agent=AgentSummary.model_validate(agent),
    )


@router.post("/claim", response_model=AgentClaimResponse)
async def claim_agent(
    body: AgentClaimRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    """
    Claim ownership of an agent with the verification code it was issued.

    Only a logged-in expert can claim. A claimed agent is marked verified
    and its verification code is burned.
    """
    if auth.kind is not ActorKind.expert:
        raise AuthenticationRequired("You must be logged in to claim an agent")

    agent = (
        await db.execute(select(Agent).where(Agent.id == body.agent_id))
    ).scalar_one_or_none()
    if agent is None:
        raise NotFound("Agent not found")
    if agent.owner_id is not None:
        raise ValidationFailed("This agent has already been claimed")
    if not agent.verification_code or not constant_time_compare(
        agent.verification_code, body.verification_code.strip()
    ):
        raise Forbidden("Invalid verification code")

    claimed = (
        await db.execute(
            update(Agent)
            .where(Agent.id == body.agent_id, Agent.owner_id.is_(None))
            .values(owner_id=auth.actor_id, verified=True, verification_code=None)
            .returning(Agent.id)
        )
    ).scalar_one_or_none()
    if claimed is None:
        await db.rollback()
        raise ValidationFailed("This agent has already been claimed")
    await db.commit()

    logger.info("agent_claimed", agent_id=str(body.agent_id), owner_id=str(auth.actor_id))
    return AgentClaimResponse(agent_id=body.agent_id)


@router.get("/me", response_model=AgentResponse)
async def get_me(agent: Agent = Depends(get_current_agent)):
    """Profile of the calling agent."""
    return AgentResponse.model_validate(agent)


@router.patch("/me", response_model=AgentResponse)
async def update_me(
    body: AgentUpdateRequest,
    db: AsyncSession = Depends(get_db),
    agent: Agent = Depends(get_current_agent),
):
    """Edit the calling agent's description or avatar. Omitted fields are kept."""
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(agent, field, value)
    await db.commit()
    await db.refresh(agent)
    return AgentResponse.model_validate(agent)


@router.post("/me/reputation/recompute", response_model=ReputationAuditResponse)
async def recompute_my_reputation(
    db: AsyncSession = Depends(get_db),
    agent: Agent = Depends(get_current_agent),
):
    """
    Reset the caller's stored reputation to the sum of its event log.

    ``stored`` is the value before the reset and ``drift`` is the amount
    that was corrected; afterwards the stored value equals ``computed``.
    """
    audit = await reconcile_reputation(db, agent.id)
    return ReputationAuditResponse(
        agent_id=audit.agent_id,
        stored=audit.stored,
        computed=audit.computed,
        drift=audit.drift,
    )


@router.get("/{agent_id}", response_model=AgentProfileResponse)
async def get_agent(
    agent_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Public agent profile with badges and content counts."""
    result = await db.execute(
        select(Agent)
        .where(Agent.id == agent_id)
        .options(selectinload(Agent.badges).selectinload(AgentBadge.badge))
    )
    agent = result.scalar_one_or_none()
    if agent is None:
        raise NotFound("Agent not found")

    question_count = (
        await db.execute(
            select(func.count(Question.id)).where(
                Question.author_id == agent_id,
                Question.author_type == ActorKind.agent.value,
            )
        )
    ).scalar() or 0
    answer_count = (
        await db.execute(
            select(func.count(Answer.id)).where(
                Answer.author_id == agent_id,
                Answer.author_type == ActorKind.agent.value,
            )
        )
    ).scalar() or 0

    badges = [
        AwardedBadgeResponse(
            badge=BadgeResponse.model_validate(ab.badge),
            awarded_at=ab.awarded_at,
        )
        for ab in sorted(agent.badges, key=lambda ab: ab.awarded_at)
    ]
    return AgentProfileResponse(
        **AgentResponse.model_validate(agent).model_dump(),
        badges=badges,
        question_count=question_count,
        answer_count=answer_count,
    )


@router.get("/{agent_id}/reputation", response_model=ReputationAuditResponse)
async def get_agent_reputation(
    agent_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """Stored reputation, the event-log total, and the most recent events."""
    audit = await audit_reputation(db, agent_id)

    result = await db.execute(
        select(ReputationEvent)
        .where(ReputationEvent.agent_id == agent_id)
        .order_by(ReputationEvent.created_at.desc())
        .limit(limit)
    )
    history = [ReputationEventResponse.model_validate(e) for e in result.scalars().all()]

    return ReputationAuditResponse(
        agent_id=audit.agent_id,
        stored=audit.stored,
        computed=audit.computed,
        drift=audit.drift,
        history=history,
    )


@badges_router.get("", response_model=list[BadgeResponse])
async def list_badges(db: AsyncSession = Depends(get_db)):
    """The badge catalog."""
    result = await db.execute(select(Badge).order_by(Badge.name))
    return [BadgeResponse.model_validate(b) for b in result.scalars().all()]

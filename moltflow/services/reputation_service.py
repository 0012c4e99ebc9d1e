"""Reputation service — fixed point table, atomic increments, and an audit log."""

import enum
from dataclasses import dataclass
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from moltflow.errors import NotFound
from moltflow.logging_config import get_logger
from moltflow.models import Agent, ReputationEvent, TargetKind

logger = get_logger(__name__)


class ReputationEventKind(str, enum.Enum):
    question_upvote = "question_upvote"
    question_downvote = "question_downvote"
    answer_upvote = "answer_upvote"
    answer_downvote = "answer_downvote"
    answer_accepted = "answer_accepted"
    answer_validated = "answer_validated"


REPUTATION_POINTS: dict[ReputationEventKind, int] = {
    ReputationEventKind.question_upvote: 5,
    ReputationEventKind.question_downvote: -2,
    ReputationEventKind.answer_upvote: 10,
    ReputationEventKind.answer_downvote: -2,
    ReputationEventKind.answer_accepted: 15,
    ReputationEventKind.answer_validated: 20,
}


@dataclass(frozen=True)
class ReputationChange:
    """One signed entry for the accumulator. Reversals carry negated points."""

    event_kind: ReputationEventKind
    points: int

    @classmethod
    def of(cls, event_kind: ReputationEventKind) -> "ReputationChange":
        return cls(event_kind, REPUTATION_POINTS[event_kind])

    @classmethod
    def reversal_of(cls, event_kind: ReputationEventKind) -> "ReputationChange":
        return cls(event_kind, -REPUTATION_POINTS[event_kind])


@dataclass(frozen=True)
class ReputationAudit:
    agent_id: UUID
    stored: int
    computed: int

    @property
    def drift(self) -> int:
        return self.stored - self.computed


def vote_event_kind(target_type: str, value: int) -> ReputationEventKind | None:
    """Map a vote on a target kind to its reputation event. Prompts do not score."""
    if target_type == TargetKind.question.value:
        return ReputationEventKind.question_upvote if value == 1 else ReputationEventKind.question_downvote
    if target_type == TargetKind.answer.value:
        return ReputationEventKind.answer_upvote if value == 1 else ReputationEventKind.answer_downvote
    return None


async def apply_reputation_changes(
    db: AsyncSession,
    agent_id: UUID,
    changes: Sequence[ReputationChange],
    source_type: str | None = None,
    source_id: UUID | None = None,
) -> int:
    """
    Apply several changes as one atomic increment and log each of them.

    The counter is moved with ``reputation = reputation + :delta`` in a single
    statement. Does not commit. Returns the applied delta.
    """
    if not changes:
        return 0

    delta = sum(c.points for c in changes)
    await db.execute(
        update(Agent)
        .where(Agent.id == agent_id)
        .values(reputation=Agent.reputation + delta)
    )
    for change in changes:
        db.add(
            ReputationEvent(
                agent_id=agent_id,
                event_kind=change.event_kind.value,
                points=change.points,
                source_type=source_type,
                source_id=source_id,
            )
        )

    logger.info(
        "reputation_applied",
        agent_id=str(agent_id),
        delta=delta,
        events=[c.event_kind.value for c in changes],
        source_type=source_type,
    )
    return delta


async def apply_reputation_event(
    db: AsyncSession,
    agent_id: UUID,
    event_kind: ReputationEventKind,
    source_type: str | None = None,
    source_id: UUID | None = None,
) -> int:
    """Apply a single scoring event to an agent. Does not commit."""
    return await apply_reputation_changes(
        db, agent_id, [ReputationChange.of(event_kind)], source_type, source_id
    )


async def recompute_reputation(db: AsyncSession, agent_id: UUID) -> int:
    """Sum the agent's reputation event log."""
    result = await db.execute(
        select(func.coalesce(func.sum(ReputationEvent.points), 0)).where(
            ReputationEvent.agent_id == agent_id
        )
    )
    return int(result.scalar() or 0)


async def audit_reputation(db: AsyncSession, agent_id: UUID) -> ReputationAudit:
    """Compare the stored counter with the event log."""
    stored = (
        await db.execute(select(Agent.reputation).where(Agent.id == agent_id))
    ).scalar_one_or_none()
    if stored is None:
        raise NotFound("Agent not found")
    computed = await recompute_reputation(db, agent_id)
    return ReputationAudit(agent_id=agent_id, stored=int(stored), computed=computed)


async def reconcile_reputation(db: AsyncSession, agent_id: UUID) -> ReputationAudit:
    """
    Reset the stored counter to the event-log sum.

    The rewrite is one UPDATE with a scalar subquery so it cannot interleave
    with a concurrent increment. Commits.
    """
    audit = await audit_reputation(db, agent_id)
    log_sum = (
        select(func.coalesce(func.sum(ReputationEvent.points), 0))
        .where(ReputationEvent.agent_id == agent_id)
        .scalar_subquery()
    )
    await db.execute(
        update(Agent).where(Agent.id == agent_id).values(reputation=log_sum)
    )
    await db.commit()

    if audit.drift:
        logger.warning(
            "reputation_drift_corrected",
            agent_id=str(agent_id),
            stored=audit.stored,
            computed=audit.computed,
        )
    return audit

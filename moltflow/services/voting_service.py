"""Vote ledger — one signed vote per (voter, target), toggle and flip semantics."""

import enum
from dataclasses import dataclass
from uuid import UUID, uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from moltflow.errors import Internal, NotFound, SelfVoteForbidden, ValidationFailed
from moltflow.logging_config import get_logger
from moltflow.models import TARGET_MODELS, ActorKind, Notification, Vote
from moltflow.services.badge_service import award_badges_and_notify
from moltflow.services.notification_service import notify_upvote
from moltflow.services.reputation_service import (
    ReputationChange,
    apply_reputation_changes,
    vote_event_kind,
)

logger = get_logger(__name__)

VOTE_VALUES = (1, -1)

# Attempts at claiming the vote row when a concurrent toggle deletes it in between.
_CLAIM_ATTEMPTS = 3


class VoteAction(str, enum.Enum):
    created = "created"
    changed = "changed"
    removed = "removed"


@dataclass(frozen=True)
class VotePlan:
    action: VoteAction
    ledger_delta: int
    response_value: int


@dataclass
class VoteOutcome:
    action: VoteAction
    value: int
    target_type: str
    target_id: UUID
    author_id: UUID
    author_type: str
    vote_count: int
    reputation_delta: int = 0
    question_id: UUID | None = None


def validate_vote_request(target_type: str, value: int) -> None:
    if target_type not in TARGET_MODELS:
        raise ValidationFailed("Invalid target type")
    if value not in VOTE_VALUES:
        raise ValidationFailed("Value must be 1 or -1")


def plan_vote(previous: int | None, value: int) -> VotePlan:
    """
    Decide the ledger transition for a vote.

    No prior vote inserts it, the same value toggles it off, and the
    opposite value flips it in place.
    """
    if previous is None:
        return VotePlan(VoteAction.created, value, value)
    if previous == value:
        return VotePlan(VoteAction.removed, -value, 0)
    return VotePlan(VoteAction.changed, value - previous, value)


def reputation_changes_for(
    target_type: str,
    previous: int | None,
    value: int,
    action: VoteAction,
) -> list[ReputationChange]:
    """Reputation entries for the target's author; removals reverse exactly what was applied."""
    new_kind = vote_event_kind(target_type, value)
    if new_kind is None:
        return []
    if action is VoteAction.created:
        return [ReputationChange.of(new_kind)]
    old_kind = vote_event_kind(target_type, previous)
    if action is VoteAction.removed:
        return [ReputationChange.reversal_of(old_kind)]
    return [ReputationChange.reversal_of(old_kind), ReputationChange.of(new_kind)]


async def _claim_vote_row(
    db: AsyncSession,
    voter_id: UUID,
    voter_type: str,
    target_type: str,
    target_id: UUID,
    value: int,
) -> tuple[Vote | None, int | None]:
    """
    Insert the vote, or lock the row that already holds it.

    Returns (None, None) when a fresh row was inserted, otherwise the locked
    existing row and its value.
    """
    for _ in range(_CLAIM_ATTEMPTS):
        inserted = await db.execute(
            pg_insert(Vote)
            .values(
                id=uuid4(),
                voter_id=voter_id,
                voter_type=voter_type,
                target_type=target_type,
                target_id=target_id,
                value=value,
            )
            .on_conflict_do_nothing(constraint="uq_vote_voter_target")
            .returning(Vote.id)
        )
        if inserted.scalar_one_or_none() is not None:
            return None, None

        existing = (
            await db.execute(
                select(Vote)
                .where(
                    Vote.voter_id == voter_id,
                    Vote.voter_type == voter_type,
                    Vote.target_type == target_type,
                    Vote.target_id == target_id,
                )
                .with_for_update()
            )
        ).scalar_one_or_none()
        if existing is not None:
            return existing, existing.value

    raise Internal("Failed to record vote")


async def cast_vote(
    db: AsyncSession,
    voter_id: UUID,
    voter_type: str,
    target_type: str,
    target_id: UUID,
    value: int,
) -> VoteOutcome:
    """
    Record a vote and move the target's vote_count and author reputation with it.

    The vote row, the vote_count increment and the reputation increment are
    committed together. Raises ValidationFailed, NotFound or SelfVoteForbidden.
    """
    validate_vote_request(target_type, value)

    model = TARGET_MODELS[target_type]
    target = (
        await db.execute(select(model).where(model.id == target_id))
    ).scalar_one_or_none()
    if target is None:
        raise NotFound("Target not found")

    if target.author_id == voter_id:
        raise SelfVoteForbidden()

    existing, previous = await _claim_vote_row(
        db, voter_id, voter_type, target_type, target_id, value
    )
    plan = plan_vote(previous, value)

    if plan.action is VoteAction.removed:
        await db.execute(delete(Vote).where(Vote.id == existing.id))
    elif plan.action is VoteAction.changed:
        await db.execute(update(Vote).where(Vote.id == existing.id).values(value=value))

    vote_count = (
        await db.execute(
            update(model)
            .where(model.id == target_id)
            .values(vote_count=model.vote_count + plan.ledger_delta)
            .returning(model.vote_count)
        )
    ).scalar_one()

    reputation_delta = 0
    if target.author_type == ActorKind.agent.value:
        reputation_delta = await apply_reputation_changes(
            db,
            target.author_id,
            reputation_changes_for(target_type, previous, value, plan.action),
            source_type=f"{target_type}_vote",
            source_id=target_id,
        )

    await db.commit()

    logger.info(
        "vote_cast",
        target_type=target_type,
        target_id=str(target_id),
        voter_id=str(voter_id),
        action=plan.action.value,
        value=plan.response_value,
        vote_count=vote_count,
    )

    return VoteOutcome(
        action=plan.action,
        value=plan.response_value,
        target_type=target_type,
        target_id=target_id,
        author_id=target.author_id,
        author_type=target.author_type,
        vote_count=vote_count,
        reputation_delta=reputation_delta,
        question_id=getattr(target, "question_id", None),
    )


def should_notify(outcome: VoteOutcome) -> bool:
    """Only a fresh upvote on agent content notifies; downvotes and removals stay silent."""
    return (
        outcome.action is VoteAction.created
        and outcome.value == 1
        and outcome.author_type == ActorKind.agent.value
    )


async def after_vote(db: AsyncSession, outcome: VoteOutcome) -> list[Notification]:
    """Badge re-scan for an agent author, plus the upvote notification. Does not commit."""
    if outcome.author_type != ActorKind.agent.value:
        return []
    notifications = await award_badges_and_notify(db, outcome.author_id)
    if should_notify(outcome):
        notifications.append(
            await notify_upvote(
                db,
                outcome.author_id,
                outcome.target_type,
                outcome.target_id,
                outcome.question_id,
            )
        )
    return notifications

"""Badge service — a fixed rule table over an agent's aggregate stats."""

from dataclasses import dataclass
from typing import Callable, Iterable
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from moltflow.logging_config import get_logger
from moltflow.models import ActorKind, Agent, AgentBadge, Answer, Badge, Notification, Question
from moltflow.services.notification_service import notify_badges

logger = get_logger(__name__)


@dataclass(frozen=True)
class AgentStats:
    """Aggregate counters the badge rules are evaluated against.

    The ``max_*`` fields are None when the agent has no such content.
    """

    question_count: int = 0
    answer_count: int = 0
    accepted_count: int = 0
    validated_count: int = 0
    max_question_votes: int | None = None
    max_answer_votes: int | None = None
    max_accepted_answer_votes: int | None = None


BadgeRule = Callable[[AgentStats, dict], bool]


def _min_votes(criteria: dict, default: int) -> int:
    value = criteria.get("min_votes")
    return int(value) if value else default


def _at_least(votes: int | None, threshold: int) -> bool:
    return votes is not None and votes >= threshold


BADGE_RULES: dict[str, BadgeRule] = {
    "First Question": lambda s, c: s.question_count >= 1,
    "First Answer": lambda s, c: s.answer_count >= 1,
    "Helpful": lambda s, c: s.accepted_count >= 1,
    "Validated Expert": lambda s, c: s.validated_count >= 1,
    "Popular Question": lambda s, c: _at_least(s.max_question_votes, _min_votes(c, 10)),
    "Great Answer": lambda s, c: _at_least(s.max_answer_votes, _min_votes(c, 25)),
    "Enlightened": lambda s, c: _at_least(s.max_accepted_answer_votes, _min_votes(c, 10)),
}

# Seeded by moltflow.seed; names must match BADGE_RULES.
DEFAULT_BADGE_CATALOG: list[dict] = [
    {"name": "First Question", "description": "Asked a first question", "icon": "❓", "criteria": {}},
    {"name": "First Answer", "description": "Posted a first answer", "icon": "💬", "criteria": {}},
    {"name": "Helpful", "description": "Had an answer accepted", "icon": "✅", "criteria": {}},
    {"name": "Validated Expert", "description": "Validated an expert's answer", "icon": "🔍", "criteria": {}},
    {"name": "Popular Question", "description": "Asked a question with 10+ votes", "icon": "🔥", "criteria": {"min_votes": 10}},
    {"name": "Great Answer", "description": "Posted an answer with 25+ votes", "icon": "⭐", "criteria": {"min_votes": 25}},
    {"name": "Enlightened", "description": "Had an accepted answer with 10+ votes", "icon": "💡", "criteria": {"min_votes": 10}},
]


def badge_earned(name: str, criteria: dict | None, stats: AgentStats) -> bool:
    """Evaluate one catalog entry. Names without a rule never award."""
    rule = BADGE_RULES.get(name)
    if rule is None:
        return False
    return rule(stats, criteria or {})


def earned_badges(
    catalog: Iterable[Badge],
    held_badge_ids: set[UUID],
    stats: AgentStats,
) -> list[Badge]:
    """Catalog entries not yet held whose rule is satisfied, in catalog order."""
    return [
        badge
        for badge in catalog
        if badge.id not in held_badge_ids and badge_earned(badge.name, badge.criteria, stats)
    ]


async def load_agent_stats(db: AsyncSession, agent_id: UUID) -> AgentStats:
    """Collect the counters for one agent in three aggregate queries."""
    question_row = (
        await db.execute(
            select(func.count(Question.id), func.max(Question.vote_count)).where(
                Question.author_id == agent_id,
                Question.author_type == ActorKind.agent.value,
            )
        )
    ).one()

    answer_row = (
        await db.execute(
            select(
                func.count(Answer.id),
                func.count(Answer.id).filter(Answer.is_accepted.is_(True)),
                func.max(Answer.vote_count),
                func.max(Answer.vote_count).filter(Answer.is_accepted.is_(True)),
            ).where(
                Answer.author_id == agent_id,
                Answer.author_type == ActorKind.agent.value,
            )
        )
    ).one()

    validated_count = (
        await db.execute(
            select(func.count(Answer.id)).where(Answer.validated_by == agent_id)
        )
    ).scalar() or 0

    return AgentStats(
        question_count=question_row[0] or 0,
        answer_count=answer_row[0] or 0,
        accepted_count=answer_row[1] or 0,
        validated_count=validated_count,
        max_question_votes=question_row[1],
        max_answer_votes=answer_row[2],
        max_accepted_answer_votes=answer_row[3],
    )


async def evaluate_badges(db: AsyncSession, agent_id: UUID) -> list[str]:
    """
    Award every newly earned badge to an agent.

    Award rows are inserted with ON CONFLICT DO NOTHING on (agent, badge), so
    a concurrent evaluation cannot award the same badge twice; only names
    whose insert actually happened are returned. Does not commit.
    """
    agent_exists = (
        await db.execute(select(Agent.id).where(Agent.id == agent_id))
    ).scalar_one_or_none()
    if agent_exists is None:
        return []

    held = set(
        (
            await db.execute(
                select(AgentBadge.badge_id).where(AgentBadge.agent_id == agent_id)
            )
        ).scalars().all()
    )
    catalog = (await db.execute(select(Badge).order_by(Badge.name))).scalars().all()
    if not catalog:
        return []

    stats = await load_agent_stats(db, agent_id)

    awarded: list[str] = []
    for badge in earned_badges(catalog, held, stats):
        result = await db.execute(
            pg_insert(AgentBadge)
            .values(id=uuid4(), agent_id=agent_id, badge_id=badge.id)
            .on_conflict_do_nothing(constraint="uq_agent_badge")
            .returning(AgentBadge.id)
        )
        if result.scalar_one_or_none() is not None:
            awarded.append(badge.name)

    if awarded:
        logger.info("badges_awarded", agent_id=str(agent_id), badges=awarded)
    return awarded


async def award_badges_and_notify(db: AsyncSession, agent_id: UUID) -> list[Notification]:
    """Evaluate badges and create one notification per new award. Does not commit."""
    names = await evaluate_badges(db, agent_id)
    return await notify_badges(db, agent_id, names)

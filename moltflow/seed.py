"""Seed script — installs the badge catalog and, optionally, demo content.

Usage:
    python -m moltflow.seed            # badge catalog only
    python -m moltflow.seed --demo     # plus a demo agent, expert and question
"""

import argparse
import asyncio

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert

from moltflow.auth import generate_api_key, hash_password, hash_token, key_lookup_prefix
from moltflow.config import get_settings
from moltflow.database import close_db, get_db_session, init_db
from moltflow.logging_config import configure_logging, get_logger
from moltflow.models import ActorKind, Agent, Answer, Badge, Question, User
from moltflow.services.badge_service import DEFAULT_BADGE_CATALOG

logger = get_logger(__name__)

DEMO_AGENT = {"name": "demo-agent", "description": "Seeded demo agent"}
DEMO_EXPERT = {"email": "expert@moltflow.dev", "name": "Demo Expert", "password": "moltflow-demo"}


async def seed_badges(session) -> int:
    """Upsert the badge catalog by name. Returns the number of entries written."""
    for entry in DEFAULT_BADGE_CATALOG:
        stmt = pg_insert(Badge).values(**entry)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Badge.name],
            set_={
                "description": stmt.excluded.description,
                "icon": stmt.excluded.icon,
                "criteria": stmt.excluded.criteria,
            },
        )
        await session.execute(stmt)
    await session.commit()
    logger.info("badges_seeded", count=len(DEFAULT_BADGE_CATALOG))
    return len(DEFAULT_BADGE_CATALOG)


async def seed_demo(session) -> str | None:
    """Create a demo agent, expert and one answered question. Returns the agent key."""
    existing = await session.execute(select(Agent.id).where(Agent.name == DEMO_AGENT["name"]))
    if existing.scalar_one_or_none() is not None:
        logger.info("demo_already_seeded")
        return None

    api_key = generate_api_key()
    agent = Agent(
        **DEMO_AGENT,
        api_key_hash=hash_token(api_key),
        api_key_prefix=key_lookup_prefix(api_key),
    )
    expert = User(
        email=DEMO_EXPERT["email"],
        name=DEMO_EXPERT["name"],
        password_hash=hash_password(DEMO_EXPERT["password"]),
    )
    session.add_all([agent, expert])
    await session.flush()

    question = Question(
        title="How should an agent retry a rate-limited API call?",
        body="I keep hitting 429 responses. What backoff strategy works in practice?",
        author_id=agent.id,
        author_type=ActorKind.agent.value,
        tags=["http", "retries"],
    )
    session.add(question)
    await session.flush()

    session.add(
        Answer(
            question_id=question.id,
            body="Use exponential backoff with jitter and honour the Retry-After header.",
            author_id=expert.id,
            author_type=ActorKind.expert.value,
        )
    )
    question.answer_count = 1
    await session.commit()

    logger.info("demo_seeded", agent_id=str(agent.id), expert_id=str(expert.id))
    return api_key


async def main(demo: bool = False) -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=False)
    await init_db()
    try:
        async with get_db_session() as session:
            await seed_badges(session)
            if demo:
                api_key = await seed_demo(session)
                if api_key:
                    print(f"Demo agent API key: {api_key}")
    finally:
        await close_db()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the MoltFlow database")
    parser.add_argument("--demo", action="store_true", help="Also create demo content")
    args = parser.parse_args()
    asyncio.run(main(demo=args.demo))

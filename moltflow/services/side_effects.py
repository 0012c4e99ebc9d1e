"""Best-effort follow-up steps that run after a primary mutation has committed."""

from typing import Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from moltflow.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def run_best_effort(
    db: AsyncSession,
    step: str,
    action: Callable[[], Awaitable[T]],
    **context,
) -> T | None:
    """
    Run one follow-up step in its own transaction.

    A failing step is rolled back and logged; the primary mutation that
    triggered it stays committed and the caller carries on.
    """
    try:
        result = await action()
        await db.commit()
        return result
    except Exception as e:
        await db.rollback()
        logger.error("side_effect_failed", step=step, error=str(e), **context)
        return None

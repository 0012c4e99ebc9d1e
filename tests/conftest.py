"""Global pytest fixtures for MoltFlow.

Provides:
- A mock async database session and a factory for mock query results
- Factories for agent, expert, question, answer and notification rows
- An app builder that wires routers, error handlers and auth overrides
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ===========================================
# DATABASE SESSION FIXTURES
# ===========================================


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncMock, None]:
    """Mock AsyncSession. ``add``/``add_all`` are synchronous like the real thing."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    session.add_all = MagicMock()

    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=None)

    yield session


@pytest.fixture
def make_result() -> Callable[..., MagicMock]:
    """Build a mock ``Result`` with the accessors the code under test reads.

    ``scalar`` feeds scalar(), scalar_one() and scalar_one_or_none();
    ``scalars`` feeds scalars().all(); ``row`` feeds one().
    """

    def _make(scalar: Any = None, scalars: list | None = None, row: tuple | None = None, rowcount: int = 0):
        result = MagicMock()
        result.scalar.return_value = scalar
        result.scalar_one.return_value = scalar
        result.scalar_one_or_none.return_value = scalar
        result.scalars.return_value.all.return_value = scalars or []
        result.one.return_value = row
        result.rowcount = rowcount
        return result

    return _make


# ===========================================
# ROW FACTORIES
# ===========================================


@pytest.fixture
def make_agent() -> Callable[..., SimpleNamespace]:
    def _make(**overrides):
        data = {
            "id": uuid4(),
            "name": "helper-bot",
            "description": "Answers questions",
            "avatar_url": None,
            "reputation": 0,
            "verified": False,
            "status": "active",
            "api_key_hash": "",
            "api_key_prefix": "",
            "created_at": utcnow(),
        }
        data.update(overrides)
        return SimpleNamespace(**data)

    return _make


@pytest.fixture
def make_expert() -> Callable[..., SimpleNamespace]:
    def _make(**overrides):
        data = {
            "id": uuid4(),
            "email": "expert@example.com",
            "name": "Ada",
            "role": "expert",
            "password_hash": "",
            "created_at": utcnow(),
        }
        data.update(overrides)
        return SimpleNamespace(**data)

    return _make


@pytest.fixture
def make_question() -> Callable[..., SimpleNamespace]:
    def _make(**overrides):
        data = {
            "id": uuid4(),
            "title": "How do I paginate a large table?",
            "body": "Offset pagination gets slow on big tables. What else works?",
            "author_id": uuid4(),
            "author_type": "agent",
            "tags": ["sql"],
            "vote_count": 0,
            "answer_count": 0,
            "views": 0,
            "is_resolved": False,
            "submolt_id": None,
            "created_at": utcnow(),
        }
        data.update(overrides)
        return SimpleNamespace(**data)

    return _make


@pytest.fixture
def make_answer() -> Callable[..., SimpleNamespace]:
    def _make(**overrides):
        data = {
            "id": uuid4(),
            "question_id": uuid4(),
            "body": "Use keyset pagination on an indexed column instead.",
            "author_id": uuid4(),
            "author_type": "agent",
            "vote_count": 0,
            "is_accepted": False,
            "is_validated": False,
            "validation_notes": None,
            "validated_by": None,
            "created_at": utcnow(),
        }
        data.update(overrides)
        return SimpleNamespace(**data)

    return _make


@pytest.fixture
def make_notification() -> Callable[..., SimpleNamespace]:
    def _make(**overrides):
        data = {
            "id": uuid4(),
            "recipient_id": uuid4(),
            "recipient_type": "agent",
            "type": "vote",
            "title": "Your answer received an upvote!",
            "body": None,
            "link": "/questions/1",
            "read": False,
            "created_at": utcnow(),
        }
        data.update(overrides)
        return SimpleNamespace(**data)

    return _make


# ===========================================
# APP FIXTURES
# ===========================================


@pytest.fixture
def make_app(db_session) -> Callable[..., FastAPI]:
    """Build a FastAPI app with the given routers and MoltFlow's error handlers.

    ``auth`` (an AuthContext) overrides require_auth/get_auth_context;
    ``agent`` overrides get_current_agent.
    """
    from moltflow.auth import get_auth_context, get_current_agent, require_auth
    from moltflow.database import get_db
    from moltflow.errors import (
        MoltFlowError,
        moltflow_error_handler,
        request_validation_handler,
    )

    def _make(*routers, auth=None, agent=None) -> FastAPI:
        app = FastAPI()
        app.add_exception_handler(MoltFlowError, moltflow_error_handler)
        app.add_exception_handler(RequestValidationError, request_validation_handler)
        for router in routers:
            app.include_router(router)

        async def _db():
            yield db_session

        app.dependency_overrides[get_db] = _db
        if auth is not None:
            app.dependency_overrides[get_auth_context] = lambda: auth
            app.dependency_overrides[require_auth] = lambda: auth
        if agent is not None:
            app.dependency_overrides[get_current_agent] = lambda: agent
        return app

    return _make


@pytest.fixture
def mock_redis_client() -> MagicMock:
    """Mock redis.asyncio client."""
    redis = MagicMock()
    redis.publish = AsyncMock(return_value=1)
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    return redis

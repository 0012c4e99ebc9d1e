"""Authentication for agents (API keys) and experts (JWT)."""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt
from fastapi import Depends, Request
from passlib.hash import bcrypt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moltflow.config import get_settings
from moltflow.database import get_db
from moltflow.errors import AuthenticationRequired
from moltflow.logging_config import bind_actor, get_logger
from moltflow.models import ActorKind, Agent, User

logger = get_logger(__name__)

API_KEY_PREFIX = "mf_"
API_KEY_BYTES = 32
API_KEY_LOOKUP_LENGTH = 12
JWT_ALGORITHM = "HS256"


# ---------------------------------------------------------------------------
# Agent API keys
# ---------------------------------------------------------------------------


def generate_api_key() -> str:
    """Generate a new agent API key with the mf_ prefix."""
    return f"{API_KEY_PREFIX}{secrets.token_urlsafe(API_KEY_BYTES)}"


def hash_token(token: str) -> str:
    """Hash a token for secure storage using SHA-256."""
    return hashlib.sha256(token.encode()).hexdigest()


def key_lookup_prefix(api_key: str) -> str:
    """Indexed, non-secret part of a key used to find its row before hash comparison."""
    return api_key[:API_KEY_LOOKUP_LENGTH]


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two strings in constant time to prevent timing attacks."""
    return secrets.compare_digest(a.encode(), b.encode())


def generate_verification_code() -> str:
    """Generate the code an owner uses to claim an agent."""
    return secrets.token_hex(4).upper()


def extract_bearer_token(auth_header: str | None) -> str | None:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    if not auth_header:
        return None
    parts = auth_header.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


# ---------------------------------------------------------------------------
# Expert passwords + JWT
# ---------------------------------------------------------------------------


def hash_password(password: str) -> str:
    return bcrypt.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.verify(password, password_hash)


def _jwt_secret() -> str:
    secret = get_settings().jwt_secret_key
    if not secret:
        raise RuntimeError("MOLTFLOW_JWT_SECRET_KEY environment variable is required")
    return secret


def create_access_token(user_id: str) -> str:
    """Create a JWT access token for an expert."""
    minutes = get_settings().jwt_access_token_expire_minutes
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    payload = {"sub": user_id, "exp": expire, "type": "access"}
    return jwt.encode(payload, _jwt_secret(), algorithm=JWT_ALGORITHM)


def create_refresh_token(user_id: str) -> str:
    """Create a JWT refresh token for an expert."""
    days = get_settings().jwt_refresh_token_expire_days
    expire = datetime.now(timezone.utc) + timedelta(days=days)
    payload = {"sub": user_id, "exp": expire, "type": "refresh", "jti": secrets.token_urlsafe(16)}
    return jwt.encode(payload, _jwt_secret(), algorithm=JWT_ALGORITHM)


def decode_jwt(token: str) -> dict:
    """Decode and validate a JWT token. Raises AuthenticationRequired on failure."""
    try:
        return jwt.decode(token, _jwt_secret(), algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationRequired("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationRequired("Invalid token")


def access_token_subject(token: str) -> str | None:
    """The expert id of a valid access token, or None. Never raises."""
    if not get_settings().jwt_secret_key:
        return None
    try:
        payload = decode_jwt(token)
    except AuthenticationRequired:
        return None
    if payload.get("type") != "access":
        return None
    return payload.get("sub") or None


# ---------------------------------------------------------------------------
# Auth context
# ---------------------------------------------------------------------------


@dataclass
class AuthContext:
    """Who is calling: an agent, an expert, or nobody."""

    kind: ActorKind | None = None
    agent: Agent | None = None
    user: User | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.kind is not None

    @property
    def actor_id(self) -> UUID | None:
        if self.kind is ActorKind.agent:
            return self.agent.id
        if self.kind is ActorKind.expert:
            return self.user.id
        return None

    @property
    def actor_type(self) -> str | None:
        return self.kind.value if self.kind is not None else None


async def authenticate_agent(db: AsyncSession, api_key: str) -> Agent | None:
    """Resolve an agent from its API key, or None."""
    if not api_key.startswith(API_KEY_PREFIX):
        return None

    result = await db.execute(
        select(Agent).where(
            Agent.api_key_prefix == key_lookup_prefix(api_key),
            Agent.status == "active",
        )
    )
    key_hash = hash_token(api_key)
    for agent in result.scalars().all():
        if constant_time_compare(agent.api_key_hash, key_hash):
            return agent
    return None


async def authenticate_expert(db: AsyncSession, token: str) -> User | None:
    """Resolve an expert from a JWT access token, or None."""
    try:
        payload = decode_jwt(token)
    except AuthenticationRequired:
        return None
    if payload.get("type") != "access" or not payload.get("sub"):
        return None

    try:
        user_id = UUID(payload["sub"])
    except ValueError:
        return None
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_auth_context(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> AuthContext:
    """
    FastAPI dependency: resolve the caller.

    Agent API keys are tried first, then expert JWTs. Invalid credentials
    yield an anonymous context rather than an error.
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        return AuthContext()

    if token.startswith(API_KEY_PREFIX):
        agent = await authenticate_agent(db, token)
        if agent is not None:
            bind_actor(str(agent.id), ActorKind.agent.value)
            return AuthContext(kind=ActorKind.agent, agent=agent)
        logger.info("agent_auth_failed", key_prefix=key_lookup_prefix(token))
        return AuthContext()

    user = await authenticate_expert(db, token)
    if user is not None:
        bind_actor(str(user.id), ActorKind.expert.value)
        return AuthContext(kind=ActorKind.expert, user=user)
    return AuthContext()


async def require_auth(
    auth: AuthContext = Depends(get_auth_context),
) -> AuthContext:
    """FastAPI dependency: any authenticated caller (agent or expert)."""
    if not auth.is_authenticated:
        raise AuthenticationRequired()
    return auth


async def get_current_agent(
    auth: AuthContext = Depends(get_auth_context),
) -> Agent:
    """FastAPI dependency: the calling agent. Experts are rejected."""
    if auth.kind is not ActorKind.agent:
        raise AuthenticationRequired("Agent authentication required")
    return auth.agent

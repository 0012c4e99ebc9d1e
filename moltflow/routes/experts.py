"""Expert authentication endpoints — register, login, refresh, me."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from moltflow.auth import (
    AuthContext,
    create_access_token,
    create_refresh_token,
    decode_jwt,
    hash_password,
    require_auth,
    verify_password,
)
from moltflow.config import get_settings
from moltflow.database import get_db
from moltflow.errors import AuthenticationRequired, Conflict, Forbidden
from moltflow.logging_config import get_logger
from moltflow.models import ActorKind, User
from moltflow.redis import get_redis
from moltflow.schemas import (
    ExpertLoginRequest,
    ExpertLoginResponse,
    ExpertRegisterRequest,
    ExpertResponse,
    TokenRefreshRequest,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1/experts", tags=["experts"])


def _refresh_key(user_id: str) -> str:
    return f"refresh:{user_id}"


async def _issue_tokens(user: User) -> ExpertLoginResponse:
    """Create an access/refresh pair and remember the refresh token in Redis."""
    user_id = str(user.id)
    access_token = create_access_token(user_id)
    refresh_token = create_refresh_token(user_id)

    ttl = get_settings().jwt_refresh_token_expire_days * 24 * 3600
    await get_redis().set(_refresh_key(user_id), refresh_token, ex=ttl)

    return ExpertLoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        user=ExpertResponse.model_validate(user),
    )


@router.post("/register", response_model=ExpertLoginResponse, status_code=201)
async def register(
    body: ExpertRegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    """Register a new expert account."""
    email = body.email.lower()
    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.scalar_one_or_none() is not None:
        raise Conflict("An account with this email already exists")

    user = User(
        email=email,
        name=body.name,
        password_hash=hash_password(body.password),
        role="expert",
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("An account with this email already exists")
    await db.refresh(user)

    logger.info("expert_registered", user_id=str(user.id))
    return await _issue_tokens(user)


@router.post("/login", response_model=ExpertLoginResponse)
async def login(
    body: ExpertLoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """Login with email and password."""
    result = await db.execute(select(User).where(User.email == body.email.lower()))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(body.password, user.password_hash):
        raise AuthenticationRequired("Invalid credentials")

    logger.info("expert_login", user_id=str(user.id))
    return await _issue_tokens(user)


@router.post("/refresh", response_model=ExpertLoginResponse)
async def refresh(
    body: TokenRefreshRequest,
    db: AsyncSession = Depends(get_db),
):
    """Rotate a refresh token. The previous one stops working."""
    payload = decode_jwt(body.refresh_token)
    if payload.get("type") != "refresh":
        raise AuthenticationRequired("Invalid token type")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationRequired("Invalid token payload")

    stored = await get_redis().get(_refresh_key(user_id))
    if stored != body.refresh_token:
        raise AuthenticationRequired("Refresh token revoked or expired")

    try:
        uid = UUID(user_id)
    except ValueError:
        raise AuthenticationRequired("Invalid token payload")
    user = (await db.execute(select(User).where(User.id == uid))).scalar_one_or_none()
    if user is None:
        raise AuthenticationRequired("User not found")

    return await _issue_tokens(user)


@router.get("/me", response_model=ExpertResponse)
async def get_me(auth: AuthContext = Depends(require_auth)):
    """Profile of the calling expert."""
    if auth.kind is not ActorKind.expert:
        raise Forbidden("Expert authentication required")
    return ExpertResponse.model_validate(auth.user)

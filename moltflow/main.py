"""MoltFlow FastAPI application."""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from moltflow.config import get_settings
from moltflow.database import close_db, init_db
from moltflow.errors import (
    MoltFlowError,
    moltflow_error_handler,
    request_validation_handler,
    unhandled_error_handler,
)
from moltflow.logging_config import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)
from moltflow.redis import close_redis, get_redis, init_redis

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: init DB + Redis on startup, cleanup on shutdown."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_format == "json")

    logger.info("starting_database_init")
    await init_db()

    await init_redis(settings.redis_url)
    logger.info("redis_connected", url=settings.redis_url)

    logger.info("application_started")
    yield

    logger.info("shutting_down")
    await close_redis()
    await close_db()
    logger.info("shutdown_complete")


settings = get_settings()

app = FastAPI(
    title="MoltFlow",
    description="Q&A for AI agents and human experts — votes, reputation and badges",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from moltflow.middleware.rate_limit import RateLimitMiddleware  # noqa: E402

app.add_middleware(
    RateLimitMiddleware,
    redis_getter=get_redis,
    limit=settings.rate_limit_per_minute,
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag every log line emitted while serving a request with its id."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id
    bind_request_context(request_id=request_id)
    try:
        response = await call_next(request)
    finally:
        clear_request_context()
    response.headers["X-Request-ID"] = request_id
    return response


app.add_exception_handler(MoltFlowError, moltflow_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

# --- Routers ---
from moltflow.routes.agents import badges_router  # noqa: E402
from moltflow.routes.agents import router as agents_router  # noqa: E402
from moltflow.routes.answers import router as answers_router  # noqa: E402
from moltflow.routes.comments import router as comments_router  # noqa: E402
from moltflow.routes.experts import router as experts_router  # noqa: E402
from moltflow.routes.notifications import router as notifications_router  # noqa: E402
from moltflow.routes.prompts import router as prompts_router  # noqa: E402
from moltflow.routes.questions import router as questions_router  # noqa: E402
from moltflow.routes.submolts import router as submolts_router  # noqa: E402
from moltflow.routes.votes import router as votes_router  # noqa: E402

app.include_router(agents_router)
app.include_router(badges_router)
app.include_router(experts_router)
app.include_router(questions_router)
app.include_router(answers_router)
app.include_router(comments_router)
app.include_router(prompts_router)
app.include_router(submolts_router)
app.include_router(votes_router)
app.include_router(notifications_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "moltflow"}

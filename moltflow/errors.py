"""Error taxonomy for MoltFlow and its mapping onto HTTP responses."""

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from moltflow.logging_config import get_logger

logger = get_logger(__name__)


class MoltFlowError(Exception):
    """Base exception for MoltFlow errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, error_type: str = "moltflow_error"):
        self.message = message
        self.error_type = error_type
        super().__init__(message)


class AuthenticationRequired(MoltFlowError):
    """Raised when a request carries no usable credentials."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, "authentication_required")


class NotFound(MoltFlowError):
    """Raised when a target or parent record does not exist."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str):
        super().__init__(message, "not_found")


class Forbidden(MoltFlowError):
    """Raised on ownership and author-only violations."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str, error_type: str = "forbidden"):
        super().__init__(message, error_type)


class SelfVoteForbidden(Forbidden):
    """Raised when a voter targets their own content.

    Kept a Forbidden for callers, but the public API answers it with 400.
    """

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "You cannot vote on your own content"):
        super().__init__(message, "self_vote_forbidden")


class ValidationFailed(MoltFlowError):
    """Raised on malformed input."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message, "validation_failed")


class Conflict(MoltFlowError):
    """Raised on duplicate names and one-shot transitions that already happened."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str):
        super().__init__(message, "conflict")


class Internal(MoltFlowError):
    """Raised when a storage step fails."""

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message, "internal")


async def moltflow_error_handler(request: Request, exc: MoltFlowError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error_type=exc.error_type, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render pydantic validation failures as a single-line error."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request body"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", path=request.url.path, error=str(exc), exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )

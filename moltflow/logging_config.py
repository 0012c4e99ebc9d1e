"""structlog setup and the per-request log context."""

import logging
import sys

import structlog

SERVICE_NAME = "moltflow"

# Keys bound while a request is served; the service name outlives them.
_REQUEST_KEYS = ("request_id", "actor_id", "actor_kind")


def configure_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Route structlog to stdout as JSON lines, or as colored console output for local runs."""
    log_level = getattr(logging, level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=SERVICE_NAME)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_request_context(request_id: str) -> None:
    structlog.contextvars.bind_contextvars(request_id=request_id)


def bind_actor(actor_id: str, actor_kind: str) -> None:
    """Tag the rest of the request's log lines with the authenticated caller."""
    structlog.contextvars.bind_contextvars(actor_id=actor_id, actor_kind=actor_kind)


def clear_request_context() -> None:
    structlog.contextvars.unbind_contextvars(*_REQUEST_KEYS)

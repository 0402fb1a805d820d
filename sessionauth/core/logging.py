"""
structlog setup for the API process and the arq worker.

Every record carries the request id, and once known the user and session
the request acts for. JSON in production, coloured console output in
development.
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any, cast

import structlog
from structlog.types import EventDict, Processor

from sessionauth.config import settings

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_ctx: ContextVar[int | None] = ContextVar("user_id", default=None)
session_id_ctx: ContextVar[str | None] = ContextVar("session_id", default=None)

_CONTEXT: tuple[tuple[str, ContextVar[Any]], ...] = (
    ("request_id", request_id_ctx),
    ("user_id", user_id_ctx),
    ("session_id", session_id_ctx),
)


def add_auth_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Copy request, user and session ids into the record unless already given."""
    for key, var in _CONTEXT:
        value = var.get()
        if value is not None:
            event_dict.setdefault(key, value)
    return event_dict


def configure_logging() -> None:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_auth_context,
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.ENVIRONMENT == "development":
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.NOTSET),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper()),
    )
    # Token-bearing request lines stay out of production logs
    if settings.ENVIRONMENT != "development":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))


def set_request_context(request_id: str) -> None:
    request_id_ctx.set(request_id)


def set_user_context(user_id: int, session_id: str | None = None) -> None:
    """Attach the acting user, and its session if known, to this request's logs."""
    user_id_ctx.set(user_id)
    if session_id is not None:
        session_id_ctx.set(session_id)


def clear_request_context() -> None:
    for _, var in _CONTEXT:
        var.set(None)


def bind_context(**kwargs: Any) -> None:
    """Bind extra keys for the rest of the current task, e.g. inside an arq job."""
    structlog.contextvars.bind_contextvars(**kwargs)

"""
Structured logging built on structlog over the stdlib logging tree.

Every event carries the service name and environment. While a request is
being served it also carries the request id bound by RequestLoggingMiddleware
and, once the bearer token is resolved, the acting user (`actor_id`,
`actor_role`). Booking decisions logged deep inside the services can be
traced back to who asked for them without threading ids through every call.

Production renders one JSON object per line; elsewhere the console renderer
is used, coloured only when stdout is a terminal.
"""

import logging
import sys

import structlog

from bandroom.core.config import get_settings

# Chatty libraries that only matter when debugging them directly
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "asyncio", "passlib")


def _add_service_context(logger, method_name, event_dict):
    settings = get_settings()
    event_dict.setdefault("service", settings.APP_NAME)
    event_dict.setdefault("env", settings.ENVIRONMENT)
    return event_dict


def _build_renderer(environment: str):
    if environment == "production":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging() -> None:
    settings = get_settings()

    pre_chain = [
        structlog.contextvars.merge_contextvars,
        _add_service_context,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if settings.ENVIRONMENT == "production":
        pre_chain.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            # Records from plain stdlib loggers (uvicorn, alembic) get the same fields
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _build_renderer(settings.ENVIRONMENT),
            ],
        )
    )

    root_logger = logging.getLogger()
    # Replace our own handler on repeated setup (reloads, tests)
    root_logger.handlers = [
        h for h in root_logger.handlers
        if not isinstance(h.formatter, structlog.stdlib.ProcessorFormatter)
    ]
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_actor(actor_id: int, role: str) -> None:
    """Attach the acting user to every log line for the rest of the request."""
    structlog.contextvars.bind_contextvars(actor_id=actor_id, actor_role=role)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)

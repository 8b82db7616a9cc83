"""
Logging setup for the API, the scheduler and the CLI.

Every process calls setup_logging() once at startup. Services log through
structlog with keyword fields; infra modules (database, queues) keep using
stdlib loggers, which are routed to the same stdout stream.

Request and worker identifiers are attached with bind_context() and show up
on every event emitted from the same task until clear_context() runs.
"""

import logging
import sys

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from src.config.settings import get_settings

# Third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("asyncio", "asyncpg", "httpx", "uvicorn.access", "redis")


def _add_environment(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("env", get_settings().environment)
    return event_dict


def _build_processors(json_logs: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        processors.append(_add_environment)
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return processors


def setup_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Log level name; defaults to LOG_LEVEL.
        json_logs: Force JSON (True) or console (False) output; defaults to
            JSON in production only.
    """
    settings = get_settings()
    level_name = (level or settings.log_level).upper()
    if json_logs is None:
        json_logs = settings.is_production

    structlog.configure(
        processors=_build_processors(json_logs),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_context(**fields) -> None:
    """Attach fields (request_id, worker_id) to later events from this task."""
    structlog.contextvars.bind_contextvars(**fields)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()

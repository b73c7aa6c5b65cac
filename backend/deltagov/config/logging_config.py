"""
structlog setup shared by the API and the ingest worker.

Every record, including those from stdlib loggers (uvicorn, alembic, httpx),
goes through the same processor chain: it is stamped with the service
identity and scrubbed of the Congress.gov API key before rendering.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

from deltagov.config.settings import Settings

# Congress.gov takes its key as a query parameter, so it rides along in URLs
# quoted by httpx exceptions and upstream error messages.
_API_KEY_PARAM = re.compile(r"(api_key=)[^&\s\"']+")
REDACTED = "***"

# Alembic and the Congress.gov client are chatty at INFO
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "alembic", "httpx", "httpcore")


def redact_api_key(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    for key, value in event_dict.items():
        if isinstance(value, str) and "api_key=" in value:
            event_dict[key] = _API_KEY_PARAM.sub(rf"\g<1>{REDACTED}", value)
    return event_dict


def service_context(settings: Settings) -> Processor:
    """Processor that adds ``service``/``version``/``env`` unless already bound."""
    identity = {
        "service": settings.app_name.lower(),
        "version": settings.app_version,
        "env": settings.environment.value,
    }

    def add_identity(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
        for key, value in identity.items():
            event_dict.setdefault(key, value)
        return event_dict

    return add_identity


def configure_logging(settings: Settings) -> None:
    """Configure structlog and the root logger. Call once per process, before logging."""
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        service_context(settings),
        structlog.processors.StackInfoRenderer(),
    ]

    renderer: Any
    final_processors: list[Processor] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if settings.log_json:
        final_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    # JSON output renders exception text first, so tracebacks are scrubbed as well
    final_processors += [redact_api_key, renderer]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=final_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(settings.log_level.value)

    quiet_level = logging.DEBUG if settings.debug else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

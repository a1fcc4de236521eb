"""Structured logging configuration using structlog.

Host applications call `configure_logging(settings)` once at startup. Library
modules only ever do `structlog.get_logger(__name__)`, so without this call
structlog's defaults apply.

Production renders JSON lines; development renders colored console output.
Every event carries the app name and version, plus the `request_id` bound by
ResilientLLMClient.invoke for the duration of one invocation.
"""

import logging
import sys
from typing import IO

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from resilient_llm.config import Settings
from resilient_llm.config import settings as default_settings

SECRET_KEYS = frozenset({"api_key", "x-api-key", "authorization", "anthropic_api_key"})

NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")


def redact_secrets(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credentials that ended up in an event (headers dumps, settings)."""
    for key in list(event_dict):
        if key.lower() in SECRET_KEYS and event_dict[key]:
            event_dict[key] = "***"
    return event_dict


class AppContext:
    """Processor stamping app name and version on every event."""

    def __init__(self, app: str, version: str):
        self.app = app
        self.version = version

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("app", self.app)
        event_dict.setdefault("version", self.version)
        return event_dict


def build_processors(settings: Settings) -> list[Processor]:
    """Processors shared by structlog loggers and foreign stdlib records."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        AppContext(settings.APP_NAME, settings.APP_VERSION),
        redact_secrets,
    ]


def configure_logging(settings: Settings | None = None, stream: IO[str] | None = None) -> None:
    """Configure structlog and route stdlib logging through the same renderer.

    Args:
        settings: LOG_LEVEL, ENVIRONMENT, APP_NAME and APP_VERSION are read
            from here (module settings when omitted)
        stream: Output stream (stdout when omitted)
    """
    settings = settings or default_settings
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    is_production = settings.ENVIRONMENT.lower() == "production"

    shared_processors = build_processors(settings)
    renderer: Processor
    if is_production:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream is None)

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=is_production,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "Logging configured",
        log_level=settings.LOG_LEVEL,
        environment=settings.ENVIRONMENT,
        renderer="json" if is_production else "console",
    )

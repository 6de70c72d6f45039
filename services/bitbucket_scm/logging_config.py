"""
Logging setup for the Bitbucket SCM adapter and webhook service.

structlog renders through the stdlib logging handler, so adapter events and
third-party log records share one format: JSON in production, console in
development.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

DEFAULT_APP_NAME = "bitbucket-scm"

# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")


def _app_context(app_name: str) -> Processor:
    def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict["app"] = app_name
        return event_dict

    return add_app_context


def _level_first(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Put level and timestamp ahead of the event fields in JSON output."""
    head = {key: event_dict.pop(key) for key in ("level", "timestamp") if key in event_dict}
    return {**head, **event_dict}


def configure_logging(
    json_logs: bool = True,
    log_level: str = "INFO",
    app_name: str = DEFAULT_APP_NAME,
) -> None:
    """Route structlog and stdlib logging through one stdout handler."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        _app_context(app_name),
    ]

    if json_logs:
        render: list[Processor] = [
            structlog.processors.format_exc_info,
            _level_first,
            structlog.processors.JSONRenderer(),
        ]
    else:
        render = [structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *render],
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)

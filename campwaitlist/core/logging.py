"""
Structured logging with structlog.

JSON lines in production, console rendering elsewhere. Request-scoped
fields (request ID, method, path) arrive through contextvars bound by the
request middleware. Offer tokens act as bearer credentials in email links
and are masked before any renderer sees them.
"""

import logging
import sys

import structlog

from campwaitlist.core.config import get_settings

SENSITIVE_KEYS = frozenset({"token", "offer_token", "fresh_token", "authorization", "api_key"})


def mask_sensitive(_logger, _method_name: str, event_dict: dict) -> dict:
    for key in SENSITIVE_KEYS.intersection(event_dict):
        value = event_dict[key]
        if value:
            event_dict[key] = f"{str(value)[:4]}***"
    return event_dict


def add_service_info(_logger, _method_name: str, event_dict: dict) -> dict:
    settings = get_settings()
    event_dict.setdefault("service", settings.APP_NAME)
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    return event_dict


def setup_logging() -> None:
    settings = get_settings()
    production = settings.ENVIRONMENT == "production"

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        mask_sensitive,
    ]
    if production:
        shared_processors += [
            add_service_info,
            structlog.processors.format_exc_info,
        ]
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

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
            # stdlib records from uvicorn and friends go through the same chain
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "apscheduler", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)

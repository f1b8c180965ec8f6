"""
Structured Logging Configuration
"""

import logging
import sys

import structlog

from app.core.config import settings

# Keys that must never reach a log line, even if passed by mistake
REDACTED_KEYS = frozenset({
    "password",
    "new_password",
    "current_password",
    "password_hash",
    "verification_token",
    "token",
    "access_token",
    "refresh_token",
})


def redact_secrets(logger, method_name: str, event_dict: dict) -> dict:
    for key in REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "[redacted]"
    return event_dict


def setup_logging(level: str | None = None) -> None:
    """Configure structlog on top of the standard library logging module"""
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper())

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_secrets,
            # JSON in production, human readable console everywhere else
            structlog.processors.JSONRenderer() if settings.ENVIRONMENT == "production"
            else structlog.dev.ConsoleRenderer(colors=True)
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None):
    """Get a configured logger instance"""
    return structlog.get_logger(name)

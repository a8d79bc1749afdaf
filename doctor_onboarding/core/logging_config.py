"""
Logging setup for the registration service.

structlog renders through stdlib logging so supabase/httpx records share the
same format. Every event carries the request trace_id (bound by
TraceMiddleware) and has credential fields masked before rendering.
"""

import logging
import os
from typing import Any, MutableMapping

import structlog

# Event keys whose values must never reach a log sink
REDACTED_KEYS = frozenset(
    {
        "password",
        "confirm_password",
        "aadhaar_number",
        "bank_account_number",
        "confirm_bank_account_number",
        "access_token",
    }
)
REDACTED = "***"

LEVEL_DEFAULTS = {
    "production": "INFO",
    "staging": "INFO",
    "development": "DEBUG",
    "test": "WARNING",
}

QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "asyncio")


class TraceIdFilter(logging.Filter):
    """Copy trace_id from the structlog context onto plain stdlib records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = structlog.contextvars.get_contextvars().get("trace_id", "")
        return True


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    for key in REDACTED_KEYS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def resolve_log_level(environment: str) -> str:
    level = os.getenv("LOG_LEVEL", "").upper()
    if level in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        return level
    return LEVEL_DEFAULTS.get(environment, "INFO")


def configure_logging() -> None:
    """Initialize structlog and the root handler. Call once at startup."""
    environment = os.getenv("ENVIRONMENT", "development")

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if environment == "production":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=shared_processors)
    )
    handler.addFilter(TraceIdFilter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(resolve_log_level(environment))

    # supabase SDK runs on httpx
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

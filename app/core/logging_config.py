"""
structlog setup for the pipeline.

Every component logs key/value events through get_logger(); request and
cron-job context bound by the middleware and the trigger endpoints is merged
into each event.

Production (RAILWAY_ENVIRONMENT set) renders one JSON object per line:
    {"event": "status_changed", "model": 3, "datacenter": "GRA",
     "new_status": "available", "job": "poll", "level": "info", ...}

Elsewhere a console renderer is used, without colors under pytest.
"""

import logging
import os
import sys
from typing import Any, MutableMapping

import structlog

IS_PRODUCTION = os.getenv("RAILWAY_ENVIRONMENT") is not None
IS_TEST = "pytest" in sys.modules
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Loggers that report every request or statement at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "sqlalchemy.engine", "resend")


def _drop_unset_context(_: Any, __: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Remove context keys bound as None (e.g. no correlation id on this request)."""
    for key in ("request_id", "correlation_id", "job"):
        if key in event_dict and event_dict[key] is None:
            del event_dict[key]
    return event_dict


def configure_logging(level: str = LOG_LEVEL) -> None:
    numeric_level = logging.getLevelName(level)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _drop_unset_context,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.dev.set_exc_info,
    ]
    if IS_PRODUCTION:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=not IS_TEST))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # uvicorn, sqlalchemy and friends log through the standard library
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


configure_logging()

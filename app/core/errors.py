"""
Pipeline error taxonomy and unified error capture.

Component-level failures are contained and reported in run summaries.
Only ValidationError and CapacityExceeded cross the HTTP boundary; any
other exception escaping a trigger endpoint is an unexpected fault and is
captured here before the endpoint answers with a 500.

Usage:
    capture_exception(exc, context={"model": 3})
    capture_message("Using fallback datacenters", level="warning")
"""

from typing import Optional, Any, Dict
from datetime import datetime, timezone
import logging
import os

import sentry_sdk
import structlog
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from app.core.context import get_request_id, get_context_dict

logger = structlog.get_logger(__name__)

__all__ = [
    "PipelineError",
    "UpstreamUnavailable",
    "ParseAmbiguity",
    "RateLimited",
    "TransportFailure",
    "ValidationError",
    "CapacityExceeded",
    "init_sentry",
    "capture_exception",
    "capture_message",
    "is_sentry_enabled",
]


class PipelineError(Exception):
    """Base class for failures raised by the polling/notification pipeline."""


class UpstreamUnavailable(PipelineError):
    """Breaker is open, or the OVH API timed out or answered non-2xx."""


class ParseAmbiguity(PipelineError):
    """The OVH API answered with a body no decoder strategy recognized."""


class RateLimited(PipelineError):
    """A dispatcher rate-limit window is at its ceiling."""


class TransportFailure(PipelineError):
    """The mail transport raised or reported non-delivery."""


class ValidationError(PipelineError):
    """Malformed trigger input, rejected before any side effect."""


class CapacityExceeded(PipelineError):
    """The broadcast hub is at its connection ceiling."""


_sentry_initialized: bool = False


def init_sentry(
    dsn: str,
    environment: str = "production",
    traces_sample_rate: float = 0.1,
    release: Optional[str] = None,
) -> bool:
    """
    Initialize Sentry SDK for error tracking.

    Returns:
        True if initialization successful, False otherwise
    """
    global _sentry_initialized

    if not dsn:
        logger.info("Sentry disabled (no DSN provided)")
        return False

    if not release:
        release = os.environ.get("RAILWAY_GIT_COMMIT_SHA")

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            traces_sample_rate=traces_sample_rate,
            release=release,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                LoggingIntegration(
                    level=logging.INFO,
                    event_level=logging.ERROR,
                ),
            ],
            ignore_errors=[
                KeyboardInterrupt,
                SystemExit,
            ],
            before_send=_before_send,
        )
    except Exception as e:
        logger.error("Failed to initialize Sentry", error=str(e))
        return False

    _sentry_initialized = True
    logger.info("Sentry initialized", environment=environment, release=release)
    return True


def _before_send(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Drop health-check noise and tag events with the request id."""
    if "request" in event:
        url = event["request"].get("url", "")
        if "/health" in url:
            return None

    request_id = get_request_id()
    if request_id:
        event.setdefault("tags", {})["request_id"] = request_id

    return event


def is_sentry_enabled() -> bool:
    return _sentry_initialized


def capture_exception(
    exc: BaseException,
    context: Optional[Dict[str, Any]] = None,
    level: str = "error",
    tags: Optional[Dict[str, str]] = None,
) -> Optional[str]:
    """
    Capture an exception with structured logging, and with Sentry when enabled.

    Args:
        exc: Exception to capture
        context: Additional context dict (e.g., {"model": 3})
        level: Severity level (debug, info, warning, error, fatal)
        tags: Additional tags for filtering in Sentry

    Returns:
        Sentry event ID or None if not sent
    """
    enriched_context = {
        **get_context_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "error_type": type(exc).__name__,
        **(context or {}),
    }

    logger.error(
        "Exception captured",
        exc_info=exc,
        **enriched_context,
    )

    if not _sentry_initialized:
        return None

    with sentry_sdk.new_scope() as scope:
        for key, value in enriched_context.items():
            if value is not None:
                scope.set_extra(key, value)
        for key, value in (tags or {}).items():
            scope.set_tag(key, value)
        scope.level = level
        return sentry_sdk.capture_exception(exc)


def capture_message(
    message: str,
    level: str = "info",
    context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """
    Capture a non-exception event, e.g. a low-confidence parse or a breaker opening.
    """
    enriched_context = {
        **get_context_dict(),
        **(context or {}),
    }

    log_func = getattr(logger, level, logger.info)
    log_func(message, **enriched_context)

    if not _sentry_initialized:
        return None

    with sentry_sdk.new_scope() as scope:
        for key, value in enriched_context.items():
            if value is not None:
                scope.set_extra(key, value)
        scope.level = level
        return sentry_sdk.capture_message(message, level=level)

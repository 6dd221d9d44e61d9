"""
Per-request and per-job context for logs and error reports.

The HTTP middleware sets request_id (and correlation_id when the cron host
sends one); the trigger endpoints set job ("poll" or "send-emails"). All
three ride along in contextvars, so they survive awaits and are picked up by
capture_exception without being passed around.
"""

from contextvars import ContextVar
from typing import Dict, Optional
import uuid

__all__ = [
    "set_request_id",
    "get_request_id",
    "generate_request_id",
    "set_correlation_id",
    "get_correlation_id",
    "set_job",
    "get_job",
    "clear_context",
    "get_context_dict",
]

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
_job: ContextVar[Optional[str]] = ContextVar("job", default=None)


def generate_request_id() -> str:
    """req_ followed by 16 hex characters."""
    return f"req_{uuid.uuid4().hex[:16]}"


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id.get()


def set_correlation_id(correlation_id: str) -> None:
    # Lets a poll and the dispatch it feeds be followed together
    _correlation_id.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def set_job(job: str) -> None:
    _job.set(job)


def get_job() -> Optional[str]:
    return _job.get()


def clear_context() -> None:
    _request_id.set(None)
    _correlation_id.set(None)
    _job.set(None)


def get_context_dict() -> Dict[str, Optional[str]]:
    return {
        "request_id": get_request_id(),
        "correlation_id": get_correlation_id(),
        "job": get_job(),
    }

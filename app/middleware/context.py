"""
Request context middleware.

Assigns each request an id (taken from X-Request-ID when it is safe to log,
generated otherwise), passes X-Correlation-ID through, binds both into
structlog, and echoes them on the response.
"""

import re
import time
from typing import Optional, Tuple

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.context import (
    set_request_id,
    set_correlation_id,
    generate_request_id,
    clear_context,
)

logger = structlog.get_logger(__name__)

SLOW_REQUEST_THRESHOLD_MS = 2000.0

MAX_ID_LENGTH = 64
SAFE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_\-]+$")


def _safe_id(value: Optional[str]) -> Optional[str]:
    """Return value if it is short and log-safe, else None."""
    if value and len(value) <= MAX_ID_LENGTH and SAFE_ID_PATTERN.match(value):
        return value
    return None


def _resolve_ids(request: Request) -> Tuple[str, Optional[str]]:
    request_id = _safe_id(request.headers.get("X-Request-ID")) or generate_request_id()
    correlation_id = _safe_id(request.headers.get("X-Correlation-ID"))
    return request_id, correlation_id


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id, correlation_id = _resolve_ids(request)
        set_request_id(request_id)
        if correlation_id:
            set_correlation_id(correlation_id)
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            correlation_id=correlation_id,
            path=request.url.path,
            method=request.method,
        )

        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-ID"] = request_id
            if correlation_id:
                response.headers["X-Correlation-ID"] = correlation_id
            return response
        finally:
            # SSE responses return as soon as streaming starts, so this is handler time only
            elapsed_ms = (time.perf_counter() - start) * 1000
            if status_code >= 500 or elapsed_ms >= SLOW_REQUEST_THRESHOLD_MS:
                logger.warning("request_slow_or_failed", status_code=status_code, duration_ms=round(elapsed_ms, 1))
            clear_context()
            structlog.contextvars.clear_contextvars()

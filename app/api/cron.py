"""
Cron trigger endpoints.

Called by an external scheduler (GET or POST). Each call runs one poll or
one dispatch pass to completion and returns its summary.
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from app.api import deps
from app.core.config import settings
from app.core.context import set_job
from app.core.errors import ValidationError, capture_exception
from app.services.email_dispatcher import EmailDispatcher, validate_batch_size
from app.services.notification_queue import get_notification_stats
from app.services.poller import Poller


router = APIRouter(dependencies=[Depends(deps.verify_cron_secret)])


def _start_job(job: str) -> float:
    set_job(job)
    structlog.contextvars.bind_contextvars(job=job)
    return time.monotonic()


def _failure_response(job: str, exc: Exception, start: float) -> JSONResponse:
    capture_exception(exc, context={"job": job})
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": f"{job} failed",
            "message": str(exc),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "duration": round(time.monotonic() - start, 3),
        },
    )


@router.api_route("/poll", methods=["GET", "POST"])
async def trigger_poll(poller: Poller = Depends(deps.get_poller)) -> Any:
    """Poll every VPS model once and fan out detected changes."""
    start = _start_job("poll")
    try:
        summary = await poller.run()
    except Exception as e:
        return _failure_response("poll", e, start)

    return {
        "success": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **summary.to_dict(),
    }


@router.api_route("/send-emails", methods=["GET", "POST"])
async def trigger_send_emails(
    batch: Optional[int] = Query(default=None, description="Jobs to process, capped at 100"),
    dispatcher: EmailDispatcher = Depends(deps.get_dispatcher),
) -> Any:
    """Send one batch of pending notification emails."""
    # Rejected before any side effect
    batch_size = validate_batch_size(
        settings.EMAIL_BATCH_SIZE if batch is None else batch,
        dispatcher.max_batch_size,
    )

    start = _start_job("send-emails")
    try:
        summary = await dispatcher.run(batch_size)
        stats: Dict[str, Any] = get_notification_stats(dispatcher.engine)
    except ValidationError:
        raise
    except Exception as e:
        return _failure_response("send-emails", e, start)

    return {
        "success": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "batch_size": batch_size,
        **summary.to_dict(),
        "rate_limits": dispatcher.limiter.snapshot(),
        "notification_stats": stats,
    }

"""
Email Dispatcher

Drains pending EmailNotification rows in bounded concurrent sub-batches.

Per job the three-tier RateLimiter is consulted first; a refused job stays
pending and is reported as rate limited. A permitted job is handed to the
mail transport (a blocking callable run in a worker thread with its own
timeout). Delivery marks the job sent; a transport error or non-delivery
bumps attempts and marks the job failed once max_attempts is reached.

The wall-clock budget is checked between sub-batches. Jobs not reached
before it runs out stay pending for the next invocation.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlmodel import Session, select

from app.core.db_utils import execute_with_retry
from app.core.errors import RateLimited, TransportFailure, ValidationError
from app.core.logging_config import get_logger
from app.core.metrics import pipeline_metrics
from app.core.rate_limit import RateLimiter
from app.core.typing import col, utc_now
from app.models.notification import EmailNotification, NotificationState
from app.models.status import StatusChange
from app.models.user import User
from app.services.email import send_status_notification_email

logger = get_logger(__name__)

MAX_BATCH_SIZE = 100

# (to_email, model, datacenter, status_change, unsubscribe_token) -> delivered
MailTransport = Callable[[str, int, str, StatusChange, str], bool]

SENT = "sent"
FAILED = "failed"
RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class PendingJob:
    id: int
    email: str
    model: int
    datacenter: str
    status_change: StatusChange
    unsubscribe_token: str
    attempts: int


@dataclass
class JobOutcome:
    job: PendingJob
    outcome: str
    error: Optional[str] = None


@dataclass
class ProcessingSummary:
    total: int = 0
    sent: int = 0
    failed: int = 0
    rate_limited: int = 0
    deferred: int = 0
    duration: float = 0.0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "sent": self.sent,
            "failed": self.failed,
            "rate_limited": self.rate_limited,
            "deferred": self.deferred,
            "duration": round(self.duration, 3),
            "errors": self.errors,
        }


def validate_batch_size(batch_size: Any, max_batch_size: int = MAX_BATCH_SIZE) -> int:
    """Reject non-positive or non-integer sizes; cap large ones."""
    try:
        size = int(batch_size)
    except (TypeError, ValueError):
        raise ValidationError(f"batch must be an integer, got {batch_size!r}")
    if size < 1:
        raise ValidationError(f"batch must be at least 1, got {size}")
    return min(size, max_batch_size)


def fetch_pending_jobs(session: Session, limit: int) -> List[PendingJob]:
    """Oldest pending jobs first, joined with the recipient's address."""
    rows = session.exec(
        select(EmailNotification, User)
        .join(User, col(User.id) == col(EmailNotification.user_id))
        .where(col(EmailNotification.state) == NotificationState.PENDING.value)
        .order_by(col(EmailNotification.created_at).asc(), col(EmailNotification.id).asc())
        .limit(limit)
    ).all()
    return [
        PendingJob(
            id=notification.id,
            email=user.email,
            model=notification.model,
            datacenter=notification.datacenter,
            status_change=StatusChange(notification.status_change),
            unsubscribe_token=user.unsubscribe_token,
            attempts=notification.attempts,
        )
        for notification, user in rows
    ]


class EmailDispatcher:
    def __init__(
        self,
        engine,
        limiter: RateLimiter,
        transport: MailTransport = send_status_notification_email,
        max_parallel: int = 10,
        batch_delay: float = 0.1,
        max_processing_seconds: float = 300.0,
        send_timeout: float = 45.0,
        max_attempts: int = 3,
        max_batch_size: int = MAX_BATCH_SIZE,
    ):
        self.engine = engine
        self.limiter = limiter
        self.transport = transport
        self.max_parallel = max_parallel
        self.batch_delay = batch_delay
        self.max_processing_seconds = max_processing_seconds
        self.send_timeout = send_timeout
        self.max_attempts = max_attempts
        self.max_batch_size = max_batch_size

    async def _send(self, job: PendingJob) -> JobOutcome:
        try:
            if not self.limiter.try_acquire():
                raise RateLimited(f"Rate limit reached ({self.limiter.snapshot()})")
        except RateLimited as e:
            return JobOutcome(job=job, outcome=RATE_LIMITED, error=str(e))

        try:
            try:
                delivered = await asyncio.wait_for(
                    asyncio.to_thread(
                        self.transport,
                        job.email,
                        job.model,
                        job.datacenter,
                        job.status_change,
                        job.unsubscribe_token,
                    ),
                    timeout=self.send_timeout,
                )
            except asyncio.TimeoutError as e:
                raise TransportFailure(f"Send timed out after {self.send_timeout}s") from e
            except Exception as e:
                raise TransportFailure(f"{type(e).__name__}: {e}") from e
            if not delivered:
                raise TransportFailure("Transport reported non-delivery")
        except TransportFailure as e:
            return JobOutcome(job=job, outcome=FAILED, error=str(e))

        return JobOutcome(job=job, outcome=SENT)

    def _load(self, limit: int) -> List[PendingJob]:
        with Session(self.engine) as session:
            return fetch_pending_jobs(session, limit)

    def _record(self, outcomes: List[JobOutcome]) -> None:
        """Persist one sub-batch of outcomes. Rate-limited jobs are left untouched."""
        to_write = [o for o in outcomes if o.outcome in (SENT, FAILED)]
        if not to_write:
            return

        def _update(session: Session) -> None:
            now = utc_now()
            for outcome in to_write:
                notification = session.get(EmailNotification, outcome.job.id)
                if notification is None or notification.state != NotificationState.PENDING.value:
                    continue
                if outcome.outcome == SENT:
                    notification.state = NotificationState.SENT.value
                    notification.sent_at = now
                    notification.last_error = None
                else:
                    notification.attempts += 1
                    notification.last_error = (outcome.error or "")[:1000]
                    if notification.attempts >= self.max_attempts:
                        notification.state = NotificationState.FAILED.value
                        notification.failed_at = now
                session.add(notification)
            session.commit()

        execute_with_retry(self.engine, _update)

    async def run(self, batch_size: Any = 50) -> ProcessingSummary:
        size = validate_batch_size(batch_size, self.max_batch_size)
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()

        # Sessions are blocking; keep them off the event loop
        jobs = await asyncio.to_thread(self._load, size)

        summary = ProcessingSummary(total=len(jobs))
        if not jobs:
            summary.duration = time.monotonic() - start
            return summary

        logger.info("email_dispatch_started", pending=len(jobs), batch_size=size)

        chunks = [jobs[i : i + self.max_parallel] for i in range(0, len(jobs), self.max_parallel)]
        for index, chunk in enumerate(chunks):
            elapsed = time.monotonic() - start
            if elapsed >= self.max_processing_seconds:
                remaining = sum(len(c) for c in chunks[index:])
                summary.deferred += remaining
                logger.warning(
                    "email_dispatch_budget_exhausted",
                    elapsed=round(elapsed, 1),
                    deferred=remaining,
                )
                break

            outcomes = await asyncio.gather(*(self._send(job) for job in chunk))
            await asyncio.to_thread(self._record, outcomes)

            for outcome in outcomes:
                if outcome.outcome == SENT:
                    summary.sent += 1
                elif outcome.outcome == RATE_LIMITED:
                    summary.rate_limited += 1
                else:
                    summary.failed += 1
                    summary.errors.append(
                        {
                            "notification_id": outcome.job.id,
                            "email": outcome.job.email,
                            "error": outcome.error,
                            "attempts": outcome.job.attempts + 1,
                        }
                    )

            logger.info(
                "email_dispatch_progress",
                chunk=index + 1,
                chunks=len(chunks),
                sent=summary.sent,
                failed=summary.failed,
                rate_limited=summary.rate_limited,
            )

            if index < len(chunks) - 1 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        summary.duration = time.monotonic() - start
        pipeline_metrics.record_run(
            "send-emails",
            started_at=started_at,
            processed=summary.total,
            successful=summary.sent,
            failed=summary.failed,
            rate_limited=summary.rate_limited,
            deferred=summary.deferred,
        )
        logger.info(
            "email_dispatch_complete",
            total=summary.total,
            sent=summary.sent,
            failed=summary.failed,
            rate_limited=summary.rate_limited,
            deferred=summary.deferred,
            duration=round(summary.duration, 3),
        )
        return summary

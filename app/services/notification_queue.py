"""
Notification Queue

Turns a status change into one pending EmailNotification per subscriber.

Dedup is enforced by the partial unique index on pending rows: the insert is
conflict-ignoring, so a second enqueue of the same change while the first
job is still pending creates nothing, even when two pollers race.
"""

from typing import Any, Dict, List

from sqlalchemy import func
from sqlmodel import Session, select

from app.core.db_utils import execute_with_retry, insert_ignore
from app.core.logging_config import get_logger
from app.core.typing import col, utc_now
from app.models.notification import EmailNotification, NotificationState
from app.models.status import StatusChange
from app.models.user import User, UserSubscription

logger = get_logger(__name__)


def get_subscriber_ids(session: Session, model: int, datacenter: str) -> List[int]:
    """Verified users with an active subscription to (model, datacenter)."""
    stmt = (
        select(UserSubscription.user_id)
        .join(User, col(User.id) == col(UserSubscription.user_id))
        .where(
            col(UserSubscription.model) == model,
            col(UserSubscription.datacenter) == datacenter,
            col(UserSubscription.is_active).is_(True),
            col(User.email_verified).is_(True),
        )
        .order_by(col(UserSubscription.user_id))
    )
    return list(session.exec(stmt).all())


class NotificationQueue:
    def __init__(self, engine):
        self.engine = engine

    def enqueue_for_change(self, model: int, datacenter: str, status_change: StatusChange) -> int:
        """Create pending jobs for every subscriber. Returns how many were created."""

        def _enqueue(session: Session) -> int:
            created = 0
            now = utc_now()
            for user_id in get_subscriber_ids(session, model, datacenter):
                if insert_ignore(
                    session,
                    EmailNotification,
                    {
                        "user_id": user_id,
                        "model": model,
                        "datacenter": datacenter,
                        "status_change": status_change.value,
                        "state": NotificationState.PENDING.value,
                        "attempts": 0,
                        "created_at": now,
                    },
                ):
                    created += 1
            session.commit()
            return created

        created = execute_with_retry(self.engine, _enqueue)
        if created:
            logger.info(
                "notifications_enqueued",
                model=model,
                datacenter=datacenter,
                status_change=status_change.value,
                created=created,
            )
        return created


def get_notification_stats(engine) -> Dict[str, Any]:
    """Counts by state, plus pending jobs announcing availability."""
    with Session(engine) as session:
        rows = session.exec(
            select(EmailNotification.state, func.count()).group_by(EmailNotification.state)
        ).all()
        by_state = {state: count for state, count in rows}

        available_only = session.exec(
            select(func.count())
            .select_from(EmailNotification)
            .where(
                col(EmailNotification.state) == NotificationState.PENDING.value,
                col(EmailNotification.status_change) == StatusChange.BECAME_AVAILABLE.value,
            )
        ).one()

    return {
        "pending": by_state.get(NotificationState.PENDING.value, 0),
        "sent": by_state.get(NotificationState.SENT.value, 0),
        "failed": by_state.get(NotificationState.FAILED.value, 0),
        "total": sum(by_state.values()),
        "available_only": available_only,
    }

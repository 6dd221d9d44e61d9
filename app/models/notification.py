"""
EmailNotification Model - one queued email per subscriber per status change.

At most one pending row may exist per (user, model, datacenter,
status_change); the partial unique index below enforces it so concurrent
enqueues cannot race past a pre-check. Rows are never deleted.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel

from app.core.typing import utc_now


class NotificationState(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"  # Gave up after max attempts


PENDING_ONLY = text("state = 'pending'")


class EmailNotification(SQLModel, table=True):
    __tablename__ = "email_notifications"
    __table_args__ = (
        Index(
            "uq_email_notifications_pending",
            "user_id",
            "model",
            "datacenter",
            "status_change",
            unique=True,
            sqlite_where=PENDING_ONLY,
            postgresql_where=PENDING_ONLY,
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    model: int
    datacenter: str = Field(max_length=5)
    status_change: str = Field(max_length=32)  # StatusChange value
    state: str = Field(default=NotificationState.PENDING.value, max_length=16, index=True)
    attempts: int = Field(default=0)
    last_error: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=utc_now, index=True)
    sent_at: Optional[datetime] = Field(default=None)
    failed_at: Optional[datetime] = Field(default=None)

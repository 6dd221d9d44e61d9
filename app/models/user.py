"""
Subscribers and their subscriptions.

Both tables are written by the subscription-management flow; the
notification pipeline only reads them.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from app.core.typing import utc_now


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True, max_length=320)
    email_verified: bool = Field(default=False)
    verification_token: Optional[str] = Field(default=None, max_length=32)
    unsubscribe_token: str = Field(max_length=32, index=True)
    created_at: datetime = Field(default_factory=utc_now)


class UserSubscription(SQLModel, table=True):
    """One row per (user, model, datacenter); reactivated rather than duplicated."""

    __tablename__ = "user_subscriptions"
    __table_args__ = (UniqueConstraint("user_id", "model", "datacenter", name="uq_user_subscription"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    model: int
    datacenter: str = Field(max_length=5)
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utc_now)

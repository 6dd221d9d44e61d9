"""
Small helpers shared by the models and stores.

col() exists for type checkers only: SQLModel fields are declared as plain
Python types, but in queries they are SQLAlchemy column attributes.
"""

from typing import TYPE_CHECKING, TypeVar
from datetime import datetime, timezone

if TYPE_CHECKING:
    from sqlalchemy.orm.attributes import InstrumentedAttribute

T = TypeVar("T")


def col(attr: T) -> "InstrumentedAttribute[T]":
    """No-op at runtime, e.g. select(...).order_by(col(EmailNotification.created_at).asc())"""
    return attr  # type: ignore[return-value]


def utc_now() -> datetime:
    """Timezone-aware now; the default_factory for every timestamp column."""
    return datetime.now(timezone.utc)


def isoformat_or_none(value: datetime | None) -> str | None:
    return value.isoformat() if value else None

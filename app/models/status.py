"""
Availability state per (model, datacenter) pair.

DatacenterStatus holds the current reading and is keyed by the unique
(model, datacenter) pair. StatusHistory keeps one row per detected change.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from app.core.typing import utc_now


class VPSStatus(str, Enum):
    AVAILABLE = "available"
    OUT_OF_STOCK = "out-of-stock"


class StatusChange(str, Enum):
    BECAME_AVAILABLE = "became_available"
    BECAME_OUT_OF_STOCK = "became_out_of_stock"

    @classmethod
    def for_status(cls, status: VPSStatus) -> "StatusChange":
        return cls.BECAME_AVAILABLE if status == VPSStatus.AVAILABLE else cls.BECAME_OUT_OF_STOCK


class DatacenterStatus(SQLModel, table=True):
    """Current availability of one model in one datacenter."""

    __tablename__ = "datacenter_status"
    __table_args__ = (UniqueConstraint("model", "datacenter", name="uq_datacenter_status_model_dc"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    model: int = Field(index=True)
    datacenter: str = Field(max_length=5)
    status: str = Field(max_length=20)  # VPSStatus value
    last_checked: datetime = Field(default_factory=utc_now)  # Refreshed on every poll
    last_changed: Optional[datetime] = Field(default=None)  # Only moves when status flips


class StatusHistory(SQLModel, table=True):
    """Audit trail of status flips."""

    __tablename__ = "status_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    model: int = Field(index=True)
    datacenter: str = Field(max_length=5, index=True)
    old_status: Optional[str] = Field(default=None, max_length=20)  # None for the baseline reading
    new_status: str = Field(max_length=20)
    changed_at: datetime = Field(default_factory=utc_now, index=True)

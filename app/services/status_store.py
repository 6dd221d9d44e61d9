"""
Status Store

Atomic upsert-and-diff of (model, datacenter) -> status.

The first reading for a pair is inserted with ON CONFLICT DO NOTHING, so two
pollers racing on a new pair cannot both create it. Existing rows are read
with SELECT ... FOR UPDATE inside the same transaction as the write, which
serializes concurrent upserts for one pair on Postgres (SQLite serializes
writers on its own).
"""

from dataclasses import dataclass
from typing import List, Optional

from sqlmodel import Session, select

from app.core.db_utils import execute_with_retry, insert_ignore
from app.core.logging_config import get_logger
from app.core.typing import col, utc_now
from app.models.status import DatacenterStatus, StatusHistory, VPSStatus

logger = get_logger(__name__)


@dataclass(frozen=True)
class UpsertResult:
    changed: bool
    old_status: Optional[VPSStatus]
    new_status: VPSStatus


class StatusStore:
    def __init__(self, engine):
        self.engine = engine

    def upsert(self, model: int, datacenter: str, new_status: VPSStatus) -> UpsertResult:
        """
        Record a reading for (model, datacenter).

        changed is True iff the stored status differs from new_status, or no
        record existed yet (baseline, old_status None). last_checked always
        moves; last_changed moves only on change.
        """

        def _upsert(session: Session) -> UpsertResult:
            now = utc_now()
            created = insert_ignore(
                session,
                DatacenterStatus,
                {
                    "model": model,
                    "datacenter": datacenter,
                    "status": new_status.value,
                    "last_checked": now,
                    "last_changed": now,
                },
            )
            if created:
                session.add(StatusHistory(model=model, datacenter=datacenter, old_status=None, new_status=new_status.value))
                session.commit()
                return UpsertResult(changed=True, old_status=None, new_status=new_status)

            record = session.exec(
                select(DatacenterStatus)
                .where(
                    col(DatacenterStatus.model) == model,
                    col(DatacenterStatus.datacenter) == datacenter,
                )
                .with_for_update()
            ).one()

            old_status = VPSStatus(record.status)
            changed = old_status != new_status

            record.last_checked = now
            if changed:
                record.status = new_status.value
                record.last_changed = now
                session.add(
                    StatusHistory(
                        model=model,
                        datacenter=datacenter,
                        old_status=old_status.value,
                        new_status=new_status.value,
                    )
                )
            session.add(record)
            session.commit()
            return UpsertResult(changed=changed, old_status=old_status, new_status=new_status)

        return execute_with_retry(self.engine, _upsert)

    def get(self, model: int, datacenter: str) -> Optional[DatacenterStatus]:
        with Session(self.engine) as session:
            return session.exec(
                select(DatacenterStatus).where(
                    col(DatacenterStatus.model) == model,
                    col(DatacenterStatus.datacenter) == datacenter,
                )
            ).first()

    def get_all(self, model: Optional[int] = None) -> List[DatacenterStatus]:
        with Session(self.engine) as session:
            stmt = select(DatacenterStatus)
            if model is not None:
                stmt = stmt.where(col(DatacenterStatus.model) == model)
            stmt = stmt.order_by(col(DatacenterStatus.model).asc(), col(DatacenterStatus.datacenter).asc())
            return list(session.exec(stmt).all())

    def get_history(self, model: int, datacenter: str, limit: int = 50) -> List[StatusHistory]:
        with Session(self.engine) as session:
            stmt = (
                select(StatusHistory)
                .where(
                    col(StatusHistory.model) == model,
                    col(StatusHistory.datacenter) == datacenter,
                )
                .order_by(col(StatusHistory.changed_at).desc(), col(StatusHistory.id).desc())
                .limit(limit)
            )
            return list(session.exec(stmt).all())

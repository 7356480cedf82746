# File: taskhub/repositories/task_override_repository.py

from datetime import date
from typing import Dict, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from taskhub.db.models import TaskOverride
from taskhub.repositories.base_repository import BaseRepository


class TaskOverrideRepository(BaseRepository[TaskOverride]):
    """
    Queries over per-occurrence overrides.

    Lookups are by calendar day. Unless a method says otherwise only live
    (non-deleted) rows are returned.
    """

    model = TaskOverride

    def __init__(self, session: Session):
        super().__init__(session, TaskOverride)

    def _base(self, tenant_id: str, task_id: int):
        return select(TaskOverride).where(
            TaskOverride.tenant_id == tenant_id, TaskOverride.task_id == task_id
        )

    def find_for_date(
        self, tenant_id: str, task_id: int, day: date, for_update: bool = False
    ) -> Optional[TaskOverride]:
        stmt = self._base(tenant_id, task_id).where(
            TaskOverride.date == day, TaskOverride.is_deleted.is_(False)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def find_latest_on_or_before(
        self, tenant_id: str, task_id: int, day: date
    ) -> Optional[TaskOverride]:
        stmt = (
            self._base(tenant_id, task_id)
            .where(TaskOverride.date <= day, TaskOverride.is_deleted.is_(False))
            .order_by(TaskOverride.date.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def find_deleted_for_date(
        self, tenant_id: str, task_id: int, day: date
    ) -> Optional[TaskOverride]:
        stmt = (
            self._base(tenant_id, task_id)
            .where(TaskOverride.date == day, TaskOverride.is_deleted.is_(True))
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def list_live(self, tenant_id: str, task_id: int) -> List[TaskOverride]:
        stmt = (
            self._base(tenant_id, task_id)
            .where(TaskOverride.is_deleted.is_(False))
            .order_by(TaskOverride.date)
        )
        return list(self.session.execute(stmt).scalars().all())

    def live_by_date(self, tenant_id: str, task_id: int) -> Dict[date, TaskOverride]:
        return {o.date: o for o in self.list_live(tenant_id, task_id)}

    def list_deleted_dates(self, tenant_id: str, task_id: int) -> Set[date]:
        stmt = select(TaskOverride.date).where(
            TaskOverride.tenant_id == tenant_id,
            TaskOverride.task_id == task_id,
            TaskOverride.is_deleted.is_(True),
        )
        return set(self.session.execute(stmt).scalars().all())

# File: taskhub/repositories/task_repository.py

from datetime import datetime
from typing import List, Optional, Set

from sqlalchemy import select, or_
from sqlalchemy.orm import Session

from taskhub.db.models import Task, TaskStatus
from taskhub.repositories.base_repository import BaseRepository


class TaskRepository(BaseRepository[Task]):
    """
    Repository for Task entities: templates, plain tasks and materialized
    occurrences. Every query is scoped to a tenant.
    """

    model = Task

    def __init__(self, session: Session):
        super().__init__(session, Task)

    def _visible_to(self, stmt, user_id: Optional[int]):
        if user_id is None:
            return stmt
        return stmt.where(
            or_(Task.created_by_id == user_id, Task.assignee_id == user_id)
        )

    def get_for_tenant(self, tenant_id: str, task_id: int) -> Optional[Task]:
        stmt = select(Task).where(Task.id == task_id, Task.tenant_id == tenant_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_actual(self, parent_id: int, start_date_time: datetime) -> Optional[Task]:
        """Find the materialized row for a template occurrence."""
        stmt = select(Task).where(
            Task.parent_id == parent_id, Task.start_date_time == start_date_time
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def list_actual_starts(self, parent_id: int) -> Set[datetime]:
        stmt = select(Task.start_date_time).where(Task.parent_id == parent_id)
        return set(self.session.execute(stmt).scalars().all())

    def list_tasks(
        self,
        tenant_id: str,
        skip: int = 0,
        limit: int = 100,
        status: Optional[TaskStatus] = None,
        assignee_id: Optional[int] = None,
        parent_id: Optional[int] = None,
    ) -> List[Task]:
        stmt = select(Task).where(Task.tenant_id == tenant_id)
        if status is not None:
            stmt = stmt.where(Task.status == status)
        if assignee_id is not None:
            stmt = stmt.where(Task.assignee_id == assignee_id)
        if parent_id is not None:
            stmt = stmt.where(Task.parent_id == parent_id)
        stmt = stmt.order_by(Task.start_date_time, Task.id).offset(skip).limit(limit)
        return list(self.session.execute(stmt).scalars().all())

    def list_single_in_range(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
        statuses: Optional[List[TaskStatus]] = None,
        user_id: Optional[int] = None,
    ) -> List[Task]:
        """Non-recurring tasks (including materialized occurrences) starting in range."""
        stmt = select(Task).where(
            Task.tenant_id == tenant_id,
            Task.enable_recurrence.is_(False),
            Task.start_date_time >= start,
            Task.start_date_time <= end,
        )
        if statuses:
            stmt = stmt.where(Task.status.in_(statuses))
        stmt = self._visible_to(stmt, user_id)
        return list(self.session.execute(stmt.order_by(Task.start_date_time)).scalars().all())

    def list_templates_overlapping(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
        user_id: Optional[int] = None,
    ) -> List[Task]:
        """Recurring templates whose series can produce occurrences in range."""
        stmt = select(Task).where(
            Task.tenant_id == tenant_id,
            Task.enable_recurrence.is_(True),
            Task.start_date_time <= end,
            or_(Task.recurrence_end_date.is_(None), Task.recurrence_end_date >= start),
        )
        stmt = self._visible_to(stmt, user_id)
        return list(self.session.execute(stmt.order_by(Task.id)).scalars().all())

    def list_overdue(
        self, tenant_id: str, now: datetime, user_id: Optional[int] = None
    ) -> List[Task]:
        stmt = select(Task).where(
            Task.tenant_id == tenant_id,
            Task.enable_recurrence.is_(False),
            Task.due_date < now,
            Task.status.not_in([TaskStatus.DONE, TaskStatus.CANCELLED]),
        )
        if user_id is not None:
            stmt = stmt.where(Task.assignee_id == user_id)
        return list(self.session.execute(stmt.order_by(Task.due_date)).scalars().all())

# File: taskhub/services/task_override_service.py
"""
Override store for single occurrences of recurring tasks.

Each (task, calendar day) pair has at most one live override. Writes merge
into the existing row rather than replacing it, and run in a single
transaction with the live row locked while it is read and rewritten.
"""

import logging
from datetime import date, datetime
from typing import List, Optional, Set, Union

from sqlalchemy.orm import Session

from taskhub.core.exceptions import ConflictException
from taskhub.db.models import Task, TaskOverride, TaskStatus
from taskhub.repositories.task_override_repository import TaskOverrideRepository
from taskhub.schemas.task import OverrideData
from taskhub.services.base_service import BaseService

logger = logging.getLogger(__name__)

DayLike = Union[date, datetime]


def as_day(value: DayLike) -> date:
    return value.date() if isinstance(value, datetime) else value


class TaskOverrideService(BaseService[TaskOverride]):
    """Service for reading and writing per-occurrence overrides."""

    def __init__(
        self,
        session: Session,
        repository: Optional[TaskOverrideRepository] = None,
        event_bus=None,
        clock=None,
    ):
        super().__init__(
            session,
            repository_class=TaskOverrideRepository,
            repository=repository,
            event_bus=event_bus,
            clock=clock,
        )

    def find_for_date(self, tenant_id: str, task_id: int, day: DayLike) -> Optional[TaskOverride]:
        return self.repository.find_for_date(tenant_id, task_id, as_day(day))

    def find_latest_on_or_before(
        self, tenant_id: str, task_id: int, day: DayLike
    ) -> Optional[TaskOverride]:
        return self.repository.find_latest_on_or_before(tenant_id, task_id, as_day(day))

    def find_deleted_for_date(
        self, tenant_id: str, task_id: int, day: DayLike
    ) -> Optional[TaskOverride]:
        return self.repository.find_deleted_for_date(tenant_id, task_id, as_day(day))

    def is_deleted(self, tenant_id: str, task_id: int, day: DayLike) -> bool:
        return self.find_deleted_for_date(tenant_id, task_id, day) is not None

    def list_live(self, tenant_id: str, task_id: int) -> List[TaskOverride]:
        return self.repository.list_live(tenant_id, task_id)

    def list_deleted_dates(self, tenant_id: str, task_id: int) -> Set[date]:
        return self.repository.list_deleted_dates(tenant_id, task_id)

    def upsert(
        self,
        tenant_id: str,
        task: Task,
        day: DayLike,
        patch: Optional[OverrideData] = None,
        status: Optional[TaskStatus] = None,
        start_date_time: Optional[datetime] = None,
        assignee_id: Optional[int] = None,
        is_deleted: Optional[bool] = None,
    ) -> Optional[TaskOverride]:
        """
        Create or merge the override for one occurrence day.

        Patch keys overwrite matching keys in the stored patch; keys not in
        ``patch`` are left alone. Direct columns are overwritten when given.
        A new override takes the template's current status unless one is given.

        Returns:
            The written override, or None when there was nothing to write

        Raises:
            ConflictException: If the day has been deleted, or a concurrent
                writer created the live row first
        """
        patch = patch or OverrideData()
        day = as_day(day)
        columns = {
            key: value
            for key, value in (
                ("status", status),
                ("start_date_time", start_date_time),
                ("assignee_id", assignee_id),
            )
            if value is not None
        }
        if patch.is_empty() and not columns and is_deleted is None:
            logger.debug(f"Empty override write for task {task.id} on {day}; skipping")
            return None

        with self.transaction():
            if self.repository.find_deleted_for_date(tenant_id, task.id, day):
                raise ConflictException(
                    f"Occurrence of task {task.id} on {day} has been deleted",
                    {"task_id": task.id, "date": day.isoformat()},
                )

            override = self.repository.find_for_date(tenant_id, task.id, day, for_update=True)
            if override is None:
                override = self.repository.create(
                    {
                        "tenant_id": tenant_id,
                        "task_id": task.id,
                        "date": day,
                        "override_data": patch.to_patch(),
                        "status": columns.get("status", task.status),
                        "start_date_time": columns.get("start_date_time"),
                        "assignee_id": columns.get("assignee_id"),
                        "is_deleted": bool(is_deleted),
                    }
                )
                logger.info(f"Created override {override.id} for task {task.id} on {day}")
            else:
                merged = OverrideData.from_stored(override.override_data).merged_with(patch)
                updates = dict(columns)
                updates["override_data"] = merged.to_patch()
                if is_deleted is not None:
                    updates["is_deleted"] = is_deleted
                self.repository.update(override, updates)
                logger.info(f"Merged override {override.id} for task {task.id} on {day}")

        return override

    def mark_deleted(self, tenant_id: str, task: Task, day: DayLike) -> TaskOverride:
        """
        Remove one occurrence from the series. Repeat calls are no-ops.
        """
        day = as_day(day)
        with self.transaction():
            existing = self.repository.find_deleted_for_date(tenant_id, task.id, day)
            if existing is not None:
                return existing

            override = self.repository.find_for_date(tenant_id, task.id, day, for_update=True)
            if override is not None:
                self.repository.update(override, {"is_deleted": True})
            else:
                override = self.repository.create(
                    {
                        "tenant_id": tenant_id,
                        "task_id": task.id,
                        "date": day,
                        "override_data": {},
                        "status": task.status,
                        "is_deleted": True,
                    }
                )
        logger.info(f"Deleted occurrence of task {task.id} on {day} (override {override.id})")
        return override

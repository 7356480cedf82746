# File: taskhub/services/task_activity_service.py
"""
Activity log for tasks.

Turns the set of changed task fields into a single human-readable entry.
"""

import enum
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from taskhub.core.events import TaskCreatedEvent, TaskUpdatedEvent
from taskhub.db.models import TaskActivityLog, TaskActivityType
from taskhub.repositories.task_activity_log_repository import TaskActivityLogRepository
from taskhub.services.base_service import BaseService

logger = logging.getLogger(__name__)

TRACKED_FIELDS = (
    "title",
    "description",
    "status",
    "priority",
    "due_date",
    "progress",
    "assignee_id",
)

# First matching field decides the activity type
_TYPE_BY_FIELD = (
    ("status", TaskActivityType.STATUS_UPDATE),
    ("progress", TaskActivityType.PROGRESS_UPDATE),
    ("assignee_id", TaskActivityType.ASSIGNMENT_CHANGE),
    ("priority", TaskActivityType.PRIORITY_UPDATE),
    ("due_date", TaskActivityType.DUE_DATE_UPDATE),
)


def _plain(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def diff_tracked_fields(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Changed tracked fields as ``{field: {"old": ..., "new": ...}}``.

    Values are converted to JSON-friendly forms.
    """
    changes = {}
    for field in TRACKED_FIELDS:
        if field not in after:
            continue
        old, new = _plain(before.get(field)), _plain(after.get(field))
        if old != new:
            changes[field] = {"old": old, "new": new}
    return changes


class TaskActivityService(BaseService[TaskActivityLog]):
    """Service writing task activity entries."""

    def __init__(self, session: Session, repository: Optional[TaskActivityLogRepository] = None):
        super().__init__(
            session, repository_class=TaskActivityLogRepository, repository=repository
        )

    @staticmethod
    def activity_type_for(changes: Dict[str, Any]) -> TaskActivityType:
        for field, activity_type in _TYPE_BY_FIELD:
            if field in changes:
                return activity_type
        return TaskActivityType.TASK_UPDATE

    @staticmethod
    def describe(changes: Dict[str, Dict[str, Any]], title: str) -> str:
        parts: List[str] = []
        if "status" in changes:
            parts.append(
                f'Status changed from "{changes["status"]["old"]}" to "{changes["status"]["new"]}"'
            )
        if "progress" in changes:
            parts.append(
                f'Progress updated from {changes["progress"]["old"]}% to {changes["progress"]["new"]}%'
            )
        if "assignee_id" in changes:
            parts.append("Task assigned to user" if changes["assignee_id"]["new"] else "Task unassigned")
        if "priority" in changes:
            parts.append(
                f'Priority changed from "{changes["priority"]["old"]}" to "{changes["priority"]["new"]}"'
            )
        if "due_date" in changes:
            parts.append("Due date updated")
        if "title" in changes:
            parts.append(f'Title changed from "{changes["title"]["old"]}" to "{changes["title"]["new"]}"')
        if "description" in changes:
            parts.append("Description updated")

        if not parts:
            return f'Task "{title}" was updated'
        return ", ".join(parts)

    def record_created(
        self, tenant_id: str, task_id: int, user_id: Optional[int], title: str
    ) -> TaskActivityLog:
        with self.transaction():
            entry = self.repository.create(
                {
                    "tenant_id": tenant_id,
                    "task_id": task_id,
                    "user_id": user_id,
                    "activity_type": TaskActivityType.TASK_CREATED,
                    "description": f'Task "{title}" was created',
                    "changes": {},
                }
            )
        logger.debug(f"Activity log created for task creation: {task_id}")
        return entry

    def record_changes(
        self,
        tenant_id: str,
        task_id: int,
        user_id: Optional[int],
        changes: Dict[str, Dict[str, Any]],
        title: str = "",
    ) -> Optional[TaskActivityLog]:
        """
        Write one entry for a task update. Nothing is written when no tracked
        field changed.
        """
        tracked = {k: v for k, v in changes.items() if k in TRACKED_FIELDS}
        if not tracked:
            return None

        with self.transaction():
            entry = self.repository.create(
                {
                    "tenant_id": tenant_id,
                    "task_id": task_id,
                    "user_id": user_id,
                    "activity_type": self.activity_type_for(tracked),
                    "description": self.describe(tracked, title),
                    "changes": tracked,
                }
            )
        logger.debug(f"Activity log created for task update: {task_id}, fields: {', '.join(tracked)}")
        return entry

    def list_for_task(self, tenant_id: str, task_id: int) -> List[TaskActivityLog]:
        return self.repository.list_for_task(tenant_id, task_id)

    # Event handlers

    def on_task_created(self, event: TaskCreatedEvent) -> None:
        self.record_created(event.tenant_id, event.task_id, event.user_id, event.title)

    def on_task_updated(self, event: TaskUpdatedEvent) -> None:
        self.record_changes(
            event.tenant_id,
            event.task_id,
            event.user_id,
            event.changes,
            event.title,
        )

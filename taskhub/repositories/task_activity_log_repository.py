# File: taskhub/repositories/task_activity_log_repository.py

from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from taskhub.db.models import TaskActivityLog
from taskhub.repositories.base_repository import BaseRepository


class TaskActivityLogRepository(BaseRepository[TaskActivityLog]):
    model = TaskActivityLog

    def __init__(self, session: Session):
        super().__init__(session, TaskActivityLog)

    def list_for_task(self, tenant_id: str, task_id: int) -> List[TaskActivityLog]:
        stmt = (
            select(TaskActivityLog)
            .where(
                TaskActivityLog.tenant_id == tenant_id,
                TaskActivityLog.task_id == task_id,
            )
            .order_by(TaskActivityLog.id)
        )
        return list(self.session.execute(stmt).scalars().all())

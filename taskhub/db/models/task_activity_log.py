# File: taskhub/db/models/task_activity_log.py

from sqlalchemy import Column, String, Integer, ForeignKey, Text, JSON, Enum
from sqlalchemy.orm import relationship

from taskhub.db.models.base import AbstractBase, TimestampMixin
from taskhub.db.models.enums import TaskActivityType


class TaskActivityLog(AbstractBase, TimestampMixin):
    """
    Human-readable change entry written after a task is created or updated.
    """

    __tablename__ = "task_activity_logs"

    tenant_id = Column(String(64), index=True, nullable=False)
    task_id = Column(
        Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    activity_type = Column(Enum(TaskActivityType), nullable=False)
    description = Column(Text, nullable=False)
    changes = Column(JSON, default=dict)

    task = relationship("Task", back_populates="activity_logs")

    def __repr__(self):
        return f"<TaskActivityLog(id={self.id}, task_id={self.task_id}, type={self.activity_type})>"

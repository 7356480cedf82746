# File: taskhub/db/models/task.py
"""
Task model for TaskHub.

A single table holds three kinds of rows:
- plain tasks (``enable_recurrence`` false, no parent)
- recurring templates (``enable_recurrence`` true); their occurrences are
  virtual and computed on read
- actual tasks frozen from a past occurrence (``parent_id`` set to the template)
"""

from datetime import datetime
from typing import ClassVar, Optional, Set

from sqlalchemy import (
    Column,
    String,
    Integer,
    ForeignKey,
    DateTime,
    Boolean,
    Text,
    JSON,
    Enum,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship, validates

from taskhub.db.models.base import (
    AbstractBase,
    ValidationMixin,
    TimestampMixin,
    ModelValidationError,
)
from taskhub.db.models.enums import TaskStatus, TaskPriority


class Task(AbstractBase, ValidationMixin, TimestampMixin):
    """
    Task model.

    Attributes:
        tenant_id: Owning tenant
        title: Short task title
        status: Current lifecycle status
        start_date_time: Start of the task (anchor of the recurrence for templates)
        due_date: Due date; ``due_date - start_date_time`` is the occurrence duration
        enable_recurrence: Whether the row is a recurring template
        recurrence_config: Serialized recurrence rule
        recurrence_end_date: Last day on which occurrences may fall
        parent_id: Template this row was materialized from
    """

    __tablename__ = "tasks"
    __table_args__ = (
        UniqueConstraint(
            "parent_id", "start_date_time", name="uq_tasks_parent_start"
        ),
        Index("ix_tasks_tenant_due", "tenant_id", "due_date"),
    )
    __validated_fields__: ClassVar[Set[str]] = {"due_date"}

    tenant_id = Column(String(64), index=True, nullable=False)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Enum(TaskStatus), default=TaskStatus.TODO, nullable=False)
    priority = Column(Enum(TaskPriority), default=TaskPriority.MEDIUM, nullable=False)
    progress = Column(Integer, default=0, nullable=False)  # 0-100
    tags = Column(JSON, default=list)

    start_date_time = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Recurrence
    enable_recurrence = Column(Boolean, default=False, nullable=False)
    recurrence_config = Column(JSON, nullable=True)
    recurrence_end_date = Column(DateTime, nullable=True)

    assignee_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    parent_id = Column(
        Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True
    )

    # Relationships
    assignee = relationship("User", foreign_keys=[assignee_id])
    created_by = relationship("User", foreign_keys=[created_by_id])
    parent = relationship("Task", remote_side="Task.id", back_populates="occurrences")
    occurrences = relationship(
        "Task",
        back_populates="parent",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    overrides = relationship(
        "TaskOverride",
        back_populates="task",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    activity_logs = relationship(
        "TaskActivityLog",
        back_populates="task",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @validates("progress")
    def validate_progress(self, key: str, value: Optional[int]) -> Optional[int]:
        if value is not None and not 0 <= value <= 100:
            raise ModelValidationError(self, key, "Progress must be between 0 and 100")
        return value

    def validate_due_date(self, key: str, value: Optional[datetime]) -> None:
        if value is not None and self.start_date_time is not None:
            if value <= self.start_date_time:
                raise ModelValidationError(
                    self, key, "Due date must be after the start date"
                )

    def __repr__(self):
        return (
            f"<Task(id={self.id}, title='{self.title}', status={self.status}, "
            f"recurring={self.enable_recurrence}, parent_id={self.parent_id})>"
        )

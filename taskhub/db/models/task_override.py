# File: taskhub/db/models/task_override.py
"""
Per-occurrence overrides for recurring tasks.

An override is keyed by (task, calendar day). It customises one virtual
occurrence without touching the template. Rows are soft-deleted only: a
deleted override permanently removes its date from the series.
"""

from sqlalchemy import (
    Column,
    String,
    Integer,
    ForeignKey,
    Date,
    DateTime,
    Boolean,
    JSON,
    Enum,
    Index,
    text,
)
from sqlalchemy.orm import relationship

from taskhub.db.models.base import AbstractBase, TimestampMixin
from taskhub.db.models.enums import TaskStatus


class TaskOverride(AbstractBase, TimestampMixin):
    """
    Override of a single occurrence of a recurring task.

    Attributes:
        task_id: Owning recurring template
        date: Calendar day of the occurrence (date only, not an instant)
        start_date_time: Replacement start timestamp for the occurrence
        assignee_id: Replacement assignee
        status: Status of the occurrence
        is_deleted: Occurrence removed from the series
        override_data: Sparse patch of customised fields
    """

    __tablename__ = "task_overrides"
    __table_args__ = (
        # One live override per occurrence day
        Index(
            "uq_task_overrides_live_day",
            "task_id",
            "date",
            unique=True,
            sqlite_where=text("is_deleted = 0"),
            postgresql_where=text("is_deleted = false"),
        ),
    )

    tenant_id = Column(String(64), index=True, nullable=False)
    task_id = Column(
        Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date = Column(Date, nullable=False)

    start_date_time = Column(DateTime, nullable=True)
    assignee_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    status = Column(Enum(TaskStatus), nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False)
    override_data = Column(JSON, default=dict, nullable=False)

    # Relationships
    task = relationship("Task", back_populates="overrides")

    def __repr__(self):
        return (
            f"<TaskOverride(id={self.id}, task_id={self.task_id}, date={self.date}, "
            f"status={self.status}, deleted={self.is_deleted})>"
        )

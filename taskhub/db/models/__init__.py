"""
Initializes the models package for SQLAlchemy declarative base.

This file imports all model classes and enums into the `taskhub.db.models`
namespace so that SQLAlchemy's metadata is populated with all table
definitions when `Base.metadata.create_all()` is called.
"""

from taskhub.db.models.base import Base

from taskhub.db.models.enums import (
    TaskStatus,
    TaskPriority,
    RecurrenceFrequency,
    TaskActivityType,
)

from taskhub.db.models.user import User
from taskhub.db.models.task import Task
from taskhub.db.models.task_override import TaskOverride
from taskhub.db.models.task_activity_log import TaskActivityLog

__all__ = [
    "Base",
    "TaskStatus",
    "TaskPriority",
    "RecurrenceFrequency",
    "TaskActivityType",
    "User",
    "Task",
    "TaskOverride",
    "TaskActivityLog",
]

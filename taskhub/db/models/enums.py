# File: taskhub/db/models/enums.py
"""
Enumerations used by the task models and schemas.
"""

from enum import Enum


class TaskStatus(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class RecurrenceFrequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class TaskActivityType(str, Enum):
    TASK_CREATED = "task_created"
    STATUS_UPDATE = "status_update"
    PROGRESS_UPDATE = "progress_update"
    ASSIGNMENT_CHANGE = "assignment_change"
    PRIORITY_UPDATE = "priority_update"
    DUE_DATE_UPDATE = "due_date_update"
    TASK_UPDATE = "task_update"

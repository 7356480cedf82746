# File: taskhub/schemas/__init__.py
"""
Schemas package for the TaskHub API.

Pydantic models used for request validation, response serialization and the
results of batch operations.
"""

from taskhub.schemas.recurrence import RecurrenceRule
from taskhub.schemas.task import (
    OverrideData,
    PropagationResult,
    SweepFailure,
    SweepResult,
    TaskActivityLogResponse,
    TaskBase,
    TaskCancel,
    TaskCreate,
    TaskOccurrence,
    TaskResponse,
    TaskUpdate,
)

__all__ = [
    "RecurrenceRule",
    "OverrideData",
    "PropagationResult",
    "SweepFailure",
    "SweepResult",
    "TaskActivityLogResponse",
    "TaskBase",
    "TaskCancel",
    "TaskCreate",
    "TaskOccurrence",
    "TaskResponse",
    "TaskUpdate",
]

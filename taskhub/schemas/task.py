# taskhub/schemas/task.py
"""
Task schemas for the TaskHub API.

This module contains Pydantic models for tasks, the sparse patch stored on
occurrence overrides, resolved occurrence views and the result records
returned by batch operations.
"""

from datetime import datetime, date
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from taskhub.core.utils import to_naive_utc
from taskhub.db.models.enums import TaskActivityType, TaskStatus, TaskPriority
from taskhub.schemas.recurrence import RecurrenceRule


def _naive(v: Optional[datetime]) -> Optional[datetime]:
    return to_naive_utc(v) if isinstance(v, datetime) else v


class OverrideData(BaseModel):
    """
    Sparse patch of per-occurrence customisations.

    Only keys that were explicitly provided are part of the patch:
    ``model_fields_set`` tells "not customised" apart from "customised to null".
    """

    model_config = ConfigDict(extra="ignore")

    # Fields re-applied from the template when it is edited
    PROPAGATED_FIELDS: ClassVar[Tuple[str, ...]] = (
        "title",
        "description",
        "priority",
        "progress",
        "tags",
    )

    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    progress: Optional[int] = Field(None, ge=0, le=100)
    tags: Optional[List[str]] = None
    due_date: Optional[datetime] = None

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _naive(v)

    @classmethod
    def from_stored(cls, raw: Optional[Dict[str, Any]]) -> "OverrideData":
        return cls.model_validate(raw or {})

    @classmethod
    def from_values(cls, values: Dict[str, Any]) -> "OverrideData":
        """Build a patch from a dict, keeping only keys the patch knows about."""
        return cls.model_validate({k: v for k, v in values.items() if k in cls.model_fields})

    def has(self, field: str) -> bool:
        return field in self.model_fields_set

    def is_empty(self) -> bool:
        return not self.model_fields_set

    def to_patch(self) -> Dict[str, Any]:
        """JSON-ready dict containing only the keys present in the patch."""
        return self.model_dump(mode="json", exclude_unset=True)

    def merged_with(self, other: "OverrideData") -> "OverrideData":
        """Field-by-field overwrite of this patch by ``other``."""
        data = self.to_patch()
        data.update(other.to_patch())
        return OverrideData.model_validate(data)


class TaskBase(BaseModel):
    """Base schema for task data."""

    title: str = Field(..., min_length=1, max_length=255, description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    priority: TaskPriority = Field(TaskPriority.MEDIUM, description="Task priority")
    progress: int = Field(0, ge=0, le=100, description="Progress percentage")
    tags: List[str] = Field(default_factory=list, description="Free-form tags")
    start_date_time: datetime = Field(..., description="Start of the task")
    due_date: datetime = Field(..., description="Due date; must be after the start")
    assignee_id: Optional[int] = Field(None, description="Assigned user ID")


class TaskCreate(TaskBase):
    """Schema for creating a task or a recurring template."""

    status: TaskStatus = Field(TaskStatus.TODO, description="Initial status")
    enable_recurrence: bool = Field(False, description="Whether the task recurs")
    recurrence_config: Optional[RecurrenceRule] = Field(
        None, description="Recurrence rule, required when recurrence is enabled"
    )
    recurrence_end_date: Optional[datetime] = Field(
        None, description="Last day on which occurrences may fall"
    )

    @field_validator("start_date_time", "due_date", "recurrence_end_date")
    @classmethod
    def normalize_datetimes(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _naive(v)


class TaskUpdate(BaseModel):
    """Schema for updating a task, a template or a single occurrence."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    progress: Optional[int] = Field(None, ge=0, le=100)
    tags: Optional[List[str]] = None
    start_date_time: Optional[datetime] = None
    due_date: Optional[datetime] = None
    assignee_id: Optional[int] = None
    enable_recurrence: Optional[bool] = None
    recurrence_config: Optional[RecurrenceRule] = None
    recurrence_end_date: Optional[datetime] = None

    @field_validator("start_date_time", "due_date", "recurrence_end_date")
    @classmethod
    def normalize_datetimes(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _naive(v)

    def changes(self) -> Dict[str, Any]:
        """Only the fields the caller actually sent."""
        return self.model_dump(exclude_unset=True)


class TaskCancel(BaseModel):
    reason: Optional[str] = Field(None, description="Why the task was cancelled")
    timezone: Optional[str] = Field(
        None, description="IANA timezone used to stamp the cancellation note"
    )


class TaskResponse(BaseModel):
    """Schema for a persisted task row."""

    id: int
    tenant_id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    progress: int
    tags: List[str] = Field(default_factory=list)
    start_date_time: datetime
    due_date: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    enable_recurrence: bool
    recurrence_config: Optional[Dict[str, Any]] = None
    recurrence_end_date: Optional[datetime] = None
    assignee_id: Optional[int] = None
    created_by_id: Optional[int] = None
    parent_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("tags", mode="before")
    @classmethod
    def default_tags(cls, v):
        return v or []


class TaskOccurrence(BaseModel):
    """
    Resolved view of one occurrence.

    Virtual occurrences of a recurring template carry ``is_calendar_event``
    and a composite ``id``; real rows use their numeric id.
    """

    id: str
    is_calendar_event: bool = True
    original_task_id: int
    event_date: datetime
    tenant_id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    progress: int = 0
    tags: List[str] = Field(default_factory=list)
    start_date_time: datetime
    due_date: datetime
    assignee_id: Optional[int] = None
    created_by_id: Optional[int] = None
    enable_recurrence: bool = False
    has_override: bool = False


class TaskActivityLogResponse(BaseModel):
    id: int
    task_id: int
    user_id: Optional[int] = None
    activity_type: TaskActivityType
    description: str
    changes: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class SweepFailure(BaseModel):
    occurrence: datetime
    error: str


class SweepResult(BaseModel):
    """Outcome of materializing the past occurrences of one template."""

    task_id: int
    created: List[int] = Field(default_factory=list)
    skipped: List[datetime] = Field(default_factory=list)
    failures: List[SweepFailure] = Field(default_factory=list)


class PropagationResult(BaseModel):
    """Outcome of re-applying a template edit to one override."""

    override_id: int
    occurrence_date: date
    applied: Dict[str, Any] = Field(default_factory=dict)
    cleared: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def changed(self) -> bool:
        return bool(self.applied or self.cleared)

# taskhub/api/endpoints/tasks.py
"""
Task API endpoints for TaskHub.

This module provides endpoints for managing tasks and recurring tasks,
including single occurrences addressed as ``"<id>@<ISO date>"``, the
calendar view and the due-date trigger that freezes past occurrences.
"""

from datetime import datetime
from typing import Any, List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Response, status

from taskhub.api.deps import (
    get_current_user,
    get_required_user,
    get_task_activity_service,
    get_task_event_handlers,
    get_task_service,
    get_tenant_id,
)
from taskhub.core.exceptions import (
    BusinessRuleException,
    ConflictException,
    EntityNotFoundException,
    TaskHubException,
    ValidationException,
)
from taskhub.core.occurrence_ref import OccurrenceRef
from taskhub.core.utils import to_naive_utc
from taskhub.db.models import TaskStatus, User
from taskhub.schemas import (
    SweepResult,
    TaskActivityLogResponse,
    TaskCancel,
    TaskCreate,
    TaskOccurrence,
    TaskResponse,
    TaskUpdate,
)
from taskhub.services.task_activity_service import TaskActivityService
from taskhub.services.task_event_handlers import TaskEventHandlers
from taskhub.services.task_service import TaskService

router = APIRouter()

TaskOrOccurrence = Union[TaskOccurrence, TaskResponse]

_STATUS_BY_EXCEPTION = (
    (EntityNotFoundException, status.HTTP_404_NOT_FOUND),
    (ConflictException, status.HTTP_409_CONFLICT),
    (ValidationException, status.HTTP_400_BAD_REQUEST),
    (BusinessRuleException, status.HTTP_400_BAD_REQUEST),
)


def _http_error(exc: TaskHubException) -> HTTPException:
    for exc_type, status_code in _STATUS_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            return HTTPException(status_code=status_code, detail=exc.to_dict())
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.to_dict())


@router.get("/", response_model=List[TaskResponse])
def list_tasks(
    *,
    tenant_id: str = Depends(get_tenant_id),
    task_service: TaskService = Depends(get_task_service),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of records to return"),
    status_filter: Optional[TaskStatus] = Query(None, alias="status", description="Filter by status"),
    assignee_id: Optional[int] = Query(None, description="Filter by assignee"),
    parent_id: Optional[int] = Query(None, description="Only occurrences frozen from this task"),
):
    """
    List tasks with optional filtering and pagination.

    Returns:
        List of task records, including materialized occurrences
    """
    return task_service.list_tasks(
        tenant_id,
        skip=skip,
        limit=limit,
        status=status_filter,
        assignee_id=assignee_id,
        parent_id=parent_id,
    )


@router.post("/", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    *,
    tenant_id: str = Depends(get_tenant_id),
    task_service: TaskService = Depends(get_task_service),
    current_user: Optional[User] = Depends(get_current_user),
    task_in: TaskCreate,
):
    """
    Create a new task or recurring task.

    Raises:
        HTTPException: 400 if the schedule or recurrence settings are invalid,
            404 if the assignee does not exist
    """
    try:
        return task_service.create_task(
            tenant_id, task_in, current_user.id if current_user else None
        )
    except TaskHubException as e:
        raise _http_error(e)


@router.get("/overdue/all", response_model=List[TaskResponse])
def list_overdue_tasks(
    *,
    tenant_id: str = Depends(get_tenant_id),
    task_service: TaskService = Depends(get_task_service),
):
    """List every overdue, non-recurring task of the tenant."""
    return task_service.get_overdue_tasks(tenant_id)


@router.get("/overdue/my", response_model=List[TaskResponse])
def list_my_overdue_tasks(
    *,
    tenant_id: str = Depends(get_tenant_id),
    task_service: TaskService = Depends(get_task_service),
    current_user: User = Depends(get_required_user),
):
    """List overdue tasks assigned to the acting user."""
    return task_service.get_overdue_tasks(tenant_id, current_user.id)


@router.get("/calendar/events", response_model=List[TaskOccurrence])
def get_calendar_events(
    *,
    tenant_id: str = Depends(get_tenant_id),
    task_service: TaskService = Depends(get_task_service),
    current_user: Optional[User] = Depends(get_current_user),
    start_date: datetime = Query(..., description="Range start (inclusive)"),
    end_date: datetime = Query(..., description="Range end (inclusive)"),
    statuses: Optional[List[TaskStatus]] = Query(None, description="Status allow-list"),
):
    """
    Tasks and recurring occurrences starting within a date range.

    Virtual occurrences carry ``is_calendar_event`` and a composite id that
    the other task endpoints accept.
    """
    try:
        return task_service.get_calendar_events(
            tenant_id,
            to_naive_utc(start_date),
            to_naive_utc(end_date),
            statuses=statuses,
            user=current_user,
        )
    except TaskHubException as e:
        raise _http_error(e)


@router.patch("/cancel/{task_id}", response_model=TaskOrOccurrence)
def cancel_task(
    *,
    tenant_id: str = Depends(get_tenant_id),
    task_service: TaskService = Depends(get_task_service),
    current_user: Optional[User] = Depends(get_current_user),
    task_id: str = Path(..., description="Task id or occurrence id"),
    cancel_in: Optional[TaskCancel] = None,
):
    """
    Cancel a task or a single occurrence.

    A cancellation note with the reason is appended to the description.
    """
    cancel_in = cancel_in or TaskCancel()
    try:
        return task_service.cancel_task(
            tenant_id,
            task_id,
            reason=cancel_in.reason,
            timezone=cancel_in.timezone,
            user_id=current_user.id if current_user else None,
        )
    except TaskHubException as e:
        raise _http_error(e)


@router.get("/{task_id}", response_model=TaskOrOccurrence)
def get_task(
    *,
    tenant_id: str = Depends(get_tenant_id),
    task_service: TaskService = Depends(get_task_service),
    task_id: str = Path(..., description="Task id or occurrence id"),
):
    """
    Get a task, or the resolved view of one occurrence for a composite id.

    Raises:
        HTTPException: 404 if the task or occurrence doesn't exist
    """
    try:
        ref = OccurrenceRef.parse(task_id)
        if ref.is_occurrence:
            return task_service.get_occurrence(tenant_id, ref)
        return task_service.get_task(tenant_id, ref.task_id)
    except TaskHubException as e:
        raise _http_error(e)


@router.patch("/{task_id}", response_model=TaskOrOccurrence)
def update_task(
    *,
    tenant_id: str = Depends(get_tenant_id),
    task_service: TaskService = Depends(get_task_service),
    current_user: Optional[User] = Depends(get_current_user),
    task_id: str = Path(..., description="Task id or occurrence id"),
    task_in: TaskUpdate,
):
    """
    Update a task, a recurring task or a single occurrence.

    Future occurrences return their resolved view; past occurrences return
    the materialized task row.
    """
    try:
        return task_service.update_task(
            tenant_id, task_id, task_in, current_user.id if current_user else None
        )
    except TaskHubException as e:
        raise _http_error(e)


@router.post("/{task_id}/complete", response_model=TaskResponse)
def complete_task(
    *,
    tenant_id: str = Depends(get_tenant_id),
    task_service: TaskService = Depends(get_task_service),
    current_user: Optional[User] = Depends(get_current_user),
    task_id: str = Path(..., description="Task id"),
):
    """Mark a task as done."""
    try:
        return task_service.complete_task(
            tenant_id, task_id, current_user.id if current_user else None
        )
    except TaskHubException as e:
        raise _http_error(e)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    *,
    tenant_id: str = Depends(get_tenant_id),
    task_service: TaskService = Depends(get_task_service),
    task_id: str = Path(..., description="Task id or occurrence id"),
) -> Response:
    """
    Delete a task, or remove one occurrence from a recurring series.
    """
    try:
        task_service.delete_task(tenant_id, task_id)
    except TaskHubException as e:
        raise _http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{task_id}/due-date-passed", response_model=SweepResult)
def due_date_passed(
    *,
    tenant_id: str = Depends(get_tenant_id),
    handlers: TaskEventHandlers = Depends(get_task_event_handlers),
    task_id: str = Path(..., description="Task id or occurrence id"),
):
    """
    Freeze every past occurrence of a recurring task.

    Failures on individual occurrences are reported in the result.
    """
    try:
        return handlers.handle_due_date_passed(tenant_id, task_id)
    except TaskHubException as e:
        raise _http_error(e)


@router.get("/{task_id}/activity", response_model=List[TaskActivityLogResponse])
def list_task_activity(
    *,
    tenant_id: str = Depends(get_tenant_id),
    task_service: TaskService = Depends(get_task_service),
    activity_service: TaskActivityService = Depends(get_task_activity_service),
    task_id: int = Path(..., description="Task id"),
) -> Any:
    """Activity log of a task in the order it was written."""
    try:
        task_service.get_task(tenant_id, task_id)
    except TaskHubException as e:
        raise _http_error(e)
    return activity_service.list_for_task(tenant_id, task_id)

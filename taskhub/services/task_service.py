# File: taskhub/services/task_service.py
"""
Task service for TaskHub.

Entry point for task and occurrence operations. Every public method takes the
tenant explicitly. Ids may address a whole task (``"42"``) or one occurrence
of a recurring task (``"42@2024-01-08T09:00:00.000Z"``); they are parsed into
an ``OccurrenceRef`` on entry.
"""

import logging
from datetime import datetime, time, timedelta
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from taskhub.core.config import settings
from taskhub.core.events import TaskCreatedEvent, TaskUpdatedEvent
from taskhub.core.exceptions import (
    BusinessRuleException,
    EntityNotFoundException,
    ValidationException,
)
from taskhub.core.occurrence_ref import OccurrenceRef
from taskhub.core.utils import format_in_timezone
from taskhub.db.models import Task, TaskStatus, User
from taskhub.repositories.task_repository import TaskRepository
from taskhub.repositories.user_repository import UserRepository
from taskhub.schemas.recurrence import RecurrenceRule
from taskhub.schemas.task import OverrideData, TaskCreate, TaskOccurrence, TaskUpdate
from taskhub.services.base_service import BaseService
from taskhub.services.occurrence_expander import OccurrenceExpander, end_of_day
from taskhub.services.occurrence_freezer import OccurrenceFreezer
from taskhub.services.occurrence_materializer import OccurrenceMaterializer
from taskhub.services.override_propagation_service import OverridePropagationService
from taskhub.services.task_activity_service import TRACKED_FIELDS, diff_tracked_fields
from taskhub.services.task_override_service import TaskOverrideService

logger = logging.getLogger(__name__)

TaskId = Union[str, int, OccurrenceRef]

RECURRENCE_FIELDS = ("enable_recurrence", "recurrence_config", "recurrence_end_date")
NON_NULLABLE_FIELDS = ("title", "status", "priority", "progress", "start_date_time", "due_date")


class TaskService(BaseService[Task]):
    """
    Service for managing tasks and recurring task occurrences.

    Coordinates the override store, the freezer for past occurrences and
    propagation of template edits to overrides.
    """

    def __init__(
        self,
        session: Session,
        repository: Optional[TaskRepository] = None,
        override_service: Optional[TaskOverrideService] = None,
        freezer: Optional[OccurrenceFreezer] = None,
        propagation_service: Optional[OverridePropagationService] = None,
        user_repository: Optional[UserRepository] = None,
        expander: Optional[OccurrenceExpander] = None,
        event_bus=None,
        clock=None,
    ):
        super().__init__(
            session,
            repository_class=TaskRepository,
            repository=repository,
            event_bus=event_bus,
            clock=clock,
        )
        self.expander = expander or OccurrenceExpander()
        self.materializer = OccurrenceMaterializer(self.expander)
        self.override_service = override_service or TaskOverrideService(
            session, clock=self.clock
        )
        self.freezer = freezer or OccurrenceFreezer(
            session,
            repository=self.repository,
            override_service=self.override_service,
            expander=self.expander,
            materializer=self.materializer,
            event_bus=event_bus,
            clock=self.clock,
        )
        self.propagation_service = propagation_service or OverridePropagationService(
            session, repository=self.override_service.repository, clock=self.clock
        )
        self.user_repository = user_repository or UserRepository(session)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_task(self, tenant_id: str, task_id: int) -> Task:
        """
        Get a task row by id.

        Raises:
            EntityNotFoundException: If the task does not exist in the tenant
        """
        task = self.repository.get_for_tenant(tenant_id, task_id)
        if task is None:
            raise EntityNotFoundException("Task", task_id)
        return task

    def list_tasks(
        self,
        tenant_id: str,
        skip: int = 0,
        limit: int = 100,
        status: Optional[TaskStatus] = None,
        assignee_id: Optional[int] = None,
        parent_id: Optional[int] = None,
    ) -> List[Task]:
        return self.repository.list_tasks(
            tenant_id,
            skip=skip,
            limit=limit,
            status=status,
            assignee_id=assignee_id,
            parent_id=parent_id,
        )

    def _get_template(self, tenant_id: str, task_id: int) -> Task:
        task = self.get_task(tenant_id, task_id)
        if not task.enable_recurrence:
            raise ValidationException(
                f"Task {task_id} is not recurring; occurrence ids only address recurring tasks",
                {"id": ["task is not recurring"]},
            )
        return task

    def _resolve_occurrence(self, task: Task, ref: OccurrenceRef) -> datetime:
        """
        Map the date in an occurrence id onto the series.

        Ids may carry a bare date; the occurrence on that calendar day is
        returned with the series' time of day.

        Raises:
            EntityNotFoundException: If the series has no occurrence that day
        """
        day_start = datetime.combine(ref.occurrence.date(), time.min)
        matches = self.expander.expand(task, day_start, end_of_day(ref.occurrence))
        if not matches:
            raise EntityNotFoundException("Task occurrence", str(ref))
        return ref.occurrence if ref.occurrence in matches else matches[0]

    def get_occurrence(self, tenant_id: str, raw_id: TaskId) -> TaskOccurrence:
        """
        Resolved view of one occurrence of a recurring task.

        When the occurrence has been materialized, the actual row is returned.
        Otherwise the exact-date override is applied, falling back to the most
        recent earlier override (its data, status and assignee only).

        Raises:
            ValidationException: If the id has no date or the task is not recurring
            EntityNotFoundException: If the task or the occurrence does not exist
        """
        ref = OccurrenceRef.parse(raw_id)
        if not ref.is_occurrence:
            raise ValidationException(
                "Occurrence id must include a date", {"id": ["missing occurrence date"]}
            )
        task = self._get_template(tenant_id, ref.task_id)
        occurrence = self._resolve_occurrence(task, ref)

        if self.override_service.is_deleted(tenant_id, task.id, occurrence):
            raise EntityNotFoundException("Task occurrence", str(ref))

        actual = self.repository.find_actual(task.id, occurrence)
        if actual is not None:
            return self.materializer.view_for_task(actual)

        override = self.override_service.find_for_date(tenant_id, task.id, occurrence)
        borrowed = False
        if override is None:
            override = self.override_service.find_latest_on_or_before(
                tenant_id, task.id, occurrence
            )
            borrowed = override is not None
        return self.materializer.build_view(task, occurrence, override, borrowed=borrowed)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def _validate_assignee(self, tenant_id: str, assignee_id: Optional[int]) -> None:
        if assignee_id is None:
            return
        if self.user_repository.get_for_tenant(tenant_id, assignee_id) is None:
            raise EntityNotFoundException("User", assignee_id)

    def _validate_schedule(
        self,
        start: datetime,
        due: datetime,
        enable_recurrence: bool,
        rule: Optional[Any],
        end_date: Optional[datetime],
    ) -> None:
        errors: Dict[str, List[str]] = {}
        if due <= start:
            errors["due_date"] = ["Due date must be after the start date"]
        if enable_recurrence:
            if rule is None:
                errors["recurrence_config"] = [
                    "Recurrence config is required when recurrence is enabled"
                ]
            if end_date is not None:
                max_span = timedelta(days=settings.RECURRENCE_MAX_SPAN_DAYS)
                if end_date <= start:
                    errors["recurrence_end_date"] = [
                        "Recurrence end date must be after the start date"
                    ]
                elif end_date - start > max_span:
                    errors["recurrence_end_date"] = [
                        f"Recurrence end date must be within {max_span.days} days of the start date"
                    ]
        if errors:
            raise ValidationException("Invalid task schedule", errors)

    def _status_side_effects(
        self, previous: Optional[TaskStatus], new_status: TaskStatus, started_at=None
    ) -> Dict[str, Any]:
        """Column changes implied by a status transition."""
        if previous == new_status:
            return {}
        now = self.now()
        effects: Dict[str, Any] = {}
        if new_status == TaskStatus.IN_PROGRESS and started_at is None:
            effects["started_at"] = now
        elif new_status == TaskStatus.DONE:
            effects["completed_at"] = now
            effects["progress"] = 100
        elif new_status == TaskStatus.CANCELLED:
            effects["progress"] = 0
        if previous == TaskStatus.DONE and new_status != TaskStatus.DONE:
            effects["completed_at"] = None
        return effects

    def create_task(
        self, tenant_id: str, task_in: TaskCreate, user_id: Optional[int] = None
    ) -> Task:
        """
        Create a task or a recurring template.

        Raises:
            ValidationException: If the schedule or recurrence settings are invalid
            EntityNotFoundException: If the assignee does not exist in the tenant
        """
        self._validate_schedule(
            task_in.start_date_time,
            task_in.due_date,
            task_in.enable_recurrence,
            task_in.recurrence_config,
            task_in.recurrence_end_date,
        )
        self._validate_assignee(tenant_id, task_in.assignee_id)

        data = task_in.model_dump(exclude={"recurrence_config"})
        data.update(
            {
                "tenant_id": tenant_id,
                "created_by_id": user_id,
                "recurrence_config": (
                    task_in.recurrence_config.to_stored() if task_in.enable_recurrence else None
                ),
            }
        )
        if not task_in.enable_recurrence:
            data["recurrence_end_date"] = None
        data.update(self._status_side_effects(None, task_in.status))

        with self.transaction():
            task = self.repository.create(data)

        logger.info(
            f"Created task {task.id} for tenant {tenant_id} (recurring={task.enable_recurrence})"
        )
        self._publish(
            TaskCreatedEvent(task_id=task.id, tenant_id=tenant_id, title=task.title, user_id=user_id)
        )
        return task

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update_task(
        self,
        tenant_id: str,
        raw_id: TaskId,
        task_in: TaskUpdate,
        user_id: Optional[int] = None,
    ) -> Union[Task, TaskOccurrence]:
        """
        Update a task, a recurring template or a single occurrence.

        - Any occurrence: status and progress cannot be edited (cancel instead).
        - Past occurrence: freezes it and updates the actual row.
        - Future occurrence: writes the change into the occurrence's override.
        - Task or template: applies the change; for templates, history is
          frozen first and the edit is propagated to existing overrides.

        Returns:
            The updated task row, or the resolved view of a future occurrence
        """
        ref = OccurrenceRef.parse(raw_id)
        changes = task_in.changes()

        if not ref.is_occurrence:
            return self._update_template(tenant_id, ref.task_id, task_in, user_id)

        task = self._get_template(tenant_id, ref.task_id)
        occurrence = self._resolve_occurrence(task, ref)

        if "status" in changes:
            raise ValidationException(
                "Cannot update status for calendar events. Please cancel the task instead.",
                {"status": ["not editable on a calendar event"]},
            )
        if "progress" in changes:
            raise ValidationException(
                "Cannot update progress for calendar events.",
                {"progress": ["not editable on a calendar event"]},
            )
        blocked = [f for f in RECURRENCE_FIELDS if f in changes]
        if blocked:
            raise ValidationException(
                "Recurrence settings can only be changed on the recurring task itself",
                {f: ["not editable on a single occurrence"] for f in blocked},
            )
        if changes.get("assignee_id") is not None:
            self._validate_assignee(tenant_id, changes["assignee_id"])

        if occurrence <= self.now():
            return self._update_past_occurrence(tenant_id, task, occurrence, changes, user_id)
        return self._update_future_occurrence(tenant_id, task, occurrence, changes)

    def _update_past_occurrence(
        self,
        tenant_id: str,
        task: Task,
        occurrence: datetime,
        changes: Dict[str, Any],
        user_id: Optional[int],
    ) -> Task:
        if "start_date_time" in changes:
            raise ValidationException(
                "Cannot edit completed history except to cancel",
                {"start_date_time": ["not editable on a past occurrence"]},
            )
        self._reject_nulls(changes)
        actual = self.freezer.ensure_materialized(tenant_id, task, occurrence)
        return self._apply_row_update(tenant_id, actual, changes, user_id)

    def _update_future_occurrence(
        self,
        tenant_id: str,
        task: Task,
        occurrence: datetime,
        changes: Dict[str, Any],
    ) -> TaskOccurrence:
        current = self.override_service.find_for_date(tenant_id, task.id, occurrence)
        patch = OverrideData.from_values(changes)

        resolved = self.materializer.resolve_fields(task, occurrence, current)
        start = changes.get("start_date_time") or resolved["start_date_time"]
        stored = OverrideData.from_stored(current.override_data if current else None)
        if patch.due_date is not None:
            due = patch.due_date
        elif stored.due_date is not None:
            due = stored.due_date
        else:
            due = self.expander.due_for(task, start)
        if due <= start:
            raise ValidationException(
                "Invalid task schedule", {"due_date": ["Due date must be after the start date"]}
            )

        override = self.override_service.upsert(
            tenant_id,
            task,
            occurrence,
            patch=patch,
            start_date_time=changes.get("start_date_time"),
            assignee_id=changes.get("assignee_id"),
        )
        return self.materializer.build_view(task, occurrence, override or current)

    @staticmethod
    def _reject_nulls(changes: Dict[str, Any]) -> None:
        nulls = [k for k in NON_NULLABLE_FIELDS if k in changes and changes[k] is None]
        if nulls:
            raise ValidationException(
                f"Fields cannot be null: {', '.join(nulls)}",
                {k: ["may not be null"] for k in nulls},
            )

    def _apply_row_update(
        self,
        tenant_id: str,
        task: Task,
        changes: Dict[str, Any],
        user_id: Optional[int],
    ) -> Task:
        """Update a single task row and publish the tracked-field changes."""
        data = dict(changes)
        if "status" in data and data["status"] is not None:
            data.update(self._status_side_effects(task.status, data["status"], task.started_at))

        before = {f: getattr(task, f) for f in TRACKED_FIELDS}
        with self.transaction():
            self.repository.update(task, data)
        after = {f: getattr(task, f) for f in TRACKED_FIELDS}

        tracked = diff_tracked_fields(before, after)
        if tracked:
            self._publish(
                TaskUpdatedEvent(
                    task_id=task.id,
                    tenant_id=tenant_id,
                    title=task.title,
                    user_id=user_id,
                    changes=tracked,
                )
            )
        return task

    def _update_template(
        self,
        tenant_id: str,
        task_id: int,
        task_in: TaskUpdate,
        user_id: Optional[int],
        propagate: bool = True,
    ) -> Task:
        task = self.get_task(tenant_id, task_id)
        changes = task_in.changes()

        if changes.get("assignee_id") is not None:
            self._validate_assignee(tenant_id, changes["assignee_id"])

        self._reject_nulls(changes)

        enable_recurrence = changes.get("enable_recurrence", task.enable_recurrence)
        if "recurrence_config" in changes:
            rule = task_in.recurrence_config
            changes["recurrence_config"] = rule.to_stored() if rule else None
        else:
            rule = RecurrenceRule.from_stored(task.recurrence_config)
        self._validate_schedule(
            changes.get("start_date_time", task.start_date_time),
            changes.get("due_date", task.due_date),
            bool(enable_recurrence),
            rule,
            changes.get("recurrence_end_date", task.recurrence_end_date),
        )

        # Freeze history under the template's current values first
        if task.enable_recurrence:
            self.freezer.sweep_past_occurrences(tenant_id, task)

        task = self._apply_row_update(tenant_id, task, changes, user_id)

        if propagate and task.enable_recurrence:
            diff = OverrideData.from_values(
                {k: changes[k] for k in OverrideData.PROPAGATED_FIELDS if k in changes}
            )
            if not diff.is_empty():
                self.propagation_service.on_template_updated(tenant_id, task.id, diff)
        return task

    def complete_task(
        self, tenant_id: str, raw_id: TaskId, user_id: Optional[int] = None
    ) -> Task:
        """
        Mark a task as done.

        Raises:
            ValidationException: For occurrence ids, or if the task is already done
        """
        ref = OccurrenceRef.parse(raw_id)
        if ref.is_occurrence:
            raise ValidationException(
                "Cannot complete calendar events. Please cancel the task instead.",
                {"id": ["occurrence ids cannot be completed"]},
            )
        task = self.get_task(tenant_id, ref.task_id)
        if task.status == TaskStatus.DONE:
            raise ValidationException(
                "Task is already completed", {"status": ["task is already DONE"]}
            )
        return self._update_template(
            tenant_id, task.id, TaskUpdate(status=TaskStatus.DONE, progress=100), user_id
        )

    # ------------------------------------------------------------------
    # Cancel / delete
    # ------------------------------------------------------------------

    def _cancellation_note(self, reason: Optional[str], timezone: Optional[str]) -> str:
        stamp = format_in_timezone(
            self.now(), timezone or settings.DEFAULT_TIMEZONE, "%Y-%m-%d %H:%M"
        )
        return f"\n\n--- Task Cancelled ({stamp}) ---\nReason: {reason or 'No reason provided'}\n"

    def cancel_task(
        self,
        tenant_id: str,
        raw_id: TaskId,
        reason: Optional[str] = None,
        timezone: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> Union[Task, TaskOccurrence]:
        """
        Cancel a task or a single occurrence, appending a timestamped note to
        its description.

        Past occurrences are frozen as CANCELLED; future occurrences get a
        CANCELLED override.

        Raises:
            BusinessRuleException: If the task or occurrence is already cancelled
        """
        ref = OccurrenceRef.parse(raw_id)
        note = self._cancellation_note(reason, timezone)

        if not ref.is_occurrence:
            task = self.get_task(tenant_id, ref.task_id)
            if task.status == TaskStatus.CANCELLED:
                raise BusinessRuleException("Task is already cancelled", "already_cancelled")
            task = self._update_template(
                tenant_id,
                task.id,
                TaskUpdate(
                    status=TaskStatus.CANCELLED,
                    description=(task.description or "") + note,
                ),
                user_id,
                propagate=False,
            )
            logger.info(f"Cancelled task {task.id}")
            return task

        task = self._get_template(tenant_id, ref.task_id)
        occurrence = self._resolve_occurrence(task, ref)

        if occurrence <= self.now():
            existing = self.repository.find_actual(task.id, occurrence)
            if existing is not None and existing.status == TaskStatus.CANCELLED:
                raise BusinessRuleException("Task is already cancelled", "already_cancelled")
            actual = self.freezer.ensure_materialized(
                tenant_id, task, occurrence, forced_status=TaskStatus.CANCELLED
            )
            actual = self._apply_row_update(
                tenant_id,
                actual,
                {
                    "status": TaskStatus.CANCELLED,
                    "progress": 0,
                    "description": (actual.description or "") + note,
                },
                user_id,
            )
            logger.info(f"Cancelled past occurrence {ref} as task {actual.id}")
            return actual

        current = self.override_service.find_for_date(tenant_id, task.id, occurrence)
        current_patch = OverrideData.from_stored(current.override_data if current else None)
        base = current_patch.description if current_patch.has("description") else task.description
        override = self.override_service.upsert(
            tenant_id,
            task,
            occurrence,
            patch=OverrideData(description=(base or "") + note),
            status=TaskStatus.CANCELLED,
        )
        logger.info(f"Cancelled future occurrence {ref} via override {override.id}")
        return self.materializer.build_view(task, occurrence, override)

    def delete_task(self, tenant_id: str, raw_id: TaskId) -> None:
        """
        Delete a task, or remove one occurrence from a recurring series.

        Removing an occurrence soft-deletes its override so the date never
        reappears, and drops its actual row if one exists. Deleting a task
        removes its overrides, actual rows and activity entries.
        """
        ref = OccurrenceRef.parse(raw_id)
        if ref.is_occurrence:
            task = self._get_template(tenant_id, ref.task_id)
            occurrence = self._resolve_occurrence(task, ref)
            with self.transaction():
                self.override_service.mark_deleted(tenant_id, task, occurrence)
                actual = self.repository.find_actual(task.id, occurrence)
                if actual is not None:
                    self.repository.delete(actual)
            logger.info(f"Deleted occurrence {ref}")
            return

        task = self.get_task(tenant_id, ref.task_id)
        with self.transaction():
            self.repository.delete(task)
        logger.info(f"Deleted task {ref.task_id} for tenant {tenant_id}")

    # ------------------------------------------------------------------
    # Calendar / overdue
    # ------------------------------------------------------------------

    def get_calendar_events(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
        statuses: Optional[List[TaskStatus]] = None,
        user: Optional[User] = None,
    ) -> List[TaskOccurrence]:
        """
        Tasks and virtual occurrences starting within ``[start, end]``.

        Occurrences that have been materialized are returned as their actual
        rows. Users who are not superusers only see tasks they created or are
        assigned to.

        Raises:
            ValidationException: If the range is inverted or too long
        """
        if end < start:
            raise ValidationException(
                "End date must not be before start date", {"end_date": ["before start_date"]}
            )
        if end - start > timedelta(days=settings.CALENDAR_MAX_RANGE_DAYS):
            raise ValidationException(
                f"Calendar range may not exceed {settings.CALENDAR_MAX_RANGE_DAYS} days",
                {"end_date": ["range too long"]},
            )

        user_filter = None if user is None or user.is_superuser else user.id
        events = [
            self.materializer.view_for_task(t)
            for t in self.repository.list_single_in_range(
                tenant_id, start, end, statuses, user_filter
            )
        ]

        override_repository = self.override_service.repository
        for template in self.repository.list_templates_overlapping(
            tenant_id, start, end, user_filter
        ):
            occurrences = self.expander.expand(template, start, end)
            if not occurrences:
                continue
            actual_starts = self.repository.list_actual_starts(template.id)
            deleted = override_repository.list_deleted_dates(tenant_id, template.id)
            overrides = override_repository.live_by_date(tenant_id, template.id)

            for occurrence in occurrences:
                if occurrence in actual_starts or occurrence.date() in deleted:
                    continue
                override = overrides.get(occurrence.date())
                if not self.materializer.is_visible(template, override, statuses):
                    continue
                events.append(self.materializer.build_view(template, occurrence, override))

        events.sort(key=lambda e: (e.start_date_time, e.id))
        return events

    def get_overdue_tasks(self, tenant_id: str, user_id: Optional[int] = None) -> List[Task]:
        return self.repository.list_overdue(tenant_id, self.now(), user_id)

# File: taskhub/services/occurrence_materializer.py
"""
Construction of resolved occurrence views.

Field precedence, highest first:
1. a key present in the override's sparse patch
2. the override's own status / start / assignee columns
3. the template
"""

from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from taskhub.core.occurrence_ref import OccurrenceRef
from taskhub.db.models import Task, TaskOverride, TaskStatus
from taskhub.schemas.task import OverrideData, TaskOccurrence
from taskhub.services.occurrence_expander import OccurrenceExpander

# Patch keys whose columns cannot hold null; a null in the patch inherits instead
NON_NULLABLE_PATCH_FIELDS = frozenset({"title", "priority", "progress", "due_date"})


class OccurrenceMaterializer:
    """
    Merges a template, an optional override and an occurrence date into the
    field set of a single occurrence. Holds no state and performs no I/O.
    """

    def __init__(self, expander: Optional[OccurrenceExpander] = None):
        self.expander = expander or OccurrenceExpander()

    def resolve_fields(
        self,
        task: Task,
        occurrence: datetime,
        override: Optional[TaskOverride] = None,
        forced_status: Optional[TaskStatus] = None,
        include_schedule: bool = True,
    ) -> Dict[str, Any]:
        """
        Resolve every task field for one occurrence.

        Args:
            task: Recurring template
            occurrence: Start of the occurrence as produced by the expander
            override: Override applying to the occurrence, if any
            forced_status: Status that wins over both override and template
            include_schedule: Apply the override's start and due date; off when
                the override was borrowed from an earlier occurrence

        Returns:
            Dict of column values for the occurrence
        """
        fields = {
            "tenant_id": task.tenant_id,
            "title": task.title,
            "description": task.description,
            "status": task.status,
            "priority": task.priority,
            "progress": task.progress or 0,
            "tags": list(task.tags or []),
            "assignee_id": task.assignee_id,
            "created_by_id": task.created_by_id,
            "start_date_time": occurrence,
        }

        patch = OverrideData()
        if override is not None:
            if override.status is not None:
                fields["status"] = override.status
            if override.assignee_id is not None:
                fields["assignee_id"] = override.assignee_id
            if include_schedule and override.start_date_time is not None:
                fields["start_date_time"] = override.start_date_time
            patch = OverrideData.from_stored(override.override_data)

        fields["due_date"] = self.expander.due_for(task, fields["start_date_time"])

        for key in patch.model_fields_set:
            value = getattr(patch, key)
            if value is None and key in NON_NULLABLE_PATCH_FIELDS:
                continue
            if key == "due_date" and not include_schedule:
                continue
            if key == "tags":
                value = list(value or [])
            fields[key] = value

        if forced_status is not None:
            fields["status"] = forced_status
        return fields

    def build_view(
        self,
        task: Task,
        occurrence: datetime,
        override: Optional[TaskOverride] = None,
        borrowed: bool = False,
    ) -> TaskOccurrence:
        """
        Build the view of a virtual occurrence.

        ``borrowed`` marks an override taken from an earlier date; only its
        data, status and assignee carry over.
        """
        fields = self.resolve_fields(
            task, occurrence, override, include_schedule=not borrowed
        )
        return TaskOccurrence(
            id=str(OccurrenceRef.for_occurrence(task.id, occurrence)),
            is_calendar_event=True,
            original_task_id=task.id,
            event_date=occurrence,
            enable_recurrence=False,
            has_override=override is not None,
            **fields,
        )

    def view_for_task(self, task: Task) -> TaskOccurrence:
        """View of a real row (plain task or materialized occurrence)."""
        return TaskOccurrence(
            id=str(task.id),
            is_calendar_event=False,
            original_task_id=task.parent_id or task.id,
            event_date=task.start_date_time,
            tenant_id=task.tenant_id,
            title=task.title,
            description=task.description,
            status=task.status,
            priority=task.priority,
            progress=task.progress or 0,
            tags=list(task.tags or []),
            start_date_time=task.start_date_time,
            due_date=task.due_date,
            assignee_id=task.assignee_id,
            created_by_id=task.created_by_id,
            enable_recurrence=bool(task.enable_recurrence),
            has_override=False,
        )

    @staticmethod
    def is_visible(
        task: Task,
        override: Optional[TaskOverride],
        statuses: Optional[Iterable[TaskStatus]] = None,
    ) -> bool:
        """
        Whether an occurrence shows up under a status allow-list.

        Deleted occurrences are never visible. An empty allow-list admits
        every status.
        """
        if override is not None and override.is_deleted:
            return False
        allowed = set(statuses or [])
        if not allowed:
            return True
        if override is not None and override.status is not None:
            return override.status in allowed
        return task.status in allowed

# File: taskhub/services/occurrence_freezer.py
"""
Materialization of past occurrences into real task rows.

Once an occurrence's start has passed it is frozen into an "actual" task:
a plain row with ``parent_id`` pointing at the template. Freezing is
idempotent per (template, occurrence start).
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from taskhub.core.events import OccurrenceMaterializedEvent
from taskhub.core.exceptions import ConflictException, ValidationException
from taskhub.db.models import Task, TaskStatus
from taskhub.repositories.task_repository import TaskRepository
from taskhub.schemas.task import SweepFailure, SweepResult
from taskhub.services.base_service import BaseService
from taskhub.services.occurrence_expander import OccurrenceExpander
from taskhub.services.occurrence_materializer import OccurrenceMaterializer
from taskhub.services.task_override_service import TaskOverrideService

logger = logging.getLogger(__name__)


class OccurrenceFreezer(BaseService[Task]):
    """
    Creates actual task rows for occurrences whose date has passed.
    """

    def __init__(
        self,
        session: Session,
        repository: Optional[TaskRepository] = None,
        override_service: Optional[TaskOverrideService] = None,
        expander: Optional[OccurrenceExpander] = None,
        materializer: Optional[OccurrenceMaterializer] = None,
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
        self.override_service = override_service or TaskOverrideService(
            session, clock=self.clock
        )
        self.expander = expander or OccurrenceExpander()
        self.materializer = materializer or OccurrenceMaterializer(self.expander)

    def ensure_materialized(
        self,
        tenant_id: str,
        task: Task,
        occurrence: datetime,
        forced_status: Optional[TaskStatus] = None,
    ) -> Task:
        """
        Return the actual row for a past occurrence, creating it if needed.

        Args:
            tenant_id: Tenant owning the template
            task: Recurring template
            occurrence: Occurrence start as produced by the expander
            forced_status: Status that wins over override and template

        Returns:
            The actual task row

        Raises:
            ValidationException: If the occurrence lies in the future
            ConflictException: If the occurrence has been deleted
        """
        if occurrence > self.now():
            raise ValidationException(
                "Cannot create an actual task for a future date",
                {"occurrence": [occurrence.isoformat()]},
            )

        day = occurrence.date()
        if self.override_service.is_deleted(tenant_id, task.id, day):
            raise ConflictException(
                f"Occurrence of task {task.id} on {day} has been deleted",
                {"task_id": task.id, "date": day.isoformat()},
            )

        override = self.override_service.find_for_date(tenant_id, task.id, day)

        existing = self.repository.find_actual(task.id, occurrence)
        if existing is not None:
            logger.debug(f"Occurrence {occurrence} of task {task.id} already materialized as {existing.id}")
            return existing

        fields = self.materializer.resolve_fields(task, occurrence, override, forced_status)
        # Actual rows are keyed by the series occurrence, not a moved start;
        # the resolved schedule shifts with it so its duration is kept
        shift = occurrence - fields["start_date_time"]
        fields["start_date_time"] = occurrence
        fields["due_date"] = fields["due_date"] + shift
        fields.update(
            {
                "parent_id": task.id,
                "enable_recurrence": False,
                "recurrence_config": None,
                "recurrence_end_date": None,
            }
        )
        if fields["status"] == TaskStatus.DONE:
            fields["completed_at"] = self.now()

        try:
            with self.transaction():
                actual = self.repository.create(fields)
                if override is not None:
                    self.override_service.repository.update(
                        override, {"status": fields["status"]}
                    )
        except ConflictException:
            existing = self.repository.find_actual(task.id, occurrence)
            if existing is None:
                raise
            logger.info(
                f"Occurrence {occurrence} of task {task.id} was materialized concurrently as {existing.id}"
            )
            return existing

        logger.info(
            f"Materialized occurrence {occurrence} of task {task.id} as task {actual.id} "
            f"with status {actual.status.value}"
        )
        self._publish(
            OccurrenceMaterializedEvent(
                task_id=actual.id,
                tenant_id=tenant_id,
                parent_id=task.id,
                occurrence=occurrence,
                status=actual.status.value,
            )
        )
        return actual

    def sweep_past_occurrences(self, tenant_id: str, task: Task) -> SweepResult:
        """
        Materialize every past occurrence of ``task`` that has no actual row.

        Occurrences are processed one at a time in date order, each in its own
        transaction. A failure on one occurrence is logged and recorded in the
        result; the remaining occurrences are still attempted.
        """
        now = self.now()
        task_id = task.id
        result = SweepResult(task_id=task_id)
        if not task.enable_recurrence or task.start_date_time > now:
            return result

        occurrences = [
            o for o in self.expander.expand(task, task.start_date_time, now) if o <= now
        ]
        existing = self.repository.list_actual_starts(task_id)
        deleted = self.override_service.list_deleted_dates(tenant_id, task_id)

        for occurrence in occurrences:
            if occurrence in existing or occurrence.date() in deleted:
                result.skipped.append(occurrence)
                continue
            try:
                actual = self.ensure_materialized(tenant_id, task, occurrence)
                result.created.append(actual.id)
            except Exception as e:
                logger.error(
                    f"Failed to materialize occurrence {occurrence} of task {task_id}: {e}",
                    exc_info=True,
                )
                result.failures.append(SweepFailure(occurrence=occurrence, error=str(e)))

        logger.info(
            f"Swept task {task_id}: {len(result.created)} materialized, "
            f"{len(result.skipped)} skipped, {len(result.failures)} failed"
        )
        return result

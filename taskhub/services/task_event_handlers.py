# File: taskhub/services/task_event_handlers.py

import logging
from typing import Optional

from sqlalchemy.orm import Session

from taskhub.core.events import EventBus, TaskCreatedEvent, TaskUpdatedEvent, global_event_bus
from taskhub.core.occurrence_ref import OccurrenceRef
from taskhub.schemas.task import SweepResult
from taskhub.services.occurrence_freezer import OccurrenceFreezer
from taskhub.services.task_activity_service import TaskActivityService
from taskhub.services.task_service import TaskService

logger = logging.getLogger(__name__)


class TaskEventHandlers:
    """
    Event handlers for task-related events.
    Writes the activity log and runs the due-date sweep for recurring tasks.
    """

    def __init__(self, session: Session, event_bus: Optional[EventBus] = None, clock=None):
        """
        Initialize event handlers.

        Args:
            session: Database session
            event_bus: Bus that materialization events are published on
            clock: Callable returning the current naive UTC time
        """
        self.db_session = session
        self.event_bus = event_bus
        self.clock = clock
        self.activity_service = TaskActivityService(session)

    def handle_task_created(self, event: TaskCreatedEvent) -> None:
        logger.debug(f"Recording creation of task {event.task_id}")
        self.activity_service.on_task_created(event)

    def handle_task_updated(self, event: TaskUpdatedEvent) -> None:
        logger.debug(f"Recording update of task {event.task_id}: {', '.join(event.changes)}")
        self.activity_service.on_task_updated(event)

    def handle_due_date_passed(self, tenant_id: str, raw_id) -> SweepResult:
        """
        Freeze the past occurrences of a recurring task once a due date passes.

        An occurrence id is reduced to its task. Tasks that are not recurring
        produce an empty result.

        Raises:
            EntityNotFoundException: If the task does not exist in the tenant
        """
        ref = OccurrenceRef.parse(raw_id)
        task_service = TaskService(self.db_session, event_bus=self.event_bus, clock=self.clock)
        task = task_service.get_task(tenant_id, ref.task_id)

        freezer: OccurrenceFreezer = task_service.freezer
        result = freezer.sweep_past_occurrences(tenant_id, task)
        if result.failures:
            logger.warning(
                f"Due-date sweep of task {task.id} finished with {len(result.failures)} failures"
            )
        return result


def setup_task_event_handlers(
    session: Session, event_bus: Optional[EventBus] = None
) -> TaskEventHandlers:
    """
    Set up task event handlers.

    Args:
        session: Database session the handlers write to
        event_bus: Bus to subscribe to, the global bus when omitted

    Returns:
        The subscribed handler instance
    """
    bus = event_bus or global_event_bus
    handlers = TaskEventHandlers(session, event_bus=bus)
    bus.subscribe(TaskCreatedEvent, handlers.handle_task_created)
    bus.subscribe(TaskUpdatedEvent, handlers.handle_task_updated)
    logger.info("Task event handlers registered")
    return handlers

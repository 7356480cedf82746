# File: taskhub/core/events.py

from typing import Dict, Any, Callable, List, Optional, TypeVar, Type, Union
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
import uuid
import logging

logger = logging.getLogger(__name__)

# Type definitions
T_event = TypeVar("T_event", bound="DomainEvent")
EventHandler = Callable[[T_event], None]


# --- Base DomainEvent ---
@dataclass(eq=False)
class DomainEvent:
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)


# --- Task Event Definitions ---
@dataclass(eq=False)
class TaskCreatedEvent(DomainEvent):
    task_id: Optional[int] = None
    tenant_id: str = ""
    title: str = ""
    user_id: Optional[int] = None
    changes: Dict[str, Any] = field(default_factory=dict)


@dataclass(eq=False)
class TaskUpdatedEvent(DomainEvent):
    """Carries the tracked fields that changed as ``{field: {"old", "new"}}``."""

    task_id: Optional[int] = None
    tenant_id: str = ""
    title: str = ""
    user_id: Optional[int] = None
    changes: Dict[str, Any] = field(default_factory=dict)


@dataclass(eq=False)
class OccurrenceMaterializedEvent(DomainEvent):
    task_id: Optional[int] = None
    tenant_id: str = ""
    parent_id: Optional[int] = None
    occurrence: Optional[datetime] = None
    status: Optional[str] = None


# --- Event Bus Class ---
class EventBus:
    """
    Synchronous in-process event bus for domain events.

    Usage:
        global_event_bus.subscribe(TaskUpdatedEvent, handle_task_updated)
        global_event_bus.publish(TaskUpdatedEvent(task_id=123))
    """

    def __init__(self):
        self.subscribers: Dict[str, List[Callable]] = defaultdict(list)

    def publish(self, event: DomainEvent) -> None:
        """
        Publish an event to all registered handlers.

        Handler exceptions are logged and do not reach the publisher.
        """
        event_type = type(event).__name__
        logger.debug(f"Publishing event {event_type} ID {event.event_id}")
        subscribers_copy = list(self.subscribers.get(event_type, []))
        for handler in subscribers_copy:
            self._call_handler(handler, event, event_type)

    def _call_handler(self, handler: Callable, event: DomainEvent, event_type: str):
        try:
            handler(event)
        except Exception as e:
            logger.error(
                f"Error in handler {getattr(handler, '__name__', repr(handler))} "
                f"for {event_type} ID {event.event_id}: {e}",
                exc_info=True,
            )

    def subscribe(self, event_type: Union[str, Type[DomainEvent]], handler: Callable) -> None:
        """
        Subscribe to an event type.

        Args:
            event_type: Event class or event type name string
            handler: Callable to handle the event
        """
        event_type_name = event_type.__name__ if isinstance(event_type, type) else str(event_type)
        self.subscribers[event_type_name].append(handler)
        logger.debug(f"Subscribed handler {getattr(handler, '__name__', repr(handler))} to {event_type_name}")


# Global event bus instance - use this throughout the application
global_event_bus = EventBus()

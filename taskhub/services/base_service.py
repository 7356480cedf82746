# File: taskhub/services/base_service.py

from typing import TypeVar, Generic, Optional, Type
from contextlib import contextmanager
from datetime import datetime
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from taskhub.core.exceptions import ConflictException, ValidationException
from taskhub.core.events import DomainEvent
from taskhub.core.utils import Clock, utcnow
from taskhub.db.models.base import ModelValidationError
from taskhub.repositories.base_repository import BaseRepository

T = TypeVar("T")
logger = logging.getLogger(__name__)

# Key in Session.info tracking how many transaction() scopes are open
_TX_DEPTH_KEY = "taskhub_tx_depth"


class BaseService(Generic[T]):
    """
    Base service for all TaskHub services.

    Provides common functionality including:
    - Transaction management
    - Error handling and standardization
    - Event publishing
    - An injectable clock
    """

    def __init__(
            self,
            session: Session,
            repository_class: Optional[Type[BaseRepository]] = None,
            repository: Optional[BaseRepository] = None,
            event_bus=None,
            clock: Optional[Clock] = None,
    ):
        """
        Initialize service with dependencies.

        Args:
            session: Database session for persistence operations
            repository_class: Repository class to instantiate (optional if repository is provided)
            repository: Repository instance (optional if repository_class is provided)
            event_bus: Optional event bus for publishing domain events
            clock: Callable returning the current naive UTC time
        """
        self.session = session

        if repository is not None:
            self.repository = repository
        elif repository_class is not None:
            self.repository = repository_class(session)
        else:
            self.repository = None

        self.event_bus = event_bus
        self.clock = clock or utcnow

    def now(self) -> datetime:
        return self.clock()

    @contextmanager
    def transaction(self):
        """
        Provide a transactional scope around operations.

        Scopes nest: services sharing a session join the outermost scope, and
        only that scope commits or rolls back.

        Raises:
            Exception: Any exception raised inside the scope, transformed into
                a domain exception where one applies
        """
        depth = self.session.info.get(_TX_DEPTH_KEY, 0)
        self.session.info[_TX_DEPTH_KEY] = depth + 1
        try:
            yield
            if depth == 0:
                self.session.commit()
        except Exception as e:
            if depth > 0:
                raise
            self.session.rollback()
            logger.error(f"Transaction failed: {str(e)}", exc_info=True)

            transformed = self._transform_error(e)
            if transformed is not None:
                raise transformed from e
            raise
        finally:
            self.session.info[_TX_DEPTH_KEY] = depth

    def _transform_error(self, error: Exception) -> Optional[Exception]:
        """Map persistence errors to domain exceptions."""
        if isinstance(error, IntegrityError):
            return ConflictException(
                "Write conflicts with existing data",
                {"error": str(error.orig) if error.orig is not None else str(error)},
            )
        if isinstance(error, ModelValidationError):
            return ValidationException(error.message, {error.field: [error.message]})
        return None

    def _publish(self, event: DomainEvent) -> None:
        if self.event_bus:
            self.event_bus.publish(event)

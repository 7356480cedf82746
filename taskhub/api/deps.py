# taskhub/api/deps.py
"""
FastAPI dependencies for TaskHub.

Provides dependency functions for database sessions, the tenant and acting
user taken from request headers, and service injection for API routes.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from taskhub.core.config import settings
from taskhub.core.events import EventBus
from taskhub.core.utils import Clock, utcnow
from taskhub.db.models import User
from taskhub.db.session import get_db
from taskhub.repositories.user_repository import UserRepository
from taskhub.services.task_activity_service import TaskActivityService
from taskhub.services.task_event_handlers import TaskEventHandlers, setup_task_event_handlers
from taskhub.services.task_service import TaskService

logger = logging.getLogger(__name__)

__all__ = [
    "get_db",
    "get_clock",
    "get_tenant_id",
    "get_current_user",
    "get_required_user",
    "get_event_bus",
    "get_task_service",
    "get_task_event_handlers",
    "get_task_activity_service",
]


def get_clock() -> Clock:
    """Clock used by request-scoped services."""
    return utcnow


def get_tenant_id(request: Request) -> str:
    """
    Tenant of the request, read from the tenant header.

    Raises:
        HTTPException: 400 when the header is missing or blank
    """
    tenant_id = (request.headers.get(settings.TENANT_HEADER) or "").strip()
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing {settings.TENANT_HEADER} header",
        )
    return tenant_id


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
) -> Optional[User]:
    """
    Acting user from the user header, or None when the header is absent.

    Raises:
        HTTPException: 401 when the header does not name an active user of the tenant
    """
    raw_user_id = request.headers.get(settings.USER_HEADER)
    if not raw_user_id:
        return None
    try:
        user_id = int(raw_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid {settings.USER_HEADER} header",
        )

    user = UserRepository(db).get_for_tenant(tenant_id, user_id)
    if user is None:
        logger.warning(f"Unknown user {user_id} for tenant {tenant_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


def get_required_user(current_user: Optional[User] = Depends(get_current_user)) -> User:
    if current_user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {settings.USER_HEADER} header",
        )
    return current_user


def get_event_bus(db: Session = Depends(get_db)) -> EventBus:
    """Request-scoped event bus with the task handlers bound to the request session."""
    event_bus = EventBus()
    setup_task_event_handlers(db, event_bus)
    return event_bus


def get_task_service(
    db: Session = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
    clock: Clock = Depends(get_clock),
) -> TaskService:
    return TaskService(db, event_bus=event_bus, clock=clock)


def get_task_event_handlers(
    db: Session = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
    clock: Clock = Depends(get_clock),
) -> TaskEventHandlers:
    return TaskEventHandlers(db, event_bus=event_bus, clock=clock)


def get_task_activity_service(db: Session = Depends(get_db)) -> TaskActivityService:
    return TaskActivityService(db)

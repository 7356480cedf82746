# tests/conftest.py
from datetime import datetime

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taskhub.core.events import EventBus
from taskhub.db.models import Base, Task, TaskPriority, TaskStatus, User
from taskhub.db.session import create_db_engine
from taskhub.services.task_event_handlers import setup_task_event_handlers
from taskhub.services.task_service import TaskService

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"

# Wednesday, between the 2024-01-08 and 2024-01-15 Monday occurrences
NOW = datetime(2024, 1, 10, 12, 0)

# In-memory database shared by every connection of the test
engine = create_db_engine("sqlite://", poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FixedClock:
    """Clock frozen at a settable instant."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def clock():
    return FixedClock(NOW)


@pytest.fixture()
def event_bus(db_session):
    bus = EventBus()
    setup_task_event_handlers(db_session, bus)
    return bus


@pytest.fixture()
def user_factory(db_session):
    counter = {"n": 0}

    def _make(tenant_id: str = TENANT, **overrides) -> User:
        counter["n"] += 1
        data = {
            "tenant_id": tenant_id,
            "email": f"user{counter['n']}@example.com",
            "username": f"user{counter['n']}",
            "full_name": f"Test User {counter['n']}",
            "is_active": True,
            "is_superuser": False,
        }
        data.update(overrides)
        user = User(**data)
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture()
def user(user_factory):
    return user_factory()


@pytest.fixture()
def template_factory(db_session, user):
    """
    Persist a task row directly. Defaults describe a weekly Monday template
    starting Monday 2024-01-01 09:00 and lasting two days.
    """

    def _make(**overrides) -> Task:
        data = {
            "tenant_id": TENANT,
            "title": "Weekly review",
            "description": "Review the week",
            "status": TaskStatus.TODO,
            "priority": TaskPriority.MEDIUM,
            "progress": 0,
            "tags": ["review"],
            "start_date_time": datetime(2024, 1, 1, 9, 0),
            "due_date": datetime(2024, 1, 3, 9, 0),
            "enable_recurrence": True,
            "recurrence_config": {"frequency": "WEEKLY", "week_days": [1]},
            "recurrence_end_date": None,
            "created_by_id": user.id,
        }
        data.update(overrides)
        task = Task(**data)
        db_session.add(task)
        db_session.commit()
        return task

    return _make


@pytest.fixture()
def template(template_factory):
    return template_factory()


@pytest.fixture()
def task_service(db_session, event_bus, clock):
    return TaskService(db_session, event_bus=event_bus, clock=clock)

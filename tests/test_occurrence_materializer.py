# tests/test_occurrence_materializer.py
from datetime import date, datetime, timedelta

import pytest

from taskhub.db.models import Task, TaskOverride, TaskPriority, TaskStatus
from taskhub.services.occurrence_materializer import OccurrenceMaterializer

OCCURRENCE = datetime(2024, 1, 15, 9, 0)


@pytest.fixture()
def task():
    return Task(
        id=7,
        tenant_id="tenant-a",
        title="Weekly review",
        description="Review the week",
        status=TaskStatus.TODO,
        priority=TaskPriority.MEDIUM,
        progress=0,
        tags=["review"],
        start_date_time=datetime(2024, 1, 1, 9, 0),
        due_date=datetime(2024, 1, 3, 9, 0),
        enable_recurrence=True,
        recurrence_config={"frequency": "WEEKLY", "week_days": [1]},
    )


def make_override(**overrides) -> TaskOverride:
    data = {
        "tenant_id": "tenant-a",
        "task_id": 7,
        "date": OCCURRENCE.date(),
        "status": None,
        "start_date_time": None,
        "assignee_id": None,
        "is_deleted": False,
        "override_data": {},
    }
    data.update(overrides)
    return TaskOverride(**data)


@pytest.fixture()
def materializer():
    return OccurrenceMaterializer()


def test_template_values_without_override(materializer, task):
    view = materializer.build_view(task, OCCURRENCE)
    assert view.id == "7@2024-01-15T09:00:00.000Z"
    assert view.is_calendar_event
    assert view.original_task_id == 7
    assert view.event_date == OCCURRENCE
    assert view.title == "Weekly review"
    assert view.priority == TaskPriority.MEDIUM
    assert view.start_date_time == OCCURRENCE
    assert view.due_date == OCCURRENCE + timedelta(days=2)
    assert not view.has_override


def test_patch_key_wins_and_removing_it_restores_template(materializer, task):
    override = make_override(override_data={"priority": "HIGH"})
    assert materializer.build_view(task, OCCURRENCE, override).priority == TaskPriority.HIGH

    override.override_data = {}
    assert materializer.build_view(task, OCCURRENCE, override).priority == TaskPriority.MEDIUM


def test_direct_columns_beat_template(materializer, task):
    override = make_override(status=TaskStatus.IN_PROGRESS, assignee_id=12)
    view = materializer.build_view(task, OCCURRENCE, override)
    assert view.status == TaskStatus.IN_PROGRESS
    assert view.assignee_id == 12
    assert view.has_override


def test_moved_start_keeps_duration(materializer, task):
    moved = datetime(2024, 1, 16, 14, 0)
    view = materializer.build_view(task, OCCURRENCE, make_override(start_date_time=moved))
    assert view.start_date_time == moved
    assert view.due_date == moved + timedelta(days=2)
    assert view.event_date == OCCURRENCE


def test_patch_due_date_takes_final_precedence(materializer, task):
    override = make_override(
        start_date_time=datetime(2024, 1, 16, 14, 0),
        override_data={"due_date": "2024-01-20T12:00:00"},
    )
    assert materializer.build_view(task, OCCURRENCE, override).due_date == datetime(2024, 1, 20, 12, 0)


def test_null_patch_value_for_required_field_inherits(materializer, task):
    override = make_override(override_data={"title": None, "description": None})
    view = materializer.build_view(task, OCCURRENCE, override)
    assert view.title == "Weekly review"
    assert view.description is None


def test_forced_status_wins(materializer, task):
    override = make_override(status=TaskStatus.IN_PROGRESS)
    fields = materializer.resolve_fields(task, OCCURRENCE, override, forced_status=TaskStatus.DONE)
    assert fields["status"] == TaskStatus.DONE


def test_borrowed_override_skips_schedule(materializer, task):
    override = make_override(
        date=date(2024, 1, 8),
        status=TaskStatus.IN_PROGRESS,
        start_date_time=datetime(2024, 1, 9, 9, 0),
        override_data={"title": "Sticky", "due_date": "2024-01-12T09:00:00"},
    )
    view = materializer.build_view(task, OCCURRENCE, override, borrowed=True)
    assert view.title == "Sticky"
    assert view.status == TaskStatus.IN_PROGRESS
    assert view.start_date_time == OCCURRENCE
    assert view.due_date == OCCURRENCE + timedelta(days=2)


def test_view_for_real_row(materializer):
    actual = Task(
        id=30,
        parent_id=7,
        tenant_id="tenant-a",
        title="Weekly review",
        status=TaskStatus.DONE,
        priority=TaskPriority.LOW,
        progress=100,
        tags=None,
        start_date_time=datetime(2024, 1, 8, 9, 0),
        due_date=datetime(2024, 1, 10, 9, 0),
        enable_recurrence=False,
    )
    view = materializer.view_for_task(actual)
    assert view.id == "30"
    assert not view.is_calendar_event
    assert view.original_task_id == 7
    assert view.tags == []


class TestVisibility:
    def test_no_filter_admits_everything(self, task):
        assert OccurrenceMaterializer.is_visible(task, None)
        assert OccurrenceMaterializer.is_visible(task, make_override(status=TaskStatus.CANCELLED), [])

    def test_deleted_override_is_never_visible(self, task):
        assert not OccurrenceMaterializer.is_visible(task, make_override(is_deleted=True))

    def test_override_status_is_filtered(self, task):
        override = make_override(status=TaskStatus.CANCELLED)
        assert not OccurrenceMaterializer.is_visible(task, override, [TaskStatus.TODO])
        assert OccurrenceMaterializer.is_visible(task, override, [TaskStatus.CANCELLED])

    def test_template_status_is_filtered_without_override(self, task):
        assert OccurrenceMaterializer.is_visible(task, None, [TaskStatus.TODO])
        assert not OccurrenceMaterializer.is_visible(task, None, [TaskStatus.DONE])

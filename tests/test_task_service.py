# tests/test_task_service.py
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import func, select

from taskhub.core.exceptions import (
    BusinessRuleException,
    ConflictException,
    EntityNotFoundException,
    ValidationException,
)
from taskhub.db.models import Task, TaskActivityLog, TaskOverride, TaskPriority, TaskStatus
from taskhub.schemas.recurrence import RecurrenceRule
from taskhub.schemas.task import OverrideData, TaskCreate, TaskOccurrence, TaskUpdate

from tests.conftest import NOW, OTHER_TENANT, TENANT


def occurrence_id(task, when: datetime) -> str:
    return f"{task.id}@{when.isoformat(timespec='milliseconds')}Z"


def count(session, model) -> int:
    return session.execute(select(func.count()).select_from(model)).scalar_one()


def create_payload(**overrides) -> TaskCreate:
    data = {
        "title": "Weekly review",
        "start_date_time": datetime(2024, 1, 1, 9, 0),
        "due_date": datetime(2024, 1, 3, 9, 0),
        "enable_recurrence": True,
        "recurrence_config": RecurrenceRule(frequency="WEEKLY", week_days=[1]),
    }
    data.update(overrides)
    return TaskCreate(**data)


class TestCreate:
    def test_creates_recurring_template(self, task_service, user):
        task = task_service.create_task(TENANT, create_payload(), user.id)
        assert task.enable_recurrence
        assert task.recurrence_config == {"frequency": "WEEKLY", "week_days": [1], "month_days": None}
        assert task.created_by_id == user.id

    def test_records_creation_activity(self, task_service, user, db_session):
        task = task_service.create_task(TENANT, create_payload(), user.id)
        entries = db_session.execute(select(TaskActivityLog)).scalars().all()
        assert len(entries) == 1
        assert entries[0].task_id == task.id
        assert entries[0].description == 'Task "Weekly review" was created'

    def test_recurrence_without_config_is_rejected(self, task_service):
        with pytest.raises(ValidationException) as exc_info:
            task_service.create_task(TENANT, create_payload(recurrence_config=None))
        assert "recurrence_config" in exc_info.value.details["validation_errors"]

    def test_due_date_must_follow_start(self, task_service):
        with pytest.raises(ValidationException):
            task_service.create_task(
                TENANT, create_payload(due_date=datetime(2024, 1, 1, 9, 0))
            )

    def test_end_date_span_is_limited(self, task_service):
        with pytest.raises(ValidationException):
            task_service.create_task(
                TENANT, create_payload(recurrence_end_date=datetime(2026, 1, 1))
            )

    def test_unknown_assignee_is_not_found(self, task_service, user_factory):
        stranger = user_factory(tenant_id=OTHER_TENANT)
        with pytest.raises(EntityNotFoundException):
            task_service.create_task(TENANT, create_payload(assignee_id=stranger.id))

    def test_plain_task_drops_recurrence_fields(self, task_service):
        task = task_service.create_task(
            TENANT,
            create_payload(
                enable_recurrence=False,
                recurrence_config=None,
                recurrence_end_date=datetime(2024, 3, 1),
            ),
        )
        assert task.recurrence_config is None
        assert task.recurrence_end_date is None

    def test_done_on_creation_sets_completion(self, task_service):
        task = task_service.create_task(
            TENANT,
            create_payload(enable_recurrence=False, recurrence_config=None, status=TaskStatus.DONE),
        )
        assert task.completed_at == NOW
        assert task.progress == 100


class TestReadOccurrence:
    def test_virtual_occurrence(self, task_service, template):
        view = task_service.get_occurrence(TENANT, occurrence_id(template, datetime(2024, 1, 15, 9, 0)))
        assert isinstance(view, TaskOccurrence)
        assert view.is_calendar_event
        assert view.due_date == datetime(2024, 1, 17, 9, 0)

    def test_bare_date_maps_to_series_time(self, task_service, template):
        view = task_service.get_occurrence(TENANT, f"{template.id}@2024-01-15")
        assert view.start_date_time == datetime(2024, 1, 15, 9, 0)
        assert view.id == occurrence_id(template, datetime(2024, 1, 15, 9, 0))

    def test_day_without_occurrence_is_not_found(self, task_service, template):
        with pytest.raises(EntityNotFoundException):
            task_service.get_occurrence(TENANT, f"{template.id}@2024-01-16")

    def test_falls_back_to_latest_earlier_override(self, task_service, template):
        task_service.override_service.upsert(
            TENANT,
            template,
            date(2024, 1, 15),
            patch=OverrideData(title="Sticky"),
            status=TaskStatus.IN_PROGRESS,
            start_date_time=datetime(2024, 1, 15, 16, 0),
        )
        view = task_service.get_occurrence(TENANT, f"{template.id}@2024-01-22")
        assert view.title == "Sticky"
        assert view.status == TaskStatus.IN_PROGRESS
        assert view.start_date_time == datetime(2024, 1, 22, 9, 0)
        assert view.has_override

    def test_materialized_occurrence_reads_actual_row(self, task_service, template):
        actual = task_service.freezer.ensure_materialized(TENANT, template, datetime(2024, 1, 8, 9, 0))
        view = task_service.get_occurrence(TENANT, f"{template.id}@2024-01-08")
        assert view.id == str(actual.id)
        assert not view.is_calendar_event

    def test_plain_task_has_no_occurrences(self, task_service, template_factory):
        task = template_factory(enable_recurrence=False, recurrence_config=None)
        with pytest.raises(ValidationException):
            task_service.get_occurrence(TENANT, f"{task.id}@2024-01-01")

    def test_other_tenant_cannot_read(self, task_service, template):
        with pytest.raises(EntityNotFoundException):
            task_service.get_occurrence(OTHER_TENANT, f"{template.id}@2024-01-15")


class TestUpdateOccurrence:
    def test_future_edit_writes_override(self, task_service, template, db_session):
        view = task_service.update_task(
            TENANT, f"{template.id}@2024-01-15", TaskUpdate(title="Holiday edition")
        )

        assert view.title == "Holiday edition"
        assert view.has_override
        override = task_service.override_service.find_for_date(TENANT, template.id, date(2024, 1, 15))
        assert override.override_data == {"title": "Holiday edition"}
        assert override.status == TaskStatus.TODO
        db_session.refresh(template)
        assert template.title == "Weekly review"

    @pytest.mark.parametrize("occurrence_date", ["2024-01-08", "2024-01-15"])
    def test_status_edit_is_rejected_on_any_occurrence(self, task_service, template, occurrence_date):
        with pytest.raises(ValidationException) as exc_info:
            task_service.update_task(
                TENANT,
                f"{template.id}@{occurrence_date}",
                TaskUpdate(status=TaskStatus.IN_PROGRESS),
            )
        assert exc_info.value.message == (
            "Cannot update status for calendar events. Please cancel the task instead."
        )
        assert task_service.override_service.find_for_date(TENANT, template.id, date(2024, 1, 15)) is None

    def test_progress_edit_is_rejected_on_future_occurrence(self, task_service, template):
        with pytest.raises(ValidationException) as exc_info:
            task_service.update_task(TENANT, f"{template.id}@2024-01-15", TaskUpdate(progress=30))
        assert exc_info.value.message == "Cannot update progress for calendar events."

    def test_future_edit_rejects_due_before_start(self, task_service, template):
        with pytest.raises(ValidationException):
            task_service.update_task(
                TENANT,
                f"{template.id}@2024-01-15",
                TaskUpdate(due_date=datetime(2024, 1, 15, 8, 0)),
            )

    def test_recurrence_fields_rejected_on_occurrence(self, task_service, template):
        with pytest.raises(ValidationException):
            task_service.update_task(
                TENANT, f"{template.id}@2024-01-15", TaskUpdate(enable_recurrence=False)
            )

    def test_past_reschedule_is_rejected(self, task_service, template):
        with pytest.raises(ValidationException) as exc_info:
            task_service.update_task(
                TENANT,
                f"{template.id}@2024-01-08",
                TaskUpdate(start_date_time=datetime(2024, 1, 8, 14, 0)),
            )
        assert exc_info.value.message == "Cannot edit completed history except to cancel"

    def test_past_edit_materializes_and_updates(self, task_service, template):
        actual = task_service.update_task(
            TENANT, f"{template.id}@2024-01-08", TaskUpdate(description="Missed it")
        )
        assert isinstance(actual, Task)
        assert actual.parent_id == template.id
        assert actual.start_date_time == datetime(2024, 1, 8, 9, 0)
        assert actual.description == "Missed it"

    def test_deleted_future_occurrence_conflicts(self, task_service, template):
        task_service.delete_task(TENANT, f"{template.id}@2024-01-15")
        with pytest.raises(ConflictException):
            task_service.update_task(TENANT, f"{template.id}@2024-01-15", TaskUpdate(title="Back"))


class TestUpdateTemplate:
    def test_freezes_history_before_editing(self, task_service, template, db_session):
        task_service.update_task(TENANT, str(template.id), TaskUpdate(title="Renamed"))

        actuals = db_session.execute(
            select(Task).where(Task.parent_id == template.id).order_by(Task.start_date_time)
        ).scalars().all()
        assert [a.start_date_time.date() for a in actuals] == [date(2024, 1, 1), date(2024, 1, 8)]
        assert all(a.title == "Weekly review" for a in actuals)
        assert template.title == "Renamed"

    def test_propagates_to_overrides(self, task_service, template):
        task_service.update_task(TENANT, f"{template.id}@2024-01-15", TaskUpdate(title="Custom"))
        task_service.update_task(TENANT, str(template.id), TaskUpdate(title="Renamed"))

        view = task_service.get_occurrence(TENANT, f"{template.id}@2024-01-15")
        assert view.title == "Renamed"

    def test_status_only_update_keeps_customisations(self, task_service, template):
        task_service.update_task(TENANT, f"{template.id}@2024-01-15", TaskUpdate(title="Custom"))
        task_service.update_task(TENANT, str(template.id), TaskUpdate(status=TaskStatus.IN_PROGRESS))

        override = task_service.override_service.find_for_date(TENANT, template.id, date(2024, 1, 15))
        assert override.override_data == {"title": "Custom"}
        assert template.started_at == NOW

    def test_records_activity(self, task_service, template, db_session):
        task_service.update_task(
            TENANT, str(template.id), TaskUpdate(priority=TaskPriority.HIGH), user_id=None
        )
        entries = db_session.execute(
            select(TaskActivityLog).where(TaskActivityLog.task_id == template.id)
        ).scalars().all()
        assert [e.description for e in entries] == ['Priority changed from "MEDIUM" to "HIGH"']

    def test_null_title_is_rejected(self, task_service, template):
        with pytest.raises(ValidationException):
            task_service.update_task(TENANT, str(template.id), TaskUpdate(title=None))

    def test_disabling_recurrence_is_allowed(self, task_service, template):
        task = task_service.update_task(
            TENANT, str(template.id), TaskUpdate(enable_recurrence=False)
        )
        assert task.enable_recurrence is False


class TestComplete:
    def test_completes_plain_task(self, task_service, template_factory):
        task = template_factory(enable_recurrence=False, recurrence_config=None)
        done = task_service.complete_task(TENANT, str(task.id))
        assert done.status == TaskStatus.DONE
        assert done.progress == 100
        assert done.completed_at == NOW

    def test_already_done_is_rejected(self, task_service, template_factory):
        task = template_factory(enable_recurrence=False, recurrence_config=None, status=TaskStatus.DONE)
        with pytest.raises(ValidationException):
            task_service.complete_task(TENANT, task.id)

    def test_occurrence_cannot_be_completed(self, task_service, template):
        with pytest.raises(ValidationException) as exc_info:
            task_service.complete_task(TENANT, f"{template.id}@2024-01-15")
        assert exc_info.value.message == "Cannot complete calendar events. Please cancel the task instead."


class TestCancel:
    NOTE_HEADER = "--- Task Cancelled (2024-01-10 12:00) ---"

    def test_future_occurrence_gets_cancelled_override(self, task_service, template):
        view = task_service.cancel_task(TENANT, f"{template.id}@2024-01-15", reason="Holiday")

        assert view.status == TaskStatus.CANCELLED
        assert view.description == f"Review the week\n\n{self.NOTE_HEADER}\nReason: Holiday\n"
        override = task_service.override_service.find_for_date(TENANT, template.id, date(2024, 1, 15))
        assert override.status == TaskStatus.CANCELLED

    def test_note_uses_requested_timezone(self, task_service, template):
        view = task_service.cancel_task(
            TENANT, f"{template.id}@2024-01-15", timezone="Europe/Berlin"
        )
        assert "--- Task Cancelled (2024-01-10 13:00) ---" in view.description
        assert view.description.endswith("Reason: No reason provided\n")

    def test_past_occurrence_is_frozen_as_cancelled(self, task_service, template):
        actual = task_service.cancel_task(TENANT, f"{template.id}@2024-01-08", reason="Sick")

        assert actual.parent_id == template.id
        assert actual.status == TaskStatus.CANCELLED
        assert actual.progress == 0
        assert actual.description.endswith(f"{self.NOTE_HEADER}\nReason: Sick\n")

        with pytest.raises(BusinessRuleException):
            task_service.cancel_task(TENANT, f"{template.id}@2024-01-08")

    def test_template_cancel(self, task_service, template):
        task = task_service.cancel_task(TENANT, str(template.id))
        assert task.status == TaskStatus.CANCELLED
        with pytest.raises(BusinessRuleException):
            task_service.cancel_task(TENANT, str(template.id))


class TestDelete:
    def test_deleted_occurrence_never_reappears(self, task_service, template):
        task_service.delete_task(TENANT, f"{template.id}@2024-01-15")
        task_service.delete_task(TENANT, f"{template.id}@2024-01-15")

        events = task_service.get_calendar_events(TENANT, datetime(2024, 1, 1), datetime(2024, 1, 31))
        assert date(2024, 1, 15) not in {e.start_date_time.date() for e in events}
        with pytest.raises(EntityNotFoundException):
            task_service.get_occurrence(TENANT, f"{template.id}@2024-01-15")

    def test_deleting_past_occurrence_removes_actual_row(self, task_service, template, db_session):
        task_service.freezer.ensure_materialized(TENANT, template, datetime(2024, 1, 8, 9, 0))
        task_service.delete_task(TENANT, f"{template.id}@2024-01-08")

        assert task_service.repository.find_actual(template.id, datetime(2024, 1, 8, 9, 0)) is None
        with pytest.raises(ConflictException):
            task_service.freezer.ensure_materialized(TENANT, template, datetime(2024, 1, 8, 9, 0))

    def test_deleting_template_cascades(self, task_service, template, db_session):
        task_id = template.id
        task_service.update_task(TENANT, f"{task_id}@2024-01-15", TaskUpdate(title="Custom"))
        task_service.freezer.sweep_past_occurrences(TENANT, template)

        task_service.delete_task(TENANT, str(task_id))

        assert count(db_session, Task) == 0
        assert count(db_session, TaskOverride) == 0
        with pytest.raises(EntityNotFoundException):
            task_service.get_task(TENANT, task_id)


class TestCalendar:
    RANGE = (datetime(2024, 1, 1), datetime(2024, 1, 22, 23, 59))

    def test_status_filter_scenario(self, task_service, template):
        task_service.override_service.upsert(TENANT, template, date(2024, 1, 8), status=TaskStatus.CANCELLED)

        events = task_service.get_calendar_events(TENANT, *self.RANGE, statuses=[TaskStatus.TODO])
        assert [e.start_date_time.date() for e in events] == [
            date(2024, 1, 1),
            date(2024, 1, 15),
            date(2024, 1, 22),
        ]

    def test_materialized_rows_replace_virtual_ones(self, task_service, template):
        task_service.freezer.sweep_past_occurrences(TENANT, template)

        events = task_service.get_calendar_events(TENANT, *self.RANGE)
        assert len(events) == 4
        assert [e.is_calendar_event for e in events] == [False, False, True, True]

    def test_includes_plain_tasks(self, task_service, template, template_factory):
        template_factory(
            title="Dentist",
            enable_recurrence=False,
            recurrence_config=None,
            start_date_time=datetime(2024, 1, 9, 8, 0),
            due_date=datetime(2024, 1, 9, 9, 0),
        )
        events = task_service.get_calendar_events(TENANT, *self.RANGE)
        assert [e.title for e in events][:3] == ["Weekly review", "Weekly review", "Dentist"]

    def test_users_only_see_their_tasks(self, task_service, template, user_factory):
        outsider = user_factory()
        admin = user_factory(is_superuser=True)
        assert task_service.get_calendar_events(TENANT, *self.RANGE, user=outsider) == []
        assert len(task_service.get_calendar_events(TENANT, *self.RANGE, user=admin)) == 4

    def test_inverted_range_is_rejected(self, task_service):
        with pytest.raises(ValidationException):
            task_service.get_calendar_events(TENANT, datetime(2024, 2, 1), datetime(2024, 1, 1))

    def test_range_length_is_limited(self, task_service):
        with pytest.raises(ValidationException):
            task_service.get_calendar_events(TENANT, datetime(2024, 1, 1), datetime(2025, 6, 1))


def test_overdue_tasks(task_service, template_factory, user):
    overdue = template_factory(
        enable_recurrence=False,
        recurrence_config=None,
        assignee_id=user.id,
        due_date=datetime(2024, 1, 3, 9, 0),
    )
    template_factory(
        enable_recurrence=False,
        recurrence_config=None,
        status=TaskStatus.DONE,
        due_date=datetime(2024, 1, 3, 9, 0),
    )
    template_factory(
        enable_recurrence=False,
        recurrence_config=None,
        start_date_time=datetime(2024, 1, 10, 9, 0),
        due_date=NOW + timedelta(days=1),
    )

    assert [t.id for t in task_service.get_overdue_tasks(TENANT)] == [overdue.id]
    assert [t.id for t in task_service.get_overdue_tasks(TENANT, user.id)] == [overdue.id]
    assert task_service.get_overdue_tasks(OTHER_TENANT) == []

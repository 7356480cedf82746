# tests/test_override_propagation_service.py
from datetime import date, datetime

import pytest

from taskhub.db.models import TaskPriority, TaskStatus
from taskhub.schemas.task import OverrideData
from taskhub.services.override_propagation_service import OverridePropagationService
from taskhub.services.task_override_service import TaskOverrideService

from tests.conftest import TENANT

JAN_15 = date(2024, 1, 15)
JAN_22 = date(2024, 1, 22)


@pytest.fixture()
def override_service(db_session, clock):
    return TaskOverrideService(db_session, clock=clock)


@pytest.fixture()
def propagation_service(db_session, clock):
    return OverridePropagationService(db_session, clock=clock)


class TestApplyDiff:
    def test_tracked_field_in_diff_is_refreshed(self):
        patch, applied, cleared = OverridePropagationService.apply_diff(
            OverrideData(title="Custom"), OverrideData(title="Renamed")
        )
        assert patch.to_patch() == {"title": "Renamed"}
        assert applied == {"title": "Renamed"}
        assert cleared == []

    def test_tracked_field_missing_from_diff_is_cleared(self):
        patch, applied, cleared = OverridePropagationService.apply_diff(
            OverrideData(title="Custom", priority=TaskPriority.HIGH), OverrideData(title="Renamed")
        )
        assert patch.to_patch() == {"title": "Renamed"}
        assert cleared == ["priority"]

    def test_untracked_field_in_diff_is_added(self):
        patch, applied, cleared = OverridePropagationService.apply_diff(
            OverrideData(), OverrideData(description="New notes")
        )
        assert patch.to_patch() == {"description": "New notes"}
        assert applied == {"description": "New notes"}

    def test_due_date_is_not_a_propagated_field(self):
        due = datetime(2024, 1, 16, 9, 0)
        patch, applied, cleared = OverridePropagationService.apply_diff(
            OverrideData(due_date=due), OverrideData(title="Renamed")
        )
        assert patch.due_date == due
        assert "due_date" not in cleared

    def test_same_value_is_not_reported(self):
        _, applied, cleared = OverridePropagationService.apply_diff(
            OverrideData(title="Same"), OverrideData(title="Same")
        )
        assert applied == {} and cleared == []


def test_template_edit_reaches_live_overrides(override_service, propagation_service, template, user):
    tracked = override_service.upsert(
        TENANT,
        template,
        JAN_15,
        patch=OverrideData(title="Custom"),
        status=TaskStatus.CANCELLED,
        start_date_time=datetime(2024, 1, 15, 14, 0),
        assignee_id=user.id,
    )
    untracked = override_service.upsert(TENANT, template, JAN_22, status=TaskStatus.IN_PROGRESS)

    results = propagation_service.on_template_updated(
        TENANT, template.id, OverrideData(title="Renamed")
    )

    assert len(results) == 2
    assert all(r.ok for r in results)
    assert tracked.override_data == {"title": "Renamed"}
    assert untracked.override_data == {"title": "Renamed"}

    # Override-owned columns are left alone
    assert tracked.status == TaskStatus.CANCELLED
    assert tracked.start_date_time == datetime(2024, 1, 15, 14, 0)
    assert tracked.assignee_id == user.id
    assert untracked.status == TaskStatus.IN_PROGRESS


def test_non_propagated_fields_in_diff_are_ignored(override_service, propagation_service, template):
    override = override_service.upsert(TENANT, template, JAN_15, patch=OverrideData(title="Custom"))

    results = propagation_service.on_template_updated(
        TENANT, template.id, OverrideData(due_date=datetime(2024, 2, 1, 9, 0))
    )

    assert results[0].cleared == ["title"]
    assert override.override_data == {}


def test_deleted_overrides_are_untouched(override_service, propagation_service, template):
    override_service.upsert(TENANT, template, JAN_15, patch=OverrideData(title="Custom"))
    deleted = override_service.mark_deleted(TENANT, template, JAN_15)

    results = propagation_service.on_template_updated(
        TENANT, template.id, OverrideData(title="Renamed")
    )

    assert results == []
    assert deleted.override_data == {"title": "Custom"}


def test_failure_is_reported_per_override(
    override_service, propagation_service, template, monkeypatch
):
    first = override_service.upsert(TENANT, template, JAN_15, patch=OverrideData(title="A"))
    second = override_service.upsert(TENANT, template, JAN_22, patch=OverrideData(title="B"))
    first_id = first.id

    real_update = propagation_service.repository.update

    def failing_update(entity, data):
        if entity.id == first_id:
            raise RuntimeError("locked")
        return real_update(entity, data)

    monkeypatch.setattr(propagation_service.repository, "update", failing_update)

    results = propagation_service.on_template_updated(
        TENANT, template.id, OverrideData(title="Renamed")
    )

    by_id = {r.override_id: r for r in results}
    assert by_id[first_id].error == "locked"
    assert by_id[second.id].ok
    assert by_id[second.id].applied == {"title": "Renamed"}
    assert second.override_data == {"title": "Renamed"}

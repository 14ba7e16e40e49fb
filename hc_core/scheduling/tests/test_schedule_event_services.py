# hc_core/scheduling/tests/test_schedule_event_services.py
import uuid
from datetime import date, time

import pytest

from hc_core.common.api.exceptions import ConcurrentModification, ConflictError, InvalidTransition
from hc_core.scheduling.models import EventOrigin, ScheduleEvent, ScheduleEventStatus
from hc_core.scheduling.selectors import events_filtered
from hc_core.scheduling.services import CLIENT_CONFLICT, STAFF_CONFLICT, GenerationService, ScheduleEventService

pytestmark = pytest.mark.django_db

DAY = date(2024, 2, 5)


@pytest.fixture
def create_event(tenant_id, office_id, client_id, authorization):
    def _create(start=time(9, 0), end=time(10, 0), **extra):
        data = {
            "tenant_id": tenant_id,
            "office_id": office_id,
            "client_id": client_id,
            "event_date": DAY,
            "start_time": start,
            "end_time": end,
            "authorization_id": authorization.id,
        }
        data.update(extra)
        return ScheduleEventService.create_manual_event(**data)

    return _create


def test_manual_event_reserves_planned_units(create_event, authorization):
    result = create_event()

    ev = result.event
    assert ev.origin == EventOrigin.MANUAL
    assert ev.status == ScheduleEventStatus.PLANNED
    assert ev.planned_units == 4
    assert ev.reservation.units == 4
    assert result.warnings == []

    authorization.refresh_from_db()
    assert authorization.used_units == 4


def test_manual_event_over_capacity_is_kept_with_warning(create_event, make_authorization):
    small = make_authorization(max_units=2)

    result = create_event(authorization_id=small.id)

    assert result.event.capacity_warning is True
    assert result.event.reservation is None
    assert [w["code"] for w in result.warnings] == ["capacity_exceeded"]


def test_overlapping_events_report_client_and_staff_conflicts(create_event, staff_id):
    create_event(staff_id=staff_id)

    same_client = create_event(start=time(9, 30), end=time(10, 30))
    assert [w["code"] for w in same_client.warnings] == [CLIENT_CONFLICT]

    other_client = create_event(
        start=time(9, 45),
        end=time(11, 0),
        client_id=uuid.uuid4(),
        authorization_id=None,
        staff_id=staff_id,
    )
    assert [w["code"] for w in other_client.warnings] == [STAFF_CONFLICT]


def test_touching_windows_do_not_conflict(create_event):
    create_event(start=time(9, 0), end=time(10, 0))
    result = create_event(start=time(10, 0), end=time(11, 0))
    assert result.warnings == []


def test_update_event_with_stale_version_fails(create_event, tenant_id, office_id):
    ev = create_event().event

    ScheduleEventService.update_event(
        tenant_id=tenant_id, office_id=office_id, event_id=ev.id, expected_version=ev.version, comment="first"
    )
    with pytest.raises(ConcurrentModification):
        ScheduleEventService.update_event(
            tenant_id=tenant_id, office_id=office_id, event_id=ev.id, expected_version=ev.version, comment="second"
        )

    ev.refresh_from_db()
    assert ev.comment == "first"


def test_update_event_times_adjusts_reservation(create_event, tenant_id, office_id, authorization):
    ev = create_event().event

    result = ScheduleEventService.update_event(
        tenant_id=tenant_id,
        office_id=office_id,
        event_id=ev.id,
        expected_version=ev.version,
        end_time=time(11, 0),
    )

    assert result.event.planned_units == 8
    assert result.event.version == ev.version + 1
    authorization.refresh_from_db()
    assert authorization.used_units == 8


def test_started_event_is_not_editable(create_event, tenant_id, office_id):
    ev = create_event().event
    ScheduleEvent.objects.filter(pk=ev.pk).update(status=ScheduleEventStatus.IN_PROGRESS)

    with pytest.raises(InvalidTransition):
        ScheduleEventService.update_event(
            tenant_id=tenant_id, office_id=office_id, event_id=ev.id, expected_version=ev.version, comment="x"
        )


def test_active_only_hides_cancelled(create_event, tenant_id, office_id):
    keep = create_event().event
    gone = create_event(start=time(14, 0), end=time(15, 0)).event
    ScheduleEvent.objects.filter(pk=gone.pk).update(status=ScheduleEventStatus.CANCELLED, cancel_requested=True)

    ids = list(events_filtered(tenant_id=tenant_id, office_id=office_id, active_only=True).values_list("id", flat=True))
    assert ids == [keep.id]


def test_moving_generated_event_onto_its_slot_sibling_is_a_conflict(
    make_template, add_slot, authorization, tenant_id, office_id
):
    t = make_template(anchor_date=date(2024, 1, 7))
    add_slot(t, t.weeks.get(week_index=0), 1, authorization)
    GenerationService.generate(
        tenant_id=tenant_id, office_id=office_id, template_id=t.id, through_date=date(2024, 1, 15), today=date(2024, 1, 8)
    )
    first, second = ScheduleEvent.objects.filter(source_template=t).order_by("event_date")
    version_before = first.version

    with pytest.raises(ConflictError) as exc_info:
        ScheduleEventService.update_event(
            tenant_id=tenant_id,
            office_id=office_id,
            event_id=first.id,
            expected_version=first.version,
            event_date=second.event_date,
        )

    assert exc_info.type is ConflictError
    assert "already exists on that date" in str(exc_info.value.detail)
    first.refresh_from_db()
    assert first.event_date == date(2024, 1, 8)
    assert first.version == version_before

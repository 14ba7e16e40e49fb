# hc_core/scheduling/tests/test_generation.py
from datetime import date, time

import pytest
from rest_framework.exceptions import ValidationError

from hc_core.audit.models import AuditEvent
from hc_core.authorizations.models import UnitReservation
from hc_core.scheduling.models import EventOrigin, ScheduleEvent, ScheduleEventStatus, TemplateStatus, TemplateWeek
from hc_core.scheduling.services import GenerationService, TemplateService

pytestmark = pytest.mark.django_db

MONDAY = 1
WEDNESDAY = 3
TODAY = date(2024, 1, 8)  # a Monday


def _generate(template, through, today=TODAY):
    return GenerationService.generate(
        tenant_id=template.tenant_id,
        office_id=template.office_id,
        template_id=template.id,
        through_date=through,
        today=today,
    )


def _monday_template(make_template, add_slot, authorization, **kwargs):
    t = make_template(**kwargs)
    add_slot(t, t.weeks.get(week_index=0), MONDAY, authorization, start=time(9, 0), end=time(10, 0))
    return t


def test_three_mondays_shared_pool_flags_the_overflow(make_template, add_slot, make_authorization):
    auth = make_authorization(max_units=4)
    t = _monday_template(make_template, add_slot, auth)

    result = _generate(t, date(2024, 1, 22))

    assert result.created_count == 3
    assert result.skipped_count == 0
    assert len(result.capacity_warnings) == 2
    assert {w.code for w in result.capacity_warnings} == {"capacity_exceeded"}

    events = list(ScheduleEvent.objects.filter(source_template=t).order_by("event_date"))
    assert [e.event_date for e in events] == [date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22)]
    assert all(e.planned_units == 4 for e in events)

    first, second, third = events
    assert first.reservation is not None and first.capacity_warning is False
    assert second.reservation is None and second.capacity_warning is True
    assert third.reservation is None and third.capacity_warning is True

    auth.refresh_from_db()
    assert auth.used_units == 4
    assert auth.available_units == 0


def test_three_mondays_with_enough_units_reserve_each(make_template, add_slot, make_authorization):
    auth = make_authorization(max_units=12)
    t = _monday_template(make_template, add_slot, auth)

    result = _generate(t, date(2024, 1, 22))

    assert result.created_count == 3
    assert result.capacity_warnings == []
    assert UnitReservation.objects.filter(authorization=auth).count() == 3

    auth.refresh_from_db()
    assert auth.available_units == 0


def test_repeat_generation_is_a_noop(make_template, add_slot, authorization):
    t = _monday_template(make_template, add_slot, authorization)

    first = _generate(t, date(2024, 1, 22))
    second = _generate(t, date(2024, 1, 22))

    assert first.created_count == 3
    assert second.noop is True
    assert second.created_count == 0
    assert ScheduleEvent.objects.filter(source_template=t).count() == 3

    authorization.refresh_from_db()
    assert authorization.used_units == 12


def test_extending_the_horizon_only_adds_new_dates(make_template, add_slot, authorization):
    t = _monday_template(make_template, add_slot, authorization)

    _generate(t, date(2024, 1, 22))
    result = _generate(t, date(2024, 1, 29))

    assert result.created_count == 1
    assert result.generated_through == date(2024, 1, 29)
    assert ScheduleEvent.objects.filter(source_template=t).count() == 4


def test_rewound_watermark_still_does_not_duplicate(make_template, add_slot, authorization):
    t = _monday_template(make_template, add_slot, authorization)
    _generate(t, date(2024, 1, 22))

    type(t).objects.filter(pk=t.pk).update(generated_through=None)
    result = _generate(t, date(2024, 1, 22))

    assert result.created_count == 0
    assert result.skipped_count == 3
    assert ScheduleEvent.objects.filter(source_template=t).count() == 3


def test_two_week_rotation_alternates_slots(make_template, add_slot, authorization, tenant_id, office_id):
    t = make_template(anchor_date=date(2024, 1, 7))
    week0 = t.weeks.get(week_index=0)
    week1 = TemplateService.add_week(tenant_id=tenant_id, office_id=office_id, template_id=t.id)

    monday_slot = add_slot(t, week0, MONDAY, authorization)
    wednesday_slot = add_slot(t, week1, WEDNESDAY, authorization, start=time(13, 0), end=time(14, 30))

    result = _generate(t, date(2024, 1, 27), today=date(2024, 1, 7))

    events = list(ScheduleEvent.objects.filter(source_template=t).order_by("event_date"))
    assert result.created_count == 3
    assert [(e.event_date, e.template_event_id) for e in events] == [
        (date(2024, 1, 8), monday_slot.id),
        (date(2024, 1, 17), wednesday_slot.id),
        (date(2024, 1, 22), monday_slot.id),
    ]
    assert events[1].planned_units == 6


def test_inactive_template_generates_drafts(make_template, add_slot, authorization):
    t = _monday_template(make_template, add_slot, authorization, status=TemplateStatus.INACTIVE)

    _generate(t, date(2024, 1, 8))

    ev = ScheduleEvent.objects.get(source_template=t)
    assert ev.status == ScheduleEventStatus.DRAFT
    assert ev.origin == EventOrigin.TEMPLATE


def test_generated_events_default_to_planned_with_template_fields(make_template, add_slot, authorization, staff_id):
    t = make_template()
    add_slot(t, t.weeks.get(week_index=0), MONDAY, authorization, staff_id=staff_id, event_code="T1019")

    _generate(t, date(2024, 1, 8))

    ev = ScheduleEvent.objects.get(source_template=t)
    assert ev.status == ScheduleEventStatus.PLANNED
    assert ev.staff_id == staff_id
    assert ev.event_code == "T1019"
    assert ev.authorization_id == authorization.id
    assert ev.generated_at is not None


def test_end_date_before_start_is_noop(make_template, add_slot, authorization):
    t = _monday_template(make_template, add_slot, authorization)

    result = _generate(t, date(2024, 1, 1))

    assert result.noop is True
    assert result.generated_through is None
    assert ScheduleEvent.objects.filter(source_template=t).count() == 0


def test_dates_outside_authorization_window_are_flagged(make_template, add_slot, make_authorization):
    auth = make_authorization(start_date=date(2024, 1, 1), end_date=date(2024, 1, 10))
    t = _monday_template(make_template, add_slot, auth)

    result = _generate(t, date(2024, 1, 15))

    assert result.created_count == 2
    assert [w.code for w in result.capacity_warnings] == ["authorization_inactive"]
    late = ScheduleEvent.objects.get(source_template=t, event_date=date(2024, 1, 15))
    assert late.capacity_warning is True
    assert late.reservation is None


def test_generation_advances_watermark_and_audits(make_template, add_slot, authorization):
    t = _monday_template(make_template, add_slot, authorization)
    version_before = type(t).objects.get(pk=t.pk).version

    _generate(t, date(2024, 1, 22))

    t.refresh_from_db()
    assert t.generated_through == date(2024, 1, 22)
    assert t.version == version_before + 1
    assert AuditEvent.objects.filter(event_code="schedule.generated", entity_id=t.id).count() == 1


def test_template_without_weeks_is_rejected(make_template):
    t = make_template()
    TemplateWeek.objects.filter(template=t).delete()

    with pytest.raises(ValidationError):
        _generate(t, date(2024, 1, 22))

    t.refresh_from_db()
    assert t.generated_through is None


def test_midweek_anchor_rotates_on_whole_weeks_from_the_anchor(
    make_template, add_slot, authorization, tenant_id, office_id
):
    t = make_template(anchor_date=date(2024, 1, 10))  # a Wednesday
    week0 = t.weeks.get(week_index=0)
    week1 = TemplateService.add_week(tenant_id=tenant_id, office_id=office_id, template_id=t.id)

    first_slot = add_slot(t, week0, MONDAY, authorization)
    second_slot = add_slot(t, week1, MONDAY, authorization, start=time(13, 0), end=time(14, 0))

    _generate(t, date(2024, 1, 29), today=date(2024, 1, 10))

    events = list(ScheduleEvent.objects.filter(source_template=t).order_by("event_date"))
    assert [(e.event_date, e.template_event_id) for e in events] == [
        (date(2024, 1, 15), first_slot.id),
        (date(2024, 1, 22), second_slot.id),
        (date(2024, 1, 29), first_slot.id),
    ]

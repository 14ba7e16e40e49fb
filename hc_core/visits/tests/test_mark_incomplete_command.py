from datetime import date, time

import pytest
from django.core.management import call_command

from hc_core.scheduling.services import ScheduleEventService
from hc_core.visits.models import VerificationStatus, VisitRecord
from hc_core.visits.services import VisitService

pytestmark = pytest.mark.django_db


def test_mark_incomplete_dry_run_then_apply(capsys, tenant_id, office_id, client_id, authorization):
    # scheduled in the past and never checked out
    event = ScheduleEventService.create_manual_event(
        tenant_id=tenant_id,
        office_id=office_id,
        client_id=client_id,
        event_date=date(2024, 2, 5),
        start_time=time(9, 0),
        end_time=time(10, 0),
        authorization_id=authorization.id,
    ).event
    VisitService.confirm(tenant_id=tenant_id, office_id=office_id, event_id=event.id)
    VisitService.check_in(tenant_id=tenant_id, office_id=office_id, event_id=event.id, at=event.start_at)

    call_command("mark_incomplete_visits", "--dry-run")
    assert "DRY RUN: 1 visits" in capsys.readouterr().out
    assert VisitRecord.objects.get().visit_status == VerificationStatus.IN_PROGRESS

    call_command("mark_incomplete_visits")
    assert "Marked 1 visits INCOMPLETE." in capsys.readouterr().out
    assert VisitRecord.objects.get().visit_status == VerificationStatus.INCOMPLETE

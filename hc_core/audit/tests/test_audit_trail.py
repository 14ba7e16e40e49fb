# hc_core/audit/tests/test_audit_trail.py
import uuid
from datetime import date, datetime, time

import pytest
from django.utils import timezone

from hc_core.audit.models import AuditEntityType, AuditEvent
from hc_core.audit.selectors import list_audit_events
from hc_core.audit.services import AuditService
from hc_core.scheduling.services import ScheduleEventService
from hc_core.tests.helpers import scoped
from hc_core.visits.services import VisitService

pytestmark = pytest.mark.django_db

DAY = date(2024, 2, 5)
AUDIT = "/api/v1/audit/events/"


def _at(hour, minute=0):
    return timezone.make_aware(datetime.combine(DAY, time(hour, minute)))


@pytest.fixture
def overdrawn_visit(tenant_id, office_id, client_id, make_authorization):
    """Visit whose check-out needs more units than the authorization has left."""
    auth = make_authorization(max_units=5)
    ev = ScheduleEventService.create_manual_event(
        tenant_id=tenant_id,
        office_id=office_id,
        client_id=client_id,
        event_date=DAY,
        start_time=time(9, 0),
        end_time=time(10, 0),
        authorization_id=auth.id,
    ).event
    scope = {"tenant_id": tenant_id, "office_id": office_id, "event_id": ev.id}
    VisitService.confirm(**scope)
    VisitService.check_in(**scope, at=_at(9, 0))
    VisitService.check_out(**scope, at=_at(11, 0))
    return ev


def test_visit_history_includes_ledger_override(overdrawn_visit, tenant_id, office_id):
    history = list_audit_events(tenant_id=tenant_id, office_id=office_id, schedule_event_id=overdrawn_visit.id)
    codes = {e.event_code for e in history}

    assert {"schedule.event.created", "visit.confirm", "visit.check_in", "visit.check_out"} <= codes
    assert "authorization.units.override" in codes

    override = history.get(event_code="authorization.units.override")
    assert override.entity_type == AuditEntityType.AUTHORIZATION
    assert override.entity_id == overdrawn_visit.authorization_id


def test_category_filter_matches_code_prefix(overdrawn_visit, tenant_id, office_id):
    visit_codes = list_audit_events(tenant_id=tenant_id, office_id=office_id, category="visit").values_list(
        "event_code", flat=True
    )
    assert visit_codes
    assert all(code.startswith("visit.") for code in visit_codes)

    ledger = list_audit_events(tenant_id=tenant_id, office_id=office_id, category="authorization")
    assert [e.event_code for e in ledger] == ["authorization.units.override"]


def test_unknown_entity_type_is_refused(tenant_id, office_id):
    with pytest.raises(ValueError):
        AuditService.log(
            event_code="x.created",
            entity_type="Facility",
            entity_id=uuid.uuid4(),
            tenant_id=tenant_id,
            office_id=office_id,
        )
    assert not AuditEvent.objects.exists()


def test_audit_api_serves_visit_history(api_client, overdrawn_visit, tenant_id, office_id):
    h = scoped(tenant_id, office_id)

    r = api_client.get(f"{AUDIT}?schedule_event_id={overdrawn_visit.id}&category=authorization", **h)
    assert r.status_code == 200
    assert len(r.data) == 1
    row = r.data[0]
    assert row["event_code"] == "authorization.units.override"
    assert row["category"] == "authorization"
    assert row["schedule_event_id"] == str(overdrawn_visit.id)
    assert row["metadata"]["requested_units"] > row["metadata"]["available_units"]


def test_audit_api_rejects_unknown_entity_type(api_client, tenant_id, office_id):
    r = api_client.get(f"{AUDIT}?entity_type=Patient", **scoped(tenant_id, office_id))

    assert r.status_code == 400
    assert "entity_type" in r.data["error"]["details"]

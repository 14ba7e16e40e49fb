# hc_core/visits/selectors.py
from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from django.db.models import QuerySet
from rest_framework.exceptions import NotFound

from hc_core.visits.models import VerificationStatus, VisitRecord


def get_visit(*, tenant_id: UUID, office_id: UUID, visit_id: UUID) -> VisitRecord:
    try:
        return VisitRecord.objects.select_related("schedule_event").get(
            id=visit_id, tenant_id=tenant_id, office_id=office_id
        )
    except VisitRecord.DoesNotExist:
        raise NotFound("Visit record not found in this scope.")


def visits_filtered(
    *,
    tenant_id: UUID,
    office_id: UUID,
    client_id: UUID | None = None,
    staff_id: UUID | None = None,
    visit_status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    unscheduled: bool | None = None,
) -> QuerySet[VisitRecord]:
    qs = VisitRecord.objects.filter(tenant_id=tenant_id, office_id=office_id)

    if client_id:
        qs = qs.filter(schedule_event__client_id=client_id)
    if staff_id:
        qs = qs.filter(actual_staff_id=staff_id)
    if visit_status:
        qs = qs.filter(visit_status=visit_status)
    if date_from:
        qs = qs.filter(schedule_event__event_date__gte=date_from)
    if date_to:
        qs = qs.filter(schedule_event__event_date__lte=date_to)
    if unscheduled is not None:
        qs = qs.filter(is_unscheduled=unscheduled)

    return qs.select_related("schedule_event").order_by("schedule_event__start_at", "id")


def overdue_open_visits(
    *,
    now: datetime,
    tenant_id: UUID | None = None,
    office_id: UUID | None = None,
) -> QuerySet[VisitRecord]:
    """Checked-in visits still IN_PROGRESS after their scheduled end."""
    qs = VisitRecord.objects.filter(
        visit_status=VerificationStatus.IN_PROGRESS,
        check_in_time__isnull=False,
        check_out_time__isnull=True,
        schedule_event__end_at__lt=now,
    )
    if tenant_id:
        qs = qs.filter(tenant_id=tenant_id)
    if office_id:
        qs = qs.filter(office_id=office_id)
    return qs

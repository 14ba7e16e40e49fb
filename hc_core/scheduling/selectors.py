# hc_core/scheduling/selectors.py
from __future__ import annotations

from datetime import date
from uuid import UUID

from django.db.models import QuerySet
from rest_framework.exceptions import NotFound

from hc_core.scheduling.models import ScheduleEvent, ScheduleEventStatus, Template


def get_template(*, tenant_id: UUID, office_id: UUID, template_id: UUID) -> Template:
    try:
        return Template.objects.prefetch_related("weeks__events").get(
            id=template_id, tenant_id=tenant_id, office_id=office_id
        )
    except Template.DoesNotExist:
        raise NotFound("Template not found in this scope.")


def templates_filtered(
    *,
    tenant_id: UUID,
    office_id: UUID,
    client_id: UUID | None = None,
    status: str | None = None,
) -> QuerySet[Template]:
    qs = Template.objects.filter(tenant_id=tenant_id, office_id=office_id)
    if client_id:
        qs = qs.filter(client_id=client_id)
    if status:
        qs = qs.filter(status=status)
    return qs.prefetch_related("weeks__events").order_by("client_id", "name")


def get_event(*, tenant_id: UUID, office_id: UUID, event_id: UUID) -> ScheduleEvent:
    try:
        return ScheduleEvent.objects.select_related("reservation").get(
            id=event_id, tenant_id=tenant_id, office_id=office_id
        )
    except ScheduleEvent.DoesNotExist:
        raise NotFound("Schedule event not found in this scope.")


def events_filtered(
    *,
    tenant_id: UUID,
    office_id: UUID,
    client_id: UUID | None = None,
    staff_id: UUID | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    status: str | None = None,
    origin: str | None = None,
    active_only: bool = False,
) -> QuerySet[ScheduleEvent]:
    """
    active_only hides cancelled events and those with a pending cancel
    request, which is what calendar views show.
    """
    qs = ScheduleEvent.objects.filter(tenant_id=tenant_id, office_id=office_id)

    if client_id:
        qs = qs.filter(client_id=client_id)
    if staff_id:
        qs = qs.filter(staff_id=staff_id)
    if date_from:
        qs = qs.filter(event_date__gte=date_from)
    if date_to:
        qs = qs.filter(event_date__lte=date_to)
    if status:
        qs = qs.filter(status=status)
    if origin:
        qs = qs.filter(origin=origin)
    if active_only:
        qs = qs.exclude(status=ScheduleEventStatus.CANCELLED).filter(cancel_requested=False)

    return qs.select_related("reservation").order_by("start_at", "id")

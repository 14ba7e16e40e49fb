# hc_core/audit/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import Q, QuerySet

from hc_core.audit.models import AuditEvent


def list_audit_events(
    *,
    tenant_id: UUID,
    office_id: UUID,
    entity_type: str | None = None,
    entity_id: UUID | None = None,
    event_code: str | None = None,
    category: str | None = None,
    schedule_event_id: UUID | None = None,
    actor_user_id: int | None = None,
) -> QuerySet[AuditEvent]:
    """
    category matches the event-code prefix ("visit", "schedule",
    "authorization"). schedule_event_id returns the event's own entries and
    the ledger entries made on its behalf.
    """
    qs = AuditEvent.objects.filter(tenant_id=tenant_id, office_id=office_id)

    if entity_type:
        qs = qs.filter(entity_type=entity_type)
    if entity_id:
        qs = qs.filter(entity_id=entity_id)
    if event_code:
        qs = qs.filter(event_code=event_code)
    if category:
        qs = qs.filter(Q(event_code=category) | Q(event_code__startswith=f"{category}."))
    if schedule_event_id:
        qs = qs.filter(schedule_event_id=schedule_event_id)
    if actor_user_id is not None:
        qs = qs.filter(actor_user_id=actor_user_id)

    return qs.order_by("-occurred_at")

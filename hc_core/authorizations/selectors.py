# hc_core/authorizations/selectors.py
from __future__ import annotations

from datetime import date
from uuid import UUID

from django.db.models import Q, QuerySet
from rest_framework.exceptions import NotFound

from hc_core.authorizations.models import Authorization, UnitReservation


def get_authorization(*, tenant_id: UUID, office_id: UUID, authorization_id: UUID) -> Authorization:
    try:
        return Authorization.objects.get(id=authorization_id, tenant_id=tenant_id, office_id=office_id)
    except Authorization.DoesNotExist:
        raise NotFound("Authorization not found in this scope.")


def authorizations_filtered(
    *,
    tenant_id: UUID,
    office_id: UUID,
    client_id: UUID | None = None,
    active_on: date | None = None,
) -> QuerySet[Authorization]:
    qs = Authorization.objects.filter(tenant_id=tenant_id, office_id=office_id)

    if client_id:
        qs = qs.filter(client_id=client_id)
    if active_on:
        qs = qs.filter(start_date__lte=active_on).filter(Q(end_date__isnull=True) | Q(end_date__gte=active_on))

    return qs.order_by("start_date", "authorization_no")


def reservations_for(*, tenant_id: UUID, office_id: UUID, authorization_id: UUID) -> QuerySet[UnitReservation]:
    return UnitReservation.objects.filter(
        tenant_id=tenant_id,
        office_id=office_id,
        authorization_id=authorization_id,
    ).order_by("created_at")

# hc_core/authorizations/tests/test_ledger_services.py
import uuid
from datetime import date

import pytest
from django.db.models import Sum
from rest_framework.exceptions import NotFound

from hc_core.audit.models import AuditEvent
from hc_core.authorizations.models import ReservationStatus, UnitReservation
from hc_core.authorizations.services import (
    AuthorizationInactive,
    InsufficientCapacity,
    LedgerService,
)

pytestmark = pytest.mark.django_db


def _scope(auth):
    return {"tenant_id": auth.tenant_id, "office_id": auth.office_id}


def _active_sum(auth):
    return (
        UnitReservation.objects.filter(authorization=auth, status=ReservationStatus.ACTIVE).aggregate(
            total=Sum("units")
        )["total"]
        or 0
    )


def test_reserve_consumes_units(make_authorization):
    auth = make_authorization(max_units=10)

    res = LedgerService.reserve(**_scope(auth), authorization_id=auth.id, units=4)

    auth.refresh_from_db()
    assert res.status == ReservationStatus.ACTIVE
    assert res.over_allocated is False
    assert auth.used_units == 4
    assert auth.available_units == 6
    assert LedgerService.available_units(**_scope(auth), authorization_id=auth.id) == 6


def test_reserve_beyond_capacity_raises_and_leaves_ledger_unchanged(make_authorization):
    auth = make_authorization(max_units=10)
    LedgerService.reserve(**_scope(auth), authorization_id=auth.id, units=8)

    with pytest.raises(InsufficientCapacity) as exc:
        LedgerService.reserve(**_scope(auth), authorization_id=auth.id, units=3)

    assert exc.value.requested == 3
    assert exc.value.available == 2

    auth.refresh_from_db()
    assert auth.used_units == 8
    assert UnitReservation.objects.filter(authorization=auth).count() == 1


def test_reserve_exactly_remaining_capacity_succeeds(make_authorization):
    auth = make_authorization(max_units=4)

    LedgerService.reserve(**_scope(auth), authorization_id=auth.id, units=4)

    auth.refresh_from_db()
    assert auth.available_units == 0
    assert auth.is_over_allocated is False


def test_override_marks_over_allocation_and_audits(make_authorization):
    auth = make_authorization(max_units=4)
    LedgerService.reserve(**_scope(auth), authorization_id=auth.id, units=4)

    res = LedgerService.reserve(**_scope(auth), authorization_id=auth.id, units=2, allow_overrun=True)

    auth.refresh_from_db()
    assert res.over_allocated is True
    assert auth.used_units == 6
    # display value clamps, the overrun stays visible separately
    assert auth.available_units == 0
    assert auth.over_allocated_units == 2

    bal = LedgerService.balance(**_scope(auth), authorization_id=auth.id)
    assert bal.is_over_allocated is True
    assert bal.over_allocated_units == 2

    assert AuditEvent.objects.filter(event_code="authorization.units.override", entity_id=auth.id).count() == 1


def test_reserve_outside_validity_window_raises(make_authorization):
    auth = make_authorization(start_date=date(2024, 3, 1), end_date=date(2024, 3, 31))

    with pytest.raises(AuthorizationInactive):
        LedgerService.reserve(**_scope(auth), authorization_id=auth.id, units=1, service_date=date(2024, 4, 1))

    LedgerService.reserve(**_scope(auth), authorization_id=auth.id, units=1, service_date=date(2024, 3, 31))
    auth.refresh_from_db()
    assert auth.used_units == 1


def test_release_returns_units_and_is_idempotent(make_authorization):
    auth = make_authorization(max_units=10)
    res = LedgerService.reserve(**_scope(auth), authorization_id=auth.id, units=5)

    LedgerService.release(**_scope(auth), reservation_id=res.id)
    LedgerService.release(**_scope(auth), reservation_id=res.id)

    auth.refresh_from_db()
    res.refresh_from_db()
    assert auth.used_units == 0
    assert res.status == ReservationStatus.RELEASED
    assert res.released_at is not None


def test_adjust_applies_only_the_difference(make_authorization):
    auth = make_authorization(max_units=10)
    res = LedgerService.reserve(**_scope(auth), authorization_id=auth.id, units=4)

    LedgerService.adjust(**_scope(auth), reservation_id=res.id, new_units=6)
    auth.refresh_from_db()
    assert auth.used_units == 6

    LedgerService.adjust(**_scope(auth), reservation_id=res.id, new_units=3)
    auth.refresh_from_db()
    res.refresh_from_db()
    assert auth.used_units == 3
    assert res.units == 3


def test_adjust_increase_beyond_capacity_needs_override(make_authorization):
    auth = make_authorization(max_units=5)
    res = LedgerService.reserve(**_scope(auth), authorization_id=auth.id, units=4)

    with pytest.raises(InsufficientCapacity):
        LedgerService.adjust(**_scope(auth), reservation_id=res.id, new_units=7)

    auth.refresh_from_db()
    assert auth.used_units == 4

    res = LedgerService.adjust(**_scope(auth), reservation_id=res.id, new_units=7, allow_overrun=True)
    auth.refresh_from_db()
    assert res.over_allocated is True
    assert auth.used_units == 7
    assert auth.over_allocated_units == 2


def test_used_units_matches_active_reservations(make_authorization):
    auth = make_authorization(max_units=20)

    a = LedgerService.reserve(**_scope(auth), authorization_id=auth.id, units=4)
    b = LedgerService.reserve(**_scope(auth), authorization_id=auth.id, units=6)
    LedgerService.adjust(**_scope(auth), reservation_id=b.id, new_units=2)
    LedgerService.release(**_scope(auth), reservation_id=a.id)
    LedgerService.reserve(**_scope(auth), authorization_id=auth.id, units=5)

    auth.refresh_from_db()
    assert auth.used_units == _active_sum(auth) == 7


def test_reconcile_repairs_drifted_counter(make_authorization):
    auth = make_authorization(max_units=20)
    LedgerService.reserve(**_scope(auth), authorization_id=auth.id, units=4)

    type(auth).objects.filter(pk=auth.pk).update(used_units=11)

    bal = LedgerService.reconcile(**_scope(auth), authorization_id=auth.id)

    auth.refresh_from_db()
    assert bal.used_units == 4
    assert auth.used_units == 4
    assert AuditEvent.objects.filter(event_code="authorization.units.reconciled").count() == 1


def test_ledger_is_scoped(make_authorization):
    auth = make_authorization()
    with pytest.raises(NotFound):
        LedgerService.reserve(
            tenant_id=auth.tenant_id,
            office_id=uuid.uuid4(),
            authorization_id=auth.id,
            units=1,
        )

# hc_core/authorizations/services.py
"""
Authorization unit ledger.

Every change to Authorization.used_units goes through LedgerService so that
used_units always equals the sum of ACTIVE reservation units. Each operation
takes the authorization row lock first (select_for_update) and applies the
delta with an F-expression, so concurrent reservations against the same
authorization serialize and never lose an update.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from django.db import transaction
from django.db.models import F, Sum
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from hc_core.audit.models import AuditEntityType
from hc_core.audit.services import AuditService
from hc_core.authorizations.models import Authorization, ReservationStatus, UnitReservation

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    code = "ledger_error"

    def __init__(self, message: str, *, authorization_id: UUID, requested: int = 0, available: int = 0):
        super().__init__(message)
        self.message = message
        self.authorization_id = authorization_id
        self.requested = requested
        self.available = available


class InsufficientCapacity(LedgerError):
    """Requested units exceed what the authorization has left."""
    code = "capacity_exceeded"


class AuthorizationInactive(LedgerError):
    """Service date falls outside the authorization validity window."""
    code = "authorization_inactive"


@dataclass(frozen=True)
class LedgerBalance:
    authorization_id: UUID
    max_units: int
    used_units: int

    @property
    def available_units(self) -> int:
        return max(0, self.max_units - self.used_units)

    @property
    def over_allocated_units(self) -> int:
        return max(0, self.used_units - self.max_units)

    @property
    def is_over_allocated(self) -> bool:
        return self.used_units > self.max_units


class LedgerService:
    @staticmethod
    def _lock(*, tenant_id: UUID, office_id: UUID, authorization_id: UUID) -> Authorization:
        try:
            return Authorization.objects.select_for_update().get(
                id=authorization_id, tenant_id=tenant_id, office_id=office_id
            )
        except Authorization.DoesNotExist:
            raise NotFound("Authorization not found in this scope.")

    @staticmethod
    def _locked_reservation(*, tenant_id: UUID, office_id: UUID, reservation_id: UUID):
        """
        Lock authorization then reservation (same order as reserve) and
        return both.
        """
        try:
            authorization_id = (
                UnitReservation.objects.filter(id=reservation_id, tenant_id=tenant_id, office_id=office_id)
                .values_list("authorization_id", flat=True)
                .get()
            )
        except UnitReservation.DoesNotExist:
            raise NotFound("Reservation not found in this scope.")

        auth = LedgerService._lock(tenant_id=tenant_id, office_id=office_id, authorization_id=authorization_id)
        res = UnitReservation.objects.select_for_update().get(id=reservation_id)
        return auth, res

    @staticmethod
    def _apply_delta(auth: Authorization, delta: int) -> None:
        Authorization.objects.filter(pk=auth.pk).update(
            used_units=F("used_units") + delta,
            updated_at=timezone.now(),
        )
        auth.refresh_from_db(fields=["used_units", "updated_at"])

    @staticmethod
    def _audit_override(
        *,
        auth: Authorization,
        reservation: UnitReservation,
        requested: int,
        available: int,
        actor_user_id: int | None,
    ) -> None:
        logger.warning(
            "Authorization %s over-allocated: requested=%s available=%s used=%s max=%s",
            auth.id,
            requested,
            available,
            auth.used_units,
            auth.max_units,
        )
        AuditService.log(
            event_code="authorization.units.override",
            entity_type=AuditEntityType.AUTHORIZATION,
            entity_id=auth.id,
            tenant_id=auth.tenant_id,
            office_id=auth.office_id,
            actor_user_id=actor_user_id,
            metadata={
                "reservation_id": reservation.id,
                "schedule_event_id": reservation.schedule_event_id,
                "requested_units": requested,
                "available_units": available,
                "used_units": auth.used_units,
                "max_units": auth.max_units,
            },
        )

    @staticmethod
    @transaction.atomic
    def reserve(
        *,
        tenant_id: UUID,
        office_id: UUID,
        authorization_id: UUID,
        units: int,
        schedule_event_id: UUID | None = None,
        service_date: date | None = None,
        allow_overrun: bool = False,
        actor_user_id: int | None = None,
    ) -> UnitReservation:
        """
        Hold units against an authorization.

        Raises InsufficientCapacity when units exceed what is left and
        allow_overrun is False (used_units unchanged). With allow_overrun the
        reservation is recorded as over_allocated and the override is audited.
        """
        units = int(units)
        if units < 0:
            raise ValidationError({"units": "Units must be >= 0."})

        auth = LedgerService._lock(tenant_id=tenant_id, office_id=office_id, authorization_id=authorization_id)

        if service_date is not None and not auth.is_active_on(service_date):
            raise AuthorizationInactive(
                f"Authorization {auth.authorization_no} is not valid on {service_date.isoformat()}.",
                authorization_id=auth.id,
                requested=units,
                available=auth.available_units,
            )

        available = auth.max_units - auth.used_units
        over = units > 0 and units > available
        if over and not allow_overrun:
            raise InsufficientCapacity(
                f"Requested {units} units but only {max(0, available)} are available.",
                authorization_id=auth.id,
                requested=units,
                available=max(0, available),
            )

        LedgerService._apply_delta(auth, units)

        reservation = UnitReservation.objects.create(
            tenant_id=tenant_id,
            office_id=office_id,
            authorization=auth,
            schedule_event_id=schedule_event_id,
            units=units,
            status=ReservationStatus.ACTIVE,
            over_allocated=over,
        )

        if over:
            LedgerService._audit_override(
                auth=auth,
                reservation=reservation,
                requested=units,
                available=max(0, available),
                actor_user_id=actor_user_id,
            )

        logger.debug("Reserved %s units on authorization %s (reservation %s)", units, auth.id, reservation.id)
        return reservation

    @staticmethod
    @transaction.atomic
    def release(*, tenant_id: UUID, office_id: UUID, reservation_id: UUID) -> UnitReservation:
        """
        Return a reservation's units to the authorization.
        Releasing an already released reservation is a no-op.
        """
        auth, res = LedgerService._locked_reservation(
            tenant_id=tenant_id, office_id=office_id, reservation_id=reservation_id
        )
        if res.status == ReservationStatus.RELEASED:
            return res

        LedgerService._apply_delta(auth, -res.units)

        res.status = ReservationStatus.RELEASED
        res.released_at = timezone.now()
        res.save(update_fields=["status", "released_at", "updated_at"])

        logger.debug("Released %s units on authorization %s (reservation %s)", res.units, auth.id, res.id)
        return res

    @staticmethod
    @transaction.atomic
    def adjust(
        *,
        tenant_id: UUID,
        office_id: UUID,
        reservation_id: UUID,
        new_units: int,
        allow_overrun: bool = False,
        actor_user_id: int | None = None,
    ) -> UnitReservation:
        """
        Move a reservation to new_units, applying only the difference.
        Decreases always succeed; increases follow the same capacity rule as reserve.
        """
        new_units = int(new_units)
        if new_units < 0:
            raise ValidationError({"new_units": "Units must be >= 0."})

        auth, res = LedgerService._locked_reservation(
            tenant_id=tenant_id, office_id=office_id, reservation_id=reservation_id
        )
        if res.status != ReservationStatus.ACTIVE:
            raise ValidationError({"reservation": "Only ACTIVE reservations can be adjusted."})

        delta = new_units - res.units
        if delta == 0:
            return res

        over = False
        available = auth.max_units - auth.used_units
        if delta > 0 and delta > available:
            if not allow_overrun:
                raise InsufficientCapacity(
                    f"Adjustment needs {delta} more units but only {max(0, available)} are available.",
                    authorization_id=auth.id,
                    requested=delta,
                    available=max(0, available),
                )
            over = True

        LedgerService._apply_delta(auth, delta)

        res.units = new_units
        fields = ["units", "updated_at"]
        if over:
            res.over_allocated = True
            fields.append("over_allocated")
        res.save(update_fields=fields)

        if over:
            LedgerService._audit_override(
                auth=auth,
                reservation=res,
                requested=delta,
                available=max(0, available),
                actor_user_id=actor_user_id,
            )
        return res

    @staticmethod
    def balance(*, tenant_id: UUID, office_id: UUID, authorization_id: UUID) -> LedgerBalance:
        row = (
            Authorization.objects.filter(id=authorization_id, tenant_id=tenant_id, office_id=office_id)
            .values("id", "max_units", "used_units")
            .first()
        )
        if row is None:
            raise NotFound("Authorization not found in this scope.")
        return LedgerBalance(authorization_id=row["id"], max_units=row["max_units"], used_units=row["used_units"])

    @staticmethod
    def available_units(*, tenant_id: UUID, office_id: UUID, authorization_id: UUID) -> int:
        return LedgerService.balance(
            tenant_id=tenant_id, office_id=office_id, authorization_id=authorization_id
        ).available_units

    @staticmethod
    @transaction.atomic
    def reconcile(*, tenant_id: UUID, office_id: UUID, authorization_id: UUID) -> LedgerBalance:
        """
        Repair tool: recompute used_units from ACTIVE reservations.
        Logs and audits when the stored counter had drifted.
        """
        auth = LedgerService._lock(tenant_id=tenant_id, office_id=office_id, authorization_id=authorization_id)

        expected = (
            UnitReservation.objects.filter(authorization=auth, status=ReservationStatus.ACTIVE).aggregate(
                total=Sum("units")
            )["total"]
            or 0
        )

        if expected != auth.used_units:
            logger.warning(
                "Authorization %s used_units drifted: stored=%s expected=%s",
                auth.id,
                auth.used_units,
                expected,
            )
            AuditService.log(
                event_code="authorization.units.reconciled",
                entity_type=AuditEntityType.AUTHORIZATION,
                entity_id=auth.id,
                tenant_id=auth.tenant_id,
                office_id=auth.office_id,
                metadata={"stored_used_units": auth.used_units, "expected_used_units": expected},
            )
            Authorization.objects.filter(pk=auth.pk).update(used_units=expected, updated_at=timezone.now())
            auth.used_units = expected

        return LedgerBalance(authorization_id=auth.id, max_units=auth.max_units, used_units=auth.used_units)

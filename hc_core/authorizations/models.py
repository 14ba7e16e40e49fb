# hc_core/authorizations/models.py
from __future__ import annotations

from datetime import date

from django.db import models

from hc_core.common.models import ScopedModel, VersionedModel


class Authorization(VersionedModel):
    """
    Payer-granted unit budget for one client/service combination.

    max_units and the validity window are owned by the authorization
    management process upstream. This core only moves used_units, and only
    through LedgerService. available_units is always derived.
    """
    client_id = models.UUIDField(db_index=True)
    service_code = models.SlugField(max_length=64, blank=True, default="")

    authorization_no = models.CharField(max_length=64)
    event_code = models.CharField(max_length=32, blank=True, default="")
    format = models.CharField(max_length=16, default="units")

    start_date = models.DateField()
    end_date = models.DateField(null=True, blank=True)  # open-ended when null

    max_units = models.PositiveIntegerField()
    used_units = models.IntegerField(default=0)

    comments = models.TextField(blank=True, default="")

    class Meta:
        db_table = "authorizations_authorization"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant_id", "office_id", "authorization_no"],
                name="uq_authorization_no_per_scope",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant_id", "office_id", "client_id"]),
            models.Index(fields=["tenant_id", "office_id", "start_date", "end_date"]),
        ]

    def __str__(self) -> str:
        return f"Authorization({self.authorization_no}, {self.used_units}/{self.max_units})"

    @property
    def available_units(self) -> int:
        """Display value, clamped at 0. Use over_allocated_units for overruns."""
        return max(0, self.max_units - self.used_units)

    @property
    def over_allocated_units(self) -> int:
        return max(0, self.used_units - self.max_units)

    @property
    def is_over_allocated(self) -> bool:
        return self.used_units > self.max_units

    def is_active_on(self, day: date) -> bool:
        if day < self.start_date:
            return False
        return self.end_date is None or day <= self.end_date


class ReservationStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"
    RELEASED = "RELEASED", "Released"


class UnitReservation(ScopedModel):
    """
    Units held against an authorization for one schedule event.

    Ledger conservation: Authorization.used_units equals the sum of units of
    its ACTIVE reservations.
    """
    authorization = models.ForeignKey(Authorization, on_delete=models.PROTECT, related_name="reservations")

    # Plain reference; the ledger does not depend on the scheduling app.
    schedule_event_id = models.UUIDField(null=True, blank=True, db_index=True)

    units = models.PositiveIntegerField()
    status = models.CharField(
        max_length=16,
        choices=ReservationStatus.choices,
        default=ReservationStatus.ACTIVE,
        db_index=True,
    )

    # Set when the reservation went through the explicit override path.
    over_allocated = models.BooleanField(default=False, db_index=True)

    released_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "authorizations_unit_reservation"
        indexes = [
            models.Index(fields=["tenant_id", "office_id", "authorization", "status"]),
        ]

    def __str__(self) -> str:
        return f"Reservation({self.authorization_id}, {self.units}, {self.status})"

    @property
    def is_active(self) -> bool:
        return self.status == ReservationStatus.ACTIVE

# hc_core/visits/models.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from django.conf import settings
from django.db import models

from hc_core.common.models import ScopedModel
from hc_core.common.units import hours_between, units_between
from hc_core.scheduling.models import ScheduleEvent


class VerificationStatus(models.TextChoices):
    NOT_STARTED = "NOT_STARTED", "Not started"
    IN_PROGRESS = "IN_PROGRESS", "In progress"
    COMPLETED = "COMPLETED", "Completed"
    INCOMPLETE = "INCOMPLETE", "Incomplete"
    VERIFIED = "VERIFIED", "Verified"
    CANCELLED = "CANCELLED", "Cancelled"


class VisitRecord(ScopedModel):
    """
    What actually happened for one schedule event: call times, manual
    adjustments, the resulting hours/units and the back-office verification
    state. At most one per schedule event.
    """
    schedule_event = models.OneToOneField(ScheduleEvent, on_delete=models.PROTECT, related_name="visit_record")

    check_in_time = models.DateTimeField(null=True, blank=True)
    check_out_time = models.DateTimeField(null=True, blank=True)

    adjusted_in = models.DateTimeField(null=True, blank=True)
    adjusted_out = models.DateTimeField(null=True, blank=True)

    pay_hours = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal("0.00"))
    bill_hours = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal("0.00"))
    units = models.PositiveIntegerField(default=0)

    do_not_bill = models.BooleanField(default=False)

    visit_status = models.CharField(
        max_length=16,
        choices=VerificationStatus.choices,
        default=VerificationStatus.NOT_STARTED,
        db_index=True,
    )

    is_unscheduled = models.BooleanField(default=False)
    unscheduled_reason = models.TextField(blank=True, default="")
    actual_staff_id = models.UUIDField(null=True, blank=True, db_index=True)

    verified_at = models.DateTimeField(null=True, blank=True)
    verified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="verified_visits",
    )

    notes = models.TextField(blank=True, default="")

    class Meta:
        db_table = "visits_visit_record"
        indexes = [
            models.Index(fields=["tenant_id", "office_id", "visit_status"]),
        ]

    def __str__(self) -> str:
        return f"VisitRecord({self.schedule_event_id}, {self.visit_status})"

    def effective_window(self) -> tuple[datetime, datetime]:
        """Adjusted times, else call times, else the scheduled window."""
        event = self.schedule_event
        start = self.adjusted_in or self.check_in_time or event.start_at
        end = self.adjusted_out or self.check_out_time or event.end_at
        return start, end

    def recompute(self) -> None:
        start, end = self.effective_window()
        hours = hours_between(start, end)
        self.pay_hours = hours
        self.bill_hours = hours
        self.units = units_between(start, end)

# hc_core/scheduling/models.py
from __future__ import annotations

from django.db import models

from hc_core.authorizations.models import Authorization, UnitReservation
from hc_core.common.models import ScopedModel, VersionedModel


class TemplateStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"


class Template(VersionedModel):
    """
    Recurring weekly plan for one client. Holds N weeks (rotation) and the
    generation watermark.
    """
    client_id = models.UUIDField(db_index=True)
    name = models.CharField(max_length=120, default="Master Weekly")
    description = models.TextField(blank=True, default="")
    status = models.CharField(
        max_length=16,
        choices=TemplateStatus.choices,
        default=TemplateStatus.ACTIVE,
        db_index=True,
    )

    # Week 0 of the rotation starts on the week containing this date.
    anchor_date = models.DateField()

    # Last date already materialized; never moves backwards.
    generated_through = models.DateField(null=True, blank=True)

    class Meta:
        db_table = "scheduling_template"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant_id", "office_id", "client_id", "name"],
                name="uq_template_name_per_client_scope",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant_id", "office_id", "client_id"]),
        ]

    def __str__(self) -> str:
        return f"Template({self.name}, client={self.client_id})"

    @property
    def is_active(self) -> bool:
        return self.status == TemplateStatus.ACTIVE


class TemplateWeek(ScopedModel):
    template = models.ForeignKey(Template, on_delete=models.CASCADE, related_name="weeks")
    week_index = models.PositiveSmallIntegerField()
    name = models.CharField(max_length=64, blank=True, default="")

    class Meta:
        db_table = "scheduling_template_week"
        ordering = ["week_index"]
        constraints = [
            models.UniqueConstraint(fields=["template", "week_index"], name="uq_template_week_index"),
        ]

    def __str__(self) -> str:
        return f"Week {self.week_index + 1} of {self.template_id}"


class Weekday(models.IntegerChoices):
    SUNDAY = 0, "Sunday"
    MONDAY = 1, "Monday"
    TUESDAY = 2, "Tuesday"
    WEDNESDAY = 3, "Wednesday"
    THURSDAY = 4, "Thursday"
    FRIDAY = 5, "Friday"
    SATURDAY = 6, "Saturday"


class TemplateEvent(ScopedModel):
    template_week = models.ForeignKey(TemplateWeek, on_delete=models.CASCADE, related_name="events")

    weekday = models.PositiveSmallIntegerField(choices=Weekday.choices)
    start_time = models.TimeField()
    end_time = models.TimeField()

    authorization = models.ForeignKey(Authorization, on_delete=models.PROTECT, related_name="template_events")
    event_code = models.CharField(max_length=32, blank=True, default="")
    planned_units = models.PositiveIntegerField()

    staff_id = models.UUIDField(null=True, blank=True, db_index=True)
    comment = models.TextField(blank=True, default="")

    class Meta:
        db_table = "scheduling_template_event"
        ordering = ["weekday", "start_time"]
        constraints = [
            models.UniqueConstraint(
                fields=["template_week", "weekday", "start_time"],
                name="uq_template_event_slot",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.get_weekday_display()} {self.start_time:%H:%M}-{self.end_time:%H:%M}"


class ScheduleEventStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    PLANNED = "PLANNED", "Planned"
    CONFIRMED = "CONFIRMED", "Confirmed"
    IN_PROGRESS = "IN_PROGRESS", "In progress"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"


TERMINAL_STATUSES = {ScheduleEventStatus.COMPLETED, ScheduleEventStatus.CANCELLED}
EDITABLE_STATUSES = {ScheduleEventStatus.DRAFT, ScheduleEventStatus.PLANNED, ScheduleEventStatus.CONFIRMED}


class EventOrigin(models.TextChoices):
    TEMPLATE = "TEMPLATE", "Template"
    MANUAL = "MANUAL", "Manual"
    UNSCHEDULED = "UNSCHEDULED", "Unscheduled"


class ScheduleEvent(VersionedModel):
    """
    One concrete visit on one date. Never deleted once it has consumed
    units; cancellation is a status.
    """
    client_id = models.UUIDField(db_index=True)

    template_event = models.ForeignKey(
        TemplateEvent,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="schedule_events",
    )
    source_template = models.ForeignKey(
        Template,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="schedule_events",
    )

    event_date = models.DateField(db_index=True)
    start_at = models.DateTimeField()
    end_at = models.DateTimeField()

    authorization = models.ForeignKey(
        Authorization,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="schedule_events",
    )
    reservation = models.OneToOneField(
        UnitReservation,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="schedule_event",
    )
    event_code = models.CharField(max_length=32, blank=True, default="")
    staff_id = models.UUIDField(null=True, blank=True, db_index=True)

    status = models.CharField(
        max_length=16,
        choices=ScheduleEventStatus.choices,
        default=ScheduleEventStatus.PLANNED,
        db_index=True,
    )
    origin = models.CharField(max_length=16, choices=EventOrigin.choices, default=EventOrigin.MANUAL)

    planned_units = models.PositiveIntegerField(default=0)
    actual_units = models.PositiveIntegerField(null=True, blank=True)

    capacity_warning = models.BooleanField(default=False)
    capacity_warning_detail = models.CharField(max_length=255, blank=True, default="")

    # Staff replacement; the first original staff member is kept.
    replacement_original_staff_id = models.UUIDField(null=True, blank=True)
    replacement_reason = models.TextField(blank=True, default="")

    cancel_reason = models.TextField(blank=True, default="")
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancel_requested = models.BooleanField(default=False, db_index=True)

    checked_in_at = models.DateTimeField(null=True, blank=True)
    checked_out_at = models.DateTimeField(null=True, blank=True)

    comment = models.TextField(blank=True, default="")
    generated_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "scheduling_schedule_event"
        constraints = [
            models.UniqueConstraint(
                fields=["template_event", "event_date"],
                name="uq_schedule_event_per_template_event_date",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant_id", "office_id", "client_id", "event_date"]),
            models.Index(fields=["tenant_id", "office_id", "staff_id", "event_date"]),
            models.Index(fields=["tenant_id", "office_id", "status"]),
        ]

    def __str__(self) -> str:
        return f"ScheduleEvent({self.event_date}, {self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

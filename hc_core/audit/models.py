# hc_core/audit/models.py
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from hc_core.common.models import ScopedModel


class AuditEntityType(models.TextChoices):
    AUTHORIZATION = "Authorization", "Authorization"
    TEMPLATE = "Template", "Template"
    SCHEDULE_EVENT = "ScheduleEvent", "Schedule event"


class AuditEvent(ScopedModel):
    """
    Immutable audit record.
    Cancellations, replacements, verifications and ledger overrides land here
    so billing review can reconstruct why units moved.

    schedule_event_id ties ledger entries to the visit they were made for, so
    one query returns a visit's whole history across both aggregates.
    """
    event_code = models.CharField(max_length=128, db_index=True)  # e.g. "visit.cancel"
    entity_type = models.CharField(max_length=32, choices=AuditEntityType.choices, db_index=True)
    entity_id = models.UUIDField(db_index=True)
    schedule_event_id = models.UUIDField(null=True, blank=True, db_index=True)

    actor_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="audit_events",
        null=True,
        blank=True,
    )

    occurred_at = models.DateTimeField(auto_now_add=True, db_index=True)
    metadata = models.JSONField(default=dict)

    class Meta:
        db_table = "audit_audit_event"
        indexes = [
            models.Index(fields=["tenant_id", "office_id", "occurred_at"]),
            models.Index(fields=["entity_type", "entity_id"]),
            models.Index(fields=["tenant_id", "office_id", "event_code"]),
        ]

    def __str__(self) -> str:
        return f"{self.event_code} {self.entity_type}:{self.entity_id}"

    @property
    def category(self) -> str:
        # "visit.check_out" -> "visit"
        return self.event_code.split(".", 1)[0]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("AuditEvent is immutable and cannot be modified once created.")
        return super().save(*args, **kwargs)

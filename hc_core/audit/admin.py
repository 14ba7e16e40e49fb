# hc_core/audit/admin.py
from django.contrib import admin

from hc_core.audit.models import AuditEvent


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ("event_code", "entity_type", "entity_id", "schedule_event_id", "office_id", "occurred_at")
    list_filter = ("entity_type",)
    search_fields = ("event_code", "=entity_id", "=schedule_event_id")
    readonly_fields = [f.name for f in AuditEvent._meta.fields]
    ordering = ("-occurred_at",)

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

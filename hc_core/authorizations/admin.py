# hc_core/authorizations/admin.py
from django.contrib import admin

from hc_core.authorizations.models import Authorization, UnitReservation


@admin.register(Authorization)
class AuthorizationAdmin(admin.ModelAdmin):
    list_display = (
        "authorization_no",
        "client_id",
        "service_code",
        "start_date",
        "end_date",
        "max_units",
        "used_units",
        "tenant_id",
        "office_id",
    )
    search_fields = ("authorization_no", "client_id", "service_code")
    # used_units only moves through LedgerService
    readonly_fields = ("used_units", "version", "created_at", "updated_at")
    ordering = ("-start_date",)


@admin.register(UnitReservation)
class UnitReservationAdmin(admin.ModelAdmin):
    list_display = ("authorization", "schedule_event_id", "units", "status", "over_allocated", "created_at")
    list_filter = ("status", "over_allocated")
    readonly_fields = ("authorization", "schedule_event_id", "units", "status", "over_allocated", "released_at")

# hc_core/scheduling/admin.py
from django.contrib import admin

from hc_core.scheduling.models import ScheduleEvent, Template, TemplateEvent, TemplateWeek


class TemplateWeekInline(admin.TabularInline):
    model = TemplateWeek
    extra = 0
    fields = ("week_index", "name")


@admin.register(Template)
class TemplateAdmin(admin.ModelAdmin):
    list_display = ("name", "client_id", "status", "anchor_date", "generated_through", "version")
    list_filter = ("status",)
    search_fields = ("name", "client_id")
    readonly_fields = ("generated_through", "version", "created_at", "updated_at")
    inlines = [TemplateWeekInline]


@admin.register(TemplateEvent)
class TemplateEventAdmin(admin.ModelAdmin):
    list_display = ("template_week", "weekday", "start_time", "end_time", "authorization", "planned_units", "staff_id")
    list_filter = ("weekday",)


@admin.register(ScheduleEvent)
class ScheduleEventAdmin(admin.ModelAdmin):
    list_display = (
        "event_date",
        "start_at",
        "end_at",
        "client_id",
        "staff_id",
        "status",
        "origin",
        "planned_units",
        "actual_units",
        "capacity_warning",
    )
    list_filter = ("status", "origin", "capacity_warning", "cancel_requested")
    search_fields = ("client_id", "staff_id", "event_code")
    # unit-bearing fields move only through the services
    readonly_fields = ("reservation", "planned_units", "actual_units", "status", "version")
    ordering = ("-event_date", "start_at")

# hc_core/scheduling/apps.py
from __future__ import annotations

from django.apps import AppConfig


class SchedulingConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "hc_core.scheduling"
    label = "scheduling"

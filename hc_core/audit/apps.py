# hc_core/audit/apps.py
from __future__ import annotations

from django.apps import AppConfig


class AuditConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "hc_core.audit"
    label = "audit"

# hc_core/authorizations/apps.py
from __future__ import annotations

from django.apps import AppConfig


class AuthorizationsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "hc_core.authorizations"
    label = "authorizations"

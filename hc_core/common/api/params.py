# hc_core/common/api/params.py
from __future__ import annotations

from datetime import date
from uuid import UUID

from django.utils.dateparse import parse_date
from rest_framework.exceptions import ValidationError as DRFValidationError

UUID_LOOKUP_REGEX = "[0-9a-fA-F-]{32,36}"


def uuid_or_none(value: str | None, field_name: str) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise DRFValidationError({field_name: "Invalid UUID"})


def date_or_none(value: str | None, field_name: str) -> date | None:
    if not value:
        return None
    try:
        parsed = parse_date(str(value))
    except ValueError:
        parsed = None
    if parsed is None:
        raise DRFValidationError({field_name: "Invalid date, expected YYYY-MM-DD"})
    return parsed


def bool_or_none(value: str | None) -> bool | None:
    if value is None or value == "":
        return None
    return str(value).lower() in ("1", "true", "yes")


def int_or_none(value: str | None, field_name: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise DRFValidationError({field_name: "Invalid integer"})

# hc_core/common/scope.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from rest_framework.exceptions import ValidationError

MISSING_SCOPE_MSG = "Missing scope headers. Provide X-Tenant-Id and X-Office-Id."
INVALID_SCOPE_MSG = "Invalid scope headers. X-Tenant-Id and X-Office-Id must be UUIDs."


@dataclass(frozen=True)
class Scope:
    tenant_id: UUID
    office_id: UUID


HDR_TENANT = "X-Tenant-Id"
HDR_OFFICE = "X-Office-Id"


def _parse_uuid(value) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


def _get_header(request, name: str) -> Optional[str]:
    """
    request.headers is case-insensitive; fallback to META for pytest/client.
    """
    headers = getattr(request, "headers", None)
    if headers is not None:
        v = headers.get(name)
        if v:
            return v

    meta_key = "HTTP_" + name.upper().replace("-", "_")
    return request.META.get(meta_key)


def require_scope(request) -> Scope:
    """
    Resolve (tenant_id, office_id) for an API request.

    - Prefers request.tenant_id / request.office_id when something upstream
      already attached them (tests, gateways).
    - Otherwise reads the scope headers.
    - Missing -> 400, invalid UUIDs -> 400 (raised as DRF ValidationError so
      the global handler renders the error envelope).
    """
    t = getattr(request, "tenant_id", None)
    o = getattr(request, "office_id", None)
    if t and o:
        tu, ou = _parse_uuid(t), _parse_uuid(o)
        if tu and ou:
            return Scope(tenant_id=tu, office_id=ou)

    tenant_raw = _get_header(request, HDR_TENANT)
    office_raw = _get_header(request, HDR_OFFICE)

    if not tenant_raw or not office_raw:
        raise ValidationError({"detail": MISSING_SCOPE_MSG})

    tenant_id = _parse_uuid(tenant_raw)
    office_id = _parse_uuid(office_raw)
    if not tenant_id or not office_id:
        raise ValidationError({"detail": INVALID_SCOPE_MSG})

    scope = Scope(tenant_id=tenant_id, office_id=office_id)
    request.tenant_id = tenant_id
    request.office_id = office_id
    request.scope = scope
    return scope

# hc_core/audit/services.py
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import UUID

from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction

from hc_core.audit.models import AuditEntityType, AuditEvent


@dataclass(frozen=True)
class AuditRecord:
    event_code: str
    entity_type: str
    entity_id: UUID
    tenant_id: UUID
    office_id: UUID
    actor_user_id: int | None
    schedule_event_id: UUID | None
    metadata: Dict[str, Any]


def _json_safe(metadata: Dict[str, Any]) -> Dict[str, Any]:
    # dates, UUIDs and Decimals arrive from services as-is
    return json.loads(json.dumps(metadata, cls=DjangoJSONEncoder))


def _schedule_event_for(entity_type: str, entity_id: UUID, metadata: Dict[str, Any]) -> UUID | None:
    if entity_type == AuditEntityType.SCHEDULE_EVENT:
        return entity_id
    return metadata.get("schedule_event_id")


class AuditService:
    """
    Central audit writer for templates, schedule events and the unit ledger.
    Persists into AuditEvent (immutable).
    """

    @staticmethod
    @transaction.atomic
    def log(
        *,
        event_code: str,
        entity_type: str,
        entity_id: UUID,
        tenant_id: UUID,
        office_id: UUID,
        actor_user_id: int | None = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditRecord:
        if entity_type not in AuditEntityType.values:
            raise ValueError(f"Unknown audit entity type: {entity_type!r}")

        raw = metadata or {}
        schedule_event_id = _schedule_event_for(entity_type, entity_id, raw)
        metadata = _json_safe(raw)

        AuditEvent.objects.create(
            tenant_id=tenant_id,
            office_id=office_id,
            event_code=event_code,
            entity_type=entity_type,
            entity_id=entity_id,
            schedule_event_id=schedule_event_id,
            actor_user_id=actor_user_id,
            metadata=metadata,
        )

        return AuditRecord(
            event_code=event_code,
            entity_type=entity_type,
            entity_id=entity_id,
            tenant_id=tenant_id,
            office_id=office_id,
            actor_user_id=actor_user_id,
            schedule_event_id=schedule_event_id,
            metadata=metadata,
        )

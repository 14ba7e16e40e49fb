# hc_core/audit/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from hc_core.audit.api.serializers import AuditEventSerializer
from hc_core.audit.models import AuditEntityType, AuditEvent
from hc_core.audit.selectors import list_audit_events
from hc_core.common.api.params import int_or_none, uuid_or_none
from hc_core.common.scope import require_scope


class AuditEventViewSet(viewsets.GenericViewSet):
    """
    Audit trail of templates, schedule events and the unit ledger (scoped).
    """
    permission_classes = [IsAuthenticated]

    serializer_class = AuditEventSerializer
    queryset = AuditEvent.objects.none()

    @extend_schema(
        tags=["Audit"],
        responses={200: AuditEventSerializer(many=True)},
        parameters=[
            OpenApiParameter(
                name="entity_type",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                enum=AuditEntityType.values,
            ),
            OpenApiParameter(
                name="entity_id",
                type=OpenApiTypes.UUID,
                location=OpenApiParameter.QUERY,
                required=False,
            ),
            OpenApiParameter(
                name="event_code",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Filter by event code (e.g. visit.cancel, authorization.units.override).",
            ),
            OpenApiParameter(
                name="category",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Event-code prefix: visit, schedule or authorization.",
            ),
            OpenApiParameter(
                name="schedule_event_id",
                type=OpenApiTypes.UUID,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Everything recorded for one visit, ledger entries included.",
            ),
            OpenApiParameter(
                name="actor_user_id",
                type=OpenApiTypes.INT,
                location=OpenApiParameter.QUERY,
                required=False,
            ),
            OpenApiParameter(
                name="limit",
                type=OpenApiTypes.INT,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Max records to return (default 200, max 500).",
            ),
        ],
    )
    def list(self, request):
        scope = require_scope(request)
        qp = request.query_params

        entity_type = qp.get("entity_type") or None
        if entity_type and entity_type not in AuditEntityType.values:
            raise DRFValidationError({"entity_type": f"Must be one of: {', '.join(AuditEntityType.values)}."})

        qs = list_audit_events(
            tenant_id=scope.tenant_id,
            office_id=scope.office_id,
            entity_type=entity_type,
            entity_id=uuid_or_none(qp.get("entity_id"), "entity_id"),
            event_code=qp.get("event_code") or None,
            category=qp.get("category") or None,
            schedule_event_id=uuid_or_none(qp.get("schedule_event_id"), "schedule_event_id"),
            actor_user_id=int_or_none(qp.get("actor_user_id"), "actor_user_id"),
        )

        limit_n = int_or_none(qp.get("limit"), "limit") or 200
        limit_n = max(1, min(limit_n, 500))

        return Response(AuditEventSerializer(qs[:limit_n], many=True).data, status=status.HTTP_200_OK)

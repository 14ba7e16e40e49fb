# hc_core/visits/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from hc_core.common.api.pagination import paginate
from hc_core.common.api.params import UUID_LOOKUP_REGEX, bool_or_none, date_or_none, uuid_or_none
from hc_core.common.permissions import VisitPermission
from hc_core.common.scope import require_scope
from hc_core.visits.api.serializers import (
    UnscheduledVisitResultSerializer,
    UnscheduledVisitSerializer,
    VisitRecordSerializer,
)
from hc_core.visits.models import VisitRecord
from hc_core.visits.selectors import get_visit, visits_filtered
from hc_core.visits.services import VisitService


class VisitRecordViewSet(viewsets.GenericViewSet):
    """
    Visit records for back-office review, plus unscheduled/replacement visits.
    """
    permission_classes = [VisitPermission]
    serializer_class = VisitRecordSerializer
    queryset = VisitRecord.objects.none()
    lookup_value_regex = UUID_LOOKUP_REGEX

    @extend_schema(
        tags=["Visits"],
        responses={200: VisitRecordSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="client_id", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="staff_id", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="visit_status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="date_from", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="date_to", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="unscheduled", type=OpenApiTypes.BOOL, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        scope = require_scope(request)
        qp = request.query_params

        qs = visits_filtered(
            tenant_id=scope.tenant_id,
            office_id=scope.office_id,
            client_id=uuid_or_none(qp.get("client_id"), "client_id"),
            staff_id=uuid_or_none(qp.get("staff_id"), "staff_id"),
            visit_status=qp.get("visit_status") or None,
            date_from=date_or_none(qp.get("date_from"), "date_from"),
            date_to=date_or_none(qp.get("date_to"), "date_to"),
            unscheduled=bool_or_none(qp.get("unscheduled")),
        )
        return paginate(request, qs, VisitRecordSerializer)

    @extend_schema(tags=["Visits"], responses={200: VisitRecordSerializer})
    def retrieve(self, request, pk=None):
        scope = require_scope(request)
        visit = get_visit(tenant_id=scope.tenant_id, office_id=scope.office_id, visit_id=pk)
        return Response(VisitRecordSerializer(visit).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Visits"],
        request=UnscheduledVisitSerializer,
        responses={201: UnscheduledVisitResultSerializer},
    )
    @action(detail=False, methods=["post"], url_path="unscheduled")
    def unscheduled(self, request):
        """
        Record a staff replacement against an existing schedule event, or a
        brand new unscheduled visit in a free slot.
        """
        scope = require_scope(request)
        ser = UnscheduledVisitSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        slot = dict(data.get("slot") or {})

        result = VisitService.create_unscheduled(
            tenant_id=scope.tenant_id,
            office_id=scope.office_id,
            replacement_staff_id=data["replacement_staff_id"],
            reason=data["reason"],
            schedule_event_id=data.get("schedule_event_id"),
            actor_user_id=getattr(request.user, "id", None),
            **slot,
        )
        out = {
            "schedule_event_id": result.event.id,
            "visit_record_id": result.visit.id,
            "warnings": result.warnings,
        }
        return Response(UnscheduledVisitResultSerializer(out).data, status=status.HTTP_201_CREATED)

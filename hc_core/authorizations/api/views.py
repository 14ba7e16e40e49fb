# hc_core/authorizations/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from hc_core.authorizations.api.serializers import (
    AuthorizationSerializer,
    AvailableUnitsSerializer,
    UnitReservationSerializer,
)
from hc_core.authorizations.models import Authorization
from hc_core.authorizations.selectors import authorizations_filtered, get_authorization, reservations_for
from hc_core.authorizations.services import LedgerService
from hc_core.common.api.pagination import paginate
from hc_core.common.api.params import UUID_LOOKUP_REGEX, date_or_none, uuid_or_none
from hc_core.common.permissions import AuthorizationPermission
from hc_core.common.scope import require_scope


class AuthorizationViewSet(viewsets.GenericViewSet):
    """
    Read side of the unit ledger. Authorizations are created upstream;
    units only move through scheduling and visit operations.
    """
    permission_classes = [AuthorizationPermission]
    serializer_class = AuthorizationSerializer
    queryset = Authorization.objects.none()
    lookup_value_regex = UUID_LOOKUP_REGEX

    @extend_schema(
        tags=["Authorizations"],
        responses={200: AuthorizationSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="client_id", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(
                name="active_on",
                type=OpenApiTypes.DATE,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Only authorizations whose validity window covers this date.",
            ),
        ],
    )
    def list(self, request):
        scope = require_scope(request)

        qs = authorizations_filtered(
            tenant_id=scope.tenant_id,
            office_id=scope.office_id,
            client_id=uuid_or_none(request.query_params.get("client_id"), "client_id"),
            active_on=date_or_none(request.query_params.get("active_on"), "active_on"),
        )
        return paginate(request, qs, AuthorizationSerializer)

    @extend_schema(tags=["Authorizations"], responses={200: AuthorizationSerializer})
    def retrieve(self, request, pk=None):
        scope = require_scope(request)
        auth = get_authorization(tenant_id=scope.tenant_id, office_id=scope.office_id, authorization_id=pk)
        return Response(AuthorizationSerializer(auth).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Authorizations"], responses={200: AvailableUnitsSerializer})
    @action(detail=True, methods=["get"], url_path="available-units")
    def available_units(self, request, pk=None):
        scope = require_scope(request)
        bal = LedgerService.balance(tenant_id=scope.tenant_id, office_id=scope.office_id, authorization_id=pk)
        data = {
            "authorization_id": bal.authorization_id,
            "max_units": bal.max_units,
            "used_units": bal.used_units,
            "available_units": bal.available_units,
            "over_allocated_units": bal.over_allocated_units,
            "is_over_allocated": bal.is_over_allocated,
        }
        return Response(AvailableUnitsSerializer(data).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Authorizations"], responses={200: UnitReservationSerializer(many=True)})
    @action(detail=True, methods=["get"], url_path="reservations")
    def reservations(self, request, pk=None):
        scope = require_scope(request)
        get_authorization(tenant_id=scope.tenant_id, office_id=scope.office_id, authorization_id=pk)
        qs = reservations_for(tenant_id=scope.tenant_id, office_id=scope.office_id, authorization_id=pk)
        return Response(UnitReservationSerializer(qs, many=True).data, status=status.HTTP_200_OK)

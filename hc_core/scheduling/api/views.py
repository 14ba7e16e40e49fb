# hc_core/scheduling/api/views.py
from __future__ import annotations

from django.conf import settings
from django.utils import timezone
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied, ValidationError as DRFValidationError
from rest_framework.response import Response

from hc_core.common.api.pagination import paginate
from hc_core.common.api.params import UUID_LOOKUP_REGEX, bool_or_none, date_or_none, int_or_none, uuid_or_none
from hc_core.common.permissions import (
    TRANSITION_ROLES,
    ScheduleEventPermission,
    TemplatePermission,
    user_has_any_role,
)
from hc_core.common.scope import require_scope
from hc_core.scheduling.api.serializers import (
    GenerateRequestSerializer,
    GenerationResultSerializer,
    ScheduleEventCreateSerializer,
    ScheduleEventSerializer,
    ScheduleEventUpdateSerializer,
    TemplateCreateSerializer,
    TemplateEventCreateSerializer,
    TemplateEventSerializer,
    TemplateEventUpdateSerializer,
    TemplateSerializer,
    TemplateStatusSerializer,
    TemplateWeekCreateSerializer,
    TemplateWeekSerializer,
    TransitionRequestSerializer,
)
from hc_core.scheduling.models import ScheduleEvent, Template
from hc_core.scheduling.selectors import events_filtered, get_event, get_template, templates_filtered
from hc_core.scheduling.services import GenerationService, ScheduleEventService, TemplateService
from hc_core.visits.api.serializers import VisitRecordSerializer
from hc_core.visits.services import VisitService


def _actor(request) -> int | None:
    return getattr(request.user, "id", None)


def _event_payload(event, *, visit=None, warnings=None) -> dict:
    return {
        "event": ScheduleEventSerializer(event).data,
        "visit": VisitRecordSerializer(visit).data if visit is not None else None,
        "warnings": warnings or [],
    }


class TemplateViewSet(viewsets.GenericViewSet):
    """
    Recurring templates: weeks, template events, status and generation.
    """
    permission_classes = [TemplatePermission]
    serializer_class = TemplateSerializer
    queryset = Template.objects.none()
    lookup_value_regex = UUID_LOOKUP_REGEX

    @extend_schema(
        tags=["Scheduling"],
        responses={200: TemplateSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="client_id", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        scope = require_scope(request)
        qs = templates_filtered(
            tenant_id=scope.tenant_id,
            office_id=scope.office_id,
            client_id=uuid_or_none(request.query_params.get("client_id"), "client_id"),
            status=request.query_params.get("status") or None,
        )
        return paginate(request, qs, TemplateSerializer)

    @extend_schema(tags=["Scheduling"], responses={200: TemplateSerializer})
    def retrieve(self, request, pk=None):
        scope = require_scope(request)
        t = get_template(tenant_id=scope.tenant_id, office_id=scope.office_id, template_id=pk)
        return Response(TemplateSerializer(t).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Scheduling"], request=TemplateCreateSerializer, responses={201: TemplateSerializer})
    def create(self, request):
        scope = require_scope(request)
        ser = TemplateCreateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        t = TemplateService.create_template(
            tenant_id=scope.tenant_id,
            office_id=scope.office_id,
            actor_user_id=_actor(request),
            **ser.validated_data,
        )
        t = get_template(tenant_id=scope.tenant_id, office_id=scope.office_id, template_id=t.id)
        return Response(TemplateSerializer(t).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Scheduling"], request=TemplateWeekCreateSerializer, responses={201: TemplateWeekSerializer})
    @action(detail=True, methods=["post"], url_path="weeks")
    def weeks(self, request, pk=None):
        scope = require_scope(request)
        ser = TemplateWeekCreateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        week = TemplateService.add_week(
            tenant_id=scope.tenant_id,
            office_id=scope.office_id,
            template_id=pk,
            **ser.validated_data,
        )
        return Response(TemplateWeekSerializer(week).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Scheduling"], responses={200: TemplateSerializer})
    @action(detail=True, methods=["delete"], url_path=r"weeks/(?P<week_id>[0-9a-fA-F-]{32,36})")
    def remove_week(self, request, pk=None, week_id=None):
        scope = require_scope(request)
        TemplateService.remove_week(
            tenant_id=scope.tenant_id,
            office_id=scope.office_id,
            template_id=pk,
            week_id=uuid_or_none(week_id, "week_id"),
            expected_version=int_or_none(request.query_params.get("expected_version"), "expected_version"),
        )
        t = get_template(tenant_id=scope.tenant_id, office_id=scope.office_id, template_id=pk)
        return Response(TemplateSerializer(t).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Scheduling"], request=TemplateEventCreateSerializer, responses={201: TemplateEventSerializer})
    @action(detail=True, methods=["post"], url_path="events")
    def events(self, request, pk=None):
        scope = require_scope(request)
        ser = TemplateEventCreateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        te = TemplateService.add_template_event(
            tenant_id=scope.tenant_id,
            office_id=scope.office_id,
            template_id=pk,
            **ser.validated_data,
        )
        return Response(TemplateEventSerializer(te).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Scheduling"], request=TemplateEventUpdateSerializer, responses={200: TemplateEventSerializer})
    @action(
        detail=True,
        methods=["patch", "delete"],
        url_path=r"events/(?P<template_event_id>[0-9a-fA-F-]{32,36})",
    )
    def event_detail(self, request, pk=None, template_event_id=None):
        scope = require_scope(request)
        te_id = uuid_or_none(template_event_id, "template_event_id")

        if request.method == "DELETE":
            TemplateService.remove_template_event(
                tenant_id=scope.tenant_id,
                office_id=scope.office_id,
                template_id=pk,
                template_event_id=te_id,
                expected_version=int_or_none(request.query_params.get("expected_version"), "expected_version"),
            )
            return Response(status=status.HTTP_204_NO_CONTENT)

        ser = TemplateEventUpdateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        changes = dict(ser.validated_data)
        expected_version = changes.pop("expected_version", None)

        te = TemplateService.update_template_event(
            tenant_id=scope.tenant_id,
            office_id=scope.office_id,
            template_id=pk,
            template_event_id=te_id,
            expected_version=expected_version,
            **changes,
        )
        return Response(TemplateEventSerializer(te).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Scheduling"], request=TemplateStatusSerializer, responses={200: TemplateSerializer})
    @action(detail=True, methods=["post"], url_path="status")
    def set_status(self, request, pk=None):
        scope = require_scope(request)
        ser = TemplateStatusSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        TemplateService.set_status(
            tenant_id=scope.tenant_id,
            office_id=scope.office_id,
            template_id=pk,
            actor_user_id=_actor(request),
            **ser.validated_data,
        )
        t = get_template(tenant_id=scope.tenant_id, office_id=scope.office_id, template_id=pk)
        return Response(TemplateSerializer(t).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Scheduling"], request=GenerateRequestSerializer, responses={200: GenerationResultSerializer})
    @action(detail=True, methods=["post"], url_path="generate")
    def generate(self, request, pk=None):
        """
        Materialize schedule events up to end_date. Safe to repeat: dates
        already generated are skipped and a fully covered range is a no-op.
        """
        scope = require_scope(request)
        ser = GenerateRequestSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        end_date = ser.validated_data["end_date"]

        today = timezone.localdate()
        max_days = int(getattr(settings, "HC_MAX_GENERATION_DAYS", 730))
        if (end_date - today).days > max_days:
            raise DRFValidationError({"end_date": f"End date must be within {max_days} days from today."})

        result = GenerationService.generate(
            tenant_id=scope.tenant_id,
            office_id=scope.office_id,
            template_id=pk,
            through_date=end_date,
            today=today,
            actor_user_id=_actor(request),
        )
        return Response(GenerationResultSerializer(result.as_dict()).data, status=status.HTTP_200_OK)


class ScheduleEventViewSet(viewsets.GenericViewSet):
    """
    Concrete visits: calendar reads, manual events, edits and lifecycle transitions.
    """
    permission_classes = [ScheduleEventPermission]
    serializer_class = ScheduleEventSerializer
    queryset = ScheduleEvent.objects.none()
    lookup_value_regex = UUID_LOOKUP_REGEX

    @extend_schema(
        tags=["Scheduling"],
        responses={200: ScheduleEventSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="client_id", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="staff_id", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="date_from", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="date_to", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="origin", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(
                name="active_only",
                type=OpenApiTypes.BOOL,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Hide cancelled events and pending cancellations.",
            ),
        ],
    )
    def list(self, request):
        scope = require_scope(request)
        qp = request.query_params

        qs = events_filtered(
            tenant_id=scope.tenant_id,
            office_id=scope.office_id,
            client_id=uuid_or_none(qp.get("client_id"), "client_id"),
            staff_id=uuid_or_none(qp.get("staff_id"), "staff_id"),
            date_from=date_or_none(qp.get("date_from"), "date_from"),
            date_to=date_or_none(qp.get("date_to"), "date_to"),
            status=qp.get("status") or None,
            origin=qp.get("origin") or None,
            active_only=bool(bool_or_none(qp.get("active_only"))),
        )
        return paginate(request, qs, ScheduleEventSerializer)

    @extend_schema(tags=["Scheduling"], responses={200: ScheduleEventSerializer})
    def retrieve(self, request, pk=None):
        scope = require_scope(request)
        ev = get_event(tenant_id=scope.tenant_id, office_id=scope.office_id, event_id=pk)
        return Response(ScheduleEventSerializer(ev).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Scheduling"], request=ScheduleEventCreateSerializer, responses={201: OpenApiTypes.OBJECT})
    def create(self, request):
        scope = require_scope(request)
        ser = ScheduleEventCreateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        result = ScheduleEventService.create_manual_event(
            tenant_id=scope.tenant_id,
            office_id=scope.office_id,
            actor_user_id=_actor(request),
            **ser.validated_data,
        )
        return Response(_event_payload(result.event, warnings=result.warnings), status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Scheduling"], request=ScheduleEventUpdateSerializer, responses={200: OpenApiTypes.OBJECT})
    def partial_update(self, request, pk=None):
        scope = require_scope(request)
        ser = ScheduleEventUpdateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        changes = dict(ser.validated_data)
        expected_version = changes.pop("expected_version")

        result = ScheduleEventService.update_event(
            tenant_id=scope.tenant_id,
            office_id=scope.office_id,
            event_id=pk,
            expected_version=expected_version,
            actor_user_id=_actor(request),
            **changes,
        )
        return Response(_event_payload(result.event, warnings=result.warnings), status=status.HTTP_200_OK)

    @extend_schema(tags=["Scheduling"], request=TransitionRequestSerializer, responses={200: OpenApiTypes.OBJECT})
    @action(detail=True, methods=["post"], url_path="transition")
    def transition(self, request, pk=None):
        """
        Apply one lifecycle action (plan, confirm, check_in, check_out,
        cancel, adjust_times, verify; checkIn, checkOut and adjustTimes are
        accepted as aliases). Returns the event, its visit record
        and any capacity warnings.
        """
        scope = require_scope(request)
        ser = TransitionRequestSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        act = ser.validated_data["action"]

        if not user_has_any_role(request.user, TRANSITION_ROLES.get(act, set())):
            raise PermissionDenied(f"Your role cannot perform '{act}'.")

        result = VisitService.transition(
            tenant_id=scope.tenant_id,
            office_id=scope.office_id,
            event_id=pk,
            action=act,
            payload=dict(ser.validated_data["payload"]),
            actor_user_id=_actor(request),
        )
        return Response(
            _event_payload(result.event, visit=result.visit, warnings=result.warnings),
            status=status.HTTP_200_OK,
        )

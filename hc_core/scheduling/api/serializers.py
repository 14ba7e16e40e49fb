# hc_core/scheduling/api/serializers.py
from __future__ import annotations

from django.conf import settings
from rest_framework import serializers

from hc_core.scheduling.models import (
    ScheduleEvent,
    ScheduleEventStatus,
    Template,
    TemplateEvent,
    TemplateStatus,
    TemplateWeek,
)

TRANSITION_ACTIONS = ("plan", "confirm", "check_in", "check_out", "cancel", "adjust_times", "verify")
# camelCase spellings accepted on the wire
ACTION_ALIASES = {"checkIn": "check_in", "checkOut": "check_out", "adjustTimes": "adjust_times"}


class TemplateEventSerializer(serializers.ModelSerializer):
    authorization_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = TemplateEvent
        fields = [
            "id",
            "weekday",
            "start_time",
            "end_time",
            "authorization_id",
            "event_code",
            "planned_units",
            "staff_id",
            "comment",
        ]
        read_only_fields = fields


class TemplateWeekSerializer(serializers.ModelSerializer):
    events = TemplateEventSerializer(many=True, read_only=True)

    class Meta:
        model = TemplateWeek
        fields = ["id", "week_index", "name", "events"]
        read_only_fields = fields


class TemplateSerializer(serializers.ModelSerializer):
    weeks = TemplateWeekSerializer(many=True, read_only=True)

    class Meta:
        model = Template
        fields = [
            "id",
            "tenant_id",
            "office_id",
            "client_id",
            "name",
            "description",
            "status",
            "anchor_date",
            "generated_through",
            "version",
            "weeks",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class TemplateCreateSerializer(serializers.Serializer):
    client_id = serializers.UUIDField()
    name = serializers.CharField(max_length=120, required=False, allow_blank=True, default="Master Weekly")
    description = serializers.CharField(required=False, allow_blank=True, default="")
    anchor_date = serializers.DateField(required=False, allow_null=True, default=None)
    status = serializers.ChoiceField(choices=TemplateStatus.choices, required=False, default=TemplateStatus.ACTIVE)


class TemplateWeekCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    expected_version = serializers.IntegerField(required=False, allow_null=True, default=None)


class TemplateEventCreateSerializer(serializers.Serializer):
    week_id = serializers.UUIDField()
    weekday = serializers.IntegerField(min_value=0, max_value=6)
    start_time = serializers.TimeField()
    end_time = serializers.TimeField()
    authorization_id = serializers.UUIDField()
    event_code = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    planned_units = serializers.IntegerField(min_value=0, required=False, allow_null=True, default=None)
    staff_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    comment = serializers.CharField(required=False, allow_blank=True, default="")
    expected_version = serializers.IntegerField(required=False, allow_null=True, default=None)


class TemplateEventUpdateSerializer(serializers.Serializer):
    weekday = serializers.IntegerField(min_value=0, max_value=6, required=False)
    start_time = serializers.TimeField(required=False)
    end_time = serializers.TimeField(required=False)
    authorization_id = serializers.UUIDField(required=False)
    event_code = serializers.CharField(max_length=32, required=False, allow_blank=True)
    planned_units = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    staff_id = serializers.UUIDField(required=False, allow_null=True)
    comment = serializers.CharField(required=False, allow_blank=True)
    expected_version = serializers.IntegerField(required=False, allow_null=True)


class TemplateStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=TemplateStatus.choices)
    expected_version = serializers.IntegerField(required=False, allow_null=True, default=None)


class GenerateRequestSerializer(serializers.Serializer):
    end_date = serializers.DateField()


class GenerationResultSerializer(serializers.Serializer):
    template_id = serializers.UUIDField()
    created_count = serializers.IntegerField()
    skipped_count = serializers.IntegerField()
    warnings = serializers.ListField(child=serializers.DictField())
    generated_through = serializers.DateField(allow_null=True)
    noop = serializers.BooleanField()


class ScheduleEventSerializer(serializers.ModelSerializer):
    template_event_id = serializers.UUIDField(read_only=True)
    source_template_id = serializers.UUIDField(read_only=True)
    authorization_id = serializers.UUIDField(read_only=True)
    reservation_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = ScheduleEvent
        fields = [
            "id",
            "tenant_id",
            "office_id",
            "client_id",
            "template_event_id",
            "source_template_id",
            "event_date",
            "start_at",
            "end_at",
            "authorization_id",
            "reservation_id",
            "event_code",
            "staff_id",
            "status",
            "origin",
            "planned_units",
            "actual_units",
            "capacity_warning",
            "capacity_warning_detail",
            "replacement_original_staff_id",
            "replacement_reason",
            "cancel_reason",
            "cancelled_at",
            "cancel_requested",
            "checked_in_at",
            "checked_out_at",
            "comment",
            "generated_at",
            "version",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ScheduleEventCreateSerializer(serializers.Serializer):
    client_id = serializers.UUIDField()
    event_date = serializers.DateField()
    start_time = serializers.TimeField()
    end_time = serializers.TimeField()
    authorization_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    event_code = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    staff_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    planned_units = serializers.IntegerField(min_value=0, required=False, allow_null=True, default=None)
    status = serializers.ChoiceField(
        choices=[ScheduleEventStatus.DRAFT, ScheduleEventStatus.PLANNED],
        required=False,
        default=ScheduleEventStatus.PLANNED,
    )
    comment = serializers.CharField(required=False, allow_blank=True, default="")


class ScheduleEventUpdateSerializer(serializers.Serializer):
    expected_version = serializers.IntegerField(min_value=1)
    event_date = serializers.DateField(required=False)
    start_time = serializers.TimeField(required=False)
    end_time = serializers.TimeField(required=False)
    staff_id = serializers.UUIDField(required=False, allow_null=True)
    event_code = serializers.CharField(max_length=32, required=False, allow_blank=True)
    planned_units = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    comment = serializers.CharField(required=False, allow_blank=True)


class TransitionPayloadSerializer(serializers.Serializer):
    at = serializers.DateTimeField(required=False)
    staff_id = serializers.UUIDField(required=False, allow_null=True)
    reason = serializers.CharField(required=False, allow_blank=True)
    adjusted_in = serializers.DateTimeField(required=False, allow_null=True)
    adjusted_out = serializers.DateTimeField(required=False, allow_null=True)


class TransitionRequestSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=TRANSITION_ACTIONS)
    payload = TransitionPayloadSerializer(required=False, default=dict)

    def to_internal_value(self, data):
        if isinstance(data, dict) and data.get("action") in ACTION_ALIASES:
            data = data.copy()
            data["action"] = ACTION_ALIASES[data["action"]]
        return super().to_internal_value(data)

    def validate(self, attrs):
        payload = attrs.get("payload") or {}
        if attrs["action"] == "cancel":
            reason = (payload.get("reason") or "").strip()
            min_len = int(getattr(settings, "HC_CANCEL_REASON_MIN_LENGTH", 10))
            if len(reason) < min_len:
                raise serializers.ValidationError(
                    {"reason": f"Cancellation reason must be at least {min_len} characters."}
                )
            payload["reason"] = reason
        attrs["payload"] = payload
        return attrs

# hc_core/visits/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from hc_core.visits.models import VisitRecord


class VisitRecordSerializer(serializers.ModelSerializer):
    schedule_event_id = serializers.UUIDField(read_only=True)
    client_id = serializers.UUIDField(source="schedule_event.client_id", read_only=True)
    event_date = serializers.DateField(source="schedule_event.event_date", read_only=True)
    verified_by_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = VisitRecord
        fields = [
            "id",
            "tenant_id",
            "office_id",
            "schedule_event_id",
            "client_id",
            "event_date",
            "check_in_time",
            "check_out_time",
            "adjusted_in",
            "adjusted_out",
            "pay_hours",
            "bill_hours",
            "units",
            "do_not_bill",
            "visit_status",
            "is_unscheduled",
            "unscheduled_reason",
            "actual_staff_id",
            "verified_at",
            "verified_by_id",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class SlotSerializer(serializers.Serializer):
    client_id = serializers.UUIDField()
    event_date = serializers.DateField()
    start_time = serializers.TimeField()
    end_time = serializers.TimeField()
    authorization_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    event_code = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")


class UnscheduledVisitSerializer(serializers.Serializer):
    schedule_event_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    slot = SlotSerializer(required=False, allow_null=True, default=None)
    replacement_staff_id = serializers.UUIDField()
    reason = serializers.CharField()

    def validate_reason(self, value):
        value = (value or "").strip()
        if not value:
            raise serializers.ValidationError("A reason is required.")
        return value

    def validate(self, attrs):
        has_event = attrs.get("schedule_event_id") is not None
        has_slot = attrs.get("slot") is not None
        if has_event == has_slot:
            raise serializers.ValidationError({"detail": "Provide exactly one of schedule_event_id or slot."})
        return attrs


class UnscheduledVisitResultSerializer(serializers.Serializer):
    schedule_event_id = serializers.UUIDField()
    visit_record_id = serializers.UUIDField()
    warnings = serializers.ListField(child=serializers.DictField())

# hc_core/authorizations/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from hc_core.authorizations.models import Authorization, UnitReservation


class AuthorizationSerializer(serializers.ModelSerializer):
    available_units = serializers.IntegerField(read_only=True)
    over_allocated_units = serializers.IntegerField(read_only=True)

    class Meta:
        model = Authorization
        fields = [
            "id",
            "tenant_id",
            "office_id",
            "client_id",
            "service_code",
            "authorization_no",
            "event_code",
            "format",
            "start_date",
            "end_date",
            "max_units",
            "used_units",
            "available_units",
            "over_allocated_units",
            "comments",
            "version",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class UnitReservationSerializer(serializers.ModelSerializer):
    class Meta:
        model = UnitReservation
        fields = [
            "id",
            "authorization",
            "schedule_event_id",
            "units",
            "status",
            "over_allocated",
            "released_at",
            "created_at",
        ]
        read_only_fields = fields


class AvailableUnitsSerializer(serializers.Serializer):
    authorization_id = serializers.UUIDField()
    max_units = serializers.IntegerField()
    used_units = serializers.IntegerField()
    available_units = serializers.IntegerField()
    over_allocated_units = serializers.IntegerField()
    is_over_allocated = serializers.BooleanField()

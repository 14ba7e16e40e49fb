# hc_core/audit/api/serializers.py
from rest_framework import serializers

from hc_core.audit.models import AuditEvent


class AuditEventSerializer(serializers.ModelSerializer):
    timestamp = serializers.DateTimeField(source="occurred_at", read_only=True)
    actor_user_id = serializers.IntegerField(read_only=True)
    category = serializers.CharField(read_only=True)

    class Meta:
        model = AuditEvent
        fields = [
            "id",
            "entity_type",
            "entity_id",
            "schedule_event_id",
            "event_code",
            "category",
            "actor_user_id",
            "timestamp",
            "metadata",
        ]
        read_only_fields = fields

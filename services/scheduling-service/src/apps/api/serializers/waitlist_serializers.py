# services/scheduling-service/src/apps/api/serializers/waitlist_serializers.py
"""
Waitlist Serializers
"""

from rest_framework import serializers

from apps.core.models import WaitlistEntry


class WaitlistEntrySerializer(serializers.ModelSerializer):
    """Waitlist entry serializer."""

    is_notified = serializers.BooleanField(read_only=True)
    is_expired = serializers.BooleanField(read_only=True)

    class Meta:
        model = WaitlistEntry
        fields = [
            'id', 'organization_id', 'service_id', 'user_id', 'position',
            'joined_at', 'notified_at', 'expires_at', 'is_notified', 'is_expired',
            'notify_by_email', 'notify_by_sms', 'is_active', 'notes',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class WaitlistJoinSerializer(serializers.Serializer):
    """Serializer for joining a waitlist."""

    service_id = serializers.UUIDField()
    user_id = serializers.UUIDField()
    notify_by_email = serializers.BooleanField(required=False, default=True)
    notify_by_sms = serializers.BooleanField(required=False, default=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class WaitlistUpdateSerializer(serializers.Serializer):

    notify_by_email = serializers.BooleanField(required=False)
    notify_by_sms = serializers.BooleanField(required=False)
    is_active = serializers.BooleanField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class WaitlistReorderSerializer(serializers.Serializer):

    position = serializers.IntegerField(min_value=1)


class WaitlistNotifySerializer(serializers.Serializer):

    expires_at = serializers.DateTimeField(required=False)


class WaitlistPositionSerializer(serializers.Serializer):

    service_id = serializers.UUIDField()
    user_id = serializers.UUIDField()

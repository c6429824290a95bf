# services/scheduling-service/src/apps/api/serializers/calendar_serializers.py
"""
Calendar Serializers
"""

from rest_framework import serializers


class CalendarQuerySerializer(serializers.Serializer):
    """Window and participant filters for calendar views."""

    start = serializers.DateTimeField(required=False)
    end = serializers.DateTimeField(required=False)
    date = serializers.DateField(required=False)
    staff_id = serializers.UUIDField(required=False)
    member_id = serializers.UUIDField(required=False)
    service_id = serializers.UUIDField(required=False)
    resource_id = serializers.UUIDField(required=False)
    location_id = serializers.UUIDField(required=False)
    status = serializers.CharField(required=False)
    include_cancelled = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        start, end = attrs.get('start'), attrs.get('end')
        if start and end and end <= start:
            raise serializers.ValidationError({'end': 'End must be after start'})
        return attrs

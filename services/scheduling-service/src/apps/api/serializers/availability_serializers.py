# services/scheduling-service/src/apps/api/serializers/availability_serializers.py
"""
Availability Serializers
"""

from rest_framework import serializers

from apps.core.models import StaffAvailability


class StaffAvailabilitySerializer(serializers.ModelSerializer):
    """Staff availability window."""

    day_of_week_display = serializers.CharField(
        source='get_day_of_week_display',
        read_only=True
    )

    class Meta:
        model = StaffAvailability
        fields = [
            'id', 'organization_id', 'user_id',
            'day_of_week', 'day_of_week_display', 'specific_date',
            'start_time', 'end_time', 'is_available', 'notes',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class StaffAvailabilityCreateSerializer(serializers.Serializer):

    user_id = serializers.UUIDField()
    day_of_week = serializers.ChoiceField(
        choices=StaffAvailability.DayOfWeek.choices,
        required=False
    )
    specific_date = serializers.DateField(required=False, allow_null=True)
    start_time = serializers.TimeField()
    end_time = serializers.TimeField()
    is_available = serializers.BooleanField(required=False, default=True)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs.get('day_of_week') and not attrs.get('specific_date'):
            raise serializers.ValidationError(
                'Either day_of_week or specific_date is required'
            )
        return attrs


class StaffAvailabilityUpdateSerializer(serializers.Serializer):

    day_of_week = serializers.ChoiceField(
        choices=StaffAvailability.DayOfWeek.choices,
        required=False
    )
    specific_date = serializers.DateField(required=False, allow_null=True)
    start_time = serializers.TimeField(required=False)
    end_time = serializers.TimeField(required=False)
    is_available = serializers.BooleanField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class AvailableSlotsQuerySerializer(serializers.Serializer):
    """Query parameters for slot search."""

    date = serializers.DateField()
    duration = serializers.IntegerField(min_value=1, max_value=24 * 60)
    service_id = serializers.UUIDField(required=False)
    resource_id = serializers.UUIDField(required=False)
    staff_id = serializers.UUIDField(required=False)

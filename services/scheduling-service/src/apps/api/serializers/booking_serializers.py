# services/scheduling-service/src/apps/api/serializers/booking_serializers.py
"""
Booking Serializers

Serializers for booking operations and availability checks.
"""

from rest_framework import serializers

from apps.core.models import Booking


class BookingSerializer(serializers.ModelSerializer):
    """Base booking serializer."""

    status_display = serializers.CharField(
        source='get_status_display',
        read_only=True
    )
    booking_type_display = serializers.CharField(
        source='get_booking_type_display',
        read_only=True
    )
    duration_minutes = serializers.IntegerField(read_only=True)
    is_recurring = serializers.BooleanField(read_only=True)

    class Meta:
        model = Booking
        fields = [
            'id', 'organization_id',
            'service_id', 'user_id', 'staff_id', 'resource_id', 'location_id',
            'start_time', 'end_time', 'all_day', 'duration_minutes',
            'booking_type', 'booking_type_display',
            'status', 'status_display',
            'title', 'notes', 'price', 'credits_used',
            'recurring_schedule_id', 'instance_date', 'is_recurring',
            'cancelled_at', 'cancelled_by', 'cancellation_reason',
            'created_by', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class BookingDetailSerializer(BookingSerializer):
    """Booking with staff-only fields."""

    class Meta(BookingSerializer.Meta):
        fields = BookingSerializer.Meta.fields + ['private_notes']
        read_only_fields = fields


class BookingCreateSerializer(serializers.Serializer):
    """Serializer for creating bookings."""

    service_id = serializers.UUIDField()
    user_id = serializers.UUIDField()
    staff_id = serializers.UUIDField(required=False, allow_null=True)
    resource_id = serializers.UUIDField(required=False, allow_null=True)
    location_id = serializers.UUIDField(required=False, allow_null=True)
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    all_day = serializers.BooleanField(required=False, default=False)
    booking_type = serializers.ChoiceField(
        choices=Booking.BookingType.choices,
        required=False
    )
    status = serializers.ChoiceField(
        choices=[Booking.Status.PENDING, Booking.Status.CONFIRMED],
        required=False
    )
    title = serializers.CharField(required=False, allow_blank=True, max_length=255)
    notes = serializers.CharField(required=False, allow_blank=True)
    private_notes = serializers.CharField(required=False, allow_blank=True)
    price = serializers.DecimalField(
        max_digits=10, decimal_places=2, required=False, allow_null=True
    )
    credits_used = serializers.IntegerField(required=False, min_value=0)

    def validate(self, attrs):
        if attrs['end_time'] <= attrs['start_time']:
            raise serializers.ValidationError({
                'end_time': 'End time must be after start time'
            })
        return attrs


class BookingUpdateSerializer(serializers.Serializer):
    """Partial update; only supplied fields are applied."""

    staff_id = serializers.UUIDField(required=False, allow_null=True)
    resource_id = serializers.UUIDField(required=False, allow_null=True)
    location_id = serializers.UUIDField(required=False, allow_null=True)
    start_time = serializers.DateTimeField(required=False)
    end_time = serializers.DateTimeField(required=False)
    all_day = serializers.BooleanField(required=False)
    booking_type = serializers.ChoiceField(
        choices=Booking.BookingType.choices,
        required=False
    )
    title = serializers.CharField(required=False, allow_blank=True, max_length=255)
    notes = serializers.CharField(required=False, allow_blank=True)
    private_notes = serializers.CharField(required=False, allow_blank=True)
    price = serializers.DecimalField(
        max_digits=10, decimal_places=2, required=False, allow_null=True
    )
    credits_used = serializers.IntegerField(required=False, min_value=0)


class BookingCancelSerializer(serializers.Serializer):
    """Serializer for booking cancellation."""

    reason = serializers.CharField(required=False, allow_blank=True)


class AvailabilityCheckSerializer(serializers.Serializer):
    """Input for a read-only conflict check."""

    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    service_id = serializers.UUIDField(required=False, allow_null=True)
    resource_id = serializers.UUIDField(required=False, allow_null=True)
    staff_id = serializers.UUIDField(required=False, allow_null=True)
    user_id = serializers.UUIDField(required=False, allow_null=True)
    exclude_booking_id = serializers.UUIDField(required=False, allow_null=True)

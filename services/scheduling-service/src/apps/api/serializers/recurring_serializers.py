# services/scheduling-service/src/apps/api/serializers/recurring_serializers.py
"""
Recurring Schedule Serializers
"""

from rest_framework import serializers

from apps.core.models import RecurringSchedule, RecurrenceException


class RecurrenceExceptionSerializer(serializers.ModelSerializer):

    class Meta:
        model = RecurrenceException
        fields = [
            'id', 'schedule', 'original_date_time', 'exception_type',
            'new_start_time', 'reason', 'created_by', 'created_at',
        ]
        read_only_fields = fields


class RecurringScheduleSerializer(serializers.ModelSerializer):
    """Schedule with its exceptions and RRULE rendering."""

    exceptions = RecurrenceExceptionSerializer(many=True, read_only=True)
    rrule = serializers.SerializerMethodField()

    class Meta:
        model = RecurringSchedule
        fields = [
            'id', 'organization_id', 'service_id', 'user_id', 'staff_id',
            'resource_id', 'location_id', 'title', 'description',
            'frequency', 'interval', 'by_day', 'by_month_day', 'by_month',
            'by_set_pos', 'by_year_day', 'by_week_no', 'count', 'until',
            'week_start', 'dtstart', 'dtend', 'timezone', 'start_time',
            'duration', 'exdates', 'rrule',
            'is_active', 'materialized_until', 'exceptions',
            'created_by', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_rrule(self, obj) -> str:
        service = self.context.get('recurrence_service')
        if service is None:
            return None
        return service.to_rrule_string(obj.recurrence_definition())


class RecurrenceDefinitionSerializer(serializers.Serializer):
    """Recurrence fields shared by create, update and validate."""

    frequency = serializers.ChoiceField(
        choices=RecurringSchedule.Frequency.choices,
        required=False
    )
    rrule_string = serializers.CharField(required=False, allow_blank=True)
    interval = serializers.IntegerField(required=False, min_value=1)
    by_day = serializers.ListField(child=serializers.CharField(max_length=4), required=False)
    by_month_day = serializers.ListField(child=serializers.IntegerField(), required=False)
    by_month = serializers.ListField(child=serializers.IntegerField(), required=False)
    by_set_pos = serializers.ListField(child=serializers.IntegerField(), required=False)
    by_year_day = serializers.ListField(child=serializers.IntegerField(), required=False)
    by_week_no = serializers.ListField(child=serializers.IntegerField(), required=False)
    count = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    until = serializers.DateTimeField(required=False, allow_null=True)
    week_start = serializers.ChoiceField(
        choices=RecurringSchedule.Weekday.choices,
        required=False
    )
    dtstart = serializers.DateTimeField(required=False)
    dtend = serializers.DateTimeField(required=False, allow_null=True)
    timezone = serializers.CharField(required=False, max_length=64)
    start_time = serializers.TimeField(required=False)
    duration = serializers.IntegerField(required=False, min_value=1)
    exdates = serializers.ListField(child=serializers.DateTimeField(), required=False)


class RecurringScheduleCreateSerializer(RecurrenceDefinitionSerializer):
    """Serializer for creating schedules."""

    service_id = serializers.UUIDField()
    user_id = serializers.UUIDField()
    staff_id = serializers.UUIDField(required=False, allow_null=True)
    resource_id = serializers.UUIDField(required=False, allow_null=True)
    location_id = serializers.UUIDField(required=False, allow_null=True)
    title = serializers.CharField(required=False, allow_blank=True, max_length=255)
    description = serializers.CharField(required=False, allow_blank=True)
    dtstart = serializers.DateTimeField()
    start_time = serializers.TimeField()
    duration = serializers.IntegerField(min_value=1)

    def validate(self, attrs):
        if not attrs.get('frequency') and not attrs.get('rrule_string'):
            raise serializers.ValidationError({
                'frequency': 'Either frequency or rrule_string is required'
            })
        return attrs


class RecurringScheduleUpdateSerializer(RecurrenceDefinitionSerializer):
    """Partial update of a schedule."""

    staff_id = serializers.UUIDField(required=False, allow_null=True)
    resource_id = serializers.UUIDField(required=False, allow_null=True)
    location_id = serializers.UUIDField(required=False, allow_null=True)
    title = serializers.CharField(required=False, allow_blank=True, max_length=255)
    description = serializers.CharField(required=False, allow_blank=True)
    is_active = serializers.BooleanField(required=False)


class RecurrenceValidateSerializer(RecurrenceDefinitionSerializer):
    """Definition checked by the validate endpoint."""

    def validate(self, attrs):
        if not attrs.get('frequency') and not attrs.get('rrule_string'):
            raise serializers.ValidationError({
                'frequency': 'Either frequency or rrule_string is required'
            })
        return attrs


class RecurrenceExceptionCreateSerializer(serializers.Serializer):

    original_date_time = serializers.DateTimeField()
    exception_type = serializers.ChoiceField(choices=RecurrenceException.ExceptionType.choices)
    new_start_time = serializers.DateTimeField(required=False, allow_null=True)
    reason = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if (attrs['exception_type'] == RecurrenceException.ExceptionType.RESCHEDULED
                and not attrs.get('new_start_time')):
            raise serializers.ValidationError({
                'new_start_time': 'Required for rescheduled occurrences'
            })
        return attrs


class OccurrenceWindowSerializer(serializers.Serializer):
    """Query window for occurrence listing."""

    start = serializers.DateTimeField()
    end = serializers.DateTimeField()

    def validate(self, attrs):
        if attrs['end'] < attrs['start']:
            raise serializers.ValidationError({'end': 'End must not be before start'})
        return attrs


class MaterializeSerializer(serializers.Serializer):

    horizon = serializers.DateTimeField(required=False)
    horizon_days = serializers.IntegerField(required=False, min_value=1, max_value=366)

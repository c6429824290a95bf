# services/scheduling-service/src/apps/api/views/filters.py
"""
API Filters

Django Filter classes for scheduling API.
"""

import django_filters
from django.db.models import Q

from apps.core.models import Booking, RecurringSchedule, WaitlistEntry, StaffAvailability


class BookingFilter(django_filters.FilterSet):
    """Filter for booking queries."""

    # Date filters
    date_from = django_filters.DateFilter(
        field_name='start_time',
        lookup_expr='date__gte'
    )
    date_to = django_filters.DateFilter(
        field_name='start_time',
        lookup_expr='date__lte'
    )

    # Time range
    start_after = django_filters.IsoDateTimeFilter(
        field_name='start_time',
        lookup_expr='gte'
    )
    start_before = django_filters.IsoDateTimeFilter(
        field_name='start_time',
        lookup_expr='lte'
    )

    # Status filters
    status = django_filters.ChoiceFilter(
        choices=Booking.Status.choices
    )
    status_in = django_filters.BaseInFilter(
        field_name='status'
    )
    active = django_filters.BooleanFilter(
        method='filter_active'
    )

    # Participant filters
    service_id = django_filters.UUIDFilter()
    user_id = django_filters.UUIDFilter()
    staff_id = django_filters.UUIDFilter()
    resource_id = django_filters.UUIDFilter()
    location_id = django_filters.UUIDFilter()

    # Member or staff
    user_involved = django_filters.UUIDFilter(
        method='filter_user_involved'
    )

    booking_type = django_filters.ChoiceFilter(
        choices=Booking.BookingType.choices
    )

    # Recurring schedule
    recurring_schedule_id = django_filters.UUIDFilter()
    is_recurring = django_filters.BooleanFilter(
        method='filter_is_recurring'
    )

    class Meta:
        model = Booking
        fields = [
            'status', 'booking_type', 'service_id', 'user_id', 'staff_id',
            'resource_id', 'location_id', 'recurring_schedule_id',
        ]

    def filter_active(self, queryset, name, value):
        """Filter for non-terminal bookings."""
        if value:
            return queryset.exclude(status__in=Booking.get_terminal_statuses())
        return queryset.filter(status__in=Booking.get_terminal_statuses())

    def filter_user_involved(self, queryset, name, value):
        return queryset.filter(Q(user_id=value) | Q(staff_id=value))

    def filter_is_recurring(self, queryset, name, value):
        """Filter for recurring vs one-time bookings."""
        return queryset.filter(recurring_schedule_id__isnull=not value)


class RecurringScheduleFilter(django_filters.FilterSet):
    """Filter for recurring schedule queries."""

    frequency = django_filters.ChoiceFilter(
        choices=RecurringSchedule.Frequency.choices
    )
    service_id = django_filters.UUIDFilter()
    user_id = django_filters.UUIDFilter()
    staff_id = django_filters.UUIDFilter()
    resource_id = django_filters.UUIDFilter()
    is_active = django_filters.BooleanFilter()

    class Meta:
        model = RecurringSchedule
        fields = ['frequency', 'service_id', 'user_id', 'staff_id', 'resource_id', 'is_active']


class WaitlistFilter(django_filters.FilterSet):
    """Filter for waitlist queries."""

    service_id = django_filters.UUIDFilter()
    user_id = django_filters.UUIDFilter()
    is_active = django_filters.BooleanFilter()
    notified = django_filters.BooleanFilter(
        field_name='notified_at',
        lookup_expr='isnull',
        exclude=True
    )

    class Meta:
        model = WaitlistEntry
        fields = ['service_id', 'user_id', 'is_active']


class StaffAvailabilityFilter(django_filters.FilterSet):

    user_id = django_filters.UUIDFilter()
    day_of_week = django_filters.ChoiceFilter(
        choices=StaffAvailability.DayOfWeek.choices
    )
    specific_date = django_filters.DateFilter()
    is_available = django_filters.BooleanFilter()
    weekly = django_filters.BooleanFilter(
        field_name='specific_date',
        lookup_expr='isnull'
    )

    class Meta:
        model = StaffAvailability
        fields = ['user_id', 'day_of_week', 'specific_date', 'is_available']

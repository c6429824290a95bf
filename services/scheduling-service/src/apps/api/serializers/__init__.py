# services/scheduling-service/src/apps/api/serializers/__init__.py
"""
Scheduling API Serializers
"""

from .booking_serializers import (
    BookingSerializer,
    BookingDetailSerializer,
    BookingCreateSerializer,
    BookingUpdateSerializer,
    BookingCancelSerializer,
    AvailabilityCheckSerializer,
)

from .recurring_serializers import (
    RecurringScheduleSerializer,
    RecurringScheduleCreateSerializer,
    RecurringScheduleUpdateSerializer,
    RecurrenceValidateSerializer,
    RecurrenceExceptionSerializer,
    RecurrenceExceptionCreateSerializer,
    OccurrenceWindowSerializer,
    MaterializeSerializer,
)

from .availability_serializers import (
    StaffAvailabilitySerializer,
    StaffAvailabilityCreateSerializer,
    StaffAvailabilityUpdateSerializer,
    AvailableSlotsQuerySerializer,
)

from .waitlist_serializers import (
    WaitlistEntrySerializer,
    WaitlistJoinSerializer,
    WaitlistUpdateSerializer,
    WaitlistReorderSerializer,
    WaitlistNotifySerializer,
    WaitlistPositionSerializer,
)

from .calendar_serializers import (
    CalendarQuerySerializer,
)


__all__ = [
    # Booking
    'BookingSerializer',
    'BookingDetailSerializer',
    'BookingCreateSerializer',
    'BookingUpdateSerializer',
    'BookingCancelSerializer',
    'AvailabilityCheckSerializer',

    # Recurring
    'RecurringScheduleSerializer',
    'RecurringScheduleCreateSerializer',
    'RecurringScheduleUpdateSerializer',
    'RecurrenceValidateSerializer',
    'RecurrenceExceptionSerializer',
    'RecurrenceExceptionCreateSerializer',
    'OccurrenceWindowSerializer',
    'MaterializeSerializer',

    # Availability
    'StaffAvailabilitySerializer',
    'StaffAvailabilityCreateSerializer',
    'StaffAvailabilityUpdateSerializer',
    'AvailableSlotsQuerySerializer',

    # Waitlist
    'WaitlistEntrySerializer',
    'WaitlistJoinSerializer',
    'WaitlistUpdateSerializer',
    'WaitlistReorderSerializer',
    'WaitlistNotifySerializer',
    'WaitlistPositionSerializer',

    # Calendar
    'CalendarQuerySerializer',
]

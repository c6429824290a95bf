# services/scheduling-service/src/apps/api/views/__init__.py
"""
Scheduling API Views
"""

from .booking_views import (
    BookingViewSet,
    AvailabilityCheckView,
)

from .recurring_views import (
    RecurringScheduleViewSet,
)

from .availability_views import (
    StaffAvailabilityViewSet,
    AvailableSlotsView,
)

from .waitlist_views import (
    WaitlistEntryViewSet,
)

from .calendar_views import (
    CalendarView,
    CalendarDayView,
    CalendarWeekView,
    StaffCalendarView,
    MemberCalendarView,
    ResourceCalendarView,
    ServiceScheduleView,
    AvailabilityOverviewView,
)


__all__ = [
    # Booking
    'BookingViewSet',
    'AvailabilityCheckView',

    # Recurring
    'RecurringScheduleViewSet',

    # Availability
    'StaffAvailabilityViewSet',
    'AvailableSlotsView',

    # Waitlist
    'WaitlistEntryViewSet',

    # Calendar
    'CalendarView',
    'CalendarDayView',
    'CalendarWeekView',
    'StaffCalendarView',
    'MemberCalendarView',
    'ResourceCalendarView',
    'ServiceScheduleView',
    'AvailabilityOverviewView',
]

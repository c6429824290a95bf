# services/scheduling-service/src/apps/api/urls.py
"""
Scheduling API URL Configuration

Defines all API routes for the scheduling service.
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    # Booking
    BookingViewSet,
    AvailabilityCheckView,
    # Recurring
    RecurringScheduleViewSet,
    # Availability
    StaffAvailabilityViewSet,
    AvailableSlotsView,
    # Waitlist
    WaitlistEntryViewSet,
    # Calendar
    CalendarView,
    CalendarDayView,
    CalendarWeekView,
    StaffCalendarView,
    MemberCalendarView,
    ResourceCalendarView,
    ServiceScheduleView,
    AvailabilityOverviewView,
)

app_name = 'api'

# Create router and register viewsets
router = DefaultRouter()
router.register(r'bookings', BookingViewSet, basename='booking')
router.register(r'recurring-schedules', RecurringScheduleViewSet, basename='recurring-schedule')
router.register(r'waitlist', WaitlistEntryViewSet, basename='waitlist')
router.register(r'staff-availability', StaffAvailabilityViewSet, basename='staff-availability')

urlpatterns = [
    # Availability
    path('availability/check/', AvailabilityCheckView.as_view(), name='availability-check'),
    path('availability/slots/', AvailableSlotsView.as_view(), name='available-slots'),

    # Calendar
    path('calendar/', CalendarView.as_view(), name='calendar'),
    path('calendar/day/', CalendarDayView.as_view(), name='calendar-day'),
    path('calendar/week/', CalendarWeekView.as_view(), name='calendar-week'),
    path('calendar/staff/<uuid:participant_id>/', StaffCalendarView.as_view(), name='calendar-staff'),
    path('calendar/member/<uuid:participant_id>/', MemberCalendarView.as_view(), name='calendar-member'),
    path('calendar/resource/<uuid:participant_id>/', ResourceCalendarView.as_view(), name='calendar-resource'),
    path('calendar/service/<uuid:participant_id>/', ServiceScheduleView.as_view(), name='calendar-service'),
    path('calendar/availability/', AvailabilityOverviewView.as_view(), name='calendar-availability'),

    # Router URLs
    path('', include(router.urls)),
]

# services/scheduling-service/src/apps/api/views/calendar_views.py
"""
Calendar API Views

Read-only calendar projections of bookings.
"""

import logging
from datetime import timedelta

from django.utils import timezone
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.services import CalendarService, CalendarFilter
from apps.api.serializers import CalendarQuerySerializer
from shared.common.mixins import OrganizationFilterMixin

logger = logging.getLogger(__name__)


class CalendarBaseView(OrganizationFilterMixin, APIView):
    """Shared query parsing for calendar views."""

    default_days = 7

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calendar_service = CalendarService()

    def get_query(self):
        serializer = CalendarQuerySerializer(data=self.request.query_params)
        serializer.is_valid(raise_exception=True)
        return serializer.validated_data

    def get_filter(self, query) -> CalendarFilter:
        start = query.get('start') or timezone.now()
        end = query.get('end') or start + timedelta(days=self.default_days)

        return CalendarFilter(
            start=start,
            end=end,
            staff_id=query.get('staff_id'),
            member_id=query.get('member_id'),
            service_id=query.get('service_id'),
            resource_id=query.get('resource_id'),
            location_id=query.get('location_id'),
            status=query.get('status'),
            include_cancelled=query.get('include_cancelled', False),
        )

    def require_date(self, query):
        if not query.get('date'):
            raise ValidationError({'date': 'This query parameter is required'})
        return query['date']

    def render_events(self, events):
        return Response({
            'count': len(events),
            'events': [event.to_dict() for event in events],
        })


class CalendarView(CalendarBaseView):
    """Events in a window, filtered by participant."""

    def get(self, request):
        events = self.calendar_service.get_calendar_events(
            self.get_organization_id(),
            self.get_filter(self.get_query()),
        )
        return self.render_events(events)


class CalendarDayView(CalendarBaseView):

    def get(self, request):
        query = self.get_query()
        day = self.require_date(query)
        events = self.calendar_service.get_day_view(
            self.get_organization_id(), day, self.get_filter(query)
        )

        response = self.render_events(events)
        response.data['date'] = day.isoformat()
        return response


class CalendarWeekView(CalendarBaseView):
    """Seven days starting at ``date``, grouped by day."""

    def get(self, request):
        query = self.get_query()
        week_start = self.require_date(query)
        days = self.calendar_service.get_week_view(
            self.get_organization_id(), week_start, self.get_filter(query)
        )

        return Response({
            'week_start': week_start.isoformat(),
            'days': {
                day: [event.to_dict() for event in events]
                for day, events in days.items()
            },
        })


class ParticipantCalendarView(CalendarBaseView):
    """Calendar of one staff member, member, resource or service."""

    participant = None

    def get(self, request, participant_id):
        query = self.get_query()
        window = self.get_filter(query)
        organization_id = self.get_organization_id()

        lookup = {
            'staff': self.calendar_service.get_staff_calendar,
            'member': self.calendar_service.get_member_calendar,
            'resource': self.calendar_service.get_resource_calendar,
            'service': self.calendar_service.get_service_schedule,
        }[self.participant]

        events = lookup(organization_id, participant_id, window.start, window.end)
        return self.render_events(events)


class StaffCalendarView(ParticipantCalendarView):
    participant = 'staff'


class MemberCalendarView(ParticipantCalendarView):
    participant = 'member'


class ResourceCalendarView(ParticipantCalendarView):
    participant = 'resource'


class ServiceScheduleView(ParticipantCalendarView):
    participant = 'service'


class AvailabilityOverviewView(CalendarBaseView):
    """Availability windows and booked intervals per staff member."""

    def get(self, request):
        query = self.get_query()
        day = self.require_date(query)

        overview = self.calendar_service.get_availability_overview(
            self.get_organization_id(), day, staff_id=query.get('staff_id')
        )

        return Response({'date': day.isoformat(), 'staff': overview})

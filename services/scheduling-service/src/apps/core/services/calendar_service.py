# services/scheduling-service/src/apps/core/services/calendar_service.py
"""
Calendar Service

Read-only projection of bookings into calendar events.
"""

import uuid
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, date, time, timedelta
from typing import Optional, Dict, Any, List

from django.utils import timezone

from apps.core.models import Booking, Member, Service, Resource, StaffAvailability

logger = logging.getLogger(__name__)


@dataclass
class CalendarFilter:
    """Optional filters passed through to the booking query."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    staff_id: Optional[uuid.UUID] = None
    member_id: Optional[uuid.UUID] = None
    service_id: Optional[uuid.UUID] = None
    resource_id: Optional[uuid.UUID] = None
    location_id: Optional[uuid.UUID] = None
    status: Optional[str] = None
    include_cancelled: bool = False


@dataclass
class CalendarEvent:
    """Uniform calendar view of one booking."""
    id: uuid.UUID
    title: str
    start: datetime
    end: datetime
    status: str
    type: str
    member_id: uuid.UUID
    member_name: str
    service_id: uuid.UUID
    service_name: Optional[str] = None
    staff_id: Optional[uuid.UUID] = None
    staff_name: Optional[str] = None
    resource_id: Optional[uuid.UUID] = None
    resource_name: Optional[str] = None
    location_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    is_recurring: bool = False
    recurring_schedule_id: Optional[uuid.UUID] = None
    all_day: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, uuid.UUID):
                data[key] = str(value)
            elif isinstance(value, datetime):
                data[key] = value.isoformat()
        return data


class CalendarService:
    """
    Service for calendar views.

    Handles:
    - Event projection with participant names
    - Day, week and per-participant calendars
    - Availability overview
    """

    # ==========================================================================
    # Projection
    # ==========================================================================

    def project(self, bookings: List[Booking]) -> List[CalendarEvent]:
        """Turn bookings into events, joining directory names in bulk."""
        member_ids = set()
        for booking in bookings:
            member_ids.add(booking.user_id)
            if booking.staff_id:
                member_ids.add(booking.staff_id)

        members = Member.objects.in_bulk(list(member_ids))
        services = Service.objects.in_bulk(list({b.service_id for b in bookings}))
        resources = Resource.objects.in_bulk(
            list({b.resource_id for b in bookings if b.resource_id})
        )

        return [
            self._to_event(booking, members, services, resources)
            for booking in bookings
        ]

    def _to_event(
        self,
        booking: Booking,
        members: Dict[uuid.UUID, Member],
        services: Dict[uuid.UUID, Service],
        resources: Dict[uuid.UUID, Resource]
    ) -> CalendarEvent:
        member = members.get(booking.user_id)
        staff = members.get(booking.staff_id) if booking.staff_id else None
        service = services.get(booking.service_id)
        resource = resources.get(booking.resource_id) if booking.resource_id else None
        service_name = service.name if service else None

        return CalendarEvent(
            id=booking.id,
            title=booking.title or service_name or 'Booking',
            start=booking.start_time,
            end=booking.end_time,
            status=booking.status,
            type=booking.booking_type,
            member_id=booking.user_id,
            member_name=member.full_name if member else 'Unknown Member',
            service_id=booking.service_id,
            service_name=service_name,
            staff_id=booking.staff_id,
            staff_name=staff.full_name if staff else None,
            resource_id=booking.resource_id,
            resource_name=resource.name if resource else None,
            location_id=booking.location_id,
            notes=booking.notes,
            is_recurring=booking.recurring_schedule_id is not None,
            recurring_schedule_id=booking.recurring_schedule_id,
            all_day=booking.all_day,
        )

    # ==========================================================================
    # Calendar Views
    # ==========================================================================

    def get_calendar_events(
        self,
        organization_id: uuid.UUID,
        filters: CalendarFilter = None
    ) -> List[CalendarEvent]:
        """Events for bookings overlapping the filter window."""
        filters = filters or CalendarFilter()
        queryset = Booking.objects.filter(organization_id=organization_id)

        if filters.start:
            queryset = queryset.filter(end_time__gt=filters.start)

        if filters.end:
            queryset = queryset.filter(start_time__lt=filters.end)

        if filters.staff_id:
            queryset = queryset.filter(staff_id=filters.staff_id)

        if filters.member_id:
            queryset = queryset.filter(user_id=filters.member_id)

        if filters.service_id:
            queryset = queryset.filter(service_id=filters.service_id)

        if filters.resource_id:
            queryset = queryset.filter(resource_id=filters.resource_id)

        if filters.location_id:
            queryset = queryset.filter(location_id=filters.location_id)

        if filters.status:
            queryset = queryset.filter(status=filters.status)
        elif not filters.include_cancelled:
            queryset = queryset.exclude(status__in=Booking.get_cancelled_statuses())

        return self.project(list(queryset.order_by('start_time')))

    def get_day_view(
        self,
        organization_id: uuid.UUID,
        day: date,
        filters: CalendarFilter = None
    ) -> List[CalendarEvent]:
        filters = filters or CalendarFilter()
        filters.start, filters.end = self._day_bounds(day)
        return self.get_calendar_events(organization_id, filters)

    def get_week_view(
        self,
        organization_id: uuid.UUID,
        week_start: date,
        filters: CalendarFilter = None
    ) -> Dict[str, List[CalendarEvent]]:
        """Seven days of events keyed by ISO date, empty days included."""
        filters = filters or CalendarFilter()
        filters.start = self._day_bounds(week_start)[0]
        filters.end = self._day_bounds(week_start + timedelta(days=6))[1]

        days = {
            (week_start + timedelta(days=offset)).isoformat(): []
            for offset in range(7)
        }
        for event in self.get_calendar_events(organization_id, filters):
            key = timezone.localtime(event.start).date().isoformat()
            if key in days:
                days[key].append(event)

        return days

    def get_staff_calendar(
        self,
        organization_id: uuid.UUID,
        staff_id: uuid.UUID,
        start: datetime,
        end: datetime
    ) -> List[CalendarEvent]:
        return self.get_calendar_events(
            organization_id, CalendarFilter(start=start, end=end, staff_id=staff_id)
        )

    def get_member_calendar(
        self,
        organization_id: uuid.UUID,
        member_id: uuid.UUID,
        start: datetime,
        end: datetime
    ) -> List[CalendarEvent]:
        return self.get_calendar_events(
            organization_id, CalendarFilter(start=start, end=end, member_id=member_id)
        )

    def get_resource_calendar(
        self,
        organization_id: uuid.UUID,
        resource_id: uuid.UUID,
        start: datetime,
        end: datetime
    ) -> List[CalendarEvent]:
        return self.get_calendar_events(
            organization_id, CalendarFilter(start=start, end=end, resource_id=resource_id)
        )

    def get_service_schedule(
        self,
        organization_id: uuid.UUID,
        service_id: uuid.UUID,
        start: datetime,
        end: datetime
    ) -> List[CalendarEvent]:
        return self.get_calendar_events(
            organization_id, CalendarFilter(start=start, end=end, service_id=service_id)
        )

    def get_availability_overview(
        self,
        organization_id: uuid.UUID,
        day: date,
        staff_id: uuid.UUID = None
    ) -> List[Dict[str, Any]]:
        """Per staff member: availability windows and booked intervals for a day."""
        staff_ids = set(
            StaffAvailability.objects.filter(organization_id=organization_id)
            .values_list('user_id', flat=True)
        )
        if staff_id:
            staff_ids = {staff_id}

        day_start, day_end = self._day_bounds(day)
        staff_members = Member.objects.in_bulk(list(staff_ids))
        overview = []

        for member_id in sorted(staff_ids, key=str):
            windows = StaffAvailability.get_for_date(organization_id, member_id, day)
            booked = Booking.get_overlapping(organization_id, day_start, day_end).filter(
                staff_id=member_id
            ).order_by('start_time')
            member = staff_members.get(member_id)

            overview.append({
                'staff_id': str(member_id),
                'staff_name': member.full_name if member else None,
                'windows': [
                    {
                        'start_time': w.start_time.strftime('%H:%M'),
                        'end_time': w.end_time.strftime('%H:%M'),
                        'is_available': w.is_available,
                    }
                    for w in windows.order_by('start_time')
                ],
                'booked': [
                    {
                        'booking_id': str(b.id),
                        'start_time': b.start_time.isoformat(),
                        'end_time': b.end_time.isoformat(),
                    }
                    for b in booked
                ],
            })

        return overview

    def _day_bounds(self, day: date):
        return (
            timezone.make_aware(datetime.combine(day, time.min)),
            timezone.make_aware(datetime.combine(day + timedelta(days=1), time.min)),
        )

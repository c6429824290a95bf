# services/scheduling-service/src/tests/conftest.py
"""
Pytest Configuration and Fixtures

Provides common fixtures for scheduling service tests.
"""

import uuid
from datetime import datetime, time, timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from apps.core.events import event_publisher


def _at(day, hour, minute=0):
    """Aware datetime for a wall-clock time on ``day`` in the current timezone."""
    return timezone.make_aware(datetime.combine(day, time(hour, minute)))


@pytest.fixture(autouse=True)
def clear_published_events():
    """Start every test with an empty in-memory event log."""
    event_publisher.clear()
    yield
    event_publisher.clear()


@pytest.fixture
def api_client():
    """Provide API client for testing."""
    return APIClient()


@pytest.fixture
def organization_id():
    """Provide a test organization ID."""
    return uuid.uuid4()


@pytest.fixture
def auth_headers(organization_id):
    """Provide tenant headers for API requests."""
    return {
        'HTTP_X_ORGANIZATION_ID': str(organization_id),
    }


@pytest.fixture
def at():
    """Build aware datetimes from a date and a wall-clock time."""
    return _at


@pytest.fixture
def future_day():
    """A date far enough ahead that bookings on it are never in the past."""
    return (timezone.now() + timedelta(days=10)).date()


# =============================================================================
# DIRECTORY FIXTURES
# =============================================================================

@pytest.fixture
def create_member(organization_id):
    """Factory fixture for directory members."""
    from apps.core.models import Member

    def _create_member(**kwargs):
        defaults = {
            'organization_id': organization_id,
            'first_name': 'Alex',
            'last_name': f'Member {uuid.uuid4().hex[:6]}',
            'email': f'{uuid.uuid4().hex[:8]}@example.com',
            'role': Member.Role.MEMBER,
        }
        defaults.update(kwargs)
        return Member.objects.create(**defaults)

    return _create_member


@pytest.fixture
def member(create_member):
    return create_member(first_name='Jane', last_name='Doe')


@pytest.fixture
def staff(create_member):
    from apps.core.models import Member
    return create_member(first_name='Sam', last_name='Coach', role=Member.Role.INSTRUCTOR)


@pytest.fixture
def create_service(organization_id):
    """Factory fixture for services."""
    from apps.core.models import Service

    def _create_service(**kwargs):
        defaults = {
            'organization_id': organization_id,
            'name': 'Personal Training',
            'service_type': Service.ServiceType.APPOINTMENT,
            'duration': 60,
            'price': Decimal('40.00'),
        }
        defaults.update(kwargs)
        return Service.objects.create(**defaults)

    return _create_service


@pytest.fixture
def service(create_service):
    """An appointment service without a capacity limit."""
    return create_service()


@pytest.fixture
def class_service(create_service):
    """A class that holds a single participant."""
    from apps.core.models import Service
    return create_service(
        name='Yoga Class',
        service_type=Service.ServiceType.CLASS,
        capacity=1,
    )


@pytest.fixture
def resource(organization_id):
    from apps.core.models import Resource
    return Resource.objects.create(
        organization_id=organization_id,
        name='Studio A',
        resource_type=Resource.ResourceType.ROOM,
    )


@pytest.fixture
def location(organization_id):
    from apps.core.models import Location
    return Location.objects.create(organization_id=organization_id, name='Downtown')


# =============================================================================
# SCHEDULING FIXTURES
# =============================================================================

@pytest.fixture
def create_booking(organization_id, service, member, future_day):
    """Factory fixture for bookings written directly to the database."""
    from apps.core.models import Booking

    def _create_booking(**kwargs):
        start = kwargs.pop('start_time', _at(future_day, 10))
        defaults = {
            'organization_id': organization_id,
            'service_id': service.id,
            'user_id': member.id,
            'start_time': start,
            'end_time': kwargs.pop('end_time', start + timedelta(hours=1)),
            'status': Booking.Status.CONFIRMED,
            'booking_type': Booking.BookingType.APPOINTMENT,
        }
        defaults.update(kwargs)
        return Booking.objects.create(**defaults)

    return _create_booking


@pytest.fixture
def create_availability(organization_id, staff):
    """Factory fixture for staff availability windows."""
    from apps.core.models import StaffAvailability

    def _create_availability(day, start_time=time(8, 0), end_time=time(18, 0), **kwargs):
        defaults = {
            'organization_id': organization_id,
            'user_id': staff.id,
            'day_of_week': StaffAvailability.day_of_week_for(day),
            'start_time': start_time,
            'end_time': end_time,
        }
        defaults.update(kwargs)
        return StaffAvailability.objects.create(**defaults)

    return _create_availability


@pytest.fixture
def create_waitlist_entry(organization_id, class_service):
    """Factory fixture appending entries to the end of a queue."""
    from apps.core.models import WaitlistEntry

    def _create_waitlist_entry(user_id, service_id=None, **kwargs):
        service_id = service_id or class_service.id
        defaults = {
            'organization_id': organization_id,
            'service_id': service_id,
            'user_id': user_id,
            'position': WaitlistEntry.max_position(service_id) + 1,
        }
        defaults.update(kwargs)
        return WaitlistEntry.objects.create(**defaults)

    return _create_waitlist_entry


@pytest.fixture
def create_schedule(organization_id, service, member, future_day):
    """Factory fixture for recurring schedules."""
    from apps.core.models import RecurringSchedule

    def _create_schedule(**kwargs):
        defaults = {
            'organization_id': organization_id,
            'service_id': service.id,
            'user_id': member.id,
            'frequency': RecurringSchedule.Frequency.DAILY,
            'interval': 1,
            'dtstart': _at(future_day, 9),
            'start_time': time(9, 0),
            'duration': 60,
            'timezone': 'UTC',
        }
        defaults.update(kwargs)
        return RecurringSchedule.objects.create(**defaults)

    return _create_schedule

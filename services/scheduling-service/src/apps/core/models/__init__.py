# services/scheduling-service/src/apps/core/models/__init__.py
"""
Scheduling Service Models
"""

from .booking import Booking
from .recurring_schedule import RecurringSchedule, RecurrenceException
from .staff_availability import StaffAvailability
from .waitlist import WaitlistEntry
from .directory import Location, Member, Service, Resource

__all__ = [
    'Booking',
    'RecurringSchedule',
    'RecurrenceException',
    'StaffAvailability',
    'WaitlistEntry',
    'Location',
    'Member',
    'Service',
    'Resource',
]

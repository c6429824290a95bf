# services/scheduling-service/src/apps/core/services/__init__.py
"""
Scheduling Service Business Logic
"""

from .conflict_service import (
    ConflictService,
    ConflictDetail,
    ConflictCheckResult,
    intervals_overlap,
)
from .recurrence_service import RecurrenceService, MaterializationResult
from .availability_service import AvailabilityService, TimeSlot
from .waitlist_service import WaitlistService
from .booking_service import BookingService, BookingFilter
from .calendar_service import CalendarService, CalendarEvent, CalendarFilter


# Custom Exceptions
class SchedulingError(Exception):
    """Base exception for scheduling errors."""

    http_status = 400
    error_code = 'SCHEDULING_ERROR'


class EntityNotFoundError(SchedulingError):
    """Booking, schedule, waitlist entry or referenced record not found."""

    http_status = 404
    error_code = 'NOT_FOUND'


class SchedulingValidationError(SchedulingError):
    """Request failed validation."""

    http_status = 400
    error_code = 'VALIDATION_ERROR'


class BookingStateError(SchedulingValidationError):
    """Invalid booking state transition."""

    error_code = 'INVALID_STATE'


class RecurrenceRuleError(SchedulingValidationError):
    """Malformed recurrence definition."""

    error_code = 'INVALID_RECURRENCE'

    def __init__(self, message: str, errors: list = None):
        super().__init__(message)
        self.errors = errors or [message]


class WaitlistError(SchedulingValidationError):
    """Waitlist operation rejected."""

    error_code = 'WAITLIST_ERROR'


class BookingConflictError(SchedulingError):
    """Candidate booking conflicts with existing state."""

    http_status = 409
    error_code = 'BOOKING_CONFLICT'

    def __init__(self, conflicts: list, message: str = None):
        self.conflicts = list(conflicts)
        if message is None:
            message = 'Conflicts detected: ' + '; '.join(c.message for c in self.conflicts)
        super().__init__(message)


class SchedulingForbiddenError(SchedulingError):
    """Caller is not allowed to perform the operation."""

    http_status = 403
    error_code = 'FORBIDDEN'


__all__ = [
    # Services
    'ConflictService',
    'RecurrenceService',
    'AvailabilityService',
    'WaitlistService',
    'BookingService',
    'CalendarService',

    # Value objects
    'ConflictDetail',
    'ConflictCheckResult',
    'MaterializationResult',
    'TimeSlot',
    'BookingFilter',
    'CalendarEvent',
    'CalendarFilter',
    'intervals_overlap',

    # Exceptions
    'SchedulingError',
    'EntityNotFoundError',
    'SchedulingValidationError',
    'BookingStateError',
    'RecurrenceRuleError',
    'WaitlistError',
    'BookingConflictError',
    'SchedulingForbiddenError',
]

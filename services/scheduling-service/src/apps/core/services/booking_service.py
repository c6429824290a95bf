# services/scheduling-service/src/apps/core/services/booking_service.py
"""
Booking Service

Booking lifecycle: create, update, cancel and status transitions, with
conflict detection and waitlist side effects.
"""

import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, date, time
from typing import Optional, Dict, Any, List, Tuple

from django.db import transaction
from django.utils import timezone

from apps.core.models import Booking, Member, Service, Resource, Location
from apps.core.events import (
    publish_booking_created,
    publish_booking_updated,
    publish_booking_cancelled,
)
from .conflict_service import ConflictService, ConflictCheckResult
from .waitlist_service import WaitlistService

logger = logging.getLogger(__name__)


@dataclass
class BookingFilter:
    """Optional filters for booking queries."""
    user_id: Optional[uuid.UUID] = None
    staff_id: Optional[uuid.UUID] = None
    resource_id: Optional[uuid.UUID] = None
    service_id: Optional[uuid.UUID] = None
    location_id: Optional[uuid.UUID] = None
    recurring_schedule_id: Optional[uuid.UUID] = None
    status: Optional[str] = None
    booking_type: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    exclude_terminal: bool = False


class BookingService:
    """
    Service for managing bookings.

    Handles:
    - Booking CRUD
    - Conflict checks inside the writing transaction
    - Status transitions
    - Waitlist promotion on cancellation
    """

    UPDATABLE_FIELDS = [
        'start_time', 'end_time', 'all_day', 'staff_id', 'resource_id',
        'location_id', 'booking_type', 'title', 'notes', 'private_notes',
        'price', 'credits_used',
    ]

    def __init__(
        self,
        conflict_service: ConflictService = None,
        waitlist_service: WaitlistService = None
    ):
        self.conflict_service = conflict_service or ConflictService()
        self.waitlist_service = waitlist_service or WaitlistService(self.conflict_service)

    # ==========================================================================
    # Booking CRUD
    # ==========================================================================

    @transaction.atomic
    def create_booking(
        self,
        organization_id: uuid.UUID,
        service_id: uuid.UUID,
        user_id: uuid.UUID,
        start_time: datetime,
        end_time: datetime,
        staff_id: uuid.UUID = None,
        resource_id: uuid.UUID = None,
        location_id: uuid.UUID = None,
        status: str = None,
        booking_type: str = None,
        created_by: uuid.UUID = None,
        **kwargs
    ) -> Booking:
        """Create a booking with full validation."""
        from . import BookingConflictError

        # 1. Referential integrity
        service = self._validate_references(
            organization_id,
            service_id=service_id,
            user_id=user_id,
            staff_id=staff_id,
            resource_id=resource_id,
            location_id=location_id,
        )

        # 2. Time validation
        self._validate_times(start_time, end_time)

        # 3. Serialize concurrent writers for the same participants
        self._lock_participants(service_id, user_id, staff_id, resource_id)

        # 4. Conflict check against current state
        result = self.conflict_service.check_conflicts(
            organization_id,
            start_time,
            end_time,
            service_id=service_id,
            resource_id=resource_id,
            staff_id=staff_id,
            user_id=user_id,
        )
        if result.has_conflict:
            raise BookingConflictError(result.conflicts)

        # 5. Create booking
        if kwargs.get('price') is None and service.price is not None:
            kwargs['price'] = service.price

        booking = Booking.objects.create(
            organization_id=organization_id,
            service_id=service_id,
            user_id=user_id,
            staff_id=staff_id,
            resource_id=resource_id,
            location_id=location_id,
            start_time=start_time,
            end_time=end_time,
            status=status or Booking.Status.CONFIRMED,
            booking_type=booking_type or self._default_booking_type(service),
            created_by=created_by,
            **kwargs
        )

        logger.info(
            f"Created booking {booking.id} for member {user_id} at "
            f"{start_time.strftime('%Y-%m-%d %H:%M')}"
        )

        # 6. Capacity is informational only
        if service.is_capacity_limited:
            is_full = self.waitlist_service.process_waitlist_after_booking(
                organization_id, service_id, start_time, end_time
            )
            if is_full:
                logger.info(f"Service {service_id} is now full for {start_time.isoformat()}")

        publish_booking_created(booking)

        return booking

    def get_booking(
        self,
        booking_id: uuid.UUID,
        organization_id: uuid.UUID = None,
        for_update: bool = False
    ) -> Booking:
        """Get a booking by ID, scoped to an organization when given."""
        from . import EntityNotFoundError

        queryset = Booking.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        if organization_id:
            queryset = queryset.filter(organization_id=organization_id)

        try:
            return queryset.get(id=booking_id)
        except Booking.DoesNotExist:
            raise EntityNotFoundError(f"Booking {booking_id} not found")

    def list_bookings(
        self,
        organization_id: uuid.UUID,
        filters: BookingFilter = None
    ) -> List[Booking]:
        """List bookings with filters, ordered by start time."""
        filters = filters or BookingFilter()
        queryset = Booking.objects.filter(organization_id=organization_id)

        for name in (
            'user_id', 'staff_id', 'resource_id', 'service_id',
            'location_id', 'recurring_schedule_id', 'status', 'booking_type',
        ):
            value = getattr(filters, name)
            if value:
                queryset = queryset.filter(**{name: value})

        if filters.start_date:
            queryset = queryset.filter(start_time__gte=self._day_start(filters.start_date))

        if filters.end_date:
            queryset = queryset.filter(start_time__lte=self._day_end(filters.end_date))

        if filters.exclude_terminal and not filters.status:
            queryset = queryset.exclude(status__in=Booking.get_terminal_statuses())

        return list(queryset.order_by('start_time'))

    def get_user_bookings(
        self,
        organization_id: uuid.UUID,
        user_id: uuid.UUID,
        filters: BookingFilter = None
    ) -> List[Booking]:
        filters = filters or BookingFilter()
        filters.user_id = user_id
        return self.list_bookings(organization_id, filters)

    def get_service_bookings(
        self,
        organization_id: uuid.UUID,
        service_id: uuid.UUID,
        filters: BookingFilter = None
    ) -> List[Booking]:
        filters = filters or BookingFilter()
        filters.service_id = service_id
        return self.list_bookings(organization_id, filters)

    def get_upcoming_bookings(
        self,
        organization_id: uuid.UUID,
        user_id: uuid.UUID = None,
        limit: int = 10
    ) -> List[Booking]:
        return list(Booking.get_upcoming(organization_id, user_id=user_id, limit=limit))

    @transaction.atomic
    def update_booking(
        self,
        booking_id: uuid.UUID,
        organization_id: uuid.UUID,
        **kwargs
    ) -> Booking:
        """
        Apply only the supplied fields.

        A change of time window, staff or resource re-runs the conflict
        check with the booking itself excluded.
        """
        from . import BookingStateError, BookingConflictError

        booking = self.get_booking(booking_id, organization_id, for_update=True)

        if booking.is_terminal:
            raise BookingStateError(
                f"Cannot update booking in {booking.status} status"
            )

        changes = {
            key: value for key, value in kwargs.items()
            if key in self.UPDATABLE_FIELDS
        }

        self._validate_references(
            organization_id,
            staff_id=changes.get('staff_id'),
            resource_id=changes.get('resource_id'),
            location_id=changes.get('location_id'),
        )

        new_start = changes.get('start_time', booking.start_time)
        new_end = changes.get('end_time', booking.end_time)
        new_staff = changes.get('staff_id', booking.staff_id)
        new_resource = changes.get('resource_id', booking.resource_id)

        if (new_start != booking.start_time or
                new_end != booking.end_time or
                new_staff != booking.staff_id or
                new_resource != booking.resource_id):

            # Only a new start time has to lie in the future.
            self._validate_times(
                new_start, new_end, allow_past=new_start == booking.start_time
            )
            self._lock_participants(booking.service_id, booking.user_id, new_staff, new_resource)

            result = self.conflict_service.check_conflicts(
                booking.organization_id,
                new_start,
                new_end,
                service_id=booking.service_id,
                resource_id=new_resource,
                staff_id=new_staff,
                user_id=booking.user_id,
                exclude_booking_id=booking.id,
            )
            if result.has_conflict:
                raise BookingConflictError(result.conflicts)

        for key, value in changes.items():
            setattr(booking, key, value)
        booking.save()

        logger.info(f"Updated booking {booking.id}: {', '.join(changes) or 'no changes'}")
        publish_booking_updated(booking, list(changes))

        return booking

    # ==========================================================================
    # Status Transitions
    # ==========================================================================

    @transaction.atomic
    def cancel_booking(
        self,
        booking_id: uuid.UUID,
        organization_id: uuid.UUID,
        cancelled_by: uuid.UUID = None,
        by_staff: bool = False,
        reason: str = None
    ) -> Tuple[Booking, List[Booking]]:
        """
        Cancel a booking and promote waitlisted members into the freed place.

        The actor kind is supplied by the caller. Returns the cancelled
        booking and the bookings created by waitlist promotion.
        """
        target = (
            Booking.Status.CANCELLED_BY_STAFF if by_staff
            else Booking.Status.CANCELLED_BY_MEMBER
        )

        booking = self._transition(booking_id, organization_id, target)
        booking.cancelled_at = timezone.now()
        booking.cancelled_by = cancelled_by
        booking.cancellation_reason = reason
        booking.save(update_fields=[
            'cancelled_at', 'cancelled_by', 'cancellation_reason', 'updated_at'
        ])

        logger.info(f"Cancelled booking {booking.id} ({booking.status})")
        publish_booking_cancelled(booking, cancelled_by=cancelled_by, reason=reason)

        promoted = []
        service = Service.objects.filter(id=booking.service_id).first()
        if service and service.is_capacity_limited:
            promoted = self.waitlist_service.auto_promote_after_cancellation(
                organization_id,
                booking.service_id,
                booking.start_time,
                booking.end_time,
            )

        return booking, promoted

    def confirm_booking(self, booking_id: uuid.UUID, organization_id: uuid.UUID) -> Booking:
        return self._transition(booking_id, organization_id, Booking.Status.CONFIRMED)

    def mark_attended(self, booking_id: uuid.UUID, organization_id: uuid.UUID) -> Booking:
        return self._transition(booking_id, organization_id, Booking.Status.ATTENDED)

    def mark_no_show(self, booking_id: uuid.UUID, organization_id: uuid.UUID) -> Booking:
        return self._transition(booking_id, organization_id, Booking.Status.NO_SHOW)

    @transaction.atomic
    def _transition(
        self,
        booking_id: uuid.UUID,
        organization_id: uuid.UUID,
        status: str
    ) -> Booking:
        from . import BookingStateError

        booking = self.get_booking(booking_id, organization_id, for_update=True)

        if not booking.can_transition_to(status):
            raise BookingStateError(
                f"Cannot change booking from {booking.status} to {status}"
            )

        booking.status = status
        booking.save(update_fields=['status', 'updated_at'])

        return booking

    # ==========================================================================
    # Availability
    # ==========================================================================

    def check_availability(
        self,
        organization_id: uuid.UUID,
        start_time: datetime,
        end_time: datetime,
        service_id: uuid.UUID = None,
        resource_id: uuid.UUID = None,
        staff_id: uuid.UUID = None,
        user_id: uuid.UUID = None,
        exclude_booking_id: uuid.UUID = None
    ) -> ConflictCheckResult:
        """Run the conflict check without writing anything."""
        self._validate_times(start_time, end_time, allow_past=True)

        return self.conflict_service.check_conflicts(
            organization_id,
            start_time,
            end_time,
            service_id=service_id,
            resource_id=resource_id,
            staff_id=staff_id,
            user_id=user_id,
            exclude_booking_id=exclude_booking_id,
        )

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def _validate_references(
        self,
        organization_id: uuid.UUID,
        service_id: uuid.UUID = None,
        user_id: uuid.UUID = None,
        staff_id: uuid.UUID = None,
        resource_id: uuid.UUID = None,
        location_id: uuid.UUID = None
    ) -> Optional[Service]:
        """Cross-organization references are reported as not found."""
        from . import EntityNotFoundError

        service = None
        if service_id:
            service = Service.objects.filter(
                id=service_id, organization_id=organization_id
            ).first()
            if not service:
                raise EntityNotFoundError(f"Service {service_id} not found")

        references = [
            (Member, user_id, 'Member'),
            (Member, staff_id, 'Staff member'),
            (Resource, resource_id, 'Resource'),
            (Location, location_id, 'Location'),
        ]
        for model, object_id, label in references:
            if object_id and not model.objects.filter(
                id=object_id, organization_id=organization_id
            ).exists():
                raise EntityNotFoundError(f"{label} {object_id} not found")

        return service

    def _validate_times(self, start: datetime, end: datetime, allow_past: bool = False):
        from . import SchedulingValidationError

        if start >= end:
            raise SchedulingValidationError("End time must be after start time")

        if not allow_past and start < timezone.now():
            raise SchedulingValidationError("Cannot create a booking in the past")

    def _lock_participants(
        self,
        service_id: uuid.UUID,
        user_id: uuid.UUID,
        staff_id: uuid.UUID = None,
        resource_id: uuid.UUID = None
    ):
        """
        Row-lock the directory records the conflict check depends on.

        Two transactions booking the same staff, resource, member or
        service wait for each other, so the check cannot read stale state.
        """
        member_ids = [pk for pk in (user_id, staff_id) if pk]
        list(Member.objects.select_for_update().filter(id__in=member_ids).order_by('id'))
        list(Service.objects.select_for_update().filter(id=service_id))
        if resource_id:
            list(Resource.objects.select_for_update().filter(id=resource_id))

    def _default_booking_type(self, service: Service) -> str:
        if service.service_type in Booking.BookingType.values:
            return service.service_type
        return Booking.BookingType.APPOINTMENT

    def _day_start(self, value) -> datetime:
        if isinstance(value, datetime):
            return value
        return timezone.make_aware(datetime.combine(value, time.min))

    def _day_end(self, value) -> datetime:
        if isinstance(value, datetime):
            return value
        return timezone.make_aware(datetime.combine(value, time.max))

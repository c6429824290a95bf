# services/scheduling-service/src/apps/core/services/conflict_service.py
"""
Conflict Service

Decides whether a candidate booking may exist: staff, resource and member
double-booking, staff availability windows and service capacity.
"""

import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any, List

from django.utils import timezone

from apps.core.models import Booking, StaffAvailability, Member, Service, Resource

logger = logging.getLogger(__name__)


def intervals_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime
) -> bool:
    """Half-open interval overlap: touching intervals do not overlap."""
    return start_a < end_b and end_a > start_b


@dataclass
class ConflictDetail:
    """One rule violation blocking a candidate booking."""

    STAFF = 'staff'
    RESOURCE = 'resource'
    MEMBER = 'member'
    AVAILABILITY = 'availability'
    CAPACITY = 'capacity'

    type: str
    message: str
    booking_id: Optional[uuid.UUID] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'message': self.message,
            'booking_id': str(self.booking_id) if self.booking_id else None,
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'details': self.details,
        }


@dataclass
class ConflictCheckResult:
    """Ordered conflict list: staff, resource, member, availability, capacity."""

    conflicts: List[ConflictDetail] = field(default_factory=list)

    @property
    def has_conflict(self) -> bool:
        return len(self.conflicts) > 0

    def of_type(self, conflict_type: str) -> List[ConflictDetail]:
        return [c for c in self.conflicts if c.type == conflict_type]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'has_conflict': self.has_conflict,
            'conflicts': [c.to_dict() for c in self.conflicts],
        }


class ConflictService:
    """
    Service for conflict detection.

    Every check is read-only. Callers that write afterwards must run the
    check inside the same transaction as the write.
    """

    # ==========================================================================
    # Conflict Check
    # ==========================================================================

    def check_conflicts(
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
        """
        Run every conflict rule against the candidate interval.

        A blank ``user_id`` skips the member check, which is how slot
        searches that are not member-specific call this.
        """
        result = ConflictCheckResult()

        if staff_id:
            result.conflicts.extend(self._staff_conflicts(
                organization_id, start_time, end_time, staff_id, exclude_booking_id
            ))

        if resource_id:
            result.conflicts.extend(self._resource_conflicts(
                organization_id, start_time, end_time, resource_id, exclude_booking_id
            ))

        if user_id:
            result.conflicts.extend(self._member_conflicts(
                organization_id, start_time, end_time, user_id, exclude_booking_id
            ))

        if staff_id:
            result.conflicts.extend(self._availability_conflicts(
                organization_id, start_time, end_time, staff_id
            ))

        if service_id:
            result.conflicts.extend(self._capacity_conflicts(
                organization_id, start_time, end_time, service_id, exclude_booking_id
            ))

        if result.has_conflict:
            logger.debug(
                f"Found {len(result.conflicts)} conflicts for "
                f"{start_time.isoformat()} - {end_time.isoformat()}"
            )

        return result

    # ==========================================================================
    # Double-booking Rules
    # ==========================================================================

    def _staff_conflicts(
        self,
        organization_id: uuid.UUID,
        start_time: datetime,
        end_time: datetime,
        staff_id: uuid.UUID,
        exclude_booking_id: uuid.UUID = None
    ) -> List[ConflictDetail]:
        bookings = list(Booking.get_overlapping(
            organization_id, start_time, end_time, exclude_booking_id
        ).filter(staff_id=staff_id))

        if not bookings:
            return []

        staff = Member.objects.filter(id=staff_id).first()
        staff_name = staff.full_name if staff else str(staff_id)
        service_names = self._service_names(bookings)

        return [
            ConflictDetail(
                type=ConflictDetail.STAFF,
                message=(
                    f"Staff {staff_name} is already booked for "
                    f"{service_names.get(b.service_id, 'another booking')}"
                ),
                booking_id=b.id,
                start_time=b.start_time,
                end_time=b.end_time,
                details={'staff_id': str(staff_id)},
            )
            for b in bookings
        ]

    def _resource_conflicts(
        self,
        organization_id: uuid.UUID,
        start_time: datetime,
        end_time: datetime,
        resource_id: uuid.UUID,
        exclude_booking_id: uuid.UUID = None
    ) -> List[ConflictDetail]:
        bookings = list(Booking.get_overlapping(
            organization_id, start_time, end_time, exclude_booking_id
        ).filter(resource_id=resource_id))

        if not bookings:
            return []

        resource = Resource.objects.filter(id=resource_id).first()
        if resource:
            label = f"{resource.name} ({resource.get_resource_type_display()})"
        else:
            label = str(resource_id)
        service_names = self._service_names(bookings)

        return [
            ConflictDetail(
                type=ConflictDetail.RESOURCE,
                message=(
                    f"Resource {label} is already booked for "
                    f"{service_names.get(b.service_id, 'another booking')}"
                ),
                booking_id=b.id,
                start_time=b.start_time,
                end_time=b.end_time,
                details={'resource_id': str(resource_id)},
            )
            for b in bookings
        ]

    def _member_conflicts(
        self,
        organization_id: uuid.UUID,
        start_time: datetime,
        end_time: datetime,
        user_id: uuid.UUID,
        exclude_booking_id: uuid.UUID = None
    ) -> List[ConflictDetail]:
        bookings = list(Booking.get_overlapping(
            organization_id, start_time, end_time, exclude_booking_id
        ).filter(user_id=user_id))

        if not bookings:
            return []

        member = Member.objects.filter(id=user_id).first()
        member_name = member.full_name if member else str(user_id)
        service_names = self._service_names(bookings)

        return [
            ConflictDetail(
                type=ConflictDetail.MEMBER,
                message=(
                    f"Member {member_name} already has a booking for "
                    f"{service_names.get(b.service_id, 'another service')}"
                ),
                booking_id=b.id,
                start_time=b.start_time,
                end_time=b.end_time,
                details={'user_id': str(user_id)},
            )
            for b in bookings
        ]

    # ==========================================================================
    # Availability and Capacity Rules
    # ==========================================================================

    def _availability_conflicts(
        self,
        organization_id: uuid.UUID,
        start_time: datetime,
        end_time: datetime,
        staff_id: uuid.UUID
    ) -> List[ConflictDetail]:
        if self.is_staff_available(organization_id, staff_id, start_time, end_time):
            return []

        return [
            ConflictDetail(
                type=ConflictDetail.AVAILABILITY,
                message="Staff is not available during the requested time",
                start_time=start_time,
                end_time=end_time,
                details={'staff_id': str(staff_id)},
            )
        ]

    def is_staff_available(
        self,
        organization_id: uuid.UUID,
        staff_id: uuid.UUID,
        start_time: datetime,
        end_time: datetime
    ) -> bool:
        """
        True when one availability window fully contains the interval.

        Windows are time-of-day values in the current timezone, so an
        interval crossing midnight is never available.
        """
        local_start = timezone.localtime(start_time)
        local_end = timezone.localtime(end_time)

        if local_start.date() != local_end.date():
            return False

        windows = StaffAvailability.get_for_date(
            organization_id, staff_id, local_start.date()
        ).filter(
            is_available=True,
            start_time__lte=local_start.time(),
            end_time__gte=local_end.time(),
        )

        return windows.exists()

    def _capacity_conflicts(
        self,
        organization_id: uuid.UUID,
        start_time: datetime,
        end_time: datetime,
        service_id: uuid.UUID,
        exclude_booking_id: uuid.UUID = None
    ) -> List[ConflictDetail]:
        service = Service.objects.filter(id=service_id).first()
        if not service or not service.capacity:
            return []

        booked = self.count_service_bookings(
            organization_id, service_id, start_time, end_time, exclude_booking_id
        )
        if booked < service.capacity:
            return []

        return [
            ConflictDetail(
                type=ConflictDetail.CAPACITY,
                message=(
                    f"Service {service.name} is at full capacity "
                    f"({booked}/{service.capacity})"
                ),
                start_time=start_time,
                end_time=end_time,
                details={
                    'service_id': str(service_id),
                    'capacity': service.capacity,
                    'booked': booked,
                },
            )
        ]

    def count_service_bookings(
        self,
        organization_id: uuid.UUID,
        service_id: uuid.UUID,
        start_time: datetime,
        end_time: datetime,
        exclude_booking_id: uuid.UUID = None
    ) -> int:
        """Non-terminal bookings of a service overlapping the interval."""
        return Booking.get_overlapping(
            organization_id, start_time, end_time, exclude_booking_id
        ).filter(service_id=service_id).count()

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def _service_names(self, bookings: List[Booking]) -> Dict[uuid.UUID, str]:
        service_ids = {b.service_id for b in bookings}
        return {
            s.id: s.name
            for s in Service.objects.filter(id__in=service_ids)
        }

# services/scheduling-service/src/apps/core/services/availability_service.py
"""
Availability Service

Staff availability windows and free slot search.
"""

import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, date, time, timedelta
from typing import Optional, Dict, Any, List

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.core.models import StaffAvailability, Member
from .conflict_service import ConflictService

logger = logging.getLogger(__name__)


@dataclass
class TimeSlot:
    """A free interval returned by the slot search."""
    start_time: datetime
    end_time: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat(),
        }


class AvailabilityService:
    """
    Service for managing availability.

    Handles:
    - Staff availability CRUD
    - Slot finding
    """

    UPDATABLE_FIELDS = [
        'day_of_week', 'start_time', 'end_time', 'specific_date',
        'is_available', 'notes',
    ]

    def __init__(self, conflict_service: ConflictService = None):
        self.conflict_service = conflict_service or ConflictService()

    # ==========================================================================
    # Staff Availability CRUD
    # ==========================================================================

    @transaction.atomic
    def create_availability(
        self,
        organization_id: uuid.UUID,
        user_id: uuid.UUID,
        start_time: time,
        end_time: time,
        day_of_week: str = None,
        specific_date: date = None,
        is_available: bool = True,
        notes: str = None
    ) -> StaffAvailability:
        """Create a weekly or date-specific availability window."""
        from . import EntityNotFoundError, SchedulingValidationError

        if not Member.objects.filter(id=user_id, organization_id=organization_id).exists():
            raise EntityNotFoundError(f"Staff member {user_id} not found")

        if start_time >= end_time:
            raise SchedulingValidationError("Availability end time must be after start time")

        if specific_date:
            day_of_week = StaffAvailability.day_of_week_for(specific_date)
        elif not day_of_week:
            raise SchedulingValidationError("Either day_of_week or specific_date is required")

        availability = StaffAvailability.objects.create(
            organization_id=organization_id,
            user_id=user_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            specific_date=specific_date,
            is_available=is_available,
            notes=notes,
        )

        logger.info(
            f"Created availability for staff {user_id}: "
            f"{specific_date or day_of_week} {start_time}-{end_time}"
        )

        return availability

    def get_availability(
        self,
        availability_id: uuid.UUID,
        organization_id: uuid.UUID = None
    ) -> StaffAvailability:
        """Get availability by ID."""
        from . import EntityNotFoundError

        queryset = StaffAvailability.objects.all()
        if organization_id:
            queryset = queryset.filter(organization_id=organization_id)

        try:
            return queryset.get(id=availability_id)
        except StaffAvailability.DoesNotExist:
            raise EntityNotFoundError(f"Availability {availability_id} not found")

    def list_availability(
        self,
        organization_id: uuid.UUID,
        user_id: uuid.UUID = None,
        day_of_week: str = None,
        specific_date: date = None
    ) -> List[StaffAvailability]:
        """List availability windows."""
        queryset = StaffAvailability.objects.filter(organization_id=organization_id)

        if user_id:
            queryset = queryset.filter(user_id=user_id)

        if day_of_week:
            queryset = queryset.filter(day_of_week=day_of_week)

        if specific_date:
            queryset = queryset.filter(specific_date=specific_date)

        return list(queryset.order_by('user_id', 'day_of_week', 'start_time'))

    def update_availability(
        self,
        availability_id: uuid.UUID,
        organization_id: uuid.UUID = None,
        **kwargs
    ) -> StaffAvailability:
        """Update an availability window."""
        from . import SchedulingValidationError

        availability = self.get_availability(availability_id, organization_id)

        for field, value in kwargs.items():
            if field in self.UPDATABLE_FIELDS:
                setattr(availability, field, value)

        if availability.start_time >= availability.end_time:
            raise SchedulingValidationError("Availability end time must be after start time")

        if availability.specific_date:
            availability.day_of_week = StaffAvailability.day_of_week_for(availability.specific_date)

        availability.save()
        return availability

    def delete_availability(
        self,
        availability_id: uuid.UUID,
        organization_id: uuid.UUID = None
    ):
        """Delete an availability window."""
        availability = self.get_availability(availability_id, organization_id)
        availability.delete()

        logger.info(f"Deleted availability {availability_id}")

    # ==========================================================================
    # Slot Finding
    # ==========================================================================

    def get_available_time_slots(
        self,
        organization_id: uuid.UUID,
        target_date: date,
        duration_minutes: int,
        service_id: uuid.UUID = None,
        resource_id: uuid.UUID = None,
        staff_id: uuid.UUID = None
    ) -> List[TimeSlot]:
        """
        Free slots of ``duration_minutes`` on ``target_date``.

        Scans the configured day window in fixed steps and keeps every
        step whose interval passes the conflict check. A slot may end
        after the window closes; only its start is bounded.
        """
        from . import SchedulingValidationError

        if duration_minutes <= 0:
            raise SchedulingValidationError("Duration must be positive")

        day_start, day_end, step = self._scan_window(target_date)
        duration = timedelta(minutes=duration_minutes)

        slots = []
        current = day_start
        while current < day_end:
            slot_end = current + duration

            result = self.conflict_service.check_conflicts(
                organization_id,
                current,
                slot_end,
                service_id=service_id,
                resource_id=resource_id,
                staff_id=staff_id,
                user_id=None,
            )
            if not result.has_conflict:
                slots.append(TimeSlot(start_time=current, end_time=slot_end))

            current += step

        logger.debug(
            f"Found {len(slots)} free slots on {target_date} for {duration_minutes} minutes"
        )

        return slots

    def _scan_window(self, target_date: date):
        """Start, end and step of the scan for a date, in the current timezone."""
        day_start = self._parse_time(getattr(settings, 'SLOT_DAY_START', '06:00'))
        day_end = self._parse_time(getattr(settings, 'SLOT_DAY_END', '22:00'))
        step = timedelta(minutes=getattr(settings, 'SLOT_STEP_MINUTES', 30))

        return (
            timezone.make_aware(datetime.combine(target_date, day_start)),
            timezone.make_aware(datetime.combine(target_date, day_end)),
            step,
        )

    def _parse_time(self, value) -> time:
        if isinstance(value, time):
            return value
        return time.fromisoformat(value)

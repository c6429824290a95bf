# services/scheduling-service/src/apps/core/services/waitlist_service.py
"""
Waitlist Service

Manages the per-service ordered waitlist: join, leave, reorder,
capacity-triggered auto-promotion and notification bookkeeping.
"""

import uuid
import logging
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List

from django.conf import settings
from django.db import transaction, DatabaseError
from django.db.models import F
from django.utils import timezone

from apps.core.models import Booking, WaitlistEntry, Member, Service
from apps.core.events import (
    publish_waitlist_joined,
    publish_waitlist_left,
    publish_waitlist_promoted,
    publish_waitlist_notified,
)
from .conflict_service import ConflictService

logger = logging.getLogger(__name__)


class WaitlistService:
    """
    Service for managing waitlists.

    Every operation that moves positions runs in one transaction holding
    a row lock on the service, so concurrent calls for the same service
    are applied one after another.
    """

    UPDATABLE_FIELDS = ['notify_by_email', 'notify_by_sms', 'is_active', 'notes']

    def __init__(self, conflict_service: ConflictService = None):
        self.conflict_service = conflict_service or ConflictService()

    # ==========================================================================
    # Queue Operations
    # ==========================================================================

    @transaction.atomic
    def join(
        self,
        organization_id: uuid.UUID,
        service_id: uuid.UUID,
        user_id: uuid.UUID,
        notify_by_email: bool = True,
        notify_by_sms: bool = False,
        notes: str = None
    ) -> WaitlistEntry:
        """Append a member to the end of a service's waitlist."""
        from . import EntityNotFoundError, WaitlistError

        service = self._lock_queue(service_id, organization_id)
        if not service.is_active:
            raise WaitlistError(f"Service {service.name} is not accepting waitlist entries")

        member = Member.objects.filter(id=user_id, organization_id=organization_id).first()
        if not member:
            raise EntityNotFoundError(f"Member {user_id} not found")
        if not member.is_active:
            raise WaitlistError(f"Member {member.full_name} is not active")

        if WaitlistEntry.for_service(service_id).filter(user_id=user_id).exists():
            raise WaitlistError(
                f"Member {member.full_name} is already on the waitlist for {service.name}"
            )

        entry = WaitlistEntry.objects.create(
            organization_id=organization_id,
            service_id=service_id,
            user_id=user_id,
            position=WaitlistEntry.max_position(service_id) + 1,
            notify_by_email=notify_by_email,
            notify_by_sms=notify_by_sms,
            notes=notes,
        )

        logger.info(
            f"Member {user_id} joined waitlist for service {service_id} "
            f"at position {entry.position}"
        )
        publish_waitlist_joined(entry)

        return entry

    @transaction.atomic
    def leave(
        self,
        entry_id: uuid.UUID,
        organization_id: uuid.UUID = None
    ) -> WaitlistEntry:
        """Remove an entry and close the gap it leaves."""
        entry = self.get_entry(entry_id, organization_id)
        self._lock_queue(entry.service_id)

        # Re-read under the lock; another writer may have shifted it.
        entry = self.get_entry(entry_id, organization_id)
        removed_position = entry.position

        entry.delete()
        WaitlistEntry.for_service(entry.service_id).filter(
            position__gt=removed_position
        ).update(position=F('position') - 1)

        logger.info(
            f"Removed waitlist entry {entry_id} from position {removed_position} "
            f"of service {entry.service_id}"
        )
        publish_waitlist_left(entry, removed_position)

        return entry

    @transaction.atomic
    def reorder(
        self,
        entry_id: uuid.UUID,
        new_position: int,
        organization_id: uuid.UUID = None
    ) -> WaitlistEntry:
        """Move an entry to ``new_position``, shifting the entries between."""
        from . import WaitlistError

        entry = self.get_entry(entry_id, organization_id)
        self._lock_queue(entry.service_id)
        entry = self.get_entry(entry_id, organization_id)

        queue = WaitlistEntry.for_service(entry.service_id)
        total = queue.count()

        if not 1 <= new_position <= total:
            raise WaitlistError(
                f"Position must be between 1 and {total}, got {new_position}"
            )

        old_position = entry.position
        if new_position == old_position:
            return entry

        if new_position < old_position:
            queue.filter(
                position__gte=new_position,
                position__lt=old_position,
            ).update(position=F('position') + 1)
        else:
            queue.filter(
                position__gt=old_position,
                position__lte=new_position,
            ).update(position=F('position') - 1)

        entry.position = new_position
        entry.save(update_fields=['position', 'updated_at'])

        logger.info(
            f"Moved waitlist entry {entry_id} from {old_position} to {new_position}"
        )

        return entry

    def position_of(self, service_id: uuid.UUID, user_id: uuid.UUID) -> int:
        """A member's position, 0 when not waiting."""
        entry = WaitlistEntry.for_service(service_id).filter(user_id=user_id).first()
        return entry.position if entry else 0

    @transaction.atomic
    def notify(
        self,
        entry_id: uuid.UUID,
        expires_at: datetime = None,
        organization_id: uuid.UUID = None
    ) -> WaitlistEntry:
        """
        Record that a member was told a place opened up.

        Delivery is done by the caller; the entry keeps its position.
        """
        entry = self.get_entry(entry_id, organization_id)
        now = timezone.now()
        hours = getattr(settings, 'WAITLIST_NOTIFICATION_HOURS', 24)

        entry.notified_at = now
        entry.expires_at = expires_at or now + timedelta(hours=hours)
        entry.save(update_fields=['notified_at', 'expires_at', 'updated_at'])

        logger.info(f"Waitlist entry {entry_id} notified, expires {entry.expires_at.isoformat()}")
        publish_waitlist_notified(entry)

        return entry

    # ==========================================================================
    # Capacity and Promotion
    # ==========================================================================

    def process_waitlist_after_booking(
        self,
        organization_id: uuid.UUID,
        service_id: uuid.UUID,
        start_time: datetime,
        end_time: datetime
    ) -> bool:
        """Whether the service is at capacity for the window."""
        service = Service.objects.filter(id=service_id).first()
        if not service or not service.capacity:
            return False

        booked = self.conflict_service.count_service_bookings(
            organization_id, service_id, start_time, end_time
        )
        return booked >= service.capacity

    @transaction.atomic
    def auto_promote_after_cancellation(
        self,
        organization_id: uuid.UUID,
        service_id: uuid.UUID,
        freed_start: datetime,
        freed_end: datetime
    ) -> List[Booking]:
        """
        Fill places freed in [freed_start, freed_end) from the waitlist.

        Active entries are tried in position order. An entry that cannot
        be booked is logged and skipped, and the next one is tried.
        """
        from . import SchedulingError

        service = self._lock_queue(service_id, organization_id)
        if not service.capacity:
            return []

        booked = self.conflict_service.count_service_bookings(
            organization_id, service_id, freed_start, freed_end
        )
        available_spots = service.capacity - booked
        if available_spots <= 0:
            return []

        promoted = []
        candidates = list(
            WaitlistEntry.for_service(service_id).filter(is_active=True).order_by('position')
        )

        for entry in candidates:
            if len(promoted) >= available_spots:
                break

            try:
                with transaction.atomic():
                    booking = self._promote(entry, service, freed_start, freed_end)
                    self.leave(entry.id)
            except (SchedulingError, DatabaseError) as e:
                logger.warning(
                    f"Skipped waitlist entry {entry.id} for service {service_id}: {e}"
                )
                continue

            promoted.append(booking)
            logger.info(
                f"Promoted member {entry.user_id} from waitlist position "
                f"{entry.position} to booking {booking.id}"
            )
            publish_waitlist_promoted(entry, booking)

        return promoted

    def _promote(
        self,
        entry: WaitlistEntry,
        service: Service,
        start_time: datetime,
        end_time: datetime
    ) -> Booking:
        """Book one waitlisted member into the freed window."""
        from . import BookingConflictError, WaitlistError

        member = Member.objects.filter(
            id=entry.user_id, organization_id=service.organization_id
        ).first()
        if not member or not member.is_active:
            raise WaitlistError(f"Member {entry.user_id} is no longer eligible")

        result = self.conflict_service.check_conflicts(
            service.organization_id,
            start_time,
            end_time,
            service_id=service.id,
            user_id=entry.user_id,
        )
        if result.has_conflict:
            raise BookingConflictError(result.conflicts)

        return Booking.objects.create(
            organization_id=service.organization_id,
            service_id=service.id,
            user_id=entry.user_id,
            start_time=start_time,
            end_time=end_time,
            status=Booking.Status.CONFIRMED,
            booking_type=(
                service.service_type if service.service_type in Booking.BookingType.values
                else Booking.BookingType.APPOINTMENT
            ),
            price=service.price,
            notes='Booked from waitlist',
        )

    # ==========================================================================
    # Queries
    # ==========================================================================

    def get_entry(
        self,
        entry_id: uuid.UUID,
        organization_id: uuid.UUID = None
    ) -> WaitlistEntry:
        """Get a waitlist entry by ID."""
        from . import EntityNotFoundError

        queryset = WaitlistEntry.objects.all()
        if organization_id:
            queryset = queryset.filter(organization_id=organization_id)

        try:
            return queryset.get(id=entry_id)
        except WaitlistEntry.DoesNotExist:
            raise EntityNotFoundError(f"Waitlist entry {entry_id} not found")

    def list_entries(
        self,
        organization_id: uuid.UUID,
        service_id: uuid.UUID = None,
        user_id: uuid.UUID = None,
        is_active: bool = None
    ) -> List[WaitlistEntry]:
        """List waitlist entries."""
        queryset = WaitlistEntry.objects.filter(organization_id=organization_id)

        if service_id:
            queryset = queryset.filter(service_id=service_id)

        if user_id:
            queryset = queryset.filter(user_id=user_id)

        if is_active is not None:
            queryset = queryset.filter(is_active=is_active)

        return list(queryset.order_by('service_id', 'position'))

    def update_entry(
        self,
        entry_id: uuid.UUID,
        organization_id: uuid.UUID = None,
        **kwargs
    ) -> WaitlistEntry:
        """Update notification preferences, notes or the active flag."""
        entry = self.get_entry(entry_id, organization_id)

        changed = []
        for key, value in kwargs.items():
            if key in self.UPDATABLE_FIELDS:
                setattr(entry, key, value)
                changed.append(key)

        if changed:
            entry.save(update_fields=changed + ['updated_at'])

        return entry

    def get_positions(self, service_id: uuid.UUID) -> List[int]:
        return list(
            WaitlistEntry.for_service(service_id)
            .order_by('position')
            .values_list('position', flat=True)
        )

    def get_statistics(self, organization_id: uuid.UUID, service_id: uuid.UUID) -> Dict[str, Any]:
        """Queue length and notification counts for a service."""
        queue = WaitlistEntry.for_service(service_id).filter(organization_id=organization_id)
        return {
            'service_id': str(service_id),
            'total': queue.count(),
            'active': queue.filter(is_active=True).count(),
            'notified': queue.filter(notified_at__isnull=False).count(),
        }

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def _lock_queue(
        self,
        service_id: uuid.UUID,
        organization_id: uuid.UUID = None
    ) -> Service:
        """Row-lock the service, serializing position changes for its queue."""
        from . import EntityNotFoundError

        queryset = Service.objects.select_for_update()
        if organization_id:
            queryset = queryset.filter(organization_id=organization_id)

        try:
            return queryset.get(id=service_id)
        except Service.DoesNotExist:
            raise EntityNotFoundError(f"Service {service_id} not found")

# services/scheduling-service/src/apps/core/events.py
"""
Scheduling Service Events

Event definitions and publishing for the scheduling service.
Integrates with the event bus for cross-service communication.
"""

import json
import logging
from datetime import datetime, date, time
from decimal import Decimal
from typing import Any, Dict, List
from uuid import UUID

import redis
from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)


class EventType:
    """Event type constants for scheduling service."""

    # Booking lifecycle events
    BOOKING_CREATED = 'booking.created'
    BOOKING_UPDATED = 'booking.updated'
    BOOKING_CANCELLED = 'booking.cancelled'
    BOOKING_STATUS_CHANGED = 'booking.status_changed'

    # Waitlist events
    WAITLIST_JOINED = 'waitlist.joined'
    WAITLIST_LEFT = 'waitlist.left'
    WAITLIST_PROMOTED = 'waitlist.promoted'
    WAITLIST_NOTIFIED = 'waitlist.notified'

    # Recurring schedule events
    SCHEDULE_CREATED = 'recurring_schedule.created'
    SCHEDULE_UPDATED = 'recurring_schedule.updated'
    SCHEDULE_DELETED = 'recurring_schedule.deleted'
    SCHEDULE_MATERIALIZED = 'recurring_schedule.materialized'


class JSONEncoder(json.JSONEncoder):
    """Custom JSON encoder for event payloads."""

    def default(self, obj):
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, (datetime, date, time)):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return float(obj)
        return super().default(obj)


class EventPublisher:
    """
    Event publisher for scheduling service.

    The backend is chosen by ``EVENT_BACKEND``: ``redis`` publishes on a
    pub/sub channel per event type, ``memory`` keeps events in
    ``published`` for inspection, anything else only logs.
    """

    def __init__(self):
        self.service_name = 'scheduling-service'
        self.published: List[Dict[str, Any]] = []
        self._redis = None

    @property
    def enabled(self) -> bool:
        return getattr(settings, 'EVENT_PUBLISHING_ENABLED', True)

    def publish(
        self,
        event_type: str,
        payload: Dict[str, Any],
        organization_id: UUID = None,
        correlation_id: str = None
    ) -> bool:
        """
        Publish an event to the message bus.

        Returns True if published, False otherwise. Publishing failures
        are logged and never propagate into the calling operation.
        """
        if not self.enabled:
            logger.debug(f"Event publishing disabled, skipping: {event_type}")
            return False

        event = {
            'event_type': event_type,
            'service': self.service_name,
            'timestamp': timezone.now().isoformat(),
            'organization_id': str(organization_id) if organization_id else None,
            'correlation_id': correlation_id,
            'payload': payload,
        }

        try:
            event_json = json.dumps(event, cls=JSONEncoder)
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to serialize event {event_type}: {e}")
            return False

        logger.info(f"Publishing event: {event_type}", extra={
            'event_type': event_type,
            'organization_id': event['organization_id'],
        })

        backend = getattr(settings, 'EVENT_BACKEND', 'log')
        if backend == 'redis':
            return self._publish_redis(event_type, event_json)

        if backend == 'memory':
            self.published.append(json.loads(event_json))
        else:
            logger.debug(f"Event payload: {event_json[:500]}")

        return True

    def events_of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [e for e in self.published if e['event_type'] == event_type]

    def clear(self):
        self.published.clear()

    def _publish_redis(self, event_type: str, event_json: str) -> bool:
        """Publish to Redis pub/sub."""
        try:
            if self._redis is None:
                self._redis = redis.Redis.from_url(
                    getattr(settings, 'EVENT_REDIS_URL', 'redis://localhost:6379/1')
                )
            self._redis.publish(f"events:{event_type}", event_json)
            return True
        except redis.RedisError as e:
            logger.error(f"Redis publish error for {event_type}: {e}")
            return False


# Global event publisher instance
event_publisher = EventPublisher()


# ==========================================================================
# Booking Events
# ==========================================================================

def _booking_payload(booking) -> Dict[str, Any]:
    return {
        'booking_id': booking.id,
        'service_id': booking.service_id,
        'user_id': booking.user_id,
        'staff_id': booking.staff_id,
        'resource_id': booking.resource_id,
        'start_time': booking.start_time,
        'end_time': booking.end_time,
        'status': booking.status,
        'booking_type': booking.booking_type,
        'recurring_schedule_id': booking.recurring_schedule_id,
    }


def publish_booking_created(booking):
    """Publish booking created event."""
    event_publisher.publish(
        EventType.BOOKING_CREATED,
        payload={**_booking_payload(booking), 'created_by': booking.created_by},
        organization_id=booking.organization_id
    )


def publish_booking_updated(booking, changed_fields: List[str] = None):
    """Publish booking updated event."""
    event_publisher.publish(
        EventType.BOOKING_UPDATED,
        payload={**_booking_payload(booking), 'changed_fields': changed_fields or []},
        organization_id=booking.organization_id
    )


def publish_booking_cancelled(booking, cancelled_by: UUID = None, reason: str = None):
    """Publish booking cancelled event."""
    event_publisher.publish(
        EventType.BOOKING_CANCELLED,
        payload={
            **_booking_payload(booking),
            'cancelled_by': cancelled_by,
            'reason': reason,
        },
        organization_id=booking.organization_id
    )


def publish_booking_status_changed(booking, old_status: str):
    event_publisher.publish(
        EventType.BOOKING_STATUS_CHANGED,
        payload={
            'booking_id': booking.id,
            'old_status': old_status,
            'new_status': booking.status,
        },
        organization_id=booking.organization_id
    )


# ==========================================================================
# Waitlist Events
# ==========================================================================

def publish_waitlist_joined(entry):
    """Publish waitlist joined event."""
    event_publisher.publish(
        EventType.WAITLIST_JOINED,
        payload={
            'waitlist_entry_id': entry.id,
            'service_id': entry.service_id,
            'user_id': entry.user_id,
            'position': entry.position,
        },
        organization_id=entry.organization_id
    )


def publish_waitlist_left(entry, removed_position: int):
    """Publish waitlist left event."""
    event_publisher.publish(
        EventType.WAITLIST_LEFT,
        payload={
            'waitlist_entry_id': entry.id,
            'service_id': entry.service_id,
            'user_id': entry.user_id,
            'position': removed_position,
        },
        organization_id=entry.organization_id
    )


def publish_waitlist_promoted(entry, booking):
    """Publish waitlist promotion event."""
    event_publisher.publish(
        EventType.WAITLIST_PROMOTED,
        payload={
            'waitlist_entry_id': entry.id,
            'service_id': entry.service_id,
            'user_id': entry.user_id,
            'booking_id': booking.id,
            'start_time': booking.start_time,
            'end_time': booking.end_time,
        },
        organization_id=entry.organization_id
    )


def publish_waitlist_notified(entry):
    """Publish waitlist notification event."""
    event_publisher.publish(
        EventType.WAITLIST_NOTIFIED,
        payload={
            'waitlist_entry_id': entry.id,
            'service_id': entry.service_id,
            'user_id': entry.user_id,
            'notify_by_email': entry.notify_by_email,
            'notify_by_sms': entry.notify_by_sms,
            'expires_at': entry.expires_at,
        },
        organization_id=entry.organization_id
    )


# ==========================================================================
# Recurring Schedule Events
# ==========================================================================

def publish_schedule_created(schedule):
    event_publisher.publish(
        EventType.SCHEDULE_CREATED,
        payload={
            'schedule_id': schedule.id,
            'service_id': schedule.service_id,
            'user_id': schedule.user_id,
            'frequency': schedule.frequency,
            'dtstart': schedule.dtstart,
        },
        organization_id=schedule.organization_id
    )


def publish_schedule_updated(schedule, recurrence_changed: bool = False):
    event_publisher.publish(
        EventType.SCHEDULE_UPDATED,
        payload={
            'schedule_id': schedule.id,
            'recurrence_changed': recurrence_changed,
            'is_active': schedule.is_active,
        },
        organization_id=schedule.organization_id
    )


def publish_schedule_deleted(schedule_id: UUID, organization_id: UUID, deleted_bookings: int):
    event_publisher.publish(
        EventType.SCHEDULE_DELETED,
        payload={
            'schedule_id': schedule_id,
            'deleted_bookings': deleted_bookings,
        },
        organization_id=organization_id
    )


def publish_schedule_materialized(schedule, created: int, skipped: int):
    event_publisher.publish(
        EventType.SCHEDULE_MATERIALIZED,
        payload={
            'schedule_id': schedule.id,
            'created': created,
            'skipped': skipped,
            'materialized_until': schedule.materialized_until,
        },
        organization_id=schedule.organization_id
    )

# services/scheduling-service/src/tests/unit/test_events.py
"""
Unit Tests for Event Publishing and Tasks
"""

from unittest.mock import patch, MagicMock

import pytest
import redis

from apps.core.events import EventPublisher, EventType, event_publisher
from apps.core.models import Booking
from apps.core.tasks import materialize_recurring_schedules, materialize_schedule


class TestEventPublisher:
    """Tests for the publisher backends."""

    def setup_method(self):
        self.publisher = EventPublisher()

    def test_memory_backend_keeps_events(self, settings):
        settings.EVENT_BACKEND = 'memory'

        assert self.publisher.publish(
            EventType.BOOKING_CREATED, {'count': 1}, organization_id='org-1'
        )

        event = self.publisher.published[0]
        assert event['event_type'] == 'booking.created'
        assert event['service'] == 'scheduling-service'
        assert event['organization_id'] == 'org-1'
        assert event['payload'] == {'count': 1}

    def test_disabled_publisher(self, settings):
        settings.EVENT_PUBLISHING_ENABLED = False

        assert not self.publisher.publish(EventType.BOOKING_CREATED, {})
        assert self.publisher.published == []

    def test_unserializable_payload(self, settings):
        settings.EVENT_BACKEND = 'memory'

        assert not self.publisher.publish(EventType.BOOKING_CREATED, {'value': object()})

    def test_log_backend(self, settings):
        settings.EVENT_BACKEND = 'log'

        assert self.publisher.publish(EventType.BOOKING_CREATED, {})
        assert self.publisher.published == []

    @patch('apps.core.events.redis.Redis.from_url')
    def test_redis_backend_publishes_on_channel(self, mock_from_url, settings):
        settings.EVENT_BACKEND = 'redis'
        client = MagicMock()
        mock_from_url.return_value = client

        assert self.publisher.publish(EventType.WAITLIST_PROMOTED, {'x': 1})

        channel, body = client.publish.call_args[0]
        assert channel == 'events:waitlist.promoted'
        assert '"x": 1' in body

    @patch('apps.core.events.redis.Redis.from_url')
    def test_redis_failure_does_not_raise(self, mock_from_url, settings):
        settings.EVENT_BACKEND = 'redis'
        client = MagicMock()
        client.publish.side_effect = redis.ConnectionError('down')
        mock_from_url.return_value = client

        assert self.publisher.publish(EventType.BOOKING_CREATED, {}) is False


@pytest.mark.django_db
class TestBookingSignals:
    """Status changes made outside the service still publish."""

    def test_direct_status_change_publishes(self, create_booking):
        booking = create_booking()
        event_publisher.clear()

        booking.status = Booking.Status.ATTENDED
        booking.save()

        events = event_publisher.events_of_type(EventType.BOOKING_STATUS_CHANGED)
        assert len(events) == 1
        assert events[0]['payload']['old_status'] == 'confirmed'
        assert events[0]['payload']['new_status'] == 'attended'

    def test_save_without_status_change_is_quiet(self, create_booking):
        booking = create_booking()

        booking.notes = 'Updated'
        booking.save()

        assert event_publisher.events_of_type(EventType.BOOKING_STATUS_CHANGED) == []


@pytest.mark.django_db
class TestMaterializationTasks:
    """Tests for the Celery tasks."""

    def test_materialize_recurring_schedules(self, create_schedule):
        create_schedule(count=2)

        result = materialize_recurring_schedules.apply(kwargs={'horizon_days': 30}).get()

        assert result == {'schedules': 1, 'created': 2, 'skipped': 0}

    def test_materialize_schedule(self, organization_id, create_schedule):
        schedule = create_schedule(count=3)

        result = materialize_schedule.apply(
            args=[str(schedule.id), str(organization_id)], kwargs={'horizon_days': 30}
        ).get()

        assert len(result['created']) == 3
        assert Booking.objects.filter(recurring_schedule_id=schedule.id).count() == 3

    def test_short_horizon_creates_nothing(self, create_schedule):
        create_schedule(count=2)

        result = materialize_recurring_schedules.apply(kwargs={'horizon_days': 1}).get()

        assert result['created'] == 0

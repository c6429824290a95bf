# services/scheduling-service/src/tests/unit/test_waitlist_service.py
"""
Unit Tests for WaitlistService
"""

import uuid
from datetime import timedelta

import pytest
from django.utils import timezone

from apps.core.events import EventType, event_publisher
from apps.core.models import Booking, WaitlistEntry
from apps.core.services import (
    BookingService,
    WaitlistService,
    WaitlistError,
    EntityNotFoundError,
)


@pytest.mark.django_db
class TestWaitlistQueue:
    """Tests for joining, leaving and reordering."""

    def setup_method(self):
        self.service = WaitlistService()

    def _queue(self, service_id):
        return list(
            WaitlistEntry.for_service(service_id)
            .order_by('position')
            .values_list('user_id', 'position')
        )

    def test_join_appends_to_end(self, organization_id, class_service, create_member):
        first = self.service.join(organization_id, class_service.id, create_member().id)
        second = self.service.join(organization_id, class_service.id, create_member().id)

        assert first.position == 1
        assert second.position == 2
        assert self.service.get_positions(class_service.id) == [1, 2]
        assert len(event_publisher.events_of_type(EventType.WAITLIST_JOINED)) == 2

    def test_join_twice_is_rejected(self, organization_id, class_service, member):
        self.service.join(organization_id, class_service.id, member.id)

        with pytest.raises(WaitlistError):
            self.service.join(organization_id, class_service.id, member.id)

    def test_join_unknown_member(self, organization_id, class_service):
        with pytest.raises(EntityNotFoundError):
            self.service.join(organization_id, class_service.id, uuid.uuid4())

    def test_join_inactive_service(self, organization_id, create_service, member):
        closed = create_service(name='Closed', is_active=False)

        with pytest.raises(WaitlistError):
            self.service.join(organization_id, closed.id, member.id)

    def test_leave_closes_gap(self, class_service, create_member, create_waitlist_entry):
        a, b, c = (create_waitlist_entry(create_member().id) for _ in range(3))

        self.service.leave(b.id)

        assert self._queue(class_service.id) == [(a.user_id, 1), (c.user_id, 2)]
        event = event_publisher.events_of_type(EventType.WAITLIST_LEFT)[0]
        assert event['payload']['position'] == 2

    def test_leave_unknown_entry(self):
        with pytest.raises(EntityNotFoundError):
            self.service.leave(uuid.uuid4())

    def test_reorder_to_front(self, class_service, create_member, create_waitlist_entry):
        a, b, c = (create_waitlist_entry(create_member().id) for _ in range(3))

        moved = self.service.reorder(c.id, 1)

        assert moved.position == 1
        assert self._queue(class_service.id) == [
            (c.user_id, 1), (a.user_id, 2), (b.user_id, 3),
        ]

    def test_reorder_to_back(self, class_service, create_member, create_waitlist_entry):
        a, b, c = (create_waitlist_entry(create_member().id) for _ in range(3))

        self.service.reorder(a.id, 3)

        assert self._queue(class_service.id) == [
            (b.user_id, 1), (c.user_id, 2), (a.user_id, 3),
        ]

    def test_reorder_to_same_position_is_noop(self, class_service, create_member, create_waitlist_entry):
        a, b = (create_waitlist_entry(create_member().id) for _ in range(2))
        before = self._queue(class_service.id)

        self.service.reorder(b.id, 2)

        assert self._queue(class_service.id) == before

    @pytest.mark.parametrize('position', [0, 4])
    def test_reorder_out_of_range(self, position, create_member, create_waitlist_entry):
        entries = [create_waitlist_entry(create_member().id) for _ in range(3)]

        with pytest.raises(WaitlistError):
            self.service.reorder(entries[0].id, position)

    def test_position_of(self, class_service, member, create_member, create_waitlist_entry):
        create_waitlist_entry(create_member().id)
        create_waitlist_entry(member.id)

        assert self.service.position_of(class_service.id, member.id) == 2
        assert self.service.position_of(class_service.id, uuid.uuid4()) == 0

    def test_notify_sets_expiry(self, member, create_waitlist_entry):
        entry = create_waitlist_entry(member.id)

        notified = self.service.notify(entry.id)

        assert notified.is_notified
        assert notified.position == 1
        assert notified.expires_at - notified.notified_at == timedelta(hours=24)
        assert len(event_publisher.events_of_type(EventType.WAITLIST_NOTIFIED)) == 1

    def test_notify_with_explicit_expiry(self, member, create_waitlist_entry):
        entry = create_waitlist_entry(member.id)
        expires_at = timezone.now() + timedelta(hours=2)

        assert self.service.notify(entry.id, expires_at=expires_at).expires_at == expires_at

    def test_statistics(self, organization_id, class_service, create_member, create_waitlist_entry):
        create_waitlist_entry(create_member().id)
        create_waitlist_entry(create_member().id, is_active=False)

        stats = self.service.get_statistics(organization_id, class_service.id)

        assert stats == {
            'service_id': str(class_service.id),
            'total': 2,
            'active': 1,
            'notified': 0,
        }

    def test_update_entry_ignores_position(self, member, create_waitlist_entry):
        entry = create_waitlist_entry(member.id)

        updated = self.service.update_entry(entry.id, notes='Evenings only', position=5)

        assert updated.notes == 'Evenings only'
        assert updated.position == 1


@pytest.mark.django_db
class TestWaitlistPromotion:
    """Tests for filling freed places from the queue."""

    def setup_method(self):
        self.booking_service = BookingService()

    def test_cancellation_promotes_first_in_line(
        self, organization_id, class_service, create_booking, create_member,
        create_waitlist_entry, at, future_day
    ):
        booking = create_booking(service_id=class_service.id)
        waiting = create_member()
        second = create_member()
        create_waitlist_entry(waiting.id)
        create_waitlist_entry(second.id)

        cancelled, promoted = self.booking_service.cancel_booking(booking.id, organization_id)

        assert cancelled.status == Booking.Status.CANCELLED_BY_MEMBER
        assert len(promoted) == 1
        assert promoted[0].user_id == waiting.id
        assert promoted[0].start_time == at(future_day, 10)
        assert promoted[0].end_time == at(future_day, 11)
        assert promoted[0].status == Booking.Status.CONFIRMED

        remaining = list(WaitlistEntry.for_service(class_service.id).order_by('position'))
        assert [(e.user_id, e.position) for e in remaining] == [(second.id, 1)]
        assert len(event_publisher.events_of_type(EventType.WAITLIST_PROMOTED)) == 1

    def test_ineligible_entry_is_skipped(
        self, organization_id, class_service, create_service, create_booking,
        create_member, create_waitlist_entry, at, future_day
    ):
        booking = create_booking(service_id=class_service.id)
        busy = create_member()
        free = create_member()
        other_service = create_service(name='Massage')
        create_booking(service_id=other_service.id, user_id=busy.id)
        create_waitlist_entry(busy.id)
        create_waitlist_entry(free.id)

        _, promoted = self.booking_service.cancel_booking(booking.id, organization_id)

        assert [b.user_id for b in promoted] == [free.id]
        remaining = list(WaitlistEntry.for_service(class_service.id))
        assert [(e.user_id, e.position) for e in remaining] == [(busy.id, 1)]

    def test_inactive_entries_are_not_promoted(
        self, organization_id, class_service, create_booking, create_member, create_waitlist_entry
    ):
        booking = create_booking(service_id=class_service.id)
        create_waitlist_entry(create_member().id, is_active=False)

        _, promoted = self.booking_service.cancel_booking(booking.id, organization_id)

        assert promoted == []

    def test_unlimited_service_never_promotes(
        self, organization_id, service, create_booking, create_member, create_waitlist_entry
    ):
        booking = create_booking()
        create_waitlist_entry(create_member().id, service_id=service.id)

        _, promoted = self.booking_service.cancel_booking(booking.id, organization_id)

        assert promoted == []
        assert WaitlistEntry.for_service(service.id).count() == 1

    def test_full_after_booking(self, organization_id, class_service, create_booking, at, future_day):
        waitlist_service = WaitlistService()
        create_booking(service_id=class_service.id)

        assert waitlist_service.process_waitlist_after_booking(
            organization_id, class_service.id, at(future_day, 10), at(future_day, 11)
        )
        assert not waitlist_service.process_waitlist_after_booking(
            organization_id, class_service.id, at(future_day, 12), at(future_day, 13)
        )

    def test_positions_stay_contiguous_across_mixed_operations(
        self, organization_id, class_service, create_booking, create_member
    ):
        waitlist_service = WaitlistService()
        booking = create_booking(service_id=class_service.id)
        a, b, c, d, e = (
            waitlist_service.join(organization_id, class_service.id, create_member().id)
            for _ in range(5)
        )

        waitlist_service.leave(c.id)
        waitlist_service.reorder(e.id, 1)
        waitlist_service.reorder(a.id, 4)
        f = waitlist_service.join(organization_id, class_service.id, create_member().id)
        _, promoted = self.booking_service.cancel_booking(booking.id, organization_id)
        waitlist_service.leave(b.id)

        assert [p.user_id for p in promoted] == [e.user_id]
        queue = list(
            WaitlistEntry.for_service(class_service.id)
            .order_by('position')
            .values_list('user_id', 'position')
        )
        assert queue == [(d.user_id, 1), (a.user_id, 2), (f.user_id, 3)]
        assert waitlist_service.get_positions(class_service.id) == list(range(1, len(queue) + 1))

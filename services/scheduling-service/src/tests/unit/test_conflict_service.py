# services/scheduling-service/src/tests/unit/test_conflict_service.py
"""
Unit Tests for ConflictService
"""

import uuid
from datetime import time, timedelta

import pytest

from apps.core.models import Booking
from apps.core.services import ConflictService, ConflictDetail, intervals_overlap


class TestIntervalsOverlap:
    """Half-open interval overlap."""

    def test_overlapping(self, at, future_day):
        assert intervals_overlap(
            at(future_day, 10), at(future_day, 11),
            at(future_day, 10, 30), at(future_day, 11, 30),
        )

    def test_touching_intervals_do_not_overlap(self, at, future_day):
        assert not intervals_overlap(
            at(future_day, 10), at(future_day, 11),
            at(future_day, 11), at(future_day, 12),
        )
        assert not intervals_overlap(
            at(future_day, 11), at(future_day, 12),
            at(future_day, 10), at(future_day, 11),
        )

    def test_containment(self, at, future_day):
        assert intervals_overlap(
            at(future_day, 9), at(future_day, 12),
            at(future_day, 10), at(future_day, 11),
        )


@pytest.mark.django_db
class TestConflictService:
    """Tests for the individual conflict rules."""

    def setup_method(self):
        self.service = ConflictService()

    def test_no_conflicts_on_empty_calendar(self, organization_id, service, member, at, future_day):
        result = self.service.check_conflicts(
            organization_id,
            at(future_day, 10),
            at(future_day, 11),
            service_id=service.id,
            user_id=member.id,
        )

        assert not result.has_conflict
        assert result.to_dict() == {'has_conflict': False, 'conflicts': []}

    def test_staff_double_booking_is_symmetric(
        self, organization_id, create_booking, create_member, staff, create_availability, at, future_day
    ):
        create_availability(future_day)
        other = create_member()
        create_booking(staff_id=staff.id, start_time=at(future_day, 10), end_time=at(future_day, 11))

        later = self.service.check_conflicts(
            organization_id, at(future_day, 10, 30), at(future_day, 11, 30),
            staff_id=staff.id, user_id=other.id,
        )
        earlier = self.service.check_conflicts(
            organization_id, at(future_day, 9, 30), at(future_day, 10, 30),
            staff_id=staff.id, user_id=other.id,
        )

        assert len(later.of_type(ConflictDetail.STAFF)) == 1
        assert len(earlier.of_type(ConflictDetail.STAFF)) == 1
        assert 'Sam Coach' in later.conflicts[0].message

    def test_touching_bookings_do_not_conflict(
        self, organization_id, create_booking, create_member, staff, create_availability, at, future_day
    ):
        create_availability(future_day)
        create_booking(staff_id=staff.id, start_time=at(future_day, 10), end_time=at(future_day, 11))

        result = self.service.check_conflicts(
            organization_id, at(future_day, 11), at(future_day, 12),
            staff_id=staff.id, user_id=create_member().id,
        )

        assert not result.has_conflict

    def test_resource_conflict_names_resource(
        self, organization_id, create_booking, create_member, resource, at, future_day
    ):
        create_booking(resource_id=resource.id)

        result = self.service.check_conflicts(
            organization_id, at(future_day, 10, 15), at(future_day, 10, 45),
            resource_id=resource.id, user_id=create_member().id,
        )

        conflicts = result.of_type(ConflictDetail.RESOURCE)
        assert len(conflicts) == 1
        assert 'Studio A (Room)' in conflicts[0].message
        assert conflicts[0].details == {'resource_id': str(resource.id)}

    def test_member_cannot_hold_two_overlapping_bookings(
        self, organization_id, create_booking, member, at, future_day
    ):
        existing = create_booking()

        result = self.service.check_conflicts(
            organization_id, at(future_day, 10, 30), at(future_day, 11, 30),
            user_id=member.id,
        )

        conflicts = result.of_type(ConflictDetail.MEMBER)
        assert len(conflicts) == 1
        assert conflicts[0].booking_id == existing.id
        assert 'Jane Doe' in conflicts[0].message

    def test_cancelled_and_no_show_bookings_free_the_slot(
        self, organization_id, create_booking, member, at, future_day
    ):
        create_booking(status=Booking.Status.CANCELLED_BY_MEMBER)
        create_booking(status=Booking.Status.NO_SHOW)

        result = self.service.check_conflicts(
            organization_id, at(future_day, 10), at(future_day, 11),
            user_id=member.id,
        )

        assert not result.has_conflict

    def test_excluded_booking_is_ignored(self, organization_id, create_booking, member, at, future_day):
        existing = create_booking()

        result = self.service.check_conflicts(
            organization_id, at(future_day, 10), at(future_day, 11),
            user_id=member.id, exclude_booking_id=existing.id,
        )

        assert not result.has_conflict

    def test_other_organization_is_invisible(self, create_booking, member, at, future_day):
        create_booking()

        result = self.service.check_conflicts(
            uuid.uuid4(), at(future_day, 10), at(future_day, 11),
            user_id=member.id,
        )

        assert not result.has_conflict

    def test_staff_outside_availability(self, organization_id, staff, create_availability, at, future_day):
        create_availability(future_day, start_time=time(9, 0), end_time=time(12, 0))

        inside = self.service.check_conflicts(
            organization_id, at(future_day, 9), at(future_day, 10), staff_id=staff.id,
        )
        outside = self.service.check_conflicts(
            organization_id, at(future_day, 11, 30), at(future_day, 12, 30), staff_id=staff.id,
        )

        assert not inside.has_conflict
        assert len(outside.of_type(ConflictDetail.AVAILABILITY)) == 1

    def test_staff_without_any_availability_is_unavailable(self, organization_id, staff, at, future_day):
        result = self.service.check_conflicts(
            organization_id, at(future_day, 10), at(future_day, 11), staff_id=staff.id,
        )

        assert [c.type for c in result.conflicts] == [ConflictDetail.AVAILABILITY]

    def test_specific_date_overrides_weekly_window(
        self, organization_id, staff, create_availability, at, future_day
    ):
        create_availability(future_day, start_time=time(8, 0), end_time=time(18, 0))
        create_availability(
            future_day, start_time=time(14, 0), end_time=time(16, 0), specific_date=future_day
        )

        assert not self.service.is_staff_available(
            organization_id, staff.id, at(future_day, 9), at(future_day, 10)
        )
        assert self.service.is_staff_available(
            organization_id, staff.id, at(future_day, 14), at(future_day, 15)
        )

    def test_unavailable_window_does_not_count(
        self, organization_id, staff, create_availability, at, future_day
    ):
        create_availability(future_day, is_available=False)

        assert not self.service.is_staff_available(
            organization_id, staff.id, at(future_day, 10), at(future_day, 11)
        )

    def test_interval_crossing_midnight_is_unavailable(
        self, organization_id, staff, create_availability, at, future_day
    ):
        create_availability(future_day, start_time=time(0, 0), end_time=time(23, 59))
        create_availability(future_day + timedelta(days=1), start_time=time(0, 0), end_time=time(23, 59))

        assert not self.service.is_staff_available(
            organization_id, staff.id,
            at(future_day, 23), at(future_day + timedelta(days=1), 1),
        )

    def test_capacity_of_one_is_full_after_one_booking(
        self, organization_id, class_service, create_booking, create_member, at, future_day
    ):
        create_booking(service_id=class_service.id)

        result = self.service.check_conflicts(
            organization_id, at(future_day, 10), at(future_day, 11),
            service_id=class_service.id, user_id=create_member().id,
        )

        conflicts = result.of_type(ConflictDetail.CAPACITY)
        assert len(conflicts) == 1
        assert '(1/1)' in conflicts[0].message

    def test_unlimited_service_has_no_capacity_conflict(
        self, organization_id, service, create_booking, create_member, at, future_day
    ):
        for _ in range(3):
            create_booking(user_id=create_member().id)

        result = self.service.check_conflicts(
            organization_id, at(future_day, 10), at(future_day, 11),
            service_id=service.id, user_id=create_member().id,
        )

        assert not result.has_conflict

    def test_all_conflicts_are_reported_together(
        self, organization_id, class_service, create_booking, member, resource, at, future_day
    ):
        create_booking(service_id=class_service.id, resource_id=resource.id)

        result = self.service.check_conflicts(
            organization_id, at(future_day, 10), at(future_day, 11),
            service_id=class_service.id, resource_id=resource.id, user_id=member.id,
        )

        types = {c.type for c in result.conflicts}
        assert types == {ConflictDetail.RESOURCE, ConflictDetail.MEMBER, ConflictDetail.CAPACITY}

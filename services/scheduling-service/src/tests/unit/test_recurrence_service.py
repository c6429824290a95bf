# services/scheduling-service/src/tests/unit/test_recurrence_service.py
"""
Unit Tests for RecurrenceService
"""

import uuid
from datetime import datetime, time, timedelta

import pytest
import pytz

from apps.core.events import EventType, event_publisher
from apps.core.models import Booking, RecurringSchedule, RecurrenceException
from apps.core.services import (
    RecurrenceService,
    RecurrenceRuleError,
    SchedulingValidationError,
    EntityNotFoundError,
)


def utc(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=pytz.utc)


def definition(**kwargs):
    values = {
        'frequency': RecurringSchedule.Frequency.DAILY,
        'interval': 1,
        'dtstart': utc(2025, 1, 1, 9),
        'start_time': time(9, 0),
        'duration': 60,
        'timezone': 'UTC',
    }
    values.update(kwargs)
    return values


class TestRecurrenceExpansion:
    """Expansion of recurrence definitions, no database needed."""

    def setup_method(self):
        self.service = RecurrenceService()

    def test_daily_with_count(self):
        occurrences = self.service.expand(
            definition(count=3), utc(2025, 1, 1), utc(2025, 1, 31)
        )

        assert occurrences == [
            utc(2025, 1, 1, 9), utc(2025, 1, 2, 9), utc(2025, 1, 3, 9),
        ]

    def test_weekly_by_day(self):
        occurrences = self.service.expand(
            definition(frequency='WEEKLY', by_day=['MO', 'WE']),
            utc(2025, 1, 1), utc(2025, 1, 14, 23),
        )

        # 2025-01-01 is a Wednesday
        assert [o.day for o in occurrences] == [1, 6, 8, 13]

    def test_interval(self):
        occurrences = self.service.expand(
            definition(interval=2), utc(2025, 1, 1), utc(2025, 1, 7, 23)
        )

        assert [o.day for o in occurrences] == [1, 3, 5, 7]

    def test_monthly_last_friday(self):
        occurrences = self.service.expand(
            definition(frequency='MONTHLY', by_day=['-1FR']),
            utc(2025, 1, 1), utc(2025, 3, 31, 23),
        )

        assert [o.date().isoformat() for o in occurrences] == [
            '2025-01-31', '2025-02-28', '2025-03-28',
        ]

    def test_until_is_inclusive(self):
        occurrences = self.service.expand(
            definition(until=utc(2025, 1, 3, 9)), utc(2025, 1, 1), utc(2025, 1, 31)
        )

        assert len(occurrences) == 3

    def test_exdates_are_removed(self):
        occurrences = self.service.expand(
            definition(count=3, exdates=['2025-01-02T09:00:00+00:00']),
            utc(2025, 1, 1), utc(2025, 1, 31),
        )

        assert occurrences == [utc(2025, 1, 1, 9), utc(2025, 1, 3, 9)]

    def test_local_time_is_kept_across_dst(self):
        occurrences = self.service.expand(
            definition(
                dtstart=utc(2025, 3, 7, 14),
                timezone='America/New_York',
                count=4,
            ),
            utc(2025, 3, 1), utc(2025, 3, 31),
        )

        # New York moves to daylight time on 2025-03-09
        assert [o.hour for o in occurrences] == [14, 14, 13, 13]

    def test_window_clips_occurrences(self):
        occurrences = self.service.expand(
            definition(), utc(2025, 1, 10), utc(2025, 1, 12, 9)
        )

        assert occurrences == [
            utc(2025, 1, 10, 9), utc(2025, 1, 11, 9), utc(2025, 1, 12, 9),
        ]


class TestRecurrenceValidation:
    """Validation of recurrence definitions."""

    def setup_method(self):
        self.service = RecurrenceService()

    def test_valid_definition(self):
        assert self.service.validate_definition(definition(count=5)) == []

    @pytest.mark.parametrize('overrides, fragment', [
        ({'frequency': 'HOURLY'}, 'Unsupported frequency'),
        ({'interval': 0}, 'Interval'),
        ({'by_day': ['XX']}, 'Invalid weekday'),
        ({'frequency': 'WEEKLY', 'by_day': ['+1MO']}, 'requires MONTHLY or YEARLY'),
        ({'frequency': 'MONTHLY', 'by_month_day': [0]}, 'out of range'),
        ({'frequency': 'MONTHLY', 'by_month_day': [32]}, 'out of range'),
        ({'frequency': 'YEARLY', 'by_month': [13]}, 'out of range'),
        ({'by_year_day': [10]}, 'requires YEARLY'),
        ({'by_set_pos': [1]}, 'requires at least one other by-rule'),
        ({'count': 0}, 'Count'),
        ({'timezone': 'Mars/Olympus'}, 'Unknown timezone'),
        ({'until': utc(2024, 12, 1)}, 'until must not be before dtstart'),
        ({'duration': 0}, 'Duration'),
        ({'exdates': ['not-a-date']}, 'Invalid exdate'),
    ])
    def test_invalid_definitions(self, overrides, fragment):
        errors = self.service.validate_definition(definition(**overrides))

        assert any(fragment in error for error in errors), errors

    def test_impossible_month_day(self):
        errors = self.service.validate_definition(
            definition(frequency='YEARLY', by_month=[2], by_month_day=[30])
        )

        assert any('never occurs' in error for error in errors)

    def test_ensure_valid_collects_all_errors(self):
        with pytest.raises(RecurrenceRuleError) as exc_info:
            self.service.ensure_valid(definition(interval=0, count=0))

        assert len(exc_info.value.errors) == 2

    def test_validate_recurrence_preview(self):
        report = self.service.validate_recurrence(definition(count=3))

        assert report['valid'] is True
        assert report['errors'] == []
        assert report['preview'] == [
            utc(2025, 1, 1, 9), utc(2025, 1, 2, 9), utc(2025, 1, 3, 9),
        ]

    def test_validate_recurrence_accepts_strings(self):
        report = self.service.validate_recurrence(definition(
            dtstart='2025-01-01T09:00:00Z', start_time='09:00', frequency='daily', count=2,
        ))

        assert report['valid'] is True
        assert len(report['preview']) == 2


class TestRRuleInterchange:
    """RFC 5545 RRULE parsing and rendering."""

    def setup_method(self):
        self.service = RecurrenceService()

    def test_parse(self):
        parsed = self.service.parse_rrule_string('RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE;COUNT=10')

        assert parsed == {
            'frequency': 'WEEKLY',
            'interval': 2,
            'by_day': ['MO', 'WE'],
            'count': 10,
        }

    def test_parse_until(self):
        parsed = self.service.parse_rrule_string('FREQ=DAILY;UNTIL=20250131T090000Z')

        assert parsed['until'] == utc(2025, 1, 31, 9)

    def test_render(self):
        rendered = self.service.to_rrule_string({
            'frequency': 'MONTHLY',
            'interval': 1,
            'by_day': ['-1FR'],
            'count': 6,
            'week_start': 'MO',
        })

        assert rendered == 'FREQ=MONTHLY;BYDAY=-1FR;COUNT=6'

    def test_render_parse_agree(self):
        text = 'FREQ=YEARLY;INTERVAL=2;BYMONTHDAY=15;BYMONTH=3;WKST=SU'

        assert self.service.to_rrule_string(self.service.parse_rrule_string(text)) == text

    @pytest.mark.parametrize('text', [
        'INTERVAL=2',
        'FREQ=DAILY;FOO=1',
        'FREQ=DAILY;COUNT=abc',
        'FREQ=DAILY;COUNT',
    ])
    def test_parse_rejects(self, text):
        with pytest.raises(RecurrenceRuleError):
            self.service.parse_rrule_string(text)


@pytest.mark.django_db
class TestScheduleManagement:
    """Tests for schedule CRUD and exceptions."""

    def setup_method(self):
        self.service = RecurrenceService()

    def test_create_schedule(self, organization_id, service, member, at, future_day):
        schedule = self.service.create_schedule(
            organization_id=organization_id,
            service_id=service.id,
            user_id=member.id,
            dtstart=at(future_day, 9),
            start_time=time(9, 0),
            duration=45,
            frequency='WEEKLY',
            by_day=['mo', 'th'],
            title='Strength',
        )

        assert schedule.frequency == RecurringSchedule.Frequency.WEEKLY
        assert schedule.by_day == ['MO', 'TH']
        assert schedule.title == 'Strength'
        assert len(event_publisher.events_of_type(EventType.SCHEDULE_CREATED)) == 1

    def test_create_schedule_from_rrule_string(self, organization_id, service, member, at, future_day):
        schedule = self.service.create_schedule(
            organization_id=organization_id,
            service_id=service.id,
            user_id=member.id,
            dtstart=at(future_day, 9),
            start_time=time(9, 0),
            duration=60,
            rrule_string='FREQ=DAILY;INTERVAL=3;COUNT=4',
        )

        assert schedule.frequency == 'DAILY'
        assert schedule.interval == 3
        assert schedule.count == 4

    def test_create_schedule_requires_frequency(self, organization_id, service, member, at, future_day):
        with pytest.raises(SchedulingValidationError):
            self.service.create_schedule(
                organization_id=organization_id,
                service_id=service.id,
                user_id=member.id,
                dtstart=at(future_day, 9),
                start_time=time(9, 0),
                duration=60,
            )

    def test_create_invalid_schedule(self, organization_id, service, member, at, future_day):
        with pytest.raises(RecurrenceRuleError):
            self.service.create_schedule(
                organization_id=organization_id,
                service_id=service.id,
                user_id=member.id,
                dtstart=at(future_day, 9),
                start_time=time(9, 0),
                duration=60,
                frequency='WEEKLY',
                by_day=['+2MO'],
            )

        assert RecurringSchedule.objects.count() == 0

    def test_create_schedule_unknown_service(self, organization_id, member, at, future_day):
        with pytest.raises(EntityNotFoundError):
            self.service.create_schedule(
                organization_id=organization_id,
                service_id=uuid.uuid4(),
                user_id=member.id,
                dtstart=at(future_day, 9),
                start_time=time(9, 0),
                duration=60,
                frequency='DAILY',
            )

    def test_generate_occurrences_for_dates(self, create_schedule, future_day):
        schedule = create_schedule(count=5)

        occurrences = self.service.generate_occurrences(
            schedule.id, future_day, future_day + timedelta(days=1)
        )

        assert len(occurrences) == 2

    def test_cancelled_exception_removes_occurrence(self, organization_id, create_schedule, at, future_day):
        schedule = create_schedule(count=3)
        second = at(future_day + timedelta(days=1), 9)

        exception = self.service.create_exception(
            schedule.id,
            organization_id,
            original_date_time=second,
            exception_type=RecurrenceException.ExceptionType.CANCELLED,
        )
        occurrences = self.service.generate_occurrences(
            schedule.id, at(future_day, 0), at(future_day + timedelta(days=5), 0)
        )

        assert exception.exception_type == 'CANCELLED'
        assert second not in occurrences
        assert len(occurrences) == 2

    def test_exception_for_non_occurrence_is_rejected(self, organization_id, create_schedule, at, future_day):
        schedule = create_schedule(count=3)

        with pytest.raises(SchedulingValidationError):
            self.service.create_exception(
                schedule.id,
                organization_id,
                original_date_time=at(future_day, 10),
                exception_type=RecurrenceException.ExceptionType.CANCELLED,
            )

    def test_duplicate_exception_is_rejected(self, organization_id, create_schedule, at, future_day):
        schedule = create_schedule(count=3)
        self.service.create_exception(
            schedule.id, organization_id,
            original_date_time=at(future_day, 9),
            exception_type=RecurrenceException.ExceptionType.CANCELLED,
        )

        with pytest.raises(SchedulingValidationError):
            self.service.create_exception(
                schedule.id, organization_id,
                original_date_time=at(future_day, 9),
                exception_type=RecurrenceException.ExceptionType.CANCELLED,
            )

    def test_rescheduled_exception_requires_new_time(self, organization_id, create_schedule, at, future_day):
        schedule = create_schedule(count=3)

        with pytest.raises(SchedulingValidationError):
            self.service.create_exception(
                schedule.id, organization_id,
                original_date_time=at(future_day, 9),
                exception_type=RecurrenceException.ExceptionType.RESCHEDULED,
            )

    def test_delete_schedule_removes_future_bookings(self, organization_id, create_schedule, at, future_day):
        schedule = create_schedule(count=3)
        self.service.materialize_occurrences(schedule.id, at(future_day + timedelta(days=5), 0))

        deleted = self.service.delete_schedule(schedule.id, organization_id)

        assert deleted == 3
        assert not RecurringSchedule.objects.filter(id=schedule.id).exists()
        assert Booking.objects.count() == 0
        assert len(event_publisher.events_of_type(EventType.SCHEDULE_DELETED)) == 1

    def test_get_schedule_of_other_organization(self, create_schedule):
        schedule = create_schedule()

        with pytest.raises(EntityNotFoundError):
            self.service.get_schedule(schedule.id, uuid.uuid4())


@pytest.mark.django_db
class TestMaterialization:
    """Tests for turning occurrences into bookings."""

    def setup_method(self):
        self.service = RecurrenceService()

    def test_materialize_creates_bookings(self, create_schedule, at, future_day):
        schedule = create_schedule(count=3, title='Morning Run')
        horizon = at(future_day + timedelta(days=5), 0)

        result = self.service.materialize_occurrences(schedule.id, horizon)

        assert len(result.created) == 3
        assert result.skipped == []
        booking = result.created[0]
        assert booking.recurring_schedule_id == schedule.id
        assert booking.instance_date == at(future_day, 9)
        assert booking.end_time - booking.start_time == timedelta(minutes=60)
        assert booking.title == 'Morning Run'

        schedule.refresh_from_db()
        assert schedule.materialized_until == horizon

    def test_materialize_is_idempotent(self, create_schedule, at, future_day):
        schedule = create_schedule(count=3)
        horizon = at(future_day + timedelta(days=5), 0)

        self.service.materialize_occurrences(schedule.id, horizon)
        again = self.service.materialize_occurrences(schedule.id, horizon)

        assert again.created == []
        assert Booking.objects.filter(recurring_schedule_id=schedule.id).count() == 3

    def test_cancelled_instance_is_not_recreated(self, organization_id, create_schedule, at, future_day):
        schedule = create_schedule(count=3)
        horizon = at(future_day + timedelta(days=5), 0)
        first = self.service.materialize_occurrences(schedule.id, horizon).created[0]
        first.status = Booking.Status.CANCELLED_BY_MEMBER
        first.save()

        again = self.service.materialize_occurrences(schedule.id, horizon)

        assert again.created == []

    def test_conflicting_occurrence_is_skipped(self, create_schedule, create_booking, at, future_day):
        schedule = create_schedule(count=3)
        create_booking(
            start_time=at(future_day + timedelta(days=1), 9),
            end_time=at(future_day + timedelta(days=1), 10),
        )

        result = self.service.materialize_occurrences(
            schedule.id, at(future_day + timedelta(days=5), 0)
        )

        assert len(result.created) == 2
        assert len(result.skipped) == 1
        assert result.skipped[0]['conflicts'][0]['type'] == 'member'
        event = event_publisher.events_of_type(EventType.SCHEDULE_MATERIALIZED)[0]
        assert event['payload']['created'] == 2
        assert event['payload']['skipped'] == 1

    def test_cancelling_occurrence_cancels_its_booking(self, organization_id, create_schedule, at, future_day):
        schedule = create_schedule(count=3)
        self.service.materialize_occurrences(schedule.id, at(future_day + timedelta(days=5), 0))

        self.service.create_exception(
            schedule.id, organization_id,
            original_date_time=at(future_day, 9),
            exception_type=RecurrenceException.ExceptionType.CANCELLED,
            reason='Holiday',
        )

        booking = Booking.objects.get(recurring_schedule_id=schedule.id, instance_date=at(future_day, 9))
        assert booking.status == Booking.Status.CANCELLED_BY_STAFF
        assert booking.cancellation_reason == 'Holiday'

    def test_rescheduling_occurrence_moves_its_booking(self, organization_id, create_schedule, at, future_day):
        schedule = create_schedule(count=3)
        self.service.materialize_occurrences(schedule.id, at(future_day + timedelta(days=5), 0))

        self.service.create_exception(
            schedule.id, organization_id,
            original_date_time=at(future_day, 9),
            exception_type=RecurrenceException.ExceptionType.RESCHEDULED,
            new_start_time=at(future_day, 15),
        )

        booking = Booking.objects.get(recurring_schedule_id=schedule.id, instance_date=at(future_day, 9))
        assert booking.start_time == at(future_day, 15)
        assert booking.end_time == at(future_day, 16)

    def test_rescheduled_occurrence_materializes_at_new_time(
        self, organization_id, create_schedule, at, future_day
    ):
        schedule = create_schedule(count=3)
        self.service.create_exception(
            schedule.id, organization_id,
            original_date_time=at(future_day, 9),
            exception_type=RecurrenceException.ExceptionType.RESCHEDULED,
            new_start_time=at(future_day, 17),
        )

        result = self.service.materialize_occurrences(
            schedule.id, at(future_day + timedelta(days=5), 0)
        )

        starts = sorted(b.start_time for b in result.created)
        assert at(future_day, 17) in starts
        assert at(future_day, 9) not in starts
        assert len(starts) == 3

    def test_recurrence_change_regenerates_bookings(self, organization_id, create_schedule, at, future_day):
        schedule = create_schedule(count=3)
        self.service.materialize_occurrences(schedule.id, at(future_day + timedelta(days=6), 0))

        self.service.update_schedule(schedule.id, organization_id, interval=2)

        starts = sorted(
            Booking.objects.filter(recurring_schedule_id=schedule.id)
            .values_list('start_time', flat=True)
        )
        assert starts == [
            at(future_day, 9),
            at(future_day + timedelta(days=2), 9),
            at(future_day + timedelta(days=4), 9),
        ]
        event = event_publisher.events_of_type(EventType.SCHEDULE_UPDATED)[0]
        assert event['payload']['recurrence_changed'] is True

    def test_title_change_keeps_bookings(self, organization_id, create_schedule, at, future_day):
        schedule = create_schedule(count=2)
        created = self.service.materialize_occurrences(
            schedule.id, at(future_day + timedelta(days=5), 0)
        ).created

        self.service.update_schedule(schedule.id, organization_id, title='Renamed')

        assert set(
            Booking.objects.filter(recurring_schedule_id=schedule.id).values_list('id', flat=True)
        ) == {b.id for b in created}

    def test_inactive_schedule_is_not_materialized(self, create_schedule, at, future_day):
        schedule = create_schedule(count=3, is_active=False)

        result = self.service.materialize_occurrences(
            schedule.id, at(future_day + timedelta(days=5), 0)
        )

        assert result.created == []

    def test_materialize_all(self, create_schedule, at, future_day):
        create_schedule(count=2)
        create_schedule(count=1, is_active=False)

        results = self.service.materialize_all(at(future_day + timedelta(days=5), 0))

        assert len(results) == 1
        assert len(results[0].created) == 2

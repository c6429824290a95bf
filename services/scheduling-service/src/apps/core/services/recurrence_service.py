# services/scheduling-service/src/apps/core/services/recurrence_service.py
"""
Recurrence Service

Recurring schedule management and the recurrence engine: validation of
recurrence definitions, expansion into occurrences, exceptions, and
materialization of occurrences into bookings.
"""

import re
import uuid
import calendar
import logging
from dataclasses import dataclass, field
from datetime import datetime, date, time, timedelta
from itertools import islice
from typing import Optional, Dict, Any, List

import pytz
from dateutil import parser as date_parser
from dateutil.rrule import (
    rrule, weekday, YEARLY, MONTHLY, WEEKLY, DAILY,
    MO, TU, WE, TH, FR, SA, SU,
)
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.core.models import (
    Booking,
    RecurringSchedule,
    RecurrenceException,
    Service,
    Member,
    Resource,
    Location,
)
from apps.core.events import (
    publish_schedule_created,
    publish_schedule_updated,
    publish_schedule_deleted,
    publish_schedule_materialized,
)
from .booking_service import BookingService

logger = logging.getLogger(__name__)


FREQUENCY_MAP = {
    RecurringSchedule.Frequency.DAILY: DAILY,
    RecurringSchedule.Frequency.WEEKLY: WEEKLY,
    RecurringSchedule.Frequency.MONTHLY: MONTHLY,
    RecurringSchedule.Frequency.YEARLY: YEARLY,
}

WEEKDAY_MAP = {
    RecurringSchedule.Weekday.MONDAY: MO,
    RecurringSchedule.Weekday.TUESDAY: TU,
    RecurringSchedule.Weekday.WEDNESDAY: WE,
    RecurringSchedule.Weekday.THURSDAY: TH,
    RecurringSchedule.Weekday.FRIDAY: FR,
    RecurringSchedule.Weekday.SATURDAY: SA,
    RecurringSchedule.Weekday.SUNDAY: SU,
}

WEEKDAY_TOKEN = re.compile(r'^([+-]?\d{1,2})?(MO|TU|WE|TH|FR|SA|SU)$')

# RRULE part name -> (definition key, kind)
RRULE_PARTS = {
    'FREQ': ('frequency', 'str'),
    'INTERVAL': ('interval', 'int'),
    'BYDAY': ('by_day', 'str_list'),
    'BYMONTHDAY': ('by_month_day', 'int_list'),
    'BYMONTH': ('by_month', 'int_list'),
    'BYSETPOS': ('by_set_pos', 'int_list'),
    'BYYEARDAY': ('by_year_day', 'int_list'),
    'BYWEEKNO': ('by_week_no', 'int_list'),
    'COUNT': ('count', 'int'),
    'UNTIL': ('until', 'datetime'),
    'WKST': ('week_start', 'str'),
}

# (field, lowest, highest, negatives allowed)
BY_RULE_RANGES = [
    ('by_month_day', 1, 31, True),
    ('by_month', 1, 12, False),
    ('by_set_pos', 1, 366, True),
    ('by_year_day', 1, 366, True),
    ('by_week_no', 1, 53, True),
]

SCHEDULE_FIELDS = [
    'title', 'description', 'staff_id', 'resource_id', 'location_id',
    'is_active',
] + RecurringSchedule.RECURRENCE_FIELDS


@dataclass
class MaterializationResult:
    """Outcome of materializing a schedule up to a horizon."""
    schedule_id: uuid.UUID
    horizon: datetime
    created: List[Booking] = field(default_factory=list)
    skipped: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'schedule_id': str(self.schedule_id),
            'horizon': self.horizon.isoformat(),
            'created': [str(b.id) for b in self.created],
            'skipped': self.skipped,
        }


class RecurrenceService:
    """
    Service for recurring schedules.

    Handles:
    - Recurrence validation and expansion
    - RRULE string interchange
    - Schedule CRUD and exceptions
    - Materialization of occurrences into bookings
    """

    def __init__(self, booking_service: BookingService = None):
        self.booking_service = booking_service or BookingService()

    # ==========================================================================
    # Validation
    # ==========================================================================

    def validate_definition(self, definition: Dict[str, Any]) -> List[str]:
        """Return every problem with a recurrence definition."""
        errors = []
        frequency = definition.get('frequency')

        if frequency not in FREQUENCY_MAP:
            errors.append(f"Unsupported frequency: {frequency!r}")

        interval = definition.get('interval', 1)
        if not self._is_int(interval) or interval < 1:
            errors.append("Interval must be an integer of at least 1")

        for token in definition.get('by_day') or []:
            match = WEEKDAY_TOKEN.match(str(token).upper())
            if not match:
                errors.append(f"Invalid weekday in by_day: {token!r}")
                continue
            if match.group(1):
                ordinal = int(match.group(1))
                if ordinal == 0 or abs(ordinal) > 53:
                    errors.append(f"Weekday ordinal out of range: {token!r}")
                elif frequency not in (RecurringSchedule.Frequency.MONTHLY, RecurringSchedule.Frequency.YEARLY):
                    errors.append(
                        f"Ordinal weekday {token!r} requires MONTHLY or YEARLY frequency"
                    )

        for name, lowest, highest, negatives in BY_RULE_RANGES:
            for value in definition.get(name) or []:
                if not self._is_int(value):
                    errors.append(f"{name} values must be integers, got {value!r}")
                elif value == 0 or abs(value) > highest or (value < 0 and not negatives):
                    bound = f"-{highest}..-{lowest} or " if negatives else ''
                    errors.append(f"{name} value {value} out of range ({bound}{lowest}..{highest})")

        if definition.get('by_month_day') and frequency == RecurringSchedule.Frequency.WEEKLY:
            errors.append("by_month_day cannot be combined with WEEKLY frequency")

        if definition.get('by_year_day') and frequency != RecurringSchedule.Frequency.YEARLY:
            errors.append("by_year_day requires YEARLY frequency")

        if definition.get('by_week_no') and frequency != RecurringSchedule.Frequency.YEARLY:
            errors.append("by_week_no requires YEARLY frequency")

        if definition.get('by_set_pos') and not any(
            definition.get(name) for name in
            ('by_day', 'by_month_day', 'by_month', 'by_year_day', 'by_week_no')
        ):
            errors.append("by_set_pos requires at least one other by-rule")

        count = definition.get('count')
        if count is not None and (not self._is_int(count) or count < 1):
            errors.append("Count must be a positive integer")

        week_start = definition.get('week_start') or RecurringSchedule.Weekday.MONDAY
        if week_start not in WEEKDAY_MAP:
            errors.append(f"Invalid week start: {week_start!r}")

        tz_name = definition.get('timezone') or 'UTC'
        try:
            pytz.timezone(tz_name)
        except pytz.UnknownTimeZoneError:
            errors.append(f"Unknown timezone: {tz_name!r}")

        dtstart = definition.get('dtstart')
        if not isinstance(dtstart, datetime):
            errors.append("dtstart is required")

        if not isinstance(definition.get('start_time'), time):
            errors.append("start_time is required")

        duration = definition.get('duration')
        if not self._is_int(duration) or duration < 1:
            errors.append("Duration must be a positive number of minutes")

        if isinstance(dtstart, datetime):
            for bound_name in ('until', 'dtend'):
                bound = definition.get(bound_name)
                if bound is not None and self._aware(bound) < self._aware(dtstart):
                    errors.append(f"{bound_name} must not be before dtstart")

        for value in definition.get('exdates') or []:
            try:
                self._parse_timestamp(value)
            except (ValueError, OverflowError, TypeError):
                errors.append(f"Invalid exdate: {value!r}")

        errors.extend(self._impossible_month_days(definition))

        if not errors and self._first_occurrence(definition) is None:
            errors.append("Recurrence definition produces no occurrences")

        return errors

    def ensure_valid(self, definition: Dict[str, Any]):
        """Raise RecurrenceRuleError when the definition is malformed."""
        from . import RecurrenceRuleError

        errors = self.validate_definition(definition)
        if errors:
            raise RecurrenceRuleError(
                f"Invalid recurrence definition: {'; '.join(errors)}",
                errors=errors,
            )

    def validate_recurrence(self, definition: Dict[str, Any]) -> Dict[str, Any]:
        """Validation report with a preview of the first occurrences."""
        definition = self._normalize(definition)
        errors = self.validate_definition(definition)
        preview = []

        if not errors:
            preview_count = getattr(settings, 'RECURRENCE_PREVIEW_COUNT', 10)
            preview = list(islice(self._iter_occurrences(definition), preview_count))

        return {
            'valid': not errors,
            'errors': errors,
            'preview': preview,
        }

    # ==========================================================================
    # Expansion
    # ==========================================================================

    def build_rule(self, definition: Dict[str, Any]) -> rrule:
        """
        Build a dateutil rule in the schedule's local wall-clock time.

        The rule is naive; occurrences are localized afterwards so that
        daylight saving changes keep the local start time.
        """
        tz = pytz.timezone(definition.get('timezone') or 'UTC')
        local_start = self._aware(definition['dtstart']).astimezone(tz)
        first = datetime.combine(local_start.date(), definition['start_time'])

        kwargs = {
            'dtstart': first,
            'interval': definition.get('interval') or 1,
            'wkst': WEEKDAY_MAP[definition.get('week_start') or RecurringSchedule.Weekday.MONDAY],
        }

        # When both are set, count is applied here and until on output.
        if definition.get('count'):
            kwargs['count'] = definition['count']
        elif definition.get('until'):
            kwargs['until'] = self._aware(definition['until']).astimezone(tz).replace(tzinfo=None)

        if definition.get('by_day'):
            kwargs['byweekday'] = [self._to_weekday(token) for token in definition['by_day']]
        if definition.get('by_month_day'):
            kwargs['bymonthday'] = definition['by_month_day']
        if definition.get('by_month'):
            kwargs['bymonth'] = definition['by_month']
        if definition.get('by_set_pos'):
            kwargs['bysetpos'] = definition['by_set_pos']
        if definition.get('by_year_day'):
            kwargs['byyearday'] = definition['by_year_day']
        if definition.get('by_week_no'):
            kwargs['byweekno'] = definition['by_week_no']

        return rrule(FREQUENCY_MAP[definition['frequency']], **kwargs)

    def expand(
        self,
        definition: Dict[str, Any],
        window_start: datetime,
        window_end: datetime,
        exceptions: List[RecurrenceException] = None
    ) -> List[datetime]:
        """
        Occurrence start times within [window_start, window_end], in UTC.

        Occurrences matching an exdate or an exception's original time
        (cancelled or rescheduled) are removed.
        """
        from . import RecurrenceRuleError

        try:
            rule = self.build_rule(definition)
        except (KeyError, ValueError, TypeError) as e:
            raise RecurrenceRuleError(f"Cannot expand recurrence definition: {e}")

        tz = pytz.timezone(definition.get('timezone') or 'UTC')
        window_start = self._aware(window_start)
        window_end = self._aware(window_end)

        # Widen by a day so DST offsets cannot clip the naive search
        candidates = rule.between(
            window_start.astimezone(tz).replace(tzinfo=None) - timedelta(days=1),
            window_end.astimezone(tz).replace(tzinfo=None) + timedelta(days=1),
            inc=True,
        )

        excluded = set(self._parse_timestamp(v) for v in definition.get('exdates') or [])
        excluded.update(e.original_date_time for e in exceptions or [])
        upper_bound = self._upper_bound(definition)

        occurrences = []
        for naive in candidates:
            occurrence = tz.localize(naive)
            if occurrence < window_start or occurrence > window_end:
                continue
            if upper_bound and occurrence > upper_bound:
                continue
            if occurrence in excluded:
                continue
            occurrences.append(occurrence.astimezone(pytz.utc))

        return occurrences

    def generate_occurrences(
        self,
        schedule_id: uuid.UUID,
        window_start,
        window_end,
        organization_id: uuid.UUID = None
    ) -> List[datetime]:
        """Occurrences of a stored schedule within a window, exceptions removed."""
        schedule = self.get_schedule(schedule_id, organization_id)
        definition = schedule.recurrence_definition()
        self.ensure_valid(definition)

        tz = pytz.timezone(schedule.timezone or 'UTC')
        if not isinstance(window_start, datetime):
            window_start = tz.localize(datetime.combine(window_start, time.min))
        if not isinstance(window_end, datetime):
            window_end = tz.localize(datetime.combine(window_end, time.max))

        return self.expand(
            definition,
            window_start,
            window_end,
            exceptions=list(schedule.exceptions.all()),
        )

    # ==========================================================================
    # RRULE Interchange
    # ==========================================================================

    def to_rrule_string(self, definition: Dict[str, Any]) -> str:
        """Render the rule part of a definition as an RFC 5545 RRULE value."""
        parts = [f"FREQ={definition['frequency']}"]

        if (definition.get('interval') or 1) != 1:
            parts.append(f"INTERVAL={definition['interval']}")

        for part, (key, kind) in RRULE_PARTS.items():
            if part in ('FREQ', 'INTERVAL'):
                continue
            value = definition.get(key)
            if value in (None, [], ''):
                continue
            if part == 'WKST' and value == RecurringSchedule.Weekday.MONDAY:
                continue
            if kind in ('str_list', 'int_list'):
                parts.append(f"{part}={','.join(str(v) for v in value)}")
            elif kind == 'datetime':
                parts.append(f"{part}={self._aware(value).astimezone(pytz.utc):%Y%m%dT%H%M%SZ}")
            else:
                parts.append(f"{part}={value}")

        return ';'.join(parts)

    def parse_rrule_string(self, value: str) -> Dict[str, Any]:
        """Parse an RRULE value into definition fields."""
        from . import RecurrenceRuleError

        text = value.strip()
        if text.upper().startswith('RRULE:'):
            text = text[len('RRULE:'):]

        definition = {}
        for chunk in filter(None, text.split(';')):
            if '=' not in chunk:
                raise RecurrenceRuleError(f"Malformed RRULE part: {chunk!r}")
            name, raw = chunk.split('=', 1)
            name = name.strip().upper()
            if name not in RRULE_PARTS:
                raise RecurrenceRuleError(f"Unsupported RRULE part: {name}")

            key, kind = RRULE_PARTS[name]
            try:
                if kind == 'int':
                    definition[key] = int(raw)
                elif kind == 'int_list':
                    definition[key] = [int(v) for v in raw.split(',')]
                elif kind == 'str_list':
                    definition[key] = [v.strip().upper() for v in raw.split(',')]
                elif kind == 'datetime':
                    definition[key] = self._parse_timestamp(raw)
                else:
                    definition[key] = raw.strip().upper()
            except (ValueError, OverflowError) as e:
                raise RecurrenceRuleError(f"Invalid value for {name}: {raw!r} ({e})")

        if 'frequency' not in definition:
            raise RecurrenceRuleError("RRULE must include FREQ")

        return definition

    # ==========================================================================
    # Schedule CRUD
    # ==========================================================================

    @transaction.atomic
    def create_schedule(
        self,
        organization_id: uuid.UUID,
        service_id: uuid.UUID,
        user_id: uuid.UUID,
        dtstart: datetime,
        start_time: time,
        duration: int,
        frequency: str = None,
        rrule_string: str = None,
        created_by: uuid.UUID = None,
        **kwargs
    ) -> RecurringSchedule:
        """Create a recurring schedule after validating its definition."""
        from . import SchedulingValidationError

        self._validate_references(
            organization_id,
            service_id=service_id,
            user_id=user_id,
            staff_id=kwargs.get('staff_id'),
            resource_id=kwargs.get('resource_id'),
            location_id=kwargs.get('location_id'),
        )

        if rrule_string:
            kwargs.update(self.parse_rrule_string(rrule_string))
            frequency = kwargs.pop('frequency')

        if not frequency:
            raise SchedulingValidationError("Either frequency or rrule_string is required")

        definition = self._normalize({
            **{key: kwargs[key] for key in RecurringSchedule.RECURRENCE_FIELDS if key in kwargs},
            'frequency': frequency,
            'dtstart': dtstart,
            'start_time': start_time,
            'duration': duration,
        })
        definition.setdefault('interval', 1)
        definition.setdefault('week_start', RecurringSchedule.Weekday.MONDAY)
        definition.setdefault('timezone', 'UTC')
        self.ensure_valid(definition)

        extra = {
            key: value for key, value in kwargs.items()
            if key in SCHEDULE_FIELDS and key not in definition
        }

        schedule = RecurringSchedule.objects.create(
            organization_id=organization_id,
            service_id=service_id,
            user_id=user_id,
            created_by=created_by,
            **definition,
            **extra
        )

        logger.info(
            f"Created {schedule.frequency} recurring schedule {schedule.id} "
            f"for service {service_id}"
        )
        publish_schedule_created(schedule)

        return schedule

    def get_schedule(
        self,
        schedule_id: uuid.UUID,
        organization_id: uuid.UUID = None,
        for_update: bool = False
    ) -> RecurringSchedule:
        """Get a schedule by ID, scoped to an organization when given."""
        from . import EntityNotFoundError

        queryset = RecurringSchedule.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        if organization_id:
            queryset = queryset.filter(organization_id=organization_id)

        try:
            return queryset.get(id=schedule_id)
        except RecurringSchedule.DoesNotExist:
            raise EntityNotFoundError(f"Recurring schedule {schedule_id} not found")

    def list_schedules(
        self,
        organization_id: uuid.UUID,
        service_id: uuid.UUID = None,
        is_active: bool = None
    ) -> List[RecurringSchedule]:
        """List schedules with filters."""
        queryset = RecurringSchedule.objects.filter(organization_id=organization_id)

        if service_id:
            queryset = queryset.filter(service_id=service_id)

        if is_active is not None:
            queryset = queryset.filter(is_active=is_active)

        return list(queryset.order_by('dtstart'))

    @transaction.atomic
    def update_schedule(
        self,
        schedule_id: uuid.UUID,
        organization_id: uuid.UUID,
        **kwargs
    ) -> RecurringSchedule:
        """
        Apply supplied fields to a schedule.

        A change to any recurrence field re-validates the definition and
        regenerates the future materialized bookings.
        """
        schedule = self.get_schedule(schedule_id, organization_id, for_update=True)

        if kwargs.get('rrule_string'):
            kwargs.update(self.parse_rrule_string(kwargs.pop('rrule_string')))
        kwargs.pop('rrule_string', None)

        self._validate_references(
            organization_id,
            staff_id=kwargs.get('staff_id'),
            resource_id=kwargs.get('resource_id'),
            location_id=kwargs.get('location_id'),
        )

        previous = schedule.recurrence_definition()
        for key, value in kwargs.items():
            if key in SCHEDULE_FIELDS:
                setattr(schedule, key, value)

        definition = self._normalize(schedule.recurrence_definition())
        recurrence_changed = self.has_recurrence_changes(previous, definition)

        if recurrence_changed:
            self.ensure_valid(definition)

        for key, value in definition.items():
            setattr(schedule, key, value)

        schedule.save()

        if recurrence_changed:
            self._regenerate(schedule)

        logger.info(
            f"Updated recurring schedule {schedule.id}"
            f"{' (recurrence changed)' if recurrence_changed else ''}"
        )
        publish_schedule_updated(schedule, recurrence_changed=recurrence_changed)

        return schedule

    def has_recurrence_changes(
        self,
        previous: Dict[str, Any],
        current: Dict[str, Any]
    ) -> bool:
        return any(
            self._normalize({key: previous.get(key)}) != self._normalize({key: current.get(key)})
            for key in RecurringSchedule.RECURRENCE_FIELDS
        )

    @transaction.atomic
    def delete_schedule(
        self,
        schedule_id: uuid.UUID,
        organization_id: uuid.UUID
    ) -> int:
        """
        Delete a schedule and its not-yet-started generated bookings.

        Bookings that already started are kept and detached.
        """
        schedule = self.get_schedule(schedule_id, organization_id)
        now = timezone.now()
        generated = Booking.objects.filter(recurring_schedule_id=schedule.id)

        deleted, _ = generated.filter(start_time__gt=now).delete()
        generated.update(recurring_schedule_id=None)

        schedule.delete()

        logger.info(
            f"Deleted recurring schedule {schedule_id} and {deleted} future bookings"
        )
        publish_schedule_deleted(schedule_id, organization_id, deleted)

        return deleted

    # ==========================================================================
    # Exceptions
    # ==========================================================================

    @transaction.atomic
    def create_exception(
        self,
        schedule_id: uuid.UUID,
        organization_id: uuid.UUID,
        original_date_time: datetime,
        exception_type: str,
        new_start_time: datetime = None,
        reason: str = None,
        created_by: uuid.UUID = None
    ) -> RecurrenceException:
        """Cancel or reschedule one occurrence of a schedule."""
        from . import SchedulingValidationError, BookingConflictError

        schedule = self.get_schedule(schedule_id, organization_id)
        original_date_time = self._aware(original_date_time)

        if exception_type not in RecurrenceException.ExceptionType.values:
            raise SchedulingValidationError(f"Unknown exception type: {exception_type}")

        if exception_type == RecurrenceException.ExceptionType.RESCHEDULED:
            if not new_start_time:
                raise SchedulingValidationError("Rescheduled exceptions require new_start_time")
            new_start_time = self._aware(new_start_time)

        occurrences = self.expand(
            schedule.recurrence_definition(),
            original_date_time,
            original_date_time,
        )
        if original_date_time not in occurrences:
            raise SchedulingValidationError(
                f"{original_date_time.isoformat()} is not an occurrence of schedule {schedule_id}"
            )

        if schedule.exceptions.filter(original_date_time=original_date_time).exists():
            raise SchedulingValidationError(
                f"An exception already exists for {original_date_time.isoformat()}"
            )

        exception = RecurrenceException.objects.create(
            schedule=schedule,
            original_date_time=original_date_time,
            exception_type=exception_type,
            new_start_time=new_start_time,
            reason=reason,
            created_by=created_by,
        )

        booking = Booking.objects.filter(
            recurring_schedule_id=schedule.id,
            instance_date=original_date_time,
        ).exclude(status__in=Booking.get_terminal_statuses()).first()

        if booking and exception_type == RecurrenceException.ExceptionType.CANCELLED:
            self.booking_service.cancel_booking(
                booking.id,
                organization_id,
                cancelled_by=created_by,
                by_staff=True,
                reason=reason or 'Occurrence cancelled',
            )
        elif booking:
            duration = timedelta(minutes=schedule.duration)
            self.booking_service.update_booking(
                booking.id,
                organization_id,
                start_time=new_start_time,
                end_time=new_start_time + duration,
            )

        logger.info(
            f"Created {exception_type} exception for schedule {schedule_id} "
            f"at {original_date_time.isoformat()}"
        )

        return exception

    # ==========================================================================
    # Materialization
    # ==========================================================================

    def materialize_occurrences(
        self,
        schedule_id: uuid.UUID,
        horizon: datetime,
        organization_id: uuid.UUID = None
    ) -> MaterializationResult:
        """
        Create bookings for every occurrence up to ``horizon``.

        Occurrences that already have a booking (in any status) are left
        alone, so repeated calls with the same horizon create nothing.
        Conflicting occurrences are skipped and reported.
        """
        from . import SchedulingError

        schedule = self.get_schedule(schedule_id, organization_id)
        horizon = self._aware(horizon)
        result = MaterializationResult(schedule_id=schedule.id, horizon=horizon)

        if not schedule.is_active:
            return result

        now = timezone.now()
        window_start = max(now, self._aware(schedule.dtstart))
        if horizon < window_start:
            return result

        exceptions = list(schedule.exceptions.all())
        planned = [
            (occurrence, occurrence)
            for occurrence in self.expand(
                schedule.recurrence_definition(), window_start, horizon, exceptions
            )
        ]
        planned.extend(
            (e.original_date_time, e.new_start_time)
            for e in exceptions
            if e.exception_type == RecurrenceException.ExceptionType.RESCHEDULED
            and e.new_start_time and now < e.new_start_time <= horizon
        )
        planned.sort(key=lambda item: item[1])

        existing = set(
            Booking.objects.filter(
                recurring_schedule_id=schedule.id,
                instance_date__isnull=False,
            ).values_list('instance_date', flat=True)
        )
        service = Service.objects.filter(id=schedule.service_id).first()
        duration = timedelta(minutes=schedule.duration)

        for instance_date, start in planned:
            if instance_date in existing:
                continue

            try:
                booking = self.booking_service.create_booking(
                    organization_id=schedule.organization_id,
                    service_id=schedule.service_id,
                    user_id=schedule.user_id,
                    start_time=start,
                    end_time=start + duration,
                    staff_id=schedule.staff_id,
                    resource_id=schedule.resource_id,
                    location_id=schedule.location_id,
                    booking_type=service.service_type if service else Booking.BookingType.CLASS,
                    title=schedule.title,
                    recurring_schedule_id=schedule.id,
                    instance_date=instance_date,
                    created_by=schedule.created_by,
                )
                result.created.append(booking)
                existing.add(instance_date)
            except SchedulingError as e:
                logger.warning(
                    f"Skipped occurrence {instance_date.isoformat()} of schedule "
                    f"{schedule.id}: {e}"
                )
                result.skipped.append({
                    'occurrence': instance_date.isoformat(),
                    'reason': str(e),
                    'conflicts': [c.to_dict() for c in getattr(e, 'conflicts', [])],
                })

        if not schedule.materialized_until or schedule.materialized_until < horizon:
            schedule.materialized_until = horizon
            schedule.save(update_fields=['materialized_until', 'updated_at'])

        logger.info(
            f"Materialized schedule {schedule.id} to {horizon.isoformat()}: "
            f"{len(result.created)} created, {len(result.skipped)} skipped"
        )
        publish_schedule_materialized(schedule, len(result.created), len(result.skipped))

        return result

    def materialize_all(self, horizon: datetime = None) -> List[MaterializationResult]:
        """Materialize every active schedule up to ``horizon``."""
        if horizon is None:
            days = getattr(settings, 'RECURRENCE_HORIZON_DAYS', 28)
            horizon = timezone.now() + timedelta(days=days)

        results = []
        for schedule in RecurringSchedule.objects.filter(is_active=True):
            results.append(self.materialize_occurrences(schedule.id, horizon))

        return results

    def _regenerate(self, schedule: RecurringSchedule):
        """Replace future generated bookings after a recurrence change."""
        deleted, _ = Booking.objects.filter(
            recurring_schedule_id=schedule.id,
            start_time__gt=timezone.now(),
        ).exclude(
            status__in=Booking.get_terminal_statuses()
        ).delete()

        logger.info(f"Removed {deleted} future bookings of schedule {schedule.id}")

        if schedule.materialized_until and schedule.materialized_until > timezone.now():
            self.materialize_occurrences(schedule.id, schedule.materialized_until)

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
    ):
        from . import EntityNotFoundError

        references = [
            (Service, service_id, 'Service'),
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

    def _first_occurrence(self, definition: Dict[str, Any]) -> Optional[datetime]:
        for occurrence in self._iter_occurrences(definition):
            return occurrence
        return None

    def _iter_occurrences(self, definition: Dict[str, Any]):
        """Lazily yield localized occurrences honoring every bound."""
        tz = pytz.timezone(definition.get('timezone') or 'UTC')
        upper_bound = self._upper_bound(definition)
        excluded = set(self._parse_timestamp(v) for v in definition.get('exdates') or [])

        for naive in self.build_rule(definition):
            occurrence = tz.localize(naive)
            if upper_bound and occurrence > upper_bound:
                return
            if occurrence not in excluded:
                yield occurrence.astimezone(pytz.utc)

    def _upper_bound(self, definition: Dict[str, Any]) -> Optional[datetime]:
        bounds = [
            self._aware(definition[key])
            for key in ('until', 'dtend')
            if definition.get(key)
        ]
        return min(bounds) if bounds else None

    def _impossible_month_days(self, definition: Dict[str, Any]) -> List[str]:
        months = definition.get('by_month') or []
        month_days = definition.get('by_month_day') or []
        if not months or not month_days:
            return []
        if not all(self._is_int(v) for v in months + month_days):
            return []

        valid_months = [m for m in months if 1 <= m <= 12] or [1]
        longest = max(calendar.monthrange(2024, m)[1] for m in valid_months)
        if all(abs(day) > longest for day in month_days):
            return [
                f"by_month_day {month_days} never occurs in months {months}"
            ]
        return []

    def _normalize(self, definition: Dict[str, Any]) -> Dict[str, Any]:
        """Coerce serialized values (strings, naive datetimes) to native types."""
        normalized = dict(definition)

        for key in ('dtstart', 'dtend', 'until'):
            value = normalized.get(key)
            if isinstance(value, str):
                normalized[key] = self._parse_timestamp(value)
            elif isinstance(value, date) and not isinstance(value, datetime):
                normalized[key] = self._aware(datetime.combine(value, time.min))

        if isinstance(normalized.get('start_time'), str):
            normalized['start_time'] = time.fromisoformat(normalized['start_time'])

        if normalized.get('by_day'):
            normalized['by_day'] = [str(token).upper() for token in normalized['by_day']]

        if normalized.get('frequency'):
            normalized['frequency'] = str(normalized['frequency']).upper()

        for key in ('exdates',):
            if normalized.get(key):
                normalized[key] = [
                    v.isoformat() if isinstance(v, datetime) else v
                    for v in normalized[key]
                ]

        return normalized

    def _to_weekday(self, token: str) -> weekday:
        match = WEEKDAY_TOKEN.match(str(token).upper())
        base = WEEKDAY_MAP[match.group(2)]
        return base(int(match.group(1))) if match.group(1) else base

    def _parse_timestamp(self, value) -> datetime:
        if isinstance(value, datetime):
            return self._aware(value)
        return self._aware(date_parser.isoparse(value))

    def _aware(self, value: datetime) -> datetime:
        if timezone.is_naive(value):
            return timezone.make_aware(value)
        return value

    def _is_int(self, value) -> bool:
        return isinstance(value, int) and not isinstance(value, bool)

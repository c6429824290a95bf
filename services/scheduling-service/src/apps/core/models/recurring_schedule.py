# services/scheduling-service/src/apps/core/models/recurring_schedule.py
"""
Recurring Schedule Models

Templates that generate many bookings, plus per-occurrence overrides.
"""

import uuid

from django.db import models


class RecurringSchedule(models.Model):
    """
    Recurrence template for a service.

    The recurrence definition is stored as structured fields mirroring
    the RFC 5545 RRULE parts. Occurrences combine the rule's dates with
    ``start_time`` in the schedule's ``timezone``.
    """

    class Frequency(models.TextChoices):
        DAILY = 'DAILY', 'Daily'
        WEEKLY = 'WEEKLY', 'Weekly'
        MONTHLY = 'MONTHLY', 'Monthly'
        YEARLY = 'YEARLY', 'Yearly'

    class Weekday(models.TextChoices):
        MONDAY = 'MO', 'Monday'
        TUESDAY = 'TU', 'Tuesday'
        WEDNESDAY = 'WE', 'Wednesday'
        THURSDAY = 'TH', 'Thursday'
        FRIDAY = 'FR', 'Friday'
        SATURDAY = 'SA', 'Saturday'
        SUNDAY = 'SU', 'Sunday'

    # Fields that make up the recurrence definition
    RECURRENCE_FIELDS = [
        'frequency', 'interval', 'by_day', 'by_month_day', 'by_month',
        'by_set_pos', 'by_year_day', 'by_week_no', 'count', 'until',
        'week_start', 'dtstart', 'dtend', 'timezone', 'start_time',
        'duration', 'exdates',
    ]

    # Primary Key
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization_id = models.UUIDField(db_index=True)

    # Booking Template
    service_id = models.UUIDField(db_index=True)
    user_id = models.UUIDField(help_text="Member holding the generated bookings")
    staff_id = models.UUIDField(blank=True, null=True)
    resource_id = models.UUIDField(blank=True, null=True)
    location_id = models.UUIDField(blank=True, null=True)
    title = models.CharField(max_length=255, blank=True, null=True)
    description = models.TextField(blank=True, null=True)

    # Recurrence Rule
    frequency = models.CharField(max_length=10, choices=Frequency.choices)
    interval = models.PositiveIntegerField(default=1)
    by_day = models.JSONField(
        default=list,
        blank=True,
        help_text="Weekday tokens, optionally ordinal: MO, +1MO, -1FR"
    )
    by_month_day = models.JSONField(default=list, blank=True)
    by_month = models.JSONField(default=list, blank=True)
    by_set_pos = models.JSONField(default=list, blank=True)
    by_year_day = models.JSONField(default=list, blank=True)
    by_week_no = models.JSONField(default=list, blank=True)
    count = models.PositiveIntegerField(blank=True, null=True)
    until = models.DateTimeField(blank=True, null=True)
    week_start = models.CharField(
        max_length=2,
        choices=Weekday.choices,
        default=Weekday.MONDAY
    )

    # Bounds and timing
    dtstart = models.DateTimeField()
    dtend = models.DateTimeField(blank=True, null=True)
    timezone = models.CharField(max_length=64, default='UTC')
    start_time = models.TimeField(help_text="Local time of day of each occurrence")
    duration = models.PositiveIntegerField(help_text="Minutes")
    exdates = models.JSONField(
        default=list,
        blank=True,
        help_text="ISO timestamps excluded from the expansion"
    )

    # Status
    is_active = models.BooleanField(default=True)
    materialized_until = models.DateTimeField(blank=True, null=True)

    # Audit
    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.UUIDField(blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'recurring_schedules'
        ordering = ['dtstart']
        indexes = [
            models.Index(fields=['organization_id', 'service_id']),
            models.Index(fields=['is_active', 'dtstart']),
        ]

    def __str__(self):
        return f"{self.frequency} schedule {self.id}"

    def recurrence_definition(self) -> dict:
        """Snapshot of the recurrence fields, used for change detection."""
        return {field: getattr(self, field) for field in self.RECURRENCE_FIELDS}


class RecurrenceException(models.Model):
    """Override for one occurrence of a recurring schedule."""

    class ExceptionType(models.TextChoices):
        CANCELLED = 'CANCELLED', 'Cancelled'
        RESCHEDULED = 'RESCHEDULED', 'Rescheduled'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    schedule = models.ForeignKey(
        RecurringSchedule,
        on_delete=models.CASCADE,
        related_name='exceptions'
    )
    original_date_time = models.DateTimeField()
    exception_type = models.CharField(
        max_length=20,
        choices=ExceptionType.choices
    )
    new_start_time = models.DateTimeField(blank=True, null=True)
    reason = models.TextField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.UUIDField(blank=True, null=True)

    class Meta:
        db_table = 'recurrence_exceptions'
        ordering = ['original_date_time']
        constraints = [
            models.UniqueConstraint(
                fields=['schedule', 'original_date_time'],
                name='unique_exception_per_occurrence'
            ),
        ]

    def __str__(self):
        return f"{self.exception_type} {self.original_date_time.isoformat()}"

# services/scheduling-service/src/apps/core/models/booking.py
"""
Booking Model

A reservation of a time interval for one member, optionally bound to a
staff member, a resource and a service.
"""

import uuid
from datetime import datetime

from django.db import models
from django.db.models import Q, F
from django.utils import timezone


class Booking(models.Model):
    """
    Booking model for appointments and class sessions.

    Cancellation is a status change, never a delete. The only bookings
    that are physically removed are future instances of a deleted
    recurring schedule.
    """

    class BookingType(models.TextChoices):
        APPOINTMENT = 'appointment', 'Appointment'
        CLASS = 'class', 'Class'
        WORKSHOP = 'workshop', 'Workshop'
        EVENT = 'event', 'Event'

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        CONFIRMED = 'confirmed', 'Confirmed'
        ATTENDED = 'attended', 'Attended'
        NO_SHOW = 'no_show', 'No Show'
        CANCELLED_BY_MEMBER = 'cancelled_by_member', 'Cancelled by Member'
        CANCELLED_BY_STAFF = 'cancelled_by_staff', 'Cancelled by Staff'

    # Allowed status transitions; terminal statuses map to nothing.
    TRANSITIONS = {
        Status.PENDING: [
            Status.CONFIRMED,
            Status.CANCELLED_BY_MEMBER,
            Status.CANCELLED_BY_STAFF,
        ],
        Status.CONFIRMED: [
            Status.ATTENDED,
            Status.NO_SHOW,
            Status.CANCELLED_BY_MEMBER,
            Status.CANCELLED_BY_STAFF,
        ],
        Status.ATTENDED: [],
        Status.NO_SHOW: [],
        Status.CANCELLED_BY_MEMBER: [],
        Status.CANCELLED_BY_STAFF: [],
    }

    # Primary Key
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization_id = models.UUIDField(db_index=True)

    # Participants
    service_id = models.UUIDField(db_index=True)
    user_id = models.UUIDField(db_index=True)
    staff_id = models.UUIDField(blank=True, null=True, db_index=True)
    resource_id = models.UUIDField(blank=True, null=True, db_index=True)
    location_id = models.UUIDField(blank=True, null=True)

    # Time
    start_time = models.DateTimeField(db_index=True)
    end_time = models.DateTimeField()
    all_day = models.BooleanField(default=False)

    # Classification
    booking_type = models.CharField(
        max_length=20,
        choices=BookingType.choices,
        default=BookingType.APPOINTMENT
    )
    status = models.CharField(
        max_length=30,
        choices=Status.choices,
        default=Status.CONFIRMED,
        db_index=True
    )

    # Description
    title = models.CharField(max_length=255, blank=True, null=True)
    notes = models.TextField(blank=True, null=True)
    private_notes = models.TextField(blank=True, null=True)

    # Pricing
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        blank=True,
        null=True
    )
    credits_used = models.PositiveIntegerField(default=0)

    # Recurring
    recurring_schedule_id = models.UUIDField(blank=True, null=True, db_index=True)
    instance_date = models.DateTimeField(
        blank=True,
        null=True,
        help_text="Original occurrence timestamp for generated bookings"
    )

    # Cancellation
    cancelled_at = models.DateTimeField(blank=True, null=True)
    cancelled_by = models.UUIDField(blank=True, null=True)
    cancellation_reason = models.TextField(blank=True, null=True)

    # Audit
    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.UUIDField(blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'bookings'
        ordering = ['start_time']
        indexes = [
            models.Index(fields=['organization_id', 'start_time']),
            models.Index(fields=['staff_id', 'start_time', 'end_time']),
            models.Index(fields=['resource_id', 'start_time', 'end_time']),
            models.Index(fields=['service_id', 'start_time', 'end_time']),
            models.Index(fields=['user_id', 'start_time']),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(end_time__gt=F('start_time')),
                name='valid_booking_times'
            ),
            models.UniqueConstraint(
                fields=['recurring_schedule_id', 'instance_date'],
                condition=Q(recurring_schedule_id__isnull=False),
                name='unique_schedule_instance'
            ),
        ]

    def __str__(self):
        return f"Booking {self.id}: {self.start_time.strftime('%Y-%m-%d %H:%M')}"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() / 60)

    @property
    def is_terminal(self) -> bool:
        return self.status in self.get_terminal_statuses()

    @property
    def is_recurring(self) -> bool:
        return self.recurring_schedule_id is not None

    @property
    def is_upcoming(self) -> bool:
        return self.start_time > timezone.now()

    def can_transition_to(self, status: str) -> bool:
        return status in self.TRANSITIONS.get(self.status, [])

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start_time < end and self.end_time > start

    # ==========================================================================
    # Class Methods
    # ==========================================================================

    @classmethod
    def get_terminal_statuses(cls) -> list:
        """Statuses that no longer hold a slot."""
        return [
            cls.Status.CANCELLED_BY_MEMBER,
            cls.Status.CANCELLED_BY_STAFF,
            cls.Status.NO_SHOW,
        ]

    @classmethod
    def get_cancelled_statuses(cls) -> list:
        return [
            cls.Status.CANCELLED_BY_MEMBER,
            cls.Status.CANCELLED_BY_STAFF,
        ]

    @classmethod
    def get_overlapping(
        cls,
        organization_id: uuid.UUID,
        start: datetime,
        end: datetime,
        exclude_booking_id: uuid.UUID = None
    ):
        """Non-terminal bookings whose interval overlaps [start, end)."""
        queryset = cls.objects.filter(
            organization_id=organization_id,
            start_time__lt=end,
            end_time__gt=start,
        ).exclude(
            status__in=cls.get_terminal_statuses()
        )

        if exclude_booking_id:
            queryset = queryset.exclude(id=exclude_booking_id)

        return queryset

    @classmethod
    def get_upcoming(
        cls,
        organization_id: uuid.UUID,
        user_id: uuid.UUID = None,
        limit: int = 10
    ):
        """Upcoming non-terminal bookings, optionally for one member."""
        queryset = cls.objects.filter(
            organization_id=organization_id,
            start_time__gte=timezone.now(),
        ).exclude(
            status__in=cls.get_terminal_statuses()
        )

        if user_id:
            queryset = queryset.filter(user_id=user_id)

        return queryset.order_by('start_time')[:limit]

# services/scheduling-service/src/apps/core/models/staff_availability.py
"""
Staff Availability Model

Weekly or date-specific windows in which a staff member may be booked.
"""

import uuid
from datetime import date

from django.db import models
from django.db.models import Q


class StaffAvailability(models.Model):
    """
    Availability window for a staff member.

    A record either repeats weekly on ``day_of_week`` or applies to a
    single ``specific_date``. Date-specific records take precedence over
    weekly ones for that date.
    """

    class DayOfWeek(models.TextChoices):
        MONDAY = 'MONDAY', 'Monday'
        TUESDAY = 'TUESDAY', 'Tuesday'
        WEDNESDAY = 'WEDNESDAY', 'Wednesday'
        THURSDAY = 'THURSDAY', 'Thursday'
        FRIDAY = 'FRIDAY', 'Friday'
        SATURDAY = 'SATURDAY', 'Saturday'
        SUNDAY = 'SUNDAY', 'Sunday'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization_id = models.UUIDField(db_index=True)
    user_id = models.UUIDField(db_index=True, help_text="Staff member")

    day_of_week = models.CharField(max_length=10, choices=DayOfWeek.choices)
    start_time = models.TimeField()
    end_time = models.TimeField()
    specific_date = models.DateField(blank=True, null=True)
    is_available = models.BooleanField(default=True)
    notes = models.TextField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'staff_availability'
        ordering = ['user_id', 'day_of_week', 'start_time']
        verbose_name_plural = 'staff availability'
        indexes = [
            models.Index(fields=['user_id', 'day_of_week']),
            models.Index(fields=['user_id', 'specific_date']),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(end_time__gt=models.F('start_time')),
                name='valid_availability_window'
            ),
        ]

    def __str__(self):
        when = self.specific_date.isoformat() if self.specific_date else self.get_day_of_week_display()
        return f"{self.user_id} {when} {self.start_time:%H:%M}-{self.end_time:%H:%M}"

    @classmethod
    def day_of_week_for(cls, day: date) -> str:
        """Map a calendar date to its DayOfWeek value."""
        return WEEKDAY_TO_DAY_OF_WEEK[day.weekday()]

    @classmethod
    def get_for_date(cls, organization_id: uuid.UUID, user_id: uuid.UUID, day: date):
        """
        Records governing ``day`` for a staff member.

        Returns the date-specific records when any exist, otherwise the
        weekly records for that weekday.
        """
        base = cls.objects.filter(organization_id=organization_id, user_id=user_id)

        specific = base.filter(specific_date=day)
        if specific.exists():
            return specific

        return base.filter(
            specific_date__isnull=True,
            day_of_week=cls.day_of_week_for(day),
        )


# datetime.weekday() index to DayOfWeek
WEEKDAY_TO_DAY_OF_WEEK = {
    0: StaffAvailability.DayOfWeek.MONDAY,
    1: StaffAvailability.DayOfWeek.TUESDAY,
    2: StaffAvailability.DayOfWeek.WEDNESDAY,
    3: StaffAvailability.DayOfWeek.THURSDAY,
    4: StaffAvailability.DayOfWeek.FRIDAY,
    5: StaffAvailability.DayOfWeek.SATURDAY,
    6: StaffAvailability.DayOfWeek.SUNDAY,
}

# services/scheduling-service/src/apps/core/models/directory.py
"""
Directory Models

Read-only mirrors of the member, service, resource and location
directories owned by other services. The scheduling engine only reads
the fields it needs for referential checks and calendar joins.
"""

from django.db import models

from shared.common.mixins import (
    UUIDPrimaryKeyMixin,
    TimestampMixin,
    OrganizationMixin,
)


class Location(UUIDPrimaryKeyMixin, OrganizationMixin, TimestampMixin):
    """A physical site where bookings take place."""

    name = models.CharField(max_length=255)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'locations'
        ordering = ['name']

    def __str__(self):
        return self.name


class Member(UUIDPrimaryKeyMixin, OrganizationMixin, TimestampMixin):
    """
    A person in the organization directory.

    Members book services; staff members are the same record with a
    staff-like role and are referenced as ``staff_id`` on bookings.
    """

    class Role(models.TextChoices):
        ADMIN = 'admin', 'Admin'
        MANAGER = 'manager', 'Manager'
        STAFF = 'staff', 'Staff'
        INSTRUCTOR = 'instructor', 'Instructor'
        RECEPTIONIST = 'receptionist', 'Receptionist'
        MEMBER = 'member', 'Member'

    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True, null=True)
    role = models.CharField(
        max_length=20,
        choices=Role.choices,
        default=Role.MEMBER
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'members'
        ordering = ['last_name', 'first_name']
        indexes = [
            models.Index(fields=['organization_id', 'role']),
        ]

    def __str__(self):
        return self.full_name

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_staff_member(self) -> bool:
        return self.role != self.Role.MEMBER


class Service(UUIDPrimaryKeyMixin, OrganizationMixin, TimestampMixin):
    """A bookable offering: a class, an appointment type, a workshop."""

    class ServiceType(models.TextChoices):
        CLASS = 'class', 'Class'
        APPOINTMENT = 'appointment', 'Appointment'
        WORKSHOP = 'workshop', 'Workshop'
        EVENT = 'event', 'Event'

    name = models.CharField(max_length=255)
    service_type = models.CharField(
        max_length=20,
        choices=ServiceType.choices,
        default=ServiceType.APPOINTMENT
    )
    duration = models.PositiveIntegerField(
        default=60,
        help_text="Default duration in minutes"
    )
    capacity = models.PositiveIntegerField(
        blank=True,
        null=True,
        help_text="Maximum concurrent bookings, empty means unlimited"
    )
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        blank=True,
        null=True
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'services'
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def is_capacity_limited(self) -> bool:
        return bool(self.capacity)


class Resource(UUIDPrimaryKeyMixin, OrganizationMixin, TimestampMixin):
    """A room, piece of equipment or vehicle that can be reserved."""

    class ResourceType(models.TextChoices):
        ROOM = 'room', 'Room'
        EQUIPMENT = 'equipment', 'Equipment'
        VEHICLE = 'vehicle', 'Vehicle'
        OTHER = 'other', 'Other'

    name = models.CharField(max_length=255)
    resource_type = models.CharField(
        max_length=20,
        choices=ResourceType.choices,
        default=ResourceType.ROOM
    )
    capacity = models.PositiveIntegerField(blank=True, null=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'resources'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.get_resource_type_display()})"

# services/scheduling-service/src/apps/core/models/waitlist.py
"""
Waitlist Model

Per-service ordered queue of members waiting for a free place.
"""

import uuid

from django.db import models
from django.db.models import Max
from django.utils import timezone


class WaitlistEntry(models.Model):
    """
    A member's place in a service's waitlist.

    Positions are 1-based and contiguous within a service. They are only
    shifted by WaitlistService, inside a transaction that locks the
    service's entries.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization_id = models.UUIDField(db_index=True)

    service_id = models.UUIDField(db_index=True)
    user_id = models.UUIDField(db_index=True)
    position = models.PositiveIntegerField()

    # Notification
    joined_at = models.DateTimeField(default=timezone.now)
    notified_at = models.DateTimeField(blank=True, null=True)
    expires_at = models.DateTimeField(blank=True, null=True)
    notify_by_email = models.BooleanField(default=True)
    notify_by_sms = models.BooleanField(default=False)

    is_active = models.BooleanField(default=True)
    notes = models.TextField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'waitlist_entries'
        ordering = ['service_id', 'position']
        verbose_name_plural = 'waitlist entries'
        indexes = [
            models.Index(fields=['service_id', 'position']),
            models.Index(fields=['organization_id', 'user_id']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['service_id', 'user_id'],
                name='unique_waitlist_member_per_service'
            ),
        ]

    def __str__(self):
        return f"Waitlist {self.service_id} #{self.position}: {self.user_id}"

    @property
    def is_notified(self) -> bool:
        return self.notified_at is not None

    @property
    def is_expired(self) -> bool:
        return bool(self.expires_at and self.expires_at < timezone.now())

    @classmethod
    def for_service(cls, service_id: uuid.UUID):
        return cls.objects.filter(service_id=service_id)

    @classmethod
    def max_position(cls, service_id: uuid.UUID) -> int:
        """Highest position in the service's queue, 0 when empty."""
        return cls.for_service(service_id).aggregate(
            max_position=Max('position')
        )['max_position'] or 0

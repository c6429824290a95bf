# services/scheduling-service/src/apps/core/signals.py
"""
Django Signals for Scheduling Service

Tracks booking status transitions for event publishing.
"""

import logging
from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

from .models import Booking
from .events import publish_booking_status_changed

logger = logging.getLogger(__name__)


# ==========================================================================
# Booking Signals
# ==========================================================================

@receiver(pre_save, sender=Booking)
def booking_pre_save(sender, instance, **kwargs):
    """Track status changes before save."""
    instance._old_status = None
    if instance.pk and not instance._state.adding:
        instance._old_status = (
            Booking.objects.filter(pk=instance.pk)
            .values_list('status', flat=True)
            .first()
        )


@receiver(post_save, sender=Booking)
def booking_status_change(sender, instance, created, **kwargs):
    """Publish a status change for existing bookings."""
    if created:
        return

    old_status = getattr(instance, '_old_status', None)
    if old_status is None or old_status == instance.status:
        return

    publish_booking_status_changed(instance, old_status)
    logger.info(f"Booking {instance.id} status changed: {old_status} -> {instance.status}")

# services/scheduling-service/src/apps/core/tasks.py
"""
Scheduling Service Celery Tasks

Background materialization of recurring schedules.
"""

import logging
from datetime import timedelta
from typing import Optional
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, name='scheduling.materialize_recurring_schedules')
def materialize_recurring_schedules(self, horizon_days: Optional[int] = None):
    """
    Extend every active schedule's bookings up to the rolling horizon.

    Args:
        horizon_days: Days ahead to materialize, defaults to RECURRENCE_HORIZON_DAYS
    """
    from .services import RecurrenceService

    days = horizon_days or getattr(settings, 'RECURRENCE_HORIZON_DAYS', 28)
    horizon = timezone.now() + timedelta(days=days)

    try:
        results = RecurrenceService().materialize_all(horizon)
    except Exception as e:
        logger.error(f"Error materializing recurring schedules: {e}")
        raise self.retry(countdown=60, exc=e)

    created = sum(len(r.created) for r in results)
    skipped = sum(len(r.skipped) for r in results)

    logger.info(
        f"Materialized {len(results)} schedules to {horizon.isoformat()}: "
        f"{created} created, {skipped} skipped"
    )
    return {'schedules': len(results), 'created': created, 'skipped': skipped}


@shared_task(name='scheduling.materialize_schedule')
def materialize_schedule(schedule_id: str, organization_id: str, horizon_days: Optional[int] = None):
    """Materialize a single schedule, used right after it is created."""
    from .services import RecurrenceService

    days = horizon_days or getattr(settings, 'RECURRENCE_HORIZON_DAYS', 28)
    result = RecurrenceService().materialize_occurrences(
        UUID(schedule_id),
        timezone.now() + timedelta(days=days),
        organization_id=UUID(organization_id),
    )
    return result.to_dict()

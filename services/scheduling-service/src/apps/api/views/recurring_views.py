# services/scheduling-service/src/apps/api/views/recurring_views.py
"""
Recurring Schedule API Views
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.utils import timezone
from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from apps.core.models import RecurringSchedule
from apps.core.services import RecurrenceService
from apps.api.serializers import (
    RecurringScheduleSerializer,
    RecurringScheduleCreateSerializer,
    RecurringScheduleUpdateSerializer,
    RecurrenceValidateSerializer,
    RecurrenceExceptionSerializer,
    RecurrenceExceptionCreateSerializer,
    OccurrenceWindowSerializer,
    MaterializeSerializer,
)
from shared.common.mixins import OrganizationFilterMixin
from .filters import RecurringScheduleFilter
from .pagination import StandardResultsSetPagination

logger = logging.getLogger(__name__)


class RecurringScheduleViewSet(
    OrganizationFilterMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet
):
    """
    ViewSet for recurring schedules.

    Provides CRUD, occurrence listing, exceptions and materialization.
    """

    queryset = RecurringSchedule.objects.prefetch_related('exceptions')
    serializer_class = RecurringScheduleSerializer
    pagination_class = StandardResultsSetPagination
    filter_backends = [DjangoFilterBackend]
    filterset_class = RecurringScheduleFilter

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.recurrence_service = RecurrenceService()

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context['recurrence_service'] = self.recurrence_service
        return context

    def get_serializer_class(self):
        if self.action == 'create':
            return RecurringScheduleCreateSerializer
        elif self.action == 'partial_update':
            return RecurringScheduleUpdateSerializer
        return RecurringScheduleSerializer

    def _render(self, schedule, status_code=status.HTTP_200_OK):
        serializer = RecurringScheduleSerializer(
            schedule, context=self.get_serializer_context()
        )
        return Response(serializer.data, status=status_code)

    def create(self, request, *args, **kwargs):
        """Create a schedule."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        schedule = self.recurrence_service.create_schedule(
            organization_id=self.get_organization_id(),
            created_by=self.get_user_id(),
            **serializer.validated_data
        )

        return self._render(schedule, status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        """Update a schedule; recurrence changes regenerate future bookings."""
        serializer = self.get_serializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        schedule = self.recurrence_service.update_schedule(
            kwargs['pk'],
            self.get_organization_id(),
            **serializer.validated_data
        )

        return self._render(schedule)

    def destroy(self, request, *args, **kwargs):
        """Delete a schedule and its future bookings."""
        deleted = self.recurrence_service.delete_schedule(
            kwargs['pk'], self.get_organization_id()
        )
        return Response({'deleted_bookings': deleted})

    @action(detail=True, methods=['get'])
    def occurrences(self, request, pk=None):
        """Occurrence timestamps in a window, exceptions removed."""
        serializer = OccurrenceWindowSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)

        occurrences = self.recurrence_service.generate_occurrences(
            pk,
            serializer.validated_data['start'],
            serializer.validated_data['end'],
            organization_id=self.get_organization_id(),
        )

        return Response({
            'schedule_id': pk,
            'occurrences': [o.isoformat() for o in occurrences],
        })

    @action(detail=True, methods=['get', 'post'])
    def exceptions(self, request, pk=None):
        """List or add exceptions for single occurrences."""
        organization_id = self.get_organization_id()

        if request.method == 'GET':
            schedule = self.recurrence_service.get_schedule(pk, organization_id)
            return Response(
                RecurrenceExceptionSerializer(
                    schedule.exceptions.order_by('original_date_time'), many=True
                ).data
            )

        serializer = RecurrenceExceptionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        exception = self.recurrence_service.create_exception(
            pk,
            organization_id,
            created_by=self.get_user_id(),
            **serializer.validated_data
        )

        return Response(
            RecurrenceExceptionSerializer(exception).data,
            status=status.HTTP_201_CREATED
        )

    @action(detail=True, methods=['post'])
    def materialize(self, request, pk=None):
        """Create bookings for occurrences up to a horizon."""
        serializer = MaterializeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        horizon = serializer.validated_data.get('horizon')
        if horizon is None:
            days = serializer.validated_data.get(
                'horizon_days', getattr(settings, 'RECURRENCE_HORIZON_DAYS', 28)
            )
            horizon = timezone.now() + timedelta(days=days)

        result = self.recurrence_service.materialize_occurrences(
            pk, horizon, organization_id=self.get_organization_id()
        )

        return Response(result.to_dict())

    @action(detail=False, methods=['post'])
    def validate(self, request):
        """Validate a recurrence definition and preview its first occurrences."""
        serializer = RecurrenceValidateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        definition = dict(serializer.validated_data)
        rrule_string = definition.pop('rrule_string', None)
        if rrule_string:
            definition.update(self.recurrence_service.parse_rrule_string(rrule_string))

        report = self.recurrence_service.validate_recurrence(definition)
        report['preview'] = [o.isoformat() for o in report['preview']]

        return Response(report)

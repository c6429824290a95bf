# services/scheduling-service/src/apps/api/views/availability_views.py
"""
Availability API Views

Staff availability windows and free slot search.
"""

import logging

from rest_framework import viewsets, mixins, status
from rest_framework.response import Response
from rest_framework.views import APIView
from django_filters.rest_framework import DjangoFilterBackend

from apps.core.models import StaffAvailability
from apps.core.services import AvailabilityService
from apps.api.serializers import (
    StaffAvailabilitySerializer,
    StaffAvailabilityCreateSerializer,
    StaffAvailabilityUpdateSerializer,
    AvailableSlotsQuerySerializer,
)
from shared.common.mixins import OrganizationFilterMixin
from .filters import StaffAvailabilityFilter
from .pagination import StandardResultsSetPagination

logger = logging.getLogger(__name__)


class StaffAvailabilityViewSet(
    OrganizationFilterMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet
):
    """
    ViewSet for staff availability windows.

    Weekly windows repeat on their weekday; date-specific windows replace
    the weekly ones for that date.
    """

    queryset = StaffAvailability.objects.all()
    serializer_class = StaffAvailabilitySerializer
    pagination_class = StandardResultsSetPagination
    filter_backends = [DjangoFilterBackend]
    filterset_class = StaffAvailabilityFilter

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.availability_service = AvailabilityService()

    def get_serializer_class(self):
        if self.action == 'create':
            return StaffAvailabilityCreateSerializer
        elif self.action == 'partial_update':
            return StaffAvailabilityUpdateSerializer
        return StaffAvailabilitySerializer

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        availability = self.availability_service.create_availability(
            self.get_organization_id(),
            **serializer.validated_data
        )

        return Response(
            StaffAvailabilitySerializer(availability).data,
            status=status.HTTP_201_CREATED
        )

    def partial_update(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        availability = self.availability_service.update_availability(
            kwargs['pk'],
            self.get_organization_id(),
            **serializer.validated_data
        )

        return Response(StaffAvailabilitySerializer(availability).data)

    def destroy(self, request, *args, **kwargs):
        self.availability_service.delete_availability(kwargs['pk'], self.get_organization_id())
        return Response(status=status.HTTP_204_NO_CONTENT)


class AvailableSlotsView(OrganizationFilterMixin, APIView):
    """Free slots of a given duration on a date."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.availability_service = AvailabilityService()

    def get(self, request):
        serializer = AvailableSlotsQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        slots = self.availability_service.get_available_time_slots(
            self.get_organization_id(),
            data['date'],
            data['duration'],
            service_id=data.get('service_id'),
            resource_id=data.get('resource_id'),
            staff_id=data.get('staff_id'),
        )

        return Response({
            'date': data['date'].isoformat(),
            'duration': data['duration'],
            'slots': [slot.to_dict() for slot in slots],
        })

# services/scheduling-service/src/apps/api/views/waitlist_views.py
"""
Waitlist API Views
"""

import logging

from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from apps.core.models import WaitlistEntry
from apps.core.services import WaitlistService
from apps.api.serializers import (
    WaitlistEntrySerializer,
    WaitlistJoinSerializer,
    WaitlistUpdateSerializer,
    WaitlistReorderSerializer,
    WaitlistNotifySerializer,
    WaitlistPositionSerializer,
)
from shared.common.mixins import OrganizationFilterMixin
from .filters import WaitlistFilter
from .pagination import StandardResultsSetPagination

logger = logging.getLogger(__name__)


class WaitlistEntryViewSet(
    OrganizationFilterMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet
):
    """
    ViewSet for waitlist entries.

    Join, leave, reorder and notification bookkeeping.
    """

    queryset = WaitlistEntry.objects.all()
    serializer_class = WaitlistEntrySerializer
    pagination_class = StandardResultsSetPagination
    filter_backends = [DjangoFilterBackend]
    filterset_class = WaitlistFilter

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.waitlist_service = WaitlistService()

    def get_queryset(self):
        return super().get_queryset().order_by('service_id', 'position')

    def get_serializer_class(self):
        if self.action == 'create':
            return WaitlistJoinSerializer
        elif self.action == 'partial_update':
            return WaitlistUpdateSerializer
        return WaitlistEntrySerializer

    def create(self, request, *args, **kwargs):
        """Join a service's waitlist."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        entry = self.waitlist_service.join(
            self.get_organization_id(),
            **serializer.validated_data
        )

        return Response(
            WaitlistEntrySerializer(entry).data,
            status=status.HTTP_201_CREATED
        )

    def partial_update(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        entry = self.waitlist_service.update_entry(
            kwargs['pk'],
            self.get_organization_id(),
            **serializer.validated_data
        )

        return Response(WaitlistEntrySerializer(entry).data)

    def destroy(self, request, *args, **kwargs):
        """Leave the waitlist."""
        self.waitlist_service.leave(kwargs['pk'], self.get_organization_id())
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'])
    def reorder(self, request, pk=None):
        """Move an entry to a new position."""
        serializer = WaitlistReorderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        entry = self.waitlist_service.reorder(
            pk,
            serializer.validated_data['position'],
            self.get_organization_id(),
        )

        return Response(WaitlistEntrySerializer(entry).data)

    @action(detail=True, methods=['post'])
    def notify(self, request, pk=None):
        """Record that the member was told a place opened up."""
        serializer = WaitlistNotifySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        entry = self.waitlist_service.notify(
            pk,
            expires_at=serializer.validated_data.get('expires_at'),
            organization_id=self.get_organization_id(),
        )

        return Response(WaitlistEntrySerializer(entry).data)

    @action(detail=False, methods=['get'])
    def position(self, request):
        """A member's position in a service's waitlist, 0 when absent."""
        serializer = WaitlistPositionSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        return Response({
            'service_id': str(data['service_id']),
            'user_id': str(data['user_id']),
            'position': self.waitlist_service.position_of(data['service_id'], data['user_id']),
        })

    @action(detail=False, methods=['get'])
    def statistics(self, request):
        """Queue statistics for a service."""
        service_id = request.query_params.get('service_id')
        if not service_id:
            raise ValidationError({'service_id': 'This query parameter is required'})

        return Response(
            self.waitlist_service.get_statistics(self.get_organization_id(), service_id)
        )

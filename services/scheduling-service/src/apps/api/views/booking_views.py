# services/scheduling-service/src/apps/api/views/booking_views.py
"""
Booking API Views

Views for booking management and availability checks.
"""

import logging

from rest_framework import viewsets, mixins, status, filters
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView
from django_filters.rest_framework import DjangoFilterBackend

from apps.core.models import Booking
from apps.core.services import BookingService, SchedulingForbiddenError
from apps.api.serializers import (
    BookingSerializer,
    BookingDetailSerializer,
    BookingCreateSerializer,
    BookingUpdateSerializer,
    BookingCancelSerializer,
    AvailabilityCheckSerializer,
)
from shared.common.mixins import OrganizationFilterMixin
from .filters import BookingFilter
from .pagination import StandardResultsSetPagination

logger = logging.getLogger(__name__)


def actor_is_staff(request) -> bool:
    """
    Whether the caller acts as staff.

    Token principals decide by role. Without one (internal callers on
    an open permission policy) the request may say so itself.
    """
    user = request.user
    if hasattr(user, 'roles'):
        return user.is_staff_member
    return bool(request.data.get('by_staff', False))


class BookingViewSet(
    OrganizationFilterMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet
):
    """
    ViewSet for booking management.

    Reads go through the queryset; every write goes through BookingService.
    """

    queryset = Booking.objects.all()
    serializer_class = BookingSerializer
    pagination_class = StandardResultsSetPagination
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_class = BookingFilter
    search_fields = ['title', 'notes']
    ordering_fields = ['start_time', 'created_at', 'status']
    ordering = ['start_time']

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.booking_service = BookingService()

    def get_serializer_class(self):
        """Return appropriate serializer based on action."""
        if self.action == 'retrieve':
            return BookingDetailSerializer
        elif self.action == 'create':
            return BookingCreateSerializer
        elif self.action == 'partial_update':
            return BookingUpdateSerializer
        return BookingSerializer

    def create(self, request, *args, **kwargs):
        """Create a new booking."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = self.booking_service.create_booking(
            organization_id=self.get_organization_id(),
            created_by=self.get_user_id(),
            **serializer.validated_data
        )

        return Response(
            BookingDetailSerializer(booking).data,
            status=status.HTTP_201_CREATED
        )

    def partial_update(self, request, *args, **kwargs):
        """Update the supplied fields of a booking."""
        serializer = self.get_serializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        booking = self.booking_service.update_booking(
            kwargs['pk'],
            self.get_organization_id(),
            **serializer.validated_data
        )

        return Response(BookingDetailSerializer(booking).data)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        """Cancel a booking; freed places are offered to the waitlist."""
        serializer = BookingCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        organization_id = self.get_organization_id()
        by_staff = actor_is_staff(request)
        caller_id = self.get_user_id()

        if hasattr(request.user, 'roles') and not by_staff:
            booking = self.booking_service.get_booking(pk, organization_id)
            if booking.user_id != caller_id:
                raise SchedulingForbiddenError("Members can only cancel their own bookings")

        booking, promoted = self.booking_service.cancel_booking(
            pk,
            organization_id,
            cancelled_by=caller_id,
            by_staff=by_staff,
            reason=serializer.validated_data.get('reason'),
        )

        return Response({
            'booking': BookingDetailSerializer(booking).data,
            'promoted': BookingSerializer(promoted, many=True).data,
        })

    @action(detail=True, methods=['post'])
    def confirm(self, request, pk=None):
        """Confirm a pending booking."""
        booking = self.booking_service.confirm_booking(pk, self.get_organization_id())
        return Response(BookingDetailSerializer(booking).data)

    @action(detail=True, methods=['post'])
    def attend(self, request, pk=None):
        """Mark a booking as attended."""
        booking = self.booking_service.mark_attended(pk, self.get_organization_id())
        return Response(BookingDetailSerializer(booking).data)

    @action(detail=True, methods=['post'], url_path='no-show')
    def no_show(self, request, pk=None):
        """Mark a booking as a no-show."""
        booking = self.booking_service.mark_no_show(pk, self.get_organization_id())
        return Response(BookingDetailSerializer(booking).data)

    @action(detail=False, methods=['get'])
    def upcoming(self, request):
        """Upcoming bookings, optionally for one member."""
        try:
            limit = min(int(request.query_params.get('limit', 10)), 100)
        except ValueError:
            raise ValidationError({'limit': 'Must be an integer'})

        bookings = self.booking_service.get_upcoming_bookings(
            self.get_organization_id(),
            user_id=request.query_params.get('user_id') or None,
            limit=limit,
        )
        return Response(BookingSerializer(bookings, many=True).data)


class AvailabilityCheckView(OrganizationFilterMixin, APIView):
    """
    Check a candidate interval against every conflict rule.

    Nothing is written; the result lists all conflicts found.
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.booking_service = BookingService()

    def post(self, request):
        serializer = AvailabilityCheckSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = self.booking_service.check_availability(
            self.get_organization_id(),
            **serializer.validated_data
        )

        return Response({
            'available': not result.has_conflict,
            **result.to_dict(),
        })

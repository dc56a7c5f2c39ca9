"""
Booking REST API.

Views authenticate and authorize the caller, validate the request body and
hand off to the services layer. Domain errors propagate to the project's
exception handler, which renders them as ``{success: false, error, message}``.
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.permissions import IsDriver, IsPassenger
from services import negotiation
from services.matching import active_booking_for, bookings_for, nearby_open_bookings

from .exceptions import ForbiddenError, ValidationError
from .models import Booking, BookingStatus
from .serializers import (
    BookingCancelSerializer,
    BookingCreateSerializer,
    BookingSerializer,
    DriverLocationSerializer,
    DriverRespondSerializer,
    OfferResponseSerializer,
    RatingSerializer,
)

logger = logging.getLogger(__name__)


def _booking_response(result, status_code=status.HTTP_200_OK):
    return Response({
        'success': result.success,
        'message': result.message,
        'booking': BookingSerializer(result.booking).data,
    }, status=status_code)


def _load_booking(booking_id):
    return Booking.objects.get_by_id(booking_id)


def _is_participant(user, booking):
    return user.id in (booking.passenger_id, booking.driver_id)


def _require_passenger_of(user, booking):
    if booking.passenger_id != user.id:
        raise ForbiddenError("Only the passenger of this booking can do this")


def _require_driver_of(user, booking):
    if booking.driver_id is None or booking.driver_id != user.id:
        raise ForbiddenError("Only the assigned driver can do this")


def _status_filter(request):
    raw = request.query_params.get('status', '')
    return [s.strip() for s in raw.split(',') if s.strip()]


def _history_response(request, role):
    page = bookings_for(
        request.user,
        role,
        statuses=_status_filter(request),
        page=request.query_params.get('page', 1),
        limit=request.query_params.get('limit', 10),
    )
    return Response({
        'success': True,
        'bookings': BookingSerializer(page['bookings'], many=True).data,
        'total': page['total'],
        'page': page['page'],
        'limit': page['limit'],
        'pages': page['pages'],
    })


# ==================== Passenger APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPassenger])
def create_booking(request):
    """Create a new special trip request with the passenger's preferred fare"""
    serializer = BookingCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    result = negotiation.create_booking(
        request.user,
        pickup=(data['pickup_latitude'], data['pickup_longitude']),
        destination=(data['destination_latitude'], data['destination_longitude']),
        preferred_fare=data['preferred_fare'],
        pickup_address=data['pickup_address'],
        destination_address=data['destination_address'],
    )
    return _booking_response(result, status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPassenger])
def respond_to_offer(request, booking_id):
    """Passenger accepts or declines the driver's counter-offer"""
    booking = _load_booking(booking_id)
    _require_passenger_of(request.user, booking)

    serializer = OfferResponseSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = negotiation.respond_to_offer(
        request.user, booking.id, serializer.validated_data['accepted']
    )
    return _booking_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPassenger])
def rate_booking(request, booking_id):
    booking = _load_booking(booking_id)
    _require_passenger_of(request.user, booking)

    serializer = RatingSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = negotiation.rate_trip(
        request.user,
        booking.id,
        serializer.validated_data['rating'],
        serializer.validated_data['comment'],
    )
    return _booking_response(result)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPassenger])
def passenger_history(request):
    return _history_response(request, 'passenger')


# ==================== Driver APIs ====================

@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDriver])
def nearby_bookings(request):
    """
    Open special trip requests near the driver (POLLING ENDPOINT)

    Query params: lat, lon, radius (km, optional)
    """
    lat = request.query_params.get('lat')
    lon = request.query_params.get('lon')
    if lat is None or lon is None:
        raise ValidationError("lat and lon query parameters are required")
    try:
        location = (float(lat), float(lon))
    except ValueError:
        raise ValidationError("lat and lon must be numbers")

    bookings = nearby_open_bookings(location, request.query_params.get('radius'))
    return Response({
        'success': True,
        'count': len(bookings),
        'bookings': BookingSerializer(bookings, many=True).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDriver])
def driver_respond(request, booking_id):
    """Driver accepts the preferred fare or sends a counter-offer"""
    booking = _load_booking(booking_id)

    serializer = DriverRespondSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    result = negotiation.driver_respond(
        request.user,
        booking.id,
        accept=data['accept'],
        counter_offer=data.get('counter_offer'),
        message=data['message'],
    )
    return _booking_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDriver])
def confirm_pickup(request, booking_id):
    booking = _load_booking(booking_id)
    _require_driver_of(request.user, booking)

    serializer = DriverLocationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = negotiation.confirm_pickup(request.user, booking.id, serializer.location())
    return _booking_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDriver])
def complete_booking(request, booking_id):
    """
    Complete the trip. The driver must report a location within the
    completion radius of the destination.
    """
    booking = _load_booking(booking_id)
    _require_driver_of(request.user, booking)

    serializer = DriverLocationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    location = serializer.location()
    if location is None:
        raise ValidationError("driverLat and driverLon are required to complete a trip")

    result = negotiation.complete_trip(request.user, booking.id, location)
    return _booking_response(result)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDriver])
def driver_history(request):
    return _history_response(request, 'driver')


# ==================== Shared APIs ====================

@api_view(['GET'])
@permission_classes([IsAuthenticated])
def active_booking(request):
    """
    The caller's current booking (POLLING ENDPOINT)

    Returns ``booking: null`` when there is nothing in progress.
    """
    booking = active_booking_for(request.user, request.user.role)
    return Response({
        'success': True,
        'booking': BookingSerializer(booking).data if booking else None,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def booking_detail(request, booking_id):
    booking = _load_booking(booking_id)
    # Drivers may inspect any request that is still up for grabs
    open_to_driver = request.user.is_driver and booking.status == BookingStatus.PENDING
    if not (_is_participant(request.user, booking) or open_to_driver):
        raise ForbiddenError()

    return Response({
        'success': True,
        'booking': BookingSerializer(booking).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cancel_booking(request, booking_id):
    """Cancel by either party; a reason is required"""
    booking = _load_booking(booking_id)
    if request.user.id == booking.passenger_id:
        cancelled_by = 'passenger'
    elif booking.driver_id is not None and request.user.id == booking.driver_id:
        cancelled_by = 'driver'
    else:
        raise ForbiddenError()

    serializer = BookingCancelSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = negotiation.cancel_booking(
        request.user, booking.id, serializer.validated_data['reason'], cancelled_by
    )
    return _booking_response(result)

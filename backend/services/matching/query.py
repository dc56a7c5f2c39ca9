"""
Read-side booking queries for drivers and passengers.

These never change booking state except for lazily expiring an overdue
pending booking the caller is about to see.
"""

import logging
import math
from typing import Dict, Iterable, Optional

from django.conf import settings
from django.utils import timezone

from bookings.exceptions import ValidationError
from bookings.models import Booking, BookingStatus
from bookings.status import ACTIVE_TRIP_STATUSES
from common.utils import within_service_area
from services.negotiation import expire_booking
from services.negotiation.engine import parse_point

logger = logging.getLogger(__name__)

ROLE_PASSENGER = "passenger"
ROLE_DRIVER = "driver"


def _resolve_radius(radius_km) -> float:
    default = getattr(settings, "DEFAULT_NEARBY_RADIUS_KM", 5)
    ceiling = getattr(settings, "MAX_NEARBY_RADIUS_KM", 20)
    if radius_km is None or radius_km == "":
        return float(default)
    try:
        radius = float(radius_km)
    except (TypeError, ValueError):
        raise ValidationError("Radius must be a number")
    if not math.isfinite(radius) or radius <= 0:
        raise ValidationError("Radius must be greater than zero")
    return min(radius, float(ceiling))


def nearby_open_bookings(driver_location, radius_km=None) -> list:
    """
    Pending bookings a driver can respond to, oldest first.

    Args:
        driver_location: Driver's current location (Point or lat/lon pair)
        radius_km: Search radius; defaults to DEFAULT_NEARBY_RADIUS_KM and is
            capped at MAX_NEARBY_RADIUS_KM

    Returns:
        List of Booking instances, each annotated with ``distance_m``
    """
    point = parse_point(driver_location, "Driver location")
    radius = _resolve_radius(radius_km)

    if not within_service_area(point):
        logger.debug("Driver location %s outside service area", point)
        return []

    now = timezone.now()
    bookings = [
        booking for booking in Booking.objects.list_open_near(point, radius)
        if not booking.is_overdue(now)
    ]
    bookings.sort(key=lambda b: (b.created_at, b.id))
    return bookings


def active_booking_for(user, role: str) -> Optional[Booking]:
    """
    Return the booking the user is currently involved in, if any.

    For a passenger this is their single open booking. For a driver it is the
    trip they are assigned to, or failing that the booking they hold an offer on.
    """
    if role == ROLE_PASSENGER:
        bookings = Booking.objects.list_open_by_passenger(user.id)
        if not bookings:
            return None
        booking = bookings[0]
        if booking.is_overdue(timezone.now()):
            expire_booking(booking.id)
            return None
        return booking

    if role == ROLE_DRIVER:
        # A live trip wins over any outstanding counter-offer
        for statuses in (ACTIVE_TRIP_STATUSES, [BookingStatus.OFFER_MADE]):
            booking = (
                Booking.objects.for_driver(user.id)
                .with_status(statuses)
                .order_by("-created_at", "-id")
                .first()
            )
            if booking is not None:
                return booking
        return None

    raise ValidationError(f"Unknown role: {role}")


def bookings_for(user, role: str, statuses: Optional[Iterable[str]] = None, page=1, limit=10) -> Dict:
    """
    Page through a user's bookings, newest first.

    Returns:
        Dict with ``bookings``, ``total``, ``page``, ``limit`` and ``pages``
    """
    statuses = [s for s in (statuses or []) if s]
    unknown = [s for s in statuses if s not in BookingStatus.values]
    if unknown:
        raise ValidationError(f"Unknown status: {', '.join(unknown)}")

    try:
        page = int(page)
        limit = int(limit)
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers")
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")
    limit = min(limit, 100)

    if role == ROLE_PASSENGER:
        qs = Booking.objects.for_passenger(user.id)
    elif role == ROLE_DRIVER:
        qs = Booking.objects.for_driver(user.id)
    else:
        raise ValidationError(f"Unknown role: {role}")

    qs = qs.with_status(statuses).select_related("passenger", "driver").order_by("-created_at", "-id")
    total = qs.count()
    offset = (page - 1) * limit

    return {
        "bookings": list(qs[offset:offset + limit]),
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }

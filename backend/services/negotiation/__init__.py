"""
Booking negotiation service - Core booking lifecycle operations.

This module handles:
    - Creating special trip requests
    - Driver accept / counter-offer and passenger accept / decline
    - Pickup, geofenced completion and rating
    - Cancelling and expiring bookings
"""

from bookings.exceptions import (
    ConflictError,
    DispatchError,
    DriverBusyError,
    DuplicateOpenBookingError,
    ForbiddenError,
    NotAtDestinationError,
    NotAtPickupError,
    NotFoundError,
    ValidationError,
)

from .engine import (
    BookingResult,
    cancel_booking,
    complete_trip,
    confirm_pickup,
    create_booking,
    driver_respond,
    expire_booking,
    expire_overdue_bookings,
    rate_trip,
    respond_to_offer,
)

__all__ = [
    # Operations
    "BookingResult",
    "create_booking",
    "driver_respond",
    "respond_to_offer",
    "confirm_pickup",
    "complete_trip",
    "cancel_booking",
    "rate_trip",
    "expire_booking",
    "expire_overdue_bookings",
    # Exceptions
    "DispatchError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "DuplicateOpenBookingError",
    "DriverBusyError",
    "NotAtDestinationError",
    "NotAtPickupError",
    "ForbiddenError",
]

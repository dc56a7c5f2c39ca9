"""
Booking matching service.

This module handles:
    - Finding open bookings near a driver
    - Looking up a user's current booking
    - Paging a user's booking history
"""

from .query import active_booking_for, bookings_for, nearby_open_bookings

__all__ = [
    "nearby_open_bookings",
    "active_booking_for",
    "bookings_for",
]

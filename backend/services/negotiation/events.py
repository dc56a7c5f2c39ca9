"""
Booking domain events.

Every successful transition publishes one event to the channel layer groups
``booking_<id>``, ``user_<passenger_id>`` and (when assigned) ``user_<driver_id>``.
Clients that hold a WebSocket can react immediately; everyone else keeps
polling. Publishing is best-effort and never affects the transition.
"""

import logging
from typing import Any, Dict, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)

BOOKING_CREATED = "booking_created"
OFFER_MADE = "offer_made"
OFFER_DECLINED = "offer_declined"
BOOKING_ACCEPTED = "booking_accepted"
TRIP_STARTED = "trip_started"
TRIP_COMPLETED = "trip_completed"
BOOKING_CANCELLED = "booking_cancelled"
BOOKING_EXPIRED = "booking_expired"
BOOKING_RATED = "booking_rated"


def event_groups(booking, extra_user_ids=()) -> list:
    groups = [f"booking_{booking.id}", f"user_{booking.passenger_id}"]
    user_ids = [booking.driver_id, *extra_user_ids]
    for user_id in user_ids:
        group = f"user_{user_id}"
        if user_id is not None and group not in groups:
            groups.append(group)
    return groups


def publish_booking_event(
    event_type: str,
    booking,
    message: str = "",
    extra: Optional[Dict[str, Any]] = None,
    extra_user_ids=(),
) -> bool:
    """
    Send a booking event to every interested group.

    Args:
        event_type: one of the event names defined in this module
        booking: Booking the event is about
        message: Human-readable message for the client
        extra: Additional keys to include in the payload
        extra_user_ids: Users to notify besides the booking's parties
            (e.g. a driver whose offer was just declined)

    Returns:
        True if the event was handed to the channel layer
    """
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.debug("No channel layer configured; skipping %s for booking %s", event_type, booking.id)
        return False

    payload = {
        "type": "booking_event",
        "event": event_type,
        "booking_id": booking.id,
        "status": str(booking.status),
        "passenger_id": booking.passenger_id,
        "driver_id": booking.driver_id,
        "message": message,
        **(extra or {}),
    }
    try:
        for group in event_groups(booking, extra_user_ids):
            async_to_sync(channel_layer.group_send)(group, payload)
    except Exception:
        logger.exception("Failed to publish %s for booking %s", event_type, booking.id)
        return False
    return True

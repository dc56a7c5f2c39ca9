"""
Core booking negotiation and trip lifecycle operations.

This module is the single authority on booking status. Every transition is
validated here and written through ``Booking.objects.update_if_status`` so
that competing actors resolve by compare-and-swap rather than locks.

    pending -> offer_made -> pending        (counter-offer, passenger declines)
    pending | offer_made -> accepted        (driver accepts / passenger accepts offer)
    accepted -> in_progress -> completed    (pickup, geofenced completion)
    any open status -> cancelled
    pending -> expired                      (system, time-based)

Callers are trusted: identity and ownership are checked by the API layer.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import ExpressionWrapper, F, FloatField, Value
from django.utils import timezone

from bookings.exceptions import (
    ConflictError,
    DriverBusyError,
    DuplicateOpenBookingError,
    NotAtDestinationError,
    NotAtPickupError,
    NotFoundError,
    ValidationError,
)
from bookings.models import Booking, BookingStatus
from common.utils import Point, distance_meters, is_valid_coordinate, within_radius, within_service_area

from . import events

logger = logging.getLogger(__name__)

User = get_user_model()

MAX_FARE = Decimal("999999.99")
_CENTS = Decimal("0.01")
_COORD = Decimal("0.000001")


@dataclass
class BookingResult:
    """Result object for booking operations."""
    success: bool
    booking: Optional[Booking] = None
    message: str = ""
    event: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


class _NotYetDue(Exception):
    pass


def _setting(name, default):
    return getattr(settings, name, default)


# ===================== Validation Helpers =====================

def parse_point(value, label: str = "Location") -> Point:
    """Coerce (lat, lon), a Point or a {'latitude', 'longitude'} dict into a Point."""
    if value is None:
        raise ValidationError(f"{label} is required")
    if isinstance(value, dict):
        lat = value.get("latitude", value.get("lat"))
        lon = value.get("longitude", value.get("lon"))
    else:
        try:
            lat, lon = value
        except (TypeError, ValueError):
            raise ValidationError(f"{label} must be a latitude/longitude pair")
    if not is_valid_coordinate(lat, lon):
        raise ValidationError(f"{label} has invalid coordinates")
    return Point(float(lat), float(lon))


def parse_fare(value, label: str = "Fare") -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{label} is required")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{label} must be a number")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{label} must be greater than zero")
    if amount > MAX_FARE:
        raise ValidationError(f"{label} is too large")
    return amount.quantize(_CENTS, rounding=ROUND_HALF_UP)


def parse_rating(value) -> int:
    if isinstance(value, bool):
        raise ValidationError("Rating must be between 1 and 5")
    try:
        rating = int(str(value))
    except (TypeError, ValueError):
        raise ValidationError("Rating must be between 1 and 5")
    if rating < 1 or rating > 5:
        raise ValidationError("Rating must be between 1 and 5")
    return rating


def _coord(value: float) -> Decimal:
    return Decimal(str(value)).quantize(_COORD, rounding=ROUND_HALF_UP)


def _advance(booking: Booking, new_status: str):
    if not booking.can_transition_to(new_status):
        raise NotFoundError(f"Booking cannot move from {booking.status} to {new_status}")
    booking.status = new_status


def _clear_offer(booking: Booking):
    booking.offer_amount = None
    booking.offer_message = ""
    booking.offer_driver_id = None
    booking.offer_created_at = None


def ensure_driver_free(driver_id):
    """Raise DriverBusyError if the driver already holds an accepted/in-progress trip."""
    if Booking.objects.list_active_by_driver(driver_id):
        raise DriverBusyError("You already have an active trip. Complete it before accepting another.")


# ===================== Passenger Operations =====================

def create_booking(
    passenger,
    pickup,
    destination,
    preferred_fare,
    pickup_address: str = "",
    destination_address: str = "",
) -> BookingResult:
    """
    Create a new special trip request.

    Args:
        passenger: User model instance (passenger)
        pickup: Pickup location (Point or lat/lon pair)
        destination: Destination location (Point or lat/lon pair)
        preferred_fare: Fare the passenger is willing to pay
        pickup_address: Human-readable pickup address
        destination_address: Human-readable destination address

    Returns:
        BookingResult with the created booking

    Raises:
        ValidationError: If fare or coordinates are invalid, or the pickup is
            outside the service area
        DuplicateOpenBookingError: If passenger already has an open booking
    """
    pickup = parse_point(pickup, "Pickup")
    destination = parse_point(destination, "Destination")
    fare = parse_fare(preferred_fare, "Preferred fare")

    if not within_service_area(pickup):
        raise ValidationError("Pickup is outside the service area")

    now = timezone.now()
    open_bookings = [
        booking for booking in Booking.objects.list_open_by_passenger(passenger.id)
        if not (booking.is_overdue(now) and expire_booking(booking.id, now))
    ]
    if open_bookings:
        raise DuplicateOpenBookingError("You already have an active booking")

    try:
        booking = Booking.objects.create_booking(
            passenger=passenger,
            pickup_latitude=_coord(pickup.latitude),
            pickup_longitude=_coord(pickup.longitude),
            pickup_address=pickup_address or "",
            destination_latitude=_coord(destination.latitude),
            destination_longitude=_coord(destination.longitude),
            destination_address=destination_address or "",
            preferred_fare=fare,
            expires_at=now + timedelta(minutes=_setting("BOOKING_EXPIRY_MINUTES", 30)),
        )
    except ConflictError:
        raise DuplicateOpenBookingError("You already have an active booking")

    logger.info("Booking %s created by passenger %s (fare=%s)", booking.id, passenger.id, fare)
    events.publish_booking_event(events.BOOKING_CREATED, booking, "New special trip request")

    return BookingResult(
        success=True,
        booking=booking,
        message="Booking created successfully",
        event=events.BOOKING_CREATED,
    )


def respond_to_offer(passenger, booking_id, accepted: bool) -> BookingResult:
    """
    Accept or decline the driver's counter-offer.

    Accepting fixes the driver and the agreed fare. Declining puts the booking
    back to pending so any driver (including the one declined) may respond.

    Raises:
        NotFoundError: If there is no pending offer on this booking
        DriverBusyError: If the offering driver is already on another trip
        ConflictError: If the offer changed underneath the passenger
    """
    booking = Booking.objects.get_by_id(booking_id)
    if booking.status != BookingStatus.OFFER_MADE:
        raise NotFoundError("No pending offer to respond to")

    seen_driver_id = booking.offer_driver_id
    seen_offer_at = booking.offer_created_at
    now = timezone.now()

    def _same_offer(b):
        if b.offer_driver_id != seen_driver_id or b.offer_created_at != seen_offer_at:
            raise ConflictError("The offer changed. Please review it again.")

    if accepted:
        ensure_driver_free(booking.driver_id)

        def _accept(b):
            _same_offer(b)
            _advance(b, BookingStatus.ACCEPTED)
            b.agreed_fare = b.offer_amount
            b.accepted_at = now
            _clear_offer(b)

        booking = Booking.objects.update_if_status(booking.id, BookingStatus.OFFER_MADE, _accept)
        logger.info(
            "Booking %s: passenger %s accepted offer from driver %s (fare=%s)",
            booking.id, passenger.id, booking.driver_id, booking.agreed_fare,
        )
        events.publish_booking_event(
            events.BOOKING_ACCEPTED, booking, f"Passenger accepted your fare of {booking.agreed_fare}"
        )
        return BookingResult(
            success=True, booking=booking, message="Offer accepted", event=events.BOOKING_ACCEPTED
        )

    extension = timedelta(minutes=_setting("DECLINE_EXTENSION_MINUTES", 5))

    def _decline(b):
        _same_offer(b)
        _advance(b, BookingStatus.PENDING)
        b.driver_id = None
        _clear_offer(b)
        b.expires_at = max(b.expires_at, now + extension)

    booking = Booking.objects.update_if_status(booking.id, BookingStatus.OFFER_MADE, _decline)
    logger.info("Booking %s: passenger %s declined offer from driver %s", booking.id, passenger.id, seen_driver_id)
    events.publish_booking_event(
        events.OFFER_DECLINED,
        booking,
        "The passenger declined your offer",
        extra_user_ids=[seen_driver_id],
    )
    return BookingResult(
        success=True, booking=booking, message="Offer declined", event=events.OFFER_DECLINED
    )


@transaction.atomic
def rate_trip(passenger, booking_id, rating, comment: str = "") -> BookingResult:
    """
    Rate the driver of a completed trip, exactly once.

    The booking status is unchanged; the driver's average rating is updated
    in the same transaction.
    """
    rating = parse_rating(rating)
    booking = Booking.objects.get_by_id(booking_id)
    if booking.status != BookingStatus.COMPLETED:
        raise NotFoundError("Can only rate completed trips")
    if booking.rating is not None:
        raise ConflictError("Trip already rated")

    def _rate(b):
        b.rating = rating
        b.rating_comment = (comment or "").strip()

    booking = Booking.objects.update_if_status(
        booking.id, BookingStatus.COMPLETED, _rate, require_null=("rating",)
    )

    if booking.driver_id:
        User.objects.filter(pk=booking.driver_id).update(
            rating=ExpressionWrapper(
                (F("rating") * F("num_reviews") + Value(float(rating))) / (F("num_reviews") + 1),
                output_field=FloatField(),
            ),
            num_reviews=F("num_reviews") + 1,
        )

    logger.info("Booking %s rated %s by passenger %s", booking.id, rating, passenger.id)
    events.publish_booking_event(events.BOOKING_RATED, booking, f"Passenger rated the trip {rating}/5")
    return BookingResult(
        success=True, booking=booking, message="Rating submitted successfully", event=events.BOOKING_RATED
    )


# ===================== Driver Operations =====================

def driver_respond(
    driver,
    booking_id,
    accept: bool,
    counter_offer=None,
    message: str = "",
) -> BookingResult:
    """
    Respond to a pending booking: accept at the passenger's fare or counter-offer.

    Args:
        driver: User model instance (driver)
        booking_id: ID of the booking
        accept: True to accept at the preferred fare
        counter_offer: Proposed fare when not accepting
        message: Optional note shown to the passenger with the offer

    Returns:
        BookingResult with the accepted booking or the booking carrying the offer

    Raises:
        ValidationError: If neither (or both) of accept/counter_offer are given
        NotFoundError: If the booking is no longer pending (already claimed,
            offer outstanding, cancelled or expired)
        DriverBusyError: If accepting while already on another trip
        ConflictError: If another actor changed the booking first
    """
    if accept and counter_offer is not None:
        raise ValidationError("Either accept the preferred fare or send a counter offer, not both")
    if not accept and counter_offer is None:
        raise ValidationError("Invalid response. Must accept or provide a counter offer.")
    amount = parse_fare(counter_offer, "Counter offer") if counter_offer is not None else None

    booking = Booking.objects.get_by_id(booking_id)
    now = timezone.now()

    if booking.is_overdue(now):
        expire_booking(booking.id, now=now)
        raise NotFoundError("This booking has expired")
    if booking.status != BookingStatus.PENDING:
        raise NotFoundError("This booking is no longer available")

    if accept:
        ensure_driver_free(driver.id)

        def _accept(b):
            _advance(b, BookingStatus.ACCEPTED)
            b.driver_id = driver.id
            b.agreed_fare = b.preferred_fare
            b.accepted_at = now

        booking = Booking.objects.update_if_status(booking.id, BookingStatus.PENDING, _accept)
        logger.info("Booking %s accepted by driver %s at %s", booking.id, driver.id, booking.agreed_fare)
        events.publish_booking_event(
            events.BOOKING_ACCEPTED,
            booking,
            f"Driver {driver.username} accepted your booking at {booking.agreed_fare}",
        )
        return BookingResult(
            success=True, booking=booking, message="Booking accepted", event=events.BOOKING_ACCEPTED
        )

    def _offer(b):
        _advance(b, BookingStatus.OFFER_MADE)
        b.driver_id = driver.id
        b.offer_amount = amount
        b.offer_message = (message or "").strip()
        b.offer_driver_id = driver.id
        b.offer_created_at = now

    booking = Booking.objects.update_if_status(booking.id, BookingStatus.PENDING, _offer)
    logger.info("Booking %s: driver %s counter-offered %s", booking.id, driver.id, amount)
    events.publish_booking_event(
        events.OFFER_MADE,
        booking,
        f"Driver {driver.username} offers {amount} for your trip",
        extra={"offer_amount": str(amount)},
    )
    return BookingResult(
        success=True, booking=booking, message="Counter offer sent", event=events.OFFER_MADE
    )


def confirm_pickup(driver, booking_id, location=None) -> BookingResult:
    """
    Mark the passenger as picked up (accepted -> in_progress).

    The driver's location is informational unless PICKUP_RADIUS_METERS is
    configured, in which case it must be inside that radius of the pickup.
    """
    booking = Booking.objects.get_by_id(booking_id)
    if booking.status != BookingStatus.ACCEPTED:
        raise NotFoundError("Trip cannot be started in its current status")

    radius = _setting("PICKUP_RADIUS_METERS", None)
    if radius is not None:
        point = parse_point(location, "Driver location")
        if not within_radius(point, booking.pickup, radius):
            distance = distance_meters(point, booking.pickup)
            raise NotAtPickupError(
                f"You must be within {radius}m of the pickup point. Current distance: {round(distance)}m",
                distance_m=round(distance, 1),
                radius_m=radius,
            )

    now = timezone.now()

    def _start(b):
        _advance(b, BookingStatus.IN_PROGRESS)
        b.picked_up_at = now

    booking = Booking.objects.update_if_status(booking.id, BookingStatus.ACCEPTED, _start)
    logger.info("Booking %s picked up by driver %s", booking.id, driver.id)
    events.publish_booking_event(events.TRIP_STARTED, booking, "Your trip has started")
    return BookingResult(
        success=True, booking=booking, message="Pickup confirmed. Trip started.", event=events.TRIP_STARTED
    )


@transaction.atomic
def complete_trip(driver, booking_id, location) -> BookingResult:
    """
    Complete a trip - called by driver when the passenger reaches the destination.

    Args:
        driver: User model instance (driver)
        booking_id: ID of the booking to complete
        location: Driver's current location

    Returns:
        BookingResult with the completed booking

    Raises:
        NotAtDestinationError: If the driver is farther than
            COMPLETION_RADIUS_METERS from the destination; nothing changes and
            the driver may retry once closer
    """
    point = parse_point(location, "Driver location")
    booking = Booking.objects.get_by_id(booking_id)
    if booking.status != BookingStatus.IN_PROGRESS:
        raise NotFoundError("Trip cannot be completed in its current status")

    radius = _setting("COMPLETION_RADIUS_METERS", 300)
    if not within_radius(point, booking.destination, radius):
        distance = distance_meters(point, booking.destination)
        raise NotAtDestinationError(
            f"You must be within {radius}m of destination to complete. Current distance: {round(distance)}m",
            distance_m=round(distance, 1),
            radius_m=radius,
        )

    now = timezone.now()

    def _complete(b):
        _advance(b, BookingStatus.COMPLETED)
        b.completed_at = now
        b.completion_latitude = _coord(point.latitude)
        b.completion_longitude = _coord(point.longitude)

    booking = Booking.objects.update_if_status(booking.id, BookingStatus.IN_PROGRESS, _complete)

    # Update trip counts
    User.objects.filter(pk__in=[booking.passenger_id, booking.driver_id]).update(
        completed_trips=F("completed_trips") + 1
    )

    logger.info("Booking %s completed by driver %s (fare=%s)", booking.id, driver.id, booking.agreed_fare)
    events.publish_booking_event(
        events.TRIP_COMPLETED, booking, "Your trip has been completed. Thank you for riding with us!"
    )
    return BookingResult(
        success=True, booking=booking, message="Trip completed successfully", event=events.TRIP_COMPLETED
    )


# ===================== Shared Operations =====================

def cancel_booking(actor, booking_id, reason: str, cancelled_by: str) -> BookingResult:
    """
    Cancel any open booking.

    Args:
        actor: User cancelling (None for the system)
        booking_id: ID of the booking to cancel
        reason: Cancellation reason (required)
        cancelled_by: 'passenger', 'driver' or 'system'

    Raises:
        ValidationError: If no reason is given
        NotFoundError: If the booking is already completed, cancelled or expired
        ConflictError: If the booking changed status while cancelling
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A cancellation reason is required")

    booking = Booking.objects.get_by_id(booking_id)
    if booking.is_terminal:
        raise NotFoundError(f"Booking cannot be cancelled - it is already {booking.status}")

    prior_status = booking.status
    now = timezone.now()

    def _cancel(b):
        _advance(b, BookingStatus.CANCELLED)
        b.cancelled_at = now
        b.cancellation_reason = reason
        b.cancelled_by = cancelled_by
        _clear_offer(b)

    booking = Booking.objects.update_if_status(booking.id, prior_status, _cancel)
    logger.info(
        "Booking %s cancelled by %s %s from %s: %s",
        booking.id, cancelled_by, getattr(actor, "id", None), prior_status, reason,
    )
    events.publish_booking_event(
        events.BOOKING_CANCELLED,
        booking,
        f"The {cancelled_by} cancelled the booking",
        extra={"cancelled_by": cancelled_by, "previous_status": prior_status},
    )
    return BookingResult(
        success=True,
        booking=booking,
        message="Booking cancelled",
        event=events.BOOKING_CANCELLED,
        extra={"previous_status": prior_status},
    )


# ===================== System Operations =====================

def expire_booking(booking_id, now=None) -> bool:
    """
    Expire a pending booking whose request window has passed.

    Idempotent: a booking that is already claimed, expired, cancelled or
    not yet due is left alone and False is returned.
    """
    now = now or timezone.now()

    def _expire(b):
        if b.expires_at > now:
            raise _NotYetDue()
        _advance(b, BookingStatus.EXPIRED)

    try:
        booking = Booking.objects.update_if_status(booking_id, BookingStatus.PENDING, _expire)
    except (ConflictError, NotFoundError, _NotYetDue):
        logger.debug("Booking %s not expired (not pending or not yet due)", booking_id)
        return False

    logger.info("Booking %s expired without a driver", booking.id)
    events.publish_booking_event(
        events.BOOKING_EXPIRED, booking, "No driver accepted your booking in time. Please try again."
    )
    return True


def expire_overdue_bookings(now=None) -> int:
    """Expire every overdue pending booking. Returns how many were expired."""
    now = now or timezone.now()
    overdue_ids = list(Booking.objects.overdue(now).values_list("id", flat=True))
    expired = sum(1 for booking_id in overdue_ids if expire_booking(booking_id, now=now))
    if expired:
        logger.info("Expired %d overdue booking(s)", expired)
    return expired

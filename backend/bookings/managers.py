"""
Booking persistence.

The manager is the booking store: it owns the row and its derived indexes
but no business rules. ``update_if_status`` is the only mutation path; it
writes with a conditional UPDATE so that two actors racing for the same
transition cannot both win.
"""

import logging
from typing import Callable, Iterable, List

from django.conf import settings
from django.db import IntegrityError, models, transaction
from django.utils import timezone

from common.utils import Point, calculate_distance, encode_geohash, get_covering_geohashes

from .exceptions import ConflictError, NotFoundError
from .status import ACTIVE_TRIP_STATUSES, OPEN_STATUSES, BookingStatus

logger = logging.getLogger(__name__)

# Columns that never change through update_if_status bookkeeping
_UNTRACKED_FIELDS = {"id", "created_at", "updated_at"}


def geo_cell_precision() -> int:
    return getattr(settings, "GEO_CELL_PRECISION", 5)


class BookingQuerySet(models.QuerySet):

    def open(self):
        return self.filter(status__in=OPEN_STATUSES)

    def active_trips(self):
        return self.filter(status__in=ACTIVE_TRIP_STATUSES)

    def for_passenger(self, passenger_id):
        return self.filter(passenger_id=passenger_id)

    def for_driver(self, driver_id):
        return self.filter(driver_id=driver_id)

    def with_status(self, statuses: Iterable[str]):
        statuses = list(statuses or [])
        if not statuses:
            return self
        return self.filter(status__in=statuses)

    def overdue(self, now):
        return self.filter(status=BookingStatus.PENDING, expires_at__lte=now)


class BookingManager(models.Manager.from_queryset(BookingQuerySet)):

    def create_booking(self, **fields):
        """
        Insert a new pending booking.

        Derives the geo index cell and the estimated trip distance from the
        pickup/destination so they are written in the same INSERT.

        Raises:
            ConflictError: if the row violates a uniqueness constraint
                (e.g. the passenger already has an open booking)
        """
        fields["status"] = BookingStatus.PENDING
        fields["pickup_cell"] = encode_geohash(
            fields["pickup_latitude"], fields["pickup_longitude"], geo_cell_precision()
        )
        fields["estimated_distance_m"] = round(calculate_distance(
            fields["pickup_latitude"],
            fields["pickup_longitude"],
            fields["destination_latitude"],
            fields["destination_longitude"],
        ))
        try:
            with transaction.atomic():
                return self.create(**fields)
        except IntegrityError as exc:
            logger.debug("Booking insert rejected by constraint: %s", exc)
            raise ConflictError("An open booking already exists for this passenger")

    def get_by_id(self, booking_id):
        try:
            return self.get(pk=booking_id)
        except (self.model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Booking not found")

    def update_if_status(
        self,
        booking_id,
        expected_status: str,
        mutator: Callable,
        require_null: Iterable[str] = (),
    ):
        """
        Compare-and-swap update of a single booking.

        Args:
            booking_id: ID of the booking to update
            expected_status: status the caller believes the booking is in
            mutator: callable applied to a fresh copy of the booking; it may
                raise to abort the update without writing anything
            require_null: columns that must still be NULL for the write to win

        Returns:
            The updated booking

        Raises:
            NotFoundError: if the booking does not exist
            ConflictError: if the stored status (or a required-null column)
                no longer matches, or the write violates a constraint
        """
        booking = self.get_by_id(booking_id)
        if booking.status != expected_status:
            raise ConflictError(
                f"Booking is {booking.status}, expected {expected_status}"
            )
        for column in require_null:
            if getattr(booking, column) is not None:
                raise ConflictError(f"Booking {column} is already set")

        tracked = [
            field.attname for field in self.model._meta.concrete_fields
            if field.attname not in _UNTRACKED_FIELDS
        ]
        before = {name: getattr(booking, name) for name in tracked}

        mutator(booking)

        changes = {
            name: getattr(booking, name)
            for name in tracked
            if getattr(booking, name) != before[name]
        }
        if not changes:
            return booking

        filters = {"pk": booking.pk, "status": expected_status}
        for column in require_null:
            filters[f"{column}__isnull"] = True

        changes["updated_at"] = timezone.now()
        try:
            with transaction.atomic():
                updated = self.filter(**filters).update(**changes)
        except IntegrityError as exc:
            logger.debug("Booking %s update rejected by constraint: %s", booking.pk, exc)
            raise ConflictError("This change conflicts with another active booking")

        if updated == 0:
            if not self.filter(pk=booking.pk).exists():
                raise NotFoundError("Booking not found")
            logger.debug("Lost CAS race on booking %s (expected %s)", booking.pk, expected_status)
            raise ConflictError()

        booking.updated_at = changes["updated_at"]
        return booking

    def list_open_by_passenger(self, passenger_id) -> List:
        return list(self.open().for_passenger(passenger_id).order_by("-created_at", "-id"))

    def list_active_by_driver(self, driver_id) -> List:
        return list(self.active_trips().for_driver(driver_id).order_by("-created_at"))

    def list_open_near(self, point: Point, radius_km: float) -> List:
        """
        Pending bookings whose pickup lies within radius_km of point.

        The geohash cells narrow the candidates in SQL; the exact haversine
        distance decides membership.
        """
        radius_meters = float(radius_km) * 1000
        cells = get_covering_geohashes(point[0], point[1], radius_meters, geo_cell_precision())
        candidates = self.filter(status=BookingStatus.PENDING, pickup_cell__in=cells)

        nearby = []
        for booking in candidates:
            distance = calculate_distance(
                point[0], point[1], booking.pickup_latitude, booking.pickup_longitude
            )
            if distance <= radius_meters:
                booking.distance_m = distance
                nearby.append(booking)
        return nearby

"""Booking statuses and the edges of the trip lifecycle."""

from django.db import models


class BookingStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    OFFER_MADE = 'offer_made', 'Offer Made'
    ACCEPTED = 'accepted', 'Accepted'
    IN_PROGRESS = 'in_progress', 'In Progress'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'
    EXPIRED = 'expired', 'Expired'


OPEN_STATUSES = (
    BookingStatus.PENDING,
    BookingStatus.OFFER_MADE,
    BookingStatus.ACCEPTED,
    BookingStatus.IN_PROGRESS,
)
ACTIVE_TRIP_STATUSES = (BookingStatus.ACCEPTED, BookingStatus.IN_PROGRESS)
TERMINAL_STATUSES = (BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.EXPIRED)

# Anything not listed here is rejected
TRANSITIONS = {
    BookingStatus.PENDING: {
        BookingStatus.OFFER_MADE,
        BookingStatus.ACCEPTED,
        BookingStatus.CANCELLED,
        BookingStatus.EXPIRED,
    },
    BookingStatus.OFFER_MADE: {
        BookingStatus.PENDING,
        BookingStatus.ACCEPTED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.ACCEPTED: {BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED},
    BookingStatus.IN_PROGRESS: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
    BookingStatus.EXPIRED: set(),
}

from django.conf import settings
from django.db import models
from django.db.models import Q

from common.utils import Point

from .managers import BookingManager
from .status import (
    BookingStatus,
    OPEN_STATUSES,
    ACTIVE_TRIP_STATUSES,
    TERMINAL_STATUSES,
    TRANSITIONS,
)


class Booking(models.Model):
    """A passenger's special trip request and its negotiation/trip history."""

    CANCELLED_BY_CHOICES = [
        ('passenger', 'Passenger'),
        ('driver', 'Driver'),
        ('system', 'System'),
    ]

    # Parties
    passenger = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='bookings'
    )
    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='driver_bookings'
    )

    # Pickup location
    pickup_latitude = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_longitude = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_address = models.TextField(blank=True, default='')
    # Geohash of the pickup; the nearby-search index
    pickup_cell = models.CharField(max_length=12, db_index=True)

    # Destination
    destination_latitude = models.DecimalField(max_digits=9, decimal_places=6)
    destination_longitude = models.DecimalField(max_digits=9, decimal_places=6)
    destination_address = models.TextField(blank=True, default='')

    estimated_distance_m = models.PositiveIntegerField(null=True, blank=True)

    # Fares
    preferred_fare = models.DecimalField(max_digits=8, decimal_places=2)
    agreed_fare = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)

    # Driver counter-offer, present only while status == offer_made
    offer_amount = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    offer_message = models.TextField(blank=True, default='')
    offer_driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    offer_created_at = models.DateTimeField(null=True, blank=True)

    status = models.CharField(max_length=20, choices=BookingStatus.choices, default=BookingStatus.PENDING)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    expires_at = models.DateTimeField()
    accepted_at = models.DateTimeField(null=True, blank=True)
    picked_up_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    cancellation_reason = models.TextField(blank=True, default='')
    cancelled_by = models.CharField(max_length=10, choices=CANCELLED_BY_CHOICES, blank=True, default='')

    completion_latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    completion_longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)

    # Post-trip rating
    rating = models.PositiveSmallIntegerField(null=True, blank=True)
    rating_comment = models.TextField(blank=True, default='')

    objects = BookingManager()

    class Meta:
        db_table = 'bookings'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'pickup_cell'], name='booking_status_cell_idx'),
            models.Index(fields=['passenger', 'status'], name='booking_passenger_status_idx'),
            models.Index(fields=['driver', 'status'], name='booking_driver_status_idx'),
            models.Index(fields=['status', 'expires_at'], name='booking_status_expiry_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['passenger'],
                condition=Q(status__in=['pending', 'offer_made', 'accepted', 'in_progress']),
                name='one_open_booking_per_passenger',
            ),
            models.UniqueConstraint(
                fields=['driver'],
                condition=Q(status__in=['accepted', 'in_progress']),
                name='one_active_trip_per_driver',
            ),
        ]

    def __str__(self):
        return f"Booking #{self.id} - {self.passenger} - {self.status}"

    @property
    def pickup(self):
        return Point(float(self.pickup_latitude), float(self.pickup_longitude))

    @property
    def destination(self):
        return Point(float(self.destination_latitude), float(self.destination_longitude))

    @property
    def is_open(self):
        return self.status in OPEN_STATUSES

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    @property
    def has_offer(self):
        return self.status == BookingStatus.OFFER_MADE and self.offer_amount is not None

    def can_transition_to(self, new_status):
        return new_status in TRANSITIONS[self.status]

    def is_overdue(self, now):
        return self.status == BookingStatus.PENDING and self.expires_at <= now

import math
from decimal import Decimal

from django.contrib.auth import get_user_model

from common.utils import Point

User = get_user_model()

METERS_PER_DEGREE = math.pi * 6371000 / 180

PICKUP = Point(14.5995, 120.9842)
DESTINATION = Point(14.6095, 120.9942)


def north_of(point, meters):
	return Point(point.latitude + meters / METERS_PER_DEGREE, point.longitude)


def make_passenger(username='passenger', **extra):
	return User.objects.create_user(
		username=username,
		password='pass1234',
		role='passenger',
		phone_number=extra.pop('phone_number', '9000000000'),
		**extra
	)


def make_driver(username='driver', vehicle_number=None, **extra):
	return User.objects.create_user(
		username=username,
		password='driver1234',
		role='driver',
		vehicle_number=vehicle_number or 'TRK-%s' % username,
		**extra
	)


def booking_fields(passenger, **overrides):
	"""Keyword arguments for Booking.objects.create_booking."""
	from datetime import timedelta
	from django.utils import timezone

	fields = {
		'passenger': passenger,
		'pickup_latitude': Decimal('14.599500'),
		'pickup_longitude': Decimal('120.984200'),
		'pickup_address': 'Quiapo Church',
		'destination_latitude': Decimal('14.609500'),
		'destination_longitude': Decimal('120.994200'),
		'destination_address': 'UST Espana',
		'preferred_fare': Decimal('50.00'),
		'expires_at': timezone.now() + timedelta(minutes=30),
	}
	fields.update(overrides)
	return fields

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

from django.test import TestCase, override_settings
from django.utils import timezone

from bookings.models import Booking, BookingStatus
from services import negotiation
from services.negotiation import (
	ConflictError,
	DriverBusyError,
	DuplicateOpenBookingError,
	NotAtDestinationError,
	NotAtPickupError,
	NotFoundError,
	ValidationError,
)
from services.negotiation import events

from .helpers import DESTINATION, PICKUP, make_driver, make_passenger, north_of


class NegotiationTestCase(TestCase):
	def setUp(self):
		self.passenger = make_passenger()
		self.driver_a = make_driver('driver_a')
		self.driver_b = make_driver('driver_b')

	def create(self, passenger=None, fare=50):
		return negotiation.create_booking(
			passenger or self.passenger,
			pickup=PICKUP,
			destination=DESTINATION,
			preferred_fare=fare,
			pickup_address='Quiapo Church',
			destination_address='UST Espana',
		).booking

	def accepted_booking(self, passenger=None, driver=None):
		booking = self.create(passenger)
		return negotiation.driver_respond(driver or self.driver_a, booking.id, accept=True).booking

	def in_progress_booking(self, passenger=None, driver=None):
		booking = self.accepted_booking(passenger, driver)
		return negotiation.confirm_pickup(driver or self.driver_a, booking.id).booking

	def refresh(self, booking):
		return Booking.objects.get(pk=booking.pk)


class FullScenarioTests(NegotiationTestCase):
	def test_counter_offer_decline_accept_pickup_complete_rate(self):
		booking = self.create(fare=50)
		self.assertEqual(booking.status, BookingStatus.PENDING)

		# Driver A counters at 70
		result = negotiation.driver_respond(self.driver_a, booking.id, accept=False, counter_offer=70)
		self.assertEqual(result.booking.status, BookingStatus.OFFER_MADE)
		self.assertEqual(result.booking.offer_amount, Decimal('70.00'))
		self.assertEqual(result.booking.driver_id, self.driver_a.id)

		# Passenger declines; booking is open to everyone again
		result = negotiation.respond_to_offer(self.passenger, booking.id, accepted=False)
		self.assertEqual(result.booking.status, BookingStatus.PENDING)
		self.assertIsNone(result.booking.driver_id)
		self.assertIsNone(result.booking.offer_amount)

		# Driver B accepts at the passenger's fare
		result = negotiation.driver_respond(self.driver_b, booking.id, accept=True)
		self.assertEqual(result.booking.status, BookingStatus.ACCEPTED)
		self.assertEqual(result.booking.agreed_fare, Decimal('50.00'))
		self.assertEqual(result.booking.driver_id, self.driver_b.id)

		result = negotiation.confirm_pickup(self.driver_b, booking.id)
		self.assertEqual(result.booking.status, BookingStatus.IN_PROGRESS)
		self.assertIsNotNone(result.booking.picked_up_at)

		# 310 m short of the destination is outside the geofence
		with self.assertRaises(NotAtDestinationError) as ctx:
			negotiation.complete_trip(self.driver_b, booking.id, north_of(DESTINATION, 310))
		self.assertIn('310m', ctx.exception.message)
		self.assertEqual(self.refresh(booking).status, BookingStatus.IN_PROGRESS)

		result = negotiation.complete_trip(self.driver_b, booking.id, north_of(DESTINATION, 250))
		self.assertEqual(result.booking.status, BookingStatus.COMPLETED)
		self.assertIsNotNone(result.booking.completed_at)

		result = negotiation.rate_trip(self.passenger, booking.id, 5, 'Smooth ride')
		self.assertEqual(result.booking.rating, 5)

		booking = self.refresh(booking)
		self.assertEqual(booking.status, BookingStatus.COMPLETED)
		self.assertEqual(booking.agreed_fare, Decimal('50.00'))
		self.assertEqual(booking.rating_comment, 'Smooth ride')

		self.driver_b.refresh_from_db()
		self.passenger.refresh_from_db()
		self.assertEqual(self.driver_b.rating, 5.0)
		self.assertEqual(self.driver_b.num_reviews, 1)
		self.assertEqual(self.driver_b.completed_trips, 1)
		self.assertEqual(self.passenger.completed_trips, 1)


class CreateBookingTests(NegotiationTestCase):
	def test_sets_expiry_window(self):
		before = timezone.now()
		booking = self.create()

		self.assertGreaterEqual(booking.expires_at, before + timedelta(minutes=30))
		self.assertLessEqual(booking.expires_at, timezone.now() + timedelta(minutes=30))

	def test_rejects_non_positive_fare(self):
		for fare in (0, -5, 'abc', None):
			with self.assertRaises(ValidationError):
				self.create(fare=fare)
		self.assertEqual(Booking.objects.count(), 0)

	def test_rejects_invalid_coordinates(self):
		with self.assertRaises(ValidationError):
			negotiation.create_booking(self.passenger, (95, 0), DESTINATION, 50)

	def test_duplicate_open_booking(self):
		self.create()
		with self.assertRaises(DuplicateOpenBookingError):
			self.create()

	def test_new_booking_allowed_after_lapsed_request(self):
		booking = self.create()
		Booking.objects.filter(pk=booking.pk).update(expires_at=timezone.now() - timedelta(minutes=1))

		replacement = self.create()

		self.assertNotEqual(replacement.id, booking.id)
		self.assertEqual(Booking.objects.get(pk=booking.pk).status, BookingStatus.EXPIRED)

	def test_new_booking_allowed_after_cancel(self):
		booking = self.create()
		negotiation.cancel_booking(self.passenger, booking.id, 'Changed plans', 'passenger')

		self.assertNotEqual(self.create().id, booking.id)

	@override_settings(SERVICE_AREA_CENTER=(14.5995, 120.9842), SERVICE_AREA_RADIUS_METERS=1000)
	def test_pickup_outside_service_area(self):
		with self.assertRaises(ValidationError):
			negotiation.create_booking(self.passenger, north_of(PICKUP, 5000), DESTINATION, 50)

	@patch('services.negotiation.events.publish_booking_event')
	def test_publishes_created_event(self, mock_publish):
		booking = self.create()

		mock_publish.assert_called_once()
		self.assertEqual(mock_publish.call_args[0][0], events.BOOKING_CREATED)
		self.assertEqual(mock_publish.call_args[0][1].id, booking.id)


class DriverRespondTests(NegotiationTestCase):
	def test_accept_and_counter_offer_together_is_invalid(self):
		booking = self.create()
		with self.assertRaises(ValidationError):
			negotiation.driver_respond(self.driver_a, booking.id, accept=True, counter_offer=60)

	def test_neither_accept_nor_offer_is_invalid(self):
		booking = self.create()
		with self.assertRaises(ValidationError):
			negotiation.driver_respond(self.driver_a, booking.id, accept=False)

	def test_non_positive_counter_offer(self):
		booking = self.create()
		with self.assertRaises(ValidationError):
			negotiation.driver_respond(self.driver_a, booking.id, accept=False, counter_offer=0)
		self.assertEqual(self.refresh(booking).status, BookingStatus.PENDING)

	def test_first_offer_wins(self):
		booking = self.create()
		negotiation.driver_respond(self.driver_a, booking.id, accept=False, counter_offer=70)

		with self.assertRaises(NotFoundError):
			negotiation.driver_respond(self.driver_b, booking.id, accept=False, counter_offer=60)
		with self.assertRaises(NotFoundError):
			negotiation.driver_respond(self.driver_b, booking.id, accept=True)

		booking = self.refresh(booking)
		self.assertEqual(booking.offer_driver_id, self.driver_a.id)
		self.assertEqual(booking.offer_amount, Decimal('70.00'))

	def test_driver_cannot_accept_own_counter_offer(self):
		booking = self.create()
		negotiation.driver_respond(self.driver_a, booking.id, accept=False, counter_offer=70)

		with self.assertRaises(NotFoundError):
			negotiation.driver_respond(self.driver_a, booking.id, accept=True)
		self.assertEqual(self.refresh(booking).status, BookingStatus.OFFER_MADE)

	def test_busy_driver_cannot_accept(self):
		self.accepted_booking(driver=self.driver_a)
		other = self.create(passenger=make_passenger('passenger_two'))

		with self.assertRaises(DriverBusyError):
			negotiation.driver_respond(self.driver_a, other.id, accept=True)
		self.assertEqual(self.refresh(other).status, BookingStatus.PENDING)

	def test_overdue_booking_is_expired_lazily(self):
		booking = self.create()
		Booking.objects.filter(pk=booking.pk).update(expires_at=timezone.now() - timedelta(seconds=1))

		with self.assertRaises(NotFoundError):
			negotiation.driver_respond(self.driver_a, booking.id, accept=True)
		self.assertEqual(self.refresh(booking).status, BookingStatus.EXPIRED)

	def test_accept_loses_race_to_cancel(self):
		booking = self.create()

		def cancel_first(driver_id):
			Booking.objects.filter(pk=booking.pk).update(status=BookingStatus.CANCELLED)

		with patch('services.negotiation.engine.ensure_driver_free', side_effect=cancel_first):
			with self.assertRaises(ConflictError):
				negotiation.driver_respond(self.driver_a, booking.id, accept=True)

		booking = self.refresh(booking)
		self.assertEqual(booking.status, BookingStatus.CANCELLED)
		self.assertIsNone(booking.driver_id)
		self.assertIsNone(booking.agreed_fare)

	def test_missing_booking(self):
		with self.assertRaises(NotFoundError):
			negotiation.driver_respond(self.driver_a, 12345, accept=True)


class RespondToOfferTests(NegotiationTestCase):
	def setUp(self):
		super().setUp()
		self.booking = self.create(fare=50)
		negotiation.driver_respond(
			self.driver_a, self.booking.id, accept=False, counter_offer=70, message='Long route'
		)

	def test_accept_offer_fixes_driver_and_fare(self):
		result = negotiation.respond_to_offer(self.passenger, self.booking.id, accepted=True)

		booking = result.booking
		self.assertEqual(booking.status, BookingStatus.ACCEPTED)
		self.assertEqual(booking.driver_id, self.driver_a.id)
		self.assertEqual(booking.agreed_fare, Decimal('70.00'))
		self.assertIsNone(booking.offer_amount)
		self.assertIsNotNone(booking.accepted_at)

	def test_decline_extends_expiry(self):
		soon = timezone.now() + timedelta(minutes=1)
		Booking.objects.filter(pk=self.booking.pk).update(expires_at=soon)

		result = negotiation.respond_to_offer(self.passenger, self.booking.id, accepted=False)

		self.assertGreaterEqual(result.booking.expires_at, soon + timedelta(minutes=3))
		self.assertEqual(result.booking.offer_message, '')

	def test_decline_never_shortens_expiry(self):
		original = self.refresh(self.booking).expires_at
		result = negotiation.respond_to_offer(self.passenger, self.booking.id, accepted=False)
		self.assertEqual(result.booking.expires_at, original)

	def test_no_offer_to_respond_to(self):
		negotiation.respond_to_offer(self.passenger, self.booking.id, accepted=False)
		with self.assertRaises(NotFoundError):
			negotiation.respond_to_offer(self.passenger, self.booking.id, accepted=True)

	def test_offering_driver_busy_elsewhere(self):
		self.accepted_booking(passenger=make_passenger('passenger_two'), driver=self.driver_a)

		with self.assertRaises(DriverBusyError):
			negotiation.respond_to_offer(self.passenger, self.booking.id, accepted=True)
		self.assertEqual(self.refresh(self.booking).status, BookingStatus.OFFER_MADE)

	def test_offer_replaced_underneath_is_conflict(self):
		def replace_offer(driver_id):
			Booking.objects.filter(pk=self.booking.pk).update(
				offer_created_at=timezone.now() + timedelta(seconds=5)
			)

		with patch('services.negotiation.engine.ensure_driver_free', side_effect=replace_offer):
			with self.assertRaises(ConflictError):
				negotiation.respond_to_offer(self.passenger, self.booking.id, accepted=True)
		self.assertEqual(self.refresh(self.booking).status, BookingStatus.OFFER_MADE)

	@patch('services.negotiation.events.publish_booking_event')
	def test_decline_notifies_declined_driver(self, mock_publish):
		negotiation.respond_to_offer(self.passenger, self.booking.id, accepted=False)

		args, kwargs = mock_publish.call_args
		self.assertEqual(args[0], events.OFFER_DECLINED)
		self.assertEqual(kwargs['extra_user_ids'], [self.driver_a.id])


class PickupTests(NegotiationTestCase):
	def test_pickup_requires_accepted(self):
		booking = self.create()
		with self.assertRaises(NotFoundError):
			negotiation.confirm_pickup(self.driver_a, booking.id)

	@override_settings(PICKUP_RADIUS_METERS=100)
	def test_pickup_geofence_when_configured(self):
		booking = self.accepted_booking()

		with self.assertRaises(NotAtPickupError):
			negotiation.confirm_pickup(self.driver_a, booking.id, north_of(PICKUP, 500))
		with self.assertRaises(ValidationError):
			negotiation.confirm_pickup(self.driver_a, booking.id)

		result = negotiation.confirm_pickup(self.driver_a, booking.id, north_of(PICKUP, 50))
		self.assertEqual(result.booking.status, BookingStatus.IN_PROGRESS)


class CompleteTripTests(NegotiationTestCase):
	def test_boundary_is_inclusive(self):
		booking = self.in_progress_booking()
		# A hair inside 300 m; the geofence check is distance <= radius
		result = negotiation.complete_trip(self.driver_a, booking.id, north_of(DESTINATION, 299.999))
		self.assertEqual(result.booking.status, BookingStatus.COMPLETED)

	def test_requires_location(self):
		booking = self.in_progress_booking()
		with self.assertRaises(ValidationError):
			negotiation.complete_trip(self.driver_a, booking.id, None)

	def test_requires_in_progress(self):
		booking = self.accepted_booking()
		with self.assertRaises(NotFoundError):
			negotiation.complete_trip(self.driver_a, booking.id, DESTINATION)
		self.assertEqual(self.refresh(booking).status, BookingStatus.ACCEPTED)

	def test_driver_free_after_completion(self):
		booking = self.in_progress_booking()
		negotiation.complete_trip(self.driver_a, booking.id, DESTINATION)

		other = self.create(passenger=make_passenger('passenger_two'))
		result = negotiation.driver_respond(self.driver_a, other.id, accept=True)
		self.assertEqual(result.booking.status, BookingStatus.ACCEPTED)

	def test_stores_completion_location(self):
		booking = self.in_progress_booking()
		negotiation.complete_trip(self.driver_a, booking.id, DESTINATION)

		booking = self.refresh(booking)
		self.assertEqual(booking.completion_latitude, Decimal('14.609500'))
		self.assertEqual(booking.completion_longitude, Decimal('120.994200'))


class CancelTests(NegotiationTestCase):
	def test_reason_required(self):
		booking = self.create()
		with self.assertRaises(ValidationError):
			negotiation.cancel_booking(self.passenger, booking.id, '   ', 'passenger')
		self.assertEqual(self.refresh(booking).status, BookingStatus.PENDING)

	def test_cancel_with_outstanding_offer_clears_it(self):
		booking = self.create()
		negotiation.driver_respond(self.driver_a, booking.id, accept=False, counter_offer=70)

		result = negotiation.cancel_booking(self.passenger, booking.id, 'Too expensive', 'passenger')

		self.assertEqual(result.booking.status, BookingStatus.CANCELLED)
		self.assertIsNone(result.booking.offer_amount)
		self.assertEqual(result.extra['previous_status'], BookingStatus.OFFER_MADE)

	def test_driver_cancels_in_progress_trip(self):
		booking = self.in_progress_booking()

		result = negotiation.cancel_booking(self.driver_a, booking.id, 'Flat tyre', 'driver')

		self.assertEqual(result.booking.status, BookingStatus.CANCELLED)
		self.assertEqual(result.booking.cancelled_by, 'driver')
		self.assertEqual(result.booking.cancellation_reason, 'Flat tyre')
		self.assertIsNotNone(result.booking.cancelled_at)

	def test_terminal_booking_cannot_be_cancelled(self):
		booking = self.in_progress_booking()
		negotiation.complete_trip(self.driver_a, booking.id, DESTINATION)

		with self.assertRaises(NotFoundError):
			negotiation.cancel_booking(self.passenger, booking.id, 'Too late', 'passenger')
		self.assertEqual(self.refresh(booking).status, BookingStatus.COMPLETED)


class RateTripTests(NegotiationTestCase):
	def completed_booking(self):
		booking = self.in_progress_booking()
		return negotiation.complete_trip(self.driver_a, booking.id, DESTINATION).booking

	def test_rating_range(self):
		booking = self.completed_booking()
		for value in (0, 6, True, 'five', 4.5):
			with self.assertRaises(ValidationError):
				negotiation.rate_trip(self.passenger, booking.id, value)
		self.assertIsNone(self.refresh(booking).rating)

	def test_only_completed_trips(self):
		booking = self.accepted_booking()
		with self.assertRaises(NotFoundError):
			negotiation.rate_trip(self.passenger, booking.id, 4)

	def test_rate_once(self):
		booking = self.completed_booking()
		negotiation.rate_trip(self.passenger, booking.id, 4)

		with self.assertRaises(ConflictError):
			negotiation.rate_trip(self.passenger, booking.id, 1)

		self.driver_a.refresh_from_db()
		self.assertEqual(self.refresh(booking).rating, 4)
		self.assertEqual(self.driver_a.num_reviews, 1)
		self.assertEqual(self.driver_a.rating, 4.0)

	def test_driver_average(self):
		first = self.completed_booking()
		negotiation.rate_trip(self.passenger, first.id, 5)

		second = self.completed_booking()
		negotiation.rate_trip(self.passenger, second.id, 2)

		self.driver_a.refresh_from_db()
		self.assertEqual(self.driver_a.num_reviews, 2)
		self.assertAlmostEqual(self.driver_a.rating, 3.5)


class ExpiryTests(NegotiationTestCase):
	def test_expire_is_idempotent(self):
		booking = self.create()
		later = booking.expires_at + timedelta(seconds=1)

		self.assertTrue(negotiation.expire_booking(booking.id, now=later))
		self.assertFalse(negotiation.expire_booking(booking.id, now=later))
		self.assertEqual(self.refresh(booking).status, BookingStatus.EXPIRED)

	def test_not_yet_due(self):
		booking = self.create()
		self.assertFalse(negotiation.expire_booking(booking.id))
		self.assertEqual(self.refresh(booking).status, BookingStatus.PENDING)

	def test_claimed_booking_never_expires(self):
		booking = self.accepted_booking()
		later = booking.expires_at + timedelta(hours=1)

		self.assertFalse(negotiation.expire_booking(booking.id, now=later))
		self.assertEqual(self.refresh(booking).status, BookingStatus.ACCEPTED)

	def test_missing_booking_is_silent(self):
		self.assertFalse(negotiation.expire_booking(424242))

	def test_sweep(self):
		overdue = self.create()
		fresh = self.create(passenger=make_passenger('passenger_two'))
		Booking.objects.filter(pk=overdue.pk).update(expires_at=timezone.now() - timedelta(minutes=1))

		self.assertEqual(negotiation.expire_overdue_bookings(), 1)
		self.assertEqual(self.refresh(overdue).status, BookingStatus.EXPIRED)
		self.assertEqual(self.refresh(fresh).status, BookingStatus.PENDING)
		self.assertEqual(negotiation.expire_overdue_bookings(), 0)


class EventPublishingTests(NegotiationTestCase):
	def test_groups_include_both_parties(self):
		booking = self.accepted_booking()
		groups = events.event_groups(booking)

		self.assertEqual(groups, [
			'booking_%d' % booking.id,
			'user_%d' % self.passenger.id,
			'user_%d' % self.driver_a.id,
		])

	def test_publish_failure_does_not_break_transition(self):
		booking = self.create()
		with patch('services.negotiation.events.get_channel_layer') as mock_layer:
			mock_layer.return_value.group_send = AsyncMock(side_effect=RuntimeError('redis down'))
			result = negotiation.driver_respond(self.driver_a, booking.id, accept=True)

		self.assertEqual(result.booking.status, BookingStatus.ACCEPTED)
		self.assertEqual(self.refresh(booking).status, BookingStatus.ACCEPTED)

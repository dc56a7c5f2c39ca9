from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from bookings.models import Booking, BookingStatus
from bookings.tasks import expire_stale_bookings_task
from services import negotiation

from .helpers import DESTINATION, PICKUP, make_passenger


class ExpirySweepTests(TestCase):
	def setUp(self):
		self.overdue = negotiation.create_booking(make_passenger('p1'), PICKUP, DESTINATION, 50).booking
		self.fresh = negotiation.create_booking(make_passenger('p2'), PICKUP, DESTINATION, 50).booking
		Booking.objects.filter(pk=self.overdue.pk).update(
			expires_at=timezone.now() - timedelta(minutes=2)
		)

	def test_task_expires_overdue_bookings(self):
		result = expire_stale_bookings_task.delay()

		self.assertEqual(result.get(), 1)
		self.assertEqual(Booking.objects.get(pk=self.overdue.pk).status, BookingStatus.EXPIRED)
		self.assertEqual(Booking.objects.get(pk=self.fresh.pk).status, BookingStatus.PENDING)

	def test_task_is_safe_to_rerun(self):
		expire_stale_bookings_task()
		self.assertEqual(expire_stale_bookings_task(), 0)

	def test_command_dry_run_changes_nothing(self):
		out = StringIO()
		call_command('expire_bookings', '--dry-run', stdout=out)

		self.assertIn('Booking #%d' % self.overdue.id, out.getvalue())
		self.assertIn('1 overdue booking(s)', out.getvalue())
		self.assertEqual(Booking.objects.get(pk=self.overdue.pk).status, BookingStatus.PENDING)

	def test_command_expires(self):
		out = StringIO()
		call_command('expire_bookings', stdout=out)

		self.assertIn('Expired 1 booking(s).', out.getvalue())
		self.assertEqual(Booking.objects.get(pk=self.overdue.pk).status, BookingStatus.EXPIRED)


class HealthCheckTests(TestCase):
	@patch('dispatch_backend.views.redis.Redis.from_url')
	def test_healthy(self, mock_redis):
		response = APIClient().get('/health/')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.json()['services']['database'], 'healthy')
		self.assertEqual(response.json()['services']['celery'], 'healthy')
		mock_redis.return_value.ping.assert_called_once()

	@patch('dispatch_backend.views.redis.Redis.from_url')
	def test_redis_down(self, mock_redis):
		mock_redis.return_value.ping.side_effect = ConnectionError('refused')
		response = APIClient().get('/health/')

		self.assertEqual(response.status_code, 503)
		self.assertIn('unhealthy', response.json()['services']['redis'])

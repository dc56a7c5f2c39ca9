from unittest.mock import AsyncMock, patch

from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.contrib.auth import get_user_model
from django.test import SimpleTestCase

from bookings.consumers import BookingEventsConsumer
from bookings.middleware import JWTAuthMiddleware

User = get_user_model()


class BookingEventsConsumerTests(SimpleTestCase):
	def setUp(self):
		# Unsaved user; the consumer only needs an authenticated scope
		self.user = User(id=7, username='passenger', role='passenger')

	def communicator(self):
		communicator = WebsocketCommunicator(BookingEventsConsumer.as_asgi(), '/ws/bookings/')
		communicator.scope['user'] = self.user
		return communicator

	async def test_receives_events_for_own_user_group(self):
		communicator = self.communicator()
		connected, _ = await communicator.connect()
		self.assertTrue(connected)

		greeting = await communicator.receive_json_from()
		self.assertEqual(greeting['type'], 'connection_established')
		self.assertEqual(greeting['user_id'], 7)

		await get_channel_layer().group_send('user_7', {
			'type': 'booking_event',
			'event': 'offer_made',
			'booking_id': 3,
			'status': 'offer_made',
			'message': 'Driver offers 70',
		})
		event = await communicator.receive_json_from()

		self.assertEqual(event['type'], 'booking_event')
		self.assertEqual(event['event'], 'offer_made')
		self.assertEqual(event['booking_id'], 3)
		await communicator.disconnect()

	async def test_subscribe_to_booking_group(self):
		communicator = self.communicator()
		await communicator.connect()
		await communicator.receive_json_from()

		with patch.object(BookingEventsConsumer, 'can_watch', AsyncMock(return_value=True)):
			await communicator.send_json_to({'type': 'subscribe', 'booking_id': 3})
			reply = await communicator.receive_json_from()
		self.assertEqual(reply, {'type': 'subscribed', 'booking_id': 3})

		await get_channel_layer().group_send('booking_3', {
			'type': 'booking_event', 'event': 'trip_started', 'booking_id': 3,
			'status': 'in_progress', 'passenger_id': 7, 'driver_id': 9, 'message': '',
		})
		event = await communicator.receive_json_from()
		self.assertEqual(event['event'], 'trip_started')
		await communicator.disconnect()

	async def test_declined_driver_stops_following_booking(self):
		self.user = User(id=9, username='driver', role='driver')
		communicator = self.communicator()
		await communicator.connect()
		await communicator.receive_json_from()

		with patch.object(BookingEventsConsumer, 'can_watch', AsyncMock(return_value=True)):
			await communicator.send_json_to({'type': 'subscribe', 'booking_id': 3})
			await communicator.receive_json_from()

		await get_channel_layer().group_send('booking_3', {
			'type': 'booking_event', 'event': 'offer_declined', 'booking_id': 3,
			'status': 'pending', 'passenger_id': 7, 'driver_id': None, 'message': '',
		})
		declined = await communicator.receive_json_from()
		self.assertEqual(declined['event'], 'offer_declined')

		await get_channel_layer().group_send('booking_3', {
			'type': 'booking_event', 'event': 'booking_accepted', 'booking_id': 3,
			'status': 'accepted', 'passenger_id': 7, 'driver_id': 11, 'message': '',
		})
		self.assertTrue(await communicator.receive_nothing())
		await communicator.disconnect()

	async def test_subscribe_refused_for_non_party(self):
		communicator = self.communicator()
		await communicator.connect()
		await communicator.receive_json_from()

		with patch.object(BookingEventsConsumer, 'can_watch', AsyncMock(return_value=False)):
			await communicator.send_json_to({'type': 'subscribe', 'booking_id': 3})
			reply = await communicator.receive_json_from()
		self.assertEqual(reply['type'], 'error')
		await communicator.disconnect()

	async def test_anonymous_connection_rejected(self):
		communicator = WebsocketCommunicator(
			JWTAuthMiddleware(BookingEventsConsumer.as_asgi()), '/ws/bookings/?token=not-a-jwt'
		)
		connected, _ = await communicator.connect()
		self.assertFalse(connected)

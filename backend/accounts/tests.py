from django.test import TestCase
from rest_framework.test import APIClient

from accounts.models import User


class RegisterTests(TestCase):
	def setUp(self):
		self.client = APIClient()

	def test_register_passenger_returns_tokens(self):
		response = self.client.post('/api/auth/register/', {
			'username': 'juan',
			'password': 'password123',
			'email': 'juan@example.com',
			'role': 'passenger',
			'phone_number': '+639171234567',
		}, format='json')

		self.assertEqual(response.status_code, 201)
		body = response.json()
		self.assertTrue(body['success'])
		self.assertEqual(body['user']['role'], 'passenger')
		self.assertIsNone(body['user']['vehicle_number'])
		self.assertIn('access', body['tokens'])
		self.assertIn('refresh', body['tokens'])

	def test_driver_requires_vehicle_number(self):
		response = self.client.post('/api/auth/register/', {
			'username': 'mang_jose',
			'password': 'password123',
			'role': 'driver',
		}, format='json')

		self.assertEqual(response.status_code, 400)
		self.assertFalse(response.json()['success'])
		self.assertIn('vehicle_number', response.json()['errors'])

	def test_duplicate_vehicle_number(self):
		User.objects.create_user(username='first', password='x', role='driver', vehicle_number='TRK-1')
		response = self.client.post('/api/auth/register/', {
			'username': 'second',
			'password': 'password123',
			'role': 'driver',
			'vehicle_number': 'TRK-1',
		}, format='json')

		self.assertEqual(response.status_code, 400)


class LoginTests(TestCase):
	def setUp(self):
		self.client = APIClient()
		self.user = User.objects.create_user(username='juan', password='password123', role='passenger')

	def test_login_and_use_access_token(self):
		response = self.client.post('/api/auth/login/', {
			'username': 'juan', 'password': 'password123'
		}, format='json')
		self.assertEqual(response.status_code, 200)
		access = response.json()['tokens']['access']

		self.client.credentials(HTTP_AUTHORIZATION='Bearer ' + access)
		response = self.client.get('/api/auth/me/')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.json()['user']['username'], 'juan')

	def test_bad_password(self):
		response = self.client.post('/api/auth/login/', {
			'username': 'juan', 'password': 'wrong'
		}, format='json')

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.json()['message'], 'Invalid username or password')

	def test_refresh(self):
		tokens = self.client.post('/api/auth/login/', {
			'username': 'juan', 'password': 'password123'
		}, format='json').json()['tokens']

		response = self.client.post('/api/auth/refresh/', {'refresh': tokens['refresh']}, format='json')
		self.assertEqual(response.status_code, 200)
		self.assertIn('access', response.json())

		response = self.client.post('/api/auth/refresh/', {'refresh': 'garbage'}, format='json')
		self.assertEqual(response.status_code, 401)

	def test_me_requires_auth(self):
		self.assertEqual(self.client.get('/api/auth/me/').status_code, 401)

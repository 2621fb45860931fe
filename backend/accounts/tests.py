from django.test import TestCase
from rest_framework.test import APIRequestFactory

from .models import User
from .views import LoginView, RefreshTokenView, RegisterView


class AuthFlowTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()

	def post(self, view, data):
		request = self.factory.post('/api/auth/', data, format='json')
		return view.as_view()(request)

	def test_register_login_refresh(self):
		response = self.post(RegisterView, {
			'username': 'nabila',
			'email': 'nabila@example.edu',
			'password': 'password123',
			'institution': 'BUET',
			'gender': 'Female',
		})
		self.assertEqual(response.status_code, 201)
		self.assertEqual(User.objects.get(username='nabila').institution, 'BUET')

		response = self.post(LoginView, {'username': 'nabila', 'password': 'password123'})
		self.assertEqual(response.status_code, 200)
		refresh = response.data['tokens']['refresh']

		response = self.post(RefreshTokenView, {'refresh': refresh})
		self.assertEqual(response.status_code, 200)
		self.assertIn('access', response.data)

	def test_bad_credentials(self):
		User.objects.create_user(username='rafi', password='password123')
		response = self.post(LoginView, {'username': 'rafi', 'password': 'wrong'})
		self.assertEqual(response.status_code, 400)

	def test_invalid_refresh_token(self):
		response = self.post(RefreshTokenView, {'refresh': 'garbage'})
		self.assertEqual(response.status_code, 401)

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.contrib.auth.models import AnonymousUser
from django.test import TestCase
from rest_framework_simplejwt.tokens import AccessToken

from accounts.models import User

from .consumers import NotificationConsumer
from .middleware import _user_for_token
from .publisher import ChannelLayerPublisher, RecordingPublisher, user_group


class PublisherTests(TestCase):
	def test_channel_layer_publisher_delivers_to_group(self):
		layer = get_channel_layer()
		channel = async_to_sync(layer.new_channel)()
		async_to_sync(layer.group_add)('user_publisher_test', channel)

		sent = ChannelLayerPublisher(layer).publish('user_publisher_test', 'notification', {'id': 7})
		message = async_to_sync(layer.receive)(channel)

		self.assertTrue(sent)
		self.assertEqual(message, {'type': 'notification', 'id': 7})

	def test_missing_channel_layer_drops_event(self):
		self.assertFalse(ChannelLayerPublisher(None).publish('user_1', 'notification'))

	def test_recording_publisher(self):
		publisher = RecordingPublisher()
		publisher.publish(user_group(3), 'messages_read', {'conversation_id': 1})
		self.assertEqual(publisher.events, [('user_3', 'messages_read', {'conversation_id': 1})])


class NotificationConsumerTests(TestCase):
	def setUp(self):
		self.user = User.objects.create_user(username='rider', password='pass1234')

	def test_connect_ping_and_forward_events(self):
		user = self.user

		async def scenario():
			communicator = WebsocketCommunicator(NotificationConsumer.as_asgi(), '/ws/notifications/')
			communicator.scope['user'] = user
			connected, _ = await communicator.connect()
			welcome = await communicator.receive_json_from()

			await communicator.send_json_to({'type': 'ping'})
			pong = await communicator.receive_json_from()

			await get_channel_layer().group_send(
				user_group(user.id), {'type': 'notification', 'notification': {'id': 1}}
			)
			event = await communicator.receive_json_from()
			await communicator.disconnect()
			return connected, welcome, pong, event

		connected, welcome, pong, event = async_to_sync(scenario)()

		self.assertTrue(connected)
		self.assertEqual(welcome, {'type': 'connection_established', 'user_id': self.user.id})
		self.assertEqual(pong, {'type': 'pong'})
		self.assertEqual(event['notification'], {'id': 1})

	def test_anonymous_connection_is_closed(self):
		async def scenario():
			communicator = WebsocketCommunicator(NotificationConsumer.as_asgi(), '/ws/notifications/')
			communicator.scope['user'] = AnonymousUser()
			connected, _ = await communicator.connect()
			return connected

		self.assertFalse(async_to_sync(scenario)())


class JWTMiddlewareTests(TestCase):
	def test_token_resolves_user(self):
		user = User.objects.create_user(username='rider', password='pass1234')
		token = str(AccessToken.for_user(user))

		self.assertEqual(async_to_sync(_user_for_token)(token), user)

	def test_bad_token_is_anonymous(self):
		self.assertTrue(async_to_sync(_user_for_token)('not-a-token').is_anonymous)

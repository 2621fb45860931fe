from unittest.mock import patch

from django.test import TestCase, override_settings
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from realtime.publisher import RecordingPublisher

from .models import Notification
from .sinks import CeleryNotificationSink, DatabaseNotificationSink, deliver, get_notification_sink
from .tasks import deliver_notification
from .views import NotificationCountView, NotificationListView, NotificationMarkReadView


class NotificationDeliveryTests(TestCase):
	def setUp(self):
		self.owner = User.objects.create_user(username='owner', password='pass1234')
		self.rider = User.objects.create_user(username='rider', password='pass1234')

	def test_deliver_persists_and_publishes(self):
		publisher = RecordingPublisher()
		notification = deliver(self.owner.id, self.rider.id, 'ride_joined', 'A passenger joined', publisher=publisher)

		self.assertEqual(notification.recipient, self.owner)
		self.assertFalse(notification.is_read)

		group, event_type, payload = publisher.events[0]
		self.assertEqual(group, 'user_%d' % self.owner.id)
		self.assertEqual(event_type, 'notification')
		self.assertEqual(payload['notification']['id'], notification.id)

	def test_database_sink(self):
		publisher = RecordingPublisher()
		DatabaseNotificationSink(publisher=publisher).emit(self.rider.id, None, 'ride_cancelled', 'Cancelled')

		self.assertEqual(Notification.objects.get(recipient=self.rider).type, 'ride_cancelled')
		self.assertEqual(len(publisher.events), 1)

	@patch('notifications.tasks.deliver_notification.delay')
	def test_celery_sink_queues_task(self, mock_delay):
		CeleryNotificationSink().emit(self.rider.id, self.owner.id, 'ride_removal', 'Removed')
		mock_delay.assert_called_once_with(self.rider.id, self.owner.id, 'ride_removal', 'Removed')

	@override_settings(RIDES_NOTIFICATION_SINK='notifications.sinks.CeleryNotificationSink')
	def test_sink_from_settings(self):
		self.assertIsInstance(get_notification_sink(), CeleryNotificationSink)

	def test_task_delivers(self):
		notification_id = deliver_notification(self.owner.id, self.rider.id, 'passenger_left', 'Left')
		self.assertTrue(Notification.objects.filter(id=notification_id, type='passenger_left').exists())

	def test_task_logs_failures(self):
		with patch('notifications.sinks.deliver', side_effect=RuntimeError('boom')):
			with self.assertLogs('notifications.tasks', level='ERROR'):
				self.assertIsNone(deliver_notification(self.owner.id, None, 'ride_joined', 'x'))


class NotificationApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.user = User.objects.create_user(username='rider', password='pass1234')
		for kind in ('ride_joined', 'ride_cancelled'):
			Notification.objects.create(recipient=self.user, type=kind, message=kind)

	def get(self, view):
		request = self.factory.get('/api/notifications/')
		force_authenticate(request, user=self.user)
		return view(request)

	def test_list_and_count(self):
		response = self.get(NotificationListView.as_view())
		self.assertEqual(response.data['count'], 2)

		response = self.get(NotificationCountView.as_view())
		self.assertEqual(response.data['count'], 2)

	def test_mark_read(self):
		request = self.factory.post('/api/notifications/mark-read/')
		force_authenticate(request, user=self.user)
		response = NotificationMarkReadView.as_view()(request)

		self.assertEqual(response.data['updated_count'], 2)
		self.assertEqual(self.get(NotificationCountView.as_view()).data['count'], 0)

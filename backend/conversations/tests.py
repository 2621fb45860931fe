import threading

from django.db import connection
from django.test import TestCase, TransactionTestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from common.exceptions import ForbiddenError, NotFoundError, ValidationError
from realtime.publisher import RecordingPublisher

from .directory import ConversationDirectory, ConversationNotFoundError, participant_key
from .models import Conversation, ConversationParticipant
from .views import ConversationListView, ConversationMessagesView


def make_user(username):
	return User.objects.create_user(username=username, password='pass1234')


class ConversationDirectoryTests(TestCase):
	def setUp(self):
		self.publisher = RecordingPublisher()
		self.directory = ConversationDirectory(publisher=self.publisher)
		self.alice = make_user('alice')
		self.bob = make_user('bob')
		self.carol = make_user('carol')

	def test_participant_key_is_order_independent(self):
		self.assertEqual(participant_key([10, 2]), '2:10')
		self.assertEqual(participant_key(['2', 10, 2]), '2:10')

	def test_needs_two_distinct_participants(self):
		with self.assertRaises(ValidationError):
			self.directory.find_or_create([self.alice.id, self.alice.id])

	def test_unknown_user(self):
		with self.assertRaises(NotFoundError):
			self.directory.find_or_create([self.alice.id, 999999])

	def test_find_or_create_returns_same_conversation_in_any_order(self):
		first = self.directory.find_or_create([self.alice.id, self.bob.id])
		second = self.directory.find_or_create([self.bob.id, self.alice.id])

		self.assertEqual(first.id, second.id)
		self.assertEqual(Conversation.objects.count(), 1)
		self.assertEqual(self.directory.unread_counts(first), {self.alice.id: 0, self.bob.id: 0})

	def test_different_pairs_get_different_conversations(self):
		first = self.directory.find_or_create([self.alice.id, self.bob.id])
		second = self.directory.find_or_create([self.alice.id, self.carol.id])
		self.assertNotEqual(first.id, second.id)

	def test_record_message_bumps_other_unread_counters(self):
		conversation = self.directory.find_or_create([self.alice.id, self.bob.id])

		self.directory.record_message(conversation, self.alice, 'Leaving at 5')
		message = self.directory.record_message(conversation, self.alice, 'Gate 2')

		conversation.refresh_from_db()
		self.assertEqual(conversation.last_message_id, message.id)
		self.assertEqual(self.directory.unread_counts(conversation), {self.alice.id: 0, self.bob.id: 2})

	def test_record_message_rules(self):
		conversation = self.directory.find_or_create([self.alice.id, self.bob.id])

		with self.assertRaises(ValidationError):
			self.directory.record_message(conversation, self.alice, '   ')
		with self.assertRaises(ForbiddenError):
			self.directory.record_message(conversation, self.carol, 'Hi')

	def test_mark_read_resets_counter_and_publishes(self):
		conversation = self.directory.find_or_create([self.alice.id, self.bob.id])
		self.directory.record_message(conversation, self.alice, 'One')
		self.directory.record_message(conversation, self.alice, 'Two')

		updated = self.directory.mark_read(conversation, self.bob)

		self.assertEqual(updated, 2)
		self.assertEqual(self.directory.unread_counts(conversation)[self.bob.id], 0)
		self.assertEqual(self.publisher.events, [(
			'user_%d' % self.alice.id,
			'messages_read',
			{'conversation_id': conversation.id, 'reader_id': self.bob.id},
		)])

	def test_messages_page(self):
		conversation = self.directory.find_or_create([self.alice.id, self.bob.id])
		for i in range(5):
			self.directory.record_message(conversation, self.alice, 'msg %d' % i)

		messages, total = self.directory.messages_page(conversation, page=2, limit=2)

		self.assertEqual(total, 5)
		self.assertEqual([m.body for m in messages], ['msg 2', 'msg 1'])

	def test_get_for_participant_hides_foreign_conversations(self):
		conversation = self.directory.find_or_create([self.alice.id, self.bob.id])
		with self.assertRaises(ConversationNotFoundError):
			self.directory.get_for_participant(conversation.id, self.carol)


class ConversationApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.alice = make_user('alice')
		self.bob = make_user('bob')

	def test_create_and_list(self):
		request = self.factory.post('/api/conversations/', {'participant_id': self.bob.id}, format='json')
		force_authenticate(request, user=self.alice)
		response = ConversationListView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		conversation_id = response.data['conversation']['id']

		request = self.factory.get('/api/conversations/')
		force_authenticate(request, user=self.bob)
		response = ConversationListView.as_view()(request)

		self.assertEqual([c['id'] for c in response.data['conversations']], [conversation_id])
		self.assertEqual(response.data['conversations'][0]['other_participants'][0]['username'], 'alice')

	def test_send_and_read_messages(self):
		conversation = ConversationDirectory(publisher=RecordingPublisher()).find_or_create(
			[self.alice.id, self.bob.id]
		)
		view = ConversationMessagesView.as_view()

		request = self.factory.post('/x/', {'body': 'Ready?'}, format='json')
		force_authenticate(request, user=self.alice)
		response = view(request, conversation_id=conversation.id)
		self.assertEqual(response.status_code, 201)

		request = self.factory.get('/x/', {'page': 1, 'limit': 10})
		force_authenticate(request, user=self.bob)
		response = view(request, conversation_id=conversation.id)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['pagination']['total_messages'], 1)
		self.assertEqual(
			ConversationParticipant.objects.get(conversation=conversation, user=self.bob).unread_count,
			0
		)

	def test_outsider_gets_404(self):
		outsider = make_user('mallory')
		conversation = ConversationDirectory(publisher=RecordingPublisher()).find_or_create(
			[self.alice.id, self.bob.id]
		)
		request = self.factory.get('/x/')
		force_authenticate(request, user=outsider)
		response = ConversationMessagesView.as_view()(request, conversation_id=conversation.id)
		self.assertEqual(response.status_code, 404)


class ConcurrentFindOrCreateTests(TransactionTestCase):
	def test_concurrent_callers_share_one_conversation(self):
		alice = make_user('alice')
		bob = make_user('bob')
		orders = [[alice.id, bob.id], [bob.id, alice.id]] * 3

		barrier = threading.Barrier(len(orders))
		ids = []
		lock = threading.Lock()

		def attempt(participants):
			try:
				barrier.wait()
				conversation = ConversationDirectory(publisher=RecordingPublisher()).find_or_create(participants)
				with lock:
					ids.append(conversation.id)
			finally:
				connection.close()

		threads = [threading.Thread(target=attempt, args=(order,)) for order in orders]
		for thread in threads:
			thread.start()
		for thread in threads:
			thread.join()

		self.assertEqual(len(ids), len(orders))
		self.assertEqual(len(set(ids)), 1)
		self.assertEqual(Conversation.objects.count(), 1)

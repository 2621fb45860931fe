import threading
from datetime import timedelta
from decimal import Decimal

from django.core.management import call_command
from django.db import OperationalError, connection
from django.test import TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate
from unittest.mock import patch

from accounts.models import User
from conversations.models import Conversation, Message
from notifications.models import Notification
from notifications.sinks import NotificationSink
from services.ride_management import (
	CapacityExceededError,
	DuplicateParticipantError,
	ForbiddenError,
	InvalidRideStateError,
	PassengerNotFoundError,
	RideFilter,
	RideLifecycleCoordinator,
	RideNotFoundError,
	RideRequestStore,
	SelfReferenceError,
	TransientConflictError,
	UserNotFoundError,
	ValidationError,
	default_time_window,
)
from common.utils import retry_on_conflict

from .models import RideParticipant, RideRequest
from . import views


class RecordingSink(NotificationSink):
	def __init__(self):
		self.sent = []

	def emit(self, recipient_id, sender_id, notification_type, message):
		self.sent.append((recipient_id, sender_id, notification_type, message))


class FailingSink(NotificationSink):
	def emit(self, recipient_id, sender_id, notification_type, message):
		raise RuntimeError('sink down')


def make_user(username):
	return User.objects.create_user(username=username, password='pass1234')


def ride_fields(**overrides):
	fields = {
		'origin': 'Main Gate',
		'destination': 'Airport',
		'total_fare': Decimal('400.00'),
		'vehicle_type': 'CNG',
		'total_passengers': 2,
		'ride_time': timezone.now() + timedelta(hours=2),
	}
	fields.update(overrides)
	return fields


class RideLifecycleTests(TestCase):
	def setUp(self):
		self.sink = RecordingSink()
		self.coordinator = RideLifecycleCoordinator(sink=self.sink)
		self.owner = make_user('u1')
		self.u2 = make_user('u2')
		self.u3 = make_user('u3')
		self.u4 = make_user('u4')
		self.ride = self.coordinator.create_ride(self.owner, **ride_fields()).ride

	def assertSeatsConsistent(self, ride):
		ride.refresh_from_db()
		participants = list(ride.memberships.values_list('user_id', flat=True))
		self.assertTrue(0 <= ride.total_accepted <= ride.total_passengers)
		self.assertEqual(len(participants), ride.total_accepted)
		self.assertNotIn(ride.owner_id, participants)

	def test_create_ride_starts_pending_without_participants(self):
		self.assertEqual(self.ride.status, RideRequest.STATUS_PENDING)
		self.assertEqual(self.ride.total_accepted, 0)
		self.assertIsNone(self.ride.conversation_id)
		self.assertSeatsConsistent(self.ride)

	def test_create_ride_rejects_bad_fields(self):
		with self.assertRaises(ValidationError):
			self.coordinator.create_ride(self.owner, **ride_fields(total_passengers=0))
		with self.assertRaises(ValidationError):
			self.coordinator.create_ride(self.owner, **ride_fields(total_fare='-1'))
		with self.assertRaises(ValidationError):
			self.coordinator.create_ride(self.owner, **ride_fields(vehicle_type='Bus'))
		with self.assertRaises(ValidationError):
			self.coordinator.create_ride(self.owner, **ride_fields(ride_time='not a date'))

	def test_full_lifecycle_scenario(self):
		result = self.coordinator.join_ride(self.ride.id, self.u2.id)
		ride = result.ride
		self.assertEqual(ride.total_accepted, 1)
		self.assertEqual(ride.status, RideRequest.STATUS_PENDING)

		conversation = Conversation.objects.get(id=result.conversation_id)
		self.assertEqual(ride.conversation_id, conversation.id)
		self.assertEqual(
			set(conversation.memberships.values_list('user_id', flat=True)),
			{self.owner.id, self.u2.id}
		)

		ride = self.coordinator.join_ride(self.ride.id, self.u3.id).ride
		self.assertEqual(ride.total_accepted, 2)
		self.assertEqual(ride.status, RideRequest.STATUS_ACCEPTED)

		ride = self.coordinator.remove_passenger(self.ride.id, self.owner.id, self.u2.id).ride
		self.assertEqual(ride.total_accepted, 1)
		self.assertEqual(ride.status, RideRequest.STATUS_PENDING)

		ride = self.coordinator.cancel_ride(self.ride.id, self.owner.id).ride
		self.assertEqual(ride.status, RideRequest.STATUS_CANCELLED)

		with self.assertRaises(InvalidRideStateError):
			self.coordinator.join_ride(self.ride.id, self.u4.id)
		self.assertSeatsConsistent(self.ride)

	def test_second_join_is_duplicate_and_not_counted(self):
		self.coordinator.join_ride(self.ride.id, self.u2.id)

		with self.assertRaises(DuplicateParticipantError):
			self.coordinator.join_ride(self.ride.id, self.u2.id)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.total_accepted, 1)
		self.assertSeatsConsistent(self.ride)

	def test_owner_cannot_join_own_ride(self):
		with self.assertRaises(SelfReferenceError):
			self.coordinator.join_ride(self.ride.id, self.owner.id)

	def test_join_full_ride_is_capacity_exceeded(self):
		self.coordinator.join_ride(self.ride.id, self.u2.id)
		self.coordinator.join_ride(self.ride.id, self.u3.id)

		with self.assertRaises(CapacityExceededError):
			self.coordinator.join_ride(self.ride.id, self.u4.id)
		self.assertSeatsConsistent(self.ride)

	def test_join_missing_ride(self):
		with self.assertRaises(RideNotFoundError):
			self.coordinator.join_ride(999999, self.u2.id)

	def test_each_joiner_gets_a_conversation_with_the_owner(self):
		first = self.coordinator.join_ride(self.ride.id, self.u2.id)
		second = self.coordinator.join_ride(self.ride.id, self.u3.id)

		self.assertNotEqual(first.conversation_id, second.conversation_id)
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.conversation_id, first.conversation_id)

	def test_accept_direct_requires_existing_user(self):
		with self.assertRaises(UserNotFoundError):
			self.coordinator.accept_direct(self.ride.id, 999999, accepted_by=self.owner.id)

		result = self.coordinator.accept_direct(self.ride.id, self.u2.id, accepted_by=self.owner.id)
		self.assertEqual(result.ride.total_accepted, 1)
		self.assertIsNotNone(result.conversation_id)

	def test_remove_passenger_checks(self):
		self.coordinator.join_ride(self.ride.id, self.u2.id)

		with self.assertRaises(ForbiddenError):
			self.coordinator.remove_passenger(self.ride.id, self.u3.id, self.u2.id)
		with self.assertRaises(SelfReferenceError):
			self.coordinator.remove_passenger(self.ride.id, self.owner.id, self.owner.id)
		with self.assertRaises(PassengerNotFoundError):
			self.coordinator.remove_passenger(self.ride.id, self.owner.id, self.u3.id)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.total_accepted, 1)

	def test_unjoin_frees_seat_and_demotes(self):
		self.coordinator.join_ride(self.ride.id, self.u2.id)
		self.coordinator.join_ride(self.ride.id, self.u3.id)

		ride = self.coordinator.unjoin_ride(self.ride.id, self.u3.id).ride

		self.assertEqual(ride.status, RideRequest.STATUS_PENDING)
		self.assertEqual(ride.total_accepted, 1)
		self.assertFalse(RideParticipant.objects.filter(ride=ride, user=self.u3).exists())

		with self.assertRaises(PassengerNotFoundError):
			self.coordinator.unjoin_ride(self.ride.id, self.u3.id)
		with self.assertRaises(SelfReferenceError):
			self.coordinator.unjoin_ride(self.ride.id, self.owner.id)

	def test_complete_only_from_accepted(self):
		with self.assertRaises(InvalidRideStateError):
			self.coordinator.complete_ride(self.ride.id, self.owner.id)

		self.coordinator.join_ride(self.ride.id, self.u2.id)
		self.coordinator.join_ride(self.ride.id, self.u3.id)

		with self.assertRaises(ForbiddenError):
			self.coordinator.complete_ride(self.ride.id, self.u2.id)

		ride = self.coordinator.complete_ride(self.ride.id, self.owner.id).ride
		self.assertEqual(ride.status, RideRequest.STATUS_COMPLETED)

	def test_no_transition_out_of_terminal_states(self):
		self.coordinator.join_ride(self.ride.id, self.u2.id)
		self.coordinator.join_ride(self.ride.id, self.u3.id)
		self.coordinator.complete_ride(self.ride.id, self.owner.id)

		with self.assertRaises(InvalidRideStateError):
			self.coordinator.cancel_ride(self.ride.id, self.owner.id)
		with self.assertRaises(InvalidRideStateError):
			self.coordinator.complete_ride(self.ride.id, self.owner.id)
		with self.assertRaises(InvalidRideStateError):
			self.coordinator.remove_passenger(self.ride.id, self.owner.id, self.u2.id)
		with self.assertRaises(InvalidRideStateError):
			self.coordinator.unjoin_ride(self.ride.id, self.u3.id)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, RideRequest.STATUS_COMPLETED)
		self.assertEqual(self.ride.total_accepted, 2)

		other = self.coordinator.create_ride(self.owner, **ride_fields()).ride
		self.coordinator.cancel_ride(other.id, self.owner.id)
		with self.assertRaises(InvalidRideStateError):
			self.coordinator.complete_ride(other.id, self.owner.id)
		with self.assertRaises(InvalidRideStateError):
			self.coordinator.cancel_ride(other.id, self.owner.id)

	def test_delete_cascades_to_conversation_and_messages(self):
		result = self.coordinator.join_ride(self.ride.id, self.u2.id)
		conversation = Conversation.objects.get(id=result.conversation_id)
		Message.objects.create(conversation=conversation, sender=self.u2, body='On my way')

		with self.assertRaises(ForbiddenError):
			self.coordinator.delete_ride(self.ride.id, requested_by=self.u2.id)

		self.coordinator.delete_ride(self.ride.id, requested_by=self.owner.id)

		self.assertFalse(RideRequest.objects.filter(id=self.ride.id).exists())
		self.assertFalse(Conversation.objects.filter(id=conversation.id).exists())
		self.assertFalse(Message.objects.filter(conversation_id=conversation.id).exists())
		self.assertFalse(RideParticipant.objects.filter(ride_id=self.ride.id).exists())

	def test_delete_removes_every_joiner_conversation(self):
		first = self.coordinator.join_ride(self.ride.id, self.u2.id)
		second = self.coordinator.join_ride(self.ride.id, self.u3.id)
		Message.objects.create(conversation_id=second.conversation_id, sender=self.u3, body='Wait for me')

		with self.assertLogs('services.ride_management.store', level='INFO') as logs:
			self.coordinator.delete_ride(self.ride.id, requested_by=self.owner.id)

		for conversation_id in (first.conversation_id, second.conversation_id):
			self.assertFalse(Conversation.objects.filter(id=conversation_id).exists())
			self.assertFalse(Message.objects.filter(conversation_id=conversation_id).exists())
		self.assertIn(str(second.conversation_id), '\n'.join(logs.output))

	def test_delete_keeps_conversation_shared_with_another_ride(self):
		other = self.coordinator.create_ride(self.owner, **ride_fields()).ride
		self.coordinator.join_ride(self.ride.id, self.u2.id)
		shared_id = self.coordinator.join_ride(other.id, self.u2.id).conversation_id
		Message.objects.create(conversation_id=shared_id, sender=self.u2, body='See you at the gate')

		self.coordinator.delete_ride(self.ride.id, requested_by=self.owner.id)

		other.refresh_from_db()
		self.assertEqual(other.conversation_id, shared_id)
		self.assertEqual(Message.objects.filter(conversation_id=shared_id).count(), 1)

		self.coordinator.delete_ride(other.id, requested_by=self.owner.id)
		self.assertFalse(Conversation.objects.filter(id=shared_id).exists())

	def test_delete_by_non_owner_leaves_ride_intact(self):
		self.coordinator.join_ride(self.ride.id, self.u2.id)

		with self.assertRaises(ForbiddenError):
			self.coordinator.store.delete(self.ride.id, owner_id=self.u2.id)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.total_accepted, 1)
		self.assertIsNotNone(self.ride.conversation_id)

	def test_delete_missing_ride(self):
		with self.assertRaises(RideNotFoundError):
			self.coordinator.delete_ride(999999)


class RideNotificationTests(TestCase):
	def setUp(self):
		self.sink = RecordingSink()
		self.coordinator = RideLifecycleCoordinator(sink=self.sink)
		self.owner = make_user('owner')
		self.u2 = make_user('rider_two')
		self.u3 = make_user('rider_three')
		self.ride = self.coordinator.create_ride(self.owner, **ride_fields(total_passengers=3)).ride

	def test_join_notifies_owner_after_commit(self):
		with self.captureOnCommitCallbacks(execute=False) as callbacks:
			self.coordinator.join_ride(self.ride.id, self.u2.id)

		self.assertEqual(self.sink.sent, [])
		for callback in callbacks:
			callback()

		self.assertEqual(len(self.sink.sent), 1)
		recipient, sender, kind, message = self.sink.sent[0]
		self.assertEqual((recipient, sender, kind), (self.owner.id, self.u2.id, 'ride_joined'))
		self.assertIn('(1/3 seats taken)', message)

	def test_cancel_notifies_every_participant(self):
		self.coordinator.join_ride(self.ride.id, self.u2.id)
		self.coordinator.join_ride(self.ride.id, self.u3.id)

		with self.captureOnCommitCallbacks(execute=True):
			self.coordinator.cancel_ride(self.ride.id, self.owner.id)

		self.assertEqual(
			sorted(r for r, _, kind, _ in self.sink.sent if kind == 'ride_cancelled'),
			sorted([self.u2.id, self.u3.id])
		)

	def test_reject_notifies_owner_and_remaining_participants(self):
		self.coordinator.join_ride(self.ride.id, self.u2.id)
		self.coordinator.join_ride(self.ride.id, self.u3.id)

		with self.captureOnCommitCallbacks(execute=True):
			self.coordinator.reject_ride(self.ride.id, self.u2.id)

		rejected = [(r, s) for r, s, kind, _ in self.sink.sent if kind == 'ride_rejected']
		self.assertEqual(sorted(rejected), sorted([(self.owner.id, self.u2.id), (self.u3.id, self.u2.id)]))

	def test_remove_and_leave_notifications(self):
		self.coordinator.join_ride(self.ride.id, self.u2.id)
		self.coordinator.join_ride(self.ride.id, self.u3.id)

		with self.captureOnCommitCallbacks(execute=True):
			self.coordinator.remove_passenger(self.ride.id, self.owner.id, self.u2.id)
			self.coordinator.unjoin_ride(self.ride.id, self.u3.id)

		kinds = [(r, kind) for r, _, kind, _ in self.sink.sent]
		self.assertIn((self.u2.id, 'ride_removal'), kinds)
		self.assertIn((self.owner.id, 'passenger_left'), kinds)

	def test_failed_operation_sends_nothing(self):
		with self.captureOnCommitCallbacks(execute=True):
			with self.assertRaises(SelfReferenceError):
				self.coordinator.join_ride(self.ride.id, self.owner.id)

		self.assertEqual(self.sink.sent, [])

	def test_failing_sink_does_not_fail_the_operation(self):
		coordinator = RideLifecycleCoordinator(sink=FailingSink())

		with self.assertLogs('services.ride_management.ride_lifecycle', level='ERROR'):
			with self.captureOnCommitCallbacks(execute=True):
				result = coordinator.join_ride(self.ride.id, self.u2.id)

		self.assertTrue(result.success)
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.total_accepted, 1)

	def test_database_sink_persists_notifications(self):
		coordinator = RideLifecycleCoordinator()

		with self.captureOnCommitCallbacks(execute=True):
			coordinator.join_ride(self.ride.id, self.u2.id)

		notification = Notification.objects.get(recipient=self.owner)
		self.assertEqual(notification.type, 'ride_joined')
		self.assertEqual(notification.sender, self.u2)


class RideQueryTests(TestCase):
	def setUp(self):
		self.coordinator = RideLifecycleCoordinator(sink=RecordingSink())
		self.owner = make_user('owner')
		self.rider = make_user('rider')
		now = timezone.now()

		self.cheap = self.coordinator.create_ride(self.owner, **ride_fields(
			destination='Railway Station', total_fare='150', vehicle_type='AutoRickshaw',
			ride_time=now + timedelta(hours=1),
			preferences=[{'gender': 'Female', 'institution': 'North South University'}],
		)).ride
		self.expensive = self.coordinator.create_ride(self.owner, **ride_fields(
			destination='Airport', total_fare='900', vehicle_type='Car',
			ride_time=now + timedelta(hours=3), total_passengers=4,
		)).ride
		self.far_future = self.coordinator.create_ride(self.owner, **ride_fields(
			ride_time=now + timedelta(days=10),
		)).ride
		self.cancelled = self.coordinator.create_ride(self.owner, **ride_fields(
			ride_time=now + timedelta(hours=2),
		)).ride
		self.coordinator.cancel_ride(self.cancelled.id, self.owner.id)

	def ids(self, ride_filter):
		return [ride.id for ride in self.coordinator.list_rides(ride_filter)]

	def test_default_listing_uses_window_and_hides_cancelled(self):
		self.assertEqual(self.ids(RideFilter()), [self.cheap.id, self.expensive.id])

	def test_explicit_range_overrides_window(self):
		now = timezone.now()
		ids = self.ids(RideFilter(ride_time_from=now, ride_time_to=now + timedelta(days=30)))
		self.assertIn(self.far_future.id, ids)

	def test_status_all_includes_cancelled(self):
		self.assertIn(self.cancelled.id, self.ids(RideFilter(status='all')))
		self.assertEqual(self.ids(RideFilter(status='cancelled')), [self.cancelled.id])

	def test_fare_vehicle_and_search_filters(self):
		self.assertEqual(self.ids(RideFilter(min_fare=Decimal('500'))), [self.expensive.id])
		self.assertEqual(self.ids(RideFilter(vehicle_type='AutoRickshaw')), [self.cheap.id])
		self.assertEqual(self.ids(RideFilter(search='railway')), [self.cheap.id])
		self.assertEqual(self.ids(RideFilter(min_passengers=3)), [self.expensive.id])

	def test_preference_filter(self):
		self.assertEqual(self.ids(RideFilter(gender='Female')), [self.cheap.id])
		self.assertEqual(self.ids(RideFilter(institution='north south')), [self.cheap.id])

	def test_sort_by_fare(self):
		ids = self.ids(RideFilter(sort_by=('fare',)))
		self.assertEqual(ids, [self.cheap.id, self.expensive.id])

	def test_created_and_joined_listings(self):
		self.coordinator.join_ride(self.expensive.id, self.rider.id)

		created = [r.id for r in self.coordinator.created_rides(self.owner.id)]
		joined = [r.id for r in self.coordinator.joined_rides(self.rider.id)]

		self.assertEqual(len(created), 4)
		self.assertEqual(created[0], self.far_future.id)
		self.assertEqual(joined, [self.expensive.id])


class RideApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.owner = make_user('owner')
		self.rider = make_user('rider')
		self.other = make_user('other')
		self.ride = RideLifecycleCoordinator(sink=RecordingSink()).create_ride(
			self.owner, **ride_fields(total_passengers=1)
		).ride

	def call(self, view, method, user, data=None, **kwargs):
		request = getattr(self.factory, method)('/api/rides/', data or {}, format='json')
		force_authenticate(request, user=user)
		return view(request, **kwargs)

	def test_create_ride(self):
		payload = {
			'origin': 'Dhanmondi',
			'destination': 'Campus',
			'total_fare': '250.00',
			'vehicle_type': 'Car',
			'total_passengers': 3,
			'ride_time': (timezone.now() + timedelta(hours=1)).isoformat(),
			'preferences': [{'gender': 'Male'}],
		}
		response = self.call(views.rides_collection, 'post', self.owner, payload)

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['ride']['status'], 'pending')
		self.assertEqual(response.data['ride']['preferences'][0]['gender'], 'Male')

	def test_create_ride_over_max_passengers(self):
		payload = {
			'origin': 'A', 'destination': 'B', 'total_fare': '10',
			'vehicle_type': 'Car', 'total_passengers': 50,
			'ride_time': timezone.now().isoformat(),
		}
		response = self.call(views.rides_collection, 'post', self.owner, payload)
		self.assertEqual(response.status_code, 400)

	def test_list_rides(self):
		request = self.factory.get('/api/rides/', {'sort_by': 'fare,rideTime'})
		force_authenticate(request, user=self.rider)
		response = views.rides_collection(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 1)

	def test_list_rides_unknown_sort_key(self):
		request = self.factory.get('/api/rides/', {'sort_by': 'color'})
		force_authenticate(request, user=self.rider)
		response = views.rides_collection(request)
		self.assertEqual(response.status_code, 400)

	def test_join_then_capacity_conflict(self):
		response = self.call(views.join_ride, 'post', self.rider, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 200)
		self.assertIsNotNone(response.data['conversation_id'])
		self.assertEqual(response.data['ride']['status'], 'accepted')

		response = self.call(views.join_ride, 'post', self.other, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error_code'], 'capacity_exceeded')

	def test_owner_join_is_bad_request(self):
		response = self.call(views.join_ride, 'post', self.owner, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error_code'], 'self_reference')

	def test_accept_on_behalf(self):
		response = self.call(views.accept_ride, 'post', self.owner, {'user_id': self.rider.id}, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 200)

		response = self.call(views.accept_ride, 'post', self.owner, {'user_id': 999999}, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 404)

	def test_non_owner_cannot_cancel(self):
		response = self.call(views.cancel_ride, 'post', self.rider, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 403)

	def test_remove_and_complete(self):
		self.call(views.join_ride, 'post', self.rider, ride_id=self.ride.id)

		response = self.call(views.complete_ride, 'post', self.owner, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['ride']['status'], 'completed')

		response = self.call(
			views.remove_passenger, 'delete', self.owner,
			ride_id=self.ride.id, passenger_id=self.rider.id
		)
		self.assertEqual(response.status_code, 409)

	def test_leave_and_reject(self):
		self.call(views.join_ride, 'post', self.rider, ride_id=self.ride.id)

		response = self.call(views.leave_ride, 'post', self.rider, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 200)

		response = self.call(views.reject_ride, 'post', self.rider, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 404)

	def test_detail_and_delete(self):
		response = self.call(views.ride_detail, 'get', self.rider, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['owner']['username'], 'owner')

		response = self.call(views.ride_detail, 'delete', self.rider, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 403)

		response = self.call(views.ride_detail, 'delete', self.owner, ride_id=self.ride.id)
		self.assertEqual(response.status_code, 200)
		self.assertFalse(RideRequest.objects.filter(id=self.ride.id).exists())

	def test_created_and_joined_endpoints(self):
		self.call(views.join_ride, 'post', self.rider, ride_id=self.ride.id)

		response = self.call(views.created_rides, 'get', self.owner)
		self.assertEqual(response.data['count'], 1)

		response = self.call(views.joined_rides, 'get', self.rider)
		self.assertEqual(response.data['rides'][0]['id'], self.ride.id)


class RideRequestStoreTests(TestCase):
	def setUp(self):
		self.store = RideRequestStore()
		self.owner = make_user('owner')
		self.ride = self.store.create(self.owner, **ride_fields())

	def test_get_missing_ride(self):
		with self.assertRaises(RideNotFoundError):
			self.store.get(999999)

	def test_update_applies_mutator(self):
		def add_note(ride):
			ride.note = 'Two bags'

		ride = self.store.update(self.ride.id, add_note)

		self.assertEqual(ride.note, 'Two bags')
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.note, 'Two bags')

	def test_locked_rolls_back_on_error(self):
		with self.assertRaises(InvalidRideStateError):
			with self.store.locked(self.ride.id) as ride:
				ride.note = 'changed'
				ride.save()
				raise InvalidRideStateError()

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.note, '')

	def test_lock_contention_is_transient(self):
		with patch.object(
			RideRequest.objects, 'select_for_update',
			side_effect=OperationalError('database is locked')
		):
			with self.assertRaises(TransientConflictError):
				with self.store.locked(self.ride.id):
					pass

	def test_default_window_spans_configured_days(self):
		start, end = default_time_window()
		self.assertEqual(timezone.localtime(start).date(), timezone.localdate())
		self.assertEqual((timezone.localtime(end).date() - timezone.localdate()).days, 3)


class CleanupOldRidesCommandTests(TestCase):
	def test_deletes_only_old_finished_rides(self):
		coordinator = RideLifecycleCoordinator(sink=RecordingSink())
		owner = make_user('owner')
		old = coordinator.create_ride(owner, **ride_fields()).ride
		fresh = coordinator.create_ride(owner, **ride_fields()).ride
		coordinator.cancel_ride(old.id, owner.id)
		coordinator.cancel_ride(fresh.id, owner.id)
		active = coordinator.create_ride(owner, **ride_fields()).ride

		RideRequest.objects.filter(id__in=[old.id, active.id]).update(
			updated_at=timezone.now() - timedelta(days=60)
		)

		call_command('cleanup_old_rides', days=30, dry_run=True)
		self.assertTrue(RideRequest.objects.filter(id=old.id).exists())

		call_command('cleanup_old_rides', days=30)
		self.assertFalse(RideRequest.objects.filter(id=old.id).exists())
		self.assertTrue(RideRequest.objects.filter(id=fresh.id).exists())
		self.assertTrue(RideRequest.objects.filter(id=active.id).exists())


class ConcurrentJoinTests(TransactionTestCase):
	def test_last_seat_goes_to_exactly_one_joiner(self):
		owner = make_user('owner')
		joiners = [make_user(f'joiner{i}') for i in range(4)]
		ride = RideLifecycleCoordinator(sink=RecordingSink()).create_ride(
			owner, **ride_fields(total_passengers=1)
		).ride

		barrier = threading.Barrier(len(joiners))
		outcomes = []
		lock = threading.Lock()

		def attempt(user_id):
			coordinator = RideLifecycleCoordinator(sink=RecordingSink())
			try:
				barrier.wait()
				retry_on_conflict(lambda: coordinator.join_ride(ride.id, user_id), attempts=5)
				outcome = 'joined'
			except CapacityExceededError:
				outcome = 'full'
			except Exception as exc:
				outcome = repr(exc)
			finally:
				connection.close()
			with lock:
				outcomes.append(outcome)

		threads = [threading.Thread(target=attempt, args=(user.id,)) for user in joiners]
		for thread in threads:
			thread.start()
		for thread in threads:
			thread.join()

		self.assertEqual(sorted(outcomes), ['full', 'full', 'full', 'joined'])

		ride.refresh_from_db()
		self.assertEqual(ride.status, RideRequest.STATUS_ACCEPTED)
		self.assertEqual(ride.total_accepted, 1)
		self.assertEqual(ride.memberships.count(), 1)

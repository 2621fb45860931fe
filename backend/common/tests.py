from unittest.mock import Mock

from django.test import SimpleTestCase, override_settings

from .exceptions import NotFoundError, TransientConflictError
from .http import error_response
from .utils import retry_on_conflict


class RetryOnConflictTests(SimpleTestCase):
	def test_retries_transient_conflicts(self):
		operation = Mock(side_effect=[TransientConflictError(), TransientConflictError(), 'done'])

		self.assertEqual(retry_on_conflict(operation, attempts=3, backoff=0), 'done')
		self.assertEqual(operation.call_count, 3)

	def test_gives_up_after_attempts(self):
		operation = Mock(side_effect=TransientConflictError())

		with self.assertRaises(TransientConflictError):
			retry_on_conflict(operation, attempts=2, backoff=0)
		self.assertEqual(operation.call_count, 2)

	def test_other_errors_are_not_retried(self):
		operation = Mock(side_effect=NotFoundError('gone'))

		with self.assertRaises(NotFoundError):
			retry_on_conflict(operation, attempts=5, backoff=0)
		self.assertEqual(operation.call_count, 1)

	@override_settings(RIDES_CONFLICT_RETRIES=1)
	def test_attempts_default_from_settings(self):
		operation = Mock(side_effect=TransientConflictError())

		with self.assertRaises(TransientConflictError):
			retry_on_conflict(operation, backoff=0)
		self.assertEqual(operation.call_count, 1)


class ErrorResponseTests(SimpleTestCase):
	def test_status_and_body(self):
		response = error_response(NotFoundError('Ride request not found'))
		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.data, {'error': 'Ride request not found', 'error_code': 'not_found'})

	def test_transient_conflict_is_retryable(self):
		response = error_response(TransientConflictError())
		self.assertEqual(response.status_code, 503)
		self.assertTrue(response.data['retryable'])

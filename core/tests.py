"""
Tests for actor resolution and the API exception handler.
"""
from django.test import SimpleTestCase
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.test import APIRequestFactory

from core.actors import Actor, ActorRole, SYSTEM_ACTOR, actor_from_request
from core.exceptions import (
    Forbidden,
    InsufficientStock,
    InvalidTransition,
    NotFound,
    api_exception_handler,
)


class ActorFromRequestTestCase(SimpleTestCase):

    def setUp(self):
        self.factory = APIRequestFactory()

    def request(self, **headers):
        return self.factory.get('/api/reservations/', **headers)

    def test_patient(self):
        actor = actor_from_request(self.request(HTTP_X_ACTOR_ID='7', HTTP_X_ACTOR_ROLE='patient'))

        self.assertEqual(actor, Actor(actor_id=7, role=ActorRole.PATIENT))

    def test_admin_without_id(self):
        actor = actor_from_request(self.request(HTTP_X_ACTOR_ROLE='ADMIN'))

        self.assertIsNone(actor.actor_id)
        self.assertEqual(actor.role, ActorRole.ADMIN)

    def test_missing_role(self):
        with self.assertRaises(Forbidden):
            actor_from_request(self.request(HTTP_X_ACTOR_ID='7'))

    def test_system_role_cannot_be_claimed(self):
        with self.assertRaises(Forbidden):
            actor_from_request(self.request(HTTP_X_ACTOR_ID='1', HTTP_X_ACTOR_ROLE='SYSTEM'))

    def test_pharmacy_requires_id(self):
        with self.assertRaises(Forbidden):
            actor_from_request(self.request(HTTP_X_ACTOR_ROLE='PHARMACY'))

    def test_non_numeric_id(self):
        with self.assertRaises(Forbidden):
            actor_from_request(self.request(HTTP_X_ACTOR_ID='abc', HTTP_X_ACTOR_ROLE='PATIENT'))

    def test_system_actor(self):
        self.assertTrue(SYSTEM_ACTOR.is_system)
        self.assertEqual(SYSTEM_ACTOR.as_dict(), {'actor_id': None, 'role': 'SYSTEM'})


class ExceptionHandlerTestCase(SimpleTestCase):

    def test_insufficient_stock_carries_available(self):
        response = api_exception_handler(InsufficientStock(1, 2, requested=5, available=2), {})

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'Insufficient Stock')
        self.assertEqual(response.data['requested'], 5)
        self.assertEqual(response.data['available'], 2)

    def test_invalid_transition(self):
        response = api_exception_handler(InvalidTransition('COMPLETED', 'CANCELLED'), {})

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['current_status'], 'COMPLETED')
        self.assertEqual(response.data['target_status'], 'CANCELLED')

    def test_status_codes(self):
        self.assertEqual(api_exception_handler(NotFound('gone'), {}).status_code, 404)
        self.assertEqual(api_exception_handler(Forbidden('no'), {}).status_code, 403)

    def test_drf_errors_pass_through(self):
        response = api_exception_handler(ValidationError({'quantity': ['required']}), {})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data, {'quantity': ['required']})

    def test_unexpected_errors_become_500(self):
        with self.assertLogs('core.exceptions', level='ERROR'):
            response = api_exception_handler(RuntimeError('boom'), {})

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['error'], 'Server Error')

"""
Tests for the reservation lifecycle.

Test Cases:
1. Happy path: reserve then complete
2. Insufficient stock creates nothing
3. Role and ownership checks on transitions
4. Idempotent transitions and exactly-once release
5. Expiry sweep, including races with pharmacy confirmation
6. Notifications, tasks and API endpoints
"""
import re
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from core.actors import Actor, ActorRole, SYSTEM_ACTOR
from core.exceptions import (
    ConflictRetryExhausted,
    Forbidden,
    InsufficientStock,
    InvalidTransition,
    NotFound,
    ReservationValidationError,
)
from inventory import ledger
from inventory.models import Inventory, Medicine, Pharmacy
from reservations import services
from reservations.models import Patient, Reservation
from reservations.notifications import render_message
from reservations.sweeper import run_expiry_sweep
from reservations.tasks import expire_stale_reservations, send_reservation_event

Status = Reservation.Status


class ReservationFixtureMixin:

    def setUp(self):
        self.pharmacy = Pharmacy.objects.create(name='Rampur Pharmacy', location='Rampur', phone='+91 900000001')
        self.other_pharmacy = Pharmacy.objects.create(name='Nandgaon Pharmacy', location='Nandgaon')
        self.medicine = Medicine.objects.create(name='Paracetamol', strength='500mg')
        self.patient = Patient.objects.create(name='Asha Devi', phone='+91 800000001')
        self.other_patient = Patient.objects.create(name='Ravi Kumar', phone='+91 800000002')
        self.entry = ledger.open_entry(
            self.pharmacy, self.medicine,
            current_stock=10,
            min_stock_level=2,
            max_stock_level=100,
            price=Decimal('12.00'),
        )
        self.patient_actor = Actor(actor_id=self.patient.id, role=ActorRole.PATIENT)
        self.pharmacy_actor = Actor(actor_id=self.pharmacy.id, role=ActorRole.PHARMACY)

    def reserve(self, quantity=3, **kwargs):
        return services.create_reservation(
            self.patient.id, self.pharmacy.id, self.medicine.id, quantity, **kwargs
        )

    def advance(self, reservation, *statuses):
        for target in statuses:
            reservation = services.transition_reservation(reservation.id, target, self.pharmacy_actor)
        return reservation

    def ledger_state(self):
        self.entry.refresh_from_db()
        return self.entry.current_stock, self.entry.reserved_stock, self.entry.available_stock


class ReservationCodeTestCase(TestCase):

    def test_code_format(self):
        code = services.generate_reservation_code()

        self.assertRegex(code, r'^RES\d{8}[A-Z0-9]{4}$')

    def test_code_uses_clock(self):
        now = timezone.now()
        millis = str(int(now.timestamp() * 1000))[-8:]

        self.assertTrue(services.generate_reservation_code(now).startswith(f'RES{millis}'))

    def test_unique_code_retries_on_collision(self):
        seen = []

        def exists(code):
            seen.append(code)
            return len(seen) < 3

        code = services.generate_unique_code(exists)

        self.assertEqual(len(seen), 3)
        self.assertEqual(code, seen[-1])

    def test_unique_code_gives_up(self):
        with self.assertRaises(ConflictRetryExhausted):
            services.generate_unique_code(lambda code: True, max_attempts=4)


class ReservationCreateTestCase(ReservationFixtureMixin, TestCase):

    def test_happy_path(self):
        """
        Given: 10 units at 12.00
        When: Reserving 3 and later completing the reservation
        Then: Hold of 3 while open; stock drops to 7 with no hold after pickup
        """
        reservation = self.reserve(3)

        self.assertEqual(reservation.status, Status.PENDING)
        self.assertEqual(reservation.total_price, Decimal('36.00'))
        self.assertEqual(self.ledger_state(), (10, 3, 7))

        reservation = self.advance(reservation, Status.CONFIRMED, Status.READY, Status.COMPLETED)

        self.assertEqual(reservation.status, Status.COMPLETED)
        self.assertEqual(self.ledger_state(), (7, 0, 7))

    def test_hold_lasts_24_hours(self):
        now = timezone.now()
        reservation = self.reserve(1, now=now)

        self.assertEqual(reservation.expires_at, now + timedelta(hours=24))
        self.assertTrue(re.match(r'^RES\d{8}[A-Z0-9]{4}$', reservation.code))

    @override_settings(RESERVATION_HOLD_HOURS=2)
    def test_hold_duration_is_configurable(self):
        now = timezone.now()
        reservation = self.reserve(1, now=now)

        self.assertEqual(reservation.expires_at, now + timedelta(hours=2))

    def test_insufficient_stock_creates_nothing(self):
        ledger.adjust_stock(self.pharmacy.id, self.medicine.id, 2)

        with self.assertRaises(InsufficientStock) as context:
            self.reserve(5)

        self.assertEqual(context.exception.available, 2)
        self.assertFalse(Reservation.objects.exists())
        self.assertEqual(self.ledger_state(), (2, 0, 2))

    def test_insufficient_stock_counts_existing_holds(self):
        self.reserve(8)

        with self.assertRaises(InsufficientStock) as context:
            self.reserve(3)

        self.assertEqual(context.exception.available, 2)
        self.assertEqual(Reservation.objects.count(), 1)

    def test_price_is_fixed_at_reservation_time(self):
        reservation = self.reserve(2)
        Inventory.objects.filter(pk=self.entry.pk).update(price=Decimal('20.00'))

        reservation.refresh_from_db()
        self.assertEqual(reservation.total_price, Decimal('24.00'))

    def test_missing_inventory_entry(self):
        with self.assertRaises(NotFound):
            services.create_reservation(self.patient.id, self.other_pharmacy.id, self.medicine.id, 1)

    def test_unknown_patient(self):
        with self.assertRaises(NotFound):
            services.create_reservation(9999, self.pharmacy.id, self.medicine.id, 1)

    def test_withdrawn_medicine(self):
        Medicine.objects.filter(pk=self.medicine.pk).update(is_active=False)

        with self.assertRaises(NotFound):
            self.reserve(1)
        self.assertEqual(self.ledger_state(), (10, 0, 10))

    def test_invalid_quantity(self):
        with self.assertRaises(ReservationValidationError):
            self.reserve(0)

    def test_created_notification_queued_on_commit(self):
        with patch('reservations.tasks.send_reservation_event.delay') as delay:
            with self.captureOnCommitCallbacks(execute=True):
                reservation = self.reserve(1)

        delay.assert_called_once_with(
            'created', reservation.id, {'actor_id': self.patient.id, 'role': 'PATIENT'}
        )

    def test_expired_stock_cannot_be_reserved(self):
        Inventory.objects.filter(pk=self.entry.pk).update(
            expiry_date=timezone.now() - timedelta(days=1)
        )

        with self.assertRaises(NotFound):
            self.reserve(1)

        self.assertFalse(Reservation.objects.exists())
        self.assertEqual(self.ledger_state(), (10, 0, 10))

    def test_created_notification_names_admin_caller(self):
        admin = Actor(actor_id=None, role=ActorRole.ADMIN)

        with patch('reservations.tasks.send_reservation_event.delay') as delay:
            with self.captureOnCommitCallbacks(execute=True):
                reservation = self.reserve(1, actor=admin)

        delay.assert_called_once_with(
            'created', reservation.id, {'actor_id': None, 'role': 'ADMIN'}
        )

    def test_notification_failure_keeps_reservation(self):
        with patch('reservations.tasks.send_reservation_event.delay', side_effect=RuntimeError('broker down')):
            with self.captureOnCommitCallbacks(execute=True):
                reservation = self.reserve(1)

        self.assertTrue(Reservation.objects.filter(pk=reservation.pk).exists())
        self.assertEqual(self.ledger_state(), (10, 1, 9))


class ReservationTransitionTestCase(ReservationFixtureMixin, TestCase):

    def test_confirm_and_ready_keep_hold(self):
        reservation = self.advance(self.reserve(3), Status.CONFIRMED, Status.READY)

        self.assertEqual(reservation.status, Status.READY)
        self.assertEqual(self.ledger_state(), (10, 3, 7))

    def test_patient_cancel_releases_hold(self):
        reservation = self.reserve(3)

        reservation = services.cancel_reservation(reservation.id, self.patient_actor)

        self.assertEqual(reservation.status, Status.CANCELLED)
        self.assertEqual(self.ledger_state(), (10, 0, 10))

    def test_pharmacy_cancel_from_ready(self):
        reservation = self.advance(self.reserve(3), Status.CONFIRMED, Status.READY)

        services.cancel_reservation(reservation.id, self.pharmacy_actor, notes='Patient unreachable')

        reservation.refresh_from_db()
        self.assertEqual(reservation.status, Status.CANCELLED)
        self.assertEqual(reservation.notes, 'Patient unreachable')
        self.assertEqual(self.ledger_state(), (10, 0, 10))

    def test_release_happens_exactly_once(self):
        """
        Given: A cancelled reservation
        When: The cancel request is retried
        Then: No-op success, the hold is not released a second time
        """
        first = self.reserve(3)
        self.reserve(2)
        services.cancel_reservation(first.id, self.patient_actor)

        services.cancel_reservation(first.id, self.patient_actor)

        self.assertEqual(self.ledger_state(), (10, 2, 8))

    def test_idempotent_transition_has_no_side_effects(self):
        reservation = self.advance(self.reserve(3), Status.CONFIRMED)
        updated_at = reservation.updated_at

        with patch('reservations.services.notify') as notify:
            again = services.transition_reservation(
                reservation.id, Status.CONFIRMED, self.pharmacy_actor,
                now=timezone.now() + timedelta(minutes=10)
            )

        self.assertEqual(again.status, Status.CONFIRMED)
        self.assertEqual(again.updated_at, updated_at)
        notify.assert_not_called()
        self.assertEqual(self.ledger_state(), (10, 3, 7))

    def test_transition_bumps_updated_at(self):
        reservation = self.reserve(1)
        later = timezone.now() + timedelta(minutes=5)

        reservation = services.transition_reservation(
            reservation.id, Status.CONFIRMED, self.pharmacy_actor, now=later
        )

        self.assertEqual(reservation.updated_at, later)

    def test_skipping_states_is_rejected(self):
        reservation = self.reserve(3)

        with self.assertRaises(InvalidTransition):
            services.transition_reservation(reservation.id, Status.COMPLETED, self.pharmacy_actor)
        with self.assertRaises(InvalidTransition):
            services.transition_reservation(reservation.id, Status.READY, self.pharmacy_actor)

        self.assertEqual(self.ledger_state(), (10, 3, 7))

    def test_cancel_after_completion_rejected(self):
        reservation = self.advance(self.reserve(3), Status.CONFIRMED, Status.READY, Status.COMPLETED)

        with self.assertRaises(InvalidTransition) as context:
            services.transition_reservation(reservation.id, Status.CANCELLED, self.pharmacy_actor)

        self.assertEqual(context.exception.current, Status.COMPLETED)
        self.assertEqual(self.ledger_state(), (7, 0, 7))

    def test_patient_cannot_cancel_completed(self):
        reservation = self.advance(self.reserve(3), Status.CONFIRMED, Status.READY, Status.COMPLETED)

        with self.assertRaises(InvalidTransition):
            services.cancel_reservation(reservation.id, self.patient_actor)

    def test_patient_cannot_confirm(self):
        reservation = self.reserve(3)

        with self.assertRaises(Forbidden):
            services.transition_reservation(reservation.id, Status.CONFIRMED, self.patient_actor)

    def test_patient_cannot_cancel_someone_elses(self):
        reservation = self.reserve(3)
        stranger = Actor(actor_id=self.other_patient.id, role=ActorRole.PATIENT)

        with self.assertRaises(Forbidden):
            services.cancel_reservation(reservation.id, stranger)
        self.assertEqual(self.ledger_state(), (10, 3, 7))

    def test_other_pharmacy_cannot_confirm(self):
        reservation = self.reserve(3)
        stranger = Actor(actor_id=self.other_pharmacy.id, role=ActorRole.PHARMACY)

        with self.assertRaises(Forbidden):
            services.transition_reservation(reservation.id, Status.CONFIRMED, stranger)

    def test_users_cannot_expire(self):
        reservation = self.reserve(3, now=timezone.now() - timedelta(days=2))

        with self.assertRaises(Forbidden):
            services.transition_reservation(reservation.id, Status.EXPIRED, self.pharmacy_actor)
        with self.assertRaises(Forbidden):
            services.transition_reservation(reservation.id, Status.EXPIRED, self.patient_actor)

    def test_admin_cannot_force_transitions(self):
        reservation = self.reserve(3)
        admin = Actor(actor_id=None, role=ActorRole.ADMIN)

        with self.assertRaises(Forbidden):
            services.transition_reservation(reservation.id, Status.CANCELLED, admin)

    def test_expire_before_deadline_rejected(self):
        reservation = self.reserve(3)

        with self.assertRaises(InvalidTransition):
            services.expire_reservation(reservation.id)
        self.assertEqual(self.ledger_state(), (10, 3, 7))

    def test_unknown_reservation(self):
        with self.assertRaises(NotFound):
            services.transition_reservation(9999, Status.CANCELLED, self.patient_actor)

    def test_unknown_status(self):
        reservation = self.reserve(3)

        with self.assertRaises(ReservationValidationError):
            services.transition_reservation(reservation.id, 'SHIPPED', self.pharmacy_actor)

    def test_failed_ledger_effect_rolls_back_status(self):
        reservation = self.advance(self.reserve(3), Status.CONFIRMED, Status.READY)

        with patch('reservations.services.ledger.consume', side_effect=RuntimeError('db gone')):
            with self.assertRaises(RuntimeError):
                services.transition_reservation(reservation.id, Status.COMPLETED, self.pharmacy_actor)

        reservation.refresh_from_db()
        self.assertEqual(reservation.status, Status.READY)
        self.assertEqual(self.ledger_state(), (10, 3, 7))

    def test_stale_read_is_rechecked_when_status_moved_on(self):
        """
        Given: The sweeper read the reservation while PENDING
        When: The pharmacy confirmed it before the sweeper's update landed
        Then: The status-keyed update matches nothing, the re-read sees
              CONFIRMED and the expiry is rejected; the hold is kept
        """
        now = timezone.now()
        reservation = self.reserve(4, now=now - timedelta(days=2))
        stale = services.get_reservation(reservation.id)
        self.advance(reservation, Status.CONFIRMED)
        real_get = services.get_reservation
        reads = [stale]

        def read(reservation_id):
            return reads.pop() if reads else real_get(reservation_id)

        with patch('reservations.services.get_reservation', side_effect=read) as get:
            with self.assertRaises(InvalidTransition):
                services.expire_reservation(reservation.id, now=now)

        self.assertEqual(get.call_count, 2)
        reservation.refresh_from_db()
        self.assertEqual(reservation.status, Status.CONFIRMED)
        self.assertEqual(self.ledger_state(), (10, 4, 6))

    def test_gives_up_when_status_keeps_changing(self):
        now = timezone.now()
        reservation = self.reserve(4, now=now - timedelta(days=2))
        stale = services.get_reservation(reservation.id)
        self.advance(reservation, Status.CONFIRMED)

        with patch('reservations.services.get_reservation', return_value=stale) as get:
            with self.assertRaises(ConflictRetryExhausted):
                services.expire_reservation(reservation.id, now=now)

        self.assertEqual(get.call_count, 3)
        reservation.refresh_from_db()
        self.assertEqual(reservation.status, Status.CONFIRMED)
        self.assertEqual(self.ledger_state(), (10, 4, 6))

    def test_ready_with_pickup_instructions(self):
        reservation = self.advance(self.reserve(2), Status.CONFIRMED)

        reservation = services.transition_reservation(
            reservation.id, Status.READY, self.pharmacy_actor,
            pickup_instructions='Ask at counter 2'
        )

        self.assertEqual(reservation.pickup_instructions, 'Ask at counter 2')
        self.assertTrue(render_message('ready', reservation).endswith('Ask at counter 2'))

    def test_pickup_instructions_only_when_ready(self):
        reservation = self.reserve(2)

        with self.assertRaises(ReservationValidationError):
            services.transition_reservation(
                reservation.id, Status.CONFIRMED, self.pharmacy_actor,
                pickup_instructions='Ask at counter 2'
            )

        reservation.refresh_from_db()
        self.assertEqual(reservation.status, Status.PENDING)

    def test_lookup_by_code_checks_ownership(self):
        reservation = self.reserve(1)

        found = services.get_reservation_by_code(reservation.code, self.patient_actor)
        self.assertEqual(found.pk, reservation.pk)

        with self.assertRaises(Forbidden):
            services.get_reservation_by_code(
                reservation.code, Actor(actor_id=self.other_pharmacy.id, role=ActorRole.PHARMACY)
            )
        with self.assertRaises(NotFound):
            services.get_reservation_by_code('RES00000000XXXX', self.patient_actor)

    def test_summary(self):
        reservation = self.reserve(2, notes='After 5pm')

        summary = services.get_reservation_summary(reservation.id)

        self.assertEqual(summary['code'], reservation.code)
        self.assertEqual(summary['total_price'], '24.00')
        self.assertEqual(summary['pharmacy']['name'], 'Rampur Pharmacy')
        self.assertEqual(summary['notes'], 'After 5pm')


class ExpirySweepTestCase(ReservationFixtureMixin, TestCase):

    def test_sweep_expires_overdue_pending(self):
        """
        Given: A PENDING reservation whose hold ran out an hour ago
        When: The sweeper runs
        Then: It is EXPIRED and its hold is released
        """
        now = timezone.now()
        reservation = self.reserve(4, now=now - timedelta(hours=25))

        result = run_expiry_sweep(now)

        reservation.refresh_from_db()
        self.assertEqual(reservation.status, Status.EXPIRED)
        self.assertEqual(result.as_dict(), {'expired': 1, 'skipped': 0, 'failed': 0})
        self.assertEqual(self.ledger_state(), (10, 0, 10))

    def test_sweep_leaves_live_holds(self):
        now = timezone.now()
        reservation = self.reserve(4, now=now)

        result = run_expiry_sweep(now + timedelta(hours=23))

        reservation.refresh_from_db()
        self.assertEqual(reservation.status, Status.PENDING)
        self.assertEqual(result.expired, 0)
        self.assertEqual(self.ledger_state(), (10, 4, 6))

    def test_sweep_ignores_confirmed(self):
        """
        A reservation the pharmacy confirmed is not a candidate, even when
        its original hold deadline has passed.
        """
        now = timezone.now()
        reservation = self.advance(self.reserve(4, now=now - timedelta(days=2)), Status.CONFIRMED)

        result = run_expiry_sweep(now)

        reservation.refresh_from_db()
        self.assertEqual(reservation.status, Status.CONFIRMED)
        self.assertEqual(result.expired, 0)
        self.assertEqual(self.ledger_state(), (10, 4, 6))

    def test_sweep_loses_race_to_confirmation(self):
        """
        Given: The sweeper selected a candidate
        When: The pharmacy confirms it before the sweeper's expire lands
        Then: The sweeper skips it; status stays CONFIRMED and the hold is kept
        """
        now = timezone.now()
        reservation = self.reserve(4, now=now - timedelta(days=2))
        real_expire = services.expire_reservation

        def confirm_first(reservation_id, now=None):
            services.transition_reservation(reservation_id, Status.CONFIRMED, self.pharmacy_actor)
            return real_expire(reservation_id, now=now)

        with patch('reservations.sweeper.expire_reservation', side_effect=confirm_first):
            result = run_expiry_sweep(now)

        reservation.refresh_from_db()
        self.assertEqual(reservation.status, Status.CONFIRMED)
        self.assertEqual(result.as_dict(), {'expired': 0, 'skipped': 1, 'failed': 0})
        self.assertEqual(self.ledger_state(), (10, 4, 6))

    def test_sweep_continues_after_failure(self):
        now = timezone.now()
        first = self.reserve(1, now=now - timedelta(days=3))
        second = self.reserve(2, now=now - timedelta(days=2))
        real_expire = services.expire_reservation

        def flaky(reservation_id, now=None):
            if reservation_id == first.id:
                raise RuntimeError('connection reset')
            return real_expire(reservation_id, now=now)

        with patch('reservations.sweeper.expire_reservation', side_effect=flaky):
            result = run_expiry_sweep(now)

        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.status, Status.PENDING)
        self.assertEqual(second.status, Status.EXPIRED)
        self.assertEqual(result.as_dict(), {'expired': 1, 'skipped': 0, 'failed': 1})
        self.assertEqual(self.ledger_state(), (10, 1, 9))

    def test_expire_is_idempotent(self):
        now = timezone.now()
        reservation = self.reserve(4, now=now - timedelta(days=2))

        services.expire_reservation(reservation.id, now=now)
        services.transition_reservation(reservation.id, Status.EXPIRED, SYSTEM_ACTOR, now=now)

        self.assertEqual(self.ledger_state(), (10, 0, 10))

    def test_cancel_after_expiry_rejected(self):
        now = timezone.now()
        reservation = self.reserve(4, now=now - timedelta(days=2))
        services.expire_reservation(reservation.id, now=now)

        with self.assertRaises(InvalidTransition):
            services.cancel_reservation(reservation.id, self.patient_actor)
        self.assertEqual(self.ledger_state(), (10, 0, 10))

    def test_expire_task(self):
        self.reserve(4, now=timezone.now() - timedelta(days=2))

        self.assertEqual(expire_stale_reservations(), {'expired': 1, 'skipped': 0, 'failed': 0})


class NotificationTaskTestCase(ReservationFixtureMixin, TestCase):

    def test_send_created_event(self):
        reservation = self.reserve(2)

        result = send_reservation_event('created', reservation.id)

        self.assertEqual(result['status'], 'success')
        self.assertIn(reservation.code, result['message'])
        self.assertIn('Paracetamol', result['message'])

    def test_send_skips_patient_without_phone(self):
        Patient.objects.filter(pk=self.patient.pk).update(phone='')
        reservation = self.reserve(2)

        result = send_reservation_event('ready', reservation.id)

        self.assertEqual(result['status'], 'skipped')

    def test_send_missing_reservation(self):
        result = send_reservation_event('created', 9999)

        self.assertEqual(result['status'], 'error')

    def test_every_event_has_a_message(self):
        reservation = self.reserve(1)
        for event_type in ('created', 'confirmed', 'ready', 'completed', 'cancelled', 'expired'):
            self.assertIn(reservation.code, render_message(event_type, reservation))

    def test_transition_queues_matching_event(self):
        reservation = self.reserve(1)

        with patch('reservations.tasks.send_reservation_event.delay') as delay:
            with self.captureOnCommitCallbacks(execute=True):
                services.cancel_reservation(reservation.id, self.patient_actor)

        delay.assert_called_once_with(
            'cancelled', reservation.id, {'actor_id': self.patient.id, 'role': 'PATIENT'}
        )


@override_settings(RATE_LIMIT_ENABLED=False)
class ReservationAPITestCase(ReservationFixtureMixin, APITestCase):

    def as_patient(self, patient=None):
        return {
            'HTTP_X_ACTOR_ID': str((patient or self.patient).id),
            'HTTP_X_ACTOR_ROLE': 'PATIENT',
        }

    def as_pharmacy(self, pharmacy=None):
        return {
            'HTTP_X_ACTOR_ID': str((pharmacy or self.pharmacy).id),
            'HTTP_X_ACTOR_ROLE': 'PHARMACY',
        }

    def post_reservation(self, quantity=3, headers=None):
        return self.client.post(reverse('reservations:reservation-list'), {
            'pharmacy_id': self.pharmacy.id,
            'medicine_id': self.medicine.id,
            'quantity': quantity,
        }, format='json', **(headers if headers is not None else self.as_patient()))

    def test_create_reservation(self):
        response = self.post_reservation(3)

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Status.PENDING)
        self.assertEqual(response.data['total_price'], '36.00')
        self.assertEqual(response.data['patient']['id'], self.patient.id)
        self.assertEqual(self.ledger_state(), (10, 3, 7))

    def test_create_insufficient_stock(self):
        response = self.post_reservation(11)

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['available'], 10)
        self.assertFalse(Reservation.objects.exists())

    def test_create_requires_actor(self):
        response = self.post_reservation(1, headers={})

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_pharmacy_cannot_reserve(self):
        response = self.post_reservation(1, headers=self.as_pharmacy())

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_validation_error(self):
        response = self.post_reservation(0)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_status_flow(self):
        reservation_id = self.post_reservation(3).data['id']
        url = reverse('reservations:reservation-status', args=[reservation_id])

        for target in ('CONFIRMED', 'READY', 'COMPLETED'):
            response = self.client.post(url, {'status': target}, format='json', **self.as_pharmacy())
            self.assertEqual(response.status_code, status.HTTP_200_OK)
            self.assertEqual(response.data['status'], target)

        self.assertEqual(self.ledger_state(), (7, 0, 7))

        response = self.client.post(url, {'status': 'CANCELLED'}, format='json', **self.as_pharmacy())
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['current_status'], 'COMPLETED')

    def test_patient_cannot_confirm_via_api(self):
        reservation_id = self.post_reservation(3).data['id']

        response = self.client.post(
            reverse('reservations:reservation-status', args=[reservation_id]),
            {'status': 'CONFIRMED'}, format='json', **self.as_patient()
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_cancel_endpoint(self):
        reservation_id = self.post_reservation(3).data['id']

        response = self.client.post(
            reverse('reservations:reservation-cancel', args=[reservation_id]),
            {}, format='json', **self.as_patient()
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'CANCELLED')
        self.assertEqual(self.ledger_state(), (10, 0, 10))

    def test_admin_reserves_for_patient(self):
        response = self.client.post(reverse('reservations:reservation-list'), {
            'pharmacy_id': self.pharmacy.id,
            'medicine_id': self.medicine.id,
            'quantity': 2,
            'patient_id': self.other_patient.id,
        }, format='json', HTTP_X_ACTOR_ROLE='ADMIN')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['patient']['id'], self.other_patient.id)

    def test_ready_with_pickup_instructions_via_api(self):
        reservation_id = self.post_reservation(2).data['id']
        url = reverse('reservations:reservation-status', args=[reservation_id])
        self.client.post(url, {'status': 'CONFIRMED'}, format='json', **self.as_pharmacy())

        response = self.client.post(url, {
            'status': 'READY',
            'pickup_instructions': 'Ask at counter 2',
        }, format='json', **self.as_pharmacy())

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['pickup_instructions'], 'Ask at counter 2')

    def test_pickup_instructions_rejected_for_other_statuses(self):
        reservation_id = self.post_reservation(2).data['id']

        response = self.client.post(
            reverse('reservations:reservation-status', args=[reservation_id]),
            {'status': 'CONFIRMED', 'pickup_instructions': 'Ask at counter 2'},
            format='json', **self.as_pharmacy()
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_summary_endpoint(self):
        data = self.post_reservation(2).data
        url = reverse('reservations:reservation-summary', args=[data['id']])

        response = self.client.get(url, **self.as_patient())

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['code'], data['code'])
        self.assertEqual(response.data['total_price'], '24.00')
        self.assertEqual(
            self.client.get(url, **self.as_patient(self.other_patient)).status_code,
            status.HTTP_403_FORBIDDEN
        )

    def test_detail_is_scoped_to_owner(self):
        reservation_id = self.post_reservation(1).data['id']
        url = reverse('reservations:reservation-detail', args=[reservation_id])

        self.assertEqual(self.client.get(url, **self.as_patient()).status_code, status.HTTP_200_OK)
        self.assertEqual(
            self.client.get(url, **self.as_patient(self.other_patient)).status_code,
            status.HTTP_403_FORBIDDEN
        )

    def test_lookup_by_code(self):
        code = self.post_reservation(1).data['code']

        response = self.client.get(
            reverse('reservations:reservation-by-code', args=[code]), **self.as_pharmacy()
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['code'], code)

    def test_list_is_scoped_to_actor(self):
        self.post_reservation(1)
        self.post_reservation(1, headers=self.as_patient(self.other_patient))

        response = self.client.get(reverse('reservations:reservation-list'), **self.as_patient())

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

        response = self.client.get(reverse('reservations:reservation-list'), **self.as_pharmacy())
        self.assertEqual(response.data['count'], 2)

    def test_stats(self):
        first = self.post_reservation(1).data['id']
        self.post_reservation(2)
        self.client.post(
            reverse('reservations:reservation-cancel', args=[first]), {}, format='json', **self.as_patient()
        )

        response = self.client.get(reverse('reservations:reservation-stats'), **self.as_pharmacy())

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_reservations'], 2)
        self.assertEqual(response.data['cancelled_reservations'], 1)
        self.assertEqual(response.data['pending_reservations'], 1)
        self.assertEqual(response.data['completed_revenue'], '0.00')

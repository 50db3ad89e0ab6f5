"""
Tests for the inventory ledger.

Test Cases:
1. Status derivation precedence
2. Reserve / release / consume bookkeeping
3. Insufficient stock reports the real-time available count
4. Concurrent reservations never oversell
5. Status refresh sweep and inventory API endpoints
"""
import threading
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

from django.db import connection
from django.test import TestCase, TransactionTestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from core.exceptions import (
    ConflictRetryExhausted,
    InsufficientStock,
    InvalidStockLevel,
    NotFound,
    ReservationValidationError,
)
from inventory import ledger
from inventory.models import Inventory, Medicine, Pharmacy
from inventory.serializers import InventorySerializer
from inventory.tasks import refresh_inventory_statuses, send_low_stock_alerts


def make_entry(pharmacy, medicine, **fields):
    defaults = {
        'current_stock': 10,
        'min_stock_level': 2,
        'max_stock_level': 50,
        'price': Decimal('12.00'),
    }
    defaults.update(fields)
    return ledger.open_entry(pharmacy, medicine, **defaults)


class RecomputeStatusTestCase(TestCase):
    """recompute_status is pure; no rows needed."""

    def setUp(self):
        self.now = timezone.now()

    def entry(self, current_stock=20, min_stock_level=5, expiry_date=None):
        return SimpleNamespace(
            current_stock=current_stock,
            min_stock_level=min_stock_level,
            expiry_date=expiry_date,
        )

    def test_available(self):
        self.assertEqual(ledger.recompute_status(self.entry(), self.now), Inventory.Status.AVAILABLE)

    def test_low_below_minimum(self):
        entry = self.entry(current_stock=4)
        self.assertEqual(ledger.recompute_status(entry, self.now), Inventory.Status.LOW)

    def test_at_minimum_is_not_low(self):
        entry = self.entry(current_stock=5)
        self.assertEqual(ledger.recompute_status(entry, self.now), Inventory.Status.AVAILABLE)

    def test_out_of_stock_overrides_low(self):
        entry = self.entry(current_stock=0)
        self.assertEqual(ledger.recompute_status(entry, self.now), Inventory.Status.OUT_OF_STOCK)

    def test_expired_overrides_everything(self):
        entry = self.entry(current_stock=0, expiry_date=self.now - timedelta(days=1))
        self.assertEqual(ledger.recompute_status(entry, self.now), Inventory.Status.EXPIRED)

    def test_future_expiry_is_ignored(self):
        entry = self.entry(expiry_date=self.now + timedelta(days=1))
        self.assertEqual(ledger.recompute_status(entry, self.now), Inventory.Status.AVAILABLE)


class LedgerTestCase(TestCase):

    def setUp(self):
        self.pharmacy = Pharmacy.objects.create(name='Rampur Pharmacy', location='Rampur')
        self.medicine = Medicine.objects.create(name='Paracetamol', strength='500mg')
        self.entry = make_entry(self.pharmacy, self.medicine)

    def availability(self):
        return ledger.get_availability(self.pharmacy.id, self.medicine.id)

    def test_get_availability(self):
        availability = self.availability()

        self.assertEqual(availability.current_stock, 10)
        self.assertEqual(availability.reserved_stock, 0)
        self.assertEqual(availability.available_stock, 10)
        self.assertEqual(availability.price, Decimal('12.00'))
        self.assertEqual(availability.status, Inventory.Status.AVAILABLE)

    def test_get_availability_not_found(self):
        other = Medicine.objects.create(name='Ibuprofen')

        with self.assertRaises(NotFound):
            ledger.get_availability(self.pharmacy.id, other.id)

    def test_reserve_increments_reserved_stock(self):
        ledger.reserve(self.pharmacy.id, self.medicine.id, 3)

        availability = self.availability()
        self.assertEqual(availability.reserved_stock, 3)
        self.assertEqual(availability.available_stock, 7)
        self.assertEqual(availability.current_stock, 10)

    def test_reserve_exact_available_stock(self):
        ledger.reserve(self.pharmacy.id, self.medicine.id, 10)

        self.assertEqual(self.availability().available_stock, 0)

    def test_reserve_insufficient_stock_reports_available(self):
        ledger.reserve(self.pharmacy.id, self.medicine.id, 6)

        with self.assertRaises(InsufficientStock) as context:
            ledger.reserve(self.pharmacy.id, self.medicine.id, 5)

        self.assertEqual(context.exception.available, 4)
        self.assertEqual(context.exception.requested, 5)
        # Ledger unchanged by the failed attempt
        self.assertEqual(self.availability().reserved_stock, 6)

    def test_reserve_rejects_non_positive_quantity(self):
        with self.assertRaises(ReservationValidationError):
            ledger.reserve(self.pharmacy.id, self.medicine.id, 0)

    def test_reserve_missing_entry(self):
        other = Pharmacy.objects.create(name='Other', location='Elsewhere')

        with self.assertRaises(NotFound):
            ledger.reserve(other.id, self.medicine.id, 1)

    def test_reserve_gives_up_after_repeated_lost_races(self):
        """
        Given: The conditional update keeps failing
        When: Every re-read shows enough stock (a competing writer won)
        Then: ConflictRetryExhausted, not InsufficientStock
        """
        Inventory.objects.filter(pk=self.entry.pk).update(current_stock=2)
        phantom = SimpleNamespace(pk=self.entry.pk, available_stock=10)

        with patch('inventory.ledger.get_entry', return_value=phantom) as get_entry:
            with self.assertRaises(ConflictRetryExhausted):
                ledger.reserve(self.pharmacy.id, self.medicine.id, 5)

        self.assertEqual(get_entry.call_count, 3)

    def test_release_decrements_reserved_stock(self):
        ledger.reserve(self.pharmacy.id, self.medicine.id, 4)
        ledger.release(self.pharmacy.id, self.medicine.id, 4)

        self.assertEqual(self.availability().reserved_stock, 0)
        self.assertEqual(self.availability().available_stock, 10)

    def test_release_is_floored_at_zero(self):
        ledger.reserve(self.pharmacy.id, self.medicine.id, 2)
        ledger.release(self.pharmacy.id, self.medicine.id, 5)

        availability = self.availability()
        self.assertEqual(availability.reserved_stock, 0)
        self.assertEqual(availability.available_stock, availability.current_stock)

    def test_consume_deducts_stock_and_hold_together(self):
        ledger.reserve(self.pharmacy.id, self.medicine.id, 3)
        ledger.consume(self.pharmacy.id, self.medicine.id, 3)

        availability = self.availability()
        self.assertEqual(availability.current_stock, 7)
        self.assertEqual(availability.reserved_stock, 0)
        self.assertEqual(availability.available_stock, 7)

    def test_consume_without_hold_is_rejected(self):
        with self.assertRaises(InvalidStockLevel):
            ledger.consume(self.pharmacy.id, self.medicine.id, 3)

        self.assertEqual(self.availability().current_stock, 10)

    def test_consume_updates_status(self):
        ledger.reserve(self.pharmacy.id, self.medicine.id, 10)
        entry = ledger.consume(self.pharmacy.id, self.medicine.id, 10)

        self.assertEqual(entry.status, Inventory.Status.OUT_OF_STOCK)
        self.entry.refresh_from_db()
        self.assertEqual(self.entry.status, Inventory.Status.OUT_OF_STOCK)

    def test_mutation_bumps_updated_at(self):
        later = timezone.now() + timedelta(minutes=5)
        ledger.reserve(self.pharmacy.id, self.medicine.id, 1, now=later)

        self.entry.refresh_from_db()
        self.assertEqual(self.entry.updated_at, later)

    def test_restock(self):
        Inventory.objects.filter(pk=self.entry.pk).update(current_stock=1)
        entry = ledger.restock(self.pharmacy.id, self.medicine.id, 20, batch_number='B77')

        self.assertEqual(entry.current_stock, 21)
        self.assertEqual(entry.batch_number, 'B77')
        self.assertEqual(entry.status, Inventory.Status.AVAILABLE)

    def test_restock_low_entry_becomes_available(self):
        ledger.adjust_stock(self.pharmacy.id, self.medicine.id, 1)
        self.entry.refresh_from_db()
        self.assertEqual(self.entry.status, Inventory.Status.LOW)

        entry = ledger.restock(self.pharmacy.id, self.medicine.id, 5)
        self.assertEqual(entry.status, Inventory.Status.AVAILABLE)

    def test_adjust_stock_below_reserved_is_rejected(self):
        ledger.reserve(self.pharmacy.id, self.medicine.id, 6)

        with self.assertRaises(InvalidStockLevel):
            ledger.adjust_stock(self.pharmacy.id, self.medicine.id, 5)

        self.assertEqual(self.availability().current_stock, 10)

    def test_open_entry_derives_status(self):
        medicine = Medicine.objects.create(name='Amoxicillin')
        entry = make_entry(self.pharmacy, medicine, current_stock=0)

        self.assertEqual(entry.status, Inventory.Status.OUT_OF_STOCK)
        self.assertIsNotNone(entry.last_restocked)

    def test_refresh_statuses_catches_passed_expiry(self):
        now = timezone.now()
        Inventory.objects.filter(pk=self.entry.pk).update(expiry_date=now + timedelta(hours=1))

        self.assertEqual(ledger.refresh_statuses(now), 0)
        self.assertEqual(ledger.refresh_statuses(now + timedelta(hours=2)), 1)

        self.entry.refresh_from_db()
        self.assertEqual(self.entry.status, Inventory.Status.EXPIRED)

    def test_refresh_task(self):
        Inventory.objects.filter(pk=self.entry.pk).update(
            expiry_date=timezone.now() - timedelta(days=1)
        )

        self.assertEqual(refresh_inventory_statuses(), {'updated': 1})

    def test_low_stock_alerts_grouped_per_pharmacy(self):
        second = Medicine.objects.create(name='Metformin')
        make_entry(self.pharmacy, second, current_stock=0)
        ledger.adjust_stock(self.pharmacy.id, self.medicine.id, 1)

        result = send_low_stock_alerts()

        self.assertEqual(result, {'pharmacies_alerted': 1})
        self.assertEqual(ledger.low_stock_entries().count(), 2)


class ConcurrentReserveTestCase(TransactionTestCase):
    """
    Concurrent reserve() calls against one row.
    Uses TransactionTestCase so threads see committed data.
    """

    def setUp(self):
        self.pharmacy = Pharmacy.objects.create(name='Race Pharmacy', location='Sundarpur')
        self.medicine = Medicine.objects.create(name='ORS Sachet')
        self.entry = make_entry(self.pharmacy, self.medicine, current_stock=10)

    def test_concurrent_reservations_never_oversell(self):
        """
        Given: 10 units in stock
        When: Five threads each try to reserve 4 units
        Then: At most two succeed and reserved_stock matches the successes
        """
        results = []
        lock = threading.Lock()

        def place_hold():
            try:
                ledger.reserve(self.pharmacy.id, self.medicine.id, 4)
                outcome = 'reserved'
            except InsufficientStock:
                outcome = 'insufficient'
            except Exception:
                # SQLite may refuse a concurrent writer outright
                outcome = 'error'
            finally:
                connection.close()
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=place_hold) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.entry.refresh_from_db()
        reserved = results.count('reserved')

        self.assertEqual(len(results), 5)
        self.assertLessEqual(reserved, 2)
        self.assertEqual(self.entry.reserved_stock, reserved * 4)
        self.assertLessEqual(self.entry.reserved_stock, self.entry.current_stock)


@override_settings(RATE_LIMIT_ENABLED=False)
class InventoryAPITestCase(APITestCase):

    def setUp(self):
        self.pharmacy = Pharmacy.objects.create(name='Devgarh Pharmacy', location='Devgarh')
        self.medicine = Medicine.objects.create(name='Amlodipine', strength='5mg')
        self.entry = make_entry(self.pharmacy, self.medicine)

    def test_availability_endpoint(self):
        ledger.reserve(self.pharmacy.id, self.medicine.id, 3)

        response = self.client.get(
            reverse('inventory:inventory-availability'),
            {'pharmacy_id': self.pharmacy.id, 'medicine_id': self.medicine.id}
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['available_stock'], 7)
        self.assertEqual(response.data['reserved_stock'], 3)

    def test_availability_endpoint_not_found(self):
        response = self.client.get(
            reverse('inventory:inventory-availability'),
            {'pharmacy_id': self.pharmacy.id, 'medicine_id': 999}
        )

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'Not Found')

    def test_create_inventory_derives_status(self):
        medicine = Medicine.objects.create(name='Insulin Glargine')

        response = self.client.post(reverse('inventory:inventory-list'), {
            'pharmacy_id': self.pharmacy.id,
            'medicine_id': medicine.id,
            'current_stock': 3,
            'min_stock_level': 5,
            'max_stock_level': 40,
            'price': '250.00',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Inventory.Status.LOW)
        self.assertEqual(response.data['available_stock'], 3)

    def test_create_duplicate_inventory_rejected(self):
        response = self.client.post(reverse('inventory:inventory-list'), {
            'pharmacy_id': self.pharmacy.id,
            'medicine_id': self.medicine.id,
            'current_stock': 3,
            'price': '1.00',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_max_below_min_rejected(self):
        response = self.client.patch(
            reverse('inventory:inventory-detail', args=[self.entry.id]),
            {'min_stock_level': 30, 'max_stock_level': 10},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_stock_take_cannot_drop_below_reserved(self):
        ledger.reserve(self.pharmacy.id, self.medicine.id, 8)

        response = self.client.patch(
            reverse('inventory:inventory-detail', args=[self.entry.id]),
            {'current_stock': 5},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.entry.refresh_from_db()
        self.assertEqual(self.entry.current_stock, 10)

    def test_stock_take_applies_count_against_current_row(self):
        """
        Given: A serializer holding a copy of the entry loaded at 10 units
        When: 3 units are picked up meanwhile and the count of 10 is submitted
        Then: The stored stock is set to 10, not left at the newer 7
        """
        loaded = Inventory.objects.get(pk=self.entry.pk)
        ledger.reserve(self.pharmacy.id, self.medicine.id, 3)
        ledger.consume(self.pharmacy.id, self.medicine.id, 3)

        serializer = InventorySerializer(loaded, data={'current_stock': 10}, partial=True)
        self.assertTrue(serializer.is_valid(), serializer.errors)
        serializer.save()

        self.entry.refresh_from_db()
        self.assertEqual(self.entry.current_stock, 10)
        self.assertEqual(self.entry.reserved_stock, 0)

    def test_restock_endpoint(self):
        response = self.client.post(
            reverse('inventory:inventory-restock', args=[self.entry.id]),
            {'quantity': 15},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['current_stock'], 25)

    def test_inventory_cannot_be_deleted(self):
        response = self.client.delete(reverse('inventory:inventory-detail', args=[self.entry.id]))

        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
        self.assertTrue(Inventory.objects.filter(pk=self.entry.pk).exists())

    def test_search_by_pharmacy_hides_fully_reserved(self):
        other = Medicine.objects.create(name='Atorvastatin')
        make_entry(self.pharmacy, other, current_stock=2)
        ledger.reserve(self.pharmacy.id, other.id, 2)

        response = self.client.get(
            reverse('inventory:medicine-search'),
            {'pharmacy_id': self.pharmacy.id}
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        names = [item['name'] for item in response.data['results']]
        self.assertEqual(names, ['Amlodipine'])

    def test_autocomplete(self):
        response = self.client.get(reverse('inventory:medicine-autocomplete'), {'q': 'aml'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]['name'], 'Amlodipine')

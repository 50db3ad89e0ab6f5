"""
Management command to seed the database with sample data.

Generates:
- A catalog of common essential medicines
- Rural pharmacies
- Patients
- Inventory rows linking pharmacies and medicines

Usage:
    python manage.py seed_data
    python manage.py seed_data --clear  # Clear existing data first
"""
import random
from datetime import timedelta
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from inventory.ledger import recompute_status
from inventory.models import Medicine, Pharmacy, Inventory


MEDICINES = [
    ('Paracetamol', 'Acetaminophen', Medicine.Category.PAIN_RELIEF, Medicine.DosageForm.TABLET, '500mg'),
    ('Ibuprofen', 'Ibuprofen', Medicine.Category.PAIN_RELIEF, Medicine.DosageForm.TABLET, '400mg'),
    ('Amoxicillin', 'Amoxicillin', Medicine.Category.ANTIBIOTIC, Medicine.DosageForm.CAPSULE, '250mg'),
    ('Azithromycin', 'Azithromycin', Medicine.Category.ANTIBIOTIC, Medicine.DosageForm.TABLET, '500mg'),
    ('Metformin', 'Metformin', Medicine.Category.DIABETES, Medicine.DosageForm.TABLET, '500mg'),
    ('Insulin Glargine', 'Insulin', Medicine.Category.DIABETES, Medicine.DosageForm.INJECTION, '100IU/ml'),
    ('Amlodipine', 'Amlodipine', Medicine.Category.CARDIOVASCULAR, Medicine.DosageForm.TABLET, '5mg'),
    ('Atorvastatin', 'Atorvastatin', Medicine.Category.CARDIOVASCULAR, Medicine.DosageForm.TABLET, '10mg'),
    ('Salbutamol Inhaler', 'Albuterol', Medicine.Category.RESPIRATORY, Medicine.DosageForm.DROPS, '100mcg'),
    ('Cough Syrup', 'Dextromethorphan', Medicine.Category.RESPIRATORY, Medicine.DosageForm.SYRUP, '100ml'),
    ('ORS Sachet', 'Oral Rehydration Salts', Medicine.Category.GENERAL, Medicine.DosageForm.TABLET, '21g'),
    ('Antiseptic Cream', 'Povidone Iodine', Medicine.Category.GENERAL, Medicine.DosageForm.CREAM, '5%'),
    ('Adrenaline', 'Epinephrine', Medicine.Category.EMERGENCY, Medicine.DosageForm.INJECTION, '1mg/ml'),
]

VILLAGES = [
    'Rampur', 'Sundarpur', 'Kalyanpur', 'Shivnagar', 'Bhagwanpur',
    'Devgarh', 'Hariharpur', 'Lakshmipur', 'Madhavpur', 'Nandgaon',
]

FIRST_NAMES = ['Asha', 'Ravi', 'Meena', 'Suresh', 'Kavita', 'Arjun', 'Lata', 'Mohan']
LAST_NAMES = ['Devi', 'Kumar', 'Singh', 'Yadav', 'Patel', 'Sharma']


class Command(BaseCommand):
    help = 'Seed the database with sample medicines, pharmacies, patients and inventory'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before seeding',
        )
        parser.add_argument(
            '--pharmacies',
            type=int,
            default=8,
            help='Number of pharmacies to create (default: 8)',
        )
        parser.add_argument(
            '--patients',
            type=int,
            default=40,
            help='Number of patients to create (default: 40)',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            self._clear_data()

        self.stdout.write('Starting database seeding...')

        with transaction.atomic():
            medicines = self._create_medicines()
            pharmacies = self._create_pharmacies(options['pharmacies'])
            self._create_patients(options['patients'])
            self._create_inventory(medicines, pharmacies)

        self.stdout.write(self.style.SUCCESS('Database seeding completed successfully!'))

    def _clear_data(self):
        """Clear all existing data."""
        from reservations.models import Patient, Reservation

        Reservation.objects.all().delete()
        Patient.objects.all().delete()
        Inventory.objects.all().delete()
        Medicine.objects.all().delete()
        Pharmacy.objects.all().delete()

        self.stdout.write(self.style.WARNING('All existing data cleared.'))

    def _create_medicines(self):
        medicines = []
        for name, generic, category, form, strength in MEDICINES:
            medicine, created = Medicine.objects.get_or_create(
                name=name,
                strength=strength,
                defaults={
                    'generic_name': generic,
                    'category': category,
                    'dosage_form': form,
                    'requires_prescription': category in (
                        Medicine.Category.ANTIBIOTIC,
                        Medicine.Category.EMERGENCY,
                    ),
                }
            )
            medicines.append(medicine)
            if created:
                self.stdout.write(f'  Created medicine: {medicine}')

        self.stdout.write(self.style.SUCCESS(f'Created {len(medicines)} medicines'))
        return medicines

    def _create_pharmacies(self, count):
        pharmacies = []
        for i in range(count):
            village = VILLAGES[i % len(VILLAGES)]
            pharmacies.append(Pharmacy(
                name=f"{village} Community Pharmacy",
                location=f"Main Bazaar, {village}",
                phone=f"+91 9{random.randint(100000000, 999999999)}",
                license_number=f"PH-{random.randint(10000, 99999)}",
            ))

        Pharmacy.objects.bulk_create(pharmacies)

        pharmacies = list(Pharmacy.objects.all())
        self.stdout.write(self.style.SUCCESS(f'Created {len(pharmacies)} pharmacies'))
        return pharmacies

    def _create_patients(self, count):
        from reservations.models import Patient

        patients = [
            Patient(
                name=f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}",
                phone=f"+91 8{random.randint(100000000, 999999999)}",
                village=random.choice(VILLAGES),
            )
            for _ in range(count)
        ]
        Patient.objects.bulk_create(patients)
        self.stdout.write(self.style.SUCCESS(f'Created {count} patients'))

    def _create_inventory(self, medicines, pharmacies):
        """Create inventory rows; each pharmacy carries most of the catalog."""
        now = timezone.now()
        records = []

        for pharmacy in pharmacies:
            stocked = random.sample(medicines, k=int(len(medicines) * random.uniform(0.6, 1.0)))
            for medicine in stocked:
                min_level = random.randint(5, 20)
                entry = Inventory(
                    pharmacy=pharmacy,
                    medicine=medicine,
                    current_stock=random.randint(0, 200),
                    min_stock_level=min_level,
                    max_stock_level=min_level * 10,
                    price=Decimal(str(round(random.uniform(2, 150), 2))),
                    batch_number=f"B{random.randint(1000, 9999)}",
                    expiry_date=now + timedelta(days=random.randint(-10, 720)),
                    last_restocked=now - timedelta(days=random.randint(0, 60)),
                )
                entry.status = recompute_status(entry, now)
                records.append(entry)

        Inventory.objects.bulk_create(records, ignore_conflicts=True)

        self.stdout.write(self.style.SUCCESS(f'Created {Inventory.objects.count()} inventory records'))

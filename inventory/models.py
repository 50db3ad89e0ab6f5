"""
Inventory Models - Medicine catalog, pharmacies and per-pharmacy stock.

Models:
    - Medicine: Catalog entry, soft-disabled through is_active
    - Pharmacy: Dispensing location that holds stock
    - Inventory: Stock ledger row per (pharmacy, medicine), unique per pair
"""
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q


class Medicine(models.Model):
    """
    Medicine catalog entry.
    """

    class Category(models.TextChoices):
        PAIN_RELIEF = 'Pain Relief', 'Pain Relief'
        ANTIBIOTIC = 'Antibiotic', 'Antibiotic'
        DIABETES = 'Diabetes', 'Diabetes'
        CARDIOVASCULAR = 'Cardiovascular', 'Cardiovascular'
        RESPIRATORY = 'Respiratory', 'Respiratory'
        GENERAL = 'General', 'General'
        EMERGENCY = 'Emergency', 'Emergency'

    class DosageForm(models.TextChoices):
        TABLET = 'tablet', 'Tablet'
        CAPSULE = 'capsule', 'Capsule'
        SYRUP = 'syrup', 'Syrup'
        INJECTION = 'injection', 'Injection'
        CREAM = 'cream', 'Cream'
        DROPS = 'drops', 'Drops'

    name = models.CharField(
        max_length=200,
        db_index=True,
        help_text="Brand or common name"
    )
    generic_name = models.CharField(max_length=200, blank=True, default='')
    category = models.CharField(
        max_length=50,
        choices=Category.choices,
        default=Category.GENERAL,
        db_index=True
    )
    dosage_form = models.CharField(
        max_length=20,
        choices=DosageForm.choices,
        default=DosageForm.TABLET
    )
    strength = models.CharField(max_length=50, blank=True, default='', help_text="e.g. 500mg")
    manufacturer = models.CharField(max_length=200, blank=True, default='')
    requires_prescription = models.BooleanField(default=False)
    description = models.TextField(blank=True, default='')
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether the medicine can be reserved"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Medicine'
        verbose_name_plural = 'Medicines'
        ordering = ['name']
        indexes = [
            models.Index(fields=['name', 'is_active']),
            models.Index(fields=['category', 'is_active']),
        ]

    def __str__(self):
        if self.strength:
            return f"{self.name} {self.strength}"
        return self.name


class Pharmacy(models.Model):
    """
    Pharmacy holding stock that patients can reserve against.
    """
    name = models.CharField(max_length=200, db_index=True)
    location = models.CharField(
        max_length=300,
        help_text="Village, district or street address"
    )
    phone = models.CharField(max_length=20, blank=True, default='')
    license_number = models.CharField(max_length=50, blank=True, default='')
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether pharmacy is accepting reservations"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Pharmacy'
        verbose_name_plural = 'Pharmacies'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} - {self.location}"


class Inventory(models.Model):
    """
    Stock ledger row for one medicine at one pharmacy.

    reserved_stock counts units held by open reservations; it never exceeds
    current_stock. Mutations go through inventory.ledger, which keeps the
    status column in sync.
    """

    class Status(models.TextChoices):
        AVAILABLE = 'AVAILABLE', 'Available'
        LOW = 'LOW', 'Low'
        OUT_OF_STOCK = 'OUT_OF_STOCK', 'Out of stock'
        EXPIRED = 'EXPIRED', 'Expired'

    pharmacy = models.ForeignKey(
        Pharmacy,
        on_delete=models.PROTECT,
        related_name='inventories'
    )
    medicine = models.ForeignKey(
        Medicine,
        on_delete=models.PROTECT,
        related_name='inventories'
    )
    current_stock = models.PositiveIntegerField(
        default=0,
        help_text="Units physically on hand"
    )
    reserved_stock = models.PositiveIntegerField(
        default=0,
        help_text="Units held by pending, confirmed or ready reservations"
    )
    min_stock_level = models.PositiveIntegerField(
        default=10,
        help_text="Below this the entry is LOW"
    )
    max_stock_level = models.PositiveIntegerField(default=100)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Unit price"
    )
    batch_number = models.CharField(max_length=50, blank=True, default='')
    supplier = models.CharField(max_length=200, blank=True, default='')
    expiry_date = models.DateTimeField(null=True, blank=True)
    last_restocked = models.DateTimeField(null=True, blank=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.AVAILABLE,
        db_index=True
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Inventory'
        verbose_name_plural = 'Inventories'
        ordering = ['pharmacy', 'medicine']
        constraints = [
            models.UniqueConstraint(
                fields=['pharmacy', 'medicine'],
                name='unique_pharmacy_medicine_inventory'
            ),
            models.CheckConstraint(
                condition=Q(reserved_stock__lte=F('current_stock')),
                name='inventory_reserved_within_current'
            ),
        ]
        indexes = [
            models.Index(fields=['pharmacy', 'status']),
            models.Index(fields=['medicine', 'status']),
        ]

    def __str__(self):
        return (
            f"{self.medicine.name} @ {self.pharmacy.name}: "
            f"{self.available_stock}/{self.current_stock} available"
        )

    @property
    def available_stock(self) -> int:
        return self.current_stock - self.reserved_stock

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock < self.min_stock_level

"""
Reservation Models - Patients and their medicine reservations.

Reservation Status Flow:
    PENDING -> CONFIRMED -> READY -> COMPLETED
    PENDING | CONFIRMED | READY -> CANCELLED
    PENDING -> EXPIRED (hold deadline passed)

While PENDING, CONFIRMED or READY, a reservation's quantity is held in its
inventory row's reserved_stock.
"""
from django.core.validators import MinValueValidator
from django.db import models

from inventory.models import Medicine, Pharmacy


class Patient(models.Model):
    """
    Patient who reserves medicines. Contact fields are used for pickup
    notifications.
    """
    name = models.CharField(max_length=200)
    phone = models.CharField(max_length=20, blank=True, default='')
    email = models.EmailField(blank=True, default='')
    village = models.CharField(max_length=200, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class Reservation(models.Model):
    """
    A hold on stock at one pharmacy for one medicine.

    Stores the price at reservation time so later price edits do not
    change what the patient was quoted.
    """

    class Status(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        CONFIRMED = 'CONFIRMED', 'Confirmed'
        READY = 'READY', 'Ready for pickup'
        COMPLETED = 'COMPLETED', 'Completed'
        CANCELLED = 'CANCELLED', 'Cancelled'
        EXPIRED = 'EXPIRED', 'Expired'

    TERMINAL_STATUSES = (Status.COMPLETED, Status.CANCELLED, Status.EXPIRED)

    code = models.CharField(
        max_length=20,
        unique=True,
        help_text="Human readable reservation code shown to the patient"
    )
    patient = models.ForeignKey(
        Patient,
        on_delete=models.PROTECT,
        related_name='reservations'
    )
    pharmacy = models.ForeignKey(
        Pharmacy,
        on_delete=models.PROTECT,
        related_name='reservations'
    )
    medicine = models.ForeignKey(
        Medicine,
        on_delete=models.PROTECT,
        related_name='reservations'
    )
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    total_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="quantity x unit price at reservation time"
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True
    )
    expires_at = models.DateTimeField(
        db_index=True,
        help_text="Pending reservations past this are expired by the sweeper"
    )
    notes = models.TextField(blank=True, default='')
    pickup_instructions = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['patient', 'status']),
            models.Index(fields=['pharmacy', 'status']),
            models.Index(fields=['status', 'expires_at']),
        ]

    def __str__(self):
        return f"Reservation {self.code} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

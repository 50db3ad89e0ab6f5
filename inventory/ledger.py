"""
Inventory Ledger - authoritative stock bookkeeping per (pharmacy, medicine).

Every mutation is a single conditional UPDATE built from F() expressions, so
the reserved_stock <= current_stock invariant holds under concurrent
callers without locking rows in application code. A conditional update that
matches no row is re-read: if the real-time numbers explain the failure a
typed error is raised, otherwise the write lost a race and is retried up to
LEDGER_MAX_RETRIES times.

After each mutation the derived status column is recomputed with
recompute_status().
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import models
from django.db.models import F
from django.db.models.functions import Greatest
from django.utils import timezone

from core.exceptions import (
    ConflictRetryExhausted,
    InsufficientStock,
    InvalidStockLevel,
    NotFound,
    ReservationValidationError,
)
from .models import Inventory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Availability:
    pharmacy_id: int
    medicine_id: int
    current_stock: int
    reserved_stock: int
    available_stock: int
    price: Decimal
    status: str


def recompute_status(entry, now=None) -> str:
    """
    Derive an entry's status.

    Precedence: EXPIRED > OUT_OF_STOCK > LOW > AVAILABLE.
    """
    now = now or timezone.now()
    if entry.expiry_date is not None and entry.expiry_date < now:
        return Inventory.Status.EXPIRED
    if entry.current_stock == 0:
        return Inventory.Status.OUT_OF_STOCK
    if entry.current_stock < entry.min_stock_level:
        return Inventory.Status.LOW
    return Inventory.Status.AVAILABLE


def _max_retries() -> int:
    return getattr(settings, 'LEDGER_MAX_RETRIES', 3)


def _check_quantity(quantity):
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise ReservationValidationError("quantity must be a positive integer")


def _entry_qs(pharmacy_id: int, medicine_id: int):
    return Inventory.objects.filter(pharmacy_id=pharmacy_id, medicine_id=medicine_id)


def get_entry(pharmacy_id: int, medicine_id: int) -> Inventory:
    """
    Raises:
        NotFound: If the pharmacy does not stock the medicine.
    """
    try:
        return Inventory.objects.select_related('pharmacy', 'medicine').get(
            pharmacy_id=pharmacy_id,
            medicine_id=medicine_id
        )
    except Inventory.DoesNotExist:
        raise NotFound(
            f"Medicine {medicine_id} is not stocked at pharmacy {pharmacy_id}"
        )


def get_availability(pharmacy_id: int, medicine_id: int) -> Availability:
    entry = get_entry(pharmacy_id, medicine_id)
    return Availability(
        pharmacy_id=entry.pharmacy_id,
        medicine_id=entry.medicine_id,
        current_stock=entry.current_stock,
        reserved_stock=entry.reserved_stock,
        available_stock=entry.available_stock,
        price=entry.price,
        status=entry.status,
    )


def sync_status(pharmacy_id: int, medicine_id: int, now=None) -> Inventory:
    """
    Re-read the entry and persist its derived status if it changed.

    The write is keyed on the stock figures the status was computed from;
    if a concurrent mutation changed them, that mutation syncs afterwards.
    """
    entry = get_entry(pharmacy_id, medicine_id)
    new_status = recompute_status(entry, now)
    if new_status != entry.status:
        Inventory.objects.filter(
            pk=entry.pk,
            current_stock=entry.current_stock,
            min_stock_level=entry.min_stock_level,
            expiry_date=entry.expiry_date,
        ).update(status=new_status)
        logger.info(f"Inventory #{entry.pk} status {entry.status} -> {new_status}")
        entry.status = new_status
    return entry


def open_entry(pharmacy, medicine, now=None, **fields) -> Inventory:
    """Create the ledger row for a medicine a pharmacy starts stocking."""
    now = now or timezone.now()
    entry = Inventory(pharmacy=pharmacy, medicine=medicine, last_restocked=now, **fields)
    if entry.reserved_stock > entry.current_stock:
        raise InvalidStockLevel("reserved_stock cannot exceed current_stock")
    entry.status = recompute_status(entry, now)
    entry.save()
    logger.info(
        f"Pharmacy #{pharmacy.pk} now stocks medicine #{medicine.pk} "
        f"({entry.current_stock} units)"
    )
    return entry


def reserve(pharmacy_id: int, medicine_id: int, quantity: int, now=None) -> Inventory:
    """
    Place a hold of `quantity` units.

    Raises:
        NotFound: No entry for the pair.
        InsufficientStock: Fewer than `quantity` units available right now.
        ConflictRetryExhausted: Lost the conditional update too many times.
    """
    _check_quantity(quantity)
    now = now or timezone.now()

    for attempt in range(1, _max_retries() + 1):
        updated = _entry_qs(pharmacy_id, medicine_id).filter(
            reserved_stock__lte=F('current_stock') - quantity
        ).update(
            reserved_stock=F('reserved_stock') + quantity,
            updated_at=now
        )
        if updated:
            entry = sync_status(pharmacy_id, medicine_id, now)
            logger.debug(
                f"Reserved {quantity} of medicine #{medicine_id} at pharmacy "
                f"#{pharmacy_id}, available now {entry.available_stock}"
            )
            return entry

        entry = get_entry(pharmacy_id, medicine_id)
        if entry.available_stock < quantity:
            raise InsufficientStock(
                pharmacy_id, medicine_id,
                requested=quantity,
                available=entry.available_stock
            )
        logger.info(
            f"Reserve on inventory #{entry.pk} lost a race "
            f"(attempt {attempt}), retrying"
        )

    raise ConflictRetryExhausted(
        f"Could not reserve {quantity} of medicine {medicine_id} at pharmacy "
        f"{pharmacy_id} after {_max_retries()} attempts"
    )


def release(pharmacy_id: int, medicine_id: int, quantity: int, now=None) -> Inventory:
    """
    Drop a hold of `quantity` units. reserved_stock is floored at zero.
    """
    _check_quantity(quantity)
    now = now or timezone.now()

    updated = _entry_qs(pharmacy_id, medicine_id).update(
        reserved_stock=Greatest(
            F('reserved_stock') - quantity,
            0,
            output_field=models.IntegerField()
        ),
        updated_at=now
    )
    if not updated:
        raise NotFound(
            f"Medicine {medicine_id} is not stocked at pharmacy {pharmacy_id}"
        )

    entry = sync_status(pharmacy_id, medicine_id, now)
    logger.debug(
        f"Released {quantity} of medicine #{medicine_id} at pharmacy "
        f"#{pharmacy_id}, available now {entry.available_stock}"
    )
    return entry


def consume(pharmacy_id: int, medicine_id: int, quantity: int, now=None) -> Inventory:
    """
    Dispense `quantity` held units: current_stock and reserved_stock drop
    together in one statement.

    Raises:
        NotFound: No entry for the pair.
        InvalidStockLevel: The entry does not hold `quantity` reserved units.
        ConflictRetryExhausted: Lost the conditional update too many times.
    """
    _check_quantity(quantity)
    now = now or timezone.now()

    for attempt in range(1, _max_retries() + 1):
        updated = _entry_qs(pharmacy_id, medicine_id).filter(
            current_stock__gte=quantity,
            reserved_stock__gte=quantity
        ).update(
            current_stock=F('current_stock') - quantity,
            reserved_stock=F('reserved_stock') - quantity,
            updated_at=now
        )
        if updated:
            entry = sync_status(pharmacy_id, medicine_id, now)
            logger.info(
                f"Dispensed {quantity} of medicine #{medicine_id} at pharmacy "
                f"#{pharmacy_id}, {entry.current_stock} left on hand"
            )
            return entry

        entry = get_entry(pharmacy_id, medicine_id)
        if entry.reserved_stock < quantity or entry.current_stock < quantity:
            raise InvalidStockLevel(
                f"Inventory #{entry.pk} holds {entry.reserved_stock} reserved of "
                f"{entry.current_stock} on hand, cannot dispense {quantity}"
            )
        logger.info(
            f"Consume on inventory #{entry.pk} lost a race "
            f"(attempt {attempt}), retrying"
        )

    raise ConflictRetryExhausted(
        f"Could not dispense {quantity} of medicine {medicine_id} at pharmacy "
        f"{pharmacy_id} after {_max_retries()} attempts"
    )


def restock(pharmacy_id: int, medicine_id: int, quantity: int,
            batch_number: Optional[str] = None, expiry_date=None, now=None) -> Inventory:
    """Add delivered units to current_stock."""
    _check_quantity(quantity)
    now = now or timezone.now()

    changes = {
        'current_stock': F('current_stock') + quantity,
        'last_restocked': now,
        'updated_at': now,
    }
    if batch_number is not None:
        changes['batch_number'] = batch_number
    if expiry_date is not None:
        changes['expiry_date'] = expiry_date

    if not _entry_qs(pharmacy_id, medicine_id).update(**changes):
        raise NotFound(
            f"Medicine {medicine_id} is not stocked at pharmacy {pharmacy_id}"
        )

    entry = sync_status(pharmacy_id, medicine_id, now)
    logger.info(
        f"Restocked {quantity} of medicine #{medicine_id} at pharmacy "
        f"#{pharmacy_id}, {entry.current_stock} on hand"
    )
    return entry


def adjust_stock(pharmacy_id: int, medicine_id: int, current_stock: int, now=None) -> Inventory:
    """
    Set current_stock to a counted value (stock-take).

    Raises:
        InvalidStockLevel: The count is negative or below reserved_stock.
    """
    if not isinstance(current_stock, int) or current_stock < 0:
        raise InvalidStockLevel("current_stock must be a non-negative integer")
    now = now or timezone.now()

    updated = _entry_qs(pharmacy_id, medicine_id).filter(
        reserved_stock__lte=current_stock
    ).update(current_stock=current_stock, updated_at=now)
    if not updated:
        entry = get_entry(pharmacy_id, medicine_id)
        raise InvalidStockLevel(
            f"Inventory #{entry.pk} has {entry.reserved_stock} units reserved, "
            f"stock cannot be set to {current_stock}"
        )
    return sync_status(pharmacy_id, medicine_id, now)


def refresh_statuses(now=None) -> int:
    """
    Re-derive the status of every entry. Catches expiry dates passing with
    no stock movement to trigger a sync. Returns the number of rows changed.
    """
    now = now or timezone.now()
    changed = 0
    entries = Inventory.objects.only(
        'id', 'current_stock', 'min_stock_level', 'expiry_date', 'status'
    ).iterator()
    for entry in entries:
        new_status = recompute_status(entry, now)
        if new_status == entry.status:
            continue
        changed += Inventory.objects.filter(
            pk=entry.pk,
            status=entry.status,
            current_stock=entry.current_stock
        ).update(status=new_status)

    if changed:
        logger.info(f"Updated status for {changed} inventory items")
    return changed


def low_stock_entries():
    """Entries that are LOW or OUT_OF_STOCK, with pharmacy and medicine loaded."""
    return Inventory.objects.select_related('pharmacy', 'medicine').filter(
        status__in=[Inventory.Status.LOW, Inventory.Status.OUT_OF_STOCK],
        pharmacy__is_active=True,
        medicine__is_active=True
    ).order_by('pharmacy_id', 'medicine__name')

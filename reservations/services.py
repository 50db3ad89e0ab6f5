"""
Reservation Service Layer - reservation lifecycle on top of the inventory ledger.

Creation:
1. Look up the inventory entry (NotFound if the pharmacy does not stock it)
2. Price the reservation at the entry's current unit price
3. Place the hold with ledger.reserve() (InsufficientStock creates nothing)
4. Persist a PENDING reservation with a unique code and a 24h hold
5. Queue a 'created' notification once the transaction commits

Transitions are conditional UPDATEs keyed on the status the decision was made
from, so two concurrent transitions cannot both succeed. The ledger effect
(consume on COMPLETED, release on CANCELLED / EXPIRED) commits or rolls back
together with the status change.
"""
import logging
import secrets
import string
from datetime import timedelta
from decimal import Decimal
from typing import Callable, Dict, Optional

from django.conf import settings
from django.db import models, transaction
from django.utils import timezone

from core.actors import Actor, ActorRole, SYSTEM_ACTOR
from core.exceptions import (
    ConflictRetryExhausted,
    Forbidden,
    InvalidTransition,
    NotFound,
    ReservationValidationError,
)
from inventory import ledger
from inventory.models import Inventory
from .models import Patient, Reservation
from .notifications import notify

logger = logging.getLogger(__name__)

Status = Reservation.Status

ALLOWED_TRANSITIONS = {
    Status.PENDING: {Status.CONFIRMED, Status.CANCELLED, Status.EXPIRED},
    Status.CONFIRMED: {Status.READY, Status.CANCELLED},
    Status.READY: {Status.COMPLETED, Status.CANCELLED},
    Status.COMPLETED: set(),
    Status.CANCELLED: set(),
    Status.EXPIRED: set(),
}

# Target statuses each role may request. Ownership is checked separately.
ROLE_TARGETS = {
    ActorRole.PATIENT: {Status.CANCELLED},
    ActorRole.PHARMACY: {Status.CONFIRMED, Status.READY, Status.COMPLETED, Status.CANCELLED},
    ActorRole.SYSTEM: {Status.EXPIRED},
    ActorRole.ADMIN: set(),
}

CODE_PREFIX = 'RES'
CODE_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def generate_reservation_code(now=None) -> str:
    """RES + last 8 digits of the millisecond timestamp + 4 random characters."""
    now = now or timezone.now()
    millis = str(int(now.timestamp() * 1000))[-8:]
    suffix = ''.join(secrets.choice(CODE_SUFFIX_ALPHABET) for _ in range(4))
    return f"{CODE_PREFIX}{millis}{suffix}"


def generate_unique_code(exists: Callable[[str], bool], now=None,
                         max_attempts: Optional[int] = None) -> str:
    """
    Generate codes until `exists` reports one as unused.

    Raises:
        ConflictRetryExhausted: Every attempt collided.
    """
    if max_attempts is None:
        max_attempts = getattr(settings, 'RESERVATION_CODE_MAX_ATTEMPTS', 5)
    for _ in range(max_attempts):
        code = generate_reservation_code(now)
        if not exists(code):
            return code
        logger.warning(f"Reservation code collision on {code}, regenerating")
    raise ConflictRetryExhausted(
        f"Could not generate a unique reservation code in {max_attempts} attempts"
    )


def _code_exists(code: str) -> bool:
    return Reservation.objects.filter(code=code).exists()


def hold_duration() -> timedelta:
    return timedelta(hours=getattr(settings, 'RESERVATION_HOLD_HOURS', 24))


def validate_reservation_request(quantity, notes='') -> None:
    """
    Raises:
        ReservationValidationError: If validation fails
    """
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise ReservationValidationError("quantity must be a positive integer")
    if notes is not None and not isinstance(notes, str):
        raise ReservationValidationError("notes must be text")


def create_reservation(patient_id: int, pharmacy_id: int, medicine_id: int,
                       quantity: int, notes: str = '', actor: Optional[Actor] = None,
                       now=None) -> Reservation:
    """
    Reserve `quantity` units of a medicine at a pharmacy for a patient.

    `actor` is the caller placing the reservation; it defaults to the patient.

    Raises:
        ReservationValidationError: Malformed input.
        NotFound: Unknown patient, the pharmacy does not stock the medicine,
            or the stock is withdrawn or past its expiry date.
        InsufficientStock: Not enough available stock; nothing is persisted.
        ConflictRetryExhausted: Ledger or code generation kept colliding.
    """
    validate_reservation_request(quantity, notes)
    now = now or timezone.now()

    if not Patient.objects.filter(pk=patient_id).exists():
        raise NotFound(f"Patient {patient_id} not found")

    with transaction.atomic():
        entry = ledger.get_entry(pharmacy_id, medicine_id)
        if (not entry.pharmacy.is_active or not entry.medicine.is_active
                or ledger.recompute_status(entry, now) == Inventory.Status.EXPIRED):
            raise NotFound(
                f"Medicine {medicine_id} is not available at pharmacy {pharmacy_id}"
            )

        total_price = entry.price * quantity
        ledger.reserve(pharmacy_id, medicine_id, quantity, now=now)

        reservation = Reservation.objects.create(
            code=generate_unique_code(_code_exists, now),
            patient_id=patient_id,
            pharmacy_id=pharmacy_id,
            medicine_id=medicine_id,
            quantity=quantity,
            total_price=total_price,
            status=Status.PENDING,
            expires_at=now + hold_duration(),
            notes=notes or '',
        )

        logger.info(
            f"Reservation {reservation.code} created: {quantity}x "
            f"{entry.medicine.name} at {entry.pharmacy.name}, total {total_price}"
        )

        notify('created', reservation, actor or Actor(actor_id=patient_id, role=ActorRole.PATIENT))

    return reservation


def get_reservation(reservation_id: int) -> Reservation:
    try:
        return Reservation.objects.select_related(
            'patient', 'pharmacy', 'medicine'
        ).get(pk=reservation_id)
    except Reservation.DoesNotExist:
        raise NotFound(f"Reservation {reservation_id} not found")


def check_access(reservation: Reservation, actor: Actor) -> None:
    """Patients and pharmacies only see their own reservations."""
    if actor.role == ActorRole.PATIENT and reservation.patient_id != actor.actor_id:
        raise Forbidden("Not authorized to access this reservation")
    if actor.role == ActorRole.PHARMACY and reservation.pharmacy_id != actor.actor_id:
        raise Forbidden("Not authorized to access this reservation")


def get_reservation_by_code(code: str, actor: Actor) -> Reservation:
    try:
        reservation = Reservation.objects.select_related(
            'patient', 'pharmacy', 'medicine'
        ).get(code=code)
    except Reservation.DoesNotExist:
        raise NotFound(f"Reservation {code} not found")
    check_access(reservation, actor)
    return reservation


def authorize_transition(reservation: Reservation, target_status: str, actor: Actor) -> None:
    """
    Raises:
        Forbidden: The actor's role may not request `target_status`, or the
            reservation belongs to another patient or pharmacy.
    """
    if target_status not in ROLE_TARGETS.get(actor.role, set()):
        raise Forbidden(f"{actor.role} may not move a reservation to {target_status}")
    check_access(reservation, actor)


def check_transition(reservation: Reservation, target_status: str, now) -> None:
    """
    Raises:
        InvalidTransition: Current status is terminal, the target is not a
            successor, or an expiry is requested before the hold ran out.
    """
    current = reservation.status
    if current in Reservation.TERMINAL_STATUSES:
        raise InvalidTransition(current, target_status, "reservation is closed")
    if target_status not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(current, target_status)
    if target_status == Status.EXPIRED and reservation.expires_at >= now:
        raise InvalidTransition(current, target_status, "hold has not run out yet")


def _apply_ledger_effect(reservation: Reservation, target_status: str, now) -> None:
    if target_status == Status.COMPLETED:
        ledger.consume(reservation.pharmacy_id, reservation.medicine_id,
                       reservation.quantity, now=now)
    elif target_status in (Status.CANCELLED, Status.EXPIRED):
        ledger.release(reservation.pharmacy_id, reservation.medicine_id,
                       reservation.quantity, now=now)


def transition_reservation(reservation_id: int, target_status: str, actor: Actor,
                           notes: Optional[str] = None,
                           pickup_instructions: Optional[str] = None,
                           now=None) -> Reservation:
    """
    Move a reservation to `target_status` on behalf of `actor`.

    Requesting the status the reservation already has is a no-op success.
    `pickup_instructions` may only accompany a move to READY.

    Raises:
        ReservationValidationError: Unknown target status, or pickup
            instructions given for a status other than READY.
        NotFound: No such reservation.
        Forbidden: Actor lacks authority.
        InvalidTransition: Target unreachable from the current status.
        ConflictRetryExhausted: Concurrent writers kept winning.
    """
    if target_status not in Status.values:
        raise ReservationValidationError(f"Unknown reservation status: {target_status}")
    target_status = Status(target_status)
    if pickup_instructions is not None and target_status != Status.READY:
        raise ReservationValidationError("pickup_instructions can only be set when marking READY")
    now = now or timezone.now()
    max_retries = getattr(settings, 'LEDGER_MAX_RETRIES', 3)

    for attempt in range(1, max_retries + 1):
        with transaction.atomic():
            reservation = get_reservation(reservation_id)
            authorize_transition(reservation, target_status, actor)

            if reservation.status == target_status:
                logger.debug(f"Reservation {reservation.code} already {target_status}")
                return reservation

            check_transition(reservation, target_status, now)

            changes = {'status': target_status, 'updated_at': now}
            if notes is not None:
                changes['notes'] = notes
            if pickup_instructions is not None:
                changes['pickup_instructions'] = pickup_instructions

            updated = Reservation.objects.filter(
                pk=reservation.pk,
                status=reservation.status
            ).update(**changes)

            if updated:
                previous = reservation.status
                _apply_ledger_effect(reservation, target_status, now)
                reservation.refresh_from_db()
                logger.info(
                    f"Reservation {reservation.code}: {previous} -> {target_status} "
                    f"by {actor.role}"
                )
                notify(target_status.lower(), reservation, actor)
                return reservation

        logger.info(
            f"Reservation #{reservation_id} changed concurrently "
            f"(attempt {attempt}), re-evaluating"
        )

    raise ConflictRetryExhausted(
        f"Could not move reservation {reservation_id} to {target_status} "
        f"after {max_retries} attempts"
    )


def cancel_reservation(reservation_id: int, actor: Actor,
                       notes: Optional[str] = None, now=None) -> Reservation:
    return transition_reservation(reservation_id, Status.CANCELLED, actor, notes=notes, now=now)


def expire_reservation(reservation_id: int, now=None) -> Reservation:
    """System-only: expire a PENDING reservation whose hold ran out."""
    return transition_reservation(reservation_id, Status.EXPIRED, SYSTEM_ACTOR, now=now)


def reservations_for(actor: Actor):
    """Reservations visible to an actor."""
    queryset = Reservation.objects.select_related('patient', 'pharmacy', 'medicine')
    if actor.role == ActorRole.PATIENT:
        return queryset.filter(patient_id=actor.actor_id)
    if actor.role == ActorRole.PHARMACY:
        return queryset.filter(pharmacy_id=actor.actor_id)
    return queryset


def reservation_stats(queryset) -> Dict:
    """Counts per status plus revenue from completed reservations."""
    stats = queryset.aggregate(
        total_reservations=models.Count('id'),
        completed_revenue=models.Sum(
            'total_price', filter=models.Q(status=Status.COMPLETED)
        ),
        **{
            f"{value.lower()}_reservations": models.Count(
                'id', filter=models.Q(status=value)
            )
            for value in Status.values
        }
    )
    stats['completed_revenue'] = str(stats['completed_revenue'] or Decimal('0.00'))
    return stats


def get_reservation_summary(reservation_id: int) -> Dict:
    reservation = get_reservation(reservation_id)
    return {
        'id': reservation.id,
        'code': reservation.code,
        'status': reservation.status,
        'patient': {
            'id': reservation.patient.id,
            'name': reservation.patient.name,
        },
        'pharmacy': {
            'id': reservation.pharmacy.id,
            'name': reservation.pharmacy.name,
            'location': reservation.pharmacy.location,
        },
        'medicine': {
            'id': reservation.medicine.id,
            'name': reservation.medicine.name,
            'category': reservation.medicine.category,
        },
        'quantity': reservation.quantity,
        'total_price': str(reservation.total_price),
        'expires_at': reservation.expires_at.isoformat(),
        'notes': reservation.notes or None,
        'created_at': reservation.created_at.isoformat(),
        'updated_at': reservation.updated_at.isoformat(),
    }

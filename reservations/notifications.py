"""
Notifier gateway for reservation lifecycle events.

notify() queues a Celery task once the surrounding transaction commits.
Queuing problems are logged and never propagate into the reservation
operation that triggered them.
"""
import logging

from django.db import transaction

logger = logging.getLogger(__name__)

EVENT_TYPES = ('created', 'confirmed', 'ready', 'completed', 'cancelled', 'expired')


def notify(event_type: str, reservation, actor=None) -> None:
    if event_type not in EVENT_TYPES:
        logger.error(f"Unknown reservation event type: {event_type}")
        return

    actor_data = actor.as_dict() if actor is not None else None
    reservation_id = reservation.pk
    code = reservation.code

    def enqueue():
        try:
            from .tasks import send_reservation_event
            send_reservation_event.delay(event_type, reservation_id, actor_data)
            logger.info(f"Queued '{event_type}' notification for reservation {code}")
        except Exception as e:
            logger.error(f"Failed to queue '{event_type}' notification for {code}: {e}")

    transaction.on_commit(enqueue)


def render_message(event_type: str, reservation) -> str:
    """SMS text for a lifecycle event."""
    medicine = reservation.medicine.name
    pharmacy = reservation.pharmacy.name
    code = reservation.code

    if event_type == 'created':
        return (
            f"Medicine Reserved! {medicine} ({reservation.quantity} units) at {pharmacy}. "
            f"Code: {code}. Valid until {reservation.expires_at:%Y-%m-%d %H:%M}."
        )
    if event_type == 'confirmed':
        return f"Reservation {code} confirmed by {pharmacy}. We will tell you when it is ready."
    if event_type == 'ready':
        message = f"Your {medicine} is ready for pickup at {pharmacy}. Show code {code}."
        if reservation.pickup_instructions:
            message = f"{message} {reservation.pickup_instructions}"
        return message
    if event_type == 'completed':
        return f"Reservation {code} collected. Total paid: {reservation.total_price}. Get well soon!"
    if event_type == 'cancelled':
        return f"Reservation {code} for {medicine} at {pharmacy} has been cancelled."
    if event_type == 'expired':
        return (
            f"Reservation {code} for {medicine} at {pharmacy} expired before pickup. "
            "Please reserve again if you still need it."
        )
    raise ValueError(f"Unknown reservation event type: {event_type}")

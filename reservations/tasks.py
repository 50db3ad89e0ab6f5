"""
Celery tasks for reservation processing.

Tasks:
    - send_reservation_event: Deliver a lifecycle notification to the patient
    - expire_stale_reservations: Hourly expiry sweep
    - generate_daily_reservation_report: Yesterday's reservation statistics
"""
import logging
from datetime import timedelta

from celery import shared_task
from django.utils import timezone

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def send_reservation_event(self, event_type: str, reservation_id: int, actor=None):
    """
    Deliver the SMS for a reservation lifecycle event.

    SMS delivery is done by the gateway configured for the deployment; this
    task renders the message and hands it over through the log stream.

    Args:
        event_type: created, confirmed, ready, completed, cancelled or expired
        reservation_id: ID of the reservation
        actor: Serialized actor that caused the event, if any

    Returns:
        Dict with delivery details
    """
    from reservations.models import Reservation
    from reservations.notifications import render_message

    try:
        reservation = Reservation.objects.select_related(
            'patient', 'pharmacy', 'medicine'
        ).get(id=reservation_id)
    except Reservation.DoesNotExist:
        logger.error(f"Reservation #{reservation_id} not found for '{event_type}' notification")
        return {'status': 'error', 'message': f'Reservation {reservation_id} not found'}

    phone = reservation.patient.phone
    if not phone:
        logger.warning(
            f"Patient #{reservation.patient_id} has no phone, "
            f"skipping '{event_type}' notification for {reservation.code}"
        )
        return {'status': 'skipped', 'message': 'Patient has no phone number'}

    message = render_message(event_type, reservation)
    logger.info(f"[SMS] To {phone}: {message}")

    return {
        'status': 'success',
        'reservation_id': reservation.id,
        'event': event_type,
        'actor': actor,
        'message': message
    }


@shared_task
def expire_stale_reservations():
    """
    Periodic task expiring PENDING reservations past their hold deadline.
    """
    from reservations.sweeper import run_expiry_sweep

    return run_expiry_sweep().as_dict()


@shared_task
def generate_daily_reservation_report():
    """
    Generate daily reservation statistics report.

    Scheduled via Celery Beat for daily execution.
    """
    from reservations.models import Reservation
    from reservations.services import reservation_stats

    yesterday = timezone.localdate() - timedelta(days=1)
    stats = reservation_stats(
        Reservation.objects.filter(created_at__date=yesterday)
    )

    report = f"""
    ===============================================
    DAILY RESERVATION REPORT - {yesterday}
    ===============================================
    Total Reservations: {stats['total_reservations']}
    Completed: {stats['completed_reservations']}
    Cancelled: {stats['cancelled_reservations']}
    Expired: {stats['expired_reservations']}
    Still Open: {stats['pending_reservations'] + stats['confirmed_reservations'] + stats['ready_reservations']}
    Completed Revenue: {stats['completed_revenue']}
    ===============================================
    """

    logger.info(report)

    return stats

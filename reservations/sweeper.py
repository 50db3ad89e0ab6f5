"""
Expiry sweeper: expires PENDING reservations whose hold has run out.

run_expiry_sweep() is called directly by tests and hourly by Celery Beat
through reservations.tasks.expire_stale_reservations.
"""
import logging
from dataclasses import asdict, dataclass

from django.utils import timezone

from core.exceptions import InvalidTransition
from .models import Reservation
from .services import expire_reservation

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    expired: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self):
        return asdict(self)


def expired_candidates(now):
    return list(
        Reservation.objects.filter(
            status=Reservation.Status.PENDING,
            expires_at__lt=now
        ).order_by('expires_at').values_list('pk', flat=True)
    )


def run_expiry_sweep(now=None) -> SweepResult:
    """
    Expire every overdue PENDING reservation, one at a time.

    A candidate that moved on since it was selected (e.g. confirmed by the
    pharmacy) fails with InvalidTransition and is skipped. Any other failure
    is logged and the sweep continues with the next candidate.
    """
    now = now or timezone.now()
    result = SweepResult()

    for reservation_id in expired_candidates(now):
        try:
            expire_reservation(reservation_id, now=now)
            result.expired += 1
        except InvalidTransition as e:
            logger.info(f"Skipping reservation #{reservation_id}: {e}")
            result.skipped += 1
        except Exception:
            logger.exception(f"Failed to expire reservation #{reservation_id}")
            result.failed += 1

    if result.expired or result.failed:
        logger.info(
            f"Expiry sweep: {result.expired} expired, {result.skipped} skipped, "
            f"{result.failed} failed"
        )
    return result

"""
Domain errors for the inventory ledger and reservation lifecycle, and the
DRF exception handler that turns them into API responses.

All of these are expected outcomes: services raise them, views let them
propagate, and api_exception_handler maps each to a status code.
"""
import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class ReservationSystemError(Exception):
    """Base class for ledger and reservation errors."""
    title = 'Error'
    status_code = status.HTTP_400_BAD_REQUEST

    def payload(self):
        return {'error': self.title, 'detail': str(self)}


class NotFound(ReservationSystemError):
    """Inventory entry or reservation does not exist."""
    title = 'Not Found'
    status_code = status.HTTP_404_NOT_FOUND


class InsufficientStock(ReservationSystemError):
    """Raised when a reservation asks for more than the available stock."""
    title = 'Insufficient Stock'
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, pharmacy_id: int, medicine_id: int, requested: int, available: int):
        self.pharmacy_id = pharmacy_id
        self.medicine_id = medicine_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for medicine {medicine_id} at pharmacy {pharmacy_id}: "
            f"requested {requested}, available {available}"
        )

    def payload(self):
        data = super().payload()
        data['requested'] = self.requested
        data['available'] = self.available
        return data


class InvalidTransition(ReservationSystemError):
    """Target status is not reachable from the reservation's current status."""
    title = 'Invalid Transition'
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current: str, target: str, reason: str = ''):
        self.current = current
        self.target = target
        message = f"Cannot move reservation from {current} to {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)

    def payload(self):
        data = super().payload()
        data['current_status'] = self.current
        data['target_status'] = self.target
        return data


class Forbidden(ReservationSystemError):
    """Actor lacks authority for the requested operation."""
    title = 'Forbidden'
    status_code = status.HTTP_403_FORBIDDEN


class ConflictRetryExhausted(ReservationSystemError):
    """
    A conditional update kept losing races. Transient: the caller may retry
    the whole operation.
    """
    title = 'Conflict'
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ReservationValidationError(ReservationSystemError):
    """Raised when reservation input is malformed."""
    title = 'Validation Error'


class InvalidStockLevel(ReservationSystemError):
    """A stock adjustment would break the reserved <= current invariant."""
    title = 'Invalid Stock Level'


def api_exception_handler(exc, context):
    if isinstance(exc, ReservationSystemError):
        logger.warning(f"{exc.__class__.__name__}: {exc}")
        return Response(exc.payload(), status=exc.status_code)

    response = drf_exception_handler(exc, context)
    if response is None:
        logger.exception(f"Unexpected error: {exc}")
        return Response(
            {'error': 'Server Error', 'detail': 'An unexpected error occurred'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )
    return response

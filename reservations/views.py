"""
Reservation API Views.

Implements:
- GET /reservations/ - Reservations visible to the calling actor
- POST /reservations/ - Reserve stock (rate limited)
- GET /reservations/{id}/ and /reservations/code/{code}/ - Reservation detail
- GET /reservations/{id}/summary/ - Reservation summary
- POST /reservations/{id}/status/ - Lifecycle transition
- POST /reservations/{id}/cancel/ - Cancel
- GET /reservations/stats/ - Counts per status

The caller is resolved from the X-Actor-Id / X-Actor-Role headers. Domain
errors propagate to core.exceptions.api_exception_handler.
"""
import logging

from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from core.actors import ActorRole, actor_from_request
from core.exceptions import Forbidden, ReservationValidationError
from core.rate_limiting import rate_limit
from . import services
from .models import Patient, Reservation
from .serializers import (
    PatientSerializer,
    ReservationCancelSerializer,
    ReservationCreateSerializer,
    ReservationListSerializer,
    ReservationSerializer,
    ReservationStatusSerializer,
)

logger = logging.getLogger(__name__)


class PatientListCreateView(generics.ListCreateAPIView):
    """
    GET: List patients
    POST: Register a patient
    """
    queryset = Patient.objects.all()
    serializer_class = PatientSerializer


class ReservationListCreateView(generics.ListCreateAPIView):
    """
    GET: List the caller's reservations (all of them for admins)
    POST: Reserve a medicine at a pharmacy

    Query Parameters (GET):
        - status: Filter by status

    Request Body (POST):
    {
        "pharmacy_id": 1,
        "medicine_id": 4,
        "quantity": 2
    }
    """

    def get_serializer_class(self):
        if self.request.method == 'POST':
            return ReservationCreateSerializer
        return ReservationListSerializer

    def get_queryset(self):
        queryset = services.reservations_for(actor_from_request(self.request))

        status_filter = self.request.query_params.get('status', '').upper()
        if status_filter in Reservation.Status.values:
            queryset = queryset.filter(status=status_filter)

        return queryset.order_by('-created_at')

    @rate_limit(max_requests=10, window_seconds=60)
    def create(self, request, *args, **kwargs):
        """
        Returns:
            - 201: Reservation created (PENDING)
            - 400: Validation error
            - 403: Caller may not reserve
            - 404: Patient or inventory entry not found
            - 409: Insufficient stock (body carries the available count)
        """
        actor = actor_from_request(request)
        serializer = ReservationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if actor.role == ActorRole.PATIENT:
            patient_id = actor.actor_id
        elif actor.role == ActorRole.ADMIN:
            patient_id = data.get('patient_id')
            if patient_id is None:
                raise ReservationValidationError("patient_id is required")
        else:
            raise Forbidden("Only patients can reserve medicines")

        reservation = services.create_reservation(
            patient_id=patient_id,
            pharmacy_id=data['pharmacy_id'],
            medicine_id=data['medicine_id'],
            quantity=data['quantity'],
            notes=data.get('notes', ''),
            actor=actor,
        )
        reservation = services.get_reservation(reservation.pk)

        return Response(ReservationSerializer(reservation).data, status=status.HTTP_201_CREATED)


class ReservationDetailView(APIView):
    """
    GET: Retrieve a reservation the caller has access to.
    """

    def get(self, request, pk):
        actor = actor_from_request(request)
        reservation = services.get_reservation(pk)
        services.check_access(reservation, actor)
        return Response(ReservationSerializer(reservation).data)


class ReservationByCodeView(APIView):
    """
    GET: Look a reservation up by the code the patient shows at pickup.
    """

    def get(self, request, code):
        actor = actor_from_request(request)
        reservation = services.get_reservation_by_code(code, actor)
        return Response(ReservationSerializer(reservation).data)


class ReservationSummaryView(APIView):
    """
    GET: Compact summary of a reservation for receipts and SMS follow-ups.
    """

    def get(self, request, pk):
        actor = actor_from_request(request)
        services.check_access(services.get_reservation(pk), actor)
        return Response(services.get_reservation_summary(pk))


class ReservationStatusView(APIView):
    """
    POST: Move a reservation through its lifecycle.

    Request Body:
    {
        "status": "READY",
        "notes": "Packed at the counter",   (optional)
        "pickup_instructions": "Ask at counter 2"   (optional, READY only)
    }
    """

    def post(self, request, pk):
        actor = actor_from_request(request)
        serializer = ReservationStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        reservation = services.transition_reservation(
            pk,
            serializer.validated_data['status'],
            actor,
            notes=serializer.validated_data.get('notes'),
            pickup_instructions=serializer.validated_data.get('pickup_instructions'),
        )
        return Response(ReservationSerializer(reservation).data)


class ReservationCancelView(APIView):
    """
    POST: Cancel a reservation and release its hold.
    """

    def post(self, request, pk):
        actor = actor_from_request(request)
        serializer = ReservationCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        reservation = services.cancel_reservation(
            pk, actor, notes=serializer.validated_data.get('notes')
        )
        return Response(ReservationSerializer(reservation).data)


class ReservationStatsView(APIView):
    """
    GET: Reservation statistics for the caller's reservations.
    """

    def get(self, request):
        actor = actor_from_request(request)
        return Response(services.reservation_stats(services.reservations_for(actor)))

"""
Serializers for reservation models.
"""
from rest_framework import serializers

from inventory.serializers import MedicineMinimalSerializer, PharmacyMinimalSerializer
from .models import Patient, Reservation


class PatientSerializer(serializers.ModelSerializer):
    class Meta:
        model = Patient
        fields = ['id', 'name', 'phone', 'email', 'village', 'created_at']
        read_only_fields = ['id', 'created_at']


class PatientMinimalSerializer(serializers.ModelSerializer):
    class Meta:
        model = Patient
        fields = ['id', 'name']


class ReservationSerializer(serializers.ModelSerializer):
    """
    Serializer for Reservation with nested patient, pharmacy and medicine.
    """
    patient = PatientMinimalSerializer(read_only=True)
    pharmacy = PharmacyMinimalSerializer(read_only=True)
    medicine = MedicineMinimalSerializer(read_only=True)
    is_terminal = serializers.BooleanField(read_only=True)

    class Meta:
        model = Reservation
        fields = [
            'id', 'code', 'patient', 'pharmacy', 'medicine',
            'quantity', 'total_price', 'status', 'is_terminal',
            'expires_at', 'notes', 'pickup_instructions',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields


class ReservationListSerializer(serializers.ModelSerializer):
    """
    Optimized serializer for listing reservations.
    Uses select_related for patient, pharmacy and medicine.
    """
    patient_name = serializers.CharField(source='patient.name', read_only=True)
    pharmacy_name = serializers.CharField(source='pharmacy.name', read_only=True)
    medicine_name = serializers.CharField(source='medicine.name', read_only=True)

    class Meta:
        model = Reservation
        fields = [
            'id', 'code', 'patient_name', 'pharmacy_name', 'medicine_name',
            'quantity', 'total_price', 'status', 'expires_at', 'created_at'
        ]


class ReservationCreateSerializer(serializers.Serializer):
    """
    Serializer for creating reservations via POST /reservations/

    Request format:
    {
        "pharmacy_id": 1,
        "medicine_id": 4,
        "quantity": 2,
        "notes": "Will collect after 5pm"
    }

    patient_id is only read for admin callers; patients always reserve for
    themselves.
    """
    pharmacy_id = serializers.IntegerField(min_value=1)
    medicine_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    patient_id = serializers.IntegerField(min_value=1, required=False)


class ReservationStatusSerializer(serializers.Serializer):
    """Request body for POST /reservations/{id}/status/"""
    status = serializers.ChoiceField(choices=Reservation.Status.choices)
    notes = serializers.CharField(required=False, allow_blank=True)
    pickup_instructions = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if 'pickup_instructions' in attrs and attrs['status'] != Reservation.Status.READY:
            raise serializers.ValidationError(
                {'pickup_instructions': 'Only allowed when marking a reservation READY.'}
            )
        return attrs


class ReservationCancelSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True)

"""
Serializers for inventory models.
Provides data validation and JSON conversion for API endpoints.
"""
from django.utils import timezone
from rest_framework import serializers

from core.exceptions import InvalidStockLevel
from . import ledger
from .models import Medicine, Pharmacy, Inventory


class MedicineSerializer(serializers.ModelSerializer):
    """Serializer for Medicine model."""

    class Meta:
        model = Medicine
        fields = [
            'id', 'name', 'generic_name', 'category', 'dosage_form',
            'strength', 'manufacturer', 'requires_prescription',
            'description', 'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']


class MedicineMinimalSerializer(serializers.ModelSerializer):
    """Minimal serializer for autocomplete and nested representations."""
    class Meta:
        model = Medicine
        fields = ['id', 'name', 'strength', 'category']


class PharmacySerializer(serializers.ModelSerializer):
    """Serializer for Pharmacy model."""
    inventory_count = serializers.SerializerMethodField()

    class Meta:
        model = Pharmacy
        fields = [
            'id', 'name', 'location', 'phone', 'license_number',
            'is_active', 'inventory_count', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def get_inventory_count(self, obj):
        """Get count of medicines stocked at this pharmacy."""
        return obj.inventories.count()


class PharmacyMinimalSerializer(serializers.ModelSerializer):
    """Minimal serializer for nested pharmacy representation."""
    class Meta:
        model = Pharmacy
        fields = ['id', 'name', 'location']


class InventorySerializer(serializers.ModelSerializer):
    """
    Serializer for Inventory rows.

    Stock counters are written through the ledger: creation opens the entry
    with a derived status, and a new current_stock on update is applied as a
    stock-take that cannot drop below reserved_stock.
    """
    pharmacy = PharmacyMinimalSerializer(read_only=True)
    medicine = MedicineMinimalSerializer(read_only=True)
    pharmacy_id = serializers.PrimaryKeyRelatedField(
        queryset=Pharmacy.objects.all(),
        source='pharmacy',
        write_only=True
    )
    medicine_id = serializers.PrimaryKeyRelatedField(
        queryset=Medicine.objects.all(),
        source='medicine',
        write_only=True
    )
    available_stock = serializers.IntegerField(read_only=True)
    is_low_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = Inventory
        fields = [
            'id', 'pharmacy', 'pharmacy_id', 'medicine', 'medicine_id',
            'current_stock', 'reserved_stock', 'available_stock',
            'min_stock_level', 'max_stock_level', 'price',
            'batch_number', 'supplier', 'expiry_date', 'last_restocked',
            'status', 'is_low_stock', 'created_at', 'updated_at'
        ]
        read_only_fields = [
            'id', 'reserved_stock', 'last_restocked', 'status',
            'created_at', 'updated_at'
        ]

    def validate(self, attrs):
        if self.instance is None:
            if Inventory.objects.filter(
                pharmacy=attrs.get('pharmacy'),
                medicine=attrs.get('medicine')
            ).exists():
                raise serializers.ValidationError(
                    "Inventory for this pharmacy and medicine combination already exists."
                )
        else:
            # The (pharmacy, medicine) pair identifies the ledger row
            attrs.pop('pharmacy', None)
            attrs.pop('medicine', None)

        min_level = attrs.get('min_stock_level', getattr(self.instance, 'min_stock_level', 10))
        max_level = attrs.get('max_stock_level', getattr(self.instance, 'max_stock_level', 100))
        if max_level < min_level:
            raise serializers.ValidationError(
                {'max_stock_level': 'Must be greater than or equal to min_stock_level.'}
            )
        return attrs

    def create(self, validated_data):
        pharmacy = validated_data.pop('pharmacy')
        medicine = validated_data.pop('medicine')
        return ledger.open_entry(pharmacy, medicine, **validated_data)

    def update(self, instance, validated_data):
        now = timezone.now()
        current_stock = validated_data.pop('current_stock', None)

        if validated_data:
            for field, value in validated_data.items():
                setattr(instance, field, value)
            instance.save(update_fields=list(validated_data) + ['updated_at'])

        if current_stock is not None:
            try:
                return ledger.adjust_stock(
                    instance.pharmacy_id, instance.medicine_id, current_stock, now=now
                )
            except InvalidStockLevel as e:
                raise serializers.ValidationError({'current_stock': str(e)})
        return ledger.sync_status(instance.pharmacy_id, instance.medicine_id, now=now)


class InventoryListSerializer(serializers.ModelSerializer):
    """
    Optimized serializer for listing inventory with related data.
    Uses select_related('pharmacy', 'medicine') in view.
    """
    pharmacy_name = serializers.CharField(source='pharmacy.name', read_only=True)
    pharmacy_location = serializers.CharField(source='pharmacy.location', read_only=True)
    medicine_name = serializers.CharField(source='medicine.name', read_only=True)
    medicine_category = serializers.CharField(source='medicine.category', read_only=True)
    available_stock = serializers.IntegerField(read_only=True)

    class Meta:
        model = Inventory
        fields = [
            'id', 'pharmacy_id', 'pharmacy_name', 'pharmacy_location',
            'medicine_id', 'medicine_name', 'medicine_category',
            'current_stock', 'reserved_stock', 'available_stock',
            'price', 'status', 'expiry_date', 'updated_at'
        ]


class RestockSerializer(serializers.Serializer):
    """Request body for POST /inventory/{id}/restock/"""
    quantity = serializers.IntegerField(min_value=1)
    batch_number = serializers.CharField(max_length=50, required=False)
    expiry_date = serializers.DateTimeField(required=False)


class AvailabilitySerializer(serializers.Serializer):
    """Read-only view of ledger.Availability."""
    pharmacy_id = serializers.IntegerField()
    medicine_id = serializers.IntegerField()
    current_stock = serializers.IntegerField()
    reserved_stock = serializers.IntegerField()
    available_stock = serializers.IntegerField()
    price = serializers.DecimalField(max_digits=10, decimal_places=2)
    status = serializers.CharField()

"""
Django Admin configuration for inventory models.
"""
from django.contrib import admin
from .models import Medicine, Pharmacy, Inventory


@admin.register(Medicine)
class MedicineAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'strength', 'category', 'dosage_form', 'is_active']
    list_filter = ['category', 'dosage_form', 'requires_prescription', 'is_active']
    search_fields = ['name', 'generic_name', 'manufacturer']
    ordering = ['name']


@admin.register(Pharmacy)
class PharmacyAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'location', 'phone', 'is_active', 'inventory_count']
    list_filter = ['is_active', 'created_at']
    search_fields = ['name', 'location', 'license_number']
    ordering = ['name']

    def inventory_count(self, obj):
        return obj.inventories.count()
    inventory_count.short_description = 'Medicines Stocked'


@admin.register(Inventory)
class InventoryAdmin(admin.ModelAdmin):
    list_display = [
        'id', 'pharmacy', 'medicine', 'current_stock', 'reserved_stock',
        'available_stock', 'status', 'expiry_date', 'updated_at'
    ]
    list_filter = ['status', 'pharmacy']
    search_fields = ['medicine__name', 'pharmacy__name', 'batch_number']
    ordering = ['pharmacy', 'medicine']
    raw_id_fields = ['pharmacy', 'medicine']
    # Stock counters move only through the ledger
    readonly_fields = ['reserved_stock', 'status', 'created_at', 'updated_at']

    def available_stock(self, obj):
        return obj.available_stock
    available_stock.short_description = 'Available'

    def has_delete_permission(self, request, obj=None):
        return False

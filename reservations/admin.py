"""
Django Admin configuration for reservation models.
"""
from django.contrib import admin
from .models import Patient, Reservation


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'phone', 'village', 'reservation_count', 'created_at']
    search_fields = ['name', 'phone', 'email', 'village']
    ordering = ['name']

    def reservation_count(self, obj):
        return obj.reservations.count()
    reservation_count.short_description = 'Reservations'


@admin.register(Reservation)
class ReservationAdmin(admin.ModelAdmin):
    list_display = [
        'code', 'patient', 'pharmacy', 'medicine', 'quantity',
        'total_price', 'status', 'expires_at', 'created_at'
    ]
    list_filter = ['status', 'pharmacy', 'created_at']
    search_fields = ['code', 'patient__name', 'medicine__name']
    ordering = ['-created_at']
    raw_id_fields = ['patient', 'pharmacy', 'medicine']
    # Status changes must go through the service layer to keep the ledger in sync
    readonly_fields = [
        'code', 'quantity', 'total_price', 'status', 'expires_at',
        'created_at', 'updated_at'
    ]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

"""
Inventory API Views with optimized queries.

Implements:
- CRUD for Medicine and Pharmacy (soft-disabled via is_active, never deleted)
- Inventory listing, stocking, stock-take updates and restocks
- Real-time availability lookup for a (pharmacy, medicine) pair
- Medicine search and rate-limited autocomplete
"""
from django.db.models import F, Q
from rest_framework import generics, status
from rest_framework.views import APIView
from rest_framework.response import Response

from core.rate_limiting import rate_limit
from . import ledger
from .models import Medicine, Pharmacy, Inventory
from .serializers import (
    AvailabilitySerializer,
    InventoryListSerializer,
    InventorySerializer,
    MedicineSerializer,
    PharmacySerializer,
    RestockSerializer,
)


# =============================================================================
# Medicine Views
# =============================================================================

class MedicineListCreateView(generics.ListCreateAPIView):
    """
    GET: List active medicines
    POST: Add a medicine to the catalog
    """
    serializer_class = MedicineSerializer

    def get_queryset(self):
        return Medicine.objects.filter(is_active=True)


class MedicineDetailView(generics.RetrieveUpdateAPIView):
    """
    GET: Retrieve a medicine
    PUT/PATCH: Update a medicine (set is_active=false to withdraw it)
    """
    queryset = Medicine.objects.all()
    serializer_class = MedicineSerializer


class MedicineSearchView(generics.ListAPIView):
    """
    GET: Search medicines.

    Query Parameters:
        - q: Keyword matched against name, generic name and manufacturer
        - category: Exact category
        - pharmacy_id: Only medicines with available stock at this pharmacy
    """
    serializer_class = MedicineSerializer

    def get_queryset(self):
        queryset = Medicine.objects.filter(is_active=True)

        keyword = self.request.query_params.get('q', '').strip()
        if keyword:
            queryset = queryset.filter(
                Q(name__icontains=keyword) |
                Q(generic_name__icontains=keyword) |
                Q(manufacturer__icontains=keyword)
            )

        category = self.request.query_params.get('category')
        if category:
            queryset = queryset.filter(category=category)

        pharmacy_id = self.request.query_params.get('pharmacy_id')
        if pharmacy_id:
            in_stock = Inventory.objects.filter(
                pharmacy_id=pharmacy_id,
                current_stock__gt=F('reserved_stock')
            ).exclude(status=Inventory.Status.EXPIRED)
            queryset = queryset.filter(id__in=in_stock.values('medicine_id'))

        return queryset.order_by('name')


class MedicineAutocompleteView(APIView):
    """
    GET: Prefix-matching autocomplete for medicine names.

    Query Parameters:
        - q: Search query (minimum 2 characters)

    Returns top 10 matches. Rate limited to 20 requests per minute.
    """

    @rate_limit(max_requests=20, window_seconds=60)
    def get(self, request):
        query = request.query_params.get('q', '').strip()

        if len(query) < 2:
            return Response(
                {'error': 'Query must be at least 2 characters'},
                status=status.HTTP_400_BAD_REQUEST
            )

        medicines = Medicine.objects.filter(
            name__istartswith=query,
            is_active=True
        ).values('id', 'name', 'strength')[:10]

        return Response(list(medicines))


# =============================================================================
# Pharmacy Views
# =============================================================================

class PharmacyListCreateView(generics.ListCreateAPIView):
    """
    GET: List active pharmacies
    POST: Register a pharmacy
    """
    queryset = Pharmacy.objects.filter(is_active=True)
    serializer_class = PharmacySerializer


class PharmacyDetailView(generics.RetrieveUpdateAPIView):
    """
    GET: Retrieve a pharmacy
    PUT/PATCH: Update a pharmacy
    """
    queryset = Pharmacy.objects.all()
    serializer_class = PharmacySerializer


# =============================================================================
# Inventory Views
# =============================================================================

class InventoryListCreateView(generics.ListCreateAPIView):
    """
    GET: List inventory rows with pharmacy and medicine info
    POST: Start stocking a medicine at a pharmacy

    Query Parameters:
        - pharmacy_id: Filter by pharmacy
        - medicine_id: Filter by medicine
        - status: AVAILABLE, LOW, OUT_OF_STOCK or EXPIRED
        - low_stock: true to list LOW and OUT_OF_STOCK rows only
    """

    def get_serializer_class(self):
        if self.request.method == 'GET':
            return InventoryListSerializer
        return InventorySerializer

    def get_queryset(self):
        queryset = Inventory.objects.select_related('pharmacy', 'medicine')

        pharmacy_id = self.request.query_params.get('pharmacy_id')
        if pharmacy_id:
            queryset = queryset.filter(pharmacy_id=pharmacy_id)

        medicine_id = self.request.query_params.get('medicine_id')
        if medicine_id:
            queryset = queryset.filter(medicine_id=medicine_id)

        status_filter = self.request.query_params.get('status', '').upper()
        if status_filter in Inventory.Status.values:
            queryset = queryset.filter(status=status_filter)

        if self.request.query_params.get('low_stock', '').lower() == 'true':
            queryset = queryset.filter(
                status__in=[Inventory.Status.LOW, Inventory.Status.OUT_OF_STOCK]
            )

        return queryset.order_by('pharmacy__name', 'medicine__name')


class InventoryDetailView(generics.RetrieveUpdateAPIView):
    """
    GET: Retrieve an inventory row
    PUT/PATCH: Update price, levels, batch data or a counted current_stock

    Rows are kept for audit and cannot be deleted.
    """
    serializer_class = InventorySerializer

    def get_queryset(self):
        return Inventory.objects.select_related('pharmacy', 'medicine')


class InventoryRestockView(APIView):
    """
    POST: Record a delivery.

    Request Body:
    {
        "quantity": 50,
        "batch_number": "B-2024-07",        (optional)
        "expiry_date": "2026-01-31T00:00Z"  (optional)
    }
    """

    def post(self, request, pk):
        entry = generics.get_object_or_404(Inventory, pk=pk)
        serializer = RestockSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        entry = ledger.restock(
            entry.pharmacy_id,
            entry.medicine_id,
            serializer.validated_data['quantity'],
            batch_number=serializer.validated_data.get('batch_number'),
            expiry_date=serializer.validated_data.get('expiry_date'),
        )
        return Response(InventorySerializer(entry).data)


class InventoryAvailabilityView(APIView):
    """
    GET: Real-time availability of a medicine at a pharmacy.

    Query Parameters:
        - pharmacy_id (required)
        - medicine_id (required)
    """

    def get(self, request):
        try:
            pharmacy_id = int(request.query_params['pharmacy_id'])
            medicine_id = int(request.query_params['medicine_id'])
        except (KeyError, ValueError):
            return Response(
                {'error': 'Validation Error', 'detail': 'pharmacy_id and medicine_id are required integers'},
                status=status.HTTP_400_BAD_REQUEST
            )

        availability = ledger.get_availability(pharmacy_id, medicine_id)
        return Response(AvailabilitySerializer(availability).data)

"""
URL routing for inventory API endpoints.
"""
from django.urls import path
from . import views

app_name = 'inventory'

urlpatterns = [
    # Medicines
    path('medicines/', views.MedicineListCreateView.as_view(), name='medicine-list'),
    path('medicines/search/', views.MedicineSearchView.as_view(), name='medicine-search'),
    path('medicines/autocomplete/', views.MedicineAutocompleteView.as_view(), name='medicine-autocomplete'),
    path('medicines/<int:pk>/', views.MedicineDetailView.as_view(), name='medicine-detail'),

    # Pharmacies
    path('pharmacies/', views.PharmacyListCreateView.as_view(), name='pharmacy-list'),
    path('pharmacies/<int:pk>/', views.PharmacyDetailView.as_view(), name='pharmacy-detail'),

    # Inventory
    path('inventory/', views.InventoryListCreateView.as_view(), name='inventory-list'),
    path('inventory/availability/', views.InventoryAvailabilityView.as_view(), name='inventory-availability'),
    path('inventory/<int:pk>/', views.InventoryDetailView.as_view(), name='inventory-detail'),
    path('inventory/<int:pk>/restock/', views.InventoryRestockView.as_view(), name='inventory-restock'),
]

"""
URL routing for reservation API endpoints.
"""
from django.urls import path
from . import views

app_name = 'reservations'

urlpatterns = [
    path('patients/', views.PatientListCreateView.as_view(), name='patient-list'),
    path('reservations/', views.ReservationListCreateView.as_view(), name='reservation-list'),
    path('reservations/stats/', views.ReservationStatsView.as_view(), name='reservation-stats'),
    path('reservations/code/<str:code>/', views.ReservationByCodeView.as_view(), name='reservation-by-code'),
    path('reservations/<int:pk>/', views.ReservationDetailView.as_view(), name='reservation-detail'),
    path('reservations/<int:pk>/summary/', views.ReservationSummaryView.as_view(), name='reservation-summary'),
    path('reservations/<int:pk>/status/', views.ReservationStatusView.as_view(), name='reservation-status'),
    path('reservations/<int:pk>/cancel/', views.ReservationCancelView.as_view(), name='reservation-cancel'),
]

from django.urls import path
from . import views

app_name = 'bookings'

urlpatterns = [
    path('', views.create_booking, name='create-booking'),
    path('active/', views.active_booking, name='active-booking'),

    # Passenger APIs
    path('user/', views.passenger_history, name='passenger-history'),
    path('<int:booking_id>/respond-to-offer/', views.respond_to_offer, name='respond-to-offer'),
    path('<int:booking_id>/rate/', views.rate_booking, name='rate-booking'),

    # Driver APIs
    path('nearby/', views.nearby_bookings, name='nearby-bookings'),
    path('driver/', views.driver_history, name='driver-history'),
    path('<int:booking_id>/driver-respond/', views.driver_respond, name='driver-respond'),
    path('<int:booking_id>/pickup/', views.confirm_pickup, name='confirm-pickup'),
    path('<int:booking_id>/complete/', views.complete_booking, name='complete-booking'),

    # Either party
    path('<int:booking_id>/', views.booking_detail, name='booking-detail'),
    path('<int:booking_id>/cancel/', views.cancel_booking, name='cancel-booking'),
]

from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint

    # Authentication endpoints (at /api/auth/)
    path('api/auth/', include('accounts.urls')),  # accounts.urls have register, login, refresh, me endpoints

    # Booking endpoints (at /api/bookings/)
    path('api/bookings/', include('bookings.urls')),  # negotiation, trip lifecycle and history
]

"""Tells what to show in the Django admin interface for bookings app"""

from django.contrib import admin
from .models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    """Special trip booking admin"""
    list_display = ['id', 'passenger', 'driver', 'status', 'preferred_fare', 'agreed_fare',
                    'created_at', 'expires_at', 'completed_at']
    list_filter = ['status', 'cancelled_by', 'created_at']
    search_fields = ['passenger__username', 'driver__username', 'pickup_address', 'destination_address']
    readonly_fields = ['pickup_cell', 'estimated_distance_m', 'created_at', 'updated_at', 'accepted_at',
                       'picked_up_at', 'completed_at', 'cancelled_at', 'rating', 'rating_comment']
    date_hierarchy = 'created_at'

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from accounts.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin panel for passengers and tricycle drivers"""

    list_display = [
        "username",
        "role",
        "phone_number",
        "vehicle_number",
        "completed_trips",
        "rating",
        "is_active",
    ]

    list_filter = ["role", "is_active", "is_staff"]

    search_fields = ["username", "email", "phone_number", "vehicle_number"]

    ordering = ("username",)

    readonly_fields = ["completed_trips", "rating", "num_reviews"]

    fieldsets = BaseUserAdmin.fieldsets + (
        (
            "Dispatch",
            {
                "fields": (
                    "role",
                    "phone_number",
                    "vehicle_number",
                    "completed_trips",
                    "rating",
                    "num_reviews",
                )
            },
        ),
    )

    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        (
            "Dispatch",
            {"fields": ("role", "phone_number", "vehicle_number")},
        ),
    )

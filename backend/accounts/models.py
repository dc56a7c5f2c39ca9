from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Extended user model with role selection"""
    ROLE_PASSENGER = 'passenger'
    ROLE_DRIVER = 'driver'
    ROLE_CHOICES = [
        (ROLE_PASSENGER, 'Passenger'),
        (ROLE_DRIVER, 'Tricycle Driver'),
    ]

    # Role & basic info
    role = models.CharField(max_length=10, choices=ROLE_CHOICES)
    phone_number = models.CharField(max_length=15, blank=True)
    vehicle_number = models.CharField(max_length=20, blank=True, null=True, unique=True)
    completed_trips = models.IntegerField(default=0)

    # Driver reputation, averaged over passenger ratings
    rating = models.FloatField(default=0)
    num_reviews = models.IntegerField(default=0)

    class Meta:
        db_table = 'users'

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"

    @property
    def is_passenger(self):
        return self.role == self.ROLE_PASSENGER

    @property
    def is_driver(self):
        return self.role == self.ROLE_DRIVER

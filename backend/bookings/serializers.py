import re

from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from .models import Booking


class BookingSerializer(serializers.ModelSerializer):
    """Serializer for bookings as returned to both parties"""
    passenger = UserBasicSerializer(read_only=True)
    driver = UserBasicSerializer(read_only=True)
    offer = serializers.SerializerMethodField()
    distance_m = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = ['id', 'passenger', 'driver', 'status',
                  'pickup_latitude', 'pickup_longitude', 'pickup_address',
                  'destination_latitude', 'destination_longitude', 'destination_address',
                  'estimated_distance_m', 'distance_m', 'preferred_fare', 'agreed_fare', 'offer',
                  'created_at', 'updated_at', 'expires_at', 'accepted_at', 'picked_up_at',
                  'completed_at', 'cancelled_at', 'cancellation_reason', 'cancelled_by',
                  'rating', 'rating_comment']
        read_only_fields = fields

    def get_offer(self, obj):
        if not obj.has_offer:
            return None
        return {
            'amount': str(obj.offer_amount),
            'message': obj.offer_message,
            'driver_id': obj.offer_driver_id,
            'created_at': serializers.DateTimeField().to_representation(obj.offer_created_at),
        }

    def get_distance_m(self, obj):
        # Only set on results of a nearby search
        distance = getattr(obj, 'distance_m', None)
        return round(distance, 1) if distance is not None else None


class CamelCaseInputSerializer(serializers.Serializer):
    """Accepts camelCase request keys as aliases of the snake_case fields."""
    aliases = {}

    def to_internal_value(self, data):
        if hasattr(data, 'items'):
            normalized = {}
            for key, value in data.items():
                snake = re.sub(r'(?<!^)(?=[A-Z])', '_', key).lower()
                normalized.setdefault(self.aliases.get(snake, snake), value)
            data = normalized
        return super().to_internal_value(data)


class BookingCreateSerializer(CamelCaseInputSerializer):
    """Serializer for creating special trip requests"""
    pickup_latitude = serializers.FloatField(min_value=-90, max_value=90)
    pickup_longitude = serializers.FloatField(min_value=-180, max_value=180)
    pickup_address = serializers.CharField(required=False, allow_blank=True, default='')
    destination_latitude = serializers.FloatField(min_value=-90, max_value=90)
    destination_longitude = serializers.FloatField(min_value=-180, max_value=180)
    destination_address = serializers.CharField(required=False, allow_blank=True, default='')
    preferred_fare = serializers.DecimalField(max_digits=8, decimal_places=2)


class DriverRespondSerializer(CamelCaseInputSerializer):
    accept = serializers.BooleanField(default=False)
    counter_offer = serializers.DecimalField(max_digits=8, decimal_places=2, required=False, allow_null=True)
    message = serializers.CharField(required=False, allow_blank=True, default='')


class OfferResponseSerializer(CamelCaseInputSerializer):
    accepted = serializers.BooleanField()


class DriverLocationSerializer(CamelCaseInputSerializer):
    """Driver position reported with pickup/complete"""
    driver_lat = serializers.FloatField(required=False, allow_null=True)
    driver_lon = serializers.FloatField(required=False, allow_null=True)
    aliases = {'latitude': 'driver_lat', 'longitude': 'driver_lon'}

    def location(self):
        lat = self.validated_data.get('driver_lat')
        lon = self.validated_data.get('driver_lon')
        if lat is None or lon is None:
            return None
        return (lat, lon)


class BookingCancelSerializer(CamelCaseInputSerializer):
    """Serializer for booking cancellation"""
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class RatingSerializer(CamelCaseInputSerializer):
    rating = serializers.IntegerField()
    comment = serializers.CharField(required=False, allow_blank=True, default='')

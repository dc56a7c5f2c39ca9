from rest_framework import serializers
from django.contrib.auth import authenticate

from .models import User


class UserSerializer(serializers.ModelSerializer):

    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "email",
            "role",
            "phone_number",
            "vehicle_number",
            "completed_trips",
            "rating",
            "num_reviews",
        ]
        read_only_fields = ["id", "role", "completed_trips", "rating", "num_reviews"]


class UserBasicSerializer(serializers.ModelSerializer):
    """
    Lite version of user info embedded in booking payloads
    (the other party's name, contact and reputation).
    """

    class Meta:
        model = User
        fields = ["id", "username", "phone_number", "vehicle_number", "rating"]


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField(write_only=True)

    def validate(self, data):
        user = authenticate(username=data["username"], password=data["password"])
        if not user:
            raise serializers.ValidationError("Invalid username or password")
        return user


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True)
    role = serializers.ChoiceField(choices=User.ROLE_CHOICES)
    vehicle_number = serializers.CharField(required=False, allow_blank=True)

    class Meta:
        model = User
        fields = ['username', 'password', 'email', 'role', 'phone_number', "vehicle_number"]

    def validate_email(self, value):
        if value and User.objects.filter(email=value).exists():
            raise serializers.ValidationError("Email already exists")
        return value

    def validate_vehicle_number(self, value):
        if value and User.objects.filter(vehicle_number=value).exists():
            raise serializers.ValidationError("Vehicle number already registered")
        return value

    def validate(self, data):
        # If registering as driver, vehicle_number is required
        if data['role'] == User.ROLE_DRIVER and not data.get('vehicle_number'):
            raise serializers.ValidationError({
                'vehicle_number': 'Vehicle number is required for drivers'
            })
        return data

    def create(self, validated_data):
        vehicle_number = validated_data.pop('vehicle_number', None)

        return User.objects.create_user(
            username=validated_data['username'],
            email=validated_data.get('email', ''),
            password=validated_data['password'],
            role=validated_data['role'],
            phone_number=validated_data.get('phone_number', ''),
            vehicle_number=vehicle_number if validated_data['role'] == User.ROLE_DRIVER else None,
        )

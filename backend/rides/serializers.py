from django.conf import settings
from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from services.ride_management.filters import ALL_STATUSES, SORT_FIELDS, RideFilter
from .models import RideRequest, RidePreference


class RidePreferenceSerializer(serializers.ModelSerializer):
    class Meta:
        model = RidePreference
        fields = ['gender', 'age_range', 'institution']
        extra_kwargs = {
            'gender': {'required': False},
            'age_range': {'required': False},
            'institution': {'required': False},
        }


class RideRequestSerializer(serializers.ModelSerializer):
    """Serializer for Ride Requests"""
    owner = UserBasicSerializer(read_only=True)
    participants = serializers.SerializerMethodField()
    preferences = RidePreferenceSerializer(many=True, read_only=True)
    seats_left = serializers.IntegerField(read_only=True)

    class Meta:
        model = RideRequest
        fields = ['id', 'owner', 'origin', 'destination', 'total_fare', 'vehicle_type',
                  'total_passengers', 'total_accepted', 'seats_left', 'ride_time', 'note',
                  'status', 'participants', 'preferences', 'conversation',
                  'created_at', 'updated_at']
        read_only_fields = fields

    def get_participants(self, obj):
        users = [membership.user for membership in obj.memberships.all()]
        return UserBasicSerializer(users, many=True).data


class RideRequestCreateSerializer(serializers.Serializer):
    """Validates the body of a create-ride request"""
    origin = serializers.CharField(max_length=255)
    destination = serializers.CharField(max_length=255)
    total_fare = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    vehicle_type = serializers.ChoiceField(choices=RideRequest.VEHICLE_CHOICES)
    total_passengers = serializers.IntegerField(min_value=1)
    ride_time = serializers.DateTimeField()
    note = serializers.CharField(required=False, allow_blank=True, default='')
    preferences = RidePreferenceSerializer(many=True, required=False)

    def validate_total_passengers(self, value):
        max_passengers = settings.RIDES_MAX_PASSENGERS
        if value > max_passengers:
            raise serializers.ValidationError(f"At most {max_passengers} passengers per ride")
        return value


class RideFilterSerializer(serializers.Serializer):
    """
    Validates ride listing query params into a RideFilter.
    Unknown params are ignored.
    """
    status = serializers.ChoiceField(
        choices=[ALL_STATUSES] + [choice for choice, _ in RideRequest.STATUS_CHOICES],
        required=False,
    )
    search = serializers.CharField(required=False, allow_blank=True)
    date = serializers.DateField(required=False)
    ride_time_from = serializers.DateTimeField(required=False)
    ride_time_to = serializers.DateTimeField(required=False)
    location = serializers.CharField(required=False, allow_blank=True)
    origin = serializers.CharField(required=False, allow_blank=True)
    destination = serializers.CharField(required=False, allow_blank=True)
    vehicle_type = serializers.ChoiceField(choices=RideRequest.VEHICLE_CHOICES, required=False)
    min_fare = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    max_fare = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    min_passengers = serializers.IntegerField(min_value=0, required=False)
    gender = serializers.ChoiceField(choices=RidePreference.GENDER_CHOICES, required=False)
    age_range = serializers.CharField(required=False, allow_blank=True)
    institution = serializers.CharField(required=False, allow_blank=True)
    sort_by = serializers.CharField(required=False, allow_blank=True)

    def validate_sort_by(self, value):
        keys = tuple(key.strip() for key in value.split(",") if key.strip())
        unknown = [key for key in keys if key not in SORT_FIELDS]
        if unknown:
            raise serializers.ValidationError(f"Unknown sort keys: {', '.join(unknown)}")
        return keys

    def validate(self, data):
        min_fare = data.get("min_fare")
        max_fare = data.get("max_fare")
        if min_fare is not None and max_fare is not None and min_fare > max_fare:
            raise serializers.ValidationError("min_fare cannot exceed max_fare")
        return data

    def to_filter(self) -> RideFilter:
        return RideFilter(**self.validated_data)


class AcceptRideSerializer(serializers.Serializer):
    """Body of the accept-on-behalf endpoint"""
    user_id = serializers.IntegerField(min_value=1)

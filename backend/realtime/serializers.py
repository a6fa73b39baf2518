"""Serializers validating inbound WebSocket payloads."""

import math

from rest_framework import serializers

from .registry import Role


class CoordinateSerializer(serializers.Serializer):
    """
    Latitude/longitude pair. Out-of-range values are accepted here and
    treated as unmatchable downstream; only non-finite numbers are rejected.
    """
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()

    def validate(self, attrs):
        if not (math.isfinite(attrs["latitude"]) and math.isfinite(attrs["longitude"])):
            raise serializers.ValidationError("Coordinates must be finite numbers")
        return attrs


class RegisterSerializer(serializers.Serializer):
    userType = serializers.ChoiceField(choices=[role.value for role in Role])
    userId = serializers.CharField(required=False, allow_blank=False, max_length=128)
    location = CoordinateSerializer(required=False, allow_null=True)


class LocationUpdateSerializer(serializers.Serializer):
    location = CoordinateSerializer()


class RideRequestSerializer(serializers.Serializer):
    ride_id = serializers.JSONField()
    pickup_latitude = serializers.FloatField()
    pickup_longitude = serializers.FloatField()
    destination_latitude = serializers.FloatField()
    destination_longitude = serializers.FloatField()
    estimated_fare = serializers.FloatField()
    timestamp = serializers.JSONField()
    pickup_address = serializers.CharField(required=False, allow_blank=True)
    destination_address = serializers.CharField(required=False, allow_blank=True)


class AcceptRideSerializer(serializers.Serializer):
    rider_id = serializers.CharField()
    ride_id = serializers.JSONField()
    estimated_arrival = serializers.FloatField(required=False, allow_null=True)
    timestamp = serializers.JSONField(required=False, allow_null=True)


class DeclineRideSerializer(serializers.Serializer):
    ride_id = serializers.JSONField()


class TargetedSerializer(serializers.Serializer):
    """Peer-to-peer relay message: a target id plus an opaque body."""
    targetId = serializers.CharField()

"""
Logistics App Serializers - Orders, tracking and partner actions
"""

from django.utils import timezone
from rest_framework import serializers

from partners.services import MAX_CLOCK_SKEW

from .models import DropPoint, Order, OrderStatus


class CoordinatesField(serializers.ListField):
    """[longitude, latitude]"""

    child = serializers.FloatField()

    def __init__(self, **kwargs):
        kwargs.setdefault('min_length', 2)
        kwargs.setdefault('max_length', 2)
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        lng, lat = super().to_internal_value(data)
        if not (-90 <= lat <= 90) or not (-180 <= lng <= 180):
            raise serializers.ValidationError("Coordinates out of range.")
        return [lng, lat]


class DropPointSerializer(serializers.ModelSerializer):

    class Meta:
        model = DropPoint
        fields = [
            'sequence', 'lat', 'lng', 'address', 'landmark', 'pincode',
            'contact_name', 'contact_phone', 'status', 'scheduled_time',
            'actual_time', 'proof',
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Order summary for partner and owner listings."""

    drops = DropPointSerializer(many=True, read_only=True)
    partner_name = serializers.CharField(source='partner.name', read_only=True, default=None)

    class Meta:
        model = Order
        fields = [
            'id', 'order_type', 'status', 'dispatch_state', 'vehicle_type',
            'partner', 'partner_name',
            'pickup_lat', 'pickup_lng', 'pickup_address', 'pickup_contact_name',
            'pickup_contact_phone', 'drops', 'package',
            'pricing_total', 'pricing_currency', 'payment_method', 'payment_status',
            'requires_signature', 'max_drops', 'route_optimized',
            'created_at', 'assigned_at', 'picked_at', 'in_transit_at',
            'delivered_at', 'cancelled_at',
        ]
        read_only_fields = fields


class StatusUpdateSerializer(serializers.Serializer):
    """Partner-reported status change."""

    status = serializers.ChoiceField(
        choices=[OrderStatus.PICKED, OrderStatus.IN_TRANSIT]
    )
    note = serializers.CharField(max_length=255, required=False, allow_blank=True)
    location = CoordinatesField(required=False)


class ProofOfDeliverySerializer(serializers.Serializer):

    photos = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    signature = serializers.CharField(required=False, allow_blank=True)
    otp = serializers.CharField(max_length=10, required=False, allow_blank=True)
    receiverName = serializers.CharField(max_length=150, required=False, allow_blank=True)
    receiverRelation = serializers.CharField(max_length=50, required=False, allow_blank=True)
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True)
    location = CoordinatesField(required=False)
    dropSequence = serializers.IntegerField(min_value=1, required=False)

    def validate(self, data):
        if not (data.get('photos') or data.get('signature') or data.get('otp')):
            raise serializers.ValidationError("Provide at least a photo, a signature or the OTP.")
        return data


class LocationPingSerializer(serializers.Serializer):

    coordinates = CoordinatesField()
    accuracy = serializers.FloatField(required=False, min_value=0)
    heading = serializers.FloatField(required=False, min_value=0, max_value=360)
    speed = serializers.FloatField(required=False, min_value=0)
    timestamp = serializers.DateTimeField(required=False)

    def validate_timestamp(self, value):
        if value > timezone.now() + MAX_CLOCK_SKEW:
            raise serializers.ValidationError("Timestamp is in the future.")
        return value


class RejectSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)

"""
Serializers for the peer delivery API.

Input serializers validate request bodies before any workflow step runs;
output serializers render the aggregates the engine returns.
"""

from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone
from rest_framework import serializers

from .models import (
    USER_ID_MAX_LENGTH,
    Conversation,
    EscrowTransaction,
    Message,
    Offer,
    PaymentMethod,
    Shipment,
    Travel,
)
from .validators import validate_card_number, validate_currency_code


# ============================================================================
# Shipment Serializers
# ============================================================================

class ShipmentSerializer(serializers.ModelSerializer):
    """Read representation of a shipment, including both confirmation gates."""

    class Meta:
        model = Shipment
        fields = [
            'id',
            'origin_country',
            'origin_city',
            'origin_address',
            'meeting_point',
            'dest_country',
            'dest_city',
            'dest_address',
            'weight',
            'weight_unit',
            'content',
            'package_type',
            'image_url',
            'date_start',
            'date_end',
            'price',
            'currency',
            'sender_phone',
            'sender_id',
            'courier_id',
            'status',
            'sender_confirmed_handover',
            'courier_confirmed_handover',
            'sender_confirmed_delivery',
            'courier_confirmed_delivery',
            'handover_confirmed_at',
            'delivery_confirmed_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class ShipmentCreateSerializer(serializers.ModelSerializer):
    """
    Serializer for posting shipments.

    Fields:
    - origin_country, origin_city, dest_country, dest_city: Required
    - weight: Required, 0.1 up to DELIVERY_MAX_PACKAGE_WEIGHT
    - content: Required, cannot be whitespace only
    - date_start, date_end: Required, end cannot precede start
    - price: Required, at least 1.00
    - currency: Optional, defaults to DELIVERY_DEFAULT_CURRENCY

    The sender is taken from the authenticated request.
    """
    # Uppercased in validate_currency before the currency code check
    currency = serializers.CharField(max_length=3, required=False)

    class Meta:
        model = Shipment
        fields = [
            'origin_country',
            'origin_city',
            'origin_address',
            'meeting_point',
            'dest_country',
            'dest_city',
            'dest_address',
            'weight',
            'weight_unit',
            'content',
            'package_type',
            'image_url',
            'date_start',
            'date_end',
            'price',
            'currency',
            'sender_phone',
        ]

    def validate_content(self, value):
        if not value or not value.strip():
            raise serializers.ValidationError(
                "Content cannot be empty or whitespace only."
            )
        return value.strip()

    def validate_weight(self, value):
        max_weight = Decimal(getattr(settings, 'DELIVERY_MAX_PACKAGE_WEIGHT', 50))
        if value > max_weight:
            raise serializers.ValidationError(
                f"Weight cannot exceed {max_weight}."
            )
        return value

    def validate_currency(self, value):
        value = value.strip().upper()
        try:
            validate_currency_code(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(e.messages)
        return value

    def validate(self, attrs):
        date_start = attrs.get('date_start')
        date_end = attrs.get('date_end')
        if date_start and date_end and date_end < date_start:
            raise serializers.ValidationError({
                'date_end': 'Delivery window cannot end before it starts.'
            })
        return attrs

    def create(self, validated_data):
        from delivery.lifecycle import create_shipment

        request = self.context.get('request')
        if not request or not request.user:
            raise serializers.ValidationError(
                "Authentication required to post a shipment."
            )

        try:
            return create_shipment(str(request.user.id), **validated_data)
        except DjangoValidationError as e:
            raise serializers.ValidationError(
                e.message_dict if hasattr(e, 'message_dict') else e.messages
            )


class ShipmentStatusUpdateSerializer(serializers.Serializer):
    """
    Request body for the coarse status path.

    Any known status passes here; the lifecycle decides which targets the
    caller may request.
    """
    status = serializers.ChoiceField(choices=Shipment.STATUS_CHOICES)


class ShipmentFilterSerializer(serializers.Serializer):
    """Query parameters accepted by the shipment browse endpoint."""
    status = serializers.ChoiceField(choices=Shipment.STATUS_CHOICES, required=False)
    origin_country = serializers.CharField(required=False, max_length=100)
    dest_country = serializers.CharField(required=False, max_length=100)
    min_weight = serializers.DecimalField(max_digits=6, decimal_places=2, min_value=Decimal('0'), required=False)
    max_weight = serializers.DecimalField(max_digits=6, decimal_places=2, min_value=Decimal('0'), required=False)
    min_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'), required=False)
    max_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'), required=False)

    def validate(self, attrs):
        for low, high in (('min_weight', 'max_weight'), ('min_price', 'max_price')):
            if attrs.get(low) is not None and attrs.get(high) is not None and attrs[low] > attrs[high]:
                raise serializers.ValidationError({
                    low: f"{low} cannot be greater than {high}."
                })
        return attrs


# ============================================================================
# Travel Serializers
# ============================================================================

class TravelSerializer(serializers.ModelSerializer):

    class Meta:
        model = Travel
        fields = [
            'id',
            'traveler_id',
            'from_country',
            'from_city',
            'from_airport',
            'from_airport_code',
            'to_country',
            'to_city',
            'to_airport',
            'to_airport_code',
            'departure_date',
            'arrival_date',
            'available_weight',
            'weight_unit',
            'price_per_kg',
            'currency',
            'flight_number',
            'status',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class TravelCreateSerializer(serializers.ModelSerializer):
    """
    Serializer for posting and editing travels.

    Fields:
    - from_country, from_city, to_country, to_city: Required
    - departure_date: Required, must be in the future
    - arrival_date: Optional, cannot precede departure
    - available_weight: Required, at least 0.1
    - price_per_kg: Optional, cannot be negative
    - currency: Optional, defaults to DELIVERY_DEFAULT_CURRENCY

    Used with partial=True for edits. The traveler is taken from the
    authenticated request.
    """
    currency = serializers.CharField(max_length=3, required=False)

    class Meta:
        model = Travel
        fields = [
            'from_country',
            'from_city',
            'from_airport',
            'from_airport_code',
            'to_country',
            'to_city',
            'to_airport',
            'to_airport_code',
            'departure_date',
            'arrival_date',
            'available_weight',
            'weight_unit',
            'price_per_kg',
            'currency',
            'flight_number',
        ]

    def validate_departure_date(self, value):
        if value < timezone.now():
            raise serializers.ValidationError(
                "Departure date must be in the future."
            )
        return value

    def validate_currency(self, value):
        value = value.strip().upper()
        try:
            validate_currency_code(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(e.messages)
        return value

    def validate(self, attrs):
        departure = attrs.get('departure_date')
        arrival = attrs.get('arrival_date')
        if departure and arrival and arrival < departure:
            raise serializers.ValidationError({
                'arrival_date': 'Arrival cannot be before departure.'
            })
        return attrs

    def create(self, validated_data):
        from delivery.travels import create_travel

        request = self.context.get('request')
        if not request or not request.user:
            raise serializers.ValidationError(
                "Authentication required to post a travel."
            )

        try:
            return create_travel(str(request.user.id), **validated_data)
        except DjangoValidationError as e:
            raise serializers.ValidationError(
                e.message_dict if hasattr(e, 'message_dict') else e.messages
            )


class TravelFilterSerializer(serializers.Serializer):
    """Query parameters accepted by the travel browse endpoint."""
    status = serializers.ChoiceField(choices=Travel.STATUS_CHOICES, required=False)
    from_city = serializers.CharField(required=False, max_length=100)
    to_city = serializers.CharField(required=False, max_length=100)
    min_weight = serializers.DecimalField(max_digits=6, decimal_places=2, min_value=Decimal('0'), required=False)
    max_weight = serializers.DecimalField(max_digits=6, decimal_places=2, min_value=Decimal('0'), required=False)
    from_date = serializers.DateTimeField(required=False)
    to_date = serializers.DateTimeField(required=False)

    def validate(self, attrs):
        for low, high in (('min_weight', 'max_weight'), ('from_date', 'to_date')):
            if attrs.get(low) is not None and attrs.get(high) is not None and attrs[low] > attrs[high]:
                raise serializers.ValidationError({
                    low: f"{low} cannot be greater than {high}."
                })
        return attrs

# ============================================================================
# Offer Serializers
# ============================================================================

class OfferSerializer(serializers.ModelSerializer):

    class Meta:
        model = Offer
        fields = ['id', 'shipment', 'courier_id', 'message', 'status', 'created_at', 'updated_at']
        read_only_fields = fields


class OfferCreateSerializer(serializers.Serializer):
    message = serializers.CharField(max_length=2000, trim_whitespace=True)


# ============================================================================
# Escrow Serializers
# ============================================================================

class EscrowTransactionSerializer(serializers.ModelSerializer):
    """
    Read representation of an escrow ledger row.

    The card is shown by brand and last four digits only.
    """
    payment_method = serializers.SerializerMethodField()

    class Meta:
        model = EscrowTransaction
        fields = [
            'id',
            'shipment',
            'amount',
            'currency',
            'status',
            'payer_id',
            'payee_id',
            'payment_method',
            'description',
            'released_at',
            'refunded_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_payment_method(self, obj):
        if obj.payment_method is None:
            return None
        return {
            'id': str(obj.payment_method.id),
            'card_type': obj.payment_method.card_type,
            'last_four': obj.payment_method.last_four,
        }


class HoldPaymentSerializer(serializers.Serializer):
    shipment_id = serializers.UUIDField()
    courier_id = serializers.CharField(max_length=USER_ID_MAX_LENGTH)
    payment_method_id = serializers.UUIDField(required=False, allow_null=True)


# ============================================================================
# Payment Method Serializers
# ============================================================================

class PaymentMethodSerializer(serializers.ModelSerializer):

    class Meta:
        model = PaymentMethod
        fields = [
            'id',
            'card_type',
            'last_four',
            'card_holder',
            'expiry_month',
            'expiry_year',
            'is_default',
            'created_at',
        ]
        read_only_fields = fields


class PaymentMethodCreateSerializer(serializers.Serializer):
    """
    Card details accepted by the vault.

    The full number is validated and then reduced to brand and last four
    digits; it is never persisted.
    """
    card_number = serializers.CharField(max_length=30, write_only=True)
    card_holder = serializers.CharField(max_length=200)
    expiry_month = serializers.IntegerField(min_value=1, max_value=12)
    expiry_year = serializers.IntegerField(min_value=2024, max_value=2100)
    set_as_default = serializers.BooleanField(required=False, default=False)

    def validate_card_number(self, value):
        try:
            validate_card_number(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(e.messages)
        return value

    def validate_card_holder(self, value):
        if not value.strip():
            raise serializers.ValidationError(
                "Card holder cannot be empty or whitespace only."
            )
        return value.strip()

    def validate(self, attrs):
        today = timezone.now().date()
        if (attrs['expiry_year'], attrs['expiry_month']) < (today.year, today.month):
            raise serializers.ValidationError({
                'expiry_year': 'Card has expired.'
            })
        return attrs


# ============================================================================
# Conversation Serializers
# ============================================================================

class MessageSerializer(serializers.ModelSerializer):

    class Meta:
        model = Message
        fields = ['id', 'sender_id', 'kind', 'content', 'is_read', 'created_at']
        read_only_fields = fields


class ConversationSerializer(serializers.ModelSerializer):
    messages = MessageSerializer(many=True, read_only=True)

    class Meta:
        model = Conversation
        fields = [
            'id',
            'shipment',
            'user1_id',
            'user2_id',
            'status',
            'last_message',
            'last_message_at',
            'messages',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

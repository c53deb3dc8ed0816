"""
Django admin configuration for the delivery models.

Escrow rows are read-only here: the ledger only changes through the
workflow operations.
"""

from django.contrib import admin
from django.utils.translation import gettext_lazy as _

from .models import Conversation, EscrowTransaction, Message, Offer, PaymentMethod, Shipment, Travel


class OfferInline(admin.TabularInline):
    """Inline admin for offers on a shipment."""
    model = Offer
    extra = 0
    fields = ['courier_id', 'message', 'status', 'created_at']
    readonly_fields = ['created_at']


@admin.register(Shipment)
class ShipmentAdmin(admin.ModelAdmin):
    """Admin interface for Shipment model."""

    list_display = [
        'id',
        'origin_city',
        'dest_city',
        'sender_id',
        'courier_id',
        'status',
        'price',
        'currency',
        'created_at',
    ]

    list_filter = [
        'status',
        'currency',
        'created_at',
    ]

    search_fields = [
        'origin_city',
        'origin_country',
        'dest_city',
        'dest_country',
        'sender_id',
        'courier_id',
        'content',
    ]

    readonly_fields = ['created_at', 'updated_at', 'handover_confirmed_at', 'delivery_confirmed_at']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    inlines = [OfferInline]

    fieldsets = (
        (_('Route'), {
            'fields': (
                'origin_country',
                'origin_city',
                'origin_address',
                'meeting_point',
                'dest_country',
                'dest_city',
                'dest_address',
            )
        }),
        (_('Package'), {
            'fields': ('weight', 'weight_unit', 'content', 'package_type', 'image_url')
        }),
        (_('Window & Pricing'), {
            'fields': ('date_start', 'date_end', 'price', 'currency')
        }),
        (_('Parties & Status'), {
            'fields': ('sender_id', 'sender_phone', 'courier_id', 'status')
        }),
        (_('Confirmations'), {
            'fields': (
                'sender_confirmed_handover',
                'courier_confirmed_handover',
                'handover_confirmed_at',
                'sender_confirmed_delivery',
                'courier_confirmed_delivery',
                'delivery_confirmed_at',
            ),
            'classes': ('collapse',),
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )


@admin.register(Offer)
class OfferAdmin(admin.ModelAdmin):
    """Admin interface for Offer model."""

    list_display = ['id', 'shipment', 'courier_id', 'status', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['courier_id', 'message']
    readonly_fields = ['created_at', 'updated_at']
    ordering = ['-created_at']
    list_per_page = 25


@admin.register(EscrowTransaction)
class EscrowTransactionAdmin(admin.ModelAdmin):
    """Admin interface for EscrowTransaction model."""

    list_display = [
        'id',
        'shipment',
        'amount',
        'currency',
        'status',
        'payer_id',
        'payee_id',
        'created_at',
    ]
    list_filter = ['status', 'currency', 'created_at']
    search_fields = ['payer_id', 'payee_id', 'description']
    ordering = ['-created_at']
    date_hierarchy = 'created_at'
    list_per_page = 25

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(PaymentMethod)
class PaymentMethodAdmin(admin.ModelAdmin):
    """Admin interface for PaymentMethod model."""

    list_display = ['id', 'user_id', 'card_type', 'last_four', 'is_default', 'created_at']
    list_filter = ['card_type', 'is_default']
    search_fields = ['user_id', 'card_holder', 'last_four']
    readonly_fields = ['created_at', 'updated_at']
    ordering = ['-created_at']


class MessageInline(admin.TabularInline):
    """Inline admin for conversation messages."""
    model = Message
    extra = 0
    fields = ['sender_id', 'kind', 'content', 'is_read', 'created_at']
    readonly_fields = ['created_at']
    ordering = ['created_at']


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    """Admin interface for Conversation model."""

    list_display = ['id', 'shipment', 'user1_id', 'user2_id', 'status', 'last_message_at']
    list_filter = ['status']
    search_fields = ['user1_id', 'user2_id', 'last_message']
    readonly_fields = ['created_at', 'updated_at']
    ordering = ['-updated_at']
    inlines = [MessageInline]


@admin.register(Travel)
class TravelAdmin(admin.ModelAdmin):
    """Admin interface for Travel model."""

    list_display = [
        'id',
        'from_city',
        'to_city',
        'traveler_id',
        'departure_date',
        'available_weight',
        'status',
    ]
    list_filter = ['status', 'departure_date']
    search_fields = ['from_city', 'from_country', 'to_city', 'to_country', 'traveler_id', 'flight_number']
    readonly_fields = ['created_at', 'updated_at']
    ordering = ['departure_date']
    date_hierarchy = 'departure_date'
    list_per_page = 25

"""
URL configuration for peer_delivery project.
"""
from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import TokenVerifyView
from delivery.views import (
    ConversationDetailView,
    DeliveryConfirmView,
    HandoverConfirmView,
    HoldPaymentView,
    MyOffersView,
    MyShipmentOfferView,
    MyShipmentsView,
    MyTravelsView,
    OfferAcceptView,
    OfferRejectView,
    PaymentMethodDefaultView,
    PaymentMethodDeleteView,
    PaymentMethodListCreateView,
    RefundPaymentView,
    ReleasePaymentView,
    ShipmentCreateView,
    ShipmentDetailView,
    ShipmentListView,
    ShipmentOffersView,
    ShipmentStatusUpdateView,
    TransactionListView,
    TravelCancelView,
    TravelDetailView,
    TravelListCreateView,
)


urlpatterns = [
    path('admin/', admin.site.urls),

    # Shipment endpoints
    path('api/shipments/', ShipmentCreateView.as_view(), name='shipment_create'),
    path('api/shipments/list/', ShipmentListView.as_view(), name='shipment_list'),
    path('api/shipments/mine/', MyShipmentsView.as_view(), name='shipment_mine'),
    path('api/shipments/<uuid:pk>/', ShipmentDetailView.as_view(), name='shipment_detail'),
    path('api/shipments/<uuid:pk>/status/', ShipmentStatusUpdateView.as_view(), name='shipment_status'),
    path('api/shipments/<uuid:pk>/handover/', HandoverConfirmView.as_view(), name='shipment_handover'),
    path('api/shipments/<uuid:pk>/delivery/', DeliveryConfirmView.as_view(), name='shipment_delivery'),
    path('api/shipments/<uuid:pk>/offers/', ShipmentOffersView.as_view(), name='shipment_offers'),
    path('api/shipments/<uuid:pk>/my-offer/', MyShipmentOfferView.as_view(), name='shipment_my_offer'),

    # Offer endpoints
    path('api/offers/mine/', MyOffersView.as_view(), name='offer_mine'),
    path('api/offers/<uuid:pk>/accept/', OfferAcceptView.as_view(), name='offer_accept'),
    path('api/offers/<uuid:pk>/reject/', OfferRejectView.as_view(), name='offer_reject'),

    # Travel endpoints
    path('api/travels/', TravelListCreateView.as_view(), name='travel_list'),
    path('api/travels/mine/', MyTravelsView.as_view(), name='travel_mine'),
    path('api/travels/<uuid:pk>/', TravelDetailView.as_view(), name='travel_detail'),
    path('api/travels/<uuid:pk>/cancel/', TravelCancelView.as_view(), name='travel_cancel'),

    # Payment endpoints
    path('api/payments/hold/', HoldPaymentView.as_view(), name='payment_hold'),
    path('api/payments/transactions/', TransactionListView.as_view(), name='payment_transactions'),
    path('api/payments/methods/', PaymentMethodListCreateView.as_view(), name='payment_methods'),
    path('api/payments/methods/<uuid:pk>/', PaymentMethodDeleteView.as_view(), name='payment_method_delete'),
    path('api/payments/methods/<uuid:pk>/default/', PaymentMethodDefaultView.as_view(), name='payment_method_default'),
    path('api/payments/<uuid:shipment_id>/release/', ReleasePaymentView.as_view(), name='payment_release'),
    path('api/payments/<uuid:shipment_id>/refund/', RefundPaymentView.as_view(), name='payment_refund'),

    # Conversation endpoints
    path('api/conversations/<uuid:pk>/', ConversationDetailView.as_view(), name='conversation_detail'),

    # Token verification for tokens issued by the identity provider
    path('api/token/verify/', TokenVerifyView.as_view(), name='token_verify'),
]

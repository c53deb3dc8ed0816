"""
API views for the peer delivery marketplace.

Each view authenticates the actor, validates the request body, calls one
workflow operation and renders the result. Workflow errors are rendered as
{"detail": ..., "code": ...} with the error's status code.
"""

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.generics import ListAPIView
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from . import escrow, lifecycle, offers, payment_methods, travels
from .exceptions import DeliveryError, NotFound
from .models import Conversation, Shipment
from .permissions import IsConversationParticipant, IsShipmentParticipant, actor_id
from .serializers import (
    ConversationSerializer,
    EscrowTransactionSerializer,
    HoldPaymentSerializer,
    OfferCreateSerializer,
    OfferSerializer,
    PaymentMethodCreateSerializer,
    PaymentMethodSerializer,
    ShipmentCreateSerializer,
    ShipmentFilterSerializer,
    ShipmentSerializer,
    ShipmentStatusUpdateSerializer,
    TravelCreateSerializer,
    TravelFilterSerializer,
    TravelSerializer,
)
from .store import get_shipment

logger = logging.getLogger(__name__)


class DeliveryViewMixin:
    """
    Shared request helpers.

    Workflow errors raised anywhere in the view are logged with the actor
    and client IP and rendered with their status code.
    """

    def get_client_ip(self, request):
        """
        Get client IP address from request.
        Handles proxy headers for accurate IP detection.
        """
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            ip = x_forwarded_for.split(',')[0]
        else:
            ip = request.META.get('REMOTE_ADDR')
        return ip

    def handle_exception(self, exc):
        if isinstance(exc, DeliveryError):
            request = self.request
            user_id = request.user.id if request.user and request.user.is_authenticated else None
            logger.warning(
                f"{self.__class__.__name__} refused: {exc.detail}. "
                f"Code: {exc.default_code}, "
                f"User ID: {user_id}, "
                f"IP: {self.get_client_ip(request)}"
            )
            return Response(
                {'detail': str(exc.detail), 'code': exc.default_code},
                status=exc.status_code
            )
        return super().handle_exception(exc)


class DeliveryAPIView(DeliveryViewMixin, APIView):
    permission_classes = [IsAuthenticated]


# ============================================================================
# Shipment Views
# ============================================================================

class ShipmentCreateView(DeliveryAPIView):
    """
    API endpoint for posting a shipment.

    POST /api/shipments/
    Headers: Authorization: Bearer <access_token>

    Returns:
    - 201 Created: The open shipment
    - 400 Bad Request: Validation errors
    - 401 Unauthorized: Missing or invalid token
    """

    def post(self, request, *args, **kwargs):
        serializer = ShipmentCreateSerializer(data=request.data, context={'request': request})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        shipment = serializer.save()
        return Response(ShipmentSerializer(shipment).data, status=status.HTTP_201_CREATED)


class ShipmentListView(DeliveryViewMixin, ListAPIView):
    """
    Public browse of shipments.

    Query Parameters:
    - status: Filter by status
    - origin_country / dest_country: Case-insensitive partial match
    - min_weight / max_weight: Weight range
    - min_price / max_price: Price range
    - page: Page number
    """

    permission_classes = [AllowAny]
    serializer_class = ShipmentSerializer

    def list(self, request, *args, **kwargs):
        filters = ShipmentFilterSerializer(data=request.query_params)
        if not filters.is_valid():
            return Response(filters.errors, status=status.HTTP_400_BAD_REQUEST)
        self.browse_filters = filters.validated_data
        return super().list(request, *args, **kwargs)

    def get_queryset(self):
        return lifecycle.list_shipments(**self.browse_filters)


class MyShipmentsView(DeliveryViewMixin, ListAPIView):
    """
    Shipments the caller sends (?role=sender, default) or carries (?role=courier).
    """

    permission_classes = [IsAuthenticated]
    serializer_class = ShipmentSerializer

    def get_queryset(self):
        role = self.request.query_params.get('role', 'sender')
        return lifecycle.shipments_for_user(actor_id(self.request), role)


class ShipmentDetailView(DeliveryAPIView):
    """
    GET /api/shipments/<id>/

    Open shipments are public. Once matched, only the sender and the
    courier can see the shipment.
    """

    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        shipment = get_shipment(kwargs.get('pk'))

        if shipment.status != Shipment.OPEN:
            permission = IsShipmentParticipant()
            if not permission.has_object_permission(request, self, shipment):
                return Response({'detail': permission.message}, status=status.HTTP_403_FORBIDDEN)

        return Response(ShipmentSerializer(shipment).data, status=status.HTTP_200_OK)


class ShipmentStatusUpdateView(DeliveryAPIView):
    """
    Coarse status update: cancel by the sender, on_way/delivered by the courier.

    PUT /api/shipments/<id>/status/
    Request body: {"status": "cancelled"}

    Error responses:
    - 400: Unknown status, target not allowed, or unreachable from current status
    - 403: Caller may not request this target
    - 404: Shipment not found
    """

    def put(self, request, *args, **kwargs):
        serializer = ShipmentStatusUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        shipment = lifecycle.update_status(
            kwargs.get('pk'),
            actor_id(request),
            serializer.validated_data['status'],
        )

        logger.info(
            f"Shipment status update via API. Shipment ID: {shipment.id}, "
            f"Status: {shipment.status}, User ID: {request.user.id}, IP: {self.get_client_ip(request)}"
        )
        return Response(ShipmentSerializer(shipment).data, status=status.HTTP_200_OK)


class ConfirmationView(DeliveryAPIView):
    """Base for the two dual-confirmation endpoints."""

    confirm = None

    def post(self, request, *args, **kwargs):
        result = self.confirm(kwargs.get('pk'), actor_id(request))
        return Response(
            {
                'shipment': ShipmentSerializer(result.shipment).data,
                'both_confirmed': result.both_confirmed,
                'message': result.message,
            },
            status=status.HTTP_200_OK
        )


class HandoverConfirmView(ConfirmationView):
    """POST /api/shipments/<id>/handover/"""

    confirm = staticmethod(lifecycle.confirm_handover)


class DeliveryConfirmView(ConfirmationView):
    """POST /api/shipments/<id>/delivery/"""

    confirm = staticmethod(lifecycle.confirm_delivery)


# ============================================================================
# Offer Views
# ============================================================================

class ShipmentOffersView(DeliveryAPIView):
    """
    GET /api/shipments/<id>/offers/
        The sender sees every offer; a courier sees only their own.

    POST /api/shipments/<id>/offers/
        Request body: {"message": "I travel on Friday and have a free 10kg slot"}
        Returns 201 with the pending offer.
    """

    def get(self, request, *args, **kwargs):
        queryset = offers.offers_for_shipment(kwargs.get('pk'), actor_id(request))
        return Response(OfferSerializer(queryset, many=True).data, status=status.HTTP_200_OK)

    def post(self, request, *args, **kwargs):
        serializer = OfferCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        offer = offers.create_offer(
            kwargs.get('pk'),
            actor_id(request),
            serializer.validated_data['message'],
        )
        return Response(OfferSerializer(offer).data, status=status.HTTP_201_CREATED)


class MyOffersView(DeliveryViewMixin, ListAPIView):
    """Offers the caller has made as a courier, newest first."""

    permission_classes = [IsAuthenticated]
    serializer_class = OfferSerializer

    def get_queryset(self):
        return offers.offers_by_courier(actor_id(self.request))


class MyShipmentOfferView(DeliveryAPIView):
    """
    GET /api/shipments/<id>/my-offer/

    The offer the caller made on this shipment, or 404 if they made none.
    """

    def get(self, request, *args, **kwargs):
        offer = offers.offer_of_courier(kwargs.get('pk'), actor_id(request))
        return Response(OfferSerializer(offer).data, status=status.HTTP_200_OK)


class OfferAcceptView(DeliveryAPIView):
    """
    POST /api/offers/<id>/accept/

    Returns the matched shipment.
    """

    def post(self, request, *args, **kwargs):
        shipment = offers.accept_offer(kwargs.get('pk'), actor_id(request))
        return Response(ShipmentSerializer(shipment).data, status=status.HTTP_200_OK)


class OfferRejectView(DeliveryAPIView):
    """POST /api/offers/<id>/reject/"""

    def post(self, request, *args, **kwargs):
        offer = offers.reject_offer(kwargs.get('pk'), actor_id(request))
        return Response(OfferSerializer(offer).data, status=status.HTTP_200_OK)


# ============================================================================
# Travel Views
# ============================================================================

class TravelListCreateView(DeliveryViewMixin, ListAPIView):
    """
    GET /api/travels/
        Upcoming trips, soonest departure first.

        Query Parameters:
        - status: active (default) or cancelled
        - from_city / to_city: Case-insensitive partial match
        - min_weight / max_weight: Available weight range
        - from_date / to_date: Departure range
        - page: Page number

    POST /api/travels/
        Returns 201 with the active travel, 400 on validation errors.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = TravelSerializer

    def list(self, request, *args, **kwargs):
        filters = TravelFilterSerializer(data=request.query_params)
        if not filters.is_valid():
            return Response(filters.errors, status=status.HTTP_400_BAD_REQUEST)
        self.browse_filters = filters.validated_data
        return super().list(request, *args, **kwargs)

    def get_queryset(self):
        return travels.list_travels(**self.browse_filters)

    def post(self, request, *args, **kwargs):
        serializer = TravelCreateSerializer(data=request.data, context={'request': request})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        travel = serializer.save()
        return Response(TravelSerializer(travel).data, status=status.HTTP_201_CREATED)


class MyTravelsView(DeliveryViewMixin, ListAPIView):
    """Trips the caller posted, latest departure first."""

    permission_classes = [IsAuthenticated]
    serializer_class = TravelSerializer

    def get_queryset(self):
        return travels.travels_for_user(actor_id(self.request))


class TravelDetailView(DeliveryAPIView):
    """
    GET /api/travels/<id>/
    PATCH /api/travels/<id>/
    DELETE /api/travels/<id>/

    Error responses:
    - 400: Validation errors, or the travel is cancelled (PATCH)
    - 403: Caller is not the traveler (PATCH, DELETE)
    - 404: Travel not found
    """

    def get(self, request, *args, **kwargs):
        travel = travels.get_travel(kwargs.get('pk'))
        return Response(TravelSerializer(travel).data, status=status.HTTP_200_OK)

    def patch(self, request, *args, **kwargs):
        serializer = TravelCreateSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            travel = travels.update_travel(kwargs.get('pk'), actor_id(request), **serializer.validated_data)
        except DjangoValidationError as e:
            return Response(
                e.message_dict if hasattr(e, 'message_dict') else {'detail': e.messages},
                status=status.HTTP_400_BAD_REQUEST
            )
        return Response(TravelSerializer(travel).data, status=status.HTTP_200_OK)

    def delete(self, request, *args, **kwargs):
        travels.delete_travel(kwargs.get('pk'), actor_id(request))
        return Response(status=status.HTTP_204_NO_CONTENT)


class TravelCancelView(DeliveryAPIView):
    """POST /api/travels/<id>/cancel/"""

    def post(self, request, *args, **kwargs):
        travel = travels.cancel_travel(kwargs.get('pk'), actor_id(request))
        return Response(TravelSerializer(travel).data, status=status.HTTP_200_OK)


# ============================================================================
# Payment Views
# ============================================================================

class HoldPaymentView(DeliveryAPIView):
    """
    Hold the shipment price in escrow and match the courier.

    POST /api/payments/hold/
    Request body: {"shipment_id": "...", "courier_id": "...", "payment_method_id": "..."}

    Error responses:
    - 400: Shipment not open, courier is the sender, or no usable card
    - 403: Caller is not the sender
    - 404: Shipment not found
    - 409: Payment already held for this shipment
    """

    def post(self, request, *args, **kwargs):
        serializer = HoldPaymentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        transaction = escrow.hold_payment(
            actor_id(request),
            data['shipment_id'],
            data['courier_id'],
            payment_method_id=data.get('payment_method_id'),
        )
        return Response(EscrowTransactionSerializer(transaction).data, status=status.HTTP_201_CREATED)


class ReleasePaymentView(DeliveryAPIView):
    """POST /api/payments/<shipment_id>/release/"""

    def post(self, request, *args, **kwargs):
        transaction = escrow.release_payment(actor_id(request), kwargs.get('shipment_id'))
        return Response(EscrowTransactionSerializer(transaction).data, status=status.HTTP_200_OK)


class RefundPaymentView(DeliveryAPIView):
    """POST /api/payments/<shipment_id>/refund/"""

    def post(self, request, *args, **kwargs):
        transaction = escrow.refund_payment(actor_id(request), kwargs.get('shipment_id'))
        return Response(EscrowTransactionSerializer(transaction).data, status=status.HTTP_200_OK)


class TransactionListView(DeliveryViewMixin, ListAPIView):
    """Escrow rows where the caller is payer or payee."""

    permission_classes = [IsAuthenticated]
    serializer_class = EscrowTransactionSerializer

    def get_queryset(self):
        return escrow.transactions_for_user(actor_id(self.request))


class PaymentMethodListCreateView(DeliveryAPIView):
    """
    GET /api/payments/methods/
    POST /api/payments/methods/
        Request body: {"card_number": "4242 4242 4242 4242", "card_holder": "...",
                       "expiry_month": 12, "expiry_year": 2030, "set_as_default": false}
    """

    def get(self, request, *args, **kwargs):
        methods = payment_methods.list_payment_methods(actor_id(request))
        return Response(PaymentMethodSerializer(methods, many=True).data, status=status.HTTP_200_OK)

    def post(self, request, *args, **kwargs):
        serializer = PaymentMethodCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        method = payment_methods.add_payment_method(actor_id(request), **serializer.validated_data)
        return Response(PaymentMethodSerializer(method).data, status=status.HTTP_201_CREATED)


class PaymentMethodDefaultView(DeliveryAPIView):
    """PUT /api/payments/methods/<id>/default/"""

    def put(self, request, *args, **kwargs):
        method = payment_methods.set_default_payment_method(actor_id(request), kwargs.get('pk'))
        return Response(PaymentMethodSerializer(method).data, status=status.HTTP_200_OK)


class PaymentMethodDeleteView(DeliveryAPIView):
    """DELETE /api/payments/methods/<id>/"""

    def delete(self, request, *args, **kwargs):
        payment_methods.delete_payment_method(actor_id(request), kwargs.get('pk'))
        return Response(status=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Conversation Views
# ============================================================================

class ConversationDetailView(DeliveryAPIView):
    """
    GET /api/conversations/<id>/

    Transcript of one negotiation thread, visible to its two participants.
    """

    def get(self, request, *args, **kwargs):
        conversation_id = kwargs.get('pk')
        conversation = Conversation.objects.prefetch_related('messages').filter(pk=conversation_id).first()
        if conversation is None:
            raise NotFound(f'Conversation with ID {conversation_id} does not exist.')

        permission = IsConversationParticipant()
        if not permission.has_object_permission(request, self, conversation):
            logger.warning(
                f"Unauthorized conversation access attempt. "
                f"Conversation ID: {conversation_id}, "
                f"User ID: {request.user.id}, "
                f"IP: {self.get_client_ip(request)}"
            )
            return Response({'detail': permission.message}, status=status.HTTP_403_FORBIDDEN)

        return Response(ConversationSerializer(conversation).data, status=status.HTTP_200_OK)

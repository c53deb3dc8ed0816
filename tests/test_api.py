"""
Tests for the HTTP surface.

Test Coverage:
- Authentication requirements
- Shipment posting, browsing, detail visibility and status updates
- Offer endpoints
- Escrow endpoints and the error envelope
- Dual-confirmation endpoints
- Payment-method endpoints
- Conversation transcript access
- Concurrent acceptance of competing offers
"""

import threading
import uuid
from datetime import timedelta

from django.db import connection
from django.test import TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from delivery.audit import shipment_violations
from delivery.models import Conversation, EscrowTransaction, Offer, PaymentMethod, Shipment

from tests.factories import (
    COURIER,
    OFFER_MESSAGE,
    OTHER_COURIER,
    SENDER,
    STRANGER,
    add_card,
    held_shipment,
    make_offer,
    make_shipment,
    on_way_shipment,
    token_for,
)


class DeliveryAPITestCase(TestCase):
    """Base class with an authenticated client per user."""

    def setUp(self):
        self.client = APIClient()

    def authenticate(self, user_id):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token_for(user_id)}')

    def anonymous(self):
        self.client.credentials()


class ShipmentAPITestCase(DeliveryAPITestCase):
    """Tests for posting, browsing and updating shipments."""

    def shipment_payload(self, **overrides):
        date_start = timezone.now() + timedelta(days=2)
        payload = {
            'origin_country': 'Germany',
            'origin_city': 'Berlin',
            'dest_country': 'Spain',
            'dest_city': 'Madrid',
            'weight': '3.20',
            'content': 'Documents',
            'date_start': date_start.isoformat(),
            'date_end': (date_start + timedelta(days=5)).isoformat(),
            'price': '25.00',
            'currency': 'eur',
        }
        payload.update(overrides)
        return payload

    def test_create_requires_token(self):
        response = self.client.post('/api/shipments/', self.shipment_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(Shipment.objects.exists())

    def test_create_shipment(self):
        self.authenticate(SENDER)

        response = self.client.post('/api/shipments/', self.shipment_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Shipment.OPEN)
        self.assertEqual(response.data['sender_id'], SENDER)
        self.assertIsNone(response.data['courier_id'])
        self.assertEqual(response.data['currency'], 'EUR')

    def test_create_ignores_client_supplied_status_and_courier(self):
        self.authenticate(SENDER)

        response = self.client.post(
            '/api/shipments/',
            self.shipment_payload(status='delivered', courier_id=COURIER),
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Shipment.OPEN)
        self.assertIsNone(response.data['courier_id'])

    def test_create_validation_errors(self):
        self.authenticate(SENDER)
        date_start = timezone.now() + timedelta(days=5)

        response = self.client.post(
            '/api/shipments/',
            self.shipment_payload(
                content='   ',
                weight='500',
                date_start=date_start.isoformat(),
                date_end=(date_start - timedelta(days=1)).isoformat(),
            ),
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('content', response.data)
        self.assertIn('weight', response.data)

    def test_currency_is_normalized_before_validation(self):
        self.authenticate(SENDER)

        response = self.client.post('/api/shipments/', self.shipment_payload(currency=' gbp '), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['currency'], 'GBP')

        response = self.client.post('/api/shipments/', self.shipment_payload(currency='eu1'), format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('currency', response.data)

    def test_public_browse_with_filters(self):
        make_shipment(weight='2.00')
        make_shipment(weight='20.00', dest_country='France')

        response = self.client.get('/api/shipments/list/', {'dest_country': 'fran'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['dest_country'], 'France')

    def test_browse_rejects_inverted_range(self):
        response = self.client.get('/api/shipments/list/', {'min_price': '50', 'max_price': '10'})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_my_shipments_by_role(self):
        shipment, _ = held_shipment()
        make_shipment(sender=STRANGER)

        self.authenticate(COURIER)
        response = self.client.get('/api/shipments/mine/', {'role': 'courier'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data['results']], [str(shipment.id)])

        response = self.client.get('/api/shipments/mine/', {'role': 'owner'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_state')

    def test_detail_visibility(self):
        open_shipment = make_shipment()
        matched, _ = held_shipment()

        response = self.client.get(f'/api/shipments/{open_shipment.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        self.authenticate(STRANGER)
        response = self.client.get(f'/api/shipments/{matched.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.authenticate(COURIER)
        response = self.client.get(f'/api/shipments/{matched.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['courier_id'], COURIER)

    def test_detail_not_found(self):
        response = self.client.get(f'/api/shipments/{uuid.uuid4()}/')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_sender_cancels(self):
        shipment = make_shipment()
        self.authenticate(SENDER)

        response = self.client.put(
            f'/api/shipments/{shipment.id}/status/', {'status': 'cancelled'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Shipment.CANCELLED)

    def test_status_errors(self):
        shipment, _ = held_shipment()

        self.authenticate(STRANGER)
        response = self.client.put(
            f'/api/shipments/{shipment.id}/status/', {'status': 'on_way'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['code'], 'forbidden')

        self.authenticate(SENDER)
        response = self.client.put(
            f'/api/shipments/{shipment.id}/status/', {'status': 'matched'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.put(
            f'/api/shipments/{shipment.id}/status/', {'status': 'lost'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('status', response.data)


class OfferAPITestCase(DeliveryAPITestCase):
    """Tests for the offer endpoints."""

    def setUp(self):
        super().setUp()
        self.shipment = make_shipment()

    def test_make_offer(self):
        self.authenticate(COURIER)

        response = self.client.post(
            f'/api/shipments/{self.shipment.id}/offers/', {'message': OFFER_MESSAGE}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Offer.PENDING)
        self.assertEqual(response.data['courier_id'], COURIER)

    def test_duplicate_offer_conflicts(self):
        make_offer(self.shipment, COURIER)
        self.authenticate(COURIER)

        response = self.client.post(
            f'/api/shipments/{self.shipment.id}/offers/', {'message': OFFER_MESSAGE}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'conflict')

    def test_list_offers_per_actor(self):
        make_offer(self.shipment, COURIER)
        make_offer(self.shipment, OTHER_COURIER)

        self.authenticate(SENDER)
        response = self.client.get(f'/api/shipments/{self.shipment.id}/offers/')
        self.assertEqual(len(response.data), 2)

        self.authenticate(COURIER)
        response = self.client.get(f'/api/shipments/{self.shipment.id}/offers/')
        self.assertEqual(len(response.data), 1)

        response = self.client.get('/api/offers/mine/')
        self.assertEqual(response.data['count'], 1)

    def test_my_offer_on_shipment(self):
        offer = make_offer(self.shipment, COURIER)

        self.authenticate(COURIER)
        response = self.client.get(f'/api/shipments/{self.shipment.id}/my-offer/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['id'], str(offer.id))

        self.authenticate(OTHER_COURIER)
        response = self.client.get(f'/api/shipments/{self.shipment.id}/my-offer/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'not_found')

    def test_accept_and_reject(self):
        offer = make_offer(self.shipment, COURIER)
        sibling = make_offer(self.shipment, OTHER_COURIER)

        self.authenticate(COURIER)
        response = self.client.post(f'/api/offers/{offer.id}/accept/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.authenticate(SENDER)
        response = self.client.post(f'/api/offers/{offer.id}/accept/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Shipment.MATCHED)
        self.assertEqual(response.data['courier_id'], COURIER)

        response = self.client.post(f'/api/offers/{sibling.id}/reject/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_state')


class EscrowAPITestCase(DeliveryAPITestCase):
    """Tests for hold, release, refund and the transaction list."""

    def setUp(self):
        super().setUp()
        self.shipment = make_shipment()
        add_card(SENDER)

    def hold(self, courier=COURIER):
        return self.client.post(
            '/api/payments/hold/',
            {'shipment_id': str(self.shipment.id), 'courier_id': courier},
            format='json'
        )

    def test_hold_then_conflict(self):
        self.authenticate(SENDER)

        response = self.hold()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], EscrowTransaction.HELD)
        self.assertEqual(response.data['payment_method']['last_four'], '4242')

        response = self.hold(OTHER_COURIER)
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(set(response.data), {'detail', 'code'})
        self.assertEqual(response.data['code'], 'conflict')

    def test_hold_by_non_sender(self):
        self.authenticate(STRANGER)

        response = self.hold()

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_hold_requires_fields(self):
        self.authenticate(SENDER)

        response = self.client.post('/api/payments/hold/', {'courier_id': COURIER}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('shipment_id', response.data)

    def test_release_and_refund(self):
        self.authenticate(SENDER)
        self.hold()

        response = self.client.post(f'/api/payments/{self.shipment.id}/refund/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], EscrowTransaction.REFUNDED)

        response = self.client.post(f'/api/payments/{self.shipment.id}/release/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        self.hold(OTHER_COURIER)
        response = self.client.post(f'/api/payments/{self.shipment.id}/release/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], EscrowTransaction.RELEASED)

    def test_transactions_are_paginated_and_scoped(self):
        self.authenticate(SENDER)
        self.hold()
        held_shipment(STRANGER, OTHER_COURIER)

        response = self.client.get('/api/payments/transactions/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['payer_id'], SENDER)

        self.authenticate(COURIER)
        response = self.client.get('/api/payments/transactions/')
        self.assertEqual(response.data['count'], 1)


class ConfirmationAPITestCase(DeliveryAPITestCase):
    """Tests for the handover and delivery confirmation endpoints."""

    def test_handover_then_delivery(self):
        shipment, transaction = held_shipment()

        self.authenticate(COURIER)
        response = self.client.post(f'/api/shipments/{shipment.id}/handover/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['both_confirmed'])
        self.assertEqual(response.data['shipment']['status'], Shipment.MATCHED)

        self.authenticate(SENDER)
        response = self.client.post(f'/api/shipments/{shipment.id}/handover/')
        self.assertTrue(response.data['both_confirmed'])
        self.assertEqual(response.data['shipment']['status'], Shipment.ON_WAY)

        response = self.client.post(f'/api/shipments/{shipment.id}/delivery/')
        self.assertFalse(response.data['both_confirmed'])

        self.authenticate(COURIER)
        response = self.client.post(f'/api/shipments/{shipment.id}/delivery/')
        self.assertTrue(response.data['both_confirmed'])
        self.assertEqual(response.data['shipment']['status'], Shipment.DELIVERED)

        transaction.refresh_from_db()
        self.assertEqual(transaction.status, EscrowTransaction.RELEASED)

    def test_delivery_before_handover(self):
        shipment, _ = held_shipment()
        self.authenticate(SENDER)

        response = self.client.post(f'/api/shipments/{shipment.id}/delivery/')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_stranger_cannot_confirm(self):
        shipment, _ = on_way_shipment()
        self.authenticate(STRANGER)

        response = self.client.post(f'/api/shipments/{shipment.id}/delivery/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class PaymentMethodAPITestCase(DeliveryAPITestCase):
    """Tests for the payment-method endpoints."""

    def test_add_list_default_delete(self):
        self.authenticate(SENDER)
        payload = {
            'card_number': '4242 4242 4242 4242',
            'card_holder': 'Alice Sender',
            'expiry_month': 12,
            'expiry_year': timezone.now().year + 2,
        }

        response = self.client.post('/api/payments/methods/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['is_default'])
        self.assertEqual(response.data['card_type'], 'visa')
        self.assertNotIn('card_number', response.data)

        second = self.client.post(
            '/api/payments/methods/', {**payload, 'card_number': '5555555555554444'}, format='json'
        )
        self.assertFalse(second.data['is_default'])

        response = self.client.put(f"/api/payments/methods/{second.data['id']}/default/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['is_default'])

        response = self.client.get('/api/payments/methods/')
        self.assertEqual(response.data[0]['id'], second.data['id'])

        response = self.client.delete(f"/api/payments/methods/{second.data['id']}/")
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertTrue(PaymentMethod.objects.get(user_id=SENDER).is_default)

    def test_invalid_card(self):
        self.authenticate(SENDER)

        response = self.client.post(
            '/api/payments/methods/',
            {'card_number': '12ab', 'card_holder': 'A', 'expiry_month': 13, 'expiry_year': 2030},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('card_number', response.data)
        self.assertIn('expiry_month', response.data)

    def test_foreign_card(self):
        card = add_card(SENDER)
        self.authenticate(STRANGER)

        response = self.client.delete(f'/api/payments/methods/{card.id}/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class ConversationAPITestCase(DeliveryAPITestCase):
    """Tests for transcript access."""

    def test_participants_only(self):
        shipment = make_shipment()
        make_offer(shipment, COURIER)
        conversation = Conversation.objects.get(shipment=shipment)

        self.authenticate(COURIER)
        response = self.client.get(f'/api/conversations/{conversation.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['messages']), 1)
        self.assertEqual(response.data['messages'][0]['content'], OFFER_MESSAGE)

        self.authenticate(STRANGER)
        response = self.client.get(f'/api/conversations/{conversation.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        response = self.client.get(f'/api/conversations/{uuid.uuid4()}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class OfferAcceptConcurrencyTests(TransactionTestCase):
    """Competing acceptances never produce two winners."""

    def test_concurrent_accepts(self):
        shipment = make_shipment()
        first = make_offer(shipment, COURIER)
        second = make_offer(shipment, OTHER_COURIER)

        results = []

        def accept(offer_id):
            client = APIClient()
            client.credentials(HTTP_AUTHORIZATION=f'Bearer {token_for(SENDER)}')
            try:
                response = client.post(f'/api/offers/{offer_id}/accept/')
                results.append(response.status_code)
            finally:
                connection.close()

        threads = [
            threading.Thread(target=accept, args=(first.id,)),
            threading.Thread(target=accept, args=(second.id,)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertLessEqual(results.count(status.HTTP_200_OK), 1)
        for code in results:
            self.assertIn(code, (status.HTTP_200_OK, status.HTTP_403_FORBIDDEN, status.HTTP_409_CONFLICT))

        self.assertLessEqual(
            Offer.objects.filter(shipment=shipment, status=Offer.ACCEPTED).count(), 1
        )
        shipment.refresh_from_db()
        self.assertEqual(shipment_violations(shipment), [])

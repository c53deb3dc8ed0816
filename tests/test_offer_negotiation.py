"""
Tests for offer negotiation.

Test Coverage:
- Offer creation and its conversation side effect (scenario A)
- One offer per courier, no self-offers, open shipments only (scenario E)
- Acceptance exclusivity and sibling rejection
- Rejection leaves the shipment untouched
- Offer visibility per actor, and a courier's own offer on a shipment
"""

import uuid

from django.test import TestCase, override_settings

from delivery import offers
from delivery.audit import shipment_violations
from delivery.conversations import canonical_pair
from delivery.exceptions import Conflict, Forbidden, InvalidState, NotFound
from delivery.models import Conversation, Message, Offer, Shipment

from tests.factories import (
    COURIER,
    OFFER_MESSAGE,
    OTHER_COURIER,
    SENDER,
    STRANGER,
    held_shipment,
    make_offer,
    make_shipment,
)


class OfferCreationTestCase(TestCase):
    """Tests for couriers making offers."""

    def setUp(self):
        self.shipment = make_shipment()

    def test_offer_opens_conversation_with_offer_message(self):
        """The offer text lands in the sender/courier thread."""
        offer = offers.create_offer(self.shipment.id, COURIER, 'needs 10kg slot')

        self.assertEqual(offer.status, Offer.PENDING)
        self.assertEqual(offer.courier_id, COURIER)

        user1_id, user2_id = canonical_pair(SENDER, COURIER)
        conversation = Conversation.objects.get(shipment=self.shipment)
        self.assertEqual((conversation.user1_id, conversation.user2_id), (user1_id, user2_id))
        self.assertEqual(conversation.last_message, 'needs 10kg slot')

        messages = list(conversation.messages.all())
        self.assertEqual(len(messages), 1)
        self.assertEqual(messages[0].kind, Message.OFFER)
        self.assertEqual(messages[0].sender_id, COURIER)

    def test_second_offer_from_same_courier_conflicts(self):
        make_offer(self.shipment, COURIER)

        with self.assertRaises(Conflict):
            make_offer(self.shipment, COURIER)

        self.assertEqual(Offer.objects.filter(shipment=self.shipment).count(), 1)

    def test_rejected_courier_cannot_offer_again(self):
        offer = make_offer(self.shipment, COURIER)
        offers.reject_offer(offer.id, SENDER)

        with self.assertRaises(Conflict):
            make_offer(self.shipment, COURIER)

    def test_sender_cannot_offer_on_own_shipment(self):
        with self.assertRaises(Forbidden):
            make_offer(self.shipment, SENDER)

    def test_offer_on_matched_shipment_is_forbidden(self):
        """A second courier arriving after the match is turned away."""
        first = make_offer(self.shipment, COURIER)
        offers.accept_offer(first.id, SENDER)

        with self.assertRaises(Forbidden):
            make_offer(self.shipment, OTHER_COURIER)

    def test_short_message_is_rejected(self):
        with self.assertRaises(InvalidState):
            offers.create_offer(self.shipment.id, COURIER, 'hi')

        self.assertFalse(Offer.objects.exists())

    @override_settings(DELIVERY_MIN_OFFER_MESSAGE_LENGTH=2)
    def test_minimum_message_length_is_configurable(self):
        offer = offers.create_offer(self.shipment.id, COURIER, 'ok')
        self.assertEqual(offer.message, 'ok')

    def test_missing_shipment(self):
        with self.assertRaises(NotFound):
            offers.create_offer(uuid.uuid4(), COURIER, OFFER_MESSAGE)


class OfferAcceptanceTestCase(TestCase):
    """Tests for the sender accepting an offer."""

    def setUp(self):
        self.shipment = make_shipment()
        self.offer = make_offer(self.shipment, COURIER)
        self.sibling = make_offer(self.shipment, OTHER_COURIER)

    def test_accept_matches_shipment_and_rejects_siblings(self):
        shipment = offers.accept_offer(self.offer.id, SENDER)

        self.assertEqual(shipment.status, Shipment.MATCHED)
        self.assertEqual(shipment.courier_id, COURIER)

        self.offer.refresh_from_db()
        self.sibling.refresh_from_db()
        self.assertEqual(self.offer.status, Offer.ACCEPTED)
        self.assertEqual(self.sibling.status, Offer.REJECTED)
        self.assertEqual(shipment_violations(shipment), [])

    def test_accept_marks_conversation_matched(self):
        offers.accept_offer(self.offer.id, SENDER)

        user1_id, user2_id = canonical_pair(SENDER, COURIER)
        conversation = Conversation.objects.get(
            shipment=self.shipment, user1_id=user1_id, user2_id=user2_id
        )
        self.assertEqual(conversation.status, Conversation.MATCHED)
        self.assertEqual(conversation.messages.last().kind, Message.SYSTEM)

        other_pair = canonical_pair(SENDER, OTHER_COURIER)
        other = Conversation.objects.get(
            shipment=self.shipment, user1_id=other_pair[0], user2_id=other_pair[1]
        )
        self.assertNotEqual(other.status, Conversation.MATCHED)

    def test_courier_cannot_accept(self):
        """The acceptance path belongs to the sender."""
        with self.assertRaises(Forbidden):
            offers.accept_offer(self.offer.id, COURIER)

        self.shipment.refresh_from_db()
        self.assertEqual(self.shipment.status, Shipment.OPEN)

    def test_second_accept_is_forbidden(self):
        """Only one offer can win; the loser sees a shipment that is no longer open."""
        offers.accept_offer(self.offer.id, SENDER)

        with self.assertRaises(Forbidden):
            offers.accept_offer(self.sibling.id, SENDER)

        self.assertEqual(
            Offer.objects.filter(shipment=self.shipment, status=Offer.ACCEPTED).count(), 1
        )
        self.shipment.refresh_from_db()
        self.assertEqual(self.shipment.courier_id, COURIER)

    def test_rejected_offer_cannot_be_accepted(self):
        offers.reject_offer(self.sibling.id, SENDER)

        with self.assertRaises(InvalidState):
            offers.accept_offer(self.sibling.id, SENDER)

    def test_offer_on_held_shipment_is_forbidden(self):
        """A shipment matched through a payment hold is closed to offers."""
        shipment, _ = held_shipment(courier=STRANGER)

        with self.assertRaises(Forbidden):
            make_offer(shipment, COURIER)

    def test_missing_offer(self):
        with self.assertRaises(NotFound):
            offers.accept_offer(uuid.uuid4(), SENDER)


class OfferRejectionTestCase(TestCase):
    """Tests for the sender rejecting an offer."""

    def setUp(self):
        self.shipment = make_shipment()
        self.offer = make_offer(self.shipment, COURIER)

    def test_reject_leaves_shipment_open(self):
        rejected = offers.reject_offer(self.offer.id, SENDER)

        self.assertEqual(rejected.status, Offer.REJECTED)
        self.shipment.refresh_from_db()
        self.assertEqual(self.shipment.status, Shipment.OPEN)
        self.assertIsNone(self.shipment.courier_id)

    def test_only_sender_can_reject(self):
        for actor in (COURIER, STRANGER):
            with self.assertRaises(Forbidden):
                offers.reject_offer(self.offer.id, actor)

    def test_reject_twice(self):
        offers.reject_offer(self.offer.id, SENDER)

        with self.assertRaises(InvalidState):
            offers.reject_offer(self.offer.id, SENDER)

    def test_missing_offer(self):
        with self.assertRaises(NotFound):
            offers.reject_offer(uuid.uuid4(), SENDER)


class OfferVisibilityTestCase(TestCase):

    def test_sender_sees_all_couriers_see_their_own(self):
        shipment = make_shipment()
        mine = make_offer(shipment, COURIER)
        theirs = make_offer(shipment, OTHER_COURIER)

        self.assertCountEqual(list(offers.offers_for_shipment(shipment.id, SENDER)), [mine, theirs])
        self.assertEqual(list(offers.offers_for_shipment(shipment.id, COURIER)), [mine])
        self.assertEqual(list(offers.offers_for_shipment(shipment.id, STRANGER)), [])

    def test_offers_by_courier(self):
        first = make_offer(make_shipment(), COURIER)
        second = make_offer(make_shipment(), COURIER)
        make_offer(make_shipment(), OTHER_COURIER)

        self.assertCountEqual(list(offers.offers_by_courier(COURIER)), [first, second])

    def test_offer_of_courier(self):
        shipment = make_shipment()
        mine = make_offer(shipment, COURIER)
        make_offer(shipment, OTHER_COURIER)

        self.assertEqual(offers.offer_of_courier(shipment.id, COURIER), mine)

        with self.assertRaises(NotFound):
            offers.offer_of_courier(shipment.id, STRANGER)
        with self.assertRaises(NotFound):
            offers.offer_of_courier(uuid.uuid4(), COURIER)

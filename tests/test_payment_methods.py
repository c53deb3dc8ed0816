"""
Tests for the payment-method vault.
"""

import uuid

from django.core.exceptions import ValidationError
from django.test import TestCase

from delivery import escrow, payment_methods
from delivery.exceptions import Forbidden, InvalidState, NotFound
from delivery.models import PaymentMethod, Shipment
from delivery.validators import detect_card_type, validate_card_number

from tests.factories import COURIER, SENDER, STRANGER, add_card, make_shipment


class PaymentMethodVaultTestCase(TestCase):
    """Tests for adding, listing, defaulting and deleting cards."""

    def test_first_card_becomes_default(self):
        card = add_card(SENDER, card_number='4242 4242 4242 4242')

        self.assertTrue(card.is_default)
        self.assertEqual(card.card_type, 'visa')
        self.assertEqual(card.last_four, '4242')

    def test_later_cards_are_not_default_unless_asked(self):
        first = add_card(SENDER)
        second = add_card(SENDER, card_number='5555555555554444')

        self.assertFalse(second.is_default)

        third = add_card(SENDER, card_number='378282246310005', set_as_default=True)

        first.refresh_from_db()
        self.assertTrue(third.is_default)
        self.assertFalse(first.is_default)
        self.assertEqual(PaymentMethod.objects.filter(user_id=SENDER, is_default=True).count(), 1)

    def test_list_puts_default_first(self):
        add_card(SENDER)
        default = add_card(SENDER, card_number='5555555555554444', set_as_default=True)

        listed = list(payment_methods.list_payment_methods(SENDER))

        self.assertEqual(listed[0], default)
        self.assertEqual(len(listed), 2)
        self.assertEqual(list(payment_methods.list_payment_methods(STRANGER)), [])

    def test_set_default(self):
        first = add_card(SENDER)
        second = add_card(SENDER, card_number='5555555555554444')

        payment_methods.set_default_payment_method(SENDER, second.id)

        first.refresh_from_db()
        second.refresh_from_db()
        self.assertFalse(first.is_default)
        self.assertTrue(second.is_default)

    def test_cannot_touch_someone_elses_card(self):
        card = add_card(SENDER)

        with self.assertRaises(Forbidden):
            payment_methods.set_default_payment_method(STRANGER, card.id)
        with self.assertRaises(Forbidden):
            payment_methods.delete_payment_method(STRANGER, card.id)

        self.assertTrue(PaymentMethod.objects.filter(pk=card.pk).exists())

    def test_deleting_default_promotes_remaining_card(self):
        default = add_card(SENDER)
        other = add_card(SENDER, card_number='5555555555554444')

        payment_methods.delete_payment_method(SENDER, default.id)

        other.refresh_from_db()
        self.assertTrue(other.is_default)

    def test_missing_card(self):
        with self.assertRaises(NotFound):
            payment_methods.delete_payment_method(SENDER, uuid.uuid4())

    def test_resolve_prefers_explicit_then_default(self):
        default = add_card(SENDER)
        other = add_card(SENDER, card_number='5555555555554444')

        self.assertEqual(payment_methods.resolve_payment_method(SENDER), default)
        self.assertEqual(payment_methods.resolve_payment_method(SENDER, other.id), other)

    def test_resolve_without_cards(self):
        with self.assertRaises(InvalidState):
            payment_methods.resolve_payment_method(SENDER)

    def test_resolve_unknown_explicit_card(self):
        add_card(SENDER)

        with self.assertRaises(InvalidState):
            payment_methods.resolve_payment_method(SENDER, uuid.uuid4())


class CardValidatorsTestCase(TestCase):

    def test_card_type_detection(self):
        self.assertEqual(detect_card_type('4111111111111111'), 'visa')
        self.assertEqual(detect_card_type('5500-0000-0000-0004'), 'mastercard')
        self.assertEqual(detect_card_type('340000000000009'), 'amex')
        self.assertEqual(detect_card_type('6011000000000004'), 'discover')
        self.assertEqual(detect_card_type('9999999999999'), 'unknown')

    def test_card_number_validation(self):
        validate_card_number('4242 4242 4242 4242')

        for bad in ('4242', '4242abcd42424242', '1' * 20):
            with self.assertRaises(ValidationError):
                validate_card_number(bad)


class MalformedIdTestCase(TestCase):
    """Ids that are not UUIDs behave like ids that do not exist."""

    def setUp(self):
        add_card(SENDER)

    def test_owned_lookup_with_malformed_id(self):
        with self.assertRaises(NotFound):
            payment_methods.set_default_payment_method(SENDER, 'not-a-uuid')
        with self.assertRaises(NotFound):
            payment_methods.delete_payment_method(SENDER, 'not-a-uuid')

    def test_resolve_with_malformed_id(self):
        with self.assertRaises(InvalidState):
            payment_methods.resolve_payment_method(SENDER, 'not-a-uuid')

    def test_hold_with_malformed_card_id(self):
        shipment = make_shipment()

        with self.assertRaises(InvalidState):
            escrow.hold_payment(SENDER, shipment.id, COURIER, payment_method_id='not-a-uuid')

        shipment.refresh_from_db()
        self.assertEqual(shipment.status, Shipment.OPEN)

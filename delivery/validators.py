"""
Field validators for shipments and the payment-method vault.
"""

import re
from django.core.exceptions import ValidationError


CARD_TYPE_PATTERNS = [
    ('visa', re.compile(r'^4')),
    ('mastercard', re.compile(r'^5[1-5]')),
    ('amex', re.compile(r'^3[47]')),
    ('discover', re.compile(r'^6(?:011|5)')),
]


def validate_phone_number(value):
    """
    Validate the optional contact phone a sender leaves on a shipment.

    Digits, spaces, dashes, parentheses and a leading plus are accepted;
    at least 10 digits are required.

    Raises:
        ValidationError: If the number is malformed
    """
    if not value:
        return

    if not re.match(r'^[\d\s\-\+\(\)]+$', value):
        raise ValidationError(
            'Phone number can only contain digits, spaces, dashes, parentheses, and plus sign.',
            code='invalid_phone_chars'
        )

    digits = re.sub(r'\D', '', value)

    if len(digits) < 10:
        raise ValidationError(
            'Phone number must contain at least 10 digits.',
            code='phone_too_short'
        )

    if len(set(digits)) == 1:
        raise ValidationError(
            'Phone number cannot be all the same digit.',
            code='invalid_phone_pattern'
        )


def validate_currency_code(value):
    """
    Validate an ISO-4217 style currency code (three uppercase letters).

    Raises:
        ValidationError: If the code is malformed
    """
    if not value or not re.fullmatch(r'[A-Z]{3}', value):
        raise ValidationError(
            'Currency must be a three-letter uppercase code such as USD.',
            code='invalid_currency'
        )


def normalize_card_number(value):
    """Strip whitespace and dashes from a card number."""
    return re.sub(r'[\s\-]', '', value or '')


def validate_card_number(value):
    """
    Validate a raw card number before it is reduced to its last four digits.

    Only length and character checks are performed: the vault never talks
    to a card network.

    Raises:
        ValidationError: If the number cannot be a card number
    """
    cleaned = normalize_card_number(value)

    if not cleaned.isdigit():
        raise ValidationError(
            'Card number can only contain digits.',
            code='invalid_card_chars'
        )

    if len(cleaned) < 13 or len(cleaned) > 19:
        raise ValidationError(
            'Invalid card number.',
            code='invalid_card_length'
        )


def detect_card_type(card_number):
    """Return the card brand for a card number, or 'unknown'."""
    cleaned = normalize_card_number(card_number)
    for card_type, pattern in CARD_TYPE_PATTERNS:
        if pattern.match(cleaned):
            return card_type
    return 'unknown'

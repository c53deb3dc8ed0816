"""
Payment-method vault.

Cards are stored as brand + last four digits only. The escrow ledger reads
this table for ownership checks and to pick the card a hold is placed on.
"""

import logging

from django.core.exceptions import ValidationError
from django.db import transaction

from .exceptions import Forbidden, InvalidState, NotFound
from .models import PaymentMethod
from .validators import detect_card_type, normalize_card_number

logger = logging.getLogger(__name__)


def add_payment_method(user_id, card_number, card_holder, expiry_month, expiry_year, set_as_default=False):
    """
    Store a card for a user. The first card a user adds becomes the default.
    """
    cleaned = normalize_card_number(card_number)

    with transaction.atomic():
        has_cards = PaymentMethod.objects.select_for_update().filter(user_id=user_id).exists()
        make_default = set_as_default or not has_cards

        if make_default:
            PaymentMethod.objects.filter(user_id=user_id, is_default=True).update(is_default=False)

        method = PaymentMethod.objects.create(
            user_id=user_id,
            card_type=detect_card_type(cleaned),
            last_four=cleaned[-4:],
            card_holder=card_holder,
            expiry_month=expiry_month,
            expiry_year=expiry_year,
            is_default=make_default,
        )

    logger.info(
        f"Payment method added. ID: {method.id}, User: {user_id}, "
        f"Card: {method.card_type} ****{method.last_four}, Default: {method.is_default}"
    )
    return method


def list_payment_methods(user_id):
    return PaymentMethod.objects.filter(user_id=user_id).order_by('-is_default', '-created_at')


def get_owned_payment_method(user_id, payment_method_id):
    """
    Raises:
        NotFound: If the card does not exist
        Forbidden: If the card belongs to someone else
    """
    try:
        method = PaymentMethod.objects.get(pk=payment_method_id)
    except (PaymentMethod.DoesNotExist, ValidationError, ValueError):
        raise NotFound(f'Payment method with ID {payment_method_id} does not exist.')

    if method.user_id != user_id:
        raise Forbidden('Not your payment method.')
    return method


def set_default_payment_method(user_id, payment_method_id):
    with transaction.atomic():
        method = get_owned_payment_method(user_id, payment_method_id)
        PaymentMethod.objects.filter(user_id=user_id, is_default=True).exclude(pk=method.pk).update(
            is_default=False
        )
        method.is_default = True
        method.save(update_fields=['is_default', 'updated_at'])

    logger.info(f"Default payment method changed. ID: {method.id}, User: {user_id}")
    return method


def delete_payment_method(user_id, payment_method_id):
    """
    Delete a card. If it was the default, the newest remaining card is promoted.
    """
    with transaction.atomic():
        method = get_owned_payment_method(user_id, payment_method_id)
        was_default = method.is_default
        method.delete()

        if was_default:
            replacement = PaymentMethod.objects.filter(user_id=user_id).order_by('-created_at').first()
            if replacement:
                replacement.is_default = True
                replacement.save(update_fields=['is_default', 'updated_at'])

    logger.info(f"Payment method deleted. ID: {payment_method_id}, User: {user_id}")


def resolve_payment_method(user_id, payment_method_id=None):
    """
    Pick the card a hold is placed on.

    An explicit id must belong to the user; otherwise the user's default
    card is used.

    Raises:
        InvalidState: If the explicit card is unusable or no default exists
    """
    if payment_method_id:
        try:
            method = PaymentMethod.objects.filter(pk=payment_method_id).first()
        except (ValidationError, ValueError):
            method = None
        if method is None or method.user_id != user_id:
            raise InvalidState('Invalid payment method.')
        return method

    method = PaymentMethod.objects.filter(user_id=user_id, is_default=True).first()
    if method is None:
        raise InvalidState('No payment method available. Please add a card first.')
    return method

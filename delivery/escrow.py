"""
Escrow ledger: hold, release and refund.

Each escrow row covers one hold cycle of one shipment and moves
held -> released or held -> refunded, never back. A refunded row stays in
the table for audit; the shipment can then be matched and held again,
which creates a fresh row.
"""

import logging

from django.db.models import Q

from . import store
from .conversations import get_conversation_gateway, notify, post_to_pair
from .exceptions import Conflict, Forbidden, InvalidState, NotFound
from .models import Conversation, EscrowTransaction, Message, Offer, Shipment
from .payment_methods import resolve_payment_method

logger = logging.getLogger(__name__)


def hold_payment(sender_id, shipment_id, courier_id, payment_method_id=None, gateway=None):
    """
    Hold the shipment price in escrow and match the shipment to a courier.

    If the courier has a pending offer on the shipment it is accepted (and
    the other offers rejected) in the same transaction, so the offer table
    agrees with the match.

    Raises:
        NotFound: Shipment does not exist
        Forbidden: Actor is not the sender
        InvalidState: Shipment not open, courier is the sender, or no usable card
        Conflict: An active escrow row already exists for the shipment

    Returns:
        EscrowTransaction: The new held row
    """
    with store.ledger_transaction('hold_payment'):
        shipment = store.get_shipment(shipment_id, for_update=True)

        if shipment.sender_id != sender_id:
            raise Forbidden('Only the sender can hold payment.')

        if store.active_transaction(shipment.pk, for_update=True) is not None:
            raise Conflict('Payment already exists for this shipment.')

        if shipment.status != Shipment.OPEN:
            raise InvalidState('Shipment is not open for matching.')

        if courier_id == sender_id:
            raise InvalidState('The sender cannot carry their own shipment.')

        payment_method = resolve_payment_method(sender_id, payment_method_id)

        escrow = EscrowTransaction.objects.create(
            shipment=shipment,
            amount=shipment.price,
            currency=shipment.currency,
            status=EscrowTransaction.HELD,
            description=f'Payment held for shipment {shipment.origin_city} -> {shipment.dest_city}',
            payer_id=sender_id,
            payee_id=courier_id,
            payment_method=payment_method,
        )

        offer = Offer.objects.select_for_update().filter(
            shipment=shipment, courier_id=courier_id, status=Offer.PENDING
        ).first()
        if offer is not None:
            Offer.objects.filter(shipment=shipment).exclude(pk=offer.pk).filter(
                status=Offer.PENDING
            ).update(status=Offer.REJECTED)
            offer.status = Offer.ACCEPTED
            offer.save()

        store.update_shipment(
            shipment,
            status=Shipment.MATCHED,
            courier_id=courier_id,
            **Shipment.UNCONFIRMED,
        )

    logger.info(
        f"Payment held. Transaction ID: {escrow.id}, Shipment: {shipment.id}, "
        f"Amount: {escrow.amount} {escrow.currency}, Payer: {sender_id}, Payee: {courier_id}, "
        f"Offer accepted: {offer.id if offer else None}"
    )

    gateway = gateway or get_conversation_gateway()
    notify(
        post_to_pair,
        gateway,
        shipment.pk,
        sender_id,
        courier_id,
        Message.SYSTEM,
        f'{escrow.amount} {escrow.currency} held in escrow. Funds will be released upon delivery.',
        status=Conversation.MATCHED,
    )
    return escrow


def _held_for_payer(actor_id, shipment_id, action):
    """
    Lock the shipment and its active escrow row and check the payer.

    Raises:
        NotFound: No escrow row for the shipment
        Forbidden: Actor is not the payer
        InvalidState: Row is not held
    """
    shipment = store.get_shipment(shipment_id, for_update=True)
    escrow = store.active_transaction(shipment.pk, for_update=True)

    if escrow is None:
        raise NotFound(f'Transaction for shipment {shipment_id} does not exist.')

    if escrow.payer_id != actor_id:
        raise Forbidden(f'Only the sender can {action} payment.')

    if escrow.status != EscrowTransaction.HELD:
        raise InvalidState(f'Payment is not in held status and cannot be {action}d.')

    return shipment, escrow


def release_payment(actor_id, shipment_id):
    """
    Release held funds to the courier and mark the shipment delivered.

    Returns:
        EscrowTransaction: The released row
    """
    with store.ledger_transaction('release_payment'):
        shipment, escrow = _held_for_payer(actor_id, shipment_id, 'release')

        if shipment.courier_id is None:
            raise InvalidState('Shipment has no courier to release funds to.')

        old_status = shipment.status
        escrow.release(payee_id=shipment.courier_id)
        store.update_shipment(shipment, status=Shipment.DELIVERED)

    logger.info(
        f"Payment released. Transaction ID: {escrow.id}, Shipment: {shipment.id}, "
        f"Old Status: {old_status}, Amount: {escrow.amount} {escrow.currency}, Payee: {escrow.payee_id}"
    )
    return escrow


def refund_payment(actor_id, shipment_id):
    """
    Return held funds to the sender and reopen the shipment.

    The shipment goes back to open with no courier; an accepted offer from
    the refunded courier is rejected so no accepted offer outlives its match.

    Returns:
        EscrowTransaction: The refunded row
    """
    with store.ledger_transaction('refund_payment'):
        shipment, escrow = _held_for_payer(actor_id, shipment_id, 'refund')

        if shipment.status not in (Shipment.OPEN, Shipment.MATCHED):
            raise InvalidState(f'Cannot refund a shipment that is {shipment.status}.')

        escrow.refund()

        Offer.objects.filter(shipment=shipment, status=Offer.ACCEPTED).update(status=Offer.REJECTED)

        store.update_shipment(
            shipment,
            status=Shipment.OPEN,
            courier_id=None,
            **Shipment.UNCONFIRMED,
        )

    logger.info(
        f"Payment refunded. Transaction ID: {escrow.id}, Shipment: {shipment.id}, "
        f"Amount: {escrow.amount} {escrow.currency}, Payer: {escrow.payer_id}"
    )
    return escrow


def release_held_funds(shipment):
    """
    Release every held row of a shipment to its courier.

    Must be called inside the caller's ledger transaction, with the
    shipment row already locked.

    Returns:
        list: The released rows
    """
    released = store.held_transactions(shipment.pk)
    for escrow in released:
        escrow.release(payee_id=shipment.courier_id)
        logger.info(
            f"Escrow released on delivery. Transaction ID: {escrow.id}, "
            f"Shipment: {shipment.id}, Payee: {shipment.courier_id}"
        )
    return released


def transactions_for_user(user_id):
    """Escrow rows where the user is payer or payee, newest first."""
    return EscrowTransaction.objects.filter(
        Q(payer_id=user_id) | Q(payee_id=user_id)
    ).select_related('shipment', 'payment_method').order_by('-created_at')

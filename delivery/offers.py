"""
Offer negotiation.

A courier makes at most one offer per shipment. The sender accepts one,
which rejects every sibling and matches the shipment in the same
transaction, or rejects offers one by one.
"""

import logging

from django.conf import settings

from . import store
from .conversations import get_conversation_gateway, notify, post_to_pair
from .exceptions import Conflict, Forbidden, InvalidState, NotFound
from .models import Conversation, Message, Offer, Shipment

logger = logging.getLogger(__name__)


def create_offer(shipment_id, courier_id, message, gateway=None):
    """
    Make an offer to carry a shipment and post it into the negotiation thread.

    Raises:
        NotFound: Shipment does not exist
        Forbidden: Shipment not open, or the courier is the sender
        Conflict: The courier already made an offer on this shipment
        InvalidState: Message shorter than the configured minimum

    Returns:
        Offer: The pending offer
    """
    min_length = getattr(settings, 'DELIVERY_MIN_OFFER_MESSAGE_LENGTH', 10)
    message = (message or '').strip()

    with store.ledger_transaction('create_offer'):
        shipment = store.get_shipment(shipment_id, for_update=True)

        if shipment.status != Shipment.OPEN:
            raise Forbidden('Cannot make offer on a shipment that is not open.')

        if shipment.sender_id == courier_id:
            raise Forbidden('Cannot make offer on your own shipment.')

        if Offer.objects.filter(shipment=shipment, courier_id=courier_id).exists():
            raise Conflict('You have already made an offer on this shipment.')

        if len(message) < min_length:
            raise InvalidState(f'Offer message must be at least {min_length} characters.')

        offer = Offer.objects.create(
            shipment=shipment,
            courier_id=courier_id,
            message=message,
        )

    logger.info(
        f"Offer created. Offer ID: {offer.id}, Shipment: {shipment.id}, "
        f"Courier: {courier_id}, Sender: {shipment.sender_id}"
    )

    gateway = gateway or get_conversation_gateway()
    notify(
        post_to_pair,
        gateway,
        shipment.pk,
        courier_id,
        shipment.sender_id,
        Message.OFFER,
        message,
    )
    return offer


def accept_offer(offer_id, actor_id, gateway=None):
    """
    Accept an offer: the offer wins, its siblings lose, the shipment is matched.

    Raises:
        NotFound: Offer does not exist
        Forbidden: Actor is not the sender, or the shipment is no longer open

    Returns:
        Shipment: The matched shipment
    """
    with store.ledger_transaction('accept_offer'):
        offer = store.lock_offer(offer_id)
        shipment = offer.shipment

        if shipment.sender_id != actor_id:
            raise Forbidden('Only the sender can accept offers.')

        if shipment.status != Shipment.OPEN:
            raise Forbidden('This shipment is no longer open.')

        if offer.status != Offer.PENDING:
            raise InvalidState(f'Cannot accept an offer that is {offer.status}.')

        rejected = Offer.objects.filter(shipment=shipment).exclude(pk=offer.pk).exclude(
            status=Offer.REJECTED
        ).update(status=Offer.REJECTED)

        offer.status = Offer.ACCEPTED
        offer.save()

        store.update_shipment(
            shipment,
            status=Shipment.MATCHED,
            courier_id=offer.courier_id,
            **Shipment.UNCONFIRMED,
        )

    logger.info(
        f"Offer accepted. Offer ID: {offer.id}, Shipment: {shipment.id}, "
        f"Courier: {offer.courier_id}, Sibling offers rejected: {rejected}"
    )

    gateway = gateway or get_conversation_gateway()
    notify(
        post_to_pair,
        gateway,
        shipment.pk,
        actor_id,
        offer.courier_id,
        Message.SYSTEM,
        'Offer accepted. The shipment is now matched.',
        status=Conversation.MATCHED,
    )
    return shipment


def reject_offer(offer_id, actor_id):
    """
    Reject a single offer. The shipment is not touched.

    Raises:
        NotFound: Offer does not exist
        Forbidden: Actor is not the sender
        InvalidState: Offer is not pending

    Returns:
        Offer: The rejected offer
    """
    with store.ledger_transaction('reject_offer'):
        offer = store.lock_offer(offer_id)

        if offer.shipment.sender_id != actor_id:
            raise Forbidden('Only the sender can reject offers.')

        if offer.status != Offer.PENDING:
            raise InvalidState(f'Cannot reject an offer that is {offer.status}.')

        offer.status = Offer.REJECTED
        offer.save()

    logger.info(f"Offer rejected. Offer ID: {offer.id}, Shipment: {offer.shipment_id}, Sender: {actor_id}")
    return offer


def offers_for_shipment(shipment_id, actor_id):
    """The sender sees every offer on the shipment; anyone else only their own."""
    shipment = store.get_shipment(shipment_id)
    offers = Offer.objects.filter(shipment=shipment)
    if shipment.sender_id != actor_id:
        offers = offers.filter(courier_id=actor_id)
    return offers.order_by('-created_at')


def offers_by_courier(courier_id):
    return Offer.objects.filter(courier_id=courier_id).select_related('shipment').order_by('-created_at')



def offer_of_courier(shipment_id, courier_id):
    """
    The offer a courier made on a shipment.

    Raises:
        NotFound: Shipment does not exist, or the courier made no offer on it
    """
    shipment = store.get_shipment(shipment_id)
    offer = Offer.objects.filter(shipment=shipment, courier_id=courier_id).first()
    if offer is None:
        raise NotFound('You have not made an offer on this shipment.')
    return offer

"""
Shipment lifecycle.

Owns the shipment status machine and the two dual-confirmation gates.
Handover needs both parties before the shipment goes on the way; delivery
needs both parties before the shipment is delivered, and that step also
releases the escrow hold in the same transaction.
"""

import logging
from collections import namedtuple

from django.conf import settings
from django.utils import timezone

from . import escrow, store
from .exceptions import Forbidden, InvalidState
from .models import Shipment

logger = logging.getLogger(__name__)


ConfirmationResult = namedtuple('ConfirmationResult', ['shipment', 'both_confirmed', 'message'])


# Who may request each target on the coarse status path
STATUS_UPDATE_ROLES = {
    Shipment.CANCELLED: 'sender',
    Shipment.ON_WAY: 'courier',
    Shipment.DELIVERED: 'courier',
}


def create_shipment(sender_id, **facts):
    """
    Post a new shipment. It starts open and has no courier.

    Args:
        sender_id: Owner of the shipment
        **facts: Route, package, window and pricing fields

    Returns:
        Shipment: The created shipment
    """
    facts.setdefault('currency', getattr(settings, 'DELIVERY_DEFAULT_CURRENCY', 'USD'))
    facts.pop('status', None)
    facts.pop('courier_id', None)

    shipment = Shipment(sender_id=sender_id, status=Shipment.OPEN, **facts)
    shipment.save()

    logger.info(
        f"Shipment created. Shipment ID: {shipment.id}, Sender: {sender_id}, "
        f"Route: {shipment.origin_city} -> {shipment.dest_city}, "
        f"Price: {shipment.price} {shipment.currency}"
    )
    return shipment


def list_shipments(status=None, origin_country=None, dest_country=None,
                   min_weight=None, max_weight=None, min_price=None, max_price=None):
    """Browse shipments, newest first. Country filters are partial and case-insensitive."""
    queryset = Shipment.objects.all()

    if status:
        queryset = queryset.filter(status=status)
    if origin_country:
        queryset = queryset.filter(origin_country__icontains=origin_country)
    if dest_country:
        queryset = queryset.filter(dest_country__icontains=dest_country)
    if min_weight is not None:
        queryset = queryset.filter(weight__gte=min_weight)
    if max_weight is not None:
        queryset = queryset.filter(weight__lte=max_weight)
    if min_price is not None:
        queryset = queryset.filter(price__gte=min_price)
    if max_price is not None:
        queryset = queryset.filter(price__lte=max_price)

    return queryset.order_by('-created_at')


def shipments_for_user(user_id, role):
    """
    Shipments a user sends or carries.

    Raises:
        InvalidState: If role is not 'sender' or 'courier'
    """
    if role == 'sender':
        queryset = Shipment.objects.filter(sender_id=user_id)
    elif role == 'courier':
        queryset = Shipment.objects.filter(courier_id=user_id)
    else:
        raise InvalidState('Role must be "sender" or "courier".')
    return queryset.order_by('-created_at')


def update_status(shipment_id, actor_id, target_status):
    """
    Coarse status patch: cancel by the sender, or a direct on_way/delivered
    by the courier.

    A direct delivered releases any held escrow row in the same transaction.

    Raises:
        NotFound: Shipment does not exist
        Forbidden: Actor may not request this target
        InvalidState: Target not allowed on this path, or not reachable from
            the current status

    Returns:
        Shipment: The updated shipment
    """
    required_role = STATUS_UPDATE_ROLES.get(target_status)

    with store.ledger_transaction('update_status'):
        shipment = store.get_shipment(shipment_id, for_update=True)

        if required_role is None:
            raise InvalidState(f'Status cannot be set to {target_status} directly.')

        if shipment.role_of(actor_id) != required_role:
            raise Forbidden(f'Only the {required_role} can set the status to {target_status}.')

        old_status = shipment.status
        if old_status == target_status:
            return shipment

        is_valid, error_message = shipment.can_transition_to(target_status)
        if not is_valid:
            raise InvalidState(error_message)

        released = []
        if target_status == Shipment.DELIVERED:
            released = escrow.release_held_funds(shipment)

        store.update_shipment(shipment, status=target_status)

    logger.info(
        f"Shipment status updated. Shipment ID: {shipment.id}, "
        f"Old Status: {old_status}, New Status: {target_status}, "
        f"Actor: {actor_id}, Escrow released: {len(released)}"
    )
    return shipment


def _confirming_party(shipment, actor_id):
    """
    Raises:
        Forbidden: Actor is not a party, or no courier is assigned yet
    """
    role = shipment.role_of(actor_id)
    if role is None:
        raise Forbidden('Only the sender or the courier can confirm.')
    if not shipment.courier_id:
        raise Forbidden('No courier assigned to this shipment.')
    return role


def confirm_handover(shipment_id, actor_id):
    """
    Record one party's handover confirmation.

    Each party flips only their own flag; re-confirming is a no-op. Once
    both flags are set the shipment goes on the way and the handover time
    is stamped.

    Raises:
        NotFound: Shipment does not exist
        Forbidden: Actor is not a party, no courier, or status is not
            matched/handed_over

    Returns:
        ConfirmationResult
    """
    with store.ledger_transaction('confirm_handover'):
        shipment = store.get_shipment(shipment_id, for_update=True)
        role = _confirming_party(shipment, actor_id)

        if shipment.handover_confirmed:
            return ConfirmationResult(shipment, True, 'Handover already confirmed by both parties.')

        if shipment.status not in (Shipment.MATCHED, Shipment.HANDED_OVER):
            raise Forbidden(f'Cannot confirm handover while the shipment is {shipment.status}.')

        flag = f'{role}_confirmed_handover'
        changes = {}
        if not getattr(shipment, flag):
            changes[flag] = True

        sender_done = changes.get('sender_confirmed_handover', shipment.sender_confirmed_handover)
        courier_done = changes.get('courier_confirmed_handover', shipment.courier_confirmed_handover)
        both_confirmed = sender_done and courier_done

        if both_confirmed:
            changes['status'] = Shipment.ON_WAY
            changes['handover_confirmed_at'] = timezone.now()

        if changes:
            store.update_shipment(shipment, **changes)

    if both_confirmed:
        logger.info(
            f"Handover confirmed by both parties. Shipment ID: {shipment.id}, "
            f"New Status: {shipment.status}, Last confirmation by: {actor_id}"
        )
        message = 'Handover confirmed by both parties. The shipment is on the way.'
    else:
        logger.info(f"Handover confirmed by {role}. Shipment ID: {shipment.id}, Actor: {actor_id}")
        waiting_on = 'courier' if role == 'sender' else 'sender'
        message = f'Handover confirmed. Waiting for the {waiting_on} to confirm.'

    return ConfirmationResult(shipment, both_confirmed, message)


def confirm_delivery(shipment_id, actor_id):
    """
    Record one party's delivery confirmation.

    When both parties have confirmed, the shipment is delivered and every
    held escrow row is released to the courier in the same transaction.

    Raises:
        NotFound: Shipment does not exist
        Forbidden: Actor is not a party, or no courier
        InvalidState: Shipment is not on the way

    Returns:
        ConfirmationResult
    """
    released = []

    with store.ledger_transaction('confirm_delivery'):
        shipment = store.get_shipment(shipment_id, for_update=True)
        role = _confirming_party(shipment, actor_id)

        if shipment.delivery_confirmed and shipment.status == Shipment.DELIVERED:
            return ConfirmationResult(shipment, True, 'Delivery already confirmed by both parties.')

        if shipment.status != Shipment.ON_WAY:
            raise InvalidState(f'Cannot confirm delivery while the shipment is {shipment.status}.')

        flag = f'{role}_confirmed_delivery'
        changes = {}
        if not getattr(shipment, flag):
            changes[flag] = True

        sender_done = changes.get('sender_confirmed_delivery', shipment.sender_confirmed_delivery)
        courier_done = changes.get('courier_confirmed_delivery', shipment.courier_confirmed_delivery)
        both_confirmed = sender_done and courier_done

        if both_confirmed:
            released = escrow.release_held_funds(shipment)
            changes['status'] = Shipment.DELIVERED
            changes['delivery_confirmed_at'] = timezone.now()

        if changes:
            store.update_shipment(shipment, **changes)

    if both_confirmed:
        logger.info(
            f"Delivery confirmed by both parties. Shipment ID: {shipment.id}, "
            f"Escrow released: {len(released)}, Last confirmation by: {actor_id}"
        )
        message = 'Delivery confirmed by both parties. Payment has been released to the courier.'
    else:
        logger.info(f"Delivery confirmed by {role}. Shipment ID: {shipment.id}, Actor: {actor_id}")
        waiting_on = 'courier' if role == 'sender' else 'sender'
        message = f'Delivery confirmed. Waiting for the {waiting_on} to confirm.'

    return ConfirmationResult(shipment, both_confirmed, message)

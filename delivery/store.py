"""
Ledger store: transactional access to shipments, offers and escrow rows.

Workflow operations open one ``ledger_transaction()`` per intent, re-read
the rows they depend on with row locks, check their preconditions and only
then write. Concurrent callers on the same shipment are serialized by the
shipment row lock; the loser re-reads a state that fails its precondition.
"""

import logging
from contextlib import contextmanager

from django.core.exceptions import ValidationError
from django.db import IntegrityError, OperationalError, transaction

from .exceptions import Conflict, NotFound
from .models import EscrowTransaction, Offer, Shipment

logger = logging.getLogger(__name__)


@contextmanager
def ledger_transaction(operation):
    """
    Run a block as one atomic store transaction.

    Store-level failures (constraint races, lock timeouts, deadlocks) are
    rolled back and surfaced as a retryable Conflict.

    Args:
        operation: Name of the workflow step, used in logs
    """
    try:
        with transaction.atomic():
            yield
    except IntegrityError as e:
        logger.warning(f"Integrity conflict during {operation}: {e}")
        raise Conflict(f'Conflicting update during {operation}. Please retry.') from e
    except OperationalError as e:
        logger.warning(f"Store transaction failed during {operation}: {e}")
        raise Conflict(f'Concurrent update during {operation}. Please retry.') from e


def get_shipment(shipment_id, for_update=False):
    """
    Read a shipment, optionally locking its row.

    Raises:
        NotFound: If the shipment does not exist
    """
    queryset = Shipment.objects.all()
    if for_update:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(pk=shipment_id)
    except (Shipment.DoesNotExist, ValidationError, ValueError):
        raise NotFound(f'Shipment with ID {shipment_id} does not exist.')


def get_offer(offer_id):
    """
    Read an offer.

    Raises:
        NotFound: If the offer does not exist
    """
    try:
        return Offer.objects.select_related('shipment').get(pk=offer_id)
    except (Offer.DoesNotExist, ValidationError, ValueError):
        raise NotFound(f'Offer with ID {offer_id} does not exist.')


def lock_offer(offer_id):
    """
    Lock an offer and its shipment, shipment first.

    Locking the parent first keeps the lock order identical to every other
    workflow step on the same shipment.
    """
    offer = get_offer(offer_id)
    shipment = get_shipment(offer.shipment_id, for_update=True)
    offer = Offer.objects.select_for_update().get(pk=offer.pk)
    offer.shipment = shipment
    return offer


def update_shipment(shipment, **changes):
    """Apply a patch to a shipment and persist only the changed fields."""
    for field, value in changes.items():
        setattr(shipment, field, value)
    shipment.save(update_fields=[*changes.keys(), 'updated_at'])
    return shipment


def active_transaction(shipment_id, for_update=False):
    """
    Return the non-refunded escrow row for a shipment, or None.

    There is at most one: refunded rows are audit history.
    """
    queryset = EscrowTransaction.objects.filter(shipment_id=shipment_id).exclude(
        status=EscrowTransaction.REFUNDED
    )
    if for_update:
        queryset = queryset.select_for_update()
    return queryset.first()


def held_transactions(shipment_id):
    """Lock and return every held escrow row for a shipment."""
    return list(
        EscrowTransaction.objects.select_for_update().filter(
            shipment_id=shipment_id,
            status=EscrowTransaction.HELD,
        )
    )

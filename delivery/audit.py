"""
Ledger audit: checks that a shipment, its offers and its escrow rows agree.
"""

from .models import EscrowTransaction, Offer, Shipment

# Statuses a shipment can reach after being matched
MATCHED_OR_LATER = (Shipment.MATCHED, Shipment.HANDED_OVER, Shipment.ON_WAY, Shipment.DELIVERED)

# Statuses in which a held escrow row may exist
HOLDING_STATUSES = (Shipment.MATCHED, Shipment.HANDED_OVER, Shipment.ON_WAY)


def shipment_violations(shipment):
    """
    Return a list of human readable invariant violations for one shipment.

    An empty list means the shipment is consistent.
    """
    violations = []

    has_courier = bool(shipment.courier_id)
    needs_courier = shipment.status in Shipment.COURIER_STATUSES
    if needs_courier and not has_courier:
        violations.append(f'status {shipment.status} without a courier')
    if has_courier and not needs_courier:
        violations.append(f'courier {shipment.courier_id} assigned while {shipment.status}')

    accepted = list(Offer.objects.filter(shipment=shipment, status=Offer.ACCEPTED))
    if len(accepted) > 1:
        violations.append(f'{len(accepted)} accepted offers')
    for offer in accepted:
        if offer.courier_id != shipment.courier_id:
            violations.append(
                f'accepted offer {offer.id} is for {offer.courier_id}, '
                f'shipment courier is {shipment.courier_id}'
            )
        if shipment.status not in MATCHED_OR_LATER:
            violations.append(f'accepted offer {offer.id} on a {shipment.status} shipment')

    held = list(EscrowTransaction.objects.filter(shipment=shipment, status=EscrowTransaction.HELD))
    if len(held) > 1:
        violations.append(f'{len(held)} held escrow rows')
    for row in held:
        if shipment.status not in HOLDING_STATUSES:
            violations.append(f'escrow {row.id} still held on a {shipment.status} shipment')
        elif row.payee_id != shipment.courier_id:
            violations.append(
                f'escrow {row.id} payee {row.payee_id} differs from courier {shipment.courier_id}'
            )

    if shipment.delivery_confirmed and shipment.status != Shipment.DELIVERED:
        violations.append(f'delivery confirmed by both parties but status is {shipment.status}')

    if shipment.handover_confirmed and shipment.status not in (Shipment.ON_WAY, Shipment.DELIVERED):
        violations.append(f'handover confirmed by both parties but status is {shipment.status}')

    return violations

"""
Travel listings.

A courier posts the trips they are taking and how much spare weight they
can carry. Senders browse upcoming active trips; only the traveler may
edit, cancel or delete a trip.
"""

import logging

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from .exceptions import Forbidden, InvalidState, NotFound
from .models import Travel

logger = logging.getLogger(__name__)


# Fields a traveler may change after posting
EDITABLE_FIELDS = (
    'from_country',
    'from_city',
    'from_airport',
    'from_airport_code',
    'to_country',
    'to_city',
    'to_airport',
    'to_airport_code',
    'departure_date',
    'arrival_date',
    'available_weight',
    'weight_unit',
    'price_per_kg',
    'currency',
    'flight_number',
)


def create_travel(traveler_id, **facts):
    """
    Post a new trip. It starts active.

    Args:
        traveler_id: Courier taking the trip
        **facts: Route, dates, capacity and pricing fields

    Returns:
        Travel: The created travel
    """
    facts.setdefault('currency', getattr(settings, 'DELIVERY_DEFAULT_CURRENCY', 'USD'))
    facts.pop('status', None)

    travel = Travel(traveler_id=traveler_id, status=Travel.ACTIVE, **facts)
    travel.save()

    logger.info(
        f"Travel created. Travel ID: {travel.id}, Traveler: {traveler_id}, "
        f"Route: {travel.from_city} -> {travel.to_city}, "
        f"Departure: {travel.departure_date.isoformat()}"
    )
    return travel


def list_travels(status=None, from_city=None, to_city=None, min_weight=None, max_weight=None,
                 from_date=None, to_date=None):
    """
    Browse upcoming trips, soonest departure first.

    Trips that already departed are never listed. Without a status filter
    only active trips are returned. City filters are partial and
    case-insensitive; weight filters apply to the available weight.
    """
    queryset = Travel.objects.filter(
        status=status or Travel.ACTIVE,
        departure_date__gte=timezone.now(),
    )

    if from_city:
        queryset = queryset.filter(from_city__icontains=from_city)
    if to_city:
        queryset = queryset.filter(to_city__icontains=to_city)
    if min_weight is not None:
        queryset = queryset.filter(available_weight__gte=min_weight)
    if max_weight is not None:
        queryset = queryset.filter(available_weight__lte=max_weight)
    if from_date is not None:
        queryset = queryset.filter(departure_date__gte=from_date)
    if to_date is not None:
        queryset = queryset.filter(departure_date__lte=to_date)

    return queryset.order_by('departure_date')


def travels_for_user(traveler_id):
    """Every trip a courier posted, latest departure first."""
    return Travel.objects.filter(traveler_id=traveler_id).order_by('-departure_date')


def get_travel(travel_id, for_update=False):
    """
    Raises:
        NotFound: If the travel does not exist
    """
    queryset = Travel.objects.all()
    if for_update:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(pk=travel_id)
    except (Travel.DoesNotExist, ValidationError, ValueError):
        raise NotFound(f'Travel with ID {travel_id} does not exist.')


def _owned_travel(travel_id, actor_id, action):
    travel = get_travel(travel_id, for_update=True)
    if travel.traveler_id != actor_id:
        raise Forbidden(f'You can only {action} your own travels.')
    return travel


def update_travel(travel_id, actor_id, **changes):
    """
    Edit a trip's route, dates, capacity or price.

    Raises:
        NotFound: Travel does not exist
        Forbidden: Actor is not the traveler
        InvalidState: Travel is cancelled

    Returns:
        Travel: The updated travel
    """
    with transaction.atomic():
        travel = _owned_travel(travel_id, actor_id, 'update')

        if travel.status == Travel.CANCELLED:
            raise InvalidState('Cannot update a cancelled travel.')

        updated = [field for field in EDITABLE_FIELDS if field in changes]
        for field in updated:
            setattr(travel, field, changes[field])
        travel.save()

    logger.info(f"Travel updated. Travel ID: {travel.id}, Traveler: {actor_id}, Fields: {updated}")
    return travel


def cancel_travel(travel_id, actor_id):
    """
    Cancel a trip. Cancelling a cancelled trip is a no-op.

    Raises:
        NotFound: Travel does not exist
        Forbidden: Actor is not the traveler

    Returns:
        Travel: The cancelled travel
    """
    with transaction.atomic():
        travel = _owned_travel(travel_id, actor_id, 'cancel')

        if travel.status == Travel.CANCELLED:
            return travel

        travel.status = Travel.CANCELLED
        travel.save()

    logger.info(f"Travel cancelled. Travel ID: {travel.id}, Traveler: {actor_id}")
    return travel


def delete_travel(travel_id, actor_id):
    """
    Raises:
        NotFound: Travel does not exist
        Forbidden: Actor is not the traveler
    """
    with transaction.atomic():
        travel = _owned_travel(travel_id, actor_id, 'delete')
        travel.delete()

    logger.info(f"Travel deleted. Travel ID: {travel_id}, Traveler: {actor_id}")

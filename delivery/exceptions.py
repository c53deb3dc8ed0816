"""
Errors raised by the delivery workflow engine.

They are DRF APIExceptions so the HTTP layer can render them directly,
but nothing in the engine depends on a request being present.
"""

from rest_framework import status
from rest_framework.exceptions import APIException


class DeliveryError(APIException):
    """Base class for every workflow precondition failure."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'The request could not be completed.'
    default_code = 'delivery_error'


class NotFound(DeliveryError):
    """Referenced shipment, offer, transaction or payment method does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class Forbidden(DeliveryError):
    """Actor lacks authority for the requested transition."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You do not have permission to perform this action.'
    default_code = 'forbidden'


class InvalidState(DeliveryError):
    """The operation's state precondition does not hold."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'The shipment is not in a valid state for this action.'
    default_code = 'invalid_state'


class Conflict(DeliveryError):
    """Duplicate record, or the store rejected a concurrent write."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = 'The request conflicts with the current state. Please retry.'
    default_code = 'conflict'

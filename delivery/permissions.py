"""
Custom permission classes for the peer delivery API.

Identities come from the token's user_id claim; ownership is a comparison
of that id against the ids stored on the object.
"""

from rest_framework import permissions


def actor_id(request):
    """The authenticated user's id as stored on shipments, offers and ledger rows."""
    return str(request.user.id)


class IsShipmentParticipant(permissions.BasePermission):
    """
    Object-level permission: the caller is the shipment's sender or its
    assigned courier.

    Usage:
        permission = IsShipmentParticipant()
        if not permission.has_object_permission(request, view, shipment):
            ...
    """

    message = 'You do not have permission to view this shipment.'

    def has_object_permission(self, request, view, obj):
        if not request.user or not request.user.is_authenticated:
            return False
        return obj.is_participant(actor_id(request))


class IsConversationParticipant(permissions.BasePermission):
    """
    Object-level permission: only the two users of a conversation may read
    its transcript.
    """

    message = 'You do not have permission to view this conversation.'

    def has_object_permission(self, request, view, obj):
        if not request.user or not request.user.is_authenticated:
            return False
        return obj.has_participant(actor_id(request))

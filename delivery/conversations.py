"""
Conversation gateway.

The negotiation transcript is owned by the messaging collaborator. The
workflow engine only needs to find (or open) the thread for a shipment and
a pair of users, post system/offer messages into it and flip its status
marker. Those calls are side effects: they run after the ledger transaction
commits and a failure never undoes the workflow step.
"""

import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from django.utils.module_loading import import_string

from .exceptions import InvalidState, NotFound
from .models import Conversation, Message

logger = logging.getLogger(__name__)


def canonical_pair(user_a, user_b):
    """Order a pair of user ids so (a, b) and (b, a) address the same thread."""
    return tuple(sorted((user_a, user_b)))


class ConversationGateway:
    """Interface consumed by the workflow engine."""

    def get_or_create_conversation(self, shipment_id, user_a, user_b):
        """Return the id of the conversation for a shipment and user pair."""
        raise NotImplementedError

    def post_message(self, conversation_id, sender_id, kind, content):
        """Append a message and refresh the conversation preview."""
        raise NotImplementedError

    def set_conversation_status(self, conversation_id, status):
        """Set the conversation status marker (pending, active, matched)."""
        raise NotImplementedError


class DatabaseConversationGateway(ConversationGateway):
    """Gateway backed by the Conversation and Message tables."""

    def get_or_create_conversation(self, shipment_id, user_a, user_b):
        user1_id, user2_id = canonical_pair(user_a, user_b)
        if user1_id == user2_id:
            raise InvalidState('Cannot create a conversation with yourself.')

        conversation, created = Conversation.objects.get_or_create(
            shipment_id=shipment_id,
            user1_id=user1_id,
            user2_id=user2_id,
        )
        if created:
            logger.info(
                f"Conversation opened. ID: {conversation.id}, "
                f"Shipment: {shipment_id}, Users: {user1_id}, {user2_id}"
            )
        return conversation.id

    def post_message(self, conversation_id, sender_id, kind, content):
        try:
            conversation = Conversation.objects.select_related('shipment').get(pk=conversation_id)
        except Conversation.DoesNotExist:
            raise NotFound(f'Conversation with ID {conversation_id} does not exist.')

        if not conversation.has_participant(sender_id):
            raise InvalidState('Only participants can post into this conversation.')

        message = Message.objects.create(
            conversation=conversation,
            sender_id=sender_id,
            kind=kind,
            content=content,
        )

        # The owner answering a pending thread activates it
        update_fields = ['last_message', 'last_message_at', 'updated_at']
        if conversation.status == Conversation.PENDING and sender_id == conversation.shipment.sender_id:
            conversation.status = Conversation.ACTIVE
            update_fields.append('status')

        conversation.last_message = content
        conversation.last_message_at = message.created_at
        conversation.save(update_fields=update_fields)
        return message

    def set_conversation_status(self, conversation_id, status):
        updated = Conversation.objects.filter(pk=conversation_id).update(
            status=status,
            updated_at=timezone.now(),
        )
        if not updated:
            raise NotFound(f'Conversation with ID {conversation_id} does not exist.')


def get_conversation_gateway():
    """Instantiate the gateway configured by DELIVERY_CONVERSATION_GATEWAY."""
    gateway_path = getattr(
        settings,
        'DELIVERY_CONVERSATION_GATEWAY',
        'delivery.conversations.DatabaseConversationGateway',
    )
    return import_string(gateway_path)()


def post_to_pair(gateway, shipment_id, sender_id, recipient_id, kind, content, status=None):
    """
    Post into the conversation between two users, opening it if needed.

    Args:
        gateway: ConversationGateway to use
        shipment_id: Shipment the conversation is about
        sender_id: Author of the message
        recipient_id: The other participant
        kind: Message kind (text, system, offer, match_request)
        content: Message body
        status: Optional status marker to set after posting

    Returns:
        The conversation id
    """
    conversation_id = gateway.get_or_create_conversation(shipment_id, sender_id, recipient_id)
    gateway.post_message(conversation_id, sender_id, kind, content)
    if status:
        gateway.set_conversation_status(conversation_id, status)
    return conversation_id


def notify(action, *args, **kwargs):
    """
    Run a conversation side effect without letting it fail the caller.

    The call runs in its own savepoint so a database error inside the
    gateway cannot poison an enclosing transaction.

    Returns:
        The action's result, or None if it failed
    """
    try:
        with transaction.atomic():
            return action(*args, **kwargs)
    except Exception as e:
        logger.error(
            f"Conversation side effect {getattr(action, '__name__', action)} failed: {e}",
            exc_info=True
        )
        return None

# Overview: Service-layer operations for conversations, support tickets and notifications.

from __future__ import annotations

from ..extensions import db
from ..errors import ValidationError
from ..models import ChatMessage, Conversation, Notification, SupportTicket, User
from ..models.communications import (
    CONVERSATION_TYPES,
    NOTIFICATION_TYPES,
    PARTICIPANT_ROLES,
    TICKET_CATEGORIES,
    TICKET_PRIORITIES,
    TICKET_STATUSES,
)
from marketcore.time_utils import utcnow
from ..validation import require_choice
from . import entity_store as store
from .concurrency import hold_keys, run_with_retry
"""
Messaging Ledger Invariants (authoritative)

- Messages and notifications are append-only; only their read state changes.
- A ChatMessage belongs to exactly one conversation OR one support ticket.
- Conversation.last_message / last_message_time always mirror the newest
  message and are written in the same transaction as that message.
- Only conversation participants may post to a conversation.
- SupportTicket.resolved_at is stamped on the first move to 'resolved'.
- Notification.read_at is stamped the first time it is read.
"""


# =============================================================================
# CONVERSATIONS
# =============================================================================

def create_conversation(
    *,
    participant_ids: list[int],
    participant_roles: list[str],
    type: str,
    related_order_id: int | None = None,
) -> Conversation:
    require_choice("type", type, CONVERSATION_TYPES)
    if len(participant_ids) < 2:
        raise ValidationError("A conversation needs at least two participants")
    if len(participant_ids) != len(participant_roles):
        raise ValidationError("participant_ids and participant_roles must have the same length")
    for role in participant_roles:
        require_choice("participant_role", role, PARTICIPANT_ROLES)

    def _op():
        for user_id in participant_ids:
            store.require(User, user_id, label="User")
        now = utcnow()
        conversation = store.insert(Conversation(
            participant_ids=list(participant_ids),
            participant_roles=list(participant_roles),
            type=type,
            related_order_id=related_order_id,
            created_at=now,
            updated_at=now,
        ))
        db.session.commit()
        return conversation

    return run_with_retry(_op)


def get_conversation(conversation_id: int) -> Conversation:
    return store.require(Conversation, conversation_id, label="Conversation")


def list_conversations_for(user_id: int) -> list[Conversation]:
    """Active conversations the user participates in, newest activity first."""
    conversations = [
        c for c in store.list_where(Conversation, is_active=True)
        if user_id in (c.participant_ids or [])
    ]
    return sorted(conversations, key=lambda c: c.last_message_time or c.created_at, reverse=True)


def send_message(
    conversation_id: int,
    *,
    sender_id: int,
    sender_role: str,
    message: str,
    attachments: list[str] | None = None,
) -> ChatMessage:
    """Append a message and refresh the conversation's last-message fields."""
    require_choice("sender_role", sender_role, PARTICIPANT_ROLES)
    if not message or not message.strip():
        raise ValidationError("message must not be empty")

    def _op():
        with hold_keys(("conversation", conversation_id)):
            conversation = store.require(Conversation, conversation_id, lock=True, label="Conversation")
            if sender_id not in (conversation.participant_ids or []):
                raise ValidationError(f"User {sender_id} is not part of conversation {conversation_id}")
            sender = store.require(User, sender_id, label="User")

            now = utcnow()
            chat = store.insert(ChatMessage(
                conversation_id=conversation.id,
                sender_id=sender_id,
                sender_role=sender_role,
                sender_name=sender.name,
                message=message,
                attachments=list(attachments or []),
                created_at=now,
                updated_at=now,
            ))
            conversation.last_message = message
            conversation.last_message_time = now
            conversation.updated_at = now
            db.session.commit()
            return chat

    return run_with_retry(_op)


def list_messages(conversation_id: int) -> list[ChatMessage]:
    get_conversation(conversation_id)
    return store.list_where(ChatMessage, conversation_id=conversation_id)


def mark_conversation_read(conversation_id: int, reader_id: int) -> int:
    """Mark every message not sent by reader_id as read. Returns how many changed."""
    def _op():
        get_conversation(conversation_id)
        unread = store.list_where(
            ChatMessage,
            ChatMessage.sender_id != reader_id,
            conversation_id=conversation_id,
            is_read=False,
        )
        for chat in unread:
            chat.is_read = True
        db.session.commit()
        return len(unread)

    return run_with_retry(_op)


# =============================================================================
# SUPPORT TICKETS
# =============================================================================

def create_ticket(
    *,
    customer_id: int,
    subject: str,
    description: str,
    category: str = "other",
    priority: str = "medium",
) -> SupportTicket:
    require_choice("category", category, TICKET_CATEGORIES)
    require_choice("priority", priority, TICKET_PRIORITIES)

    def _op():
        store.require(User, customer_id, label="Customer")
        now = utcnow()
        ticket = store.insert(SupportTicket(
            customer_id=customer_id,
            subject=subject,
            description=description,
            category=category,
            priority=priority,
            status="open",
            created_at=now,
            updated_at=now,
        ))
        db.session.commit()
        return ticket

    return run_with_retry(_op)


def get_ticket(ticket_id: int) -> SupportTicket:
    return store.require(SupportTicket, ticket_id, label="Ticket")


def list_tickets(status: str | None = None, customer_id: int | None = None) -> list[SupportTicket]:
    filters = {}
    if status is not None:
        filters["status"] = require_choice("status", status, TICKET_STATUSES)
    if customer_id is not None:
        filters["customer_id"] = customer_id
    return store.list_where(SupportTicket, **filters)


def add_ticket_message(ticket_id: int, *, sender_id: int, sender_role: str, message: str) -> ChatMessage:
    require_choice("sender_role", sender_role, PARTICIPANT_ROLES)
    if not message or not message.strip():
        raise ValidationError("message must not be empty")

    def _op():
        with hold_keys(("ticket", ticket_id)):
            ticket = store.require(SupportTicket, ticket_id, lock=True, label="Ticket")
            sender = store.require(User, sender_id, label="User")
            now = utcnow()
            chat = store.insert(ChatMessage(
                ticket_id=ticket.id,
                sender_id=sender_id,
                sender_role=sender_role,
                sender_name=sender.name,
                message=message,
                created_at=now,
                updated_at=now,
            ))
            ticket.updated_at = now
            db.session.commit()
            return chat

    return run_with_retry(_op)


def assign_ticket(ticket_id: int, admin_id: int) -> SupportTicket:
    """Hand the ticket to an admin; an open ticket moves to in_progress."""
    def _op():
        with hold_keys(("ticket", ticket_id)):
            ticket = store.require(SupportTicket, ticket_id, lock=True, label="Ticket")
            admin = store.require(User, admin_id, label="Admin")
            if admin.role != "admin":
                raise ValidationError(f"User {admin_id} is not an admin")
            ticket.assigned_to = admin_id
            if ticket.status == "open":
                ticket.status = "in_progress"
            ticket.updated_at = utcnow()
            db.session.commit()
            return ticket

    return run_with_retry(_op)


def update_ticket_status(ticket_id: int, status: str) -> SupportTicket:
    require_choice("status", status, TICKET_STATUSES)

    def _op():
        with hold_keys(("ticket", ticket_id)):
            ticket = store.require(SupportTicket, ticket_id, lock=True, label="Ticket")
            now = utcnow()
            ticket.status = status
            ticket.updated_at = now
            if status == "resolved" and ticket.resolved_at is None:
                ticket.resolved_at = now
            db.session.commit()
            return ticket

    return run_with_retry(_op)


# =============================================================================
# NOTIFICATIONS
# =============================================================================

def create_notification(
    *,
    recipient_id: int,
    recipient_role: str,
    type: str,
    title: str,
    message: str,
    related_order_id: int | None = None,
    action_url: str | None = None,
) -> Notification:
    require_choice("recipient_role", recipient_role, PARTICIPANT_ROLES)
    require_choice("type", type, NOTIFICATION_TYPES)

    def _op():
        store.require(User, recipient_id, label="Recipient")
        notification = store.insert(Notification(
            recipient_id=recipient_id,
            recipient_role=recipient_role,
            type=type,
            title=title,
            message=message,
            related_order_id=related_order_id,
            action_url=action_url,
        ))
        db.session.commit()
        return notification

    return run_with_retry(_op)


def list_notifications(recipient_id: int, *, unread_only: bool = False) -> list[Notification]:
    """Newest first."""
    if unread_only:
        rows = store.list_where(Notification, recipient_id=recipient_id, is_read=False)
    else:
        rows = store.list_where(Notification, recipient_id=recipient_id)
    return list(reversed(rows))


def unread_count(recipient_id: int) -> int:
    return store.count_where(Notification, recipient_id=recipient_id, is_read=False)


def mark_notification_read(notification_id: int) -> Notification:
    def _op():
        notification = store.require(Notification, notification_id, label="Notification")
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
        db.session.commit()
        return notification

    return run_with_retry(_op)


def mark_all_read(recipient_id: int) -> int:
    """Returns how many notifications changed."""
    def _op():
        now = utcnow()
        unread = store.list_where(Notification, recipient_id=recipient_id, is_read=False)
        for notification in unread:
            notification.is_read = True
            notification.read_at = now
        db.session.commit()
        return len(unread)

    return run_with_retry(_op)

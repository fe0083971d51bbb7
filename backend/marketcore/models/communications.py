from __future__ import annotations

from ..extensions import db
from marketcore.time_utils import to_utc_z, utcnow


PARTICIPANT_ROLES = ("customer", "vendor", "driver", "admin")
CONVERSATION_TYPES = ("customer_vendor", "customer_driver", "customer_admin", "vendor_admin")
TICKET_STATUSES = ("open", "in_progress", "resolved", "closed")
TICKET_PRIORITIES = ("low", "medium", "high", "urgent")
TICKET_CATEGORIES = ("order", "delivery", "payment", "account", "other")
NOTIFICATION_TYPES = (
    "order_status",
    "delivery_update",
    "payment_confirmation",
    "loyalty_reward",
    "promotion",
)


class Conversation(db.Model):
    """
    Chat thread between marketplace participants.

    last_message / last_message_time mirror the newest ChatMessage.
    """
    __tablename__ = "conversations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    participant_ids = db.Column(db.JSON, nullable=False, default=list)
    participant_roles = db.Column(db.JSON, nullable=False, default=list)
    type = db.Column(db.String(32), nullable=False)
    related_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    last_message = db.Column(db.Text, nullable=True)
    last_message_time = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "participant_ids": list(self.participant_ids or []),
            "participant_roles": list(self.participant_roles or []),
            "type": self.type,
            "related_order_id": self.related_order_id,
            "last_message": self.last_message,
            "last_message_time": to_utc_z(self.last_message_time),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ChatMessage(db.Model):
    """
    Message in a conversation or on a support ticket (exactly one of the two).

    Only is_read changes after creation.
    """
    __tablename__ = "chat_messages"
    __table_args__ = (
        db.Index("ix_chat_messages_conversation_created", "conversation_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey("conversations.id"), nullable=True, index=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("support_tickets.id"), nullable=True, index=True)

    sender_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    sender_role = db.Column(db.String(16), nullable=False)
    sender_name = db.Column(db.String(128), nullable=False, default="")
    message = db.Column(db.Text, nullable=False)
    attachments = db.Column(db.JSON, nullable=False, default=list)
    is_read = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "ticket_id": self.ticket_id,
            "sender_id": self.sender_id,
            "sender_role": self.sender_role,
            "sender_name": self.sender_name,
            "message": self.message,
            "attachments": list(self.attachments or []),
            "is_read": self.is_read,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SupportTicket(db.Model):
    __tablename__ = "support_tickets"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    subject = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(16), nullable=False, default="other")
    priority = db.Column(db.String(16), nullable=False, default="medium")
    status = db.Column(db.String(16), nullable=False, default="open", index=True)
    assigned_to = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    messages = db.relationship("ChatMessage", lazy=True, order_by="ChatMessage.id")

    def to_dict(self, include_messages: bool = False):
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "subject": self.subject,
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
            "status": self.status,
            "assigned_to": self.assigned_to,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "resolved_at": to_utc_z(self.resolved_at),
        }
        if include_messages:
            data["messages"] = [m.to_dict() for m in self.messages]
        return data


class Notification(db.Model):
    """In-app notification; read_at is stamped the first time it is read."""
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_recipient_read", "recipient_id", "is_read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    recipient_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    recipient_role = db.Column(db.String(16), nullable=False)
    type = db.Column(db.String(32), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    related_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    action_url = db.Column(db.String(255), nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "recipient_role": self.recipient_role,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "related_order_id": self.related_order_id,
            "action_url": self.action_url,
            "is_read": self.is_read,
            "created_at": to_utc_z(self.created_at),
            "read_at": to_utc_z(self.read_at),
        }

# backend/marketcore/routes/communications.py
"""
Messaging routes: conversations, support tickets and notifications.

Transport (push/SSE) is outside this service; clients poll these endpoints.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import CoreError
from ..services import communications_service


communications_bp = Blueprint("communications", __name__, url_prefix="/api/communications")


# =============================================================================
# CONVERSATIONS
# =============================================================================

@communications_bp.post("/conversations")
def create_conversation_route():
    try:
        data = request.get_json(silent=True) or {}
        missing = [f for f in ("participant_ids", "participant_roles", "type") if not data.get(f)]
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

        conversation = communications_service.create_conversation(
            participant_ids=data["participant_ids"],
            participant_roles=data["participant_roles"],
            type=data["type"],
            related_order_id=data.get("related_order_id"),
        )
        return jsonify({"conversation": conversation.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create conversation")
        return jsonify({"error": "Internal server error"}), 500


@communications_bp.get("/conversations")
def list_conversations_route():
    user_id = request.args.get("user_id", type=int)
    if user_id is None:
        return jsonify({"error": "user_id required"}), 400
    conversations = communications_service.list_conversations_for(user_id)
    return jsonify({"conversations": [c.to_dict() for c in conversations]}), 200


@communications_bp.get("/conversations/<int:conversation_id>/messages")
def list_messages_route(conversation_id: int):
    try:
        messages = communications_service.list_messages(conversation_id)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"messages": [m.to_dict() for m in messages]}), 200


@communications_bp.post("/conversations/<int:conversation_id>/messages")
def send_message_route(conversation_id: int):
    try:
        data = request.get_json(silent=True) or {}
        missing = [f for f in ("sender_id", "sender_role", "message") if data.get(f) is None]
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

        message = communications_service.send_message(
            conversation_id,
            sender_id=data["sender_id"],
            sender_role=data["sender_role"],
            message=data["message"],
            attachments=data.get("attachments"),
        )
        return jsonify({"message": message.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to send message")
        return jsonify({"error": "Internal server error"}), 500


@communications_bp.post("/conversations/<int:conversation_id>/read")
def mark_conversation_read_route(conversation_id: int):
    try:
        data = request.get_json(silent=True) or {}
        if data.get("reader_id") is None:
            return jsonify({"error": "reader_id required"}), 400
        updated = communications_service.mark_conversation_read(conversation_id, data["reader_id"])
        return jsonify({"updated": updated}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code


# =============================================================================
# SUPPORT TICKETS
# =============================================================================

@communications_bp.post("/tickets")
def create_ticket_route():
    try:
        data = request.get_json(silent=True) or {}
        missing = [f for f in ("customer_id", "subject", "description") if data.get(f) is None]
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

        ticket = communications_service.create_ticket(
            customer_id=data["customer_id"],
            subject=data["subject"],
            description=data["description"],
            category=data.get("category", "other"),
            priority=data.get("priority", "medium"),
        )
        return jsonify({"ticket": ticket.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create ticket")
        return jsonify({"error": "Internal server error"}), 500


@communications_bp.get("/tickets")
def list_tickets_route():
    try:
        tickets = communications_service.list_tickets(
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
        )
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"tickets": [t.to_dict() for t in tickets]}), 200


@communications_bp.get("/tickets/<int:ticket_id>")
def get_ticket_route(ticket_id: int):
    try:
        ticket = communications_service.get_ticket(ticket_id)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"ticket": ticket.to_dict(include_messages=True)}), 200


@communications_bp.post("/tickets/<int:ticket_id>/messages")
def add_ticket_message_route(ticket_id: int):
    try:
        data = request.get_json(silent=True) or {}
        missing = [f for f in ("sender_id", "sender_role", "message") if data.get(f) is None]
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

        message = communications_service.add_ticket_message(
            ticket_id,
            sender_id=data["sender_id"],
            sender_role=data["sender_role"],
            message=data["message"],
        )
        return jsonify({"message": message.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add ticket message")
        return jsonify({"error": "Internal server error"}), 500


@communications_bp.post("/tickets/<int:ticket_id>/assign")
def assign_ticket_route(ticket_id: int):
    try:
        data = request.get_json(silent=True) or {}
        if data.get("admin_id") is None:
            return jsonify({"error": "admin_id required"}), 400
        ticket = communications_service.assign_ticket(ticket_id, data["admin_id"])
        return jsonify({"ticket": ticket.to_dict()}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to assign ticket")
        return jsonify({"error": "Internal server error"}), 500


@communications_bp.post("/tickets/<int:ticket_id>/status")
def update_ticket_status_route(ticket_id: int):
    try:
        data = request.get_json(silent=True) or {}
        if not data.get("status"):
            return jsonify({"error": "status required"}), 400
        ticket = communications_service.update_ticket_status(ticket_id, data["status"])
        return jsonify({"ticket": ticket.to_dict()}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update ticket status")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# NOTIFICATIONS
# =============================================================================

@communications_bp.post("/notifications")
def create_notification_route():
    try:
        data = request.get_json(silent=True) or {}
        required = ("recipient_id", "recipient_role", "type", "title", "message")
        missing = [f for f in required if data.get(f) is None]
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

        notification = communications_service.create_notification(
            related_order_id=data.get("related_order_id"),
            action_url=data.get("action_url"),
            **{f: data[f] for f in required},
        )
        return jsonify({"notification": notification.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create notification")
        return jsonify({"error": "Internal server error"}), 500


@communications_bp.get("/notifications/<int:recipient_id>")
def list_notifications_route(recipient_id: int):
    unread_only = request.args.get("unread_only", "false").lower() == "true"
    notifications = communications_service.list_notifications(recipient_id, unread_only=unread_only)
    return jsonify({
        "notifications": [n.to_dict() for n in notifications],
        "unread_count": communications_service.unread_count(recipient_id),
    }), 200


@communications_bp.post("/notifications/<int:notification_id>/read")
def mark_notification_read_route(notification_id: int):
    try:
        notification = communications_service.mark_notification_read(notification_id)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"notification": notification.to_dict()}), 200


@communications_bp.post("/notifications/<int:recipient_id>/read-all")
def mark_all_read_route(recipient_id: int):
    updated = communications_service.mark_all_read(recipient_id)
    return jsonify({"updated": updated}), 200

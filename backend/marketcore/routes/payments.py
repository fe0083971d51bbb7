# Overview: Flask API routes for payments, wallets and refunds; parses input and returns JSON responses.

# backend/marketcore/routes/payments.py
"""
Financial Ledger API Routes

DESIGN:
- Payments and refunds move through status updates; completion timestamps
  are stamped by the service.
- Wallet credits/debits go through POST /wallets/<customer_id>/transactions,
  which writes the log row and the balance change together.
- POST /wallets/<customer_id>/balance applies a raw signed balance change
  without a log row, for callers that record the transaction themselves.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import CoreError
from ..services import payment_service


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _missing(data: dict, fields) -> list:
    return [f for f in fields if data.get(f) is None]


# =============================================================================
# PAYMENTS
# =============================================================================

@payments_bp.post("/")
def create_payment_route():
    """
    Request body:
    {
        "order_id": 12,
        "customer_id": 3,
        "amount_cents": 1200,
        "method": "card",
        "transaction_id": "gw-123"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        missing = _missing(data, ("order_id", "customer_id", "amount_cents", "method"))
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

        payment = payment_service.create_payment(
            order_id=data["order_id"],
            customer_id=data["customer_id"],
            amount_cents=data["amount_cents"],
            method=data["method"],
            transaction_id=data.get("transaction_id"),
        )
        return jsonify({"payment": payment.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/<int:payment_id>/status")
def update_payment_status_route(payment_id: int):
    try:
        data = request.get_json(silent=True) or {}
        if not data.get("status"):
            return jsonify({"error": "status required"}), 400
        payment = payment_service.update_payment_status(payment_id, data["status"])
        return jsonify({"payment": payment.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update payment status")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/customers/<int:customer_id>")
def list_customer_payments_route(customer_id: int):
    payments = payment_service.list_payments_for_customer(customer_id)
    return jsonify({"payments": [p.to_dict() for p in payments]}), 200


# =============================================================================
# WALLETS
# =============================================================================

@payments_bp.post("/wallets")
def create_wallet_route():
    try:
        data = request.get_json(silent=True) or {}
        if data.get("customer_id") is None:
            return jsonify({"error": "customer_id required"}), 400
        wallet = payment_service.create_wallet(
            data["customer_id"],
            initial_balance_cents=data.get("initial_balance_cents", 0),
        )
        return jsonify({"wallet": wallet.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create wallet")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/wallets/<int:customer_id>")
def get_wallet_route(customer_id: int):
    try:
        wallet = payment_service.get_wallet(customer_id)
        transactions = payment_service.list_wallet_transactions(customer_id)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({
        "wallet": wallet.to_dict(),
        "transactions": [t.to_dict() for t in transactions],
    }), 200


@payments_bp.post("/wallets/<int:customer_id>/transactions")
def apply_wallet_transaction_route(customer_id: int):
    """
    Request body:
    {
        "type": "credit",  (credit or debit)
        "amount_cents": 500,  (positive magnitude)
        "description": "Refund for order 12",
        "related_order_id": 12  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        missing = _missing(data, ("type", "amount_cents"))
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

        txn = payment_service.apply_wallet_transaction(
            customer_id=customer_id,
            type=data["type"],
            amount_cents=data["amount_cents"],
            description=data.get("description", ""),
            related_order_id=data.get("related_order_id"),
        )
        wallet = payment_service.get_wallet(customer_id)
        return jsonify({"transaction": txn.to_dict(), "wallet": wallet.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to apply wallet transaction")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/wallets/<int:customer_id>/balance")
def update_wallet_balance_route(customer_id: int):
    try:
        data = request.get_json(silent=True) or {}
        if data.get("amount_cents") is None:
            return jsonify({"error": "amount_cents required"}), 400
        wallet = payment_service.update_wallet_balance(customer_id, data["amount_cents"])
        return jsonify({"wallet": wallet.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update wallet balance")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# REFUNDS
# =============================================================================

@payments_bp.post("/refunds")
def create_refund_route():
    try:
        data = request.get_json(silent=True) or {}
        missing = _missing(data, ("payment_id", "amount_cents", "reason"))
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

        refund = payment_service.create_refund(
            payment_id=data["payment_id"],
            amount_cents=data["amount_cents"],
            reason=data["reason"],
            order_id=data.get("order_id"),
        )
        return jsonify({"refund": refund.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create refund")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/refunds/<int:refund_id>/status")
def update_refund_status_route(refund_id: int):
    try:
        data = request.get_json(silent=True) or {}
        if not data.get("status"):
            return jsonify({"error": "status required"}), 400
        refund = payment_service.update_refund_status(refund_id, data["status"])
        return jsonify({"refund": refund.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update refund status")
        return jsonify({"error": "Internal server error"}), 500

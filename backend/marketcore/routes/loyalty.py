# backend/marketcore/routes/loyalty.py
"""
Loyalty API Routes

Point deltas arrive already computed; the ledger applies them, recomputes
the tier, and records the ledger row.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import CoreError
from ..services import loyalty_service


loyalty_bp = Blueprint("loyalty", __name__, url_prefix="/api/loyalty")


@loyalty_bp.post("/accounts")
def create_account_route():
    try:
        data = request.get_json(silent=True) or {}
        if data.get("customer_id") is None:
            return jsonify({"error": "customer_id required"}), 400
        account = loyalty_service.create_loyalty_account(data["customer_id"], points=data.get("points", 0))
        return jsonify({"account": account.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create loyalty account")
        return jsonify({"error": "Internal server error"}), 500


@loyalty_bp.get("/accounts/<int:customer_id>")
def get_account_route(customer_id: int):
    try:
        account = loyalty_service.get_loyalty_account(customer_id)
        transactions = loyalty_service.list_loyalty_transactions(customer_id)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({
        "account": account.to_dict(),
        "transactions": [t.to_dict() for t in transactions],
    }), 200


@loyalty_bp.post("/accounts/<int:customer_id>/points")
def update_points_route(customer_id: int):
    """
    Request body:
    {
        "delta": 100,  (negative to spend)
        "description": "Order #12",  (optional)
        "related_order_id": 12  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("delta") is None:
            return jsonify({"error": "delta required"}), 400
        account = loyalty_service.update_loyalty_points(
            customer_id,
            data["delta"],
            description=data.get("description"),
            related_order_id=data.get("related_order_id"),
        )
        return jsonify({"account": account.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update loyalty points")
        return jsonify({"error": "Internal server error"}), 500


@loyalty_bp.post("/referrals")
def register_referral_route():
    try:
        data = request.get_json(silent=True) or {}
        if not data.get("referral_code"):
            return jsonify({"error": "referral_code required"}), 400
        account = loyalty_service.register_referral(data["referral_code"])
        return jsonify({"account": account.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register referral")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# REWARDS
# =============================================================================

@loyalty_bp.post("/rewards")
def create_reward_route():
    try:
        data = request.get_json(silent=True) or {}
        missing = [f for f in ("name", "points_cost", "expires_at") if data.get(f) is None]
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

        reward = loyalty_service.create_reward(
            name=data["name"],
            points_cost=data["points_cost"],
            expires_at=data["expires_at"],
            description=data.get("description"),
            discount_cents=data.get("discount_cents", 0),
            category=data.get("category", "discount"),
        )
        return jsonify({"reward": reward.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create reward")
        return jsonify({"error": "Internal server error"}), 500


@loyalty_bp.get("/rewards")
def list_rewards_route():
    return jsonify({"rewards": [r.to_dict() for r in loyalty_service.list_active_rewards()]}), 200


@loyalty_bp.post("/rewards/<int:reward_id>/redeem")
def redeem_reward_route(reward_id: int):
    try:
        data = request.get_json(silent=True) or {}
        if data.get("customer_id") is None:
            return jsonify({"error": "customer_id required"}), 400
        redemption = loyalty_service.redeem_reward(data["customer_id"], reward_id)
        return jsonify({"redemption": redemption.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to redeem reward")
        return jsonify({"error": "Internal server error"}), 500


@loyalty_bp.post("/redemptions/<int:redemption_id>/use")
def use_redemption_route(redemption_id: int):
    try:
        redemption = loyalty_service.use_redemption(redemption_id)
        return jsonify({"redemption": redemption.to_dict()}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to use redemption")
        return jsonify({"error": "Internal server error"}), 500

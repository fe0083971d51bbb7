# backend/marketcore/routes/vendors.py
"""
Vendor reputation routes: reviews, responses, votes, performance and leaderboard.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import CoreError
from ..services import vendor_service


vendors_bp = Blueprint("vendors", __name__, url_prefix="/api/vendors")

REVIEW_FIELDS = ("customer_id", "order_id", "rating", "food_quality", "delivery_time", "customer_service")


@vendors_bp.post("/<int:vendor_id>/reviews")
def add_review_route(vendor_id: int):
    try:
        data = request.get_json(silent=True) or {}
        missing = [f for f in REVIEW_FIELDS if data.get(f) is None]
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

        review = vendor_service.add_review(
            vendor_id=vendor_id,
            comment=data.get("comment", ""),
            photos=data.get("photos"),
            **{f: data[f] for f in REVIEW_FIELDS},
        )
        performance = vendor_service.get_vendor_performance(vendor_id)
        return jsonify({"review": review.to_dict(), "performance": performance.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add review")
        return jsonify({"error": "Internal server error"}), 500


@vendors_bp.get("/<int:vendor_id>/reviews")
def list_reviews_route(vendor_id: int):
    reviews = vendor_service.list_reviews_for_vendor(vendor_id)
    return jsonify({"reviews": [r.to_dict() for r in reviews]}), 200


@vendors_bp.delete("/reviews/<int:review_id>")
def remove_review_route(review_id: int):
    try:
        performance = vendor_service.remove_review(review_id)
        return jsonify({"performance": performance.to_dict()}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove review")
        return jsonify({"error": "Internal server error"}), 500


@vendors_bp.post("/reviews/<int:review_id>/vote")
def vote_review_route(review_id: int):
    try:
        data = request.get_json(silent=True) or {}
        review = vendor_service.vote_review(review_id, data.get("helpful"))
        return jsonify({"review": review.to_dict()}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to vote on review")
        return jsonify({"error": "Internal server error"}), 500


@vendors_bp.post("/reviews/<int:review_id>/response")
def respond_to_review_route(review_id: int):
    try:
        data = request.get_json(silent=True) or {}
        if data.get("vendor_id") is None or not data.get("response"):
            return jsonify({"error": "vendor_id and response required"}), 400
        reply = vendor_service.respond_to_review(review_id, data["vendor_id"], data["response"])
        return jsonify({"response": reply.to_dict()}), 201
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to respond to review")
        return jsonify({"error": "Internal server error"}), 500


@vendors_bp.get("/<int:vendor_id>/performance")
def vendor_performance_route(vendor_id: int):
    try:
        performance = vendor_service.get_vendor_performance(vendor_id)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"performance": performance.to_dict()}), 200


@vendors_bp.get("/leaderboard")
def leaderboard_route():
    limit = request.args.get("limit", 10, type=int)
    return jsonify({"vendors": [p.to_dict() for p in vendor_service.get_vendor_leaderboard(limit)]}), 200

# Overview: Flask API routes for the order lifecycle; parses input and returns JSON responses.

# backend/marketcore/routes/orders.py
"""
Order Lifecycle API Routes

WHY: Customer, vendor and driver front ends drive orders through the state
machine via these endpoints. All rules live in order_service.

Request and response amounts are integer cents.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import CoreError
from ..services import order_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

ORDER_CREATE_FIELDS = (
    "customer_id",
    "store_id",
    "items",
    "subtotal_cents",
    "delivery_fee_cents",
    "total_cents",
)
ORDER_OPTIONAL_FIELDS = (
    "payment_method",
    "delivery_address",
    "city",
    "customer_phone",
    "scheduled_date",
    "scheduled_time",
    "is_package_delivery",
    "package_description",
    "recipient_name",
    "recipient_phone",
    "who_pays",
)


@orders_bp.post("/")
def create_order_route():
    """
    Place an order.

    Request body:
    {
        "customer_id": 1,
        "store_id": 2,
        "items": [{"product_id": 1, "quantity": 2, "price_cents": 500}],
        "subtotal_cents": 1000,
        "delivery_fee_cents": 200,
        "total_cents": 1200,
        "payment_method": "cash"  (optional: cash, card, wallet)
    }

    Returns:
        201: Order created at status 'pending'
        400: Invalid input
        404: Unknown customer or store
    """
    try:
        data = request.get_json(silent=True) or {}
        missing = [f for f in ORDER_CREATE_FIELDS if f not in data]
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

        kwargs = {f: data[f] for f in ORDER_CREATE_FIELDS}
        kwargs.update({f: data[f] for f in ORDER_OPTIONAL_FIELDS if f in data})
        order = order_service.create_order(**kwargs)
        return jsonify({"order": order.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        return jsonify({"order": order_service.get_order(order_id).to_dict()}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.post("/<int:order_id>/status")
def update_status_route(order_id: int):
    """
    Move an order to a new status.

    Request body:
    {
        "status": "accepted",
        "driver_id": 7  (required when status is 'assigned')
    }

    Returns:
        200: Updated order
        400: Unknown status or missing driver
        404: Order not found
        409: Illegal transition (strict mode)
    """
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            return jsonify({"error": "status required"}), 400

        order = order_service.update_status(order_id, status, driver_id=data.get("driver_id"))
        return jsonify({"order": order.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/assign")
def assign_driver_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        driver_id = data.get("driver_id")
        if driver_id is None:
            return jsonify({"error": "driver_id required"}), 400

        order = order_service.assign_driver(order_id, driver_id)
        return jsonify({"order": order.to_dict()}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to assign driver")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
def cancel_order_route(order_id: int):
    try:
        order = order_service.cancel_order(order_id)
        return jsonify({"order": order.to_dict()}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ORDER QUERIES
# =============================================================================

@orders_bp.get("/")
def list_orders_route():
    """
    List orders by one filter.

    Query params (first match wins):
    - customer_id, store_id, driver_id
    - status=pending
    - available=true (ready and unclaimed)
    - scheduled_date=YYYY-MM-DD
    - payment_method
    """
    try:
        args = request.args
        if "customer_id" in args:
            orders = order_service.orders_for_customer(args.get("customer_id", type=int))
        elif "store_id" in args:
            orders = order_service.orders_for_store(args.get("store_id", type=int))
        elif "driver_id" in args:
            orders = order_service.orders_for_driver(args.get("driver_id", type=int))
        elif args.get("status") == "pending":
            orders = order_service.pending_orders()
        elif args.get("available", "false").lower() == "true":
            orders = order_service.orders_available_for_pickup()
        elif "scheduled_date" in args:
            orders = order_service.orders_scheduled_for(args["scheduled_date"])
        elif "payment_method" in args:
            orders = order_service.orders_by_payment_method(args["payment_method"])
        else:
            return jsonify({"error": "A filter is required"}), 400

        return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders)}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code

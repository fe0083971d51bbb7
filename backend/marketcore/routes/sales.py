# Overview: Flask API routes for POS sales, customers and sales analytics.

# backend/marketcore/routes/sales.py
"""
Sales API Routes

WHY: The vendor POS submits fully priced sales here. Pricing and discounts
are computed by the POS; the ledger records the sale and applies the
customer and stock cascades in one transaction.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import CoreError
from ..models import Customer
from ..validation import ModelValidationPolicy, validate_payload
from ..services import sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email"},
    required_on_create={"name", "phone"},
)

SALE_FIELDS = ("items", "subtotal_cents", "total_cents", "discount_cents", "payment_method", "customer_id")


@sales_bp.post("/")
def record_sale_route():
    """
    Record a completed sale.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 6, "price_cents": 250}],
        "subtotal_cents": 1500,
        "discount_cents": 0,
        "total_cents": 1500,
        "payment_method": "cash",
        "customer_id": 4  (optional)
    }

    Returns:
        201: Sale recorded
        400: Invalid input
        404: Unknown customer or product (nothing recorded)
    """
    try:
        data = request.get_json(silent=True) or {}
        missing = [f for f in ("items", "subtotal_cents", "total_cents") if f not in data]
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

        sale = sales_service.record_sale(**{f: data[f] for f in SALE_FIELDS if f in data})
        return jsonify({"sale": sale.to_dict()}), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        return jsonify({"sale": sales_service.get_sale(sale_id).to_dict()}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.get("/summary")
def sales_summary_route():
    """
    Dashboard totals: today (since midnight UTC), trailing 7 days, trailing month.

    Point-in-time snapshot; not transactionally consistent with concurrent sales.
    """
    windows = {
        "today": sales_service.get_today_sales(),
        "week": sales_service.get_week_sales(),
        "month": sales_service.get_month_sales(),
    }
    return jsonify({
        name: {"count": len(sales), "total_cents": sales_service.sales_total(sales)}
        for name, sales in windows.items()
    }), 200


@sales_bp.get("/top-products")
def top_products_route():
    limit = request.args.get("limit", 5, type=int)
    return jsonify({"products": sales_service.get_top_selling_products(limit)}), 200


# =============================================================================
# CUSTOMERS
# =============================================================================

@sales_bp.post("/customers")
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        customer = sales_service.create_customer(**patch)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"customer": customer.to_dict()}), 201


@sales_bp.get("/customers/<int:customer_id>")
def get_customer_route(customer_id: int):
    try:
        customer = sales_service.get_customer(customer_id)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    sales = sales_service.list_sales_for_customer(customer_id)
    return jsonify({"customer": customer.to_dict(), "sales": [s.to_dict() for s in sales]}), 200

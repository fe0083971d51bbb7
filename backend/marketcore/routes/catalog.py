# backend/marketcore/routes/catalog.py
"""
Catalog routes: marketplace users, stores and store products.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import CoreError
from ..models import Product, Store, User
from ..validation import ModelValidationPolicy, validate_payload
from ..services import catalog_service


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")

USER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "role"},
    required_on_create={"name", "email"},
)

STORE_POLICY = ModelValidationPolicy(
    writable_fields={"vendor_id", "name", "type", "city", "address", "latitude", "longitude"},
    required_on_create={"vendor_id", "name"},
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "price_cents", "available"},
    required_on_create={"name", "price_cents"},
)


@catalog_bp.post("/users")
def create_user_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=False)
        user = catalog_service.create_user(**patch)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"user": user.to_dict()}), 201


@catalog_bp.get("/users")
def list_users_route():
    users = catalog_service.list_users(request.args.get("role"))
    return jsonify({"users": [u.to_dict() for u in users]}), 200


@catalog_bp.post("/stores")
def create_store_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Store, payload=payload, policy=STORE_POLICY, partial=False)
        shop = catalog_service.create_store(**patch)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create store")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"store": shop.to_dict()}), 201


@catalog_bp.get("/stores/<int:store_id>")
def get_store_route(store_id: int):
    try:
        shop = catalog_service.get_store(store_id)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    available_only = request.args.get("available_only", "false").lower() == "true"
    products = catalog_service.list_products(store_id, available_only=available_only)
    return jsonify({"store": shop.to_dict(), "products": [p.to_dict() for p in products]}), 200


@catalog_bp.post("/stores/<int:store_id>/products")
def create_product_route(store_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        product = catalog_service.create_product(store_id=store_id, **patch)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"product": product.to_dict()}), 201

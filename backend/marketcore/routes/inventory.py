# backend/marketcore/routes/inventory.py
"""
Inventory ledger routes.

Stock changes go through POST /<id>/adjust (signed delta); sales decrement
stock through the sales routes. There is no endpoint that sets stock directly.
POST /import creates products in bulk from an xlsx, csv or json upload.
"""
from flask import Blueprint, request, jsonify, current_app

from ..errors import CoreError
from ..models import InventoryProduct, Supplier
from ..validation import ModelValidationPolicy, validate_payload, ValidationError
from ..services import inventory_import_service, inventory_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

INVENTORY_PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku",
        "name",
        "category",
        "cost_price_cents",
        "selling_price_cents",
        "stock",
        "low_stock_threshold",
        "barcode",
        "supplier_id",
        "image",
    },
    required_on_create={"sku", "name"},
)

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "contact_person", "phone", "email", "address", "products_supplied"},
    required_on_create={"name", "contact_person", "phone"},
)


@inventory_bp.post("/products")
def create_inventory_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=InventoryProduct,
            payload=payload,
            policy=INVENTORY_PRODUCT_POLICY,
            partial=False,
        )
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    try:
        product = inventory_service.create_inventory_product(**patch)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create inventory product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"product": product.to_dict()}), 201


@inventory_bp.get("/products")
def list_inventory_products_route():
    """
    Query params:
    - category: only this category
    - barcode: exact barcode lookup (returns at most one product)
    """
    barcode = request.args.get("barcode")
    if barcode:
        product = inventory_service.find_by_barcode(barcode)
        products = [product] if product is not None else []
    else:
        products = inventory_service.list_inventory_products(request.args.get("category"))
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@inventory_bp.get("/products/<int:product_id>")
def get_inventory_product_route(product_id: int):
    try:
        product = inventory_service.get_inventory_product(product_id)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"product": product.to_dict()}), 200


@inventory_bp.post("/products/<int:product_id>/adjust")
def adjust_stock_route(product_id: int):
    """
    Apply a signed stock delta.

    Request body: {"delta": -3}

    Returns:
        200: Updated product
        400: delta missing or not an integer
        404: Product not found
    """
    data = request.get_json(silent=True) or {}
    delta = data.get("delta")
    if not isinstance(delta, int) or isinstance(delta, bool):
        return jsonify({"error": "delta must be an integer"}), 400

    try:
        product = inventory_service.adjust_stock(product_id, delta)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500

    if product is None:
        return jsonify({"error": f"Inventory product {product_id} not found"}), 404
    return jsonify({"product": product.to_dict()}), 200


@inventory_bp.get("/low-stock")
def low_stock_route():
    products = inventory_service.get_low_stock()
    return jsonify({"products": [p.to_dict() for p in products], "count": len(products)}), 200


@inventory_bp.get("/value")
def inventory_value_route():
    return jsonify({"inventory_value_cents": inventory_service.get_inventory_value_cents()}), 200


# =============================================================================
# SUPPLIERS
# =============================================================================

@inventory_bp.post("/suppliers")
def create_supplier_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
        supplier = inventory_service.create_supplier(**patch)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"supplier": supplier.to_dict()}), 201


@inventory_bp.get("/suppliers")
def list_suppliers_route():
    return jsonify({"suppliers": [s.to_dict() for s in inventory_service.list_suppliers()]}), 200


# =============================================================================
# BULK IMPORT
# =============================================================================

@inventory_bp.post("/import")
def import_inventory_route():
    """
    Multipart upload with a "file" field (.xlsx, .csv or .json).

    Returns:
        201: {"imported": n, "product_ids": [...], "errors": [{"row": 3, "error": "..."}]}
        400: No file, or unreadable / unsupported file
    """
    if "file" not in request.files:
        return jsonify({"error": "file is required"}), 400

    upload = request.files["file"]
    try:
        result = inventory_import_service.import_inventory_file(upload.filename or "", upload.stream)
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to import inventory")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(result), 201

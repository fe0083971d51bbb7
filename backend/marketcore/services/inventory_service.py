# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/marketcore/services/inventory_service.py

from __future__ import annotations

from ..extensions import db
from ..errors import ConflictError
from ..models import InventoryProduct, Supplier
from marketcore.time_utils import utcnow
from ..validation import enforce_rules_inventory_product
from . import entity_store as store
from .concurrency import hold_keys, run_with_retry
"""
Inventory Ledger Invariants (authoritative)

- InventoryProduct.stock is a mutable integer counter.
- The ONLY write path for stock is _apply_stock_delta(), reached through
  adjust_stock() or, for sales, through sales_service.record_sale().
- Stock is not clamped: a delta that takes it below zero is applied as-is.
- Low stock means stock <= low_stock_threshold (inclusive).
- adjust_stock() on an unknown product returns None instead of raising;
  the sale cascade treats the same miss as a hard failure.
"""


def _apply_stock_delta(product: InventoryProduct, delta: int) -> InventoryProduct:
    """Core stock change without locking, retry, or commit.

    Called by adjust_stock() and by the sale cascade, which already holds
    the product locks inside its own transaction.
    """
    product.stock = product.stock + delta
    product.updated_at = utcnow()
    return product


def create_inventory_product(
    *,
    sku: str,
    name: str,
    category: str = "general",
    cost_price_cents: int = 0,
    selling_price_cents: int = 0,
    stock: int = 0,
    low_stock_threshold: int = 0,
    barcode: str | None = None,
    supplier_id: int | None = None,
    image: str | None = None,
) -> InventoryProduct:
    enforce_rules_inventory_product({
        "cost_price_cents": cost_price_cents,
        "selling_price_cents": selling_price_cents,
        "low_stock_threshold": low_stock_threshold,
    })

    def _op():
        if store.get_one_by(InventoryProduct, sku=sku) is not None:
            raise ConflictError(f"SKU {sku} already exists")
        if supplier_id is not None:
            store.require(Supplier, supplier_id, label="Supplier")

        now = utcnow()
        product = store.insert(InventoryProduct(
            sku=sku,
            name=name,
            category=category,
            cost_price_cents=cost_price_cents,
            selling_price_cents=selling_price_cents,
            stock=stock,
            low_stock_threshold=low_stock_threshold,
            barcode=barcode,
            supplier_id=supplier_id,
            image=image,
            created_at=now,
            updated_at=now,
        ))
        db.session.commit()
        return product

    return run_with_retry(_op)


def get_inventory_product(product_id: int) -> InventoryProduct:
    return store.require(InventoryProduct, product_id, label="Inventory product")


def list_inventory_products(category: str | None = None) -> list[InventoryProduct]:
    if category is None:
        return store.list_where(InventoryProduct)
    return store.list_where(InventoryProduct, category=category)


def find_by_barcode(barcode: str) -> InventoryProduct | None:
    return store.get_one_by(InventoryProduct, barcode=barcode)


def adjust_stock(product_id: int, delta: int) -> InventoryProduct | None:
    """
    Add delta (positive or negative) to a product's stock.

    Returns the updated product, or None when the product does not exist.
    """
    def _op():
        with hold_keys(("product", product_id)):
            product = store.get(InventoryProduct, product_id, lock=True)
            if product is None:
                return None
            _apply_stock_delta(product, delta)
            db.session.commit()
            return product

    return run_with_retry(_op)


def get_low_stock() -> list[InventoryProduct]:
    """All products at or below their low-stock threshold."""
    return store.list_where(
        InventoryProduct,
        InventoryProduct.stock <= InventoryProduct.low_stock_threshold,
    )


def get_inventory_value_cents() -> int:
    """Stock on hand valued at cost (negative stock counts as zero)."""
    return sum(max(p.stock, 0) * p.cost_price_cents for p in store.list_where(InventoryProduct))


# =============================================================================
# SUPPLIERS
# =============================================================================

def create_supplier(
    *,
    name: str,
    contact_person: str,
    phone: str,
    email: str | None = None,
    address: str | None = None,
    products_supplied: list[str] | None = None,
) -> Supplier:
    def _op():
        supplier = store.insert(Supplier(
            name=name,
            contact_person=contact_person,
            phone=phone,
            email=email,
            address=address,
            products_supplied=list(products_supplied or []),
        ))
        db.session.commit()
        return supplier

    return run_with_retry(_op)


def list_suppliers() -> list[Supplier]:
    return store.list_where(Supplier)

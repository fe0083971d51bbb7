"""
Sales Service - POS sales, customer aggregates, and sales analytics

WHY: A completed sale touches three collections at once (the sale itself,
the customer's purchase aggregate, and product stock). Recording it is a
single transaction so no partial state is ever visible.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timedelta

from ..extensions import db
from ..models import Customer, InventoryProduct, Sale, SaleItem
from ..models.sales import SALE_PAYMENT_METHODS
from marketcore.time_utils import start_of_day, subtract_months, utcnow
from ..validation import enforce_rules_sale, require_choice
from . import entity_store as store
from .concurrency import hold_keys, run_with_retry
from .inventory_service import _apply_stock_delta


# =============================================================================
# CUSTOMERS
# =============================================================================

def create_customer(*, name: str, phone: str, email: str | None = None) -> Customer:
    def _op():
        customer = store.insert(Customer(name=name, phone=phone, email=email))
        db.session.commit()
        return customer

    return run_with_retry(_op)


def get_customer(customer_id: int) -> Customer:
    return store.require(Customer, customer_id, label="Customer")


def list_customers() -> list[Customer]:
    return store.list_where(Customer)


# =============================================================================
# SALE RECORDING
# =============================================================================

def record_sale(
    *,
    items: list[dict],
    subtotal_cents: int,
    total_cents: int,
    discount_cents: int = 0,
    payment_method: str = "cash",
    customer_id: int | None = None,
) -> Sale:
    """
    Record a fully priced sale and apply its cascades atomically.

    Effects (all or nothing):
    1. Sale and SaleItem rows are inserted.
    2. If customer_id is given: customer.total_purchases_cents += total_cents,
       customer.last_purchase_date = now.
    3. Every line decrements its product's stock by its quantity through the
       inventory ledger.

    Pricing and discounts are computed by the caller; only shape and sign
    are validated here.

    Raises:
        ValidationError: malformed items or amounts
        NotFoundError: unknown customer or product (nothing is written)
    """
    enforce_rules_sale(items, subtotal_cents, discount_cents, total_cents)
    require_choice("payment_method", payment_method, SALE_PAYMENT_METHODS)

    product_ids = [item["product_id"] for item in items]
    keys = [("product", pid) for pid in product_ids]
    if customer_id is not None:
        keys.append(("customer", customer_id))

    def _op():
        with hold_keys(*keys):
            customer = None
            if customer_id is not None:
                customer = store.require(Customer, customer_id, lock=True, label="Customer")

            products = {
                pid: store.require(InventoryProduct, pid, lock=True, label="Inventory product")
                for pid in dict.fromkeys(product_ids)
            }

            now = utcnow()
            sale = Sale(
                customer_id=customer_id,
                subtotal_cents=subtotal_cents,
                discount_cents=discount_cents,
                total_cents=total_cents,
                payment_method=payment_method,
                created_at=now,
            )
            for item in items:
                product = products[item["product_id"]]
                sale.items.append(SaleItem(
                    product_id=product.id,
                    product_name=item.get("product_name") or product.name,
                    quantity=item["quantity"],
                    price_cents=item["price_cents"],
                    discount_cents=item.get("discount_cents", 0),
                ))
            store.insert(sale)

            if customer is not None:
                customer.total_purchases_cents = customer.total_purchases_cents + total_cents
                customer.last_purchase_date = now

            for item in items:
                _apply_stock_delta(products[item["product_id"]], -item["quantity"])

            db.session.commit()
            return sale

    return run_with_retry(_op)


def get_sale(sale_id: int) -> Sale:
    return store.require(Sale, sale_id, label="Sale")


def list_sales_for_customer(customer_id: int) -> list[Sale]:
    return store.list_where(Sale, customer_id=customer_id)


# =============================================================================
# ANALYTICS (point-in-time reads)
# =============================================================================

def _sales_since(start: datetime) -> list[Sale]:
    return store.list_where(Sale, Sale.created_at >= start)


def get_today_sales(now: datetime | None = None) -> list[Sale]:
    """Sales since midnight (UTC) today."""
    return _sales_since(start_of_day(now or utcnow()))


def get_week_sales(now: datetime | None = None) -> list[Sale]:
    """Sales in the trailing 7 days."""
    return _sales_since((now or utcnow()) - timedelta(days=7))


def get_month_sales(now: datetime | None = None) -> list[Sale]:
    """Sales since the same instant one calendar month ago."""
    return _sales_since(subtract_months(now or utcnow(), 1))


def sales_total(sales: list[Sale]) -> int:
    return sum(s.total_cents for s in sales)


def get_top_selling_products(limit: int = 5) -> list[dict]:
    """
    Rank products by total quantity sold.

    Ties keep the order in which products first appeared in the sale
    history (stable sort over insertion order).
    """
    totals: "OrderedDict[int, dict]" = OrderedDict()
    for sale in store.list_where(Sale):
        for item in sale.items:
            entry = totals.get(item.product_id)
            if entry is None:
                entry = {
                    "product_id": item.product_id,
                    "product_name": item.product_name,
                    "quantity": 0,
                    "revenue_cents": 0,
                }
                totals[item.product_id] = entry
            entry["quantity"] += item.quantity
            entry["revenue_cents"] += item.price_cents * item.quantity - item.discount_cents

    ranked = sorted(totals.values(), key=lambda e: e["quantity"], reverse=True)
    return ranked[:max(limit, 0)]

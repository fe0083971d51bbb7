# Overview: Service-layer operations for orders; owns the order state machine.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import InvariantViolation, ValidationError
from ..models import Order, OrderItem, Store, User
from ..models.orders import (
    ORDER_STATUSES,
    PAYMENT_METHODS,
    STATUS_TIMESTAMP_FIELDS,
    TERMINAL_STATUSES,
)
from marketcore.time_utils import parse_iso_date, utcnow
from ..validation import enforce_rules_order, require_choice
from . import entity_store as store
from .concurrency import hold_keys, run_with_retry
"""
Order Lifecycle Invariants (authoritative)

States:
    pending -> accepted -> preparing -> ready -> assigned -> in_delivery -> delivered
    cancelled is reachable from any non-terminal state.
    delivered and cancelled are terminal.

Timestamps:
- accepted_at, preparing_at, ready_at, assigned_at, delivered_at are stamped
  on FIRST entry into the matching status and never rewritten, so repeating
  a transition is idempotent and timestamps never decrease.

Transition checking (ORDER_STRICT_TRANSITIONS):
- strict (default): leaving a terminal state or moving backwards along the
  sequence raises InvariantViolation. Forward skips (accepted -> delivered)
  and repeating the current status are allowed.
- permissive: every requested transition is applied, callers are trusted.
"""

_SEQUENCE_INDEX = {status: i for i, status in enumerate(ORDER_STATUSES) if status != "cancelled"}


def _strict_transitions() -> bool:
    return bool(current_app.config.get("ORDER_STRICT_TRANSITIONS", True))


def check_transition(current: str, new: str) -> None:
    """Raise InvariantViolation if current -> new is illegal in strict mode."""
    if current == new:
        return
    if current in TERMINAL_STATUSES:
        raise InvariantViolation(
            f"Order is {current}; cannot move to {new}",
            details={"from": current, "to": new},
        )
    if new == "cancelled":
        return
    if _SEQUENCE_INDEX[new] < _SEQUENCE_INDEX[current]:
        raise InvariantViolation(
            f"Cannot move order backwards from {current} to {new}",
            details={"from": current, "to": new},
        )


def create_order(
    *,
    customer_id: int,
    store_id: int,
    items: list[dict],
    subtotal_cents: int,
    delivery_fee_cents: int,
    total_cents: int,
    payment_method: str = "cash",
    delivery_address: str | None = None,
    city: str | None = None,
    customer_phone: str | None = None,
    scheduled_date=None,
    scheduled_time: str | None = None,
    is_package_delivery: bool = False,
    package_description: str | None = None,
    recipient_name: str | None = None,
    recipient_phone: str | None = None,
    who_pays: str | None = None,
) -> Order:
    """
    Insert a new order at status 'pending'.

    Raises:
        ValidationError: empty items, non-positive quantity, or
            total_cents != subtotal_cents + delivery_fee_cents
        NotFoundError: unknown customer or store
    """
    enforce_rules_order(
        items, subtotal_cents, delivery_fee_cents, total_cents,
        allow_empty=is_package_delivery,
    )
    require_choice("payment_method", payment_method, PAYMENT_METHODS)
    if who_pays is not None:
        require_choice("who_pays", who_pays, ("customer", "receiver"))
    try:
        scheduled = parse_iso_date(scheduled_date)
    except ValueError:
        raise ValidationError("scheduled_date must be an ISO-8601 date")

    def _op():
        store.require(User, customer_id, label="Customer")
        store.require(Store, store_id, label="Store")

        now = utcnow()
        order = Order(
            customer_id=customer_id,
            store_id=store_id,
            subtotal_cents=subtotal_cents,
            delivery_fee_cents=delivery_fee_cents,
            total_cents=total_cents,
            status="pending",
            payment_method=payment_method,
            delivery_address=delivery_address,
            city=city,
            customer_phone=customer_phone,
            scheduled_date=scheduled,
            scheduled_time=scheduled_time,
            is_package_delivery=is_package_delivery,
            package_description=package_description,
            recipient_name=recipient_name,
            recipient_phone=recipient_phone,
            who_pays=who_pays,
            created_at=now,
            updated_at=now,
        )
        for item in items:
            order.items.append(OrderItem(
                product_id=item["product_id"],
                quantity=item["quantity"],
                price_cents=item["price_cents"],
            ))
        store.insert(order)
        db.session.commit()
        return order

    return run_with_retry(_op)


def get_order(order_id: int) -> Order:
    return store.require(Order, order_id, label="Order")


def update_status(order_id: int, new_status: str, driver_id: int | None = None) -> Order:
    """
    Move an order to new_status and stamp the matching timestamp once.

    'assigned' requires driver_id, which is written to the order.

    Raises:
        NotFoundError: order (or driver) does not exist
        ValidationError: unknown status, or 'assigned' without driver_id
        InvariantViolation: illegal transition while strict checking is on
    """
    require_choice("status", new_status, ORDER_STATUSES)
    if new_status == "assigned" and driver_id is None:
        raise ValidationError("driver_id is required to assign an order")

    def _op():
        with hold_keys(("order", order_id)):
            order = store.require(Order, order_id, lock=True, label="Order")

            if _strict_transitions():
                check_transition(order.status, new_status)

            if new_status == "assigned":
                driver = store.require(User, driver_id, label="Driver")
                if driver.role != "driver":
                    raise ValidationError(f"User {driver_id} is not a driver")
                order.driver_id = driver_id

            now = utcnow()
            order.status = new_status
            order.updated_at = now

            field = STATUS_TIMESTAMP_FIELDS.get(new_status)
            if field and getattr(order, field) is None:
                setattr(order, field, now)

            db.session.commit()
            return order

    return run_with_retry(_op)


def assign_driver(order_id: int, driver_id: int) -> Order:
    """Transition straight to 'assigned', setting driver_id and assigned_at."""
    return update_status(order_id, "assigned", driver_id=driver_id)


def cancel_order(order_id: int) -> Order:
    return update_status(order_id, "cancelled")


# =============================================================================
# QUERIES
# =============================================================================

def orders_for_customer(customer_id: int) -> list[Order]:
    return store.list_where(Order, customer_id=customer_id)


def orders_for_store(store_id: int) -> list[Order]:
    return store.list_where(Order, store_id=store_id)


def orders_for_driver(driver_id: int) -> list[Order]:
    return store.list_where(Order, driver_id=driver_id)


def pending_orders() -> list[Order]:
    return store.list_where(Order, status="pending")


def orders_available_for_pickup() -> list[Order]:
    """Ready orders that no driver has claimed yet."""
    return store.list_where(Order, Order.driver_id.is_(None), status="ready")


def orders_scheduled_for(day) -> list[Order]:
    """Orders whose scheduled_date falls on the same calendar day."""
    try:
        target = parse_iso_date(day)
    except ValueError:
        raise ValidationError("day must be an ISO-8601 date")
    if target is None:
        raise ValidationError("a date is required")
    return store.list_where(Order, scheduled_date=target)


def orders_by_payment_method(payment_method: str) -> list[Order]:
    require_choice("payment_method", payment_method, PAYMENT_METHODS)
    return store.list_where(Order, payment_method=payment_method)

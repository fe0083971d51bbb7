"""
Order lifecycle tests: creation rules, timestamps, strict transitions, queries.
"""

from datetime import date

import pytest

from marketcore.errors import InvariantViolation, NotFoundError, ValidationError
from marketcore.services import order_service


class TestCreateOrder:
    """Boundary validation on order creation."""

    def test_new_order_is_pending(self, make_order):
        order = make_order()
        assert order.status == "pending"
        assert order.total_cents == 1200
        assert [item.quantity for item in order.items] == [2]
        assert order.accepted_at is None

    def test_empty_items_rejected(self, make_order):
        with pytest.raises(ValidationError):
            make_order(items=[], subtotal_cents=0, delivery_fee_cents=0, total_cents=0)

    def test_package_delivery_may_have_no_items(self, make_order):
        order = make_order(
            items=[], subtotal_cents=0, delivery_fee_cents=300, total_cents=300,
            is_package_delivery=True, package_description="Documents",
            recipient_name="Sara", recipient_phone="0555", who_pays="receiver",
        )
        assert order.is_package_delivery is True
        assert order.items == []

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_rejected(self, make_order, quantity):
        with pytest.raises(ValidationError):
            make_order(items=[{"product_id": 1, "quantity": quantity, "price_cents": 500}])

    def test_total_must_equal_subtotal_plus_fee(self, make_order):
        with pytest.raises(ValidationError) as exc:
            make_order(total_cents=1100)
        assert exc.value.details["total_cents"] == 1100

    def test_unknown_store_is_not_found(self, make_order):
        with pytest.raises(NotFoundError):
            make_order(store_id=999)

    def test_bad_payment_method_rejected(self, make_order):
        with pytest.raises(ValidationError):
            make_order(payment_method="bitcoin")


class TestStatusTimestamps:
    """Each status timestamp is stamped once, on first entry."""

    def test_update_sets_status_and_timestamp(self, make_order):
        order = make_order()
        updated = order_service.update_status(order.id, "accepted")
        assert updated.status == "accepted"
        assert updated.accepted_at is not None

    def test_repeating_status_keeps_first_timestamp(self, make_order):
        order = make_order()
        first = order_service.update_status(order.id, "accepted").accepted_at
        again = order_service.update_status(order.id, "accepted")
        assert again.status == "accepted"
        assert again.accepted_at == first

    def test_forward_skip_keeps_earlier_timestamps(self, make_order):
        order = make_order()
        accepted_at = order_service.update_status(order.id, "accepted").accepted_at
        delivered = order_service.update_status(order.id, "delivered")
        assert delivered.status == "delivered"
        assert delivered.delivered_at is not None
        assert delivered.accepted_at == accepted_at
        assert delivered.preparing_at is None

    def test_unknown_order_is_not_found(self, app):
        with pytest.raises(NotFoundError):
            order_service.update_status(404, "accepted")

    def test_unknown_status_rejected(self, make_order):
        order = make_order()
        with pytest.raises(ValidationError):
            order_service.update_status(order.id, "teleported")


class TestAssignment:
    def test_assign_driver_sets_driver_and_timestamp(self, make_order, driver):
        order = make_order()
        assigned = order_service.assign_driver(order.id, driver.id)
        assert assigned.status == "assigned"
        assert assigned.driver_id == driver.id
        assert assigned.assigned_at is not None

    def test_assigned_without_driver_rejected(self, make_order):
        order = make_order()
        with pytest.raises(ValidationError):
            order_service.update_status(order.id, "assigned")

    def test_assigning_a_non_driver_rejected(self, make_order, customer):
        order = make_order()
        with pytest.raises(ValidationError):
            order_service.assign_driver(order.id, customer.id)
        assert order_service.get_order(order.id).status == "pending"


class TestStrictTransitions:
    def test_cannot_leave_delivered(self, make_order):
        order = make_order()
        order_service.update_status(order.id, "delivered")
        with pytest.raises(InvariantViolation):
            order_service.update_status(order.id, "pending")

    def test_cannot_deliver_cancelled_order(self, make_order):
        order = make_order()
        order_service.cancel_order(order.id)
        with pytest.raises(InvariantViolation):
            order_service.update_status(order.id, "delivered")
        assert order_service.get_order(order.id).status == "cancelled"

    def test_cannot_move_backwards(self, make_order):
        order = make_order()
        order_service.update_status(order.id, "ready")
        with pytest.raises(InvariantViolation) as exc:
            order_service.update_status(order.id, "accepted")
        assert exc.value.details == {"from": "ready", "to": "accepted"}

    def test_cancel_from_any_non_terminal_state(self, make_order):
        order = make_order()
        order_service.update_status(order.id, "preparing")
        assert order_service.cancel_order(order.id).status == "cancelled"

    def test_permissive_mode_allows_any_transition(self, app, make_order):
        app.config["ORDER_STRICT_TRANSITIONS"] = False
        order = make_order()
        order_service.update_status(order.id, "delivered")
        reopened = order_service.update_status(order.id, "pending")
        assert reopened.status == "pending"
        assert reopened.delivered_at is not None


class TestOrderQueries:
    def test_queries_by_owner(self, make_order, customer, shop, driver):
        first = make_order()
        second = make_order()
        order_service.assign_driver(second.id, driver.id)

        assert [o.id for o in order_service.orders_for_customer(customer.id)] == [first.id, second.id]
        assert [o.id for o in order_service.orders_for_store(shop.id)] == [first.id, second.id]
        assert [o.id for o in order_service.orders_for_driver(driver.id)] == [second.id]
        assert [o.id for o in order_service.pending_orders()] == [first.id]

    def test_available_for_pickup_is_ready_and_unclaimed(self, make_order, driver, app):
        unclaimed = make_order()
        order_service.update_status(unclaimed.id, "ready")
        make_order()

        app.config["ORDER_STRICT_TRANSITIONS"] = False
        claimed = make_order()
        order_service.assign_driver(claimed.id, driver.id)
        order_service.update_status(claimed.id, "ready")

        assert [o.id for o in order_service.orders_available_for_pickup()] == [unclaimed.id]

    def test_scheduled_for_matches_calendar_day(self, make_order):
        on_day = make_order(scheduled_date="2026-10-20", scheduled_time="12:30")
        make_order(scheduled_date="2026-10-21")
        make_order()

        assert [o.id for o in order_service.orders_scheduled_for(date(2026, 10, 20))] == [on_day.id]
        assert [o.id for o in order_service.orders_scheduled_for("2026-10-20T18:00:00Z")] == [on_day.id]

    def test_scheduled_for_rejects_garbage(self, app):
        with pytest.raises(ValidationError):
            order_service.orders_scheduled_for("next tuesday")

    def test_by_payment_method(self, make_order):
        cash = make_order()
        wallet = make_order(payment_method="wallet")
        assert [o.id for o in order_service.orders_by_payment_method("wallet")] == [wallet.id]
        assert [o.id for o in order_service.orders_by_payment_method("cash")] == [cash.id]

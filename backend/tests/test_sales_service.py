"""
Sales ledger tests: the atomic sale cascade and point-in-time analytics.
"""

from datetime import datetime, timedelta

import pytest

from marketcore.extensions import db
from marketcore.errors import NotFoundError, ValidationError
from marketcore.models import Sale
from marketcore.services import inventory_service, sales_service


def _line(product, quantity, price_cents=250, **extra):
    line = {"product_id": product.id, "quantity": quantity, "price_cents": price_cents}
    line.update(extra)
    return line


@pytest.fixture
def pos_customer(app):
    return sales_service.create_customer(name="Walk-in", phone="0550000000")


class TestRecordSale:
    def test_cascades_to_customer_and_stock(self, pos_customer, make_inventory_product):
        water = make_inventory_product(stock=10)
        bread = make_inventory_product(stock=20)

        sale = sales_service.record_sale(
            items=[_line(water, 3), _line(bread, 5, price_cents=15)],
            subtotal_cents=825,
            total_cents=825,
            customer_id=pos_customer.id,
        )

        customer = sales_service.get_customer(pos_customer.id)
        assert customer.total_purchases_cents == 825
        assert customer.last_purchase_date == sale.created_at
        assert inventory_service.get_inventory_product(water.id).stock == 7
        assert inventory_service.get_inventory_product(bread.id).stock == 15

    def test_customer_total_is_cumulative(self, pos_customer, make_inventory_product):
        product = make_inventory_product(stock=100)
        for total in (500, 250):
            sales_service.record_sale(
                items=[_line(product, 1, price_cents=total)],
                subtotal_cents=total, total_cents=total, customer_id=pos_customer.id,
            )
        assert sales_service.get_customer(pos_customer.id).total_purchases_cents == 750

    def test_anonymous_sale_only_touches_stock(self, make_inventory_product):
        product = make_inventory_product(stock=3)
        sale = sales_service.record_sale(items=[_line(product, 1)], subtotal_cents=250, total_cents=250)
        assert sale.customer_id is None
        assert inventory_service.get_inventory_product(product.id).stock == 2

    def test_product_name_is_snapshotted(self, make_inventory_product):
        product = make_inventory_product(name="Lben")
        sale = sales_service.record_sale(items=[_line(product, 1)], subtotal_cents=250, total_cents=250)
        assert sale.items[0].product_name == "Lben"

    def test_unknown_product_aborts_everything(self, pos_customer, make_inventory_product):
        product = make_inventory_product(stock=10)

        with pytest.raises(NotFoundError):
            sales_service.record_sale(
                items=[_line(product, 4), {"product_id": 999, "quantity": 1, "price_cents": 100}],
                subtotal_cents=1100, total_cents=1100, customer_id=pos_customer.id,
            )

        assert inventory_service.get_inventory_product(product.id).stock == 10
        assert sales_service.get_customer(pos_customer.id).total_purchases_cents == 0
        assert db.session.query(Sale).count() == 0

    def test_unknown_customer_aborts_everything(self, make_inventory_product):
        product = make_inventory_product(stock=10)
        with pytest.raises(NotFoundError):
            sales_service.record_sale(
                items=[_line(product, 4)], subtotal_cents=1000, total_cents=1000, customer_id=555,
            )
        assert inventory_service.get_inventory_product(product.id).stock == 10
        assert db.session.query(Sale).count() == 0

    def test_malformed_sale_rejected(self, make_inventory_product):
        product = make_inventory_product()
        with pytest.raises(ValidationError):
            sales_service.record_sale(items=[], subtotal_cents=0, total_cents=0)
        with pytest.raises(ValidationError):
            sales_service.record_sale(items=[_line(product, 0)], subtotal_cents=0, total_cents=0)
        with pytest.raises(ValidationError):
            sales_service.record_sale(
                items=[_line(product, 1)], subtotal_cents=250, total_cents=250, payment_method="wallet",
            )


class TestAnalytics:
    def _sale_at(self, product, when, quantity=1):
        sale = sales_service.record_sale(items=[_line(product, quantity)], subtotal_cents=250, total_cents=250)
        sale.created_at = when
        db.session.commit()
        return sale

    def test_time_windows(self, make_inventory_product):
        product = make_inventory_product(stock=100)
        now = datetime(2026, 3, 31, 15, 0, 0)

        today = self._sale_at(product, now - timedelta(hours=2))
        yesterday = self._sale_at(product, now - timedelta(days=1))
        last_month = self._sale_at(product, datetime(2026, 2, 28, 16, 0, 0))
        self._sale_at(product, datetime(2026, 2, 27, 9, 0, 0))

        assert [s.id for s in sales_service.get_today_sales(now)] == [today.id]
        assert [s.id for s in sales_service.get_week_sales(now)] == [today.id, yesterday.id]
        assert [s.id for s in sales_service.get_month_sales(now)] == [today.id, yesterday.id, last_month.id]
        assert sales_service.sales_total(sales_service.get_week_sales(now)) == 500

    def test_top_selling_ranks_by_quantity(self, make_inventory_product):
        slow = make_inventory_product(name="Slow")
        fast = make_inventory_product(name="Fast")
        sales_service.record_sale(items=[_line(slow, 1), _line(fast, 4)], subtotal_cents=1250, total_cents=1250)
        sales_service.record_sale(items=[_line(fast, 2)], subtotal_cents=500, total_cents=500)

        top = sales_service.get_top_selling_products(limit=5)
        assert [(t["product_name"], t["quantity"]) for t in top] == [("Fast", 6), ("Slow", 1)]
        assert top[0]["revenue_cents"] == 1500

    def test_top_selling_ties_keep_first_appearance(self, make_inventory_product):
        first = make_inventory_product(stock=50)
        second = make_inventory_product(stock=50)
        third = make_inventory_product(stock=50)
        sales_service.record_sale(items=[_line(second, 2)], subtotal_cents=500, total_cents=500)
        sales_service.record_sale(items=[_line(first, 2), _line(third, 2)], subtotal_cents=1000, total_cents=1000)

        top = sales_service.get_top_selling_products(limit=2)
        assert [t["product_id"] for t in top] == [second.id, first.id]

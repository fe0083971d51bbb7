import pytest

from marketcore.errors import ConflictError, NotFoundError, ValidationError
from marketcore.services import inventory_service


class TestAdjustStock:
    def test_positive_and_negative_deltas(self, make_inventory_product):
        product = make_inventory_product(stock=10)
        assert inventory_service.adjust_stock(product.id, 5).stock == 15
        assert inventory_service.adjust_stock(product.id, -7).stock == 8

    def test_stock_is_not_clamped_at_zero(self, make_inventory_product):
        product = make_inventory_product(stock=2)
        assert inventory_service.adjust_stock(product.id, -5).stock == -3

    def test_missing_product_returns_none(self, app):
        assert inventory_service.adjust_stock(999, 1) is None

    def test_adjust_touches_updated_at(self, make_inventory_product):
        product = make_inventory_product()
        before = product.updated_at
        after = inventory_service.adjust_stock(product.id, 1).updated_at
        assert after >= before


class TestLowStock:
    def test_threshold_is_inclusive(self, make_inventory_product):
        at = make_inventory_product(stock=5, low_stock_threshold=5)
        below = make_inventory_product(stock=1, low_stock_threshold=5)
        make_inventory_product(stock=6, low_stock_threshold=5)

        assert [p.id for p in inventory_service.get_low_stock()] == [at.id, below.id]
        assert at.is_low_stock is True

    def test_product_drops_into_low_stock_after_adjustment(self, make_inventory_product):
        product = make_inventory_product(stock=10, low_stock_threshold=5)
        assert inventory_service.get_low_stock() == []
        inventory_service.adjust_stock(product.id, -5)
        assert [p.id for p in inventory_service.get_low_stock()] == [product.id]


class TestCatalog:
    def test_duplicate_sku_conflicts(self, make_inventory_product):
        make_inventory_product(sku="DUP")
        with pytest.raises(ConflictError):
            make_inventory_product(sku="DUP")

    def test_negative_price_rejected(self, make_inventory_product):
        with pytest.raises(ValidationError):
            make_inventory_product(cost_price_cents=-1)

    def test_find_by_barcode(self, make_inventory_product):
        product = make_inventory_product(barcode="6130000000017")
        assert inventory_service.find_by_barcode("6130000000017").id == product.id
        assert inventory_service.find_by_barcode("0000") is None

    def test_list_by_category(self, make_inventory_product):
        drink = make_inventory_product(category="drinks")
        make_inventory_product(category="bakery")
        assert [p.id for p in inventory_service.list_inventory_products("drinks")] == [drink.id]
        assert len(inventory_service.list_inventory_products()) == 2

    def test_inventory_value_ignores_negative_stock(self, make_inventory_product):
        make_inventory_product(stock=4, cost_price_cents=100)
        make_inventory_product(stock=-2, cost_price_cents=100)
        assert inventory_service.get_inventory_value_cents() == 400

    def test_get_missing_product_raises(self, app):
        with pytest.raises(NotFoundError):
            inventory_service.get_inventory_product(42)


class TestSuppliers:
    def test_create_and_link_supplier(self, make_inventory_product):
        supplier = inventory_service.create_supplier(
            name="Ifri", contact_person="Mourad", phone="021000000",
            products_supplied=["water"],
        )
        product = make_inventory_product(supplier_id=supplier.id)
        assert product.supplier_id == supplier.id
        assert [s.id for s in inventory_service.list_suppliers()] == [supplier.id]
        assert supplier.to_dict()["products_supplied"] == ["water"]

    def test_unknown_supplier_rejected(self, make_inventory_product):
        with pytest.raises(NotFoundError):
            make_inventory_product(supplier_id=77)

"""
Pytest fixtures for marketcore backend tests.

Every test gets a fresh app on its own in-memory SQLite database, so state
never leaks between tests.
"""

import pytest

from marketcore import create_app
from marketcore.extensions import db
from marketcore.services import catalog_service, inventory_service


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def customer(app):
    return catalog_service.create_user(name="Amina", email="amina@test.local", role="customer")


@pytest.fixture(scope='function')
def vendor(app):
    return catalog_service.create_user(name="Karim", email="karim@test.local", role="vendor")


@pytest.fixture(scope='function')
def driver(app):
    return catalog_service.create_user(name="Yacine", email="yacine@test.local", role="driver")


@pytest.fixture(scope='function')
def admin(app):
    return catalog_service.create_user(name="Admin", email="admin@test.local", role="admin")


@pytest.fixture(scope='function')
def shop(vendor):
    return catalog_service.create_store(
        vendor_id=vendor.id, name="Chez Karim", type="restaurant", city="Algiers",
        latitude=36.75, longitude=3.06,
    )


@pytest.fixture(scope='function')
def make_inventory_product(app):
    """Factory for inventory products with unique SKUs."""
    counter = {"n": 0}

    def _make(stock=10, low_stock_threshold=5, **overrides):
        counter["n"] += 1
        fields = {
            "sku": f"SKU-{counter['n']:03d}",
            "name": f"Product {counter['n']}",
            "cost_price_cents": 100,
            "selling_price_cents": 250,
            "stock": stock,
            "low_stock_threshold": low_stock_threshold,
        }
        fields.update(overrides)
        return inventory_service.create_inventory_product(**fields)

    return _make


@pytest.fixture(scope='function')
def make_order(customer, shop):
    """Factory for a valid single-line order (2 x 500 + 200 delivery)."""
    from marketcore.services import order_service

    def _make(**overrides):
        fields = {
            "customer_id": customer.id,
            "store_id": shop.id,
            "items": [{"product_id": 1, "quantity": 2, "price_cents": 500}],
            "subtotal_cents": 1000,
            "delivery_fee_cents": 200,
            "total_cents": 1200,
        }
        fields.update(overrides)
        return order_service.create_order(**fields)

    return _make

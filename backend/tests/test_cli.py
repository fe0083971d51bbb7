from marketcore.extensions import db
from marketcore.models import InventoryProduct, User
from marketcore.services import driver_service


def test_init_db(app):
    result = app.test_cli_runner().invoke(args=["system", "init-db"])
    assert result.exit_code == 0
    assert "Database ready" in result.output


def test_reset_db_requires_confirmation(app, customer):
    result = app.test_cli_runner().invoke(args=["system", "reset-db"], input="n\n")
    assert result.exit_code != 0
    assert db.session.query(User).count() == 1


def test_seed_demo_is_idempotent(app):
    runner = app.test_cli_runner()
    first = runner.invoke(args=["seed", "demo"])
    assert first.exit_code == 0
    assert "Demo data created" in first.output

    second = runner.invoke(args=["seed", "demo"])
    assert "already present" in second.output
    assert db.session.query(User).count() == 4
    assert db.session.query(InventoryProduct).count() == 2


def test_low_stock_lists_products(app, make_inventory_product):
    runner = app.test_cli_runner()
    assert "No products are low" in runner.invoke(args=["inventory", "low-stock"]).output

    make_inventory_product(stock=2, low_stock_threshold=5, name="Flour")
    result = runner.invoke(args=["inventory", "low-stock"])
    assert "1 product(s) low on stock" in result.output
    assert "Flour" in result.output


def test_drivers_nearby(app, driver):
    driver_service.update_driver_location(driver.id, 36.75, 3.06)
    runner = app.test_cli_runner()

    found = runner.invoke(args=["drivers", "nearby", "--lat", "36.75", "--lng", "3.07", "--radius-km", "2"])
    assert found.exit_code == 0
    assert f"driver {driver.id}" in found.output

    empty = runner.invoke(args=["drivers", "nearby", "--lat", "40", "--lng", "5"])
    assert "No drivers within" in empty.output


def test_drivers_top(app, driver):
    runner = app.test_cli_runner()
    assert "No driver performance records" in runner.invoke(args=["drivers", "top"]).output

    driver_service.upsert_driver_performance(driver.id, rating=4.6, total_deliveries=12)
    result = runner.invoke(args=["drivers", "top", "--limit", "5"])
    assert result.exit_code == 0
    assert "4.60" in result.output

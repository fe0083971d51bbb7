# Overview: Flask CLI command groups for bootstrap, inspection, and demo data.

# backend/marketcore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent; existing tables are left alone).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Inventory inspection:
# - python -m flask inventory low-stock
#   List products at or below their low-stock threshold.
# - python -m flask inventory import products.xlsx
#   Bulk-create products from an xlsx, csv or json file (bad rows are reported, not fatal).
#
# Driver inspection:
# - python -m flask drivers nearby --lat 36.75 --lng 3.06 --radius-km 5
#   List active drivers within the radius (flat-earth approximation).
# - python -m flask drivers top --limit 10
#   List the best-rated drivers from their performance records.
#
# Demo data:
# - python -m flask seed demo
#   Create a customer, vendor, driver, store, products, stock and a driver ping.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services import (
    catalog_service,
    driver_service,
    inventory_import_service,
    inventory_service,
    loyalty_service,
    payment_service,
)
from .services.driver_service import distance_km


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask seed demo' for sample data.")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('low-stock')
@with_appcontext
def low_stock():
    """List products whose stock is at or below their threshold."""
    products = inventory_service.get_low_stock()
    if not products:
        click.echo("PASS No products are low on stock.")
        return

    click.echo(f"WARN {len(products)} product(s) low on stock:")
    click.echo(f"  {'SKU':<16} {'NAME':<28} {'STOCK':>6} {'THRESHOLD':>10}")
    for p in products:
        click.echo(f"  {p.sku:<16} {p.name[:28]:<28} {p.stock:>6} {p.low_stock_threshold:>10}")


@inventory_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def import_inventory(path):
    """Create inventory products from an xlsx, csv or json file."""
    with open(path, 'rb') as fh:
        result = inventory_import_service.import_inventory_file(path, fh)

    click.echo(f"PASS Imported {result['imported']} product(s).")
    for err in result["errors"]:
        click.echo(f"FAIL row {err['row']}: {err['error']}")


@click.group('drivers')
def drivers_group():
    """Driver location inspection commands."""


@drivers_group.command('nearby')
@click.option('--lat', type=float, required=True, help='Latitude of the pickup point')
@click.option('--lng', type=float, required=True, help='Longitude of the pickup point')
@click.option('--radius-km', type=float, default=5.0, show_default=True, help='Search radius in km')
@with_appcontext
def nearby(lat, lng, radius_km):
    """List drivers within the radius of a point."""
    locations = driver_service.get_nearby_drivers(lat, lng, radius_km)
    if not locations:
        click.echo(f"INFO No drivers within {radius_km} km.")
        return

    for loc in sorted(locations, key=lambda l: distance_km(lat, lng, l.latitude, l.longitude)):
        km = distance_km(lat, lng, loc.latitude, loc.longitude)
        click.echo(f"  driver {loc.driver_id:<6} {km:>7.2f} km  last ping {loc.updated_at.isoformat()}Z")


@drivers_group.command('top')
@click.option('--limit', type=int, default=10, show_default=True, help='How many drivers to list')
@with_appcontext
def top_drivers(limit):
    """List the best-rated drivers."""
    records = driver_service.get_top_drivers(limit)
    if not records:
        click.echo("INFO No driver performance records yet.")
        return

    click.echo(f"  {'DRIVER':<8} {'RATING':>6} {'DELIVERIES':>10} {'ON TIME %':>9} {'AVG MIN':>8}")
    for r in records:
        click.echo(
            f"  {r.driver_id:<8} {r.rating:>6.2f} {r.total_deliveries:>10} "
            f"{r.on_time_percentage:>9.1f} {r.average_delivery_time:>8.1f}"
        )


@click.group('seed')
def seed_group():
    """Demo data commands."""


@seed_group.command('demo')
@with_appcontext
def seed_demo():
    """Create a minimal marketplace: one of each role, a store, products, stock, wallet and loyalty."""
    if db.session.query(User).filter_by(email="customer@marketcore.local").first():
        click.echo("INFO Demo data already present.")
        return

    customer = catalog_service.create_user(name="Demo Customer", email="customer@marketcore.local")
    vendor = catalog_service.create_user(name="Demo Vendor", email="vendor@marketcore.local", role="vendor")
    driver = catalog_service.create_user(name="Demo Driver", email="driver@marketcore.local", role="driver")
    catalog_service.create_user(name="Demo Admin", email="admin@marketcore.local", role="admin")

    shop = catalog_service.create_store(
        vendor_id=vendor.id, name="Demo Kitchen", type="restaurant", city="Algiers",
        latitude=36.7538, longitude=3.0588,
    )
    catalog_service.create_product(store_id=shop.id, name="Couscous", price_cents=800)
    catalog_service.create_product(store_id=shop.id, name="Chorba", price_cents=450)

    inventory_service.create_inventory_product(
        sku="DEMO-001", name="Mineral Water 1.5L", category="drinks",
        cost_price_cents=40, selling_price_cents=70, stock=50, low_stock_threshold=10,
    )
    inventory_service.create_inventory_product(
        sku="DEMO-002", name="Bread", category="bakery",
        cost_price_cents=10, selling_price_cents=15, stock=8, low_stock_threshold=10,
    )

    payment_service.create_wallet(customer.id)
    loyalty_service.create_loyalty_account(customer.id)
    driver_service.update_driver_location(driver.id, 36.7550, 3.0600)

    click.echo("PASS Demo data created:")
    click.echo(f"   Customer ID: {customer.id}")
    click.echo(f"   Vendor ID:   {vendor.id} (store {shop.id})")
    click.echo(f"   Driver ID:   {driver.id}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(drivers_group)
    app.cli.add_command(seed_group)

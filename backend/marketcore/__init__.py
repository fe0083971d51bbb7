# backend/marketcore/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate
from .services.concurrency import init_keyed_locks


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(str(app.config.get("LOG_LEVEL", "INFO")).upper())

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    init_keyed_locks(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.catalog import catalog_bp
    from .routes.orders import orders_bp
    from .routes.inventory import inventory_bp
    from .routes.sales import sales_bp
    from .routes.payments import payments_bp
    from .routes.loyalty import loyalty_bp
    from .routes.vendors import vendors_bp
    from .routes.drivers import drivers_bp
    from .routes.communications import communications_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(loyalty_bp)
    app.register_blueprint(vendors_bp)
    app.register_blueprint(drivers_bp)
    app.register_blueprint(communications_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

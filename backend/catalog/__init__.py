# backend/catalog/__init__.py
from __future__ import annotations

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config:
        # Overrides must land before db.init_app, which binds the engine
        app.config.update(config)

    # app.logger is the "catalog" logger, parent of every service module logger
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Keep enabled warehouse overrides and Product.stock in step on every flush
    from .services.stock_sync_service import register_stock_guards
    register_stock_guards()

    # Register blueprints
    from .routes.system import system_bp
    from .routes.stock import stock_bp
    from .routes.warehouse import warehouse_bp
    from .routes.direct_pricing import direct_pricing_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(warehouse_bp)
    app.register_blueprint(direct_pricing_bp)

    from .decorators import ForbiddenError
    from .responses import error_response

    @app.errorhandler(ForbiddenError)
    def handle_forbidden(e):
        return error_response(str(e), 403)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

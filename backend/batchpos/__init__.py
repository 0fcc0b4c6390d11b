# backend/batchpos/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Fail at startup rather than on the first checkout
    from .services.checkout_service import STOCK_WRITE_MODES
    if app.config["POS_STOCK_WRITE_MODE"] not in STOCK_WRITE_MODES:
        raise ValueError(
            f"POS_STOCK_WRITE_MODE must be one of {', '.join(STOCK_WRITE_MODES)}, "
            f"got {app.config['POS_STOCK_WRITE_MODE']!r}"
        )

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # One registry per app: open register sessions (ledger + cart) live here
    from .services.pos_session_service import PosSessionRegistry, REGISTRY_EXTENSION_KEY
    app.extensions[REGISTRY_EXTENSION_KEY] = PosSessionRegistry.from_config(app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.pos import pos_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.transactions import transactions_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(pos_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(transactions_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-Actor-Id, X-Actor-Role"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

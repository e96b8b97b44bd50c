# backend/offline_pos/__init__.py
import logging
from typing import Any, Mapping, Optional

from flask import Flask

from .config import Config
from .extensions import db


def create_app(overrides: Optional[Mapping[str, Any]] = None, *, remote=None) -> Flask:
    """
    Application factory.

    overrides are applied on top of Config before extensions initialise.
    remote replaces the configured remote store (tests, embedding hosts).
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    logging.getLogger(__name__).setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)

    # Import models so create_all() sees the table metadata
    from . import models  # noqa: F401

    # Store, repositories and sync engine: built once, injected explicitly
    from .services.container import init_services
    init_services(app, remote=remote)

    # Register blueprints
    from .routes.products import products_bp
    from .routes.sales import sales_bp
    from .routes.sync import sync_bp

    app.register_blueprint(products_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(sync_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

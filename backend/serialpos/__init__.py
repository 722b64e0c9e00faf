# backend/serialpos/__init__.py
import logging

from flask import Flask
from sqlalchemy import event

from .config import Config
from .extensions import db, migrate


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logger = logging.getLogger(__name__)
    logger.setLevel(level)
    if not logging.getLogger().handlers and not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
    app.logger.setLevel(level)


def _install_statement_timeout(app: Flask) -> None:
    timeout_ms = app.config.get("DB_STATEMENT_TIMEOUT_MS")
    if not timeout_ms or db.engine.dialect.name != "postgresql":
        return

    @event.listens_for(db.engine, "connect")
    def _set_timeout(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute(f"SET statement_timeout = {int(timeout_ms)}")
        cursor.close()


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    _configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    with app.app_context():
        _install_statement_timeout(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.sales import sales_bp
    from .routes.registers import registers_bp
    from .routes.installments import installments_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(registers_bp)
    app.register_blueprint(installments_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    if app.config.get("RESERVATION_SWEEP_ENABLED") and not app.config.get("TESTING"):
        from .services.maintenance_service import ReservationSweeper
        app.extensions["reservation_sweeper"] = ReservationSweeper(
            app, app.config.get("RESERVATION_SWEEP_INTERVAL_SECONDS", 300)
        ).start()

    return app

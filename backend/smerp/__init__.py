# backend/smerp/__init__.py
import logging

from flask import Flask, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from .config import Config
from .errors import PersistenceError, SmerpError
from .extensions import db, migrate


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(SmerpError)
    def handle_smerp_error(exc: SmerpError):
        db.session.rollback()
        if exc.status_code >= 500:
            app.logger.error("%s: %s", type(exc).__name__, exc)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(exc: SQLAlchemyError):
        db.session.rollback()
        app.logger.exception("Database error on %s %s", request.method, request.path)
        error = PersistenceError("Database error")
        return jsonify(error.to_dict()), error.status_code


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.partners import partners_bp
    from .routes.catalog import catalog_bp
    from .routes.inventory import inventory_bp
    from .routes.transactions import transactions_bp
    from .routes.accounting import accounting_bp
    from .routes.payments import payments_bp
    from .routes.notifications import notifications_bp
    from .routes.settings import settings_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(partners_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(accounting_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(reports_bp)

    _register_error_handlers(app)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

"""
amc_manager/__init__.py

Flask application factory for the AMC Manager API
(maintenance contracts, purchase orders, users).

Requirements:
- Clear layering: blueprints -> forms/security helpers -> SQLAlchemy models.
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev.
- Clients are never trusted; server-side access control is enforced.
- Every error leaves the API as {"error": ..., "details": ...}.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

import click
from flask import Flask, jsonify, url_for

from .errors import error_response, register_error_handlers
from .extensions import db, login_manager, migrate
from .models import User
from .security import load_user_from_request, viewer_readonly_guard

# Blueprint imports kept inside create_app() to reduce import side effects.


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    app.logger.setLevel(level)


def _check_production_settings(app: Flask) -> None:
    """Fail fast when production runs with development secrets."""
    env = (app.config.get("ENV") or "").strip().lower()
    if env not in ("prod", "production"):
        return
    if str(app.config.get("SECRET_KEY", "")).startswith("dev-"):
        raise RuntimeError("SECRET_KEY must be set to a strong value in production.")
    if str(app.config.get("JWT_SECRET_KEY", "")).startswith("dev-"):
        raise RuntimeError("JWT_SECRET_KEY must be set to a strong value in production.")


def create_app(config_overrides: Mapping[str, Any] | None = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object("config.Config")
    if config_overrides:
        app.config.update(config_overrides)

    _configure_logging(app)
    _check_production_settings(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Session loader (unused by bearer-token clients, required by Flask-Login)."""
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    login_manager.request_loader(load_user_from_request)

    @login_manager.unauthorized_handler
    def _unauthorized():
        return error_response("Unauthorized", 401, "A valid bearer token is required.")

    register_error_handlers(app)

    # ----------------------------------------------------------------------
    # GLOBAL SECURITY NET: viewer read-only guard (server-side).
    # ----------------------------------------------------------------------
    @app.before_request
    def _viewer_guard_hook():
        """
        Viewer read-only enforcement (POST/PUT/PATCH/DELETE blocked).

        This is a safety net. Each route must still enforce its own permissions.
        """
        return viewer_readonly_guard()

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.contracts import contracts_bp
    from .blueprints.purchase_orders import purchase_orders_bp
    from .blueprints.users import users_bp
    from .blueprints.dashboard import dashboard_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(contracts_bp)
    app.register_blueprint(purchase_orders_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(dashboard_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("create-db")
    def create_db_command():
        """Create all tables (development shortcut for `flask db upgrade`)."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("create-admin")
    @click.option("--email", required=True)
    @click.option("--name", default="Administrator", show_default=True)
    @click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
    def create_admin_command(email: str, name: str, password: str):
        """Create an admin user, or promote an existing one."""
        from .seed import ensure_admin

        user, created = ensure_admin(email=email, name=name, password=password)
        click.echo(f"Admin {'created' if created else 'updated'}: {user.email}")

    @app.cli.command("seed-demo")
    def seed_demo_command():
        """Seed demo contracts and purchase orders."""
        from .seed import seed_demo_data

        contracts, orders = seed_demo_data()
        click.echo(f"Seeded {contracts} contracts and {orders} purchase orders.")

    @app.cli.command("expire-contracts")
    def expire_contracts_command():
        """Mark active contracts whose end date has passed as expired."""
        from .seed import expire_overdue_contracts

        count = expire_overdue_contracts()
        click.echo(f"{count} contract(s) marked as expired.")

    # ----------------------------------------------------------------------
    # Home / health
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        """API root: name and entry points."""
        return jsonify(
            {
                "name": app.config.get("APP_NAME"),
                "endpoints": {
                    "auth": url_for("auth.login"),
                    "contracts": url_for("contracts.list_contracts"),
                    "purchase_orders": url_for("purchase_orders.list_purchase_orders"),
                    "users": url_for("users.list_users"),
                    "dashboard": url_for("dashboard.summary"),
                },
            }
        )

    @app.route("/health")
    def health():
        return jsonify({"ok": True})

    app.logger.info("create_app() complete; app ready to serve")
    return app

import logging

import click
from flask import Flask, request, g, jsonify
from sqlalchemy import event, inspect

from config import Config
from models import db
from models.temple import Temple, TempleService
from models.user import User, Role
from flask_migrate import Migrate
from routes import health_bp, auth_bp, bookings_bp
from security.csrf import require_csrf
from security.rbac import ROLE_ADMIN
from services.booking_lifecycle import IMMEDIATE_OPTION
from services.errors import BookingError
from utils.auth_context import load_current_user
from utils.seed import seed_roles

logger = logging.getLogger(__name__)

CSRF_EXEMPT_PATHS = {
    "/auth/login",
    "/auth/register",
    "/health",
}


def _use_immediate_transactions(engine):
    """
    pysqlite defers BEGIN until the first write, so two requests can both
    read "slot free" before either writes. Write transactions flagged with
    IMMEDIATE_OPTION take the write lock at BEGIN; reads stay deferred.
    """
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        if conn.get_execution_options().get(IMMEDIATE_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(bookings_bp)

    # Database init
    db.init_app(app)
    with app.app_context():
        if db.engine.dialect.name == "sqlite":
            _use_immediate_transactions(db.engine)

    # Migrations
    Migrate(app, db)

    # Seed default roles at startup (idempotent)
    with app.app_context():
        if app.config.get("AUTO_CREATE_TABLES"):
            db.create_all()
        if inspect(db.engine).has_table("roles"):
            seed_roles()
        else:
            logger.warning("roles table missing; run `flask db upgrade` before serving")

    @app.before_request
    def _load_user():
        load_current_user()

    @app.before_request
    def _csrf_protect():
        # Only protect state-changing requests
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if request.path in CSRF_EXEMPT_PATHS:
                return None

            # Only enforce CSRF if user is already authenticated (cookie session)
            if getattr(g, "user", None) is not None:
                failure = require_csrf()
                if failure:
                    return failure

    @app.errorhandler(BookingError)
    def _booking_error(err):
        return jsonify(success=False, **err.to_dict()), err.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------

def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        admin_role = Role.query.filter_by(name=ROLE_ADMIN).first()
        if not admin_role:
            admin_role = Role(name=ROLE_ADMIN)
            db.session.add(admin_role)

        if admin_role not in user.roles:
            user.roles.append(admin_role)
        db.session.commit()

        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("create-temple")
    @click.argument("name")
    @click.option("--address", default=None, help="Street address shown on bookings.")
    @click.option("--inactive", is_flag=True, help="Create the temple as inactive.")
    def create_temple(name, address, inactive):
        """Add a temple that services can be booked against."""
        temple = Temple(name=name.strip(), address=address, status="inactive" if inactive else "active")
        db.session.add(temple)
        db.session.commit()
        click.echo(f"Temple #{temple.id} created ({temple.status})")

    @app.cli.command("add-service")
    @click.argument("temple_id", type=int)
    @click.argument("name")
    @click.option("--duration", type=click.IntRange(min=1), required=True, help="Minutes.")
    @click.option("--price", type=click.IntRange(min=0), default=0, help="Smallest currency unit.")
    def add_service(temple_id, name, duration, price):
        """Attach a bookable service to a temple."""
        if db.session.get(Temple, temple_id) is None:
            raise click.ClickException("Temple not found")

        service = TempleService(temple_id=temple_id, name=name.strip(), duration=duration, price=price)
        db.session.add(service)
        db.session.commit()
        click.echo(f"Service #{service.id} added to temple #{temple_id} ({duration} min)")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)

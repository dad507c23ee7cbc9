import logging

import click
from flask import Flask, jsonify
from flask_migrate import Migrate

from config import Config
from gateways.base import build_gateways
from models import db
from routes import health_bp, auth_bp, property_bp, booking_bp, payments_bp, webhook_bp, cron_bp
from security.csrf import csrf_protect
from services.errors import BookingError
from utils.auth_context import load_current_user
from utils.seed import seed_roles

logger = logging.getLogger(__name__)


def create_app(config_object=Config, **overrides):
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.config.update(overrides)

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=app.config.get("LOG_LEVEL", "INFO"),
    )

    # Register routes
    for bp in (health_bp, auth_bp, property_bp, booking_bp, payments_bp, webhook_bp, cron_bp):
        app.register_blueprint(bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    with app.app_context():
        if app.config.get("CREATE_TABLES"):
            db.create_all()
        # Seed default roles at startup (safe & idempotent)
        seed_roles()

    app.extensions["payment_gateways"] = build_gateways(app.config)

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        db.session.rollback()
        if exc.status_code >= 500:
            logger.error("%s: %s", type(exc).__name__, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.before_request
    def _load_user():
        load_current_user()

    app.before_request(csrf_protect)

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
from models.user import User, Role
from services.bookings import advance_stays
from services.sweeper import sweep_expired_holds


def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        admin_role = Role.query.filter_by(name="ADMIN").first()
        if not admin_role:
            admin_role = Role(name="ADMIN")
            db.session.add(admin_role)
            db.session.commit()

        if admin_role not in user.roles:
            user.roles.append(admin_role)
            db.session.commit()

        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("expire-holds")
    def expire_holds():
        """Expire lapsed payment holds and release their nights."""
        result = sweep_expired_holds()
        click.echo(f"Expired {result.expired_count} booking(s)")
        for row in result.results:
            if row["status"] == "error":
                click.echo(f"  {row['id']}: {row['error']}")

    @app.cli.command("advance-stays")
    def advance():
        """Check in arriving guests and complete finished stays."""
        result = advance_stays()
        click.echo(
            f"Checked in {len(result['checked_in'])}, completed {len(result['completed'])}, "
            f"errors {len(result['errors'])}"
        )

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)

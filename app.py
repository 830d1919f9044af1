import logging

import click
from flask import Flask
from flask_migrate import Migrate
from pydantic import ValidationError as SchemaError
from sqlalchemy import inspect
from werkzeug.exceptions import HTTPException

from config import Config
from models import db
from routes import admin_bp, client_bp, health_bp, payments_bp
from scheduling.errors import BookingError
from scheduling.gateway import StripeGateway
from utils.auth_context import load_current_user
from utils.responses import error
from utils.seed import seed_services
from utils.telegram import TelegramNotifier

logger = logging.getLogger(__name__)


def create_app(config_object=Config, gateway=None, notifier=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(client_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(payments_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Collaborators; tests pass fakes
    app.extensions["payment_gateway"] = gateway or StripeGateway(
        app.config.get("STRIPE_SECRET_KEY"),
        webhook_secret=app.config.get("STRIPE_WEBHOOK_SECRET"),
        currency=app.config.get("PAYMENT_CURRENCY", "rub"),
    )
    if app.config.get("STRIPE_SECRET_KEY") and not (
        app.config.get("STRIPE_WEBHOOK_SECRET") or app.config.get("PAYMENT_WEBHOOK_ALLOWED_NETWORKS")
    ):
        logger.warning("Payment webhook has no signing secret or allowlist; it will refuse events")
    app.extensions["notifier"] = notifier or TelegramNotifier(app.config.get("BOT_TOKEN"))

    # Seed the default catalog on first start (safe & idempotent)
    with app.app_context():
        if app.config.get("AUTO_CREATE_TABLES"):
            db.create_all()
        # before `flask db upgrade` has run there is nothing to seed
        if inspect(db.engine).has_table("services"):
            seed_services()

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        if exc.http_status >= 500:
            logger.error("%s: %s", exc.code, exc.message)
        return error(exc.code, exc.message, exc.http_status)

    @app.errorhandler(SchemaError)
    def _schema_error(exc):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ()))
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid input")
        return error("validation_error", message, 400)

    @app.errorhandler(HTTPException)
    def _http_error(exc):
        return error((exc.name or "error").lower().replace(" ", "_"), exc.description, exc.code)

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    if app.config.get("SCHEDULER_ENABLED") and not app.config.get("TESTING"):
        reconciliation.start_scheduler(app)

    return app

#-------------------------
from scheduling import lifecycle, reconciliation, timegrid
from scheduling.refund_policy import INITIATOR_PROVIDER

def register_cli(app):
    @app.cli.command("open-day")
    @click.argument("date")
    @click.option("--from-hour", type=int, default=None, help="First slot hour (default OPEN_DAY_FROM_HOUR).")
    @click.option("--to-hour", type=int, default=None, help="Hour the last slot ends (default OPEN_DAY_TO_HOUR).")
    def open_day_cmd(date, from_hour, to_hour):
        """Open DATE (YYYY-MM-DD) as one-hour slots."""
        try:
            slots = timegrid.open_day(date, from_hour, to_hour)
        except BookingError as exc:
            raise click.ClickException(exc.message)
        click.echo(f"{date}: {len(slots)} slots")
        for s in slots:
            click.echo(f"  {s.start_time}-{s.end_time} {'booked' if s.is_booked else 'free'}")

    @app.cli.command("cancel-booking")
    @click.argument("booking_id", type=int)
    @click.option("--reason", default=None)
    def cancel_booking_cmd(booking_id, reason):
        """Cancel a booking on behalf of the studio (always full refund)."""
        try:
            refund = lifecycle.cancel_booking(booking_id, app.config.get("ADMIN_TG_ID"), INITIATOR_PROVIDER, reason=reason)
        except BookingError as exc:
            raise click.ClickException(exc.message)
        click.echo(f"Booking {booking_id} cancelled, refund: {refund['decision']} ({refund['status']})")

    @app.cli.command("expire-pending")
    def expire_pending_cmd():
        """Run the unpaid-booking expiry sweep once."""
        click.echo(f"Expired {reconciliation.expire_stale_bookings()} bookings")

    @app.cli.command("send-reminders")
    def send_reminders_cmd():
        """Send reminders for tomorrow's confirmed bookings."""
        click.echo(f"Sent {reconciliation.send_reminders()} reminders")

    @app.cli.command("list-bookings")
    @click.option("--date", default=None, help="Only this day (YYYY-MM-DD).")
    def list_bookings_cmd(date):
        """List upcoming pending and confirmed bookings."""
        if date is not None:
            try:
                timegrid.parse_date(date)
            except BookingError as exc:
                raise click.ClickException(exc.message)
        rows = lifecycle.list_bookings(date=date)
        if not rows:
            click.echo("No bookings")
            return
        for b in rows:
            service = b.service.name if b.service else "?"
            click.echo(f"#{b.id} {b.date} {b.start_time}-{b.end_time} {service} {b.client_first_name} [{b.status}]")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)

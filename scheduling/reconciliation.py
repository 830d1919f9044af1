"""Background jobs that keep local bookings in line with the payment gateway.

- expiry sweep: pending bookings older than the payment timeout are expired
- gateway callbacks: succeeded/canceled events applied from the matching state
- reminders: clients with a confirmed booking tomorrow get a message
"""
import atexit
import html
import logging
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from flask import current_app

from models import db
from models.booking import STATUS_CONFIRMED, STATUS_PENDING_PAYMENT, Booking
from models.payment import Payment
from scheduling import lifecycle
from scheduling.gateway import EVENT_CANCELED, EVENT_SUCCEEDED, GatewayEvent
from utils.audit import log_event
from utils.clock import local_now, utcnow
from utils.telegram import get_notifier

logger = logging.getLogger(__name__)

EXPIRY_JOB_ID = "expire_pending_payments"
REMINDER_JOB_ID = "send_reminders"


def expire_stale_bookings(now=None) -> int:
    """Expire every pending booking past the payment timeout. Returns the count."""
    now = now or utcnow()
    timeout = timedelta(minutes=current_app.config.get("PAYMENT_TIMEOUT_MINUTES", 15))
    cutoff = now - timeout

    stale_ids = [
        row.id
        for row in (
            Booking.query
            .with_entities(Booking.id)
            .filter(Booking.status == STATUS_PENDING_PAYMENT, Booking.created_at < cutoff)
            .all()
        )
    ]

    expired = 0
    for booking_id in stale_ids:
        try:
            if lifecycle.expire_booking(booking_id, reason="payment_timeout", now=now):
                expired += 1
                lifecycle.cancel_open_intent(booking_id)
        except Exception:
            # one bad row must not stop the sweep; retried on the next tick
            db.session.rollback()
            logger.exception("Failed to expire booking %s", booking_id)

    if expired:
        logger.info("Expired %d unpaid bookings", expired)
    return expired


def _refund_late_payment(event: GatewayEvent) -> None:
    booking = db.session.get(Booking, event.booking_id)
    payment = Payment.query.filter_by(booking_id=event.booking_id).first()
    if booking is None or payment is None or payment.refund_id:
        return
    if event.provider_payment_id and not payment.provider_payment_id:
        payment.provider_payment_id = event.provider_payment_id
        db.session.commit()
    logger.warning("Late payment for %s booking %s, refunding", booking.status, booking.id)
    lifecycle.refund_payment(booking, payment.amount)


def handle_gateway_event(event: GatewayEvent, now=None) -> str:
    """Apply a gateway callback. Duplicates and stale events are no-ops."""
    if event.kind == EVENT_SUCCEEDED:
        outcome = lifecycle.confirm_payment(event.booking_id, provider_payment_id=event.provider_payment_id, now=now)
        if outcome == lifecycle.STALE:
            log_event(
                "WEBHOOK_IGNORED",
                entity="booking",
                entity_id=event.booking_id,
                metadata={"event": event.event_type, "outcome": outcome},
            )
            # money arrived for a booking that no longer holds its slots
            _refund_late_payment(event)
        return outcome

    if event.kind == EVENT_CANCELED:
        if lifecycle.expire_booking(event.booking_id, reason="payment_canceled", now=now):
            return "expired"
        logger.info("Payment canceled for booking %s ignored, not pending", event.booking_id)
        return "ignored"

    logger.info("Ignoring gateway event %s", event.event_type)
    return "ignored"


def send_reminders(now=None) -> int:
    """Remind clients about tomorrow's confirmed bookings, once per booking."""
    tomorrow = (local_now(now) + timedelta(days=1)).strftime("%Y-%m-%d")
    bookings = (
        Booking.query
        .filter(
            Booking.date == tomorrow,
            Booking.status == STATUS_CONFIRMED,
            Booking.reminder_sent.is_(False),
        )
        .order_by(Booking.start_time.asc())
        .all()
    )

    sent = 0
    for booking in bookings:
        service = html.escape(booking.service.name) if booking.service else ""
        ok, error = get_notifier().send(
            booking.client_tg_id,
            f"💕 Reminder!\n\nYou have an appointment tomorrow:\n\n💅 {service}\n🕐 {booking.date} at {booking.start_time}\n\nSee you ✨",
        )
        if not ok:
            logger.warning("Reminder for booking %s not delivered: %s", booking.id, error)
            continue
        booking.reminder_sent = True
        db.session.commit()
        log_event("REMINDER_SENT", entity="booking", entity_id=booking.id)
        sent += 1
    return sent


def _run_job(app, job, name):
    with app.app_context():
        try:
            job()
        except Exception:
            db.session.rollback()
            logger.exception("Background job %s failed; will retry next tick", name)


def start_scheduler(app) -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        _run_job,
        "interval",
        args=[app, expire_stale_bookings, EXPIRY_JOB_ID],
        seconds=app.config.get("EXPIRY_SWEEP_INTERVAL_SECONDS", 300),
        id=EXPIRY_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        _run_job,
        "interval",
        args=[app, send_reminders, REMINDER_JOB_ID],
        seconds=app.config.get("REMINDER_INTERVAL_SECONDS", 3600),
        id=REMINDER_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()

    def _shutdown():
        if scheduler.running:
            scheduler.shutdown(wait=False)

    atexit.register(_shutdown)
    logger.info("Background scheduler started")
    return scheduler

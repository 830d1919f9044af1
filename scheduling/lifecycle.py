"""Booking lifecycle: pending_payment -> confirmed -> cancelled, or -> expired.

Every transition is a guarded UPDATE (``WHERE status IN (...)``) so that
racing actors, e.g. a payment webhook and the expiry sweep, resolve to
exactly one winner and the loser sees zero affected rows. Slot claims use the
same trick on ``is_booked``.
"""
import html
import logging
from typing import Optional

from flask import current_app
from sqlalchemy.exc import OperationalError

from models import db
from models.booking import (
    ACTIVE_STATUSES,
    PAYMENT_NONE,
    PAYMENT_PAID,
    PAYMENT_PENDING,
    PAYMENT_REFUNDED,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    STATUS_EXPIRED,
    STATUS_PENDING_PAYMENT,
    Booking,
)
from models.payment import INTENT_CANCELED, INTENT_PENDING, INTENT_SUCCEEDED, Payment
from models.service import SERVICE_TYPE_ADDON, Service
from models.slot import Slot
from scheduling.availability import get_bookable_service, run_from
from scheduling.errors import (
    BookingError,
    BookingNotFound,
    Forbidden,
    GatewayError,
    InvalidState,
    SlotUnavailable,
    ValidationError,
)
from scheduling.gateway import get_gateway
from scheduling.refund_policy import FULL_REFUND, INITIATOR_CLIENT, INITIATOR_PROVIDER, NO_REFUND, evaluate_refund
from scheduling.timegrid import parse_clock, parse_date
from utils.audit import log_event
from utils.clock import appointment_start_utc, today_str, utcnow
from utils.settings import get_int_setting
from utils.telegram import get_notifier, mention

logger = logging.getLogger(__name__)

# outcomes of confirm_payment
CONFIRMED = "confirmed"
DUPLICATE = "duplicate"
STALE = "stale"
MISSING = "missing"


def _addon_service() -> Optional[Service]:
    return (
        Service.query
        .filter_by(service_type=SERVICE_TYPE_ADDON, is_active=True)
        .order_by(Service.sort_order.asc())
        .first()
    )


def _locate_run(slots, start_time: str, duration_min: int):
    for index, slot in enumerate(slots):
        if slot.start_time == start_time:
            return run_from(slots, index, duration_min)
    return None


def _claim_slots(run, booking_id: int) -> None:
    ids = [s.id for s in run]
    claimed = (
        Slot.query
        .filter(Slot.id.in_(ids), Slot.is_booked.is_(False))
        .update({Slot.is_booked: True, Slot.booking_id: booking_id}, synchronize_session=False)
    )
    if claimed != len(ids):
        raise SlotUnavailable()


def _release_slots(booking_id: int) -> int:
    return (
        Slot.query
        .filter(Slot.booking_id == booking_id)
        .update({Slot.is_booked: False, Slot.booking_id: None}, synchronize_session=False)
    )


def _transition(booking_id: int, from_statuses, values: dict) -> bool:
    updated = (
        Booking.query
        .filter(Booking.id == booking_id, Booking.status.in_(from_statuses))
        .update(values, synchronize_session=False)
    )
    return updated == 1


def _notify(chat_id: int, text: str) -> None:
    # notifications never affect the booking outcome
    try:
        ok, error = get_notifier().send(chat_id, text)
    except Exception:
        logger.exception("Notifier crashed while messaging %s", chat_id)
        return
    if not ok:
        logger.warning("Notification to %s not delivered: %s", chat_id, error)


def _notify_provider(text: str) -> None:
    _notify(current_app.config.get("ADMIN_TG_ID"), text)


def _describe(booking: Booking) -> str:
    addon = "\n   + add-on" if booking.with_addon else ""
    service = html.escape(booking.service.name) if booking.service else "?"
    who = html.escape(mention(booking.client_first_name, booking.client_username))
    return (
        f"👤 {who}\n"
        f"💅 {service}{addon}\n"
        f"📅 {booking.date} {booking.start_time}–{booking.end_time}"
    )


def _prepaid_amount(total: int) -> int:
    prepayment = current_app.config.get("PREPAYMENT_AMOUNT")
    if prepayment:
        return min(int(prepayment), total)
    return total


def create_booking(service_id: int, date: str, start_time: str, with_addon: bool, client, now=None):
    """Reserve the slot run starting at ``start_time`` for ``client``.

    Returns ``(booking, payment_url)``; ``payment_url`` is None when the
    deployment does not take prepayment and the booking is confirmed
    straight away.
    """
    parse_date(date)
    parse_clock(start_time)
    service = get_bookable_service(service_id)

    now = now or utcnow()
    if appointment_start_utc(date, start_time) <= now:
        raise ValidationError("Cannot book past or started slots")

    addon_price = 0
    if with_addon:
        addon = _addon_service()
        if addon is None:
            raise ValidationError("Add-on is not available")
        addon_price = addon.price
    total_price = service.price + addon_price

    requires_payment = current_app.config.get("PAYMENT_REQUIRED", True)
    prepaid = _prepaid_amount(total_price) if requires_payment else 0

    payment_url = None
    try:
        slots = Slot.query.filter_by(date=date).order_by(Slot.start_time.asc()).all()
        run = _locate_run(slots, start_time, service.duration_min)
        if run is None:
            raise SlotUnavailable()

        booking = Booking(
            service_id=service.id,
            date=date,
            start_time=run[0].start_time,
            end_time=run[-1].end_time,
            client_tg_id=client.id,
            client_first_name=client.first_name,
            client_username=client.username,
            with_addon=bool(with_addon),
            total_price=total_price,
            prepaid_amount=prepaid,
            status=STATUS_PENDING_PAYMENT if requires_payment else STATUS_CONFIRMED,
            payment_status=PAYMENT_PENDING if requires_payment else PAYMENT_NONE,
            created_at=now,
        )
        db.session.add(booking)
        try:
            db.session.flush()
            _claim_slots(run, booking.id)
        except OperationalError:
            # another writer holds the lock on these rows; treat as a lost race
            logger.warning("Slot claim on %s %s hit a locked database", date, start_time)
            raise SlotUnavailable()

        if requires_payment:
            intent = get_gateway().create_payment(
                booking.id,
                prepaid,
                f"{service.name} {date} {booking.start_time}",
                current_app.config.get("WEBAPP_URL"),
            )
            db.session.add(Payment(
                booking_id=booking.id,
                provider=getattr(get_gateway(), "provider", "STRIPE"),
                amount=prepaid,
                currency=current_app.config.get("PAYMENT_CURRENCY", "rub"),
                status=INTENT_PENDING,
                intent_id=intent.intent_id,
                created_at=now,
            ))
            payment_url = intent.confirmation_url

        db.session.commit()
    except BookingError as exc:
        db.session.rollback()
        try:
            log_event(
                "BOOKING_CREATE_FAIL",
                actor_tg_id=client.id,
                entity="service",
                entity_id=service.id,
                metadata={"date": date, "start_time": start_time, "error": exc.code},
            )
        except OperationalError:
            # the winning writer still holds the database lock
            db.session.rollback()
            logger.warning("Audit of failed booking on %s %s skipped: database locked", date, start_time)
        raise
    except Exception:
        db.session.rollback()
        raise

    log_event(
        "BOOKING_CREATE",
        actor_tg_id=client.id,
        entity="booking",
        entity_id=booking.id,
        metadata={"date": date, "start_time": booking.start_time, "status": booking.status},
    )
    header = "📋 New booking, awaiting payment" if requires_payment else "📋 New booking!"
    _notify_provider(f"{header}\n\n{_describe(booking)}\n💰 {booking.total_price}")
    return booking, payment_url


def confirm_payment(booking_id: int, provider_payment_id: Optional[str] = None, now=None) -> str:
    """Apply a "payment succeeded" event. Safe to call any number of times."""
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        logger.warning("Payment succeeded for unknown booking %s", booking_id)
        return MISSING

    now = now or utcnow()
    changed = _transition(
        booking_id,
        (STATUS_PENDING_PAYMENT,),
        {Booking.status: STATUS_CONFIRMED, Booking.payment_status: PAYMENT_PAID},
    )
    if not changed:
        db.session.rollback()
        if booking.status == STATUS_CONFIRMED:
            logger.info("Duplicate payment success for booking %s ignored", booking_id)
            return DUPLICATE
        logger.warning("Payment success for booking %s in status %s ignored", booking_id, booking.status)
        return STALE

    payment = Payment.query.filter_by(booking_id=booking_id).first()
    if payment is not None:
        payment.status = INTENT_SUCCEEDED
        payment.paid_at = now
        if provider_payment_id:
            payment.provider_payment_id = provider_payment_id
    db.session.commit()

    log_event("BOOKING_CONFIRM", entity="booking", entity_id=booking_id)
    booking = db.session.get(Booking, booking_id)
    _notify_provider(f"📋 New booking! 💳 Paid\n\n{_describe(booking)}\n💰 Prepaid {booking.prepaid_amount}")
    return CONFIRMED


def expire_booking(booking_id: int, reason: str, now=None) -> bool:
    """Move a still-pending booking to expired and free its slots."""
    now = now or utcnow()
    changed = _transition(
        booking_id,
        (STATUS_PENDING_PAYMENT,),
        {
            Booking.status: STATUS_EXPIRED,
            Booking.payment_status: PAYMENT_NONE,
            Booking.cancelled_at: now,
            Booking.cancel_reason: reason,
        },
    )
    if not changed:
        db.session.rollback()
        return False

    released = _release_slots(booking_id)
    payment = Payment.query.filter_by(booking_id=booking_id).first()
    if payment is not None and payment.status == INTENT_PENDING:
        payment.status = INTENT_CANCELED
    db.session.commit()

    logger.info("Booking %s expired (%s), %d slots released", booking_id, reason, released)
    log_event("BOOKING_EXPIRE", entity="booking", entity_id=booking_id, metadata={"reason": reason})
    return True


def cancel_open_intent(booking_id: int) -> None:
    """Close the checkout of an unpaid booking; failures are only logged."""
    payment = Payment.query.filter_by(booking_id=booking_id).first()
    if payment is None or not payment.intent_id:
        return
    try:
        get_gateway().cancel(payment.intent_id)
    except GatewayError as exc:
        logger.warning("Could not close checkout for booking %s: %s", booking_id, exc.message)


def refund_payment(booking: Booking, amount: int, now=None) -> dict:
    """Refund ``amount`` of the booking's captured payment through the gateway."""
    now = now or utcnow()
    info = {"decision": FULL_REFUND, "amount": amount, "status": "failed"}

    payment = Payment.query.filter_by(booking_id=booking.id).first()
    if payment is None:
        logger.error("Booking %s marked paid but has no payment record", booking.id)
        return info
    if payment.refund_id:
        info["status"] = "issued"
        return info

    try:
        refund_id = get_gateway().refund(payment.provider_payment_id, amount)
    except GatewayError as exc:
        logger.error("Refund for booking %s failed: %s", booking.id, exc.message)
        log_event("REFUND_FAILED", entity="booking", entity_id=booking.id, metadata={"error": exc.message})
        return info

    payment.refund_id = refund_id
    payment.refunded_amount = amount
    payment.refunded_at = now
    booking.payment_status = PAYMENT_REFUNDED
    db.session.commit()

    log_event("REFUND_ISSUED", entity="booking", entity_id=booking.id, metadata={"amount": amount})
    info["status"] = "issued"
    return info


def cancel_booking(booking_id: int, actor_tg_id: int, initiator: str, now=None, reason: Optional[str] = None) -> dict:
    """Cancel a pending or confirmed booking and release its slots.

    ``initiator`` is ``client`` (must own the booking) or ``provider``.
    Returns the refund outcome; a failed refund does not undo the
    cancellation.
    """
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise BookingNotFound()
    if initiator == INITIATOR_CLIENT and booking.client_tg_id != actor_tg_id:
        raise Forbidden("Only the client who made the booking can cancel it")
    if initiator not in (INITIATOR_CLIENT, INITIATOR_PROVIDER):
        raise Forbidden()
    if booking.status not in ACTIVE_STATUSES:
        raise InvalidState(f"Booking is {booking.status}")

    now = now or utcnow()
    observed_status = booking.status
    was_paid = booking.payment_status == PAYMENT_PAID

    # guard on the observed status so a concurrent confirmation is not lost
    changed = _transition(
        booking_id,
        (observed_status,),
        {
            Booking.status: STATUS_CANCELLED,
            Booking.cancelled_at: now,
            Booking.cancelled_by: initiator,
            Booking.cancel_reason: reason,
        },
    )
    if not changed:
        db.session.rollback()
        raise InvalidState("Booking changed state, reload and try again")
    _release_slots(booking_id)
    db.session.commit()

    booking = db.session.get(Booking, booking_id)
    refund_info = {"decision": NO_REFUND, "amount": 0, "status": "not_applicable"}
    if was_paid:
        lead_hours = (appointment_start_utc(booking.date, booking.start_time) - now).total_seconds() / 3600
        decision = evaluate_refund(initiator, lead_hours, get_int_setting("refund_threshold_hours"))
        if decision == FULL_REFUND:
            refund_info = refund_payment(booking, booking.prepaid_amount, now=now)
        else:
            refund_info = {"decision": NO_REFUND, "amount": 0, "status": "declined"}
    elif observed_status == STATUS_PENDING_PAYMENT:
        cancel_open_intent(booking_id)

    log_event(
        "BOOKING_CANCEL",
        actor_tg_id=actor_tg_id,
        entity="booking",
        entity_id=booking_id,
        metadata={"by": initiator, "reason": reason, "refund": refund_info["status"]},
    )

    if initiator == INITIATOR_CLIENT:
        _notify_provider(f"❌ Booking cancelled\n\n{_describe(booking)}")
    else:
        _notify(
            booking.client_tg_id,
            f"😔 Your booking on {booking.date} at {booking.start_time} was cancelled by the studio.\n\n"
            "Please pick another time 💕",
        )
    return refund_info


def booking_status(booking_id: int, actor_tg_id: int, is_provider: bool = False) -> dict:
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise BookingNotFound()
    if not is_provider and booking.client_tg_id != actor_tg_id:
        raise Forbidden()
    return {"id": booking.id, "status": booking.status, "payment_status": booking.payment_status}


def list_client_bookings(client_tg_id: int, now=None):
    return (
        Booking.query
        .filter(
            Booking.client_tg_id == client_tg_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.date >= today_str(now),
        )
        .order_by(Booking.date.asc(), Booking.start_time.asc())
        .all()
    )


def list_bookings(date=None, date_from=None, date_to=None, status=None, now=None):
    q = Booking.query
    if status:
        q = q.filter(Booking.status == status)
    else:
        q = q.filter(Booking.status.in_(ACTIVE_STATUSES))

    if date:
        q = q.filter(Booking.date == date)
    elif date_from and date_to:
        q = q.filter(Booking.date >= date_from, Booking.date <= date_to)
    else:
        q = q.filter(Booking.date >= today_str(now))

    return q.order_by(Booking.date.asc(), Booking.start_time.asc()).limit(500).all()

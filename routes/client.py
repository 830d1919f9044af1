from flask import Blueprint, request, g

from models.service import SERVICE_TYPE_ADDON, SERVICE_TYPE_MAIN, Service
from routes.schemas import (
    AvailableTimesQuery,
    CalendarQuery,
    CancelBookingRequest,
    CreateBookingRequest,
    ServiceFilterQuery,
)
from scheduling import availability, lifecycle
from scheduling.refund_policy import INITIATOR_CLIENT
from security.rate_limit import rate_limited
from security.rbac import is_provider
from utils.auth_context import login_required
from utils.responses import ok

client_bp = Blueprint("client", __name__, url_prefix="/api")


@client_bp.get("/services")
@login_required
def list_services():
    services = (
        Service.query
        .filter_by(is_active=True, service_type=SERVICE_TYPE_MAIN)
        .order_by(Service.sort_order.asc(), Service.id.asc())
        .all()
    )
    return ok([s.to_dict() for s in services])


@client_bp.get("/addon-info")
@login_required
def addon_info():
    addon = (
        Service.query
        .filter_by(is_active=True, service_type=SERVICE_TYPE_ADDON)
        .order_by(Service.sort_order.asc())
        .first()
    )
    return ok(addon.to_dict() if addon else None)


# ---------- availability ----------
@client_bp.get("/available-dates")
@login_required
def available_dates():
    query = ServiceFilterQuery.model_validate(request.args.to_dict())
    return ok(availability.available_dates(query.service_id))


@client_bp.get("/calendar")
@login_required
def month_calendar():
    query = CalendarQuery.model_validate(request.args.to_dict())
    return ok(availability.month_calendar(query.year, query.month, query.service_id))


@client_bp.get("/available-times")
@login_required
def available_times():
    query = AvailableTimesQuery.model_validate(request.args.to_dict())
    return ok(availability.available_times(query.date, query.service_id))


# ---------- bookings ----------
@client_bp.post("/bookings")
@login_required
@rate_limited("booking")
def create_booking():
    body = CreateBookingRequest.model_validate(request.get_json(silent=True) or {})
    booking, payment_url = lifecycle.create_booking(
        body.service_id,
        body.date,
        body.start_time,
        body.with_addon,
        g.user,
    )
    return ok({"booking": booking.to_dict(), "payment_url": payment_url}, 201)


@client_bp.get("/bookings/my")
@login_required
def my_bookings():
    rows = lifecycle.list_client_bookings(g.user.id)
    return ok([b.to_dict() for b in rows])


@client_bp.get("/bookings/<int:booking_id>/status")
@login_required
def booking_status(booking_id: int):
    return ok(lifecycle.booking_status(booking_id, g.user.id, is_provider=is_provider()))


@client_bp.delete("/bookings/<int:booking_id>")
@login_required
def cancel_booking(booking_id: int):
    body = CancelBookingRequest.model_validate(request.get_json(silent=True) or {})
    refund = lifecycle.cancel_booking(booking_id, g.user.id, INITIATOR_CLIENT, reason=body.reason)
    return ok({"id": booking_id, "status": "cancelled", "refund": refund})

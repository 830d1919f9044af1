from flask import Blueprint, g, request

from models import db
from models.service import Service
from routes.schemas import (
    BookingsQuery,
    CancelBookingRequest,
    CreateServiceRequest,
    CreateSlotsRequest,
    OpenDayRequest,
    SettingsUpdate,
    SlotsQuery,
    UpdateServiceRequest,
)
from scheduling import lifecycle, timegrid
from scheduling.errors import ServiceNotFound
from scheduling.refund_policy import INITIATOR_PROVIDER
from security.rbac import require_admin
from utils.audit import log_event
from utils.responses import ok
from utils.settings import all_settings, set_setting

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# ---------- service catalog ----------
@admin_bp.get("/services")
@require_admin
def list_services():
    # inactive ones included so they can be re-enabled
    services = Service.query.order_by(Service.sort_order.asc(), Service.id.asc()).all()
    return ok([s.to_dict() for s in services])


@admin_bp.post("/services")
@require_admin
def create_service():
    body = CreateServiceRequest.model_validate(request.get_json(silent=True) or {})
    service = Service(**body.model_dump())
    db.session.add(service)
    db.session.commit()

    log_event("SERVICE_CREATE", actor_tg_id=g.user.id, entity="service", entity_id=service.id)
    return ok(service.to_dict(), 201)


@admin_bp.put("/services/<int:service_id>")
@require_admin
def update_service(service_id: int):
    body = UpdateServiceRequest.model_validate(request.get_json(silent=True) or {})
    service = db.session.get(Service, service_id)
    if service is None:
        raise ServiceNotFound()

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(service, field, value)
    db.session.commit()

    log_event("SERVICE_UPDATE", actor_tg_id=g.user.id, entity="service", entity_id=service.id, metadata=changes)
    return ok(service.to_dict())


# ---------- slots ----------
@admin_bp.get("/slots")
@require_admin
def list_slots():
    query = SlotsQuery.model_validate(request.args.to_dict())
    timegrid.parse_date(query.date)
    return ok([s.to_dict() for s in timegrid.list_slots(query.date)])


@admin_bp.post("/slots")
@require_admin
def create_slots():
    body = CreateSlotsRequest.model_validate(request.get_json(silent=True) or {})
    if body.template is not None:
        created = timegrid.create_slots_from_template(body.date, body.template)
    else:
        created = timegrid.create_slots(body.date, [(s.start_time, s.end_time) for s in body.slots])

    log_event(
        "SLOT_CREATE",
        actor_tg_id=g.user.id,
        entity="slot",
        metadata={"date": body.date, "count": len(created), "template": body.template},
    )
    return ok([s.to_dict() for s in created], 201)


@admin_bp.delete("/slots/<int:slot_id>")
@require_admin
def delete_slot(slot_id: int):
    timegrid.delete_slot(slot_id)
    log_event("SLOT_DELETE", actor_tg_id=g.user.id, entity="slot", entity_id=slot_id)
    return ok({"id": slot_id, "deleted": True})


@admin_bp.post("/openday")
@require_admin
def open_day():
    body = OpenDayRequest.model_validate(request.get_json(silent=True) or {})
    slots = timegrid.open_day(body.date, body.from_hour, body.to_hour)
    log_event("OPEN_DAY", actor_tg_id=g.user.id, entity="slot", metadata={"date": body.date, "slots": len(slots)})
    return ok([s.to_dict() for s in slots], 201)


# ---------- bookings ----------
@admin_bp.get("/bookings")
@require_admin
def list_bookings():
    query = BookingsQuery.model_validate(request.args.to_dict())
    for value in (query.date, query.date_from, query.date_to):
        if value is not None:
            timegrid.parse_date(value)
    rows = lifecycle.list_bookings(
        date=query.date,
        date_from=query.date_from,
        date_to=query.date_to,
        status=query.status,
    )
    return ok([b.to_dict() for b in rows])


@admin_bp.post("/bookings/<int:booking_id>/cancel")
@require_admin
def cancel_booking(booking_id: int):
    body = CancelBookingRequest.model_validate(request.get_json(silent=True) or {})
    refund = lifecycle.cancel_booking(booking_id, g.user.id, INITIATOR_PROVIDER, reason=body.reason)
    return ok({"id": booking_id, "status": "cancelled", "refund": refund})


# ---------- settings ----------
@admin_bp.get("/settings")
@require_admin
def get_settings():
    return ok(all_settings())


@admin_bp.put("/settings")
@require_admin
def update_settings():
    body = SettingsUpdate.model_validate(request.get_json(silent=True) or {})
    changes = body.model_dump(exclude_none=True)
    for key, value in changes.items():
        set_setting(key, value)
    db.session.commit()

    log_event("SETTINGS_UPDATE", actor_tg_id=g.user.id, entity="settings", metadata=changes)
    return ok(all_settings())

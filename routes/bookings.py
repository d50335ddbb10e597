from flask import Blueprint, request, jsonify, current_app, g

from models import db
from security.rbac import current_role
from services import booking_lifecycle as lifecycle
from services.errors import Conflict
from utils.auth_context import login_required
from utils.audit import log_event

bookings_bp = Blueprint("bookings", __name__, url_prefix="/bookings")


def _field(data: dict, camel: str, snake: str):
    # frontend sends camelCase; accept snake_case too
    value = data.get(camel)
    return value if value is not None else data.get(snake)


@bookings_bp.post("")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    temple_id = _field(data, "templeId", "temple_id")
    try:
        booking = lifecycle.create_booking(
            db.session,
            user_id=g.user.id,
            temple_id=temple_id,
            service_id=_field(data, "serviceId", "service_id"),
            date=data.get("date"),
            time=data.get("time"),
            notes=data.get("notes"),
            notes_max_length=current_app.config.get("BOOKING_NOTES_MAX_LENGTH", 500),
        )
    except Conflict:
        log_event("BOOKING_FAIL_SLOT_TAKEN", user_id=g.user.id, entity="temple", entity_id=temple_id,
                  metadata={"date": data.get("date"), "time": data.get("time")})
        raise

    log_event("BOOKING_CREATE", user_id=g.user.id, entity="booking", entity_id=booking["id"],
              metadata={"temple_id": booking["temple_id"], "date": booking["date"], "time": booking["time"]})
    return jsonify(success=True, data=booking), 201


@bookings_bp.get("")
@login_required
def list_my_bookings():
    rows = lifecycle.list_user_bookings(db.session, g.user.id, request.args.get("status"))
    return jsonify(success=True, data=rows), 200


@bookings_bp.get("/available-slots/<int:temple_id>/<date>")
def available_slots(temple_id: int, date: str):
    # public: browsing free times needs no account
    cfg = current_app.config
    slots = lifecycle.available_slots(
        db.session,
        temple_id,
        date,
        service_id=request.args.get("serviceId") or request.args.get("service_id"),
        opening=cfg.get("BOOKING_OPENING_TIME", "06:00"),
        closing=cfg.get("BOOKING_CLOSING_TIME", "21:00"),
        step_minutes=cfg.get("BOOKING_SLOT_STEP_MINUTES", 30),
    )
    return jsonify(success=True, data=slots), 200


@bookings_bp.get("/stats")
@login_required
def my_booking_stats():
    return jsonify(success=True, data=lifecycle.booking_stats(db.session, g.user.id)), 200


@bookings_bp.get("/<int:booking_id>")
@login_required
def get_booking(booking_id: int):
    booking = lifecycle.get_booking_by_id(db.session, g.user.id, current_role(), booking_id)
    return jsonify(success=True, data=booking), 200


@bookings_bp.put("/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id: int):
    booking = lifecycle.cancel_booking(db.session, g.user.id, booking_id)

    log_event("BOOKING_CANCEL", user_id=g.user.id, entity="booking", entity_id=booking_id)
    return jsonify(success=True, message="Booking cancelled successfully", data=booking), 200


@bookings_bp.put("/<int:booking_id>/reschedule")
@login_required
def reschedule_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    try:
        booking = lifecycle.reschedule_booking(
            db.session, g.user.id, booking_id, data.get("date"), data.get("time")
        )
    except Conflict:
        log_event("BOOKING_FAIL_SLOT_TAKEN", user_id=g.user.id, entity="booking", entity_id=booking_id,
                  metadata={"date": data.get("date"), "time": data.get("time")})
        raise

    log_event("BOOKING_RESCHEDULE", user_id=g.user.id, entity="booking", entity_id=booking_id,
              metadata={"date": booking["date"], "time": booking["time"]})
    return jsonify(success=True, message="Booking rescheduled successfully", data=booking), 200

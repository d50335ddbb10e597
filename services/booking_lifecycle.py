"""
Booking lifecycle: create / cancel / reschedule, the read paths, and the
free-slot and per-user summary views built on the same slot scan.

Every function takes the SQLAlchemy session explicitly and keeps no state of
its own. The one invariant guarded here: for a (temple, date) pair, the
half-open intervals [time, time + duration) of non-cancelled bookings never
overlap.
"""
import logging
from contextlib import contextmanager
from datetime import time as dt_time

from sqlalchemy import func, select, text
from sqlalchemy.orm import joinedload

from models.booking import BOOKING_STATUSES, Booking
from models.db import utcnow
from models.temple import Temple, TempleService
from services.errors import BookingError, Conflict, InvalidState, NotFound, TransactionFailure
from services.validation import clean_notes, parse_date, parse_id, parse_status, parse_time

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"

# execution option read by the SQLite "begin" hook in app.py
IMMEDIATE_OPTION = "sqlite_immediate"


# ---------- pure helpers ----------
def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    # half-open: touching boundaries do not overlap
    return start_a < end_b and start_b < end_a


def seconds_of_day(value) -> int:
    return value.hour * 3600 + value.minute * 60 + value.second


def slot_bounds(start, duration: int) -> tuple:
    """Seconds since midnight. The end is not wrapped past 24:00."""
    begin = seconds_of_day(start)
    return begin, begin + int(duration) * 60


def can_view(requester_id, requester_role, booking) -> bool:
    return booking.user_id == requester_id or requester_role == ADMIN_ROLE


def booking_to_dict(booking: Booking, detail: bool = False) -> dict:
    out = {
        "id": booking.id,
        "temple_id": booking.temple_id,
        "service_id": booking.service_id,
        "date": booking.date.isoformat(),
        "time": booking.time.strftime("%H:%M:%S"),
        "duration": booking.duration,
        "status": booking.status,
        "notes": booking.notes,
    }
    if detail:
        temple, service, user = booking.temple, booking.service, booking.user
        out.update({
            "temple_name": temple.name if temple else None,
            "address": temple.address if temple else None,
            "service_name": service.name if service else None,
            "price": service.price if service else None,
            "user_name": user.full_name if user else None,
            "phone": user.phone_number if user else None,
            "created_at": booking.created_at.isoformat(),
            "updated_at": booking.updated_at.isoformat(),
        })
    return out


# ---------- transaction + locking ----------
@contextmanager
def transaction(session, operation: str, write: bool = False):
    """
    Commit on normal exit, roll back on every error path.
    Domain errors propagate as-is; anything else becomes TransactionFailure.
    ``write=True`` asks SQLite to take its write lock at BEGIN.
    """
    try:
        if write and not session.in_transaction():
            session.connection(execution_options={IMMEDIATE_OPTION: True})
        yield session
        session.commit()
    except BookingError:
        session.rollback()
        raise
    except Exception as exc:
        session.rollback()
        logger.exception("Database error during %s", operation)
        raise TransactionFailure(f"Database error during {operation}") from exc


def lock_slot(session, temple_id: int, day) -> None:
    """Serialize writers on one (temple, date) until the transaction ends."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        session.execute(
            text("SELECT pg_advisory_xact_lock(CAST(:k1 AS integer), CAST(:k2 AS integer))"),
            {"k1": temple_id, "k2": day.toordinal()},
        )
    else:
        # SQLite ignores FOR UPDATE; write transactions there already
        # hold the database write lock from BEGIN IMMEDIATE (see app.py)
        session.execute(select(Temple.id).where(Temple.id == temple_id).with_for_update())


def _occupied(session, temple_id, day, exclude_id=None) -> list:
    """(booking, start, end) for every non-cancelled booking on the day."""
    q = select(Booking).where(
        Booking.temple_id == temple_id,
        Booking.date == day,
        Booking.status != "cancelled",
    )
    if exclude_id is not None:
        q = q.where(Booking.id != exclude_id)

    return [(b, *slot_bounds(b.time, b.duration)) for b in session.scalars(q)]


def _find_conflict(session, temple_id, day, start, end, exclude_id=None):
    for other, other_start, other_end in _occupied(session, temple_id, day, exclude_id):
        if overlaps(start, end, other_start, other_end):
            return other
    return None


def _owned_booking(session, user_id, booking_id) -> Booking:
    booking = session.scalars(
        select(Booking).where(Booking.id == booking_id, Booking.user_id == user_id)
    ).first()
    if booking is None:
        raise NotFound("Booking not found")
    return booking


def _active_temple(session, temple_id) -> Temple:
    temple = session.scalars(
        select(Temple).where(Temple.id == temple_id, Temple.status == "active")
    ).first()
    if temple is None:
        raise NotFound("Temple not found or inactive")
    return temple


def _active_service(session, temple_id, service_id) -> TempleService:
    service = session.scalars(
        select(TempleService).where(
            TempleService.id == service_id,
            TempleService.temple_id == temple_id,
            TempleService.is_active.is_(True),
        )
    ).first()
    if service is None:
        raise NotFound("Service not found or inactive")
    return service


# ---------- mutations ----------
def create_booking(session, user_id, temple_id, service_id, date, time, notes=None,
                   notes_max_length: int = 500) -> dict:
    temple_id = parse_id(temple_id, "templeId")
    service_id = parse_id(service_id, "serviceId")
    day = parse_date(date)
    start_time = parse_time(time)
    notes = clean_notes(notes, notes_max_length)

    with transaction(session, "booking creation", write=True):
        _active_temple(session, temple_id)
        service = _active_service(session, temple_id, service_id)

        lock_slot(session, temple_id, day)

        start, end = slot_bounds(start_time, service.duration)
        clash = _find_conflict(session, temple_id, day, start, end)
        if clash is not None:
            logger.info("Slot conflict at temple %s on %s with booking %s", temple_id, day, clash.id)
            raise Conflict("Time slot is already booked")

        now = utcnow()
        booking = Booking(
            user_id=user_id,
            temple_id=temple_id,
            service_id=service_id,
            date=day,
            time=start_time,
            duration=service.duration,
            status="pending",
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        session.add(booking)
        session.flush()
        result = booking_to_dict(booking)

    return result


def cancel_booking(session, user_id, booking_id) -> dict:
    booking_id = parse_id(booking_id, "bookingId")

    with transaction(session, "cancelling booking", write=True):
        booking = _owned_booking(session, user_id, booking_id)
        if booking.is_cancelled:
            raise InvalidState("Booking is already cancelled")

        booking.status = "cancelled"
        booking.updated_at = utcnow()
        session.flush()
        result = booking_to_dict(booking)

    return result


def reschedule_booking(session, user_id, booking_id, new_date, new_time) -> dict:
    booking_id = parse_id(booking_id, "bookingId")
    day = parse_date(new_date)
    start_time = parse_time(new_time)

    with transaction(session, "rescheduling booking", write=True):
        booking = _owned_booking(session, user_id, booking_id)
        if booking.is_cancelled:
            raise InvalidState("Cannot reschedule a cancelled booking")

        lock_slot(session, booking.temple_id, day)

        # snapshot duration, not the service's current one
        start, end = slot_bounds(start_time, booking.duration)
        clash = _find_conflict(session, booking.temple_id, day, start, end, exclude_id=booking.id)
        if clash is not None:
            logger.info("Reschedule conflict for booking %s with booking %s", booking.id, clash.id)
            raise Conflict("Time slot is already booked")

        booking.date = day
        booking.time = start_time
        booking.updated_at = utcnow()
        session.flush()
        result = booking_to_dict(booking)

    return result


# ---------- reads ----------
def get_booking_by_id(session, requester_id, requester_role, booking_id) -> dict:
    booking_id = parse_id(booking_id, "bookingId")

    with transaction(session, "fetching booking details"):
        booking = session.scalars(
            select(Booking)
            .options(joinedload(Booking.temple), joinedload(Booking.service), joinedload(Booking.user))
            .where(Booking.id == booking_id)
        ).first()
        # same answer for "missing" and "not yours"
        if booking is None or not can_view(requester_id, requester_role, booking):
            raise NotFound("Booking not found")
        result = booking_to_dict(booking, detail=True)

    return result


def list_user_bookings(session, user_id, status=None) -> list:
    status = parse_status(status)

    with transaction(session, "fetching user bookings"):
        q = (
            select(Booking)
            .options(joinedload(Booking.temple), joinedload(Booking.service), joinedload(Booking.user))
            .where(Booking.user_id == user_id)
        )
        if status:
            q = q.where(Booking.status == status)
        q = q.order_by(Booking.date.desc(), Booking.time.desc())

        result = [booking_to_dict(b, detail=True) for b in session.scalars(q).unique()]

    return result


def available_slots(session, temple_id, date, service_id=None, opening="06:00", closing="21:00",
                    step_minutes: int = 30) -> list:
    """
    Start times on the step grid between opening and closing where a slot of
    the service's duration (or one step, without a service) fits without
    overlapping any non-cancelled booking.
    """
    temple_id = parse_id(temple_id, "templeId")
    if service_id is not None and service_id != "":
        service_id = parse_id(service_id, "serviceId")
    else:
        service_id = None
    day = parse_date(date)
    opens = seconds_of_day(parse_time(opening, "opening time"))
    closes = seconds_of_day(parse_time(closing, "closing time"))
    step = int(step_minutes) * 60

    with transaction(session, "fetching available slots"):
        _active_temple(session, temple_id)
        length = step
        if service_id is not None:
            length = _active_service(session, temple_id, service_id).duration * 60

        taken = [(s, e) for _, s, e in _occupied(session, temple_id, day)]

    free = []
    start = opens
    while start + length <= closes:
        end = start + length
        if not any(overlaps(start, end, s, e) for s, e in taken):
            free.append(dt_time(start // 3600, start % 3600 // 60).strftime("%H:%M"))
        start += step
    return free


def booking_stats(session, user_id) -> dict:
    with transaction(session, "fetching booking stats"):
        rows = session.execute(
            select(Booking.status, func.count(Booking.id))
            .where(Booking.user_id == user_id)
            .group_by(Booking.status)
        ).all()

    counts = {status: 0 for status in BOOKING_STATUSES}
    counts.update({status: n for status, n in rows})

    out = {"total_bookings": sum(counts.values())}
    out.update({f"{status}_bookings": counts[status] for status in BOOKING_STATUSES})
    return out

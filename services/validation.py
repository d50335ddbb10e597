from datetime import date, datetime, time

from models.booking import BOOKING_STATUSES
from services.errors import ValidationError


def parse_id(value, field: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or value is None or value == "":
        raise ValidationError(f"{field} is required")
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")
    if parsed <= 0:
        raise ValidationError(f"{field} must be positive")
    return parsed


def parse_date(value, field: str = "date") -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"Invalid {field}. Use YYYY-MM-DD")


def parse_time(value, field: str = "time") -> time:
    if isinstance(value, time):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    raw = value.strip()
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(raw, fmt).time()
        except ValueError:
            continue
    raise ValidationError(f"Invalid {field}. Use HH:MM or HH:MM:SS")


def parse_status(value):
    """Optional status filter; None/empty means no filter."""
    if value is None or value == "":
        return None
    status = str(value).strip().lower()
    if status not in BOOKING_STATUSES:
        raise ValidationError(f"Invalid status. Use one of: {', '.join(BOOKING_STATUSES)}")
    return status


def clean_notes(value, max_length: int = 500):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("notes must be a string")
    notes = value.strip()
    if len(notes) > max_length:
        raise ValidationError(f"notes must be at most {max_length} characters")
    return notes or None

"""Day layout: slots on a calendar date and the format rules for dates/times.

Dates are ``YYYY-MM-DD`` and times ``HH:MM``; both are fixed-width and
zero-padded, so plain string comparison orders them correctly.
"""
import logging
import math
import re
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from flask import current_app

from models import db
from models.slot import Slot
from scheduling.errors import SlotNotFound, SlotOccupied, ValidationError

logger = logging.getLogger(__name__)

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_RE = re.compile(r"^\d{2}:\d{2}$")

# quick-add layouts offered to the provider
SLOT_TEMPLATES = {
    "morning": [("09:00", "11:00"), ("11:00", "13:00")],
    "afternoon": [("13:00", "15:00"), ("15:00", "17:00"), ("17:00", "18:00")],
    "full_day": [
        ("09:00", "11:00"),
        ("11:00", "13:00"),
        ("13:00", "15:00"),
        ("15:00", "17:00"),
        ("17:00", "19:00"),
    ],
}


def is_valid_date(value) -> bool:
    return isinstance(value, str) and DATE_RE.match(value) is not None


def is_valid_time(value) -> bool:
    # shape only: "25:00" passes, see parse_clock for range checks
    return isinstance(value, str) and TIME_RE.match(value) is not None


def is_valid_time_range(start, end) -> bool:
    return is_valid_time(start) and is_valid_time(end) and start < end


def parse_date(value: str):
    if not is_valid_date(value):
        raise ValidationError("Invalid date. Use YYYY-MM-DD")
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"Date {value} does not exist")


def parse_clock(value: str) -> Tuple[int, int]:
    """Return (hour, minute) for a well-formed, in-range HH:MM."""
    if not is_valid_time(value):
        raise ValidationError("Invalid time. Use HH:MM")
    hour, minute = int(value[:2]), int(value[3:])
    if hour > 23 or minute > 59:
        raise ValidationError(f"Time {value} is out of range")
    return hour, minute


def to_minutes(value: str) -> int:
    hour, minute = parse_clock(value)
    return hour * 60 + minute


def add_minutes(value: str, minutes: int) -> str:
    total = min(to_minutes(value) + minutes, 24 * 60 - 1)
    return f"{total // 60:02d}:{total % 60:02d}"


def slot_duration(slot) -> int:
    return to_minutes(slot.end_time) - to_minutes(slot.start_time)


def slots_needed(duration_min: int, slot_minutes: int = 60) -> int:
    return max(1, math.ceil(duration_min / slot_minutes))


def hour_range(from_hour: int, to_hour: int) -> List[Tuple[str, str]]:
    return [(f"{h:02d}:00", f"{h + 1:02d}:00") for h in range(from_hour, to_hour)]


def validate_pairs(pairs: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    checked = []
    for start, end in pairs:
        if not is_valid_time_range(start, end):
            raise ValidationError(f"Invalid slot {start}-{end}: start must be before end")
        parse_clock(start)
        parse_clock(end)
        checked.append((start, end))
    if not checked:
        raise ValidationError("At least one slot is required")
    return checked


def list_slots(date: str) -> List[Slot]:
    return (
        Slot.query
        .filter_by(date=date)
        .order_by(Slot.start_time.asc())
        .all()
    )


def create_slots(date: str, pairs: Iterable[Tuple[str, str]]) -> List[Slot]:
    """Insert one slot per (start, end) pair.

    Overlap with existing slots on the date is not checked; the provider is
    trusted to lay out a sane day.
    """
    parse_date(date)
    checked = validate_pairs(pairs)

    created = [Slot(date=date, start_time=start, end_time=end) for start, end in checked]
    db.session.add_all(created)
    db.session.commit()
    logger.info("Created %d slots on %s", len(created), date)
    return created


def create_slots_from_template(date: str, template: str) -> List[Slot]:
    pairs = SLOT_TEMPLATES.get(template)
    if pairs is None:
        raise ValidationError(f"Unknown template {template!r}")
    return create_slots(date, pairs)


def open_day(date: str, from_hour: Optional[int] = None, to_hour: Optional[int] = None) -> List[Slot]:
    """Open a working day as one-hour slots; start times already present are skipped."""
    parse_date(date)
    if from_hour is None:
        from_hour = current_app.config.get("OPEN_DAY_FROM_HOUR", 12)
    if to_hour is None:
        to_hour = current_app.config.get("OPEN_DAY_TO_HOUR", 20)
    if not (0 <= from_hour < to_hour <= 24):
        raise ValidationError("Hours must satisfy 0 <= from_hour < to_hour <= 24")
    if to_hour == 24:
        # 24:00 is not a clock value; last slot ends at 23:59
        pairs = hour_range(from_hour, 23) + [("23:00", "23:59")]
    else:
        pairs = hour_range(from_hour, to_hour)

    existing = {s.start_time for s in list_slots(date)}
    created = [
        Slot(date=date, start_time=start, end_time=end)
        for start, end in pairs
        if start not in existing
    ]
    db.session.add_all(created)
    db.session.commit()
    logger.info("Opened %s: %d new slots (%02d:00-%02d:00)", date, len(created), from_hour, to_hour)
    return list_slots(date)


def delete_slot(slot_id: int) -> None:
    slot = db.session.get(Slot, slot_id)
    if slot is None:
        raise SlotNotFound()
    if slot.is_booked:
        raise SlotOccupied()

    # guarded delete: a booking may claim the slot between the read and here
    deleted = (
        Slot.query
        .filter(Slot.id == slot_id, Slot.is_booked.is_(False))
        .delete(synchronize_session=False)
    )
    if deleted != 1:
        db.session.rollback()
        raise SlotOccupied()
    # the row is gone; drop the stale instance from the identity map
    db.session.expunge(slot)
    db.session.commit()

"""Bookable start times for a service on a date.

A candidate start is a free slot from which a chain of adjacent free slots
(each ending where the next begins) covers the whole service duration. The
block reported for it ends at the last slot of that chain, so durations that
are not a multiple of the slot size round up to whole slots.

Near-term dates use *tight* mode: only blocks touching an existing booking
are offered, so new appointments pack against old ones instead of leaving
unsellable gaps in the provider's day.
"""
import calendar
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date as date_cls
from typing import List, Optional, Sequence

from flask import current_app

from models import db
from models.service import SERVICE_TYPE_MAIN, Service
from models.slot import Slot
from scheduling.errors import ServiceInactive, ServiceNotFound, ValidationError
from scheduling.timegrid import parse_date, slot_duration
from utils.clock import local_now, today_str
from utils.settings import get_int_setting

logger = logging.getLogger(__name__)

MODE_FREE = "free"
MODE_TIGHT = "tight"


@dataclass(frozen=True)
class TimeBlock:
    start_time: str
    end_time: str

    def to_dict(self):
        return {"start_time": self.start_time, "end_time": self.end_time}


def get_bookable_service(service_id: int) -> Service:
    service = db.session.get(Service, service_id)
    if service is None:
        raise ServiceNotFound()
    if not service.is_active or service.is_addon:
        raise ServiceInactive()
    return service


def run_from(ordered: Sequence, index: int, duration_min: int) -> Optional[list]:
    """Slots starting at ``ordered[index]`` that together cover ``duration_min``.

    Returns None when the chain is broken by a booked slot, a gap, or the end
    of the day before the duration is covered.
    """
    run = []
    covered = 0
    for slot in ordered[index:]:
        if slot.is_booked:
            return None
        if run and run[-1].end_time != slot.start_time:
            return None
        run.append(slot)
        covered += slot_duration(slot)
        if covered >= duration_min:
            return run
    return None


def find_candidates(slots: Sequence, duration_min: int, not_before: Optional[str] = None) -> List[TimeBlock]:
    ordered = sorted(slots, key=lambda s: s.start_time)
    blocks = []
    for i, slot in enumerate(ordered):
        if slot.is_booked:
            continue
        if not_before is not None and slot.start_time <= not_before:
            continue
        run = run_from(ordered, i, duration_min)
        if run:
            blocks.append(TimeBlock(run[0].start_time, run[-1].end_time))
    return blocks


def tight_candidates(blocks: Sequence[TimeBlock], slots: Sequence) -> List[TimeBlock]:
    booked = [s for s in slots if s.is_booked]
    booked_ends = {s.end_time for s in booked}
    booked_starts = {s.start_time for s in booked}

    # prefer packing forward, right after an existing booking
    after = [b for b in blocks if b.start_time in booked_ends]
    if after:
        return after
    before = [b for b in blocks if b.end_time in booked_starts]
    if before:
        return before
    return list(blocks)


def days_until(today: str, target: str) -> int:
    return (parse_date(target) - parse_date(today)).days


def select_mode(today: str, target: str, threshold_days: int) -> str:
    return MODE_TIGHT if days_until(today, target) <= threshold_days else MODE_FREE


def compute_times(slots: Sequence, duration_min: int, mode: str, not_before: Optional[str] = None) -> List[TimeBlock]:
    blocks = find_candidates(slots, duration_min, not_before=not_before)
    if mode == MODE_TIGHT:
        return tight_candidates(blocks, slots)
    return blocks


def _not_before(target: str, now) -> Optional[str]:
    # on the current day only future start times are offered
    if target == today_str(now):
        return local_now(now).strftime("%H:%M")
    return None


def _slots_by_date(query) -> dict:
    grouped = defaultdict(list)
    for slot in query.order_by(Slot.date.asc(), Slot.start_time.asc()).all():
        grouped[slot.date].append(slot)
    return grouped


def _filter_duration(service_id: Optional[int]) -> int:
    if service_id is not None:
        return get_bookable_service(service_id).duration_min
    # no filter: a day counts if any main service fits, i.e. the shortest one
    shortest = (
        db.session.query(db.func.min(Service.duration_min))
        .filter(Service.is_active.is_(True), Service.service_type == SERVICE_TYPE_MAIN)
        .scalar()
    )
    return shortest or current_app.config.get("SLOT_MINUTES", 60)


def available_times(target: str, service_id: int, now=None) -> dict:
    parse_date(target)
    service = get_bookable_service(service_id)

    today = today_str(now)
    mode = select_mode(today, target, get_int_setting("tight_mode_days"))
    if target < today:
        return {"mode": mode, "times": []}

    slots = Slot.query.filter_by(date=target).order_by(Slot.start_time.asc()).all()
    times = compute_times(slots, service.duration_min, mode, not_before=_not_before(target, now))
    return {"mode": mode, "times": [t.to_dict() for t in times]}


def has_candidate(slots: Sequence, duration_min: int, not_before: Optional[str] = None) -> bool:
    return bool(find_candidates(slots, duration_min, not_before=not_before))


def month_calendar(year: int, month: int, service_id: Optional[int] = None, now=None) -> List[dict]:
    if not (1 <= month <= 12) or not (2000 <= year <= 2100):
        raise ValidationError("Invalid year or month")
    duration = _filter_duration(service_id)

    days_in_month = calendar.monthrange(year, month)[1]
    first = date_cls(year, month, 1).isoformat()
    last = date_cls(year, month, days_in_month).isoformat()
    grouped = _slots_by_date(Slot.query.filter(Slot.date >= first, Slot.date <= last))

    today = today_str(now)
    days = []
    for day in range(1, days_in_month + 1):
        current = date_cls(year, month, day).isoformat()
        if current < today:
            continue
        slots = grouped.get(current, [])
        days.append({
            "date": current,
            "total": len(slots),
            "free": sum(1 for s in slots if not s.is_booked),
            "bookable": has_candidate(slots, duration, not_before=_not_before(current, now)),
        })
    return days


def available_dates(service_id: Optional[int] = None, now=None) -> List[str]:
    duration = _filter_duration(service_id)
    today = today_str(now)

    grouped = _slots_by_date(Slot.query.filter(Slot.date >= today))
    return [
        current
        for current, slots in grouped.items()
        if has_candidate(slots, duration, not_before=_not_before(current, now))
    ]

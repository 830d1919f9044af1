import pytest

from models import db
from models.slot import Slot
from scheduling import timegrid
from scheduling.errors import SlotNotFound, SlotOccupied, ValidationError

DATE = "2026-03-20"


def test_format_checks_are_syntactic_only():
    assert timegrid.is_valid_date("2026-03-20")
    assert not timegrid.is_valid_date("2026-3-20")
    assert timegrid.is_valid_time("09:00")
    # well-formed but not a clock value
    assert timegrid.is_valid_time("25:00")
    assert not timegrid.is_valid_time("9:00")
    assert not timegrid.is_valid_time(None)


def test_time_range_is_lexicographic():
    assert timegrid.is_valid_time_range("09:00", "10:00")
    assert not timegrid.is_valid_time_range("10:00", "10:00")
    assert not timegrid.is_valid_time_range("11:00", "10:00")


def test_parse_clock_rejects_out_of_range():
    assert timegrid.parse_clock("23:59") == (23, 59)
    with pytest.raises(ValidationError):
        timegrid.parse_clock("25:00")
    with pytest.raises(ValidationError):
        timegrid.parse_clock("10:60")


def test_parse_date_rejects_impossible_dates():
    with pytest.raises(ValidationError):
        timegrid.parse_date("2026-02-30")


def test_minutes_arithmetic():
    assert timegrid.add_minutes("09:30", 90) == "11:00"
    assert timegrid.add_minutes("23:00", 120) == "23:59"
    assert timegrid.slots_needed(120) == 2
    assert timegrid.slots_needed(90) == 2
    assert timegrid.slots_needed(20) == 1


def test_create_slots_explicit(app):
    created = timegrid.create_slots(DATE, [("09:00", "11:00"), ("11:00", "13:00")])
    assert [(s.start_time, s.end_time) for s in created] == [("09:00", "11:00"), ("11:00", "13:00")]
    assert all(not s.is_booked for s in timegrid.list_slots(DATE))


def test_create_slots_rejects_bad_pairs(app):
    with pytest.raises(ValidationError):
        timegrid.create_slots(DATE, [("11:00", "09:00")])
    with pytest.raises(ValidationError):
        timegrid.create_slots(DATE, [("24:00", "25:00")])
    with pytest.raises(ValidationError):
        timegrid.create_slots(DATE, [])
    assert Slot.query.count() == 0


def test_overlapping_slots_are_accepted(app):
    timegrid.create_slots(DATE, [("09:00", "11:00")])
    timegrid.create_slots(DATE, [("10:00", "12:00")])
    assert len(timegrid.list_slots(DATE)) == 2


def test_template(app):
    created = timegrid.create_slots_from_template(DATE, "morning")
    assert [s.start_time for s in created] == ["09:00", "11:00"]
    with pytest.raises(ValidationError):
        timegrid.create_slots_from_template(DATE, "night")


def test_open_day_defaults_and_idempotency(app):
    slots = timegrid.open_day(DATE)
    assert [s.start_time for s in slots] == [f"{h:02d}:00" for h in range(12, 20)]
    assert slots[-1].end_time == "20:00"

    again = timegrid.open_day(DATE, 10, 14)
    starts = [s.start_time for s in again]
    assert starts == ["10:00", "11:00"] + [f"{h:02d}:00" for h in range(12, 20)]
    assert len(starts) == len(set(starts))


def test_open_day_until_midnight(app):
    slots = timegrid.open_day(DATE, 22, 24)
    assert [(s.start_time, s.end_time) for s in slots] == [("22:00", "23:00"), ("23:00", "23:59")]


def test_open_day_rejects_bad_hours(app):
    with pytest.raises(ValidationError):
        timegrid.open_day(DATE, 20, 12)


def test_delete_slot(app):
    free, booked = timegrid.create_slots(DATE, [("09:00", "10:00"), ("10:00", "11:00")])
    booked.is_booked = True
    db.session.commit()

    timegrid.delete_slot(free.id)
    assert db.session.get(Slot, free.id) is None

    with pytest.raises(SlotOccupied):
        timegrid.delete_slot(booked.id)
    with pytest.raises(SlotNotFound):
        timegrid.delete_slot(9999)

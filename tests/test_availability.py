from types import SimpleNamespace

import pytest

from conftest import FAR_DATE, NEAR_DATE, NOW
from models import db
from models.service import Service
from scheduling import availability, lifecycle, timegrid
from scheduling.availability import MODE_FREE, MODE_TIGHT, TimeBlock
from scheduling.errors import ServiceInactive, ServiceNotFound, ValidationError


def _slot(start, end, booked=False):
    return SimpleNamespace(start_time=start, end_time=end, is_booked=booked)


def _starts(blocks):
    return [b.start_time for b in blocks]


# ---------- pure candidate search ----------
def test_no_slots_no_candidates():
    assert availability.find_candidates([], 60) == []


def test_scenario_a_free_candidates():
    slots = [_slot("09:00", "11:00"), _slot("11:00", "13:00")]
    assert availability.find_candidates(slots, 120) == [
        TimeBlock("09:00", "11:00"),
        TimeBlock("11:00", "13:00"),
    ]


def test_run_must_be_adjacent_and_free():
    slots = [
        _slot("09:00", "10:00"),
        _slot("10:00", "11:00", booked=True),
        _slot("11:00", "12:00"),
        _slot("12:30", "13:30"),
    ]
    assert availability.find_candidates(slots, 120) == []
    assert _starts(availability.find_candidates(slots, 60)) == ["09:00", "11:00", "12:30"]


def test_duration_rounds_up_to_whole_slots():
    slots = [_slot("09:00", "10:00"), _slot("10:00", "11:00"), _slot("11:00", "12:00")]
    assert availability.find_candidates(slots, 90) == [
        TimeBlock("09:00", "11:00"),
        TimeBlock("10:00", "12:00"),
    ]


def test_duration_longer_than_any_run():
    slots = [_slot("09:00", "10:00"), _slot("10:00", "11:00")]
    assert availability.find_candidates(slots, 180) == []


def test_scenario_b_tight_prefers_block_after_booking():
    slots = [
        _slot("09:00", "11:00"),
        _slot("11:00", "13:00", booked=True),
        _slot("13:00", "15:00"),
    ]
    assert _starts(availability.compute_times(slots, 120, MODE_FREE)) == ["09:00", "13:00"]
    assert availability.compute_times(slots, 120, MODE_TIGHT) == [TimeBlock("13:00", "15:00")]


def test_tight_falls_back_to_block_before_booking():
    slots = [
        _slot("09:00", "10:00"),
        _slot("10:00", "11:00"),
        _slot("11:00", "12:00", booked=True),
    ]
    assert availability.compute_times(slots, 60, MODE_TIGHT) == [TimeBlock("10:00", "11:00")]


def test_tight_never_empty_only_because_of_filter():
    slots = [_slot("09:00", "10:00"), _slot("10:00", "11:00")]
    assert _starts(availability.compute_times(slots, 60, MODE_TIGHT)) == ["09:00", "10:00"]


@pytest.mark.parametrize("booked_index", [0, 1, 2, 3, 4])
def test_tight_is_subset_of_free(booked_index):
    slots = [_slot(f"{h:02d}:00", f"{h + 1:02d}:00") for h in range(9, 14)]
    slots[booked_index].is_booked = True
    free = availability.compute_times(slots, 60, MODE_FREE)
    tight = availability.compute_times(slots, 60, MODE_TIGHT)
    assert set(tight) <= set(free)
    assert len(tight) <= len(free)


def test_mode_threshold_is_inclusive():
    assert availability.select_mode("2026-03-10", "2026-03-13", 3) == MODE_TIGHT
    assert availability.select_mode("2026-03-10", "2026-03-14", 3) == MODE_FREE


# ---------- against the database ----------
def test_available_times_scenario_a(app, lash, anna):
    timegrid.create_slots(FAR_DATE, [("09:00", "11:00"), ("11:00", "13:00")])

    result = availability.available_times(FAR_DATE, lash.id, now=NOW)
    assert result["mode"] == MODE_FREE
    assert [t["start_time"] for t in result["times"]] == ["09:00", "11:00"]

    lifecycle.create_booking(lash.id, FAR_DATE, "09:00", False, anna, now=NOW)

    result = availability.available_times(FAR_DATE, lash.id, now=NOW)
    assert result["times"] == [{"start_time": "11:00", "end_time": "13:00"}]


def test_available_times_scenario_b(app, lash):
    slots = timegrid.create_slots(NEAR_DATE, [("09:00", "11:00"), ("11:00", "13:00"), ("13:00", "15:00")])
    slots[1].is_booked = True
    db.session.commit()

    result = availability.available_times(NEAR_DATE, lash.id, now=NOW)
    assert result["mode"] == MODE_TIGHT
    assert result["times"] == [{"start_time": "13:00", "end_time": "15:00"}]


def test_tight_threshold_comes_from_settings(app, lash):
    from utils.settings import set_setting

    set_setting("tight_mode_days", 0)
    db.session.commit()
    assert availability.available_times(NEAR_DATE, lash.id, now=NOW)["mode"] == MODE_FREE


def test_today_only_offers_future_starts(app, correction):
    # NOW is 12:00 local
    timegrid.create_slots("2026-03-10", [("10:00", "11:00"), ("12:00", "13:00"), ("13:00", "14:00")])
    times = availability.available_times("2026-03-10", correction.id, now=NOW)["times"]
    assert [t["start_time"] for t in times] == ["13:00"]


def test_past_date_has_no_times(app, correction):
    timegrid.create_slots("2026-03-01", [("10:00", "11:00")])
    assert availability.available_times("2026-03-01", correction.id, now=NOW)["times"] == []


def test_unbookable_services(app, addon):
    with pytest.raises(ServiceNotFound):
        availability.available_times(FAR_DATE, 9999, now=NOW)
    with pytest.raises(ServiceInactive):
        availability.available_times(FAR_DATE, addon.id, now=NOW)

    retired = Service(name="Old", price=100, duration_min=60, is_active=False)
    db.session.add(retired)
    db.session.commit()
    with pytest.raises(ServiceInactive):
        availability.available_times(FAR_DATE, retired.id, now=NOW)


def test_month_calendar(app, lash):
    timegrid.create_slots(FAR_DATE, [("09:00", "11:00"), ("11:00", "12:00")])
    timegrid.create_slots("2026-03-21", [("09:00", "10:00")])

    days = availability.month_calendar(2026, 3, lash.id, now=NOW)
    assert days[0]["date"] == "2026-03-10"
    assert days[-1]["date"] == "2026-03-31"
    by_date = {d["date"]: d for d in days}
    assert by_date[FAR_DATE] == {"date": FAR_DATE, "total": 2, "free": 2, "bookable": True}
    # one hour is too short for the 120 min service
    assert by_date["2026-03-21"]["bookable"] is False
    assert by_date["2026-03-15"] == {"date": "2026-03-15", "total": 0, "free": 0, "bookable": False}

    # unfiltered: the shortest main service (60 min) fits
    assert {d["date"]: d for d in availability.month_calendar(2026, 3, now=NOW)}["2026-03-21"]["bookable"] is True


def test_month_calendar_validates_month(app):
    with pytest.raises(ValidationError):
        availability.month_calendar(2026, 13, now=NOW)


def test_available_dates(app, lash):
    timegrid.create_slots("2026-03-01", [("09:00", "11:00")])
    timegrid.create_slots(FAR_DATE, [("09:00", "11:00")])
    timegrid.create_slots("2026-03-21", [("09:00", "10:00")])

    assert availability.available_dates(lash.id, now=NOW) == [FAR_DATE]
    assert availability.available_dates(now=NOW) == [FAR_DATE, "2026-03-21"]

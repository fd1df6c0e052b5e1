import logging

import pytest

from barcal.hours import CalendarHours, parse_calendar_hours, visible_hours

LATE_BAR = {
    "monday": {"open": None, "close": None},
    "thursday": {"open": "16:00", "close": "23:00"},
    "friday": {"open": "10:00", "close": "02:00"},
}


def test_explicit_hours_win_over_business_hours():
    assert visible_hours({"startHour": 9, "endHour": 17}, LATE_BAR) == list(range(9, 18))


def test_explicit_hours_accept_json_text():
    assert visible_hours('{"startHour": 6, "endHour": 12}') == list(range(6, 13))


def test_explicit_hours_past_midnight():
    assert visible_hours({"startHour": 18, "endHour": 26}) == list(range(18, 27))


def test_explicit_hours_wrapping_start_after_end():
    assert visible_hours(CalendarHours(start_hour=22, end_hour=2)) == [22, 23, 0, 1, 2]


def test_inferred_from_business_hours_with_overnight_close():
    # Opens at 10, closes at 2am: two hours of lead-in, through the 2am row.
    hours = visible_hours(None, LATE_BAR)

    assert hours == list(range(8, 27))
    assert len(hours) == len(set(hours))


def test_inferred_start_is_clamped_at_midnight():
    assert visible_hours(None, {"saturday": {"open": "01:00", "close": "05:00"}}) == list(range(0, 6))


def test_inferred_from_json_business_hours():
    assert visible_hours(None, '{"sunday": {"open": "12:00", "close": "20:00"}}') == list(range(10, 21))


def test_all_hours_when_nothing_is_configured():
    assert visible_hours() == list(range(24))
    assert visible_hours(None, {"monday": {"open": None, "close": None}}) == list(range(24))


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        {"startHour": "9", "endHour": 17},
        {"startHour": True, "endHour": 17},
        {"startHour": 30, "endHour": 40},
        {"startHour": 9},
    ],
)
def test_malformed_explicit_hours_fall_back_with_warning(raw, caplog):
    with caplog.at_level(logging.WARNING, logger="barcal.hours"):
        assert parse_calendar_hours(raw) is None
        assert visible_hours(raw, LATE_BAR) == list(range(8, 27))

    assert "calendar hours" in caplog.text


def test_malformed_business_hours_entry_is_skipped(caplog):
    business = {
        "friday": {"open": "late", "close": "02:00"},
        "saturday": {"open": "11:00", "close": "23:00"},
    }

    with caplog.at_level(logging.WARNING, logger="barcal.hours"):
        hours = visible_hours(None, business)

    assert hours == list(range(9, 24))
    assert "friday" in caplog.text

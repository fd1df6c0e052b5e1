from datetime import date, datetime, timedelta

import pytest

from barcal.models import CalendarEvent
from barcal.recurrence import (
    RecurrenceParseError,
    add_exception_date,
    describe_pattern,
    expand,
    expand_event,
    parse_recurrence_rule,
)
from barcal.wallclock import WallClockResolver

RESOLVER = WallClockResolver("America/Denver")


def _local(*args) -> datetime:
    return RESOLVER.from_wall_clock(*args)


def _range(first: date, last: date):
    return RESOLVER.start_of_day(first), RESOLVER.end_of_day(last)


def _event(start: datetime, rule: str | None, minutes: int = 120, exceptions=()) -> CalendarEvent:
    return CalendarEvent(
        id="evt-1",
        title="Trivia Night",
        start_at=start,
        end_at=start + timedelta(minutes=minutes),
        recurrence_rule=rule,
        exception_dates=frozenset(exceptions),
    )


def _local_dates(result):
    return [RESOLVER.local_date(span.start) for span in result.spans]


def test_anchor_is_included_even_when_rule_skips_its_weekday():
    # June 5 2024 is a Wednesday; the rule only names Fridays.
    event = _event(_local(2024, 6, 5, 19, 0, 0), "FREQ=WEEKLY;BYDAY=FR")

    result = expand_event(event, *_range(date(2024, 6, 1), date(2024, 6, 30)), RESOLVER)

    assert result.error is None
    assert _local_dates(result) == [
        date(2024, 6, 5),
        date(2024, 6, 7),
        date(2024, 6, 14),
        date(2024, 6, 21),
        date(2024, 6, 28),
    ]


def test_weekly_friday_rule_stays_on_friday_at_seven_across_dst():
    event = _event(_local(2024, 9, 6, 19, 0, 0), "FREQ=WEEKLY;BYDAY=FR")

    result = expand_event(event, *_range(date(2024, 9, 1), date(2025, 9, 5)), RESOLVER)

    assert len(result.spans) == 53
    for span in result.spans:
        wall = RESOLVER.to_wall_clock(span.start)
        assert wall.date.weekday() == 4
        assert (wall.hour, wall.minute, wall.second) == (19, 0, 0)


def test_daily_rule_keeps_business_local_time_across_spring_forward():
    event = _event(_local(2024, 3, 8, 19, 0, 0), "FREQ=DAILY")

    result = expand_event(event, *_range(date(2024, 3, 8), date(2024, 3, 12)), RESOLVER)

    walls = [RESOLVER.to_wall_clock(span.start) for span in result.spans]
    assert [w.day for w in walls] == [8, 9, 10, 11, 12]
    assert all(w.hour == 19 and w.minute == 0 for w in walls)
    # The absolute offset changes on March 10 while the wall clock does not.
    assert result.spans[1].start - result.spans[0].start == timedelta(hours=24)
    assert result.spans[2].start - result.spans[1].start == timedelta(hours=23)


def test_exception_removes_exactly_that_date():
    event = _event(_local(2024, 7, 1, 19, 0, 0), "FREQ=DAILY", exceptions={"2024-07-04"})

    result = expand_event(event, *_range(date(2024, 7, 1), date(2024, 7, 7)), RESOLVER)

    assert _local_dates(result) == [
        date(2024, 7, 1),
        date(2024, 7, 2),
        date(2024, 7, 3),
        date(2024, 7, 5),
        date(2024, 7, 6),
        date(2024, 7, 7),
    ]


def test_exception_on_anchor_date_suppresses_anchor():
    event = _event(_local(2024, 7, 1, 19, 0, 0), "FREQ=DAILY", exceptions={"2024-07-01"})

    result = expand_event(event, *_range(date(2024, 7, 1), date(2024, 7, 2)), RESOLVER)

    assert _local_dates(result) == [date(2024, 7, 2)]


def test_month_day_rule_stays_on_local_day_late_in_the_evening():
    # 23:30 in Denver is already the next day in UTC.
    event = _event(_local(2024, 1, 18, 23, 30, 0), "FREQ=MONTHLY;BYMONTHDAY=18", minutes=60)

    result = expand_event(event, *_range(date(2024, 1, 1), date(2024, 12, 31)), RESOLVER)

    walls = [RESOLVER.to_wall_clock(span.start) for span in result.spans]
    assert len(walls) == 12
    assert all(w.day == 18 and (w.hour, w.minute) == (23, 30) for w in walls)
    assert [w.month for w in walls] == list(range(1, 13))


def test_nth_weekday_monthly_rule():
    event = _event(_local(2024, 1, 8, 18, 0, 0), "FREQ=MONTHLY;BYDAY=2MO")

    result = expand_event(event, *_range(date(2024, 1, 1), date(2024, 3, 31)), RESOLVER)

    assert _local_dates(result) == [date(2024, 1, 8), date(2024, 2, 12), date(2024, 3, 11)]
    assert RESOLVER.to_wall_clock(result.spans[-1].start).hour == 18


def test_no_occurrence_before_anchor_date():
    event = _event(_local(2024, 6, 19, 20, 0, 0), "FREQ=WEEKLY")

    result = expand_event(event, *_range(date(2024, 6, 1), date(2024, 6, 30)), RESOLVER)

    assert _local_dates(result) == [date(2024, 6, 19), date(2024, 6, 26)]


def test_end_preserves_original_duration():
    event = _event(_local(2024, 7, 1, 19, 0, 0), "FREQ=DAILY", minutes=90)

    result = expand_event(event, *_range(date(2024, 7, 2), date(2024, 7, 3)), RESOLVER)

    assert all(span.end - span.start == timedelta(minutes=90) for span in result.spans)


def test_open_ended_event_has_no_end():
    result = expand(
        _local(2024, 7, 1, 19, 0, 0),
        None,
        "FREQ=DAILY",
        [],
        *_range(date(2024, 7, 1), date(2024, 7, 2)),
        RESOLVER,
    )

    assert [span.end for span in result.spans] == [None, None]


def test_count_and_until_limit_the_series():
    start = _local(2024, 7, 1, 19, 0, 0)
    window = _range(date(2024, 7, 1), date(2024, 7, 31))

    counted = expand(start, None, "FREQ=DAILY;COUNT=3", [], *window, RESOLVER)
    until = expand(start, None, "FREQ=DAILY;UNTIL=20240703T235959Z", [], *window, RESOLVER)

    assert len(counted.spans) == 3
    # 19:00 on July 3 in Denver is 01:00 UTC on July 4, past UNTIL.
    assert len(until.spans) == 2


def test_unparseable_rule_falls_back_to_anchor_and_reports_error():
    event = _event(_local(2024, 6, 5, 19, 0, 0), "FREQ=SOMETIMES;BYDAY=FR")

    result = expand_event(event, *_range(date(2024, 6, 1), date(2024, 6, 30)), RESOLVER)

    assert _local_dates(result) == [date(2024, 6, 5)]
    assert isinstance(result.error, RecurrenceParseError)
    assert result.error.item_id == "evt-1"
    assert result.error.rule_text == "FREQ=SOMETIMES;BYDAY=FR"


def test_unparseable_rule_with_anchor_out_of_range_yields_nothing():
    event = _event(_local(2024, 5, 5, 19, 0, 0), "garbage")

    result = expand_event(event, *_range(date(2024, 6, 1), date(2024, 6, 30)), RESOLVER)

    assert result.spans == []
    assert result.error is not None


@pytest.mark.parametrize("rule", ["", "RRULE:", "FREQ=DAILY;INTERVAL=0", "FREQ=MONTHLY;BYMONTHDAY=40", "FREQ=HOURLY"])
def test_empty_or_out_of_range_rules_mean_no_recurrence(rule):
    assert parse_recurrence_rule(rule) is None

    result = expand(
        _local(2024, 6, 5, 19, 0, 0),
        None,
        rule,
        [],
        *_range(date(2024, 6, 1), date(2024, 6, 30)),
        RESOLVER,
    )

    assert _local_dates(result) == [date(2024, 6, 5)]
    assert result.error is None


def test_parse_rule_reads_prefix_and_parts():
    rule = parse_recurrence_rule("RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,FR;WKST=SU")

    assert rule.frequency == "WEEKLY"
    assert rule.interval == 2
    assert rule.weekdays == (("MO", None), ("FR", None))
    assert rule.plain_weekdays == frozenset({0, 4})
    assert rule.week_start == "SU"


def test_parse_rule_rejects_unknown_parts():
    with pytest.raises(RecurrenceParseError):
        parse_recurrence_rule("FREQ=DAILY;COLOR=RED")


def test_add_exception_date_is_idempotent():
    event = _event(_local(2024, 7, 1, 19, 0, 0), "FREQ=DAILY")

    once = add_exception_date(event, date(2024, 7, 4))
    twice = add_exception_date(once, date(2024, 7, 4))

    assert once.exception_dates == frozenset({"2024-07-04"})
    assert twice is once
    assert event.exception_dates == frozenset()


def test_add_exception_date_requires_recurring_event():
    event = _event(_local(2024, 7, 1, 19, 0, 0), None)

    with pytest.raises(ValueError):
        add_exception_date(event, date(2024, 7, 1))


def test_describe_pattern():
    assert describe_pattern(parse_recurrence_rule("FREQ=WEEKLY;BYDAY=TU,TH")) == {
        "frequency": "weekly",
        "days": ["Tuesday", "Thursday"],
    }
    assert describe_pattern(parse_recurrence_rule("FREQ=MONTHLY;BYMONTHDAY=18")) == {
        "frequency": "monthly",
        "monthDay": 18,
    }
    assert describe_pattern(None) is None

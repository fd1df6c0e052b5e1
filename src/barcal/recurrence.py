"""Recurrence expansion for calendar events.

All date arithmetic happens on naive business-local datetimes; the
resolver turns each generated date into an absolute instant only at the end.
That keeps month days and weekdays on the day the business sees them,
whatever the UTC offset of the occurrence happens to be.
"""
from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from dateutil import rrule as du
from dateutil.parser import isoparse

from .models import CalendarEvent
from .wallclock import WEEKDAY_NAMES, WallClockResolver, date_key

logger = logging.getLogger(__name__)

FREQUENCIES = {
    "DAILY": du.DAILY,
    "WEEKLY": du.WEEKLY,
    "MONTHLY": du.MONTHLY,
    "YEARLY": du.YEARLY,
}
# Valid RFC 5545 frequencies that a day-granular calendar cannot place.
SUB_DAILY = {"HOURLY", "MINUTELY", "SECONDLY"}

WEEKDAY_CODES = ["MO", "TU", "WE", "TH", "FR", "SA", "SU"]
_BYDAY_RE = re.compile(r"^([+-]?\d{1,2})?(MO|TU|WE|TH|FR|SA|SU)$")
# Time-of-day always comes from the anchor.
_IGNORED_PARTS = {"BYHOUR", "BYMINUTE", "BYSECOND"}


class RecurrenceParseError(ValueError):
    """A recurrence rule could not be understood. Recoverable: callers fall back to the anchor."""

    def __init__(self, rule_text: str, reason: str, item_id: Optional[str] = None) -> None:
        self.rule_text = rule_text
        self.reason = reason
        self.item_id = item_id
        super().__init__(f"Invalid recurrence rule {rule_text!r}: {reason}")


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: str
    interval: int = 1
    weekdays: Tuple[Tuple[str, Optional[int]], ...] = ()   # (code, ordinal) e.g. ("MO", 2)
    month_days: Tuple[int, ...] = ()
    months: Tuple[int, ...] = ()
    set_positions: Tuple[int, ...] = ()
    count: Optional[int] = None
    until: Optional[datetime] = None
    until_is_date: bool = False
    week_start: str = "MO"
    text: str = ""

    @property
    def plain_weekdays(self) -> FrozenSet[int]:
        """Weekday indexes (Monday=0) named without an ordinal."""
        return frozenset(WEEKDAY_CODES.index(code) for code, nth in self.weekdays if nth is None)


@dataclass(frozen=True)
class OccurrenceSpan:
    start: datetime
    end: Optional[datetime] = None


@dataclass
class ExpansionResult:
    spans: List[OccurrenceSpan] = field(default_factory=list)
    error: Optional[RecurrenceParseError] = None


def _int_list(key: str, value: str, text: str) -> List[int]:
    try:
        return [int(v) for v in value.split(",") if v.strip()]
    except ValueError:
        raise RecurrenceParseError(text, f"{key} must be a list of integers") from None


def parse_recurrence_rule(text: Optional[str]) -> Optional[RecurrenceRule]:
    """Parse RRULE text.

    Returns None for an empty rule or one whose values are out of range, both of
    which mean "no recurrence". Raises RecurrenceParseError for text that is not
    a rule at all.
    """
    if text is None:
        return None
    body = text.strip()
    if body.upper().startswith("RRULE:"):
        body = body[6:]
    if not body:
        return None

    parts: Dict[str, str] = {}
    for chunk in body.split(";"):
        if not chunk.strip():
            continue
        if "=" not in chunk:
            raise RecurrenceParseError(text, f"expected KEY=VALUE, got {chunk!r}")
        key, value = chunk.split("=", 1)
        parts[key.strip().upper()] = value.strip().upper()

    freq = parts.pop("FREQ", None)
    if freq is None:
        raise RecurrenceParseError(text, "missing FREQ")
    if freq in SUB_DAILY:
        logger.debug("Ignoring sub-daily recurrence rule %r", text)
        return None
    if freq not in FREQUENCIES:
        raise RecurrenceParseError(text, f"unknown frequency {freq!r}")

    kwargs: Dict[str, object] = {"frequency": freq, "text": text}

    if "INTERVAL" in parts:
        values = _int_list("INTERVAL", parts.pop("INTERVAL"), text)
        interval = values[0] if values else 0
        if interval < 1:
            return None
        kwargs["interval"] = interval

    if "BYDAY" in parts:
        weekdays = []
        for token in parts.pop("BYDAY").split(","):
            m = _BYDAY_RE.match(token.strip())
            if not m:
                raise RecurrenceParseError(text, f"bad BYDAY value {token!r}")
            nth = int(m.group(1)) if m.group(1) else None
            if nth is not None and (nth == 0 or abs(nth) > 53):
                return None
            weekdays.append((m.group(2), nth))
        kwargs["weekdays"] = tuple(weekdays)

    if "BYMONTHDAY" in parts:
        month_days = _int_list("BYMONTHDAY", parts.pop("BYMONTHDAY"), text)
        if not month_days or any(d == 0 or abs(d) > 31 for d in month_days):
            return None
        kwargs["month_days"] = tuple(month_days)

    if "BYMONTH" in parts:
        months = _int_list("BYMONTH", parts.pop("BYMONTH"), text)
        if not months or any(not 1 <= m <= 12 for m in months):
            return None
        kwargs["months"] = tuple(months)

    if "BYSETPOS" in parts:
        positions = _int_list("BYSETPOS", parts.pop("BYSETPOS"), text)
        if not positions or any(p == 0 or abs(p) > 366 for p in positions):
            return None
        kwargs["set_positions"] = tuple(positions)

    if "COUNT" in parts:
        counts = _int_list("COUNT", parts.pop("COUNT"), text)
        if not counts or counts[0] < 1:
            return None
        kwargs["count"] = counts[0]

    if "UNTIL" in parts:
        raw_until = parts.pop("UNTIL")
        try:
            kwargs["until"] = isoparse(raw_until)
        except ValueError:
            raise RecurrenceParseError(text, f"bad UNTIL value {raw_until!r}") from None
        kwargs["until_is_date"] = "T" not in raw_until

    if "WKST" in parts:
        wkst = parts.pop("WKST")
        if wkst not in WEEKDAY_CODES:
            raise RecurrenceParseError(text, f"bad WKST value {wkst!r}")
        kwargs["week_start"] = wkst

    for key in _IGNORED_PARTS:
        parts.pop(key, None)
    if parts:
        raise RecurrenceParseError(text, f"unsupported parts {sorted(parts)}")

    return RecurrenceRule(**kwargs)


def _next_allowed_weekday(day: date, allowed: FrozenSet[int]) -> date:
    for offset in range(7):
        candidate = day + timedelta(days=offset)
        if candidate.weekday() in allowed:
            return candidate
    return day


def _local_until(rule: RecurrenceRule, resolver: WallClockResolver) -> Optional[datetime]:
    if rule.until is None:
        return None
    if rule.until_is_date:
        return datetime.combine(rule.until.date(), time.max)
    if rule.until.tzinfo is not None:
        return resolver.to_wall_clock(rule.until).naive()
    return rule.until


def _build_rrule(rule: RecurrenceRule, dtstart: datetime, resolver: WallClockResolver) -> du.rrule:
    byweekday = None
    if rule.weekdays:
        byweekday = []
        for code, nth in rule.weekdays:
            wd = du.weekdays[WEEKDAY_CODES.index(code)]
            byweekday.append(wd(nth) if nth else wd)
    try:
        return du.rrule(
            FREQUENCIES[rule.frequency],
            dtstart=dtstart,
            interval=rule.interval,
            wkst=WEEKDAY_CODES.index(rule.week_start),
            count=rule.count,
            until=_local_until(rule, resolver),
            byweekday=byweekday,
            bymonthday=list(rule.month_days) or None,
            bymonth=list(rule.months) or None,
            bysetpos=list(rule.set_positions) or None,
        )
    except ValueError as e:
        raise RecurrenceParseError(rule.text, str(e)) from None


def _in_range(instant: datetime, range_start: datetime, range_end: datetime) -> bool:
    return range_start <= instant <= range_end


def expand(
    start_at: datetime,
    end_at: Optional[datetime],
    rule_text: Optional[str],
    exception_dates: Iterable[str],
    range_start: datetime,
    range_end: datetime,
    resolver: WallClockResolver,
    item_id: Optional[str] = None,
) -> ExpansionResult:
    """Expand one recurring item into occurrence spans within [range_start, range_end].

    Never raises for a bad rule: the result then holds only the anchor
    occurrence (when in range) and the parse error.
    """
    exceptions = set(exception_dates)
    duration = (end_at - start_at) if end_at is not None else None
    anchor = resolver.to_wall_clock(start_at)
    anchor_date = anchor.date
    anchor_time = anchor.time

    def span(start: datetime) -> OccurrenceSpan:
        return OccurrenceSpan(start=start, end=start + duration if duration is not None else None)

    result = ExpansionResult()
    starts: Dict[date, datetime] = {}

    try:
        rule = parse_recurrence_rule(rule_text)
    except RecurrenceParseError as e:
        e.item_id = item_id
        result.error = e
        rule = None

    if rule is not None:
        first = anchor_date
        if rule.frequency == "WEEKLY" and rule.plain_weekdays and first.weekday() not in rule.plain_weekdays:
            first = _next_allowed_weekday(first, rule.plain_weekdays)

        window_start = max(anchor_date, resolver.local_date(range_start) - timedelta(days=1))
        window_end = resolver.local_date(range_end) + timedelta(days=1)
        try:
            generator = _build_rrule(rule, datetime.combine(first, anchor_time), resolver)
            local_starts = generator.between(
                datetime.combine(window_start, time.min),
                datetime.combine(window_end, time.max),
                inc=True,
            )
        except RecurrenceParseError as e:
            e.item_id = item_id
            result.error = e
            local_starts = []

        for local in local_starts:
            day = local.date()
            if day < anchor_date or date_key(day) in exceptions:
                continue
            start = resolver.combine(day, anchor_time)
            if _in_range(start, range_start, range_end):
                starts.setdefault(day, start)

    # The anchor itself is always an occurrence, whatever the rule produces.
    if _in_range(start_at, range_start, range_end) and date_key(anchor_date) not in exceptions:
        starts.setdefault(anchor_date, start_at)

    result.spans = [span(starts[day]) for day in sorted(starts)]
    return result


def expand_event(
    event: CalendarEvent,
    range_start: datetime,
    range_end: datetime,
    resolver: WallClockResolver,
) -> ExpansionResult:
    return expand(
        event.start_at,
        event.end_at,
        event.recurrence_rule,
        event.exception_dates,
        range_start,
        range_end,
        resolver,
        item_id=event.id,
    )


def add_exception_date(event: CalendarEvent, day: date) -> CalendarEvent:
    """Skip one occurrence of a recurring event."""
    if not event.is_recurring:
        raise ValueError(f"Event {event.id} is not recurring")
    key = date_key(day)
    if key in event.exception_dates:
        return event
    return dataclasses.replace(event, exception_dates=event.exception_dates | {key})


def describe_pattern(rule: Optional[RecurrenceRule]) -> Optional[dict]:
    """Summarize a rule as weekly day names or a monthly day, for duplication and labels."""
    if rule is None:
        return None
    if rule.frequency == "WEEKLY" and rule.weekdays:
        days = [WEEKDAY_NAMES[WEEKDAY_CODES.index(code)] for code, _ in rule.weekdays]
        return {"frequency": "weekly", "days": days}
    if rule.frequency == "MONTHLY" and rule.month_days:
        return {"frequency": "monthly", "monthDay": rule.month_days[0]}
    if rule.frequency == "MONTHLY" and rule.weekdays:
        code, nth = rule.weekdays[0]
        return {"frequency": "monthly", "weekOfMonth": nth, "day": WEEKDAY_NAMES[WEEKDAY_CODES.index(code)]}
    return {"frequency": rule.frequency.lower()}

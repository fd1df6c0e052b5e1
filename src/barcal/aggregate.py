from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from .models import (
    ANNOUNCEMENT,
    DRINK,
    EVENT,
    FOOD,
    SPECIAL,
    CalendarAnnouncement,
    CalendarEvent,
    CalendarSpecial,
    Occurrence,
)
from .recurrence import RecurrenceParseError, expand_event
from .wallclock import WallClockResolver, weekday_name

logger = logging.getLogger(__name__)

DAY = "day"
WEEK = "week"
MONTH = "month"
VIEW_MODES = (DAY, WEEK, MONTH)


@dataclass
class AggregationResult:
    occurrences: List[Occurrence] = field(default_factory=list)
    errors: List[RecurrenceParseError] = field(default_factory=list)


def _week_start(day: date, week_starts_on: str) -> date:
    first = 0 if week_starts_on == "monday" else 6
    return day - timedelta(days=(day.weekday() - first) % 7)


def view_dates(anchor: date, view_mode: str, week_starts_on: str = "sunday") -> Tuple[date, date]:
    """First and last business-local date shown by a view."""
    if view_mode == DAY:
        return anchor, anchor
    if view_mode == WEEK:
        start = _week_start(anchor, week_starts_on)
        return start, start + timedelta(days=6)
    if view_mode == MONTH:
        first = anchor.replace(day=1)
        last = anchor.replace(day=calendar.monthrange(anchor.year, anchor.month)[1])
        grid_start = _week_start(first, week_starts_on)
        grid_end = _week_start(last, week_starts_on) + timedelta(days=6)
        return grid_start, grid_end
    raise ValueError(f"Unknown view mode: {view_mode!r}")


def view_range(
    anchor: date,
    view_mode: str,
    resolver: WallClockResolver,
    week_starts_on: str = "sunday",
) -> Tuple[datetime, datetime]:
    first, last = view_dates(anchor, view_mode, week_starts_on)
    return resolver.start_of_day(first), resolver.end_of_day(last)


def navigate(anchor: date, view_mode: str, direction: int) -> date:
    """Move the anchor date one view forward (direction=1) or back (direction=-1)."""
    if view_mode == DAY:
        return anchor + timedelta(days=direction)
    if view_mode == WEEK:
        return anchor + timedelta(weeks=direction)
    if view_mode == MONTH:
        month_index = anchor.year * 12 + (anchor.month - 1) + direction
        year, month = divmod(month_index, 12)
        day = min(anchor.day, calendar.monthrange(year, month + 1)[1])
        return date(year, month + 1, day)
    raise ValueError(f"Unknown view mode: {view_mode!r}")


def _days(first: date, last: date) -> Iterator[date]:
    day = first
    while day <= last:
        yield day
        day += timedelta(days=1)


def _clipped_days(first: date, last: date, range_first: date, range_last: date) -> Iterator[date]:
    return _days(max(first, range_first), min(last, range_last))


def _event_occurrences(
    event: CalendarEvent,
    range_start: datetime,
    range_end: datetime,
    resolver: WallClockResolver,
    result: AggregationResult,
) -> Iterator[Occurrence]:
    if not event.is_recurring:
        if range_start <= event.start_at <= range_end:
            yield Occurrence(
                source_id=event.id,
                source_type=EVENT,
                display_date=resolver.local_date(event.start_at),
                resolved_start_at=event.start_at,
                resolved_end_at=event.end_at,
                item=event,
            )
        return

    expansion = expand_event(event, range_start, range_end, resolver)
    if expansion.error is not None:
        logger.warning(
            "Could not parse recurrence rule %r for event %s; showing the anchor only (%s)",
            expansion.error.rule_text,
            event.id,
            expansion.error.reason,
        )
        result.errors.append(expansion.error)
    for span in expansion.spans:
        yield Occurrence(
            source_id=event.id,
            source_type=EVENT,
            display_date=resolver.local_date(span.start),
            resolved_start_at=span.start,
            resolved_end_at=span.end,
            item=event,
        )


def _day_occurrence(source_id: str, source_type: str, day: date, item, resolver: WallClockResolver) -> Occurrence:
    return Occurrence(
        source_id=source_id,
        source_type=source_type,
        display_date=day,
        resolved_start_at=resolver.start_of_day(day),
        item=item,
    )


def _special_occurrences(
    special: CalendarSpecial,
    range_first: date,
    range_last: date,
    resolver: WallClockResolver,
) -> Iterator[Occurrence]:
    # is_active is ignored; past and future specials stay on the calendar.
    if special.type == DRINK and special.applies_on:
        names = {name.strip().lower() for name in special.applies_on}
        for day in _days(range_first, range_last):
            if weekday_name(day).lower() in names:
                yield _day_occurrence(special.id, SPECIAL, day, special, resolver)
        return

    if special.type in (FOOD, DRINK) and special.start_date is not None:
        last = special.end_date or special.start_date
        for day in _clipped_days(special.start_date, last, range_first, range_last):
            yield _day_occurrence(special.id, SPECIAL, day, special, resolver)


def _announcement_occurrences(
    announcement: CalendarAnnouncement,
    range_first: date,
    range_last: date,
    resolver: WallClockResolver,
) -> Iterator[Occurrence]:
    if announcement.publish_at is None or announcement.expires_at is None:
        return
    first = resolver.local_date(announcement.publish_at)
    last = resolver.local_date(announcement.expires_at)
    for day in _clipped_days(first, last, range_first, range_last):
        yield _day_occurrence(announcement.id, ANNOUNCEMENT, day, announcement, resolver)


def _dedupe(occurrences: Iterable[Occurrence]) -> List[Occurrence]:
    deduped: List[Occurrence] = []
    seen = set()
    for occ in occurrences:
        key = (occ.source_type, occ.source_id, occ.display_date)
        if key in seen:
            continue
        seen.add(key)
        deduped.append(occ)
    return deduped


def aggregate(
    events: Sequence[CalendarEvent],
    specials: Sequence[CalendarSpecial],
    announcements: Sequence[CalendarAnnouncement],
    range_start: datetime,
    range_end: datetime,
    resolver: WallClockResolver,
) -> AggregationResult:
    """Merge every source into one occurrence stream sorted by business-local day.

    Within a day the input order is kept (events, then specials, then
    announcements, each in the order given), which the priority selector relies on.
    """
    result = AggregationResult()
    range_first = resolver.local_date(range_start)
    range_last = resolver.local_date(range_end)

    collected: List[Occurrence] = []
    for event in events:
        if not event.is_active:
            continue
        collected.extend(_event_occurrences(event, range_start, range_end, resolver, result))
    for special in specials:
        collected.extend(_special_occurrences(special, range_first, range_last, resolver))
    for announcement in announcements:
        collected.extend(_announcement_occurrences(announcement, range_first, range_last, resolver))

    result.occurrences = sorted(_dedupe(collected), key=lambda o: o.display_date)
    return result


def aggregate_view(
    events: Sequence[CalendarEvent],
    specials: Sequence[CalendarSpecial],
    announcements: Sequence[CalendarAnnouncement],
    anchor: date,
    view_mode: str,
    resolver: WallClockResolver,
    week_starts_on: str = "sunday",
) -> AggregationResult:
    range_start, range_end = view_range(anchor, view_mode, resolver, week_starts_on)
    return aggregate(events, specials, announcements, range_start, range_end, resolver)


def occurrence_for(occurrences: Sequence[Occurrence], source_id: str, day: Optional[date] = None) -> Optional[Occurrence]:
    """Find the occurrence a click refers to; the date picks one instance of a series."""
    for occ in occurrences:
        if occ.source_id == source_id and (day is None or occ.display_date == day):
            return occ
    return None

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union
import json

from .wallclock import ensure_aware

EVENT = "event"
SPECIAL = "special"
ANNOUNCEMENT = "announcement"

FOOD = "food"
DRINK = "drink"


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    title: str
    start_at: datetime                      # timezone-aware; the anchor for recurring events
    end_at: Optional[datetime] = None
    description: Optional[str] = None
    is_all_day: bool = False
    recurrence_rule: Optional[str] = None   # RRULE text
    exception_dates: FrozenSet[str] = frozenset()  # business-local YYYY-MM-DD
    tags: Tuple[str, ...] = ()
    is_active: bool = True
    venue_area: str = "bar"

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence_rule and self.recurrence_rule.strip())


@dataclass(frozen=True)
class CalendarSpecial:
    id: str
    title: str
    type: str = FOOD                        # "food" / "drink"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    applies_on: Tuple[str, ...] = ()        # weekday names, drink specials only
    description: Optional[str] = None
    is_active: bool = True


@dataclass(frozen=True)
class CalendarAnnouncement:
    id: str
    title: str
    publish_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    body: str = ""
    is_published: bool = False


CalendarItem = Union[CalendarEvent, CalendarSpecial, CalendarAnnouncement]


@dataclass(frozen=True)
class Occurrence:
    source_id: str
    source_type: str                        # "event" / "special" / "announcement"
    display_date: date                      # business-local day
    resolved_start_at: datetime
    resolved_end_at: Optional[datetime] = None
    item: Optional[CalendarItem] = field(default=None, compare=False, repr=False)

    @property
    def title(self) -> str:
        return self.item.title if self.item is not None else ""

    @property
    def special_type(self) -> Optional[str]:
        if isinstance(self.item, CalendarSpecial):
            return self.item.type
        return None

    def click_args(self) -> Tuple[str, Optional[date]]:
        if self.source_type == EVENT:
            return self.source_id, self.display_date
        return self.source_id, None


def parse_instant(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_aware(datetime.fromisoformat(text))


def parse_calendar_date(value: Any) -> Optional[date]:
    """Return the calendar date of a YYYY-MM-DD string or the date part of an ISO timestamp."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).split("T")[0])


def _json_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = json.loads(value)
    return [str(v) for v in value]


def event_from_record(data: Dict[str, Any]) -> CalendarEvent:
    return CalendarEvent(
        id=str(data["id"]),
        title=str(data.get("title", "")),
        description=data.get("description"),
        start_at=parse_instant(data["startDateTime"]),
        end_at=parse_instant(data.get("endDateTime")),
        is_all_day=bool(data.get("isAllDay", False)),
        recurrence_rule=data.get("recurrenceRule") or None,
        exception_dates=frozenset(_json_list(data.get("exceptions"))),
        tags=tuple(_json_list(data.get("tags"))),
        is_active=bool(data.get("isActive", True)),
        venue_area=str(data.get("venueArea") or "bar"),
    )


def special_from_record(data: Dict[str, Any]) -> CalendarSpecial:
    special_type = str(data.get("type", FOOD))
    return CalendarSpecial(
        id=str(data["id"]),
        title=str(data.get("title", "")),
        type=special_type if special_type in (FOOD, DRINK) else FOOD,
        start_date=parse_calendar_date(data.get("startDate")),
        end_date=parse_calendar_date(data.get("endDate")),
        applies_on=tuple(_json_list(data.get("appliesOn"))),
        description=data.get("description"),
        is_active=bool(data.get("isActive", True)),
    )


def announcement_from_record(data: Dict[str, Any]) -> CalendarAnnouncement:
    return CalendarAnnouncement(
        id=str(data["id"]),
        title=str(data.get("title", "")),
        body=str(data.get("body") or ""),
        publish_at=parse_instant(data.get("publishAt")),
        expires_at=parse_instant(data.get("expiresAt")),
        is_published=bool(data.get("isPublished", False)),
    )


def event_update_payload(event: CalendarEvent) -> Dict[str, Any]:
    """Body for the collaborator's event update call."""
    return {
        "title": event.title,
        "description": event.description or "",
        "startDateTime": event.start_at.isoformat(),
        "endDateTime": event.end_at.isoformat() if event.end_at else None,
        "venueArea": event.venue_area or "bar",
        "recurrenceRule": event.recurrence_rule or None,
        "isAllDay": event.is_all_day,
        "tags": list(event.tags),
        "isActive": event.is_active,
        # The update endpoint clears exceptions that are not sent back.
        "exceptions": sorted(event.exception_dates),
    }

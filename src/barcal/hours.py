from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

ALL_DAY_HOURS = list(range(24))
MAX_HOUR = 47


@dataclass(frozen=True)
class CalendarHours:
    start_hour: int     # 0-23
    end_hour: int       # 0-49, 24 and above are next-day hours


def parse_calendar_hours(raw: Any) -> Optional[CalendarHours]:
    """Read the explicit visible-hours setting; None when missing or malformed."""
    if raw is None or raw == "":
        return None
    try:
        data = json.loads(raw) if isinstance(raw, str) else raw
        start = data["startHour"]
        end = data["endHour"]
    except (ValueError, TypeError, KeyError) as e:
        logger.warning("Ignoring malformed calendar hours setting %r: %s", raw, e)
        return None
    if isinstance(start, bool) or isinstance(end, bool) or not isinstance(start, int) or not isinstance(end, int):
        logger.warning("Ignoring calendar hours setting with non-integer hours: %r", raw)
        return None
    if not 0 <= start <= 23 or not 0 <= end <= 49:
        logger.warning("Ignoring out-of-range calendar hours setting: %r", raw)
        return None
    return CalendarHours(start_hour=start, end_hour=end)


def _explicit_hours(cfg: CalendarHours) -> List[int]:
    start, end = cfg.start_hour, cfg.end_hour
    if end >= 24 or start <= end:
        return list(range(start, end + 1))
    # Wraps past midnight, e.g. 22 -> 2.
    return list(range(start, 24)) + list(range(0, end + 1))


def _parse_hour(value: Any) -> Optional[int]:
    try:
        hour = int(str(value).split(":")[0])
    except ValueError:
        return None
    return hour if 0 <= hour <= 23 else None


def _inferred_hours(business_hours: Mapping[str, Any]) -> List[int]:
    earliest_open: Optional[int] = None
    latest_close: Optional[int] = None
    for day, entry in business_hours.items():
        if not isinstance(entry, Mapping) or not entry.get("open") or not entry.get("close"):
            continue
        open_hour = _parse_hour(entry["open"])
        close_hour = _parse_hour(entry["close"])
        if open_hour is None or close_hour is None:
            logger.warning("Skipping malformed business hours for %s: %r", day, entry)
            continue
        if close_hour < open_hour:
            close_hour += 24
        earliest_open = open_hour if earliest_open is None else min(earliest_open, open_hour)
        latest_close = close_hour if latest_close is None else max(latest_close, close_hour)

    if earliest_open is None or latest_close is None:
        return []
    start = max(0, earliest_open - 2)
    end = min(MAX_HOUR, latest_close)
    # The bucket starting at the closing hour is the hour of padding after close.
    return list(range(start, end + 1))


def visible_hours(
    calendar_hours: Any = None,
    business_hours: Optional[Mapping[str, Any]] = None,
) -> List[int]:
    """Hour buckets to render for a day, in order and without duplicates.

    Explicit calendar hours win outright. Otherwise the range is inferred from
    business hours, and with nothing usable all 24 hours are shown.
    """
    explicit = calendar_hours if isinstance(calendar_hours, CalendarHours) else parse_calendar_hours(calendar_hours)
    if explicit is not None:
        hours = _explicit_hours(explicit)
    else:
        hours = _inferred_hours(_as_mapping(business_hours)) or list(ALL_DAY_HOURS)
    return list(dict.fromkeys(hours))


def _as_mapping(raw: Any) -> Dict[str, Any]:
    if not raw:
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring malformed business hours setting %r", raw)
            return {}
    return dict(raw) if isinstance(raw, Mapping) else {}

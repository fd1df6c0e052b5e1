from __future__ import annotations

import logging
import os
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .aggregate import VIEW_MODES, aggregate_view, navigate
from .config import AppConfig, load_config
from .hours import visible_hours
from .models import (
    ANNOUNCEMENT,
    SPECIAL,
    Occurrence,
    announcement_from_record,
    event_from_record,
    special_from_record,
)
from .priority import build_day_buckets
from .state import CalendarViewState, load_view_state, save_view_state
from .store import HttpRecordStore, JsonRecordStore, RecordStore, StoreError
from .wallclock import WallClockResolver

CONFIG_PATH_DEFAULT = "/etc/barcal/config.yaml"
STATE_PATH_DEFAULT = os.path.expanduser("~/.local/state/barcal/view.json")

logger = logging.getLogger(__name__)


def _fmt_time(dt: datetime) -> str:
    return dt.strftime("%-I:%M %p").lower()


def _make_store(cfg: AppConfig, records_path: str = "") -> RecordStore:
    path = records_path or cfg.store.records_path
    if path:
        return JsonRecordStore(path)
    if cfg.store.base_url:
        return HttpRecordStore(cfg.store.base_url, token=os.environ.get("BARCAL_API_TOKEN", ""))
    raise ValueError("No record source configured; set store.base_url or store.records_path, or pass --records.")


def _setting(store: RecordStore, key: str) -> Any:
    try:
        return store.get_setting(key)
    except StoreError as e:
        print(f"Could not read setting {key!r}; using configured value. Error: {e}")
        return None


def _format_occurrence(occ: Occurrence, resolver: WallClockResolver) -> str:
    if occ.source_type == SPECIAL:
        return f"[{occ.special_type} special] {occ.title}"
    if occ.source_type == ANNOUNCEMENT:
        return f"[announcement] {occ.title}"
    if getattr(occ.item, "is_all_day", False):
        return f"[all day] {occ.title}"
    start = occ.resolved_start_at.astimezone(resolver.tz)
    time_str = _fmt_time(start)
    if occ.resolved_end_at is not None:
        time_str += f"–{_fmt_time(occ.resolved_end_at.astimezone(resolver.tz))}"
    return f"{time_str}  {occ.title}"


def _format_hours(hours: List[int]) -> str:
    if not hours:
        return ""
    labels = [f"{h % 24:02d}:00" + (" (+1)" if h >= 24 else "") for h in (hours[0], hours[-1])]
    return f"{labels[0]} to {labels[1]} ({len(hours)} rows)"


def render_agenda(
    buckets: Dict[date, List[Occurrence]],
    resolver: WallClockResolver,
    hours: List[int],
    view_mode: str,
    anchor: date,
) -> List[str]:
    lines = [f"{view_mode.capitalize()} view around {anchor.strftime('%A, %B %-d, %Y')}"]
    if view_mode != "month":
        lines.append(f"Visible hours: {_format_hours(hours)}")
    for day, items in buckets.items():
        lines.append("")
        lines.append(day.strftime("%A, %B %-d"))
        for occ in items:
            lines.append(f"  {_format_occurrence(occ, resolver)}")
    return lines


def run_once(
    config_path: str = CONFIG_PATH_DEFAULT,
    state_path: str = STATE_PATH_DEFAULT,
    view_mode: Optional[str] = None,
    on_date: Optional[date] = None,
    step: int = 0,
    records_path: str = "",
) -> CalendarViewState:
    load_dotenv()
    cfg = load_config(config_path)
    store = _make_store(cfg, records_path)

    timezone_name = _setting(store, "timezone") or cfg.timezone
    resolver = WallClockResolver(timezone_name)

    state = load_view_state(state_path, resolver.today())
    if view_mode:
        state.view_mode = view_mode
    if on_date:
        state.current_date = on_date
    if step:
        state.current_date = navigate(state.current_date, state.view_mode, step)

    events = [event_from_record(r) for r in store.fetch_events()]
    specials = [special_from_record(r) for r in store.fetch_specials()]
    announcements = [announcement_from_record(r) for r in store.fetch_announcements()]
    state.events = {e.id: e for e in events}

    result = aggregate_view(
        events,
        specials,
        announcements,
        state.current_date,
        state.view_mode,
        resolver,
        cfg.calendar.week_starts_on,
    )
    state.visible = result.occurrences
    buckets = build_day_buckets(
        result.occurrences,
        state.view_mode,
        predicates=cfg.calendar.predicates(),
        policy=cfg.calendar.capacity.policy(),
    )
    hours = visible_hours(
        _setting(store, "calendarHours") or cfg.calendar.calendar_hours,
        _setting(store, "hours") or cfg.calendar.business_hours,
    )

    print(
        f"Loaded {len(events)} events, {len(specials)} specials, {len(announcements)} announcements; "
        f"{len(result.occurrences)} occurrences in view, {len(result.errors)} rule errors"
    )
    for line in render_agenda(buckets, resolver, hours, state.view_mode, state.current_date):
        print(line)

    save_view_state(state_path, state)
    return state


def main():
    import argparse

    ap = argparse.ArgumentParser(description="Print the admin calendar for a day, week, or month.")
    ap.add_argument("--config", default=CONFIG_PATH_DEFAULT)
    ap.add_argument("--state", default=STATE_PATH_DEFAULT)
    ap.add_argument("--records", default="", help="JSON export to read instead of the admin API")
    ap.add_argument("--view", choices=VIEW_MODES)
    ap.add_argument("--date", type=date.fromisoformat, help="YYYY-MM-DD in business-local time")
    ap.add_argument("--next", dest="step", action="store_const", const=1, default=0)
    ap.add_argument("--prev", dest="step", action="store_const", const=-1)
    ap.add_argument("--verbose", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_once(
        config_path=args.config,
        state_path=args.state,
        view_mode=args.view,
        on_date=args.date,
        step=args.step,
        records_path=args.records,
    )


if __name__ == "__main__":
    main()

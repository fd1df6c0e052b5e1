from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Set
import json

from .models import CalendarEvent, Occurrence


@dataclass
class DragState:
    event_id: str
    occurrence_date: Optional[date] = None
    preview_day: Optional[date] = None
    preview_hour: Optional[int] = None
    preview_minute: Optional[int] = None


@dataclass
class CalendarViewState:
    """Presentation-owned view state; the engine functions take what they need from it."""

    current_date: date
    view_mode: str = "week"
    hovered_day: Optional[date] = None
    hovered_slot: Optional[tuple] = None    # (day, hour)
    drag: Optional[DragState] = None
    events: Dict[str, CalendarEvent] = field(default_factory=dict)
    visible: List[Occurrence] = field(default_factory=list)

    def visible_source_ids(self) -> Set[str]:
        return {occ.source_id for occ in self.visible}

    def replace_event(self, event: CalendarEvent) -> None:
        self.events[event.id] = event


def load_view_state(path: str, today: date) -> CalendarViewState:
    p = Path(path)
    if not p.exists():
        return CalendarViewState(current_date=today)
    data: Dict[str, Any] = json.loads(p.read_text(encoding="utf-8"))
    try:
        current = date.fromisoformat(str(data.get("current_date", "")))
    except ValueError:
        current = today
    return CalendarViewState(
        current_date=current,
        view_mode=str(data.get("view_mode", "week")),
    )


def save_view_state(path: str, state: CalendarViewState) -> None:
    # Only navigation survives a restart; occurrences are always recomputed.
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    payload = {"current_date": state.current_date.isoformat(), "view_mode": state.view_mode}
    p.write_text(json.dumps(payload, indent=2), encoding="utf-8")

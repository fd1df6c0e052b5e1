from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import yaml

from .priority import DEFAULT_CATEGORIES, Capacity, CapacityPolicy, EventPredicate, category_predicate, is_recurring

@dataclass
class CategoryConfig:
    name: str
    keywords: List[str]

@dataclass
class CapacityConfig:
    day: Capacity
    week: Capacity
    month: Capacity

    def policy(self) -> CapacityPolicy:
        return CapacityPolicy(limits={"day": self.day, "week": self.week, "month": self.month})

@dataclass
class StoreConfig:
    base_url: str
    records_path: str

@dataclass
class CalendarConfig:
    week_starts_on: str
    capacity: CapacityConfig
    categories: List[CategoryConfig]
    recurring_first: bool
    calendar_hours: Optional[Dict[str, Any]] = None
    business_hours: Dict[str, Any] = field(default_factory=dict)

    def predicates(self) -> List[EventPredicate]:
        predicates = [category_predicate(c.name, c.keywords) for c in self.categories]
        if self.recurring_first:
            predicates.append(is_recurring)
        return predicates

@dataclass
class AppConfig:
    timezone: str
    calendar: CalendarConfig
    store: StoreConfig

def _capacity(data: Dict[str, Any], announcements: int, events: int) -> Capacity:
    return Capacity(
        announcements=int(data.get("announcements", announcements)),
        events=int(data.get("events", events)),
    )

def _categories(raw: Any) -> List[CategoryConfig]:
    if raw is None:
        return [CategoryConfig(name=name, keywords=list(keywords)) for name, keywords in DEFAULT_CATEGORIES]
    categories = []
    for entry in raw:
        if isinstance(entry, str):
            categories.append(CategoryConfig(name=entry, keywords=[entry]))
        else:
            name = str(entry["name"])
            categories.append(CategoryConfig(name=name, keywords=[str(k) for k in entry.get("keywords", [name])]))
    return categories

def load_config(path: str) -> AppConfig:
    p = Path(path)
    data: Dict[str, Any] = {}
    if p.exists():
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}

    capacity = data.get("capacity") or {}
    store = data.get("store") or {}
    week_starts_on = str(data.get("week_starts_on", "sunday")).lower()
    if week_starts_on not in ("sunday", "monday"):
        raise ValueError(f"week_starts_on must be 'sunday' or 'monday', got {week_starts_on!r}")

    return AppConfig(
        timezone=data.get("timezone", "America/Denver"),
        calendar=CalendarConfig(
            week_starts_on=week_starts_on,
            capacity=CapacityConfig(
                day=_capacity(capacity.get("day") or {}, 5, 10),
                week=_capacity(capacity.get("week") or {}, 5, 10),
                month=_capacity(capacity.get("month") or {}, 2, 2),
            ),
            categories=_categories(data.get("categories")),
            recurring_first=bool(data.get("recurring_first", True)),
            calendar_hours=data.get("calendar_hours"),
            business_hours=dict(data.get("business_hours") or {}),
        ),
        store=StoreConfig(
            base_url=str(store.get("base_url", "")),
            records_path=str(store.get("records_path", "")),
        ),
    )

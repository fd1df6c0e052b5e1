from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence

from .aggregate import DAY, MONTH, WEEK
from .models import ANNOUNCEMENT, DRINK, EVENT, FOOD, SPECIAL, CalendarEvent, Occurrence

EventPredicate = Callable[[Occurrence], bool]


@dataclass(frozen=True)
class Capacity:
    announcements: int
    events: int


@dataclass
class CapacityPolicy:
    limits: Dict[str, Capacity] = field(
        default_factory=lambda: {
            DAY: Capacity(announcements=5, events=10),
            WEEK: Capacity(announcements=5, events=10),
            MONTH: Capacity(announcements=2, events=2),
        }
    )

    def for_view(self, view_mode: str) -> Capacity:
        try:
            return self.limits[view_mode]
        except KeyError:
            raise ValueError(f"Unknown view mode: {view_mode!r}") from None


def _normalize(value: str) -> str:
    return " ".join(value.strip().lower().split())


def category_predicate(name: str, keywords: Sequence[str] = ()) -> EventPredicate:
    """Match events tagged with the category; untagged records fall back to title keywords."""
    category = _normalize(name)
    words = [_normalize(k) for k in (keywords or [name]) if k.strip()]

    def matches(occ: Occurrence) -> bool:
        event = occ.item
        if not isinstance(event, CalendarEvent):
            return False
        if event.tags:
            return category in {_normalize(t) for t in event.tags}
        title = _normalize(event.title)
        return any(word in title for word in words)

    matches.__name__ = f"category_{category.replace(' ', '_')}"
    return matches


def is_recurring(occ: Occurrence) -> bool:
    return isinstance(occ.item, CalendarEvent) and occ.item.is_recurring


DEFAULT_CATEGORIES = [
    ("broncos", ["broncos"]),
    ("poker", ["poker"]),
    ("karaoke", ["karaoke", "kareoke"]),
]


def default_predicates() -> List[EventPredicate]:
    predicates = [category_predicate(name, keywords) for name, keywords in DEFAULT_CATEGORIES]
    predicates.append(is_recurring)
    return predicates


def order_events(occurrences: Sequence[Occurrence], predicates: Sequence[EventPredicate]) -> List[Occurrence]:
    # Earlier predicates dominate; sorted() is stable so ties keep input order.
    return sorted(occurrences, key=lambda occ: tuple(0 if p(occ) else 1 for p in predicates))


def limit_day(
    occurrences: Sequence[Occurrence],
    view_mode: str,
    predicates: Optional[Sequence[EventPredicate]] = None,
    policy: Optional[CapacityPolicy] = None,
) -> List[Occurrence]:
    """Pick what one day cell shows: one food special, one drink special, capped announcements and events."""
    capacity = (policy or CapacityPolicy()).for_view(view_mode)
    if predicates is None:
        predicates = default_predicates()

    food = [o for o in occurrences if o.source_type == SPECIAL and o.special_type == FOOD]
    drink = [o for o in occurrences if o.source_type == SPECIAL and o.special_type == DRINK]
    announcements = [o for o in occurrences if o.source_type == ANNOUNCEMENT]
    events = [o for o in occurrences if o.source_type == EVENT]

    selected: List[Occurrence] = []
    selected.extend(food[:1])
    selected.extend(drink[:1])
    selected.extend(announcements[: capacity.announcements])
    selected.extend(order_events(events, predicates)[: capacity.events])
    return selected


def bucket_by_day(occurrences: Sequence[Occurrence]) -> "OrderedDict[date, List[Occurrence]]":
    buckets: "OrderedDict[date, List[Occurrence]]" = OrderedDict()
    for occ in occurrences:
        buckets.setdefault(occ.display_date, []).append(occ)
    return buckets


def build_day_buckets(
    occurrences: Sequence[Occurrence],
    view_mode: str,
    predicates: Optional[Sequence[EventPredicate]] = None,
    policy: Optional[CapacityPolicy] = None,
) -> "OrderedDict[date, List[Occurrence]]":
    limited: "OrderedDict[date, List[Occurrence]]" = OrderedDict()
    for day, items in bucket_by_day(occurrences).items():
        limited[day] = limit_day(items, view_mode, predicates, policy)
    return limited

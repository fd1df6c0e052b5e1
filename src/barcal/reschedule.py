from __future__ import annotations

import asyncio
import dataclasses
import itertools
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Optional

from .models import CalendarEvent, event_update_payload, parse_instant
from .state import CalendarViewState
from .store import RecordStore, StoreError
from .wallclock import WallClockResolver

logger = logging.getLogger(__name__)

DEFAULT_DURATION = timedelta(hours=1)
SNAP_MINUTES = 30
LAST_SLOT_MINUTES = 23 * 60 + SNAP_MINUTES


class RescheduleError(ValueError):
    pass


@dataclass(frozen=True)
class RescheduleProposal:
    event_id: str
    start_at: datetime
    end_at: datetime
    event: CalendarEvent        # the event with only start/end changed

    def payload(self) -> Dict[str, Any]:
        return event_update_payload(self.event)


def snap_minute(minute: int) -> int:
    """Round to the nearest half hour; 60 means the top of the next hour."""
    return ((minute + SNAP_MINUTES // 2) // SNAP_MINUTES) * SNAP_MINUTES


def _slot_offset(hour: int, minute: int) -> timedelta:
    # The last slot of the day is 23:30; a drop never lands on the next day.
    total = max(0, min(23, hour)) * 60 + snap_minute(max(0, min(59, minute)))
    return timedelta(minutes=min(total, LAST_SLOT_MINUTES))


def plan_reschedule(
    event: CalendarEvent,
    target_day: date,
    target_hour: int,
    target_minute: int,
    resolver: WallClockResolver,
) -> RescheduleProposal:
    if event.is_all_day:
        raise RescheduleError(f"All-day event {event.id} cannot be moved to a time slot")
    duration = (event.end_at - event.start_at) if event.end_at else DEFAULT_DURATION

    local = datetime.combine(target_day, datetime.min.time()) + _slot_offset(target_hour, target_minute)
    new_start = resolver.from_naive(local)
    new_end = new_start + duration
    moved = dataclasses.replace(event, start_at=new_start, end_at=new_end)
    return RescheduleProposal(event_id=event.id, start_at=new_start, end_at=new_end, event=moved)


Notifier = Callable[[str], None]


class RescheduleCommitter:
    """Applies a drag result to the view immediately, then persists it.

    A failed save is reported through the notifier and the optimistic change stays
    in place. A save that finishes after its event has left the view, or after a
    newer drag of the same event, is dropped.
    """

    def __init__(
        self,
        state: CalendarViewState,
        store: RecordStore,
        resolver: WallClockResolver,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.state = state
        self.store = store
        self.resolver = resolver
        self.notifier = notifier or (lambda message: None)
        self._requests = itertools.count(1)
        self._latest: Dict[str, int] = {}

    def apply_optimistic(self, proposal: RescheduleProposal) -> int:
        """Show the proposal now; returns the request id that owns the event until the next drag."""
        self.state.replace_event(proposal.event)
        self.state.drag = None
        request_id = next(self._requests)
        self._latest[proposal.event_id] = request_id
        return request_id

    def is_current(self, event_id: str, request_id: int) -> bool:
        return self._latest.get(event_id) == request_id

    async def commit(
        self,
        event: CalendarEvent,
        target_day: date,
        target_hour: int,
        target_minute: int,
    ) -> Optional[CalendarEvent]:
        proposal = plan_reschedule(event, target_day, target_hour, target_minute, self.resolver)
        request_id = self.apply_optimistic(proposal)

        try:
            updated = await asyncio.to_thread(self.store.update_event, proposal.event_id, proposal.payload())
        except StoreError as e:
            logger.error("Failed to update event %s: %s", proposal.event_id, e)
            self.notifier(f"Could not save the new time for '{event.title}'.")
            return None

        if not self.is_current(proposal.event_id, request_id):
            logger.info("Dropping update %d for event %s; a newer move replaced it", request_id, proposal.event_id)
            return None

        if proposal.event_id not in self.state.visible_source_ids():
            logger.info("Dropping update for event %s; it is no longer in view", proposal.event_id)
            return None

        current = self.state.events.get(proposal.event_id, proposal.event)
        confirmed = dataclasses.replace(
            current,
            start_at=parse_instant(updated.get("startDateTime")) or proposal.start_at,
            end_at=parse_instant(updated.get("endDateTime")) or proposal.end_at,
        )
        self.state.replace_event(confirmed)
        return confirmed

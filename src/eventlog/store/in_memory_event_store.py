from threading import Lock
from typing import Dict, List, Optional, Sequence

from src.eventlog.domain.event import Event, EventSlot
from src.eventlog.interfaces.event_store import EventStore


class InMemoryEventStore(EventStore):
    """
    In-memory slot log keyed by event id. Reads come back in slot order.
    """

    def __init__(self):
        self._slots: Dict[int, EventSlot] = {}
        self._lock = Lock()

    def find_event_by_id(self, event_id: int) -> Optional[Event]:
        with self._lock:
            slot = self._slots.get(event_id)
            if slot is None:
                return None
            return slot.visible()

    def get_all_events(self) -> List[Event]:
        with self._lock:
            return [slot.visible() for slot in self._ordered()]

    def get_events_by_flag(self, flag: int) -> List[Event]:
        with self._lock:
            return [slot.event for slot in self._ordered() if slot.matches_flag(flag)]

    def register_new_events(self, events: Sequence[Event]) -> int:
        registered = 0
        with self._lock:
            for event in events:
                if event.id == 0:
                    event = event.with_id(max(self._slots, default=0) + 1)
                elif event.id in self._slots:
                    continue
                self._slots[event.id] = EventSlot(event)
                registered += 1
        return registered

    def delete_by_id(self, event_id: int) -> int:
        with self._lock:
            slot = self._slots.get(event_id)
            if slot is None or not slot.is_active:
                return 0
            self._slots[event_id] = slot.deleted()
            return 1

    def delete_by_flag(self, flag: int) -> int:
        with self._lock:
            matching = [slot for slot in self._slots.values() if slot.matches_flag(flag)]
            for slot in matching:
                self._slots[slot.id] = slot.deleted()
            return len(matching)

    def _ordered(self) -> List[EventSlot]:
        return [self._slots[event_id] for event_id in sorted(self._slots)]

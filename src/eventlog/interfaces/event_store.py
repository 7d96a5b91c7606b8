from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from src.eventlog.domain.event import Event


class EventStore(ABC):
    """
    Slot-indexed event log.

    Every mutating call returns the number of slots it created or
    tombstoned. Deleting never frees a slot: the id stays occupied and
    reads back as the tombstone event.
    Implementations must keep each call atomic under concurrent callers
    and raise EventStoreError on storage failure.
    """

    @abstractmethod
    def find_event_by_id(self, event_id: int) -> Optional[Event]:
        """
        Event occupying the slot (tombstone included), or None when the id
        was never registered.
        """
        pass

    def get_event_by_id(self, event_id: int) -> Event:
        event = self.find_event_by_id(event_id)
        if event is None:
            return Event.empty()
        return event

    @abstractmethod
    def get_all_events(self) -> List[Event]:
        pass

    @abstractmethod
    def get_events_by_flag(self, flag: int) -> List[Event]:
        """
        Active events carrying `flag`, in storage order. Tombstones never match.
        """
        pass

    @abstractmethod
    def register_new_events(self, events: Sequence[Event]) -> int:
        """
        Persist already validated events. Events with id 0 get the next
        free slot; an id that already occupies a slot is skipped.
        """
        pass

    @abstractmethod
    def delete_by_id(self, event_id: int) -> int:
        pass

    @abstractmethod
    def delete_by_flag(self, flag: int) -> int:
        pass

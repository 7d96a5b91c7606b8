from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Tuple

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

TOMBSTONE_FLAG = -1
TOMBSTONE_DATA = "{}"

# Slot ids and flags are stored as signed 64-bit integers.
SLOT_ID_MIN = -2 ** 63
SLOT_ID_MAX = 2 ** 63 - 1


def in_slot_range(value: int) -> bool:
    return SLOT_ID_MIN <= value <= SLOT_ID_MAX


class SlotState(Enum):
    ACTIVE = "active"
    DELETED = "deleted"


@dataclass(frozen=True)
class Event:
    """
    A flagged event as stored in the log.
    `data` is opaque to the store; `flags` keep the order they were sent in.
    """
    id: int
    timestamp: datetime
    flags: Tuple[int, ...] = field(default_factory=tuple)
    data: str = ""

    @classmethod
    def empty(cls) -> "Event":
        """All-default value returned by lookups that miss."""
        return cls(id=0, timestamp=EPOCH, flags=(), data="")

    @classmethod
    def tombstone(cls, event_id: int) -> "Event":
        """Neutral value observed in place of a deleted event."""
        return cls(id=event_id, timestamp=EPOCH, flags=(TOMBSTONE_FLAG,), data=TOMBSTONE_DATA)

    def is_empty(self) -> bool:
        return self == Event.empty()

    def has_flag(self, flag: int) -> bool:
        return flag in self.flags

    def with_id(self, event_id: int) -> "Event":
        return Event(id=event_id, timestamp=self.timestamp, flags=self.flags, data=self.data)


@dataclass(frozen=True)
class EventSlot:
    """
    One storage position. The state tag, not the event fields, says whether
    the slot has been deleted; a deleted slot keeps its id forever.
    """
    event: Event
    state: SlotState = SlotState.ACTIVE

    @property
    def id(self) -> int:
        return self.event.id

    @property
    def is_active(self) -> bool:
        return self.state is SlotState.ACTIVE

    def visible(self) -> Event:
        if self.is_active:
            return self.event
        return Event.tombstone(self.event.id)

    def deleted(self) -> "EventSlot":
        return EventSlot(event=self.event, state=SlotState.DELETED)

    def matches_flag(self, flag: int) -> bool:
        return self.is_active and self.event.has_flag(flag)

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Where the event log reads "now" from. The validator stamps unset
    event timestamps with it and the structured logger dates its lines.
    """
    @abstractmethod
    def now(self) -> datetime:
        pass


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock(Clock):
    """
    Pinned to one UTC-aware instant; `advance` moves it forward.
    """
    def __init__(self, pinned: datetime):
        if pinned.tzinfo is None:
            raise ValueError("FrozenClock needs a timezone-aware instant")
        self._pinned = pinned

    def now(self) -> datetime:
        return self._pinned

    def advance(self, delta: timedelta) -> None:
        self._pinned = self._pinned + delta

from datetime import datetime, timezone
from typing import List, Optional, Sequence

from src.eventlog.domain.candidate_event import CandidateEvent
from src.eventlog.domain.event import EPOCH, Event
from src.eventlog.time.clock import Clock

# Zero value JSON clients send for an unset time.
ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


class EventValidator:
    """
    Filters a submitted batch down to storable events.

    Candidates without data or without flags are dropped silently.
    Survivors with no timestamp are stamped with the clock's time at
    validation. Order is preserved.
    """

    def __init__(self, clock: Clock):
        self.clock = clock

    def validate(self, batch: Sequence[CandidateEvent]) -> List[Event]:
        now = self.clock.now()
        accepted: List[Event] = []

        for candidate in batch:
            if not self.is_acceptable(candidate):
                continue
            timestamp = self._normalize_timestamp(candidate.timestamp)
            accepted.append(
                Event(
                    id=candidate.id,
                    timestamp=timestamp if timestamp is not None else now,
                    flags=tuple(candidate.flags),
                    data=candidate.data,
                )
            )

        return accepted

    @staticmethod
    def is_acceptable(candidate: CandidateEvent) -> bool:
        return bool(candidate.data) and len(candidate.flags) > 0

    @staticmethod
    def _normalize_timestamp(value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        if value in (EPOCH, ZERO_TIME):
            return None
        return value

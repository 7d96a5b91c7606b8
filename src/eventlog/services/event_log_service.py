from typing import List, Optional, Sequence

from src.eventlog.domain.candidate_event import CandidateEvent
from src.eventlog.domain.event import Event
from src.eventlog.interfaces.event_store import EventStore
from src.eventlog.logging.structured_event_logger import StructuredEventLogger
from src.eventlog.services.event_validator import EventValidator


class EventLogService:
    """
    Application facade over the store: submission goes
    validator -> store, queries and deletes go straight to the store.
    Storage errors propagate to the caller untouched.
    """

    def __init__(
        self,
        store: EventStore,
        validator: EventValidator,
        logger: Optional[StructuredEventLogger] = None,
    ):
        self.store = store
        self.validator = validator
        self.logger = logger or StructuredEventLogger()

    def get_event(self, event_id: int) -> Optional[Event]:
        return self.store.find_event_by_id(event_id)

    def list_events(self) -> List[Event]:
        return self.store.get_all_events()

    def list_events_by_flag(self, flag: int) -> List[Event]:
        return self.store.get_events_by_flag(flag)

    def register_events(self, candidates: Sequence[CandidateEvent]) -> int:
        events = self.validator.validate(candidates)
        affected = self.store.register_new_events(events)
        self.logger.emit(
            event_type="EVENTS_REGISTERED",
            submitted=len(candidates),
            valid=len(events),
            rejected=len(candidates) - len(events),
            affected=affected,
        )
        return affected

    def delete_event(self, event_id: int) -> int:
        affected = self.store.delete_by_id(event_id)
        self.logger.emit(event_type="EVENT_DELETED", event_id=event_id, affected=affected)
        return affected

    def delete_events_by_flag(self, flag: int) -> int:
        affected = self.store.delete_by_flag(flag)
        self.logger.emit(event_type="EVENTS_DELETED_BY_FLAG", flag=flag, affected=affected)
        return affected

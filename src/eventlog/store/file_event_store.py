import json
import os
import tempfile
from threading import Lock
from typing import Dict, List, Optional, Sequence

from src.eventlog.domain.event import Event, EventSlot, SlotState
from src.eventlog.domain.exceptions import EventStoreError
from src.eventlog.interfaces.event_store import EventStore
from src.eventlog.serialization import deserialize_event, serialize_event


class FileEventStore(EventStore):
    """
    JSON-lines event log: one line per slot.
    Registration appends lines; deletion rewrites the slot's line in place
    through a temp file so a crash never leaves a half-written log.
    """

    def __init__(self, file_path: str):
        self.file_path = file_path
        self._lock = Lock()
        directory = os.path.dirname(file_path)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            if not os.path.exists(file_path):
                with open(file_path, "w", encoding="utf-8") as f:
                    f.write("")
        except OSError as exc:
            raise EventStoreError(f"cannot open event log {file_path}: {exc}") from exc

    def find_event_by_id(self, event_id: int) -> Optional[Event]:
        with self._lock:
            for slot in self._read_slots():
                if slot.id == event_id:
                    return slot.visible()
        return None

    def get_all_events(self) -> List[Event]:
        with self._lock:
            return [slot.visible() for slot in self._ordered(self._read_slots())]

    def get_events_by_flag(self, flag: int) -> List[Event]:
        with self._lock:
            slots = self._ordered(self._read_slots())
        return [slot.event for slot in slots if slot.matches_flag(flag)]

    def register_new_events(self, events: Sequence[Event]) -> int:
        if not events:
            return 0
        with self._lock:
            taken = {slot.id for slot in self._read_slots()}
            lines = []
            for event in events:
                if event.id == 0:
                    event = event.with_id(max(taken, default=0) + 1)
                elif event.id in taken:
                    continue
                taken.add(event.id)
                lines.append(self._encode(EventSlot(event)))
            try:
                with open(self.file_path, "a", encoding="utf-8") as f:
                    for line in lines:
                        f.write(line + "\n")
            except OSError as exc:
                raise EventStoreError(f"cannot append to event log: {exc}") from exc
            return len(lines)

    def delete_by_id(self, event_id: int) -> int:
        with self._lock:
            slots = self._read_slots()
            for position, slot in enumerate(slots):
                if slot.id == event_id:
                    if not slot.is_active:
                        return 0
                    slots[position] = slot.deleted()
                    self._rewrite(slots)
                    return 1
            return 0

    def delete_by_flag(self, flag: int) -> int:
        with self._lock:
            slots = self._read_slots()
            deleted = 0
            for position, slot in enumerate(slots):
                if slot.matches_flag(flag):
                    slots[position] = slot.deleted()
                    deleted += 1
            if deleted:
                self._rewrite(slots)
            return deleted

    @staticmethod
    def _ordered(slots: List[EventSlot]) -> List[EventSlot]:
        return sorted(slots, key=lambda slot: slot.id)

    @staticmethod
    def _encode(slot: EventSlot) -> str:
        record = serialize_event(slot.event)
        record["state"] = slot.state.value
        return json.dumps(record, ensure_ascii=False)

    @staticmethod
    def _decode(record: Dict) -> EventSlot:
        return EventSlot(
            event=deserialize_event(record),
            state=SlotState(record.get("state", SlotState.ACTIVE.value)),
        )

    def _read_slots(self) -> List[EventSlot]:
        slots = []
        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                for number, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    try:
                        slots.append(self._decode(json.loads(line)))
                    except (ValueError, KeyError) as exc:
                        raise EventStoreError(
                            f"corrupt slot on line {number} of {self.file_path}: {exc}"
                        ) from exc
        except OSError as exc:
            raise EventStoreError(f"cannot read event log: {exc}") from exc
        return slots

    def _rewrite(self, slots: List[EventSlot]) -> None:
        directory = os.path.dirname(os.path.abspath(self.file_path))
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".events-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    for slot in slots:
                        f.write(self._encode(slot) + "\n")
                os.replace(tmp_path, self.file_path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as exc:
            raise EventStoreError(f"cannot rewrite event log: {exc}") from exc

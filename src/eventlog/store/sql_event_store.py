from datetime import timezone
from threading import Lock
from typing import List, Optional, Sequence

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    func,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from src.eventlog.domain.event import Event, EventSlot, SlotState, in_slot_range
from src.eventlog.domain.exceptions import EventStoreError
from src.eventlog.interfaces.event_store import EventStore

metadata = MetaData()

events_table = Table(
    "events",
    metadata,
    Column("id", BigInteger, primary_key=True, autoincrement=False),
    Column("occurred_at", DateTime(timezone=True), nullable=False),
    Column("flags", JSON, nullable=False),
    Column("data", Text, nullable=False),
    Column("state", String(16), nullable=False, default=SlotState.ACTIVE.value),
)


class SqlEventStore(EventStore):
    """
    Event log on a SQL table. The `id` column is the slot; deleting flips
    `state` and leaves the row in place.
    Flag membership is evaluated in Python so the same code runs on
    PostgreSQL and SQLite.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        # Serializes writers within this process; the conditional UPDATE in
        # _tombstone covers writers in other processes.
        self._write_lock = Lock()
        self.ensure_schema()

    @classmethod
    def from_dsn(cls, dsn: str) -> "SqlEventStore":
        engine = create_engine(dsn, pool_pre_ping=True, future=True)
        return cls(engine)

    def ensure_schema(self) -> None:
        try:
            metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise EventStoreError(f"cannot prepare events table: {exc}") from exc

    def find_event_by_id(self, event_id: int) -> Optional[Event]:
        if not in_slot_range(event_id):
            return None
        try:
            with self.engine.begin() as conn:
                row = conn.execute(
                    select(events_table).where(events_table.c.id == event_id)
                ).first()
        except SQLAlchemyError as exc:
            raise EventStoreError(f"lookup of event {event_id} failed: {exc}") from exc
        if row is None:
            return None
        return self._row_to_slot(row).visible()

    def get_all_events(self) -> List[Event]:
        return [slot.visible() for slot in self._load_slots()]

    def get_events_by_flag(self, flag: int) -> List[Event]:
        return [slot.event for slot in self._load_slots(active_only=True) if slot.matches_flag(flag)]

    def register_new_events(self, events: Sequence[Event]) -> int:
        if not events:
            return 0
        registered = 0
        try:
            with self._write_lock, self.engine.begin() as conn:
                next_id = self._max_id(conn) + 1
                for event in events:
                    if event.id == 0:
                        event = event.with_id(next_id)
                    elif not in_slot_range(event.id) or self._slot_exists(conn, event.id):
                        continue
                    conn.execute(
                        events_table.insert().values(
                            id=event.id,
                            occurred_at=event.timestamp.astimezone(timezone.utc),
                            flags=list(event.flags),
                            data=event.data,
                            state=SlotState.ACTIVE.value,
                        )
                    )
                    next_id = max(next_id, event.id + 1)
                    registered += 1
        except SQLAlchemyError as exc:
            raise EventStoreError(f"event registration failed: {exc}") from exc
        return registered

    def delete_by_id(self, event_id: int) -> int:
        if not in_slot_range(event_id):
            return 0
        try:
            with self._write_lock, self.engine.begin() as conn:
                return self._tombstone(conn, event_id)
        except SQLAlchemyError as exc:
            raise EventStoreError(f"delete of event {event_id} failed: {exc}") from exc

    def delete_by_flag(self, flag: int) -> int:
        deleted = 0
        try:
            with self._write_lock, self.engine.begin() as conn:
                rows = conn.execute(
                    select(events_table)
                    .where(events_table.c.state == SlotState.ACTIVE.value)
                    .order_by(events_table.c.id)
                ).fetchall()
                for row in rows:
                    slot = self._row_to_slot(row)
                    if slot.matches_flag(flag):
                        deleted += self._tombstone(conn, slot.id)
        except SQLAlchemyError as exc:
            raise EventStoreError(f"delete of flag {flag} failed: {exc}") from exc
        return deleted

    def _tombstone(self, conn: Connection, event_id: int) -> int:
        # Conditional on state so a concurrent delete of the same slot counts once.
        result = conn.execute(
            update(events_table)
            .where(events_table.c.id == event_id)
            .where(events_table.c.state == SlotState.ACTIVE.value)
            .values(state=SlotState.DELETED.value)
        )
        return int(result.rowcount or 0)

    def _load_slots(self, active_only: bool = False) -> List[EventSlot]:
        query = select(events_table).order_by(events_table.c.id)
        if active_only:
            query = query.where(events_table.c.state == SlotState.ACTIVE.value)
        try:
            with self.engine.begin() as conn:
                rows = conn.execute(query).fetchall()
        except SQLAlchemyError as exc:
            raise EventStoreError(f"listing events failed: {exc}") from exc
        return [self._row_to_slot(row) for row in rows]

    @staticmethod
    def _max_id(conn: Connection) -> int:
        value = conn.execute(select(func.max(events_table.c.id))).scalar()
        return int(value or 0)

    @staticmethod
    def _slot_exists(conn: Connection, event_id: int) -> bool:
        row = conn.execute(
            select(events_table.c.id).where(events_table.c.id == event_id)
        ).first()
        return row is not None

    @staticmethod
    def _row_to_slot(row) -> EventSlot:
        occurred_at = row.occurred_at
        # SQLite hands back naive datetimes
        if occurred_at.tzinfo is None:
            occurred_at = occurred_at.replace(tzinfo=timezone.utc)
        event = Event(
            id=int(row.id),
            timestamp=occurred_at,
            flags=tuple(int(flag) for flag in (row.flags or [])),
            data=row.data,
        )
        return EventSlot(event=event, state=SlotState(row.state))

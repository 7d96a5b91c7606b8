from typing import Optional

from fastapi import FastAPI
import uvicorn

from src.config.settings import Settings, settings as default_settings
from src.eventlog.api.event_api import create_app
from src.eventlog.interfaces.event_store import EventStore
from src.eventlog.logging.structured_event_logger import StructuredEventLogger, configure_logging
from src.eventlog.services.event_log_service import EventLogService
from src.eventlog.services.event_validator import EventValidator
from src.eventlog.store.file_event_store import FileEventStore
from src.eventlog.store.in_memory_event_store import InMemoryEventStore
from src.eventlog.store.sql_event_store import SqlEventStore
from src.eventlog.time.clock import Clock, SystemClock


def build_event_store(config: Settings) -> EventStore:
    backend = config.EVENT_STORE_BACKEND.strip().lower()
    if backend == "memory":
        return InMemoryEventStore()
    if backend == "file":
        return FileEventStore(config.EVENT_LOG_PATH)
    if backend == "sql":
        return SqlEventStore.from_dsn(config.DATABASE_URL)
    raise ValueError(f"Unknown EVENT_STORE_BACKEND: {config.EVENT_STORE_BACKEND!r}")


def build_service(
    store: EventStore,
    clock: Optional[Clock] = None,
    logger: Optional[StructuredEventLogger] = None,
) -> EventLogService:
    clock = clock or SystemClock()
    return EventLogService(
        store=store,
        validator=EventValidator(clock),
        logger=logger or StructuredEventLogger(clock=clock),
    )


def build_app(config: Optional[Settings] = None) -> FastAPI:
    config = config or default_settings
    configure_logging(config.LOG_LEVEL)
    service = build_service(build_event_store(config))
    return create_app(service)


def run_server(config: Optional[Settings] = None) -> None:
    config = config or default_settings
    uvicorn.run(build_app(config), host=config.API_HOST, port=config.API_PORT)

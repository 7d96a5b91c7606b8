import json
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Path, Request
from fastapi.responses import JSONResponse
from fastapi.concurrency import run_in_threadpool

from src.eventlog.domain.candidate_event import CandidateEvent
from src.eventlog.domain.event import SLOT_ID_MAX, SLOT_ID_MIN
from src.eventlog.domain.exceptions import EventStoreError
from src.eventlog.logging.structured_event_logger import StructuredEventLogger
from src.eventlog.serialization import deserialize_candidate, serialize_event, serialize_events
from src.eventlog.services.event_log_service import EventLogService

AFFECTED_LINES_KEY = "affectedlines"


def _slot_param():
    return Path(..., ge=SLOT_ID_MIN, le=SLOT_ID_MAX)


def _affected(count: int) -> Dict[str, int]:
    return {AFFECTED_LINES_KEY: count}


def read_candidates(raw_body: bytes, logger: Optional[StructuredEventLogger] = None) -> List[CandidateEvent]:
    """
    Decode a submitted batch. An unreadable body is an empty batch and an
    unreadable item is dropped, like any other invalid candidate.
    """
    try:
        payload = json.loads(raw_body or b"[]")
    except ValueError:
        if logger:
            logger.emit(event_type="EVENT_BATCH_UNREADABLE", reason="invalid_json")
        return []
    if not isinstance(payload, list):
        if logger:
            logger.emit(event_type="EVENT_BATCH_UNREADABLE", reason="not_an_array")
        return []

    candidates: List[CandidateEvent] = []
    for item in payload:
        try:
            candidates.append(deserialize_candidate(item))
        except ValueError:
            continue
    return candidates


def build_event_router(service: EventLogService, logger: Optional[StructuredEventLogger] = None) -> APIRouter:
    router = APIRouter(prefix="/events", tags=["events"])
    log = logger or service.logger

    def _call(operation, *args: Any):
        try:
            return operation(*args)
        except EventStoreError as exc:
            log.error(event_type="EVENT_STORE_FAILURE", operation=operation.__name__, error=str(exc))
            raise HTTPException(status_code=503, detail="event store unavailable")

    @router.get("")
    def get_all_events():
        return serialize_events(_call(service.list_events))

    @router.get("/getFlag/{flag}")
    def get_events_by_flag(flag: int = _slot_param()):
        events = _call(service.list_events_by_flag, flag)
        if not events:
            raise HTTPException(status_code=404, detail="No event with this flag")
        return serialize_events(events)

    @router.get("/{event_id}")
    def get_event(event_id: int = _slot_param()):
        event = _call(service.get_event, event_id)
        if event is None:
            raise HTTPException(status_code=404, detail="Event not found")
        return serialize_event(event)

    @router.post("")
    async def register_events(request: Request):
        candidates = read_candidates(await request.body(), log)
        # store calls block
        affected = await run_in_threadpool(_call, service.register_events, candidates)
        return _affected(affected)

    @router.delete("/deleteflag/{flag}")
    def delete_events_by_flag(flag: int = _slot_param()):
        return _affected(_call(service.delete_events_by_flag, flag))

    @router.delete("/{event_id}")
    def delete_event(event_id: int = _slot_param()):
        return _affected(_call(service.delete_event, event_id))

    return router


def create_app(service: EventLogService, logger: Optional[StructuredEventLogger] = None) -> FastAPI:
    app = FastAPI(title="eventlog", default_response_class=JSONResponse)
    app.include_router(build_event_router(service, logger))
    return app

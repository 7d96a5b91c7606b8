import json
from datetime import datetime, timezone

import pytest

fastapi = pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

from src.eventlog.api.event_api import create_app, read_candidates
from src.eventlog.domain.event import Event
from src.eventlog.domain.exceptions import EventStoreError
from src.eventlog.services.event_log_service import EventLogService
from src.eventlog.services.event_validator import EventValidator
from src.eventlog.store.in_memory_event_store import InMemoryEventStore
from src.eventlog.store.sql_event_store import SqlEventStore
from src.eventlog.tests.test_event_store_contract import sqlite_engine
from src.eventlog.time.clock import FrozenClock

FIXED_NOW = datetime(2020, 1, 1, tzinfo=timezone.utc)
T1 = datetime(2020, 11, 11, 15, 4, 55, tzinfo=timezone.utc)


class _BrokenStore(InMemoryEventStore):
    def find_event_by_id(self, event_id):
        raise EventStoreError("connection refused")

    def get_all_events(self):
        raise EventStoreError("connection refused")

    def register_new_events(self, events):
        raise EventStoreError("connection refused")

    def delete_by_id(self, event_id):
        raise EventStoreError("connection refused")


def _client(store=None):
    store = store if store is not None else InMemoryEventStore()
    service = EventLogService(store, EventValidator(FrozenClock(FIXED_NOW)))
    return TestClient(create_app(service)), store


def _seeded():
    client, store = _client()
    store.register_new_events([
        Event(id=1, timestamp=T1, flags=(7, 5), data='{"location":"FR"}'),
        Event(id=2, timestamp=T1, flags=(15, 2, 8), data='{"Age":32}'),
        Event(id=3, timestamp=T1, flags=(1,), data='{"ip":"127.0.0.1"}'),
    ])
    return client, store


def test_get_event_by_id():
    client, _ = _seeded()

    response = client.get("/events/1")

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/json"
    assert response.json() == {
        "id": 1,
        "timestamp": "2020-11-11T15:04:55Z",
        "flags": [7, 5],
        "data": '{"location":"FR"}',
    }


def test_get_unknown_id_is_404():
    client, _ = _seeded()
    assert client.get("/events/5").status_code == 404


def test_non_numeric_ids_are_422():
    client, _ = _seeded()

    assert client.get("/events/aaa").status_code == 422
    assert client.delete("/events/aaa").status_code == 422
    assert client.get("/events/getFlag/aaa").status_code == 422
    assert client.delete("/events/deleteflag/aaa").status_code == 422


def test_get_all_events():
    client, _ = _seeded()

    response = client.get("/events")

    assert response.status_code == 200
    assert [e["id"] for e in response.json()] == [1, 2, 3]


def test_get_all_events_empty_store_is_ok():
    client, _ = _client()

    response = client.get("/events")

    assert response.status_code == 200
    assert response.json() == []


def test_get_by_flag():
    client, _ = _seeded()

    found = client.get("/events/getFlag/8")
    missing = client.get("/events/getFlag/9")

    assert found.status_code == 200
    assert [e["id"] for e in found.json()] == [2]
    assert missing.status_code == 404


def test_post_counts_only_valid_events_and_stamps_time():
    client, store = _client()
    batch = [
        {"flags": [7, 5], "data": '{"location":"FR"}'},
        {"flags": [9], "data": ""},
        {"flags": [3], "data": '{"Age":35}'},
    ]

    response = client.post("/events", content=json.dumps(batch))

    assert response.status_code == 200
    assert response.json() == {"affectedlines": 2}
    stored = store.get_all_events()
    assert [e.data for e in stored] == ['{"location":"FR"}', '{"Age":35}']
    assert stored[1].timestamp == FIXED_NOW


def test_post_unreadable_body_registers_nothing():
    client, store = _client()

    response = client.post("/events", content="{not json")
    not_a_list = client.post("/events", json={"flags": [1], "data": "x"})

    assert response.status_code == 200
    assert response.json() == {"affectedlines": 0}
    assert not_a_list.json() == {"affectedlines": 0}
    assert store.get_all_events() == []


def test_delete_by_id_then_tombstone_visible():
    client, _ = _seeded()

    response = client.delete("/events/3")

    assert response.status_code == 200
    assert response.json() == {"affectedlines": 1}
    events = client.get("/events").json()
    assert events[2] == {"id": 3, "timestamp": "1970-01-01T00:00:00Z", "flags": [-1], "data": "{}"}
    assert events[0]["data"] == '{"location":"FR"}'
    assert client.get("/events/3").status_code == 200


def test_delete_unknown_id():
    client, _ = _seeded()

    response = client.delete("/events/4")

    assert response.status_code == 200
    assert response.json() == {"affectedlines": 0}


def test_delete_twice():
    client, _ = _seeded()

    assert client.delete("/events/2").json() == {"affectedlines": 1}
    assert client.delete("/events/2").json() == {"affectedlines": 0}


def test_delete_by_flag():
    client, _ = _seeded()

    response = client.delete("/events/deleteflag/7")

    assert response.json() == {"affectedlines": 1}
    assert client.get("/events/getFlag/7").status_code == 404
    assert client.get("/events/getFlag/8").status_code == 200


@pytest.mark.parametrize("method", ["PUT", "PATCH"])
def test_unsupported_methods(method):
    client, _ = _seeded()
    assert client.request(method, "/events").status_code == 405


def test_store_failure_is_a_server_error_not_a_miss():
    client, _ = _client(_BrokenStore())

    assert client.get("/events/1").status_code == 503
    assert client.get("/events").status_code == 503
    assert client.delete("/events/1").status_code == 503
    response = client.post("/events", json=[{"flags": [1], "data": "x"}])
    assert response.status_code == 503
    assert response.json() == {"detail": "event store unavailable"}


def test_read_candidates_drops_unreadable_items():
    candidates = read_candidates(b'[{"flags": [1], "data": "a"}, {"flags": "x"}, 7]')

    assert len(candidates) == 1
    assert candidates[0].data == "a"


def test_ids_beyond_64_bits_on_sql_backend():
    client, store = _client(SqlEventStore(sqlite_engine()))
    too_big = 2 ** 64

    assert client.get(f"/events/{too_big}").status_code == 422
    assert client.delete(f"/events/{too_big}").status_code == 422
    assert client.get(f"/events/getFlag/{too_big}").status_code == 422
    assert client.delete(f"/events/deleteflag/{-too_big}").status_code == 422

    response = client.post(
        "/events",
        content=json.dumps([
            {"id": too_big, "flags": [1], "data": "x"},
            {"flags": [too_big], "data": "y"},
            {"flags": [1], "data": "kept"},
        ]),
    )
    assert response.status_code == 200
    assert response.json() == {"affectedlines": 1}
    assert [e.data for e in store.get_all_events()] == ["kept"]


def test_largest_id_is_a_plain_miss_on_sql_backend():
    client, store = _client(SqlEventStore(sqlite_engine()))

    assert client.get(f"/events/{2 ** 63 - 1}").status_code == 404
    assert client.delete(f"/events/{2 ** 63 - 1}").json() == {"affectedlines": 0}
    assert store.find_event_by_id(2 ** 64) is None
    assert store.delete_by_id(2 ** 64) == 0
